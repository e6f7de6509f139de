"""
Локальний кеш борду (Local State Reconciler).

- підтверджені заявки (від сервера) + спекулятивний оверлей поверх них;
- stats завжди рахуються fold-ом по ефективній колекції, ніколи не патчаться;
- кожна мутація заявки отримує generation; відповідь зі старим generation
  не застосовується (останній запит по заявці — єдиний, чия відповідь важить);
- асинхронні завантаження (борд, історія ревізій) мають CancellationToken,
  і результат застарілого/скасованого токена відкидається.

Один потік виконання (asyncio loop): читання й запис кешу відбуваються
між await-ами, тому локи не потрібні.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Mapping, Optional

from creativedesk.db.models import TicketStatusEnum as Status
from creativedesk.schemas.revisions import RevisionOut
from creativedesk.schemas.tickets import BoardStats, TicketOut
from creativedesk.services.stats import fold_stats

log = logging.getLogger(__name__)

BOARD_KEY = "board"


@dataclass
class CancellationToken:
    key: Hashable
    generation: int
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class LoadTracker:
    """Останній виданий токен на кожен ключ; будь-який попередній — застарілий."""

    def __init__(self) -> None:
        self._current: dict[Hashable, CancellationToken] = {}
        self._counter = itertools.count(1)

    def begin(self, key: Hashable) -> CancellationToken:
        previous = self._current.get(key)
        if previous is not None:
            previous.cancel()
        token = CancellationToken(key=key, generation=next(self._counter))
        self._current[key] = token
        return token

    def is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and self._current.get(token.key) is token

    def finish(self, token: CancellationToken) -> None:
        if self._current.get(token.key) is token:
            del self._current[token.key]

    def in_flight(self, key: Hashable) -> bool:
        return key in self._current

    def cancel(self, key: Hashable) -> None:
        token = self._current.pop(key, None)
        if token is not None:
            token.cancel()

    def cancel_all(self) -> None:
        for token in self._current.values():
            token.cancel()
        self._current.clear()


@dataclass(frozen=True)
class SpeculativePatch:
    ticket_id: int
    generation: int
    changes: dict[str, Any] = field(default_factory=dict)


class TicketCache:
    def __init__(self, tickets: Iterable[TicketOut] = ()) -> None:
        self._confirmed: dict[int, TicketOut] = {t.id: t for t in tickets}
        self._overlay: dict[int, tuple[SpeculativePatch, TicketOut]] = {}
        self._generations: dict[int, int] = {}
        self._revisions: dict[int, list[RevisionOut]] = {}
        self.loads = LoadTracker()

    # ---- читання ----

    def get(self, ticket_id: int) -> Optional[TicketOut]:
        entry = self._overlay.get(ticket_id)
        if entry is not None:
            return entry[1]
        return self._confirmed.get(ticket_id)

    def confirmed(self, ticket_id: int) -> Optional[TicketOut]:
        return self._confirmed.get(ticket_id)

    @property
    def tickets(self) -> list[TicketOut]:
        return [self.get(tid) for tid in sorted(self._confirmed)]

    @property
    def stats(self) -> BoardStats:
        return fold_stats(self.tickets)

    def by_status(self, status: Status) -> list[TicketOut]:
        return [t for t in self.tickets if t.status is Status(status)]

    def has_pending(self, ticket_id: Optional[int] = None) -> bool:
        if ticket_id is None:
            return bool(self._overlay)
        return ticket_id in self._overlay

    def __len__(self) -> int:
        return len(self._confirmed)

    def __contains__(self, ticket_id: object) -> bool:
        return ticket_id in self._confirmed

    # ---- повне перезавантаження ----

    def replace_all(self, tickets: Iterable[TicketOut]) -> None:
        """Сервер — джерело правди: оверлей скидається, generation-и лишаються."""
        self._confirmed = {t.id: t for t in tickets}
        self._overlay.clear()
        for tid in list(self._revisions):
            if tid not in self._confirmed:
                del self._revisions[tid]

    # ---- мутації (двофазно) ----

    def generation(self, ticket_id: int) -> int:
        return self._generations.get(ticket_id, 0)

    def _bump(self, ticket_id: int) -> int:
        gen = self._generations.get(ticket_id, 0) + 1
        self._generations[ticket_id] = gen
        return gen

    def apply_speculative(self, ticket_id: int, **changes: Any) -> SpeculativePatch:
        base = self._confirmed.get(ticket_id)
        if base is None:
            raise KeyError(ticket_id)
        patch = SpeculativePatch(ticket_id=ticket_id, generation=self._bump(ticket_id), changes=dict(changes))
        self._overlay[ticket_id] = (patch, base.model_copy(update=changes))
        return patch

    def is_current(self, patch: SpeculativePatch) -> bool:
        return self.generation(patch.ticket_id) == patch.generation

    def commit(self, patch: SpeculativePatch, confirmed: TicketOut) -> bool:
        """
        Замінює запис підтвердженим з сервера (цілком, без merge полів).
        False — за цей час по заявці стартувала новіша мутація.
        """
        if not self.is_current(patch):
            log.debug("stale_commit_ignored", extra={"ticket_id": patch.ticket_id, "generation": patch.generation})
            return False
        self._overlay.pop(patch.ticket_id, None)
        self._confirmed[confirmed.id] = confirmed
        return True

    def discard(self, patch: SpeculativePatch) -> None:
        entry = self._overlay.get(patch.ticket_id)
        if entry is not None and entry[0] is patch:
            del self._overlay[patch.ticket_id]

    def upsert(self, ticket: TicketOut) -> None:
        """Підтверджений запис поза мутацією (наприклад, щойно створена заявка)."""
        self._bump(ticket.id)
        self._overlay.pop(ticket.id, None)
        self._confirmed[ticket.id] = ticket

    def apply_statuses(
        self,
        ticket_ids: Iterable[int],
        status: Status,
        sent_generations: Optional[Mapping[int, int]] = None,
    ) -> list[int]:
        """
        Bulk: лише заявки, які сервер підтвердив як успішні.
        sent_generations — generation кожної заявки на момент відправки запиту;
        якщо відтоді по заявці стартувала новіша мутація, bulk-результат для неї
        застарілий і не застосовується.
        """
        applied: list[int] = []
        for tid in ticket_ids:
            base = self._confirmed.get(tid)
            if base is None:
                continue
            if sent_generations is not None and self.generation(tid) != sent_generations.get(tid):
                log.debug("stale_bulk_result_ignored", extra={"ticket_id": tid})
                continue
            self._bump(tid)
            self._overlay.pop(tid, None)
            self._confirmed[tid] = base.model_copy(update={"status": Status(status)})
            applied.append(tid)
        return applied

    # ---- історія ревізій ----

    def begin_revisions_load(self, ticket_id: int) -> CancellationToken:
        return self.loads.begin(("revisions", ticket_id))

    def cancel_revisions_load(self, ticket_id: int) -> None:
        self.loads.cancel(("revisions", ticket_id))

    def store_revisions(self, token: CancellationToken, revisions: list[RevisionOut]) -> bool:
        if not self.loads.is_current(token):
            log.debug("stale_load_discarded", extra={"key": str(token.key)})
            return False
        _, ticket_id = token.key
        self._revisions[ticket_id] = sorted(revisions, key=lambda r: r.version)
        self.loads.finish(token)
        return True

    def revisions(self, ticket_id: int) -> Optional[list[RevisionOut]]:
        return self._revisions.get(ticket_id)

    def current_revision(self, ticket_id: int) -> Optional[RevisionOut]:
        revs = self._revisions.get(ticket_id)
        return revs[-1] if revs else None

    def invalidate_revisions(self, ticket_id: int) -> None:
        self._revisions.pop(ticket_id, None)
