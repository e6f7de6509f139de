"""
Координатори мутацій на клієнті.

validate -> mutate -> reconcile строго послідовно в межах одного виклику.
Локальна валідація лише економить запит і дає миттєве пояснення відмови;
сервер повторює ту саму перевірку і є остаточним арбітром.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from creativedesk.client.api import WorkflowApiClient
from creativedesk.client.cache import BOARD_KEY, CancellationToken, TicketCache
from creativedesk.client.notifier import Level, LoggingNotifier, Notifier, Outcome
from creativedesk.core.errors import AppError
from creativedesk.db.models import TicketStatusEnum as Status
from creativedesk.schemas.revisions import AssetIn, RevisionOut
from creativedesk.schemas.tickets import BoardStats, BulkResultItem, TicketOut
from creativedesk.services.roles import Capabilities
from creativedesk.services.workflow import Denial, check_payload, evaluate_bulk_move, evaluate_transition

log = logging.getLogger(__name__)

NOT_ON_BOARD_REASON = "This ticket is not on your board anymore. Reload and try again."
DEFAULT_BULK_BATCH = 50

STATUS_LABELS = {
    Status.TODO: "To do",
    Status.IN_PROGRESS: "In progress",
    Status.IN_REVIEW: "In review",
    Status.DONE: "Done",
}


class MutationOutcome(str, enum.Enum):
    APPLIED = "applied"
    NOOP = "noop"
    DENIED = "denied"        # відмова валідатора, запиту не було
    FAILED = "failed"        # сервер/мережа відмовили, кеш перезавантажено
    STALE = "stale"          # новіша мутація по цій заявці вже в польоті
    CANCELLED = "cancelled"  # вью пішло, відповідь не застосовано


class BulkOutcome(str, enum.Enum):
    ALL = "all"
    PARTIAL = "partial"
    NONE = "none"
    CANCELLED = "cancelled"


@dataclass
class MutationResult:
    outcome: MutationOutcome
    ticket_id: int
    target: Status
    reason: Optional[str] = None
    denial: Optional[Denial] = None
    error: Optional[AppError] = None
    ticket: Optional[TicketOut] = None
    stats: Optional[BoardStats] = None
    revision_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (MutationOutcome.APPLIED, MutationOutcome.NOOP)


@dataclass
class BulkResult:
    outcome: BulkOutcome
    target: Status
    success_count: int
    fail_count: int
    results: list[BulkResultItem] = field(default_factory=list)
    error: Optional[AppError] = None
    # успішні на сервері, але новіша мутація по заявці вже стартувала
    stale_ids: list[int] = field(default_factory=list)

    @property
    def succeeded_ids(self) -> list[int]:
        return [r.ticket_id for r in self.results if r.success]

    @property
    def failed_ids(self) -> list[int]:
        return [r.ticket_id for r in self.results if not r.success]


class _Coordinator:
    def __init__(
        self,
        api: WorkflowApiClient,
        cache: TicketCache,
        *,
        actor_kind: Any,
        capabilities: Capabilities,
        notifier: Optional[Notifier] = None,
    ):
        self.api = api
        self.cache = cache
        self.actor_kind = actor_kind
        self.capabilities = capabilities
        self.notifier = notifier or LoggingNotifier()

    async def reload(self) -> bool:
        """
        Повне перезавантаження борду. Результат застарілого reload-а
        (якщо поки він летів, стартував новий) відкидається.
        """
        token = self.cache.loads.begin(BOARD_KEY)
        try:
            board = await self.api.fetch_board()
        except AppError as e:
            log.warning("board_reload_failed", extra={"code": e.code, "error": e.message})
            if self.cache.loads.is_current(token):
                self.cache.loads.finish(token)
            return False
        if not self.cache.loads.is_current(token):
            return False
        self.cache.replace_all(board.tickets)
        self.cache.loads.finish(token)
        return True

    def _notify(self, level: Level, title: str, description: Optional[str] = None) -> None:
        self.notifier.notify(Outcome(level=level, title=title, description=description))


class MutationCoordinator(_Coordinator):
    async def move(
        self,
        ticket_id: int,
        target: Status,
        *,
        feedback_message: Optional[str] = None,
        creative_message: Optional[str] = None,
        assets: Sequence[AssetIn] = (),
        token: Optional[CancellationToken] = None,
    ) -> MutationResult:
        target = Status(target)
        current = self.cache.get(ticket_id)
        if current is None:
            self._notify(Level.ERROR, "Couldn't move ticket", NOT_ON_BOARD_REASON)
            return MutationResult(
                MutationOutcome.DENIED, ticket_id, target, reason=NOT_ON_BOARD_REASON, denial=Denial.ILLEGAL,
            )

        decision = evaluate_transition(current.status, target, self.actor_kind, self.capabilities)
        decision = check_payload(decision, feedback_message)
        if not decision.allowed:
            self._notify(Level.ERROR, "This move isn't allowed", decision.reason)
            return MutationResult(
                MutationOutcome.DENIED, ticket_id, target, reason=decision.reason, denial=decision.denial,
            )
        if decision.is_noop:
            return MutationResult(MutationOutcome.NOOP, ticket_id, target, ticket=current)

        patch = self.cache.apply_speculative(ticket_id, status=target)
        try:
            out = await self.api.change_status(
                ticket_id,
                target,
                feedback_message=feedback_message,
                creative_message=creative_message,
                assets=assets,
            )
        except AppError as e:
            self.cache.discard(patch)
            if token is not None and token.cancelled:
                return MutationResult(MutationOutcome.CANCELLED, ticket_id, target, error=e)
            log.info("mutation_failed", extra={"ticket_id": ticket_id, "to": target.value, "code": e.code})
            self._notify(Level.ERROR, "Couldn't update ticket", e.message)
            await self.reload()
            return MutationResult(MutationOutcome.FAILED, ticket_id, target, reason=e.message, error=e)

        if token is not None and token.cancelled:
            self.cache.discard(patch)
            return MutationResult(MutationOutcome.CANCELLED, ticket_id, target, ticket=out.ticket)

        if not self.cache.commit(patch, out.ticket):
            return MutationResult(
                MutationOutcome.STALE, ticket_id, target, ticket=out.ticket, revision_id=out.revision_id,
            )

        if decision.creates_revision or decision.requires_feedback:
            self.cache.invalidate_revisions(ticket_id)

        # локальний fold має збігатися з канонічними stats сервера
        if self.cache.stats != out.stats and not self.cache.has_pending():
            log.info("stats_drift_reload", extra={"ticket_id": ticket_id})
            await self.reload()

        self._notify(Level.SUCCESS, f"Moved to {STATUS_LABELS[target]}", out.ticket.title)
        return MutationResult(
            MutationOutcome.APPLIED,
            ticket_id,
            target,
            ticket=out.ticket,
            stats=out.stats,
            revision_id=out.revision_id,
        )


class BulkTransitionCoordinator(_Coordinator):
    def __init__(self, *args: Any, batch_size: int = DEFAULT_BULK_BATCH, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.batch_size = batch_size

    def _prefilter(self, ticket_ids: list[int], target: Status) -> tuple[list[int], dict[int, BulkResultItem]]:
        eligible: list[int] = []
        excluded: dict[int, BulkResultItem] = {}
        for tid in ticket_ids:
            t = self.cache.get(tid)
            if t is None:
                excluded[tid] = BulkResultItem(ticket_id=tid, success=False, reason=NOT_ON_BOARD_REASON)
                continue
            decision = evaluate_bulk_move(t.status, target, self.actor_kind, self.capabilities, t.revision_count)
            if not decision.allowed:
                excluded[tid] = BulkResultItem(ticket_id=tid, success=False, reason=decision.reason)
                continue
            eligible.append(tid)
        return eligible, excluded

    async def move(
        self,
        ticket_ids: Iterable[int],
        target: Status,
        *,
        token: Optional[CancellationToken] = None,
    ) -> BulkResult:
        target = Status(target)
        ids = list(dict.fromkeys(ticket_ids))
        eligible, by_id = self._prefilter(ids, target)

        error: Optional[AppError] = None
        stale: list[int] = []
        for start in range(0, len(eligible), self.batch_size):
            chunk = eligible[start:start + self.batch_size]
            # generation кожної заявки на момент відправки
            sent = {tid: self.cache.generation(tid) for tid in chunk}
            try:
                out = await self.api.bulk_change_status(chunk, target)
            except AppError as e:
                if token is not None and token.cancelled:
                    return self._cancelled(ids, target, by_id, error=e)
                error = e
                for tid in chunk:
                    by_id[tid] = BulkResultItem(ticket_id=tid, success=False, reason=e.message)
                continue
            if token is not None and token.cancelled:
                return self._cancelled(ids, target, by_id)
            for item in out.results:
                by_id[item.ticket_id] = item
            for tid in chunk:
                # сервер не повернув рядок — вважаємо невдачею
                by_id.setdefault(tid, BulkResultItem(ticket_id=tid, success=False, reason="No result from server."))
            succeeded = [tid for tid in chunk if by_id[tid].success]
            applied = self.cache.apply_statuses(succeeded, target, sent)
            stale.extend(tid for tid in succeeded if tid not in applied)

        results = [by_id[tid] for tid in ids]
        succeeded = [r.ticket_id for r in results if r.success]

        if error is not None:
            await self.reload()
        elif stale and not self.cache.has_pending():
            # новіші мутації вже завершились, а порядок на сервері невідомий
            log.info("stale_bulk_reload", extra={"ticket_ids": stale})
            await self.reload()

        success_count = len(succeeded)
        fail_count = len(results) - success_count
        if fail_count == 0:
            outcome = BulkOutcome.ALL
            self._notify(Level.SUCCESS, f"Moved {success_count} ticket(s) to {STATUS_LABELS[target]}")
        elif success_count == 0:
            outcome = BulkOutcome.NONE
            self._notify(Level.ERROR, "No tickets were moved", _first_reason(results))
        else:
            outcome = BulkOutcome.PARTIAL
            self._notify(
                Level.WARNING,
                f"Moved {success_count} of {len(results)} tickets",
                f"{fail_count} could not be moved. {_first_reason(results) or ''}".strip(),
            )

        log.info("bulk_move_done", extra={
            "to": target.value,
            "requested": len(ids),
            "sent": len(eligible),
            "success_count": success_count,
            "fail_count": fail_count,
            "stale": len(stale),
        })
        return BulkResult(
            outcome=outcome,
            target=target,
            success_count=success_count,
            fail_count=fail_count,
            results=results,
            error=error,
            stale_ids=stale,
        )

    def _cancelled(
        self,
        ids: list[int],
        target: Status,
        by_id: dict[int, BulkResultItem],
        error: Optional[AppError] = None,
    ) -> BulkResult:
        # вже застосовані чанки лишаються; решта не відправлялась або відкинута
        results = [
            by_id.get(tid) or BulkResultItem(ticket_id=tid, success=False, reason="Cancelled.")
            for tid in ids
        ]
        success_count = sum(1 for r in results if r.success)
        log.info("bulk_move_cancelled", extra={"to": target.value, "requested": len(ids)})
        return BulkResult(
            outcome=BulkOutcome.CANCELLED,
            target=target,
            success_count=success_count,
            fail_count=len(results) - success_count,
            results=results,
            error=error,
        )


def _first_reason(results: list[BulkResultItem]) -> Optional[str]:
    return next((r.reason for r in results if not r.success and r.reason), None)


class RevisionHistoryLoader:
    """Історія ревізій для детального перегляду; скасовується при навігації."""

    def __init__(self, api: WorkflowApiClient, cache: TicketCache, notifier: Optional[Notifier] = None):
        self.api = api
        self.cache = cache
        self.notifier = notifier or LoggingNotifier()

    async def load(self, ticket_id: int) -> Optional[list[RevisionOut]]:
        token = self.cache.begin_revisions_load(ticket_id)
        try:
            revisions = await self.api.fetch_revisions(ticket_id)
        except AppError as e:
            current = self.cache.loads.is_current(token)
            self.cache.loads.finish(token)
            if current:
                log.info("revisions_load_failed", extra={"ticket_id": ticket_id, "code": e.code})
                self.notifier.notify(Outcome(level=Level.ERROR, title="Couldn't load revisions", description=e.message))
            return None
        if not self.cache.store_revisions(token, revisions):
            return None
        return self.cache.revisions(ticket_id)

    def cancel(self, ticket_id: int) -> None:
        self.cache.cancel_revisions_load(ticket_id)
