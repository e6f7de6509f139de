"""
Revision ledger — append-only історія здач роботи креативом і фідбеку замовника.

- версія присвоюється тут (max + 1) і ніколи не перевикористовується;
- записи не видаляються й не перенумеровуються;
- "поточна" ревізія — завжди з найбільшою версією.

Функції НЕ комітять: сервіс заявок складає статус + ledger в одну транзакцію.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from creativedesk.core.errors import IllegalTransitionError, NotFoundError, WorkflowValidationError
from creativedesk.db.models import Asset, Ticket, TicketRevision
from creativedesk.schemas.revisions import AssetIn

log = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_revision(revisions: Iterable[TicketRevision]) -> Optional[TicketRevision]:
    return max(revisions, key=lambda r: r.version, default=None)


def latest_has_feedback(revisions: Iterable[TicketRevision]) -> bool:
    """True тоді й лише тоді, коли ревізія з найбільшою версією має feedback_at."""
    latest = current_revision(revisions)
    return latest is not None and latest.feedback_at is not None


async def list_revisions(db: AsyncSession, ticket_id: int) -> Sequence[TicketRevision]:
    q = (
        select(TicketRevision)
        .where(TicketRevision.ticket_id == ticket_id)
        .options(selectinload(TicketRevision.assets))
        .order_by(TicketRevision.version.asc())
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).scalars().all()


async def latest_revision(db: AsyncSession, ticket_id: int) -> Optional[TicketRevision]:
    q = (
        select(TicketRevision)
        .where(TicketRevision.ticket_id == ticket_id)
        .options(selectinload(TicketRevision.assets))
        .order_by(TicketRevision.version.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).scalar_one_or_none()


async def next_version(db: AsyncSession, ticket_id: int) -> int:
    current = (await db.execute(
        select(func.max(TicketRevision.version)).where(TicketRevision.ticket_id == ticket_id)
    )).scalar_one_or_none()
    return (current or 0) + 1


async def register_assets(
    db: AsyncSession,
    ticket: Ticket,
    revision: TicketRevision,
    assets: Sequence[AssetIn],
    *,
    max_assets: int,
) -> list[Asset]:
    """
    Реєструє вже завантажені файли за ревізією. Будь-яка помилка —
    WorkflowValidationError, транзакцію відкочує викликач.
    """
    if not assets:
        return []

    existing = (await db.execute(
        select(func.count()).select_from(Asset).where(Asset.revision_id == revision.id)
    )).scalar_one()
    if existing + len(assets) > max_assets:
        raise WorkflowValidationError(
            f"A revision can have at most {max_assets} files ({existing} already attached)."
        )

    keys = [a.storage_key for a in assets]
    if len(set(keys)) != len(keys):
        raise WorkflowValidationError("The same file was attached twice.")

    rows: list[Asset] = []
    for pos, a in enumerate(assets, start=existing):
        row = Asset(
            ticket_id=ticket.id,
            revision_id=revision.id,
            storage_key=a.storage_key,
            filename=a.filename,
            mime_type=a.mime_type,
            size_bytes=a.size_bytes,
            position=pos,
        )
        db.add(row)
        rows.append(row)

    try:
        await db.flush()
    except IntegrityError as e:
        log.warning("asset_registration_failed", extra={"ticket_id": ticket.id, "revision_id": revision.id})
        raise WorkflowValidationError("Some files could not be registered (already attached elsewhere).") from e
    return rows


async def submit_revision(
    db: AsyncSession,
    ticket: Ticket,
    *,
    submitted_by_id: int,
    creative_message: Optional[str],
    assets: Sequence[AssetIn],
    max_assets: int,
) -> TicketRevision:
    """IN_PROGRESS -> IN_REVIEW: новий запис з наступною версією + файли."""
    version = await next_version(db, ticket.id)
    rev = TicketRevision(
        ticket_id=ticket.id,
        version=version,
        submitted_by_id=submitted_by_id,
        submitted_at=utcnow(),
        creative_message=(creative_message or "").strip() or None,
    )
    db.add(rev)
    try:
        await db.flush()
    except IntegrityError as e:
        # паралельна здача вже зайняла цю версію
        raise IllegalTransitionError("This ticket was submitted for review concurrently. Reload and try again.") from e

    await register_assets(db, ticket, rev, assets, max_assets=max_assets)
    return rev


async def record_feedback(
    db: AsyncSession,
    ticket: Ticket,
    *,
    feedback_by_id: int,
    message: str,
) -> TicketRevision:
    """IN_REVIEW -> IN_PROGRESS замовником: фідбек пишеться у відкриту (останню) ревізію, нової не створюємо."""
    rev = await latest_revision(db, ticket.id)
    if rev is None or rev.feedback_at is not None:
        raise IllegalTransitionError("There is no submitted revision waiting for feedback on this ticket.")
    rev.feedback_at = utcnow()
    rev.feedback_message = message.strip()
    rev.feedback_by_id = feedback_by_id
    await db.flush()
    return rev


async def get_open_revision(db: AsyncSession, ticket: Ticket, revision_id: int) -> TicketRevision:
    """Ревізія, до якої ще можна доприкріпити файли: остання і без фідбеку."""
    rev = await latest_revision(db, ticket.id)
    if rev is None or rev.id != revision_id:
        raise NotFoundError("Revision not found or no longer current")
    if rev.feedback_at is not None:
        raise IllegalTransitionError("Feedback was already given on this revision; submit a new one instead.")
    return rev
