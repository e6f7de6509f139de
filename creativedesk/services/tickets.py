"""
Tickets service — авторитетна (серверна) частина workflow.

Кожна зміна статусу повторно проходить той самий transition validator,
що й клієнт; статус, запис ledger-а та файли комітяться однією транзакцією
або не комітяться взагалі. Роутери лише викликають ці функції.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import false, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from creativedesk.core.config import settings
from creativedesk.core.errors import (
    AuthorizationError,
    IllegalTransitionError,
    LimitReachedError,
    NotFoundError,
    WorkflowValidationError,
)
from creativedesk.db.models import (
    AuditLog,
    Company,
    Project,
    Ticket,
    TicketRevision,
    TicketStatusEnum as Status,
)
from creativedesk.schemas.revisions import AttachAssetsIn, RevisionOut
from creativedesk.schemas.tickets import (
    BoardOut,
    BulkResultItem,
    BulkStatusIn,
    BulkStatusOut,
    StatusChangeIn,
    StatusChangeOut,
    TicketCreate,
    TicketOut,
)
from creativedesk.services import notifications, revisions as ledger
from creativedesk.services.roles import Actor
from creativedesk.services.stats import fold_stats
from creativedesk.services.workflow import (
    Decision,
    Denial,
    Effect,
    check_payload,
    evaluate_bulk_move,
    evaluate_transition,
    in_progress_limit_reason,
)

log = logging.getLogger(__name__)

_DENIAL_ERRORS = {
    Denial.ILLEGAL: IllegalTransitionError,
    Denial.FORBIDDEN: AuthorizationError,
    Denial.VALIDATION: WorkflowValidationError,
}


def raise_for_decision(decision: Decision) -> None:
    if decision.allowed:
        return
    error_cls = _DENIAL_ERRORS.get(decision.denial, IllegalTransitionError)
    raise error_cls(decision.reason or "This move is not allowed.")


# ---------------------------------------------------------------------------
# Серіалізація
# ---------------------------------------------------------------------------

def build_ticket_code(project_code: Optional[str], company_ticket_number: Optional[int], ticket_id: Any) -> str:
    """
    WEB-101 (код проєкту + номер), інакше #101, інакше сам id.
    """
    if project_code and company_ticket_number is not None:
        return f"{project_code}-{company_ticket_number}"
    if company_ticket_number is not None:
        return f"#{company_ticket_number}"
    return str(ticket_id)


def serialize_ticket(t: Ticket) -> TicketOut:
    """Очікує завантажені t.revisions і t.project."""
    project_code = t.project.code if t.project is not None else None
    return TicketOut(
        id=t.id,
        code=build_ticket_code(project_code, t.company_ticket_number, t.id),
        title=t.title,
        description=t.description,
        status=t.status,
        priority=t.priority,
        company_id=t.company_id,
        project_id=t.project_id,
        company_ticket_number=t.company_ticket_number,
        created_by_id=t.created_by_id,
        creative_id=t.creative_id,
        revision_count=len(t.revisions),
        latest_revision_has_feedback=ledger.latest_has_feedback(t.revisions),
        completed_at=t.completed_at,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _ticket_payload(t: Ticket) -> dict[str, Any]:
    return {
        "id": t.id,
        "title": t.title,
        "status": getattr(t.status, "value", str(t.status)),
        "priority": getattr(t.priority, "value", str(t.priority)),
        "company_id": t.company_id,
        "created_by_id": t.created_by_id,
        "creative_id": t.creative_id,
    }


def _actor_payload(actor: Actor) -> dict[str, Any]:
    return {
        "id": actor.user_id,
        "email": actor.email,
        "kind": actor.kind.value,
        "company_role": actor.company_role.value if actor.company_role else None,
    }


# ---------------------------------------------------------------------------
# Читання (scoped під актора)
# ---------------------------------------------------------------------------

def _scoped(q, actor: Actor):
    # креатив бачить призначені йому заявки, замовник — заявки своєї компанії
    if actor.is_creative:
        return q.where(Ticket.creative_id == actor.user_id)
    if actor.company_id is not None:
        return q.where(Ticket.company_id == actor.company_id)
    return q.where(false())


def _ticket_query():
    return (
        select(Ticket)
        .options(selectinload(Ticket.revisions))
        .execution_options(populate_existing=True)
    )


async def load_board_tickets(db: AsyncSession, actor: Actor) -> Sequence[Ticket]:
    q = _scoped(_ticket_query(), actor).order_by(Ticket.id.asc())
    return (await db.execute(q)).scalars().all()


async def board_snapshot(db: AsyncSession, actor: Actor) -> BoardOut:
    rows = await load_board_tickets(db, actor)
    return BoardOut(tickets=[serialize_ticket(t) for t in rows], stats=fold_stats(rows))


async def get_ticket_for_actor(
    db: AsyncSession,
    actor: Actor,
    ticket_id: int,
    *,
    for_update: bool = False,
) -> Ticket:
    q = _scoped(_ticket_query().where(Ticket.id == ticket_id), actor)
    if for_update:
        q = q.with_for_update(of=Ticket)
    t = (await db.execute(q)).scalar_one_or_none()
    if t is None:
        if actor.is_creative:
            raise NotFoundError("Ticket not found or not assigned to you")
        raise NotFoundError("Ticket not found for this company")
    return t


async def revision_history(db: AsyncSession, actor: Actor, ticket_id: int) -> list[RevisionOut]:
    await get_ticket_for_actor(db, actor, ticket_id)
    rows = await ledger.list_revisions(db, ticket_id)
    return [RevisionOut.model_validate(r) for r in rows]


# ---------------------------------------------------------------------------
# Створення
# ---------------------------------------------------------------------------

async def create_ticket(db: AsyncSession, actor: Actor, payload: TicketCreate) -> TicketOut:
    if actor.is_creative or not actor.capabilities.can_create_tickets or actor.company_id is None:
        raise AuthorizationError("Your role doesn't allow creating tickets for this company.")

    company = (await db.execute(
        select(Company).where(Company.id == actor.company_id).with_for_update()
    )).scalar_one_or_none()
    if company is None:
        raise NotFoundError("Company not found")

    if payload.project_id is not None:
        project = await db.get(Project, payload.project_id)
        if project is None or project.company_id != company.id:
            raise NotFoundError("Project not found for this company")

    try:
        company.ticket_counter += 1
        t = Ticket(
            company_id=company.id,
            project_id=payload.project_id,
            company_ticket_number=company.ticket_counter,
            created_by_id=actor.user_id,
            title=payload.title.strip(),
            description=(payload.description or "").strip() or None,
            priority=payload.priority,
            status=Status.TODO,
        )
        db.add(t)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    created = await get_ticket_for_actor(db, actor, t.id)
    log.info("ticket_created", extra={"ticket_id": t.id, "company_id": company.id})
    notifications.enqueue("ticket_created", {"ticket": _ticket_payload(created), "actor": _actor_payload(actor)})
    return serialize_ticket(created)


# ---------------------------------------------------------------------------
# Зміна статусу (одна заявка)
# ---------------------------------------------------------------------------

async def _count_in_progress(db: AsyncSession, company_id: int) -> int:
    return (await db.execute(
        select(func.count()).select_from(Ticket).where(
            Ticket.company_id == company_id,
            Ticket.status == Status.IN_PROGRESS,
        )
    )).scalar_one()


async def _check_in_progress_limit(db: AsyncSession, ticket: Ticket) -> None:
    company = await db.get(Company, ticket.company_id)
    if company is None or company.max_in_progress is None:
        return
    reason = in_progress_limit_reason(await _count_in_progress(db, ticket.company_id), company.max_in_progress)
    if reason:
        raise LimitReachedError(reason)


async def change_status(
    db: AsyncSession,
    actor: Actor,
    ticket_id: int,
    payload: StatusChangeIn,
) -> StatusChangeOut:
    ticket = await get_ticket_for_actor(db, actor, ticket_id, for_update=True)
    old = ticket.status
    target = payload.status

    decision = evaluate_transition(old, target, actor.kind, actor.capabilities)
    decision = check_payload(decision, payload.feedback_message)
    if not decision.allowed:
        log.info("transition_denied", extra={
            "ticket_id": ticket.id,
            "from": old.value,
            "to": target.value,
            "denial": decision.denial.value if decision.denial else None,
        })
        raise_for_decision(decision)

    if payload.assets and not decision.creates_revision:
        raise WorkflowValidationError("Files can only be attached when submitting work for review.")

    if decision.is_noop:
        return await _status_response(db, actor, ticket.id)

    revision: Optional[TicketRevision] = None
    try:
        # ліміт плану діє на будь-який вхід у IN_PROGRESS: старт, pull back, правки
        if target is Status.IN_PROGRESS and old is not Status.IN_PROGRESS:
            await _check_in_progress_limit(db, ticket)

        if decision.effect is Effect.SUBMIT_FOR_REVIEW:
            revision = await ledger.submit_revision(
                db,
                ticket,
                submitted_by_id=actor.user_id,
                creative_message=payload.creative_message,
                assets=payload.assets,
                max_assets=settings.max_review_assets,
            )
        elif decision.effect is Effect.REQUEST_CHANGES:
            revision = await ledger.record_feedback(
                db,
                ticket,
                feedback_by_id=actor.user_id,
                message=payload.feedback_message or "",
            )
        elif decision.effect is Effect.APPROVE:
            ticket.completed_at = ledger.utcnow()

        ticket.status = target
        db.add(AuditLog(
            actor_id=actor.user_id,
            action="status_changed",
            ticket_id=ticket.id,
            payload={
                "from": old.value,
                "to": target.value,
                "effect": decision.effect.value,
                "version": revision.version if revision is not None else None,
            },
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info("status_changed", extra={
        "ticket_id": ticket.id,
        "from": old.value,
        "to": target.value,
        "effect": decision.effect.value,
    })

    response = await _status_response(
        db,
        actor,
        ticket.id,
        revision_id=revision.id if decision.creates_revision and revision is not None else None,
    )
    _notify_transition(ticket, actor, old, decision, revision, payload)
    return response


async def _status_response(
    db: AsyncSession,
    actor: Actor,
    ticket_id: int,
    revision_id: Optional[int] = None,
) -> StatusChangeOut:
    board = await board_snapshot(db, actor)
    ticket = next((t for t in board.tickets if t.id == ticket_id), None)
    if ticket is None:
        # після коміту заявка випала з борду актора — віддаємо її окремо
        ticket = serialize_ticket(await get_ticket_for_actor(db, actor, ticket_id))
    return StatusChangeOut(ticket=ticket, stats=board.stats, revision_id=revision_id)


def _notify_transition(
    ticket: Ticket,
    actor: Actor,
    old: Status,
    decision: Decision,
    revision: Optional[TicketRevision],
    payload: StatusChangeIn,
) -> None:
    t = _ticket_payload(ticket)
    a = _actor_payload(actor)
    notifications.notify_status_changed(t, a, old.value, ticket.status.value)
    if decision.effect is Effect.SUBMIT_FOR_REVIEW and revision is not None:
        notifications.notify_revision_submitted(t, a, revision.version, len(payload.assets))
    elif decision.effect is Effect.REQUEST_CHANGES and revision is not None:
        notifications.notify_changes_requested(t, a, revision.version, revision.feedback_message or "")
    elif decision.effect is Effect.APPROVE:
        notifications.notify_ticket_completed(t, a)


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------

async def bulk_change_status(db: AsyncSession, actor: Actor, payload: BulkStatusIn) -> BulkStatusOut:
    """
    Кожна заявка перевіряється окремо проти свого ПОТОЧНОГО статусу в БД.
    Часткова невдача — звичайна відповідь зі змішаними результатами.
    """
    ticket_ids = list(dict.fromkeys(payload.ticket_ids))
    if len(ticket_ids) > settings.bulk_max_tickets:
        raise WorkflowValidationError(f"Cannot update more than {settings.bulk_max_tickets} tickets at once.")

    target = payload.status
    q = _scoped(_ticket_query().where(Ticket.id.in_(ticket_ids)), actor).with_for_update(of=Ticket)
    tickets = {t.id: t for t in (await db.execute(q)).scalars().all()}

    # ліміт плану рахуємо інкрементально в межах пачки
    limits: dict[int, list[int]] = {}
    results: list[BulkResultItem] = []
    moved: list[int] = []

    try:
        for tid in ticket_ids:
            t = tickets.get(tid)
            if t is None:
                results.append(BulkResultItem(
                    ticket_id=tid, success=False, reason="Ticket not found or not assigned to you.",
                ))
                continue

            decision = evaluate_bulk_move(t.status, target, actor.kind, actor.capabilities, len(t.revisions))
            if not decision.allowed:
                results.append(BulkResultItem(ticket_id=tid, success=False, reason=decision.reason))
                continue
            if decision.is_noop:
                results.append(BulkResultItem(ticket_id=tid, success=True))
                continue

            if target is Status.IN_PROGRESS and t.status is not Status.IN_PROGRESS:
                state = limits.get(t.company_id)
                if state is None:
                    company = await db.get(Company, t.company_id)
                    state = [await _count_in_progress(db, t.company_id), company.max_in_progress if company else None]
                    limits[t.company_id] = state
                reason = in_progress_limit_reason(state[0], state[1])
                if reason:
                    results.append(BulkResultItem(ticket_id=tid, success=False, reason=reason))
                    continue
                state[0] += 1

            old = t.status
            t.status = target
            db.add(AuditLog(
                actor_id=actor.user_id,
                action="status_changed",
                ticket_id=t.id,
                payload={"from": old.value, "to": target.value, "effect": decision.effect.value, "bulk": True},
            ))
            moved.append(tid)
            results.append(BulkResultItem(ticket_id=tid, success=True))

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    success_count = sum(1 for r in results if r.success)
    out = BulkStatusOut(
        success_count=success_count,
        fail_count=len(results) - success_count,
        results=results,
    )
    log.info("bulk_status_changed", extra={
        "to": target.value,
        "requested": len(ticket_ids),
        "moved": len(moved),
        "failed": out.fail_count,
    })
    if moved:
        notifications.notify_bulk_status_changed(_actor_payload(actor), target.value, moved)
    return out


# ---------------------------------------------------------------------------
# Файли до відкритої ревізії
# ---------------------------------------------------------------------------

async def attach_assets(
    db: AsyncSession,
    actor: Actor,
    ticket_id: int,
    revision_id: int,
    payload: AttachAssetsIn,
) -> RevisionOut:
    if not actor.is_creative:
        raise AuthorizationError("Only the assigned creative can attach work to a revision.")

    ticket = await get_ticket_for_actor(db, actor, ticket_id, for_update=True)
    if ticket.status is not Status.IN_REVIEW:
        raise IllegalTransitionError("Files can only be added while the ticket is in review.")

    try:
        revision = await ledger.get_open_revision(db, ticket, revision_id)
        await ledger.register_assets(db, ticket, revision, payload.assets, max_assets=settings.max_review_assets)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    rows = await ledger.list_revisions(db, ticket.id)
    current = next(r for r in rows if r.id == revision_id)
    return RevisionOut.model_validate(current)
