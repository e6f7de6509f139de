# creativedesk/api/routes/tickets.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Request, status

from ..deps import ActorDep, DBDep
from creativedesk.core.logging import log_extra
from creativedesk.schemas.revisions import AttachAssetsIn, RevisionOut
from creativedesk.schemas.tickets import (
    BulkStatusIn,
    BulkStatusOut,
    StatusChangeIn,
    StatusChangeOut,
    TicketCreate,
    TicketOut,
)
from creativedesk.services import tickets as svc

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreate, db: DBDep, actor: ActorDep):
    return await svc.create_ticket(db, actor, payload)


# bulk оголошуємо ДО /{ticket_id}, інакше "bulk-status" піде як ticket_id
@router.patch("/bulk-status", response_model=BulkStatusOut)
async def bulk_status(request: Request, payload: BulkStatusIn, db: DBDep, actor: ActorDep):
    out = await svc.bulk_change_status(db, actor, payload)
    log.info("bulk_status_request", extra=log_extra(
        request,
        actor_id=actor.user_id,
        success_count=out.success_count,
        fail_count=out.fail_count,
    ))
    return out


@router.get("/{ticket_id}", response_model=TicketOut)
async def get_ticket(ticket_id: int, db: DBDep, actor: ActorDep):
    t = await svc.get_ticket_for_actor(db, actor, ticket_id)
    return svc.serialize_ticket(t)


@router.patch("/{ticket_id}/status", response_model=StatusChangeOut)
async def change_status(
    request: Request,
    ticket_id: int,
    payload: StatusChangeIn,
    db: DBDep,
    actor: ActorDep,
):
    """
    Єдиний шлях зміни статусу. Перехід + ревізія + файли — одна транзакція:
    при будь-якій відмові нічого не змінюється.
    """
    out = await svc.change_status(db, actor, ticket_id, payload)
    log.info("status_change_request", extra=log_extra(
        request,
        actor_id=actor.user_id,
        ticket_id=ticket_id,
        to=payload.status.value,
    ))
    return out


@router.get("/{ticket_id}/revisions", response_model=list[RevisionOut])
async def list_revisions(ticket_id: int, db: DBDep, actor: ActorDep):
    return await svc.revision_history(db, actor, ticket_id)


@router.post(
    "/{ticket_id}/revisions/{revision_id}/assets",
    response_model=RevisionOut,
    status_code=status.HTTP_201_CREATED,
)
async def attach_assets(
    ticket_id: int,
    revision_id: int,
    payload: AttachAssetsIn,
    db: DBDep,
    actor: ActorDep,
):
    return await svc.attach_assets(db, actor, ticket_id, revision_id, payload)
