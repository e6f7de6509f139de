# creativedesk/api/routes/board.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from ..deps import ActorDep, DBDep
from creativedesk.core.logging import log_extra
from creativedesk.schemas.tickets import BoardOut
from creativedesk.services import tickets as svc

router = APIRouter()
log = logging.getLogger(__name__)


@router.get("", response_model=BoardOut)
async def get_board(request: Request, db: DBDep, actor: ActorDep):
    """Усі заявки, видимі актору, + канонічні лічильники."""
    board = await svc.board_snapshot(db, actor)
    log.debug("board_loaded", extra=log_extra(request, actor_id=actor.user_id, total=board.stats.total))
    return board
