# creativedesk/api/routes/me.py
from fastapi import APIRouter

from ..deps import ActorDep
from creativedesk.schemas.users import ActorOut, CapabilitiesOut

router = APIRouter()


@router.get("", response_model=ActorOut)
async def get_me(actor: ActorDep):
    return ActorOut(
        id=actor.user_id,
        email=actor.email or "",
        name=actor.name,
        kind=actor.kind,
        company_id=actor.company_id,
        company_role=actor.company_role,
        capabilities=CapabilitiesOut(**actor.capabilities.as_dict()),
    )


@router.get("/capabilities", response_model=CapabilitiesOut)
async def get_capabilities(actor: ActorDep):
    # UI лише ховає/показує дії; сервер все одно перевіряє кожен перехід
    return CapabilitiesOut(**actor.capabilities.as_dict())
