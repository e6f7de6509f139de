# creativedesk/schemas/users.py
from __future__ import annotations

from typing import Optional

from creativedesk.db.models import ActorKindEnum, CompanyRoleEnum
from creativedesk.schemas.base import ApiModel


class CapabilitiesOut(ApiModel):
    can_move_on_board: bool
    can_edit_tickets: bool
    can_manage_tags: bool
    can_manage_projects: bool
    can_mark_done: bool
    can_create_tickets: bool
    can_manage_billing: bool


class ActorOut(ApiModel):
    id: int
    email: str
    name: Optional[str] = None
    kind: ActorKindEnum
    company_id: Optional[int] = None
    company_role: Optional[CompanyRoleEnum] = None
    capabilities: CapabilitiesOut
