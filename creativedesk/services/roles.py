"""
Role resolver: актор (+ роль у компанії) -> набір можливостей.

Чиста функція без стану. Невідома роль не валить запит, а дає
найвужчий (read-only) набір — fail-closed.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Iterable, Optional

from creativedesk.db.models import ActorKindEnum, CompanyRoleEnum

DEFAULT_DONE_ROLES: frozenset[CompanyRoleEnum] = frozenset({CompanyRoleEnum.OWNER, CompanyRoleEnum.PM})


@dataclass(frozen=True)
class Capabilities:
    can_move_on_board: bool = False
    can_edit_tickets: bool = False
    can_manage_tags: bool = False
    can_manage_projects: bool = False
    can_mark_done: bool = False
    can_create_tickets: bool = False
    can_manage_billing: bool = False

    def as_dict(self) -> dict[str, bool]:
        return asdict(self)


READ_ONLY = Capabilities()

# креатив рухає свої заявки між "креативними" статусами, DONE — не його
CREATIVE_CAPABILITIES = Capabilities(can_move_on_board=True)


def normalize_actor_kind(kind: Any) -> Optional[ActorKindEnum]:
    if isinstance(kind, ActorKindEnum):
        return kind
    try:
        return ActorKindEnum(str(kind).strip().upper())
    except ValueError:
        return None


def normalize_company_role(role: Any) -> Optional[CompanyRoleEnum]:
    """Best-effort: будь-яке значення (JSON, сесія) -> CompanyRoleEnum або None."""
    if isinstance(role, CompanyRoleEnum):
        return role
    if role is None:
        return None
    try:
        return CompanyRoleEnum(str(role).strip().upper())
    except ValueError:
        return None


def _done_roles(done_roles: Optional[Iterable[Any]]) -> frozenset[CompanyRoleEnum]:
    if done_roles is None:
        return DEFAULT_DONE_ROLES
    normalized = (normalize_company_role(r) for r in done_roles)
    return frozenset(r for r in normalized if r is not None)


def capabilities_for(
    actor_kind: Any,
    company_role: Any = None,
    done_roles: Optional[Iterable[Any]] = None,
) -> Capabilities:
    kind = normalize_actor_kind(actor_kind)
    if kind is ActorKindEnum.CREATIVE:
        return CREATIVE_CAPABILITIES
    if kind is not ActorKindEnum.CUSTOMER:
        return READ_ONLY

    role = normalize_company_role(company_role)
    if role is None:
        return READ_ONLY

    is_admin = role in {CompanyRoleEnum.OWNER, CompanyRoleEnum.PM}
    return Capabilities(
        can_move_on_board=is_admin,
        can_edit_tickets=is_admin,
        can_manage_tags=is_admin,
        can_manage_projects=is_admin,
        # DONE — лише для конфігурованих ролей і лише якщо роль взагалі рухає картки
        can_mark_done=is_admin and role in _done_roles(done_roles),
        can_create_tickets=is_admin,
        can_manage_billing=role in {CompanyRoleEnum.OWNER, CompanyRoleEnum.BILLING},
    )


@dataclass(frozen=True)
class Actor:
    """Хто діє: користувач + тенант + роль у компанії (вже перевірені)."""
    user_id: int
    kind: ActorKindEnum
    capabilities: Capabilities
    company_id: Optional[int] = None
    company_role: Optional[CompanyRoleEnum] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_creative(self) -> bool:
        return self.kind is ActorKindEnum.CREATIVE


def resolve_actor(
    *,
    user_id: int,
    kind: Any,
    company_id: Optional[int] = None,
    company_role: Any = None,
    done_roles: Optional[Iterable[Any]] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> Actor:
    k = normalize_actor_kind(kind)
    role = normalize_company_role(company_role) if k is ActorKindEnum.CUSTOMER else None
    return Actor(
        user_id=user_id,
        kind=k if k is not None else ActorKindEnum.CUSTOMER,
        capabilities=capabilities_for(k, role, done_roles) if k is not None else READ_ONLY,
        company_id=company_id if k is ActorKindEnum.CUSTOMER else None,
        company_role=role,
        email=email,
        name=name,
    )
