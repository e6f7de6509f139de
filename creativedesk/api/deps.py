from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creativedesk.db.session import get_session
from creativedesk.core.config import settings
from creativedesk.core.errors import AuthenticationError
from creativedesk.core.security import decode_token
from creativedesk.db.models import ActorKindEnum, CompanyMember, User
from creativedesk.services.roles import Actor, resolve_actor

# Bearer-токен видає зовнішній auth-сервіс; тут лише перевірка
bearer_scheme = HTTPBearer(auto_error=False)

# Тип для DI сесії БД
DBDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_actor(
    db: DBDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Actor:
    """
    Декодує Bearer JWT, дістає користувача з БД і перевіряє активність.
    Роль у компанії береться з БД (членство), а не з токена.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    try:
        payload = decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_alg)
        user_id = int(payload["sub"])
    except (ValueError, KeyError, TypeError):
        raise AuthenticationError("Invalid or expired token")

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise AuthenticationError("User inactive or not found")

    company_id = payload.get("company_id")
    role = None
    if user.kind is ActorKindEnum.CUSTOMER and company_id is not None:
        role = (await db.execute(
            select(CompanyMember.role).where(
                CompanyMember.company_id == company_id,
                CompanyMember.user_id == user.id,
            )
        )).scalar_one_or_none()
        if role is None:
            # не член цієї компанії — жодного доступу до її заявок
            company_id = None

    return resolve_actor(
        user_id=user.id,
        kind=user.kind,
        company_id=company_id,
        company_role=role,
        done_roles=settings.done_roles,
        email=user.email,
        name=user.name,
    )


ActorDep = Annotated[Actor, Depends(get_current_actor)]
