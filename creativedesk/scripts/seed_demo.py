"""
Демо-дані для локального запуску: компанія з OWNER / PM / MEMBER, креатив,
проєкт WEB і кілька заявок у різних статусах. Друкує bearer-токени,
якими можна ходити в /api (логін живе в зовнішньому сервісі).

    python -m creativedesk.scripts.seed_demo --company "Acme" --max-in-progress 3
"""
from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creativedesk.core.config import settings
from creativedesk.core.security import create_access_token
from creativedesk.db.models import (
    ActorKindEnum,
    Company,
    CompanyMember,
    CompanyRoleEnum,
    PriorityEnum,
    Project,
    Ticket,
    TicketStatusEnum,
    User,
)
from creativedesk.db.session import AsyncSessionLocal, engine

DEMO_TICKETS = [
    ("Homepage hero banner", PriorityEnum.HIGH, TicketStatusEnum.TODO),
    ("Instagram story set", PriorityEnum.MEDIUM, TicketStatusEnum.TODO),
    ("Logo refresh", PriorityEnum.URGENT, TicketStatusEnum.IN_PROGRESS),
    ("Newsletter header", PriorityEnum.LOW, TicketStatusEnum.IN_PROGRESS),
]


async def _ensure_user(db: AsyncSession, *, email: str, name: str, kind: ActorKindEnum) -> User:
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None:
        user = User(email=email, name=name, kind=kind, is_active=True)
        db.add(user)
        await db.flush()
        print(f"[seed] створено користувача: {email} ({kind.value})")
    else:
        print(f"[seed] існує без змін: {email}")
    return user


async def _seed(db: AsyncSession, company_name: str, max_in_progress: Optional[int]) -> dict[str, tuple[User, Optional[int]]]:
    company = (await db.execute(select(Company).where(Company.name == company_name))).scalar_one_or_none()
    if company is None:
        company = Company(name=company_name, ticket_counter=0, max_in_progress=max_in_progress)
        db.add(company)
        await db.flush()
        print(f"[seed] створено компанію: {company_name}")

    people: dict[str, tuple[User, Optional[int]]] = {}
    for role in (CompanyRoleEnum.OWNER, CompanyRoleEnum.PM, CompanyRoleEnum.MEMBER):
        slug = role.value.lower()
        user = await _ensure_user(db, email=f"{slug}@example.com", name=slug.title(), kind=ActorKindEnum.CUSTOMER)
        member = (await db.execute(
            select(CompanyMember).where(CompanyMember.company_id == company.id, CompanyMember.user_id == user.id)
        )).scalar_one_or_none()
        if member is None:
            db.add(CompanyMember(company_id=company.id, user_id=user.id, role=role))
        people[slug] = (user, company.id)

    creative = await _ensure_user(db, email="creative@example.com", name="Creative", kind=ActorKindEnum.CREATIVE)
    people["creative"] = (creative, None)

    project = (await db.execute(
        select(Project).where(Project.company_id == company.id, Project.code == "WEB")
    )).scalar_one_or_none()
    if project is None:
        project = Project(company_id=company.id, code="WEB", name="Website")
        db.add(project)
        await db.flush()

    has_tickets = (await db.execute(select(Ticket.id).where(Ticket.company_id == company.id).limit(1))).first()
    if not has_tickets:
        owner = people["owner"][0]
        for title, priority, status in DEMO_TICKETS:
            company.ticket_counter += 1
            db.add(Ticket(
                company_id=company.id,
                project_id=project.id,
                company_ticket_number=company.ticket_counter,
                created_by_id=owner.id,
                creative_id=creative.id,
                title=title,
                priority=priority,
                status=status,
            ))
        print(f"[seed] створено {len(DEMO_TICKETS)} заявок")

    await db.commit()
    return people


async def _run(company_name: str, max_in_progress: Optional[int], token_minutes: int) -> None:
    async with AsyncSessionLocal() as db:
        people = await _seed(db, company_name, max_in_progress)
    await engine.dispose()

    print("[seed] bearer-токени:")
    for slug, (user, company_id) in people.items():
        token = create_access_token(
            subject=str(user.id),
            kind=user.kind.value,
            company_id=company_id,
            secret=settings.jwt_secret,
            expires_minutes=token_minutes,
            algorithm=settings.jwt_alg,
        )
        print(f"  {slug:<8} {token}")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed демо-компанії, користувачів і заявок")
    p.add_argument("--company", default="Acme", help="Назва демо-компанії")
    p.add_argument("--max-in-progress", type=int, default=None, help="Ліміт плану на одночасні IN_PROGRESS")
    p.add_argument("--token-minutes", type=int, default=settings.jwt_expires_min, help="Час життя токенів")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    asyncio.run(_run(args.company, args.max_in_progress, args.token_minutes))


if __name__ == "__main__":
    main()
