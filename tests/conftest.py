# tests/conftest.py
"""
Спільні фікстури: окрема sqlite-база (aiosqlite) на кожен тест,
нотифікації вимкнені, токени підписуються тестовим секретом.
"""
import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from typing import Optional

_DB_DIR = tempfile.mkdtemp(prefix="creativedesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from creativedesk.core.config import settings  # noqa: E402
from creativedesk.core.security import create_access_token  # noqa: E402
from creativedesk.db.base import Base  # noqa: E402
from creativedesk.db.models import (  # noqa: E402
    ActorKindEnum,
    Company,
    CompanyMember,
    CompanyRoleEnum,
    PriorityEnum,
    Project,
    Ticket,
    TicketRevision,
    TicketStatusEnum,
    User,
)
from creativedesk.db.session import AsyncSessionLocal, engine  # noqa: E402
from creativedesk.main import app  # noqa: E402
from creativedesk.services.revisions import utcnow  # noqa: E402


async def _reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@dataclass
class Person:
    id: int
    kind: ActorKindEnum
    company_id: Optional[int] = None


@dataclass
class World:
    company_id: int
    other_company_id: int
    project_id: int
    people: dict[str, Person] = field(default_factory=dict)

    def token(self, name: str) -> str:
        p = self.people[name]
        return create_access_token(
            subject=str(p.id),
            kind=p.kind.value,
            company_id=p.company_id,
            secret=settings.jwt_secret,
        )

    def headers(self, name: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token(name)}"}

    def run(self, coro):
        return asyncio.run(coro)

    def add_ticket(
        self,
        status: TicketStatusEnum = TicketStatusEnum.TODO,
        *,
        title: str = "Banner",
        priority: PriorityEnum = PriorityEnum.MEDIUM,
        creative: Optional[str] = "creative",
        company_id: Optional[int] = None,
        revisions: int = 0,
        last_has_feedback: bool = False,
    ) -> int:
        return self.run(self.add_ticket_async(
            status,
            title=title,
            priority=priority,
            creative=creative,
            company_id=company_id,
            revisions=revisions,
            last_has_feedback=last_has_feedback,
        ))

    async def add_ticket_async(
        self,
        status: TicketStatusEnum = TicketStatusEnum.TODO,
        *,
        title: str = "Banner",
        priority: PriorityEnum = PriorityEnum.MEDIUM,
        creative: Optional[str] = "creative",
        company_id: Optional[int] = None,
        revisions: int = 0,
        last_has_feedback: bool = False,
    ) -> int:
        company_id = company_id or self.company_id
        async with AsyncSessionLocal() as db:
            company = await db.get(Company, company_id)
            company.ticket_counter += 1
            t = Ticket(
                company_id=company_id,
                project_id=self.project_id if company_id == self.company_id else None,
                company_ticket_number=company.ticket_counter,
                created_by_id=self.people["owner"].id,
                creative_id=self.people[creative].id if creative else None,
                title=title,
                priority=priority,
                status=status,
            )
            db.add(t)
            await db.flush()
            for v in range(1, revisions + 1):
                has_feedback = v < revisions or last_has_feedback
                db.add(TicketRevision(
                    ticket_id=t.id,
                    version=v,
                    submitted_by_id=t.creative_id,
                    submitted_at=utcnow(),
                    feedback_at=utcnow() if has_feedback else None,
                    feedback_message="more contrast" if has_feedback else None,
                ))
            await db.commit()
            return t.id

    def set_plan_limit(self, max_in_progress: Optional[int]) -> None:
        self.run(self.set_plan_limit_async(max_in_progress))

    async def set_plan_limit_async(self, max_in_progress: Optional[int]) -> None:
        async with AsyncSessionLocal() as db:
            company = await db.get(Company, self.company_id)
            company.max_in_progress = max_in_progress
            await db.commit()


async def _seed() -> World:
    async with AsyncSessionLocal() as db:
        acme = Company(name="Acme", ticket_counter=0)
        other = Company(name="Globex", ticket_counter=0)
        db.add_all([acme, other])
        await db.flush()
        project = Project(company_id=acme.id, code="WEB", name="Website")
        db.add(project)

        people: dict[str, Person] = {}
        for name, role, company in (
            ("owner", CompanyRoleEnum.OWNER, acme),
            ("pm", CompanyRoleEnum.PM, acme),
            ("billing", CompanyRoleEnum.BILLING, acme),
            ("member", CompanyRoleEnum.MEMBER, acme),
            ("outsider", CompanyRoleEnum.OWNER, other),
        ):
            u = User(email=f"{name}@example.com", name=name.title(), kind=ActorKindEnum.CUSTOMER)
            db.add(u)
            await db.flush()
            db.add(CompanyMember(company_id=company.id, user_id=u.id, role=role))
            people[name] = Person(u.id, ActorKindEnum.CUSTOMER, company.id)

        for name in ("creative", "other_creative"):
            u = User(email=f"{name}@example.com", name=name.title(), kind=ActorKindEnum.CREATIVE)
            db.add(u)
            await db.flush()
            people[name] = Person(u.id, ActorKindEnum.CREATIVE)

        await db.commit()
        return World(company_id=acme.id, other_company_id=other.id, project_id=project.id, people=people)


@pytest.fixture
def world() -> World:
    asyncio.run(_reset_schema())
    return asyncio.run(_seed())


@pytest.fixture
def client(world) -> TestClient:
    return TestClient(app)


@pytest.fixture
async def aworld() -> World:
    """Те саме, що world, але для async-тестів (без вкладеного asyncio.run)."""
    await _reset_schema()
    return await _seed()
