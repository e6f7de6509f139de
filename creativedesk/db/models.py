from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    func,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creativedesk.db.base import Base

# ==== Енуми (python + sqlalchemy) ====


class ActorKindEnum(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    CREATIVE = "CREATIVE"


class CompanyRoleEnum(str, enum.Enum):
    OWNER = "OWNER"
    PM = "PM"
    BILLING = "BILLING"
    MEMBER = "MEMBER"


class PriorityEnum(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketStatusEnum(str, enum.Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"   # креатив взяв у роботу
    IN_REVIEW = "IN_REVIEW"       # ревізія чекає на рішення замовника
    DONE = "DONE"                 # замовник прийняв останню ревізію


# порядок колонок на борді
STATUS_ORDER: list[TicketStatusEnum] = [
    TicketStatusEnum.TODO,
    TicketStatusEnum.IN_PROGRESS,
    TicketStatusEnum.IN_REVIEW,
    TicketStatusEnum.DONE,
]

PRIORITY_ORDER: list[PriorityEnum] = [
    PriorityEnum.URGENT,
    PriorityEnum.HIGH,
    PriorityEnum.MEDIUM,
    PriorityEnum.LOW,
]


# ==== Міксини ====


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ==== Моделі ====


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    kind: Mapped[ActorKindEnum] = mapped_column(
        Enum(ActorKindEnum, name="actor_kind_enum"),
        default=ActorKindEnum.CUSTOMER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    memberships: Mapped[List["CompanyMember"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} kind={self.kind}>"


class Company(TimestampMixin, Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    # лічильник для company_ticket_number (WEB-101, #101)
    ticket_counter: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # ліміт плану на одночасні IN_PROGRESS; None — без ліміту
    max_in_progress: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    members: Mapped[List["CompanyMember"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
    )
    projects: Mapped[List["Project"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
    )


class CompanyMember(Base):
    __tablename__ = "company_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    role: Mapped[CompanyRoleEnum] = mapped_column(
        Enum(CompanyRoleEnum, name="company_role_enum"),
        default=CompanyRoleEnum.MEMBER,
        nullable=False,
    )

    company: Mapped["Company"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_members_company_user"),
    )


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        index=True,
    )
    code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    name: Mapped[str] = mapped_column(String(255))

    company: Mapped["Company"] = relationship(back_populates="projects")


class Ticket(TimestampMixin, Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        index=True,
    )
    project_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    company_ticket_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    creative_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    priority: Mapped[PriorityEnum] = mapped_column(
        Enum(PriorityEnum, name="priority_enum"),
        default=PriorityEnum.MEDIUM,
        nullable=False,
    )
    status: Mapped[TicketStatusEnum] = mapped_column(
        Enum(TicketStatusEnum, name="ticket_status_enum"),
        default=TicketStatusEnum.TODO,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # relationships
    project: Mapped[Optional["Project"]] = relationship(lazy="joined")
    created_by: Mapped["User"] = relationship(foreign_keys=[created_by_id])
    creative: Mapped[Optional["User"]] = relationship(foreign_keys=[creative_id])
    revisions: Mapped[List["TicketRevision"]] = relationship(
        back_populates="ticket",
        order_by="TicketRevision.version",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_tickets_company_status", "company_id", "status"),
        Index("ix_tickets_creative_status", "creative_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Ticket id={self.id} status={self.status} priority={self.priority}>"


class TicketRevision(Base):
    """
    Запис ledger-а ревізій: одна здача роботи креативом + (можливо) фідбек замовника.
    Версія присвоюється сервером і ніколи не перевикористовується.
    """

    __tablename__ = "ticket_revisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    submitted_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    creative_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    feedback_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    feedback_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    feedback_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ticket: Mapped["Ticket"] = relationship(back_populates="revisions")
    assets: Mapped[List["Asset"]] = relationship(
        back_populates="revision",
        order_by="Asset.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("ticket_id", "version", name="uq_ticket_revisions_ticket_version"),
    )


class Asset(Base):
    """Вихідний файл ревізії. Сам файл живе у сторіджі, тут лише реєстрація."""

    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    revision_id: Mapped[int] = mapped_column(
        ForeignKey("ticket_revisions.id", ondelete="CASCADE"),
        index=True,
    )
    storage_key: Mapped[str] = mapped_column(String(512), unique=True)
    filename: Mapped[str] = mapped_column(String(255))
    mime_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    revision: Mapped["TicketRevision"] = relationship(back_populates="assets")


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(64))
    ticket_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tickets.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
