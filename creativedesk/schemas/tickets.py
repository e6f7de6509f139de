# creativedesk/schemas/tickets.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import Field, field_validator

from creativedesk.db.models import PriorityEnum as Priority, TicketStatusEnum as Status
from creativedesk.schemas.base import ApiModel
from creativedesk.schemas.revisions import AssetIn


class TicketCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Priority = Field(default=Priority.MEDIUM)
    project_id: Optional[int] = None


class TicketOut(ApiModel):
    id: int
    code: str
    title: str
    description: Optional[str] = None
    status: Status
    priority: Priority
    company_id: int
    project_id: Optional[int] = None
    company_ticket_number: Optional[int] = None
    created_by_id: int
    creative_id: Optional[int] = None
    revision_count: int = 0
    latest_revision_has_feedback: bool = False
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BoardStats(ApiModel):
    """Похідна агрегація: завжди fold по колекції заявок, ніколи не патчиться окремо."""
    total: int = 0
    by_status: Dict[Status, int] = Field(default_factory=dict)
    by_priority: Dict[Priority, int] = Field(default_factory=dict)


class BoardOut(ApiModel):
    tickets: List[TicketOut]
    stats: BoardStats


class StatusChangeIn(ApiModel):
    status: Status
    feedback_message: Optional[str] = Field(default=None, max_length=10_000)
    creative_message: Optional[str] = Field(default=None, max_length=10_000)
    assets: List[AssetIn] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class StatusChangeOut(ApiModel):
    ticket: TicketOut
    stats: BoardStats
    # id створеної ревізії — щоб потім доприкріпити до неї файли
    revision_id: Optional[int] = None


class BulkStatusIn(ApiModel):
    ticket_ids: List[int] = Field(..., min_length=1)
    status: Status

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class BulkResultItem(ApiModel):
    ticket_id: int
    success: bool
    reason: Optional[str] = None


class BulkStatusOut(ApiModel):
    success_count: int
    fail_count: int
    results: List[BulkResultItem]
