# creativedesk/schemas/revisions.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from pydantic import Field

from creativedesk.schemas.base import ApiModel


class AssetIn(ApiModel):
    # файл уже завантажений у сторідж (presign/upload — зовнішній сервіс)
    storage_key: str = Field(..., min_length=1, max_length=512)
    filename: str = Field(..., min_length=1, max_length=255)
    mime_type: Optional[str] = Field(default=None, max_length=128)
    size_bytes: Optional[int] = Field(default=None, ge=0)


class AssetOut(ApiModel):
    id: int
    storage_key: str
    filename: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    position: int


class RevisionOut(ApiModel):
    id: int
    version: int
    submitted_at: datetime
    submitted_by_id: Optional[int] = None
    creative_message: Optional[str] = None
    feedback_at: Optional[datetime] = None
    feedback_message: Optional[str] = None
    assets: List[AssetOut] = Field(default_factory=list)


class AttachAssetsIn(ApiModel):
    assets: List[AssetIn] = Field(..., min_length=1)
