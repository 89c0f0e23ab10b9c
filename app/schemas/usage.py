"""Usage and quota Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.linking import CamelModel


class QuotaSnapshotResponse(CamelModel):
    """Tier limits paired with current usage. ``None`` limits mean no active subscription."""

    tokens_used: int
    requests_used: int
    tokens_limit: Optional[int] = None
    requests_limit: Optional[int] = None
    history_limit: Optional[int] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class AggregateUsageResponse(CamelModel):
    total_tokens: int
    total_requests: int
    last_activity: Optional[datetime] = None


class UsageWarningResponse(CamelModel):
    type: str
    level: str
    percent: float
    message: str


class MessageUsageRequest(CamelModel):
    """Schema for accounting one chat message."""

    account_id: UUID
    channel_id: str
    content: str = ""
    role: str = Field(..., pattern="^(user|assistant|system)$")


class UsageTotalsResponse(CamelModel):
    tokens_used: int
    requests_used: int
