"""Pydantic schemas for API request/response validation."""

from app.schemas.linking import (
    LinkGenerateRequest,
    LinkGenerateResponse,
    LinkValidateRequest,
    LinkValidateResponse,
    LinkFinalizeRequest,
    LinkFinalizeResponse,
    NonceStatusResponse,
    ChannelResponse,
    LinkStatusResponse,
)
from app.schemas.usage import (
    QuotaSnapshotResponse,
    AggregateUsageResponse,
    UsageWarningResponse,
    MessageUsageRequest,
    UsageTotalsResponse,
)

__all__ = [
    # Linking
    "LinkGenerateRequest",
    "LinkGenerateResponse",
    "LinkValidateRequest",
    "LinkValidateResponse",
    "LinkFinalizeRequest",
    "LinkFinalizeResponse",
    "NonceStatusResponse",
    "ChannelResponse",
    "LinkStatusResponse",
    # Usage
    "QuotaSnapshotResponse",
    "AggregateUsageResponse",
    "UsageWarningResponse",
    "MessageUsageRequest",
    "UsageTotalsResponse",
]
