"""
Usage and quota API endpoints.

Service-key protected; the chat backend reads limits before answering
and records every message it handles.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_service_key
from app.schemas.usage import (
    QuotaSnapshotResponse,
    AggregateUsageResponse,
    UsageWarningResponse,
    MessageUsageRequest,
    UsageTotalsResponse,
)
from app.services.errors import LinkNotFoundError
from app.services.quota_resolver import QuotaResolver
from app.services.usage_ledger import UsageLedger

router = APIRouter(dependencies=[Depends(require_service_key)])


@router.get("/limits", response_model=QuotaSnapshotResponse)
async def get_limits(
    account_id: UUID = Query(..., alias="accountId"),
    db: Session = Depends(get_db),
):
    """
    Tier limits and current-period usage for an account.
    """
    snapshot = QuotaResolver(db).get_limits_and_usage(account_id)
    return QuotaSnapshotResponse(**snapshot.to_dict())


@router.get("/aggregate", response_model=AggregateUsageResponse)
async def get_aggregate(
    account_id: UUID = Query(..., alias="accountId"),
    db: Session = Depends(get_db),
):
    """
    Usage totals across all of an account's channels.
    """
    usage = QuotaResolver(db).get_aggregate_usage(account_id)
    return AggregateUsageResponse(
        total_tokens=usage.total_tokens,
        total_requests=usage.total_requests,
        last_activity=usage.last_activity,
    )


@router.get("/warnings", response_model=List[UsageWarningResponse])
async def get_warnings(
    account_id: UUID = Query(..., alias="accountId"),
    db: Session = Depends(get_db),
):
    warnings = QuotaResolver(db).usage_warnings(account_id)
    return [
        UsageWarningResponse(type=w.type, level=w.level, percent=w.percent, message=w.message)
        for w in warnings
    ]


@router.post("/messages", response_model=UsageTotalsResponse)
async def record_message(
    request: MessageUsageRequest,
    db: Session = Depends(get_db),
):
    """
    Account for one chat message on a linked channel.
    """
    try:
        totals = UsageLedger(db).record_message(
            account_id=request.account_id,
            channel_id=request.channel_id,
            content=request.content,
            role=request.role,
        )
    except LinkNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return UsageTotalsResponse(tokens_used=totals.tokens_used, requests_used=totals.requests_used)
