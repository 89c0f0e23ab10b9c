"""
Webhook API endpoints.

Handles incoming webhooks from Stripe.
"""

import logging

import stripe
from fastapi import APIRouter, Depends, Request, HTTPException, status, Header
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.services.stripe_service import StripeService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """
    Handle Stripe webhook events.

    Keeps the product, price and subscription mirror current.
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature",
        )

    payload = await request.body()

    try:
        return StripeService.handle_webhook_event(payload, stripe_signature, db)

    except (ValueError, stripe.SignatureVerificationError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )


@router.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring.
    """
    return {
        "status": "healthy",
        "service": "channellink-api",
    }
