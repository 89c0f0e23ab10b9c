"""
Stripe Integration Service

Mirrors billing objects (products, prices, subscriptions, customers)
into local tables from webhook events. Quota evaluation reads only the
mirror, never the Stripe API.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

import stripe
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Account, Price, Product, Subscription, SubscriptionItem

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    """Stripe epoch seconds -> naive UTC datetime."""
    if not value:
        return None
    return datetime.utcfromtimestamp(value)


class StripeService:
    """Service for Stripe operations."""

    @staticmethod
    def handle_webhook_event(payload: bytes, sig_header: str, db: Session) -> dict:
        """
        Verify and process a Stripe webhook event.

        Args:
            payload: Raw webhook payload
            sig_header: Stripe signature header
            db: Database session the mirror is written through

        Returns:
            Processing result
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                sig_header,
                settings.stripe_webhook_secret,
            )
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid webhook signature: {e}")
            raise

        return StripeService.process_event(event, db)

    @staticmethod
    def process_event(event, db: Session) -> dict:
        """Apply an already verified event to the mirror."""
        event_type = event["type"]
        data = event["data"]["object"]

        logger.info(f"Processing webhook: {event_type}")

        handlers = {
            "product.created": StripeService._upsert_product,
            "product.updated": StripeService._upsert_product,
            "price.created": StripeService._upsert_price,
            "price.updated": StripeService._upsert_price,
            "customer.subscription.created": StripeService._upsert_subscription,
            "customer.subscription.updated": StripeService._upsert_subscription,
            "customer.subscription.deleted": StripeService._handle_subscription_deleted,
            "customer.created": StripeService._handle_customer,
            "customer.updated": StripeService._handle_customer,
        }

        handler = handlers.get(event_type)
        if handler:
            return handler(data, db)

        return {"status": "ignored", "event_type": event_type}

    @staticmethod
    def _upsert_product(data: dict, db: Session) -> dict:
        product_id = data.get("id")

        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            product = Product(id=product_id)
            db.add(product)

        product.name = data.get("name")
        product.active = data.get("active", True)
        product.product_metadata = dict(data.get("metadata") or {})

        db.commit()
        return {"status": "success", "product_id": product_id}

    @staticmethod
    def _upsert_price(data: dict, db: Session) -> dict:
        price_id = data.get("id")
        product_id = data.get("product")
        recurring = data.get("recurring") or {}

        # Prices may arrive before their product
        if product_id and not db.query(Product).filter(Product.id == product_id).first():
            db.add(Product(id=product_id))
            db.flush()

        price = db.query(Price).filter(Price.id == price_id).first()
        if not price:
            price = Price(id=price_id)
            db.add(price)

        price.product_id = product_id
        price.active = data.get("active", True)
        price.unit_amount = data.get("unit_amount")
        price.currency = data.get("currency")
        price.recurring_interval = recurring.get("interval")

        db.commit()
        return {"status": "success", "price_id": price_id}

    @staticmethod
    def _upsert_subscription(data: dict, db: Session) -> dict:
        subscription_id = data.get("id")
        items = (data.get("items") or {}).get("data") or []

        subscription = db.query(Subscription).filter(
            Subscription.id == subscription_id
        ).first()
        if not subscription:
            subscription = Subscription(id=subscription_id)
            db.add(subscription)

        subscription.customer_id = data.get("customer")
        subscription.status = data.get("status")
        subscription.cancel_at_period_end = data.get("cancel_at_period_end", False)
        subscription.created = _timestamp(data.get("created"))

        # Newer API versions report the period on the items
        period_source = data if data.get("current_period_end") else (items[0] if items else {})
        subscription.current_period_start = _timestamp(period_source.get("current_period_start"))
        subscription.current_period_end = _timestamp(period_source.get("current_period_end"))

        db.flush()

        seen = set()
        for item in items:
            price_id = (item.get("price") or {}).get("id")
            if price_id and not db.query(Price).filter(Price.id == price_id).first():
                logger.warning(f"Subscription {subscription_id} references unknown price {price_id}")
                price_id = None

            row = db.query(SubscriptionItem).filter(SubscriptionItem.id == item["id"]).first()
            if not row:
                row = SubscriptionItem(id=item["id"], subscription_id=subscription_id)
                db.add(row)
            row.price_id = price_id
            row.created = _timestamp(item.get("created"))
            seen.add(item["id"])

        # Items removed from the subscription
        stale = db.query(SubscriptionItem).filter(
            SubscriptionItem.subscription_id == subscription_id,
        )
        if seen:
            stale = stale.filter(SubscriptionItem.id.notin_(seen))
        stale.delete(synchronize_session=False)

        db.commit()
        logger.info(f"Mirrored subscription {subscription_id} status={subscription.status}")
        return {"status": "success", "subscription_id": subscription_id}

    @staticmethod
    def _handle_subscription_deleted(data: dict, db: Session) -> dict:
        """Handle subscription cancellation."""
        subscription_id = data.get("id")

        subscription = db.query(Subscription).filter(
            Subscription.id == subscription_id
        ).first()

        if subscription:
            subscription.status = data.get("status") or "canceled"
            db.commit()

        return {"status": "success", "subscription_id": subscription_id}

    @staticmethod
    def _handle_customer(data: dict, db: Session) -> dict:
        """Attach the Stripe customer to the account named in its metadata."""
        customer_id = data.get("id")
        account_id = (data.get("metadata") or {}).get("account_id")

        if not account_id:
            return {"status": "ignored", "customer_id": customer_id}

        try:
            account_uuid = UUID(account_id)
        except ValueError:
            logger.warning(f"Customer {customer_id} has malformed account_id metadata")
            return {"status": "error", "message": "Invalid account_id"}

        account = db.query(Account).filter(Account.id == account_uuid).first()
        if not account:
            return {"status": "error", "message": "Account not found"}

        account.stripe_customer_id = customer_id
        db.commit()

        return {"status": "success", "customer_id": customer_id, "account_id": account_id}
