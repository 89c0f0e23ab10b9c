"""
Usage Ledger

Atomic per-link token/request counters. Increments are single
INSERT ... ON CONFLICT DO UPDATE statements, so concurrent writers on
any number of processes add up without application locks.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.database import upsert_statement
from app.models import UsageRecord, UserChannel
from app.services.errors import LinkNotFoundError

logger = logging.getLogger(__name__)

# Message roles that count as one billable request
REQUEST_ROLES = ("assistant",)


@dataclass
class UsageTotals:
    tokens_used: int = 0
    requests_used: int = 0


def count_tokens(content: str) -> int:
    """Whitespace-separated word count used as the token measure."""
    return len((content or "").split())


class UsageLedger:
    """Service for usage counters."""

    def __init__(self, db: Session):
        self.db = db

    def increment(self, user_channel_id: UUID, tokens_delta: int = 0, requests_delta: int = 0) -> None:
        """
        Add to a link's counters, creating the record on first use.

        Raises:
            ValueError: If either delta is negative
        """
        if tokens_delta < 0 or requests_delta < 0:
            raise ValueError("Usage deltas must be non-negative")

        now = datetime.utcnow()

        stmt = upsert_statement(self.db, UsageRecord).values(
            user_channel_id=user_channel_id,
            tokens_used=tokens_delta,
            requests_used=requests_delta,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_channel_id"],
            set_={
                "tokens_used": UsageRecord.tokens_used + stmt.excluded.tokens_used,
                "requests_used": UsageRecord.requests_used + stmt.excluded.requests_used,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        self.db.execute(stmt)
        self.db.commit()

        logger.debug(
            f"Usage +{tokens_delta} tokens +{requests_delta} requests for link {user_channel_id}"
        )

    def get(self, user_channel_id: UUID) -> UsageTotals:
        record = self.db.query(UsageRecord).filter(
            UsageRecord.user_channel_id == user_channel_id,
        ).first()

        if not record:
            return UsageTotals()
        return UsageTotals(tokens_used=record.tokens_used, requests_used=record.requests_used)

    def record_message(self, account_id: UUID, channel_id: str, content: str, role: str) -> UsageTotals:
        """
        Account for one chat message on a linked channel.

        Tokens are counted for every message; assistant replies also
        count as one request.

        Returns:
            Counters after the increment
        """
        user_channel_id = self.db.query(UserChannel.id).filter(
            UserChannel.account_id == account_id,
            UserChannel.channel_id == channel_id,
        ).scalar()

        if user_channel_id is None:
            raise LinkNotFoundError(f"No {channel_id} link for account {account_id}")

        tokens = count_tokens(content)
        requests = 1 if role in REQUEST_ROLES else 0

        self.increment(user_channel_id, tokens, requests)
        return self.get(user_channel_id)
