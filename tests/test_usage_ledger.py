"""Tests for per-link usage counters."""

import random
import uuid
from datetime import datetime

import pytest

from app.models import UsageRecord, UserChannel
from app.services.errors import LinkNotFoundError
from app.services.usage_ledger import UsageLedger, count_tokens


@pytest.fixture
def link(db, channels, account):
    row = UserChannel(
        id=uuid.uuid4(),
        account_id=account.id,
        channel_id="telegram",
        link="@alice",
        verified_at=datetime.utcnow(),
    )
    db.add(row)
    db.commit()
    return row


class TestIncrement:

    def test_first_increment_creates_record(self, db, link):
        ledger = UsageLedger(db)
        ledger.increment(link.id, 12, 1)

        record = db.query(UsageRecord).one()
        assert (record.tokens_used, record.requests_used) == (12, 1)

    def test_increments_add_up_in_any_order(self, db, link):
        deltas = [(5, 1), (0, 2), (17, 0), (3, 3), (40, 1)]
        random.Random(7).shuffle(deltas)

        ledger = UsageLedger(db)
        for tokens, requests in deltas:
            ledger.increment(link.id, tokens, requests)

        totals = ledger.get(link.id)
        assert totals.tokens_used == 65
        assert totals.requests_used == 7
        assert db.query(UsageRecord).count() == 1

    def test_zero_delta_creates_zero_record(self, db, link):
        UsageLedger(db).increment(link.id)
        assert db.query(UsageRecord).one().tokens_used == 0

    def test_negative_delta_rejected(self, db, link):
        with pytest.raises(ValueError):
            UsageLedger(db).increment(link.id, -1, 0)
        assert db.query(UsageRecord).count() == 0


class TestGet:

    def test_absent_record_reads_zero(self, db):
        totals = UsageLedger(db).get(uuid.uuid4())
        assert (totals.tokens_used, totals.requests_used) == (0, 0)


class TestRecordMessage:

    def test_user_message_counts_tokens_only(self, db, account, link):
        totals = UsageLedger(db).record_message(account.id, "telegram", "hello there my friend", "user")
        assert (totals.tokens_used, totals.requests_used) == (4, 0)

    def test_assistant_message_counts_a_request(self, db, account, link):
        ledger = UsageLedger(db)
        ledger.record_message(account.id, "telegram", "hi", "user")
        totals = ledger.record_message(account.id, "telegram", "Hello! How can I help?", "assistant")

        assert totals.tokens_used == 6
        assert totals.requests_used == 1

    def test_unlinked_channel(self, db, account, link):
        with pytest.raises(LinkNotFoundError):
            UsageLedger(db).record_message(account.id, "whatsapp", "hi", "user")


@pytest.mark.parametrize("content,expected", [
    ("", 0),
    (None, 0),
    ("one", 1),
    ("  spaced   out\ttext\n", 3),
])
def test_count_tokens(content, expected):
    assert count_tokens(content) == expected
