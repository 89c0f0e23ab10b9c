"""HTTP tests for the link, usage, channel and webhook endpoints."""

import asyncio
import uuid
from collections import Counter
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import redis
import stripe
from fastapi import HTTPException

from app.api.deps import LinkGenerateRateLimit, rate_limit_link_generate
from app.models import ChannelVerification, UsageRecord, UserChannel
from app.utils.redis_client import LinkAttemptLimiter, RateLimitInfo

from conftest import SERVICE_HEADERS, bearer_for, make_subscription


def generate(client, **body):
    return client.post("/api/v1/link/generate", json=body, headers=SERVICE_HEADERS)


class TestServiceAuth:

    def test_missing_service_key(self, client, channels):
        response = client.post("/api/v1/link/generate", json={"channelId": "telegram"})
        assert response.status_code == 401

    def test_wrong_service_key(self, client, channels):
        response = client.post(
            "/api/v1/link/generate",
            json={"channelId": "telegram"},
            headers={"X-Service-Key": "nope"},
        )
        assert response.status_code == 401


class TestLinkFlow:

    def test_generate_validate_finalize(self, client, db, channels, account, notifier):
        response = generate(client, channelId="telegram", externalHandle="@alice", metadata={"chat_id": 1})
        assert response.status_code == 200
        body = response.json()
        nonce = body["nonce"]
        assert "expiresAt" in body

        response = client.post(
            "/api/v1/link/validate",
            json={"nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )
        assert response.json() == {"isValid": True, "isExpired": False, "isRegistration": True}

        response = client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(account.id), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["isAlreadyLinked"] is False
        assert uuid.UUID(body["userChannelId"])
        assert notifier.calls == [("telegram", "@alice")]

        # Nonce is gone; a repeat is rejected but the link stands
        response = client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(account.id), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "invalid_nonce",
            "requiresManualSetup": True,
        }

        response = client.get("/api/v1/channels/links/telegram", headers=bearer_for(account))
        assert response.json()["isLinked"] is True

    def test_generate_dedupes(self, client, channels):
        first = generate(client, channelId="telegram", externalHandle="@alice").json()
        second = generate(client, channelId="telegram", externalHandle="@alice").json()

        assert second["nonce"] == first["nonce"]
        assert second["reused"] is True

    def test_generate_unknown_channel(self, client, channels):
        assert generate(client, channelId="signal").status_code == 404

    def test_generate_bad_handle(self, client, channels):
        assert generate(client, channelId="whatsapp", externalHandle="555").status_code == 400

    def test_generate_for_unknown_account(self, client, channels):
        response = generate(client, channelId="telegram", accountId=str(uuid.uuid4()))
        assert response.status_code == 404

    def test_finalize_conflict(self, client, db, channels, account, other_account):
        nonce = generate(
            client, channelId="telegram", externalHandle="@alice", accountId=str(account.id),
        ).json()["nonce"]

        response = client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(other_account.id), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )

        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "error": "user_channel_conflict",
            "requiresManualSetup": False,
        }
        assert db.query(UserChannel).count() == 0

    def test_finalize_unknown_account(self, client, channels):
        nonce = generate(client, channelId="telegram", externalHandle="@alice").json()["nonce"]

        response = client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(uuid.uuid4()), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 404

    def test_finalize_requires_service_key(self, client, channels, account):
        response = client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(account.id), "nonce": "x", "channelId": "telegram"},
        )
        assert response.status_code == 401


class TestNonceStatus:

    def test_pending_then_done(self, client, db, channels, account):
        nonce = generate(
            client, channelId="telegram", externalHandle="@alice", accountId=str(account.id),
        ).json()["nonce"]
        headers = bearer_for(account)

        assert client.get(f"/api/v1/link/status/{nonce}", headers=headers).json() == {"status": "pending"}

        client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(account.id), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )

        assert client.get(f"/api/v1/link/status/{nonce}", headers=headers).json() == {
            "status": "done",
            "link": "@alice",
        }

    def test_expired_nonce_removed(self, client, db, channels, account):
        nonce = generate(client, channelId="telegram", accountId=str(account.id)).json()["nonce"]
        row = db.query(ChannelVerification).one()
        row.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        response = client.get(f"/api/v1/link/status/{nonce}", headers=bearer_for(account))

        assert response.json() == {"status": "expired"}
        db.expire_all()
        assert db.query(ChannelVerification).count() == 0

    def test_requires_account_token(self, client, channels):
        assert client.get("/api/v1/link/status/abc").status_code == 401

    def test_rejects_foreign_token(self, client, channels, account):
        headers = bearer_for(account, secret="someone-elses-secret")
        assert client.get("/api/v1/link/status/abc", headers=headers).status_code == 401


class TestUsage:

    @pytest.fixture
    def linked(self, client, channels, account):
        nonce = generate(client, channelId="telegram", externalHandle="@alice").json()["nonce"]
        client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(account.id), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        )
        return account

    def test_messages_and_limits(self, client, db, linked):
        make_subscription(db, "cus_alice", tokens_limit=8, requests_limit=1)

        response = client.post(
            "/api/v1/usage/messages",
            json={"accountId": str(linked.id), "channelId": "telegram", "content": "one two three", "role": "user"},
            headers=SERVICE_HEADERS,
        )
        assert response.json() == {"tokensUsed": 3, "requestsUsed": 0}

        client.post(
            "/api/v1/usage/messages",
            json={"accountId": str(linked.id), "channelId": "telegram", "content": "four five six", "role": "assistant"},
            headers=SERVICE_HEADERS,
        )

        limits = client.get(
            "/api/v1/usage/limits", params={"accountId": str(linked.id)}, headers=SERVICE_HEADERS,
        ).json()
        assert limits["tokensUsed"] == 6
        assert limits["requestsUsed"] == 1
        assert limits["tokensLimit"] == 8
        assert limits["requestsLimit"] == 1
        assert limits["periodEnd"] is not None

        aggregate = client.get(
            "/api/v1/usage/aggregate", params={"accountId": str(linked.id)}, headers=SERVICE_HEADERS,
        ).json()
        assert aggregate["totalTokens"] == 6
        assert aggregate["totalRequests"] == 1

        warnings = client.get(
            "/api/v1/usage/warnings", params={"accountId": str(linked.id)}, headers=SERVICE_HEADERS,
        ).json()
        assert {(w["type"], w["level"]) for w in warnings} == {("tokens", "warning"), ("requests", "critical")}

    def test_limits_without_subscription(self, client, linked):
        limits = client.get(
            "/api/v1/usage/limits", params={"accountId": str(linked.id)}, headers=SERVICE_HEADERS,
        ).json()

        assert limits["tokensUsed"] == 0
        assert limits["tokensLimit"] is None
        assert limits["requestsLimit"] is None

    def test_message_on_unlinked_channel(self, client, linked):
        response = client.post(
            "/api/v1/usage/messages",
            json={"accountId": str(linked.id), "channelId": "whatsapp", "content": "hi", "role": "user"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 404

    def test_invalid_role(self, client, linked):
        response = client.post(
            "/api/v1/usage/messages",
            json={"accountId": str(linked.id), "channelId": "telegram", "content": "hi", "role": "robot"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 422


class TestChannels:

    def test_lists_active_channels(self, client, channels):
        ids = [c["id"] for c in client.get("/api/v1/channels").json()]
        assert ids == ["discord", "telegram", "whatsapp"]

    def test_list_and_delete_links(self, client, db, channels, account, other_account):
        nonce = generate(client, channelId="telegram", externalHandle="@alice").json()["nonce"]
        link_id = client.post(
            "/api/v1/link/finalize",
            json={"accountId": str(account.id), "nonce": nonce, "channelId": "telegram"},
            headers=SERVICE_HEADERS,
        ).json()["userChannelId"]
        client.post(
            "/api/v1/usage/messages",
            json={"accountId": str(account.id), "channelId": "telegram", "content": "hi", "role": "user"},
            headers=SERVICE_HEADERS,
        )

        links = client.get("/api/v1/channels/links", headers=bearer_for(account)).json()
        assert [(row["channelId"], row["link"], row["isVerified"]) for row in links] == [("telegram", "@alice", True)]

        # Someone else cannot remove it
        response = client.delete(f"/api/v1/channels/links/{link_id}", headers=bearer_for(other_account))
        assert response.status_code == 403

        response = client.delete(f"/api/v1/channels/links/{link_id}", headers=bearer_for(account))
        assert response.status_code == 204

        db.expire_all()
        assert db.query(UserChannel).count() == 0
        assert db.query(UsageRecord).count() == 0

        response = client.delete(f"/api/v1/channels/links/{link_id}", headers=bearer_for(account))
        assert response.status_code == 404


class TestStripeWebhook:

    def test_missing_signature(self, client):
        assert client.post("/api/v1/webhooks/stripe", content=b"{}").status_code == 400

    def test_bad_signature(self, client):
        with patch(
            "app.services.stripe_service.stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad signature", "t=1,v1=x"),
        ):
            response = client.post(
                "/api/v1/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=x"},
            )
        assert response.status_code == 400

    def test_verified_event_is_mirrored(self, client, db):
        verified = {
            "type": "product.created",
            "data": {"object": {"id": "prod_pro", "name": "Pro", "active": True, "metadata": {}}},
        }
        with patch("app.services.stripe_service.stripe.Webhook.construct_event", return_value=verified):
            response = client.post(
                "/api/v1/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=x"},
            )

        assert response.json() == {"status": "success", "product_id": "prod_pro"}

    def test_health(self, client):
        assert client.get("/api/v1/webhooks/health").json()["status"] == "healthy"
        assert client.get("/health").json()["status"] == "healthy"


class CountingLimiter:
    """In-memory stand-in for the Redis limiter, one counter per key."""

    def __init__(self, limit):
        self.limit = limit
        self.counts = Counter()

    def hit(self, channel_id, identity):
        self.counts[(channel_id, identity)] += 1
        return RateLimitInfo(limit=self.limit, current=self.counts[(channel_id, identity)], reset_in=3600)


class TestRateLimit:

    @staticmethod
    def request(body):
        async def json():
            if isinstance(body, Exception):
                raise body
            return body

        return SimpleNamespace(json=json, state=SimpleNamespace())

    def test_each_handle_has_its_own_bucket(self, client, channels):
        from app.main import app

        app.dependency_overrides[rate_limit_link_generate] = LinkGenerateRateLimit(limiter=CountingLimiter(limit=1))

        alice = generate(client, channelId="telegram", externalHandle="@alice")
        bob = generate(client, channelId="telegram", externalHandle="@bob")
        alice_again = generate(client, channelId="telegram", externalHandle="@alice")

        assert alice.status_code == 200
        assert alice.headers["X-RateLimit-Remaining"] == "0"
        assert bob.status_code == 200
        assert alice_again.status_code == 429
        assert alice_again.headers["X-RateLimit-Limit"] == "1"

    def test_keyed_by_channel_and_handle(self):
        limiter = MagicMock()
        limiter.hit.return_value = RateLimitInfo(limit=10, current=1, reset_in=3600)
        request = self.request({"channelId": "telegram", "externalHandle": " @alice "})

        asyncio.run(LinkGenerateRateLimit(limiter=limiter)(request))

        limiter.hit.assert_called_once_with("telegram", "@alice")
        assert request.state.rate_limit_info.remaining == 9

    def test_falls_back_to_prebound_account(self):
        limiter = MagicMock()
        limiter.hit.return_value = RateLimitInfo(limit=10, current=1, reset_in=3600)
        account_id = str(uuid.uuid4())

        asyncio.run(LinkGenerateRateLimit(limiter=limiter)(self.request({"channelId": "discord", "accountId": account_id})))

        limiter.hit.assert_called_once_with("discord", account_id)

    def test_anonymous_or_unreadable_requests_not_counted(self):
        limiter = MagicMock()
        dependency = LinkGenerateRateLimit(limiter=limiter)

        asyncio.run(dependency(self.request({"channelId": "discord"})))
        asyncio.run(dependency(self.request(["telegram"])))
        asyncio.run(dependency(self.request(ValueError("not json"))))

        limiter.hit.assert_not_called()

    def test_over_limit(self):
        limiter = MagicMock()
        limiter.hit.return_value = RateLimitInfo(limit=1, current=2, reset_in=60)

        with pytest.raises(HTTPException) as exc:
            asyncio.run(LinkGenerateRateLimit(limiter=limiter)(
                self.request({"channelId": "telegram", "externalHandle": "@alice"}),
            ))

        assert exc.value.status_code == 429
        assert exc.value.headers["X-RateLimit-Remaining"] == "0"
        assert exc.value.headers["X-RateLimit-Reset"] == "60"

    def test_redis_outage_lets_requests_through(self):
        limiter = MagicMock()
        limiter.hit.side_effect = redis.ConnectionError("refused")
        request = self.request({"channelId": "telegram", "externalHandle": "@alice"})

        asyncio.run(LinkGenerateRateLimit(limiter=limiter)(request))

        assert not hasattr(request.state, "rate_limit_info")


class TestLinkAttemptLimiter:

    def test_counter_created_with_expiry(self):
        redis_mock = MagicMock()
        pipe = redis_mock.pipeline.return_value
        pipe.execute.return_value = [True, 1, 3600]

        info = LinkAttemptLimiter(limit=10, client=redis_mock).hit("telegram", "@alice")

        pipe.set.assert_called_once_with("link_attempts:telegram:@alice", 0, ex=3600, nx=True)
        pipe.incr.assert_called_once_with("link_attempts:telegram:@alice")
        assert info.allowed is True
        assert info.remaining == 9
        assert info.reset_in == 3600

    def test_over_limit(self):
        redis_mock = MagicMock()
        redis_mock.pipeline.return_value.execute.return_value = [None, 11, 42]

        info = LinkAttemptLimiter(limit=10, client=redis_mock).hit("whatsapp", "+15550100123")

        assert info.allowed is False
        assert info.remaining == 0
        assert info.headers()["X-RateLimit-Reset"] == "42"
