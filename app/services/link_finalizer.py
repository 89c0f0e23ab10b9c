"""
Link Finalizer

Consumes a verification nonce and durably binds the external channel
identity to an account.

    Pending (nonce exists) -> Bound (nonce.account_id set)
        -> Linked (user_channels row verified, nonce deleted)

Concurrent or repeated finalize calls for the same transition must all
report success. Races are settled by the store's unique constraints, so
a duplicate-key error here means another caller got there first.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.database import upsert_statement
from app.models import ChannelVerification, UserChannel
from app.services.channel_links import ChannelLinks
from app.services.errors import LinkError
from app.services.nonce_registry import mask_nonce
from app.services.service_role import ServiceRole
from app.services.webhook_notifier import WebhookNotifier

logger = logging.getLogger(__name__)

# Placeholder link for nonces issued without an external handle
PENDING_LINK_PREFIX = "pending::"


@dataclass
class LinkResult:
    success: bool
    user_channel_id: Optional[UUID] = None
    error: Optional[LinkError] = None
    requires_manual_setup: bool = False
    is_already_linked: bool = False


def chat_id_for(verification: ChannelVerification) -> Optional[str]:
    """Chat id the automation engine should address: the handle, else one from the bot's metadata."""
    if verification.user_handle:
        return verification.user_handle

    metadata = verification.chat_metadata or {}
    for key in ("chat_id", "chatId", "id"):
        value = metadata.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value)
    return None


class LinkFinalizer:
    """Runs the nonce -> verified link transition."""

    def __init__(self, service_role: ServiceRole, notifier: Optional[WebhookNotifier] = None):
        self.db = service_role.db
        self.caller = service_role.caller
        self.links = ChannelLinks(self.db)
        self.notifier = notifier or WebhookNotifier()

    def finalize(self, account_id: UUID, nonce: str, channel_id: str) -> LinkResult:
        """
        Link ``channel_id`` to ``account_id`` using ``nonce``.

        Never raises for store errors; they come back as
        FINALIZE_TRANSACTION_ERROR with requires_manual_setup set.
        """
        try:
            return self._finalize(account_id, nonce, channel_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(
                f"Finalize failed for account {account_id} channel {channel_id} "
                f"nonce {mask_nonce(nonce)}: {e}"
            )
            return LinkResult(
                success=False,
                error=LinkError.FINALIZE_TRANSACTION_ERROR,
                requires_manual_setup=True,
            )

    def _finalize(self, account_id: UUID, nonce: str, channel_id: str) -> LinkResult:
        now = datetime.utcnow()

        # 1. Unexpired verification for this nonce and channel
        verification = None
        if nonce and channel_id:
            verification = self.db.query(ChannelVerification).filter(
                ChannelVerification.nonce == nonce,
                ChannelVerification.channel_id == channel_id,
                ChannelVerification.expires_at > now,
            ).first()

        if not verification:
            logger.info(f"Invalid or expired nonce {mask_nonce(nonce)} for channel {channel_id}")
            return self._invalid_nonce()

        # A nonce reserved for one account can never be redeemed by another
        if verification.account_id is not None and verification.account_id != account_id:
            return self._conflict(verification.account_id, account_id, nonce)

        # Plain values only from here on; a rollback expires the instance
        verification_id = verification.id
        prebound_to = verification.account_id
        handle = verification.user_handle or f"{PENDING_LINK_PREFIX}{nonce}"
        chat_id = chat_id_for(verification)

        # 2. Already linked: nothing left to do
        existing = self.links.find(account_id, channel_id)
        if existing:
            logger.info(f"Account {account_id} already linked to {channel_id} ({existing.id})")
            return LinkResult(success=True, user_channel_id=existing.id, is_already_linked=True)

        # 3. Registration flow: bind the nonce to this account
        if prebound_to is None:
            bound = self.db.query(ChannelVerification).filter(
                ChannelVerification.id == verification_id,
                ChannelVerification.account_id.is_(None),
            ).update({"account_id": account_id}, synchronize_session=False)

            if not bound:
                self.db.rollback()
                return self._lost_bind_race(verification_id, account_id, channel_id, nonce)

        # 4. Atomic bind on the (account, channel) constraint
        stmt = upsert_statement(self.db, UserChannel).values(
            id=uuid.uuid4(),
            account_id=account_id,
            channel_id=channel_id,
            link=handle,
            created_at=now,
            updated_at=now,
            verified_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "channel_id"],
            set_={
                "link": stmt.excluded.link,
                "verified_at": stmt.excluded.verified_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        try:
            self.db.execute(stmt)
            self.db.commit()
        except IntegrityError as e:
            # 5. Collision on (link, channel) or a concurrent insert
            self.db.rollback()
            return self._resolve_duplicate(account_id, channel_id, nonce, handle, e)

        link = self.links.find(account_id, channel_id)
        link_id = link.id if link else None

        # 6. Consume the nonce; the link is authoritative even if this fails
        consumed = self._consume(nonce)

        # 7. Notify automation without waiting for it, once per nonce
        if consumed != 0:
            self.notifier.dispatch(channel_id, chat_id)

        logger.info(
            f"Linked account {account_id} to {channel_id} ({link_id}) "
            f"via nonce {mask_nonce(nonce)} [{self.caller}]"
        )
        return LinkResult(success=True, user_channel_id=link_id)

    def _resolve_duplicate(
        self,
        account_id: UUID,
        channel_id: str,
        nonce: str,
        handle: str,
        error: IntegrityError,
    ) -> LinkResult:
        link = self.links.find(account_id, channel_id)
        if link:
            logger.info(
                f"Duplicate key while linking {account_id} to {channel_id}; "
                f"link {link.id} already present"
            )
            link_id = link.id
            self._consume(nonce)
            return LinkResult(success=True, user_channel_id=link_id, is_already_linked=True)

        owner = self.db.query(UserChannel).filter(
            UserChannel.link == handle,
            UserChannel.channel_id == channel_id,
        ).first()
        if owner:
            logger.warning(
                f"Handle on {channel_id} is already linked to account {owner.account_id}; "
                f"finalize for {account_id} via nonce {mask_nonce(nonce)} reported as already linked"
            )
            self._consume(nonce)
            return LinkResult(success=True, is_already_linked=True)

        raise error

    def _lost_bind_race(self, verification_id: UUID, account_id: UUID, channel_id: str, nonce: str) -> LinkResult:
        owner = self.db.query(ChannelVerification.account_id).filter(
            ChannelVerification.id == verification_id,
        ).scalar()

        if owner is not None and owner != account_id:
            return self._conflict(owner, account_id, nonce)

        # Consumed (or bound to us) by a concurrent finalize
        link = self.links.find(account_id, channel_id)
        if link:
            return LinkResult(success=True, user_channel_id=link.id, is_already_linked=True)
        return self._invalid_nonce()

    def _consume(self, nonce: str) -> Optional[int]:
        """Delete the nonce. Returns rows deleted, or None if the delete failed."""
        try:
            deleted = self.db.query(ChannelVerification).filter(
                ChannelVerification.nonce == nonce,
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Could not delete consumed nonce {mask_nonce(nonce)}: {e}")
            return None

        if not deleted:
            logger.info(f"Nonce {mask_nonce(nonce)} already consumed by a concurrent finalize")
        return deleted

    @staticmethod
    def _invalid_nonce() -> LinkResult:
        return LinkResult(
            success=False,
            error=LinkError.INVALID_NONCE,
            requires_manual_setup=True,
        )

    @staticmethod
    def _conflict(expected: UUID, actual: UUID, nonce: str) -> LinkResult:
        logger.warning(
            f"Nonce {mask_nonce(nonce)} is bound to account {expected}, "
            f"rejected finalize for {actual}"
        )
        return LinkResult(
            success=False,
            error=LinkError.USER_CHANNEL_CONFLICT,
            requires_manual_setup=False,
        )
