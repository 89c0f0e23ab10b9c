"""Domain exceptions raised by the service layer."""

from enum import Enum


class LinkError(str, Enum):
    """Failure codes returned by LinkFinalizer.finalize."""

    INVALID_NONCE = "invalid_nonce"
    USER_CHANNEL_CONFLICT = "user_channel_conflict"
    FINALIZE_TRANSACTION_ERROR = "finalize_transaction_error"


class ChannelNotFoundError(ValueError):
    """Channel does not exist or is not active."""


class InvalidHandleError(ValueError):
    """External handle does not match the channel's link method."""


class LinkNotFoundError(LookupError):
    """No account <-> channel link matches the request."""
