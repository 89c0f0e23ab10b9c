"""Channel linking Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON with the bot and web clients."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class LinkGenerateRequest(CamelModel):
    """Schema for issuing a verification nonce."""

    channel_id: str = Field(..., min_length=1, max_length=50)
    external_handle: Optional[str] = Field(None, max_length=255)
    metadata: Optional[dict] = None
    account_id: Optional[UUID] = None  # Pre-bound account, if known


class LinkGenerateResponse(CamelModel):
    nonce: str
    expires_at: datetime
    reused: bool = False


class LinkValidateRequest(CamelModel):
    nonce: str
    channel_id: str


class LinkValidateResponse(CamelModel):
    is_valid: bool
    is_expired: bool
    is_registration: bool


class LinkFinalizeRequest(CamelModel):
    """Schema for consuming a nonce on behalf of an account."""

    account_id: UUID
    nonce: str
    channel_id: str


class LinkFinalizeResponse(CamelModel):
    success: bool
    user_channel_id: Optional[UUID] = None
    error: Optional[str] = None
    requires_manual_setup: Optional[bool] = None
    is_already_linked: Optional[bool] = None


class NonceStatusResponse(CamelModel):
    status: str  # pending, expired, done
    link: Optional[str] = None


class ChannelResponse(CamelModel):
    id: str
    is_active: bool
    link_method: str


class LinkStatusResponse(CamelModel):
    """Schema for an account's link to one channel."""

    is_linked: bool
    is_verified: bool
    user_channel_id: Optional[UUID] = None
    channel_id: Optional[str] = None
    link: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
