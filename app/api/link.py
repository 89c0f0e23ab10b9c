"""
Channel linking API endpoints.

Nonce issuance, validation and finalization for the bot integration,
plus status polling for the account that started a link.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.api.deps import (
    get_db,
    get_current_account,
    get_notifier,
    get_service_role,
    rate_limit_link_generate,
    require_service_key,
)
from app.models import Account
from app.schemas.linking import (
    LinkGenerateRequest,
    LinkGenerateResponse,
    LinkValidateRequest,
    LinkValidateResponse,
    LinkFinalizeRequest,
    LinkFinalizeResponse,
    NonceStatusResponse,
)
from app.services.channel_links import ChannelLinks
from app.services.errors import ChannelNotFoundError, InvalidHandleError, LinkError
from app.services.link_finalizer import LinkFinalizer
from app.services.nonce_registry import NonceRegistry
from app.services.service_role import ServiceRole
from app.services.webhook_notifier import WebhookNotifier

logger = logging.getLogger(__name__)

router = APIRouter()

FINALIZE_ERROR_STATUS = {
    LinkError.INVALID_NONCE: status.HTTP_400_BAD_REQUEST,
    LinkError.USER_CHANNEL_CONFLICT: status.HTTP_409_CONFLICT,
    LinkError.FINALIZE_TRANSACTION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.post(
    "/generate",
    response_model=LinkGenerateResponse,
    dependencies=[Depends(require_service_key), Depends(rate_limit_link_generate)],
)
async def generate_link(
    request: LinkGenerateRequest,
    db: Session = Depends(get_db),
):
    """
    Issue a verification nonce for a channel.

    Called by the bot when someone asks to connect. Repeated requests for
    the same handle return the pending nonce.
    """
    if request.account_id and not db.query(Account).filter(Account.id == request.account_id).first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        )

    try:
        issued = NonceRegistry(db).create(
            channel_id=request.channel_id,
            prebound_account_id=request.account_id,
            external_handle=request.external_handle,
            metadata=request.metadata,
        )
    except ChannelNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidHandleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return LinkGenerateResponse(
        nonce=issued.nonce,
        expires_at=issued.expires_at,
        reused=issued.reused,
    )


@router.post(
    "/validate",
    response_model=LinkValidateResponse,
    dependencies=[Depends(require_service_key)],
)
async def validate_link(
    request: LinkValidateRequest,
    db: Session = Depends(get_db),
):
    """
    Check a nonce without consuming it.
    """
    result = NonceRegistry(db).validate(request.nonce, request.channel_id)
    return LinkValidateResponse(
        is_valid=result.is_valid,
        is_expired=result.is_expired,
        is_registration=result.is_registration,
    )


@router.post("/finalize", response_model=LinkFinalizeResponse, response_model_exclude_none=True)
async def finalize_link(
    request: LinkFinalizeRequest,
    response: Response,
    service_role: ServiceRole = Depends(get_service_role),
    notifier: WebhookNotifier = Depends(get_notifier),
):
    """
    Consume a nonce and link the channel to the account.

    Returns 200 on success (including already linked), 400 for an invalid
    or expired nonce, 409 when the nonce belongs to another account and
    500 when the store failed.
    """
    account = service_role.db.query(Account).filter(Account.id == request.account_id).first()
    if not account:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        )

    result = LinkFinalizer(service_role, notifier=notifier).finalize(
        account_id=request.account_id,
        nonce=request.nonce,
        channel_id=request.channel_id,
    )

    if not result.success:
        response.status_code = FINALIZE_ERROR_STATUS[result.error]
        return LinkFinalizeResponse(
            success=False,
            error=result.error.value,
            requires_manual_setup=result.requires_manual_setup,
        )

    return LinkFinalizeResponse(
        success=True,
        user_channel_id=result.user_channel_id,
        is_already_linked=result.is_already_linked,
    )


@router.get("/status/{nonce}", response_model=NonceStatusResponse, response_model_exclude_none=True)
async def link_status(
    nonce: str,
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Poll a linking attempt started by the current account.
    """
    result = ChannelLinks(db).nonce_status(nonce, current_account.id)
    return NonceStatusResponse(status=result.status, link=result.link)
