"""
Channel API endpoints.

Lists available channels and lets an account review or remove its links.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_account
from app.models import Account
from app.schemas.linking import ChannelResponse, LinkStatusResponse
from app.services.channel_links import ChannelLinks
from app.services.errors import LinkNotFoundError

router = APIRouter()


@router.get("", response_model=List[ChannelResponse])
async def list_channels(db: Session = Depends(get_db)):
    """
    List active channels. Public endpoint.
    """
    return [
        ChannelResponse(id=channel.id, is_active=channel.is_active, link_method=channel.link_method)
        for channel in ChannelLinks(db).list_active_channels()
    ]


@router.get("/links", response_model=List[LinkStatusResponse])
async def list_links(
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    List the current account's channel links.
    """
    return [
        LinkStatusResponse(**vars(link))
        for link in ChannelLinks(db).list_links(current_account.id)
    ]


@router.get("/links/{channel_id}", response_model=LinkStatusResponse)
async def get_link(
    channel_id: str,
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Link status of the current account on one channel.
    """
    link = ChannelLinks(db).get_link_status(current_account.id, channel_id)
    return LinkStatusResponse(**vars(link))


@router.delete("/links/{user_channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    user_channel_id: UUID,
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Remove a channel link and its usage counters.
    """
    try:
        ChannelLinks(db).unlink(user_channel_id, current_account.id)
    except LinkNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Channel link not found",
        )
    except PermissionError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Channel link belongs to another account",
        )
