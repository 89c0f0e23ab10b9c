"""API routes package."""

from fastapi import APIRouter

from app.api import link, usage, channels, webhooks

api_router = APIRouter()

api_router.include_router(link.router, prefix="/link", tags=["link"])
api_router.include_router(usage.router, prefix="/usage", tags=["usage"])
api_router.include_router(channels.router, prefix="/channels", tags=["channels"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
