"""Health check endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...domain.services.channel_service import ChannelService
from ...infrastructure.dependencies import get_channel_service, get_stream_registry
from ...infrastructure.streaming.channel_registry import ChannelRegistry

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    channels: int
    live_channels: List[str]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    channel_service: ChannelService = Depends(get_channel_service),
    registry: ChannelRegistry = Depends(get_stream_registry),
) -> HealthResponse:
    """Check service health and which channels are streaming."""
    return HealthResponse(
        status="healthy",
        version="0.1.0",
        channels=len(channel_service.list_channels()),
        live_channels=registry.list_channels(),
    )
