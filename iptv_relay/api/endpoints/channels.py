"""Channel listing, playlist and streaming endpoints."""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel

from ...domain.models.results import ProviderErrorKind, ProviderStartError
from ...domain.services.channel_service import ChannelNotFoundError, ChannelService
from ...infrastructure.config import RelaySettings
from ...infrastructure.dependencies import get_channel_service, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["channels"])

DEFAULT_MEDIA_TYPE = "video/mp2t"

START_ERROR_STATUS: Dict[ProviderErrorKind, int] = {
    ProviderErrorKind.NO_CHANNEL_SELECTED: 400,
    ProviderErrorKind.IN_USE: 409,
    ProviderErrorKind.BACKEND_ERROR: 502,
    ProviderErrorKind.REGISTRY_ERROR: 502,
    ProviderErrorKind.ACQUIRE_TIMEOUT: 504,
}


class ChannelResponse(BaseModel):
    """A channel served by the relay."""

    id: str
    name: str
    running: bool
    available: bool


@router.get("/channels", response_model=List[ChannelResponse])
async def list_channels(
    channel_service: ChannelService = Depends(get_channel_service),
) -> List[ChannelResponse]:
    """List configured channels and their state."""
    return [ChannelResponse(**channel) for channel in channel_service.list_channels()]


@router.get("/playlist.m3u", response_class=PlainTextResponse)
async def playlist(
    request: Request,
    channel_service: ChannelService = Depends(get_channel_service),
    settings: RelaySettings = Depends(get_settings),
) -> PlainTextResponse:
    """Get an M3U playlist of all channels."""
    base_url = settings.public_url or str(request.base_url)
    return PlainTextResponse(
        channel_service.playlist(base_url),
        media_type="audio/x-mpegurl",
    )


@router.get("/channels/{channel_id}/stream")
async def stream_channel(
    channel_id: str,
    channel_service: ChannelService = Depends(get_channel_service),
) -> StreamingResponse:
    """Stream a channel, starting its provider if nobody is watching yet.

    Raises:
        HTTPException: If the channel is unknown or cannot be started
    """
    try:
        managed = await channel_service.open_channel(channel_id)
    except ChannelNotFoundError:
        raise HTTPException(status_code=404, detail=f"Channel not found: {channel_id}")
    except ProviderStartError as e:
        logger.warning(f"⚠️ Could not start '{channel_id}': {e.detail}")
        raise HTTPException(
            status_code=START_ERROR_STATUS.get(e.kind, 500),
            detail=f"{e.kind.value}: {e.detail}",
        )

    media_type = managed.metadata.get("content-type", DEFAULT_MEDIA_TYPE)
    return StreamingResponse(managed.subscribe(), media_type=media_type)
