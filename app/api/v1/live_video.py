"""
Live Video (HLS) Endpoints
==========================

Segment-based live video for ride tracking.

The device uploads short MPEG-TS segments; viewers fetch a rolling
HLS playlist and the segments it references.  Playlists and segments
remain available during the grace period after the stream stops.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Query, Request, Response, UploadFile

from app.core.errors import ValidationError
from app.dependencies import HubSettings, SegmentRegistry
from app.schemas.stream import (
    ActiveStreamsResponse,
    LiveStreamStatus,
    SegmentUploadResponse,
    SignalingResponse,
    StreamResponse,
)
from app.utils.helpers import generate_viewer_id, stream_url
from app.utils.validators import validate_file_size

logger = logging.getLogger(__name__)

router = APIRouter()

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_MEDIA_TYPE = "video/mp2t"
PLAYLIST_CACHE_CONTROL = "no-cache, no-store, must-revalidate"
SEGMENT_CACHE_CONTROL = "max-age=10"


def _playlist_url(base_url: str, ride_id: str) -> str:
    return stream_url(base_url, f"/api/v1/video/live/{ride_id}/stream.m3u8")


@router.get("/active", response_model=ActiveStreamsResponse)
async def get_active_live_streams(registry: SegmentRegistry, settings: HubSettings):
    """List live HLS streams."""
    sessions = await registry.list_active()
    streams = [
        {
            "rideId": s.key,
            "segmentCount": len(s.buffer),
            "viewerCount": s.viewer_count,
            "startTime": s.created_at,
            "streamUrl": _playlist_url(settings.PUBLIC_BASE_URL, s.key),
        }
        for s in sessions
    ]
    return ActiveStreamsResponse(
        activeStreams=streams,
        totalCount=len(streams),
        serverTime=registry.now(),
    )


@router.post("/{ride_id}/start", response_model=StreamResponse)
async def start_live_stream(
    ride_id: str,
    registry: SegmentRegistry,
    settings: HubSettings,
):
    """Start (or restart) live streaming for a ride."""
    session = await registry.start(ride_id)
    logger.info("Starting live stream for ride: %s", ride_id)

    return StreamResponse(
        streamId=ride_id,
        status="started",
        message="Live stream started successfully",
        streamUrl=_playlist_url(settings.PUBLIC_BASE_URL, ride_id),
        viewerCount=session.viewer_count,
    )


@router.post("/{ride_id}/stop", response_model=StreamResponse)
async def stop_live_stream(ride_id: str, registry: SegmentRegistry):
    """Stop live streaming; the playlist is closed with ``#EXT-X-ENDLIST``."""
    session = await registry.stop(ride_id)
    if session is not None:
        logger.info("Stopped live stream for ride: %s", ride_id)

    return StreamResponse(
        streamId=ride_id,
        status="stopped",
        message="Live stream stopped",
        viewerCount=session.viewer_count if session else 0,
    )


@router.post("/{ride_id}/upload", response_model=SegmentUploadResponse)
async def upload_video_segment(
    ride_id: str,
    registry: SegmentRegistry,
    settings: HubSettings,
    segment: UploadFile = File(...),
    duration: Optional[float] = Form(default=None, gt=0),
):
    """
    Upload a video segment from the device.

    The first upload for an unknown ride starts its stream.

    - **segment**: MPEG-TS segment file
    - **duration**: Segment duration in seconds (defaults to the configured value)
    """
    payload = await segment.read()
    validate_file_size(len(payload), settings.MAX_SEGMENT_UPLOAD_SIZE_MB, field_name="segment")

    seconds = duration if duration is not None else settings.DEFAULT_SEGMENT_DURATION_SECONDS
    now = registry.now()

    def apply(session):
        index = session.buffer.total_appended
        return index, session.buffer.append_segment(payload, seconds, created_at=now)

    index, appended = await registry.write(ride_id, apply, create=True)

    logger.info(
        "Received segment %s for ride %s (%d bytes, %.1fs)",
        appended.filename,
        ride_id,
        appended.size,
        appended.duration_seconds,
    )

    return SegmentUploadResponse(
        rideId=ride_id,
        segmentNumber=index,
        filename=appended.filename,
        size=appended.size,
        duration=appended.duration_seconds,
    )


@router.get("/{ride_id}/stream.m3u8")
async def get_playlist(ride_id: str, registry: SegmentRegistry):
    """Serve the rolling HLS playlist."""
    playlist = await registry.read(
        ride_id, lambda s: s.buffer.generate_playlist(s.is_active)
    )

    return Response(
        content=playlist,
        media_type=PLAYLIST_MEDIA_TYPE,
        headers={"Cache-Control": PLAYLIST_CACHE_CONTROL},
    )


@router.get("/{ride_id}/segment/{filename}")
async def get_segment(ride_id: str, filename: str, registry: SegmentRegistry):
    """Serve one segment still inside the playlist window."""
    payload = await registry.read(ride_id, lambda s: s.buffer.get_segment(filename))

    return Response(
        content=payload,
        media_type=SEGMENT_MEDIA_TYPE,
        headers={"Cache-Control": SEGMENT_CACHE_CONTROL},
    )


@router.get("/{ride_id}/status", response_model=LiveStreamStatus)
async def get_live_stream_status(
    ride_id: str,
    registry: SegmentRegistry,
    settings: HubSettings,
):
    """Stream status; unknown rides report not live."""
    session = await registry.get(ride_id)
    if session is None:
        return LiveStreamStatus(rideId=ride_id, isLive=False)

    async with session.lock:
        return LiveStreamStatus(
            rideId=ride_id,
            isLive=session.is_active,
            segmentCount=len(session.buffer),
            mediaSequence=session.buffer.media_sequence,
            lastUpdate=session.last_activity,
            viewerCount=session.viewer_count,
            streamUrl=_playlist_url(settings.PUBLIC_BASE_URL, ride_id),
        )


@router.post("/{ride_id}/join", response_model=StreamResponse)
async def join_live_stream(
    ride_id: str,
    registry: SegmentRegistry,
    settings: HubSettings,
    viewer_id: Optional[str] = Query(default=None, alias="viewerId"),
):
    """Join a live HLS stream as a viewer."""
    viewer_id = viewer_id or generate_viewer_id()
    viewer_count = await registry.join(ride_id, viewer_id)

    return StreamResponse(
        streamId=ride_id,
        status="viewing",
        message="Successfully joined live stream",
        streamUrl=_playlist_url(settings.PUBLIC_BASE_URL, ride_id),
        viewerId=viewer_id,
        viewerCount=viewer_count,
    )


@router.post("/{ride_id}/leave", response_model=StreamResponse)
async def leave_live_stream(
    ride_id: str,
    registry: SegmentRegistry,
    viewer_id: str = Query(..., alias="viewerId"),
):
    """Leave a live HLS stream."""
    viewer_count = await registry.leave(ride_id, viewer_id)

    return StreamResponse(
        streamId=ride_id,
        status="left",
        message="Successfully left live stream",
        viewerId=viewer_id,
        viewerCount=viewer_count,
    )


@router.post("/{ride_id}/signal", response_model=SignalingResponse)
async def handle_signaling(ride_id: str, request: Request):
    """
    Accept a WebRTC signaling message.

    Messages are acknowledged and logged only; there is no peer relay.
    """
    try:
        message = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Signaling body must be valid JSON", field="body")

    if not isinstance(message, dict):
        raise ValidationError("Signaling body must be a JSON object", field="body")

    logger.info(
        "Received signaling message for ride %s: %s",
        ride_id,
        message.get("type", "unknown"),
    )
    return SignalingResponse(rideId=ride_id)
