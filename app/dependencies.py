"""
Common Dependencies
===================

Shared dependencies used across the application.

Registries and services live on the ``StreamHub`` stored in
``app.state.hub`` during the lifespan startup; handlers receive them
through these dependencies instead of module-level globals.
"""

from typing import Annotated

from fastapi import Depends, Request

from app.config import Settings
from app.services.live_activities import LiveActivitiesService
from app.services.session_registry import SessionRegistry
from app.services.stream_buffers import FrameBuffer, SegmentBuffer
from app.services.stream_hub import StreamHub


def get_hub(request: Request) -> StreamHub:
    """Return the process-wide stream hub."""
    return request.app.state.hub


Hub = Annotated[StreamHub, Depends(get_hub)]


def get_hub_settings(hub: Hub) -> Settings:
    return hub.settings


def get_frame_registry(hub: Hub) -> SessionRegistry[FrameBuffer]:
    return hub.frames


def get_segment_registry(hub: Hub) -> SessionRegistry[SegmentBuffer]:
    return hub.segments


def get_realtime_registry(hub: Hub) -> SessionRegistry[None]:
    return hub.realtime


def get_live_activities_service(hub: Hub) -> LiveActivitiesService:
    return hub.live_activities


HubSettings = Annotated[Settings, Depends(get_hub_settings)]
FrameRegistry = Annotated[SessionRegistry[FrameBuffer], Depends(get_frame_registry)]
SegmentRegistry = Annotated[SessionRegistry[SegmentBuffer], Depends(get_segment_registry)]
RealtimeRegistry = Annotated[SessionRegistry[None], Depends(get_realtime_registry)]
LiveActivities = Annotated[LiveActivitiesService, Depends(get_live_activities_service)]
