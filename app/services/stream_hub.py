"""
Stream Hub
==========

Single owner of all in-memory live state, built once at startup and
attached to ``app.state.hub``:

- ``frames``: camera frame-forwarding sessions (latest frame only)
- ``segments``: HLS live video sessions (sliding segment window)
- ``realtime``: viewer-presence sessions without media
- ``activities``: live ride activity ids
- ``live_activities``: ride notification service
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import Settings
from app.services.activity_deduper import ActivityDeduper
from app.services.apns import APNsClient
from app.services.live_activities import LiveActivitiesService
from app.services.session_registry import SessionRegistry
from app.services.stream_buffers import FrameBuffer, SegmentBuffer
from app.utils.helpers import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass
class StreamHub:
    settings: Settings
    frames: SessionRegistry[FrameBuffer]
    segments: SessionRegistry[SegmentBuffer]
    realtime: SessionRegistry[None]
    activities: ActivityDeduper
    push_client: APNsClient
    live_activities: LiveActivitiesService

    @property
    def registries(self) -> tuple[SessionRegistry, ...]:
        return (self.frames, self.segments, self.realtime)

    async def start(self) -> None:
        """Start background eviction for every registry."""
        for registry in self.registries:
            registry.start_sweeper()
        logger.info("Stream hub started")

    async def stop(self) -> None:
        """Stop eviction loops and release the push client."""
        for registry in self.registries:
            await registry.stop_sweeper()
        await self.push_client.close()
        logger.info("Stream hub stopped")


def build_stream_hub(
    settings: Settings,
    clock: Clock = system_clock,
    push_client: Optional[APNsClient] = None,
) -> StreamHub:
    """Construct the hub and its registries from settings."""
    common = {
        "idle_ttl_seconds": settings.SESSION_IDLE_TTL_SECONDS,
        "sweep_interval_seconds": settings.SESSION_SWEEP_INTERVAL_SECONDS,
        "clock": clock,
    }
    window_size = settings.SEGMENT_WINDOW_SIZE

    frames = SessionRegistry(
        "video",
        FrameBuffer,
        grace_period_seconds=settings.FRAME_STREAM_GRACE_SECONDS,
        **common,
    )
    segments = SessionRegistry(
        "live video",
        lambda: SegmentBuffer(window_size),
        grace_period_seconds=settings.SEGMENT_STREAM_GRACE_SECONDS,
        **common,
    )
    realtime = SessionRegistry(
        "realtime",
        lambda: None,
        grace_period_seconds=settings.REALTIME_STREAM_GRACE_SECONDS,
        **common,
    )

    activities = ActivityDeduper()
    push_client = push_client or APNsClient(settings)

    return StreamHub(
        settings=settings,
        frames=frames,
        segments=segments,
        realtime=realtime,
        activities=activities,
        push_client=push_client,
        live_activities=LiveActivitiesService(push_client, activities, clock=clock),
    )
