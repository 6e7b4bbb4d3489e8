"""
Stream Schemas
==============

Response schemas for the video and realtime stream endpoints.

Field names are camelCase to match what the iOS clients decode.
"""

from typing import Optional

from pydantic import BaseModel, Field


class StreamResponse(BaseModel):
    """Result of a start/stop/join/leave call."""

    success: bool = True
    streamId: str
    status: str
    message: Optional[str] = None
    streamUrl: Optional[str] = None
    viewerId: Optional[str] = None
    viewerCount: Optional[int] = None


class StreamInfo(BaseModel):
    """Status snapshot; unknown keys report an inactive stream."""

    streamId: str
    isActive: bool
    streamUrl: Optional[str] = None
    startTime: Optional[float] = None
    lastActivity: Optional[float] = None
    viewerCount: int = 0


class FrameUploadResponse(BaseModel):
    success: bool = True
    streamId: str
    frameNumber: int
    frameSize: int
    viewerCount: int


class FrameStreamStats(BaseModel):
    streamId: str
    isActive: bool
    duration: float
    frameCount: int
    bytesReceived: int
    avgFrameSize: int
    bytesPerSecond: float
    viewerCount: int
    hasLatestFrame: bool


class SegmentUploadResponse(BaseModel):
    success: bool = True
    rideId: str
    segmentNumber: int
    filename: str
    size: int
    duration: float


class LiveStreamStatus(BaseModel):
    """HLS stream status."""

    rideId: str
    isLive: bool
    segmentCount: int = 0
    mediaSequence: int = 0
    lastUpdate: float = 0
    viewerCount: int = 0
    streamUrl: Optional[str] = None


class SignalingResponse(BaseModel):
    success: bool = True
    rideId: str
    type: str = "signaling_processed"


class ActiveStreamsResponse(BaseModel):
    """Directory listing of live sessions."""

    activeStreams: list[dict] = Field(default_factory=list)
    totalCount: int = 0
    serverTime: float
