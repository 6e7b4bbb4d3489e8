"""
Stream Buffers
==============

Buffer policies held by a session:

- ``FrameBuffer``: single-slot "latest frame" buffer for camera
  forwarding. Memory stays bounded by the size of the last frame no
  matter how long the stream runs.
- ``SegmentBuffer``: sliding window of the most recent MPEG-TS segments
  for HLS live playback.

Buffers hold no lock of their own; the owning session serializes access.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from app.core.errors import NoFrameDataError, SegmentNotFoundError
from app.services.playlist import render_playlist

DEFAULT_WINDOW_SIZE = 10


# ---------------------------------------------------------------------------
# Single-slot frame buffer
# ---------------------------------------------------------------------------

class FrameBuffer:
    """Keeps only the latest uploaded frame plus running counters."""

    # Latest-frame reads are a live view; a stopped stream stops serving.
    serves_after_stop = False

    def __init__(self) -> None:
        self.latest_payload: Optional[bytes] = None
        self.frame_count = 0
        self.total_bytes_received = 0

    def update_frame(self, payload: bytes) -> int:
        """Replace the latest frame and return the new frame count."""
        self.latest_payload = payload
        self.frame_count += 1
        self.total_bytes_received += len(payload)
        return self.frame_count

    @property
    def has_latest_frame(self) -> bool:
        return self.latest_payload is not None

    def latest_frame(self) -> bytes:
        """
        Return the most recent frame.

        Raises:
            NoFrameDataError: If no frame has been uploaded yet
        """
        if self.latest_payload is None:
            raise NoFrameDataError()
        return self.latest_payload

    def stats(self, elapsed_seconds: float) -> dict[str, Any]:
        """Throughput figures derived from the counters."""
        average_frame_size = (
            self.total_bytes_received // self.frame_count if self.frame_count else 0
        )
        bytes_per_second = (
            self.total_bytes_received / elapsed_seconds if elapsed_seconds > 0 else 0.0
        )
        return {
            "frameCount": self.frame_count,
            "bytesReceived": self.total_bytes_received,
            "avgFrameSize": average_frame_size,
            "bytesPerSecond": bytes_per_second,
            "hasLatestFrame": self.has_latest_frame,
        }


# ---------------------------------------------------------------------------
# Sliding-window segment buffer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Segment:
    """One uploaded MPEG-TS chunk."""

    filename: str
    duration_seconds: float
    created_at: float
    payload: bytes = b""

    @property
    def size(self) -> int:
        return len(self.payload)


class SegmentBuffer:
    """
    FIFO window over the most recent ``window_size`` segments.

    Filenames are numbered by the stream-wide count of segments ever
    appended, so they stay stable while the window slides.
    """

    # Players keep polling after stop to pick up the end-of-list marker.
    serves_after_stop = True

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.window_size = window_size
        self.total_appended = 0
        self._segments: deque[Segment] = deque(maxlen=window_size)

    @property
    def segments(self) -> tuple[Segment, ...]:
        """Retained segments, oldest first."""
        return tuple(self._segments)

    @property
    def media_sequence(self) -> int:
        """Stream-wide index of the oldest retained segment."""
        return max(0, self.total_appended - self.window_size)

    def __len__(self) -> int:
        return len(self._segments)

    def append_segment(
        self,
        payload: bytes,
        duration_seconds: float,
        created_at: float,
    ) -> Segment:
        """Append a segment, evicting the oldest once the window is full."""
        segment = Segment(
            filename=f"segment{self.total_appended}.ts",
            duration_seconds=duration_seconds,
            created_at=created_at,
            payload=payload,
        )
        self._segments.append(segment)
        self.total_appended += 1
        return segment

    def get_segment(self, filename: str) -> bytes:
        """
        Return the payload of a segment still inside the window.

        Raises:
            SegmentNotFoundError: If the segment was evicted or never existed
        """
        for segment in self._segments:
            if segment.filename == filename:
                return segment.payload
        raise SegmentNotFoundError(filename)

    def generate_playlist(self, is_active: bool) -> str:
        """Render the HLS playlist for the current window."""
        return render_playlist(
            self.segments,
            media_sequence=self.media_sequence,
            is_active=is_active,
        )
