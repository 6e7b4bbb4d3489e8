"""
HLS Playlist Renderer
=====================

Renders the live media playlist served at ``stream.m3u8`` from the
segments currently held in a session's sliding window.

The output is byte-for-byte deterministic for the same inputs; players
and caches rely on it.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from app.services.stream_buffers import Segment

PLAYLIST_VERSION = 3
DEFAULT_TARGET_DURATION = 10.0
SEGMENT_URI_PREFIX = "segment/"


def render_playlist(
    segments: Sequence[Segment],
    *,
    media_sequence: int,
    is_active: bool,
) -> str:
    """
    Render an extended M3U live playlist.

    Args:
        segments: Retained segments, oldest first
        media_sequence: Stream-wide index of the first retained segment
        is_active: Whether the stream is still live; a stopped stream
            gets an ``#EXT-X-ENDLIST`` marker

    Returns:
        Playlist text, one tag or URI per ``\\n``-terminated line
    """
    target_duration = max(
        (segment.duration_seconds for segment in segments),
        default=DEFAULT_TARGET_DURATION,
    )

    lines = [
        "#EXTM3U",
        f"#EXT-X-VERSION:{PLAYLIST_VERSION}",
        f"#EXT-X-TARGETDURATION:{math.ceil(target_duration)}",
        f"#EXT-X-MEDIA-SEQUENCE:{max(0, media_sequence)}",
    ]

    for segment in segments:
        lines.append(f"#EXTINF:{segment.duration_seconds:.1f},")
        lines.append(f"{SEGMENT_URI_PREFIX}{segment.filename}")

    if not is_active:
        lines.append("#EXT-X-ENDLIST")

    return "\n".join(lines) + "\n"
