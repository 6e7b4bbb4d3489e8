"""
Video Stream API Tests
======================

Frame forwarding, HLS live video and realtime presence endpoints.
"""

import pytest
from httpx import AsyncClient

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64 + b"\xff\xd9"


# -----------------------------------------------------------------------------
# Frame forwarding
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_frame_round_trip(client: AsyncClient):
    """Start, upload one frame, read it back byte-for-byte."""
    start = await client.post("/api/v1/video/cam-1/start")
    assert start.status_code == 200
    assert start.json()["streamUrl"] == "/api/v1/video/cam-1/frame"

    upload = await client.post("/api/v1/video/cam-1/frame", content=JPEG)
    assert upload.status_code == 200
    assert upload.json()["frameNumber"] == 1
    assert upload.json()["frameSize"] == len(JPEG)

    frame = await client.get("/api/v1/video/cam-1/frame")
    assert frame.status_code == 200
    assert frame.content == JPEG
    assert frame.headers["content-type"] == "image/jpeg"
    assert "no-cache" in frame.headers["cache-control"]


@pytest.mark.asyncio
async def test_frame_upload_requires_started_stream(client: AsyncClient):
    response = await client.post("/api/v1/video/unknown/frame", content=JPEG)

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "STREAM_001"


@pytest.mark.asyncio
async def test_frame_read_before_upload(client: AsyncClient):
    await client.post("/api/v1/video/cam-1/start")

    response = await client.get("/api/v1/video/cam-1/frame")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "STREAM_003"


@pytest.mark.asyncio
async def test_empty_frame_rejected(client: AsyncClient):
    await client.post("/api/v1/video/cam-1/start")

    response = await client.post("/api/v1/video/cam-1/frame", content=b"")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "STREAM_006"


@pytest.mark.asyncio
async def test_frame_reads_and_writes_fail_after_stop(client: AsyncClient):
    await client.post("/api/v1/video/cam-1/start")
    await client.post("/api/v1/video/cam-1/frame", content=JPEG)

    stop = await client.post("/api/v1/video/cam-1/stop")
    assert stop.json()["status"] == "stopped"

    read = await client.get("/api/v1/video/cam-1/frame")
    write = await client.post("/api/v1/video/cam-1/frame", content=JPEG)

    assert read.status_code == 409
    assert read.json()["error"]["code"] == "STREAM_002"
    assert write.status_code == 409


@pytest.mark.asyncio
async def test_stop_unknown_stream_is_acknowledged(client: AsyncClient):
    response = await client.post("/api/v1/video/nobody/stop")

    assert response.status_code == 200
    assert response.json()["viewerCount"] == 0


@pytest.mark.asyncio
async def test_frame_viewers_join_and_leave(client: AsyncClient):
    await client.post("/api/v1/video/cam-1/start")

    joined = await client.post("/api/v1/video/cam-1/join", params={"viewerId": "v1"})
    generated = await client.post("/api/v1/video/cam-1/join")

    assert joined.json()["viewerCount"] == 1
    assert generated.json()["viewerCount"] == 2
    assert generated.json()["viewerId"]

    left = await client.post("/api/v1/video/cam-1/leave", params={"viewerId": "v1"})
    again = await client.post("/api/v1/video/cam-1/leave", params={"viewerId": "v1"})

    assert left.json()["viewerCount"] == 1
    assert again.json()["viewerCount"] == 1


@pytest.mark.asyncio
async def test_leave_requires_viewer_id(client: AsyncClient):
    await client.post("/api/v1/video/cam-1/start")

    response = await client.post("/api/v1/video/cam-1/leave")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_join_unknown_stream(client: AsyncClient):
    response = await client.post("/api/v1/video/nobody/join")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stream_info(client: AsyncClient):
    unknown = await client.get("/api/v1/video/nobody/info")
    assert unknown.status_code == 200
    assert unknown.json()["isActive"] is False

    await client.post("/api/v1/video/cam-1/start")
    info = await client.get("/api/v1/video/cam-1/info")

    assert info.json()["isActive"] is True
    assert info.json()["viewerCount"] == 0


@pytest.mark.asyncio
async def test_stream_stats(client: AsyncClient, fake_clock):
    await client.post("/api/v1/video/cam-1/start")
    await client.post("/api/v1/video/cam-1/frame", content=b"x" * 100)
    await client.post("/api/v1/video/cam-1/frame", content=b"x" * 300)
    fake_clock.advance(4)

    stats = (await client.get("/api/v1/video/cam-1/stats")).json()

    assert stats["frameCount"] == 2
    assert stats["bytesReceived"] == 400
    assert stats["avgFrameSize"] == 200
    assert stats["duration"] == 4
    assert stats["bytesPerSecond"] == 100
    assert stats["hasLatestFrame"] is True


@pytest.mark.asyncio
async def test_stream_stats_unknown(client: AsyncClient):
    response = await client.get("/api/v1/video/nobody/stats")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_active_frame_streams(client: AsyncClient):
    await client.post("/api/v1/video/a/start")
    await client.post("/api/v1/video/b/start")
    await client.post("/api/v1/video/b/stop")

    data = (await client.get("/api/v1/video/active")).json()

    assert data["totalCount"] == 1
    assert data["activeStreams"][0]["streamId"] == "a"


@pytest.mark.asyncio
async def test_stopped_frame_stream_evicted_after_grace(client: AsyncClient, hub, fake_clock):
    await client.post("/api/v1/video/cam-1/start")
    await client.post("/api/v1/video/cam-1/stop")

    fake_clock.advance(hub.settings.FRAME_STREAM_GRACE_SECONDS)
    await hub.frames.sweep()

    response = await client.get("/api/v1/video/cam-1/frame")
    assert response.status_code == 404


# -----------------------------------------------------------------------------
# HLS live video
# -----------------------------------------------------------------------------

async def upload_segment(client, ride_id, payload=b"\x47" * 188, duration=None):
    data = {"duration": str(duration)} if duration is not None else {}
    return await client.post(
        f"/api/v1/video/live/{ride_id}/upload",
        files={"segment": ("chunk.ts", payload, "video/mp2t")},
        data=data,
    )


@pytest.mark.asyncio
async def test_segment_upload_creates_stream(client: AsyncClient):
    response = await upload_segment(client, "ride-1", duration=6.0)

    assert response.status_code == 200
    body = response.json()
    assert body["filename"] == "segment0.ts"
    assert body["segmentNumber"] == 0
    assert body["size"] == 188
    assert body["duration"] == 6.0

    status = (await client.get("/api/v1/video/live/ride-1/status")).json()
    assert status["isLive"] is True
    assert status["segmentCount"] == 1


@pytest.mark.asyncio
async def test_segment_number_matches_filename(client: AsyncClient):
    for i in range(3):
        body = (await upload_segment(client, "ride-1")).json()

        assert body["segmentNumber"] == i
        assert body["filename"] == f"segment{body['segmentNumber']}.ts"


@pytest.mark.asyncio
async def test_segment_duration_defaults(client: AsyncClient):
    response = await upload_segment(client, "ride-1")

    assert response.json()["duration"] == 10.0


@pytest.mark.asyncio
async def test_sliding_window_over_twelve_segments(client: AsyncClient):
    await client.post("/api/v1/video/live/ride-1/start")
    for i in range(12):
        await upload_segment(client, "ride-1", payload=f"segment-{i}".encode())

    playlist = await client.get("/api/v1/video/live/ride-1/stream.m3u8")
    text = playlist.text

    assert playlist.headers["content-type"].startswith("application/vnd.apple.mpegurl")
    assert playlist.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert "#EXT-X-MEDIA-SEQUENCE:2\n" in text
    assert [line for line in text.splitlines() if line.startswith("segment/")] == [
        f"segment/segment{i}.ts" for i in range(2, 12)
    ]

    evicted = await client.get("/api/v1/video/live/ride-1/segment/segment1.ts")
    kept = await client.get("/api/v1/video/live/ride-1/segment/segment11.ts")

    assert evicted.status_code == 404
    assert evicted.json()["error"]["code"] == "STREAM_004"
    assert kept.status_code == 200
    assert kept.content == b"segment-11"
    assert kept.headers["content-type"] == "video/mp2t"
    assert kept.headers["cache-control"] == "max-age=10"


@pytest.mark.asyncio
async def test_playlist_after_stop_carries_endlist(client: AsyncClient):
    await upload_segment(client, "ride-1")
    await client.post("/api/v1/video/live/ride-1/stop")

    playlist = await client.get("/api/v1/video/live/ride-1/stream.m3u8")
    segment = await client.get("/api/v1/video/live/ride-1/segment/segment0.ts")
    upload = await upload_segment(client, "ride-1")

    assert playlist.status_code == 200
    assert playlist.text.endswith("#EXT-X-ENDLIST\n")
    assert segment.status_code == 200
    assert upload.status_code == 409


@pytest.mark.asyncio
async def test_playlist_unknown_ride(client: AsyncClient):
    response = await client.get("/api/v1/video/live/nobody/stream.m3u8")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_restart_resets_segments(client: AsyncClient):
    await upload_segment(client, "ride-1")
    await client.post("/api/v1/video/live/ride-1/stop")

    await client.post("/api/v1/video/live/ride-1/start")
    status = (await client.get("/api/v1/video/live/ride-1/status")).json()

    assert status["isLive"] is True
    assert status["segmentCount"] == 0


@pytest.mark.asyncio
async def test_empty_segment_rejected(client: AsyncClient):
    response = await upload_segment(client, "ride-1", payload=b"")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_live_status_unknown_ride(client: AsyncClient):
    data = (await client.get("/api/v1/video/live/nobody/status")).json()

    assert data == {
        "rideId": "nobody",
        "isLive": False,
        "segmentCount": 0,
        "mediaSequence": 0,
        "lastUpdate": 0,
        "viewerCount": 0,
        "streamUrl": None,
    }


@pytest.mark.asyncio
async def test_live_viewers(client: AsyncClient):
    await client.post("/api/v1/video/live/ride-1/start")

    joined = await client.post("/api/v1/video/live/ride-1/join", params={"viewerId": "rider"})
    assert joined.json()["viewerCount"] == 1
    assert joined.json()["streamUrl"] == "/api/v1/video/live/ride-1/stream.m3u8"

    left = await client.post("/api/v1/video/live/ride-1/leave", params={"viewerId": "rider"})
    assert left.json()["viewerCount"] == 0


@pytest.mark.asyncio
async def test_list_active_live_streams(client: AsyncClient):
    await upload_segment(client, "ride-1")

    data = (await client.get("/api/v1/video/live/active")).json()

    assert data["totalCount"] == 1
    assert data["activeStreams"][0]["rideId"] == "ride-1"
    assert data["activeStreams"][0]["segmentCount"] == 1


@pytest.mark.asyncio
async def test_signaling_acknowledged(client: AsyncClient):
    ok = await client.post("/api/v1/video/live/ride-1/signal", json={"type": "offer", "sdp": "v=0"})
    bad = await client.post("/api/v1/video/live/ride-1/signal", json=["not", "an", "object"])

    assert ok.status_code == 200
    assert ok.json() == {"success": True, "rideId": "ride-1", "type": "signaling_processed"}
    assert bad.status_code == 400


# -----------------------------------------------------------------------------
# Realtime presence
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_realtime_lifecycle(client: AsyncClient):
    await client.post("/api/v1/stream/ride-1/start")
    await client.post("/api/v1/stream/ride-1/join", params={"viewerId": "v1"})

    live = await client.get("/api/v1/stream/ride-1/live")
    assert live.status_code == 200
    assert live.json()["viewerCount"] == 1

    await client.post("/api/v1/stream/ride-1/stop")

    status = await client.get("/api/v1/stream/ride-1/status")
    live = await client.get("/api/v1/stream/ride-1/live")

    assert status.json()["isActive"] is False
    assert live.status_code == 409


@pytest.mark.asyncio
async def test_realtime_live_unknown(client: AsyncClient):
    response = await client.get("/api/v1/stream/nobody/live")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_realtime_active_list(client: AsyncClient):
    await client.post("/api/v1/stream/ride-1/start")

    data = (await client.get("/api/v1/stream/active")).json()

    assert data["totalCount"] == 1
    assert data["activeStreams"][0]["rideId"] == "ride-1"
