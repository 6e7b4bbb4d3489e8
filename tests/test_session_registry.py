"""
Session Registry Tests
======================

Lifecycle, viewer accounting, liveness checks and sweep-based eviction.
"""

import asyncio

import pytest

from app.core.errors import SessionInactiveError, SessionNotFoundError
from app.services.session_registry import SessionRegistry
from app.services.stream_buffers import FrameBuffer, SegmentBuffer


def make_registry(clock, buffer_factory=FrameBuffer, grace=30, idle_ttl=1800):
    return SessionRegistry(
        "video",
        buffer_factory,
        grace_period_seconds=grace,
        idle_ttl_seconds=idle_ttl,
        sweep_interval_seconds=60,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_start_creates_active_session(fake_clock):
    registry = make_registry(fake_clock)

    session = await registry.start("cam-1")

    assert session.is_active
    assert session.created_at == fake_clock.now
    assert session.viewer_count == 0
    assert await registry.get("cam-1") is session


@pytest.mark.asyncio
async def test_start_returns_existing_active_session(fake_clock):
    registry = make_registry(fake_clock)
    first = await registry.start("cam-1")
    await registry.join("cam-1", "viewer-a")

    again = await registry.start("cam-1")

    assert again is first
    assert again.viewer_count == 1


@pytest.mark.asyncio
async def test_get_never_creates(fake_clock):
    registry = make_registry(fake_clock)

    assert await registry.get("missing") is None
    assert len(registry) == 0
    with pytest.raises(SessionNotFoundError):
        await registry.require("missing")


@pytest.mark.asyncio
async def test_stop_unknown_is_noop(fake_clock):
    registry = make_registry(fake_clock)

    assert await registry.stop("missing") is None


@pytest.mark.asyncio
async def test_join_and_leave_restore_viewer_count(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("cam-1")

    assert await registry.join("cam-1", "viewer-a") == 1
    assert await registry.join("cam-1", "viewer-b") == 2
    assert await registry.leave("cam-1", "viewer-a") == 1
    assert await registry.leave("cam-1", "viewer-b") == 0


@pytest.mark.asyncio
async def test_joining_twice_counts_once(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("cam-1")

    await registry.join("cam-1", "viewer-a")
    assert await registry.join("cam-1", "viewer-a") == 1


@pytest.mark.asyncio
async def test_leave_without_join_is_noop(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("cam-1")
    await registry.join("cam-1", "viewer-a")

    assert await registry.leave("cam-1", "stranger") == 1
    assert await registry.leave("missing", "viewer-a") == 0


@pytest.mark.asyncio
async def test_join_unknown_or_stopped_session_fails(fake_clock):
    registry = make_registry(fake_clock)

    with pytest.raises(SessionNotFoundError):
        await registry.join("missing", "viewer-a")

    await registry.start("cam-1")
    await registry.stop("cam-1")
    with pytest.raises(SessionInactiveError):
        await registry.join("cam-1", "viewer-a")


@pytest.mark.asyncio
async def test_write_rejected_after_stop(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("cam-1")
    await registry.write("cam-1", lambda s: s.buffer.update_frame(b"\xff\xd8"))

    await registry.stop("cam-1")

    with pytest.raises(SessionInactiveError):
        await registry.write("cam-1", lambda s: s.buffer.update_frame(b"\xff\xd9"))


@pytest.mark.asyncio
async def test_write_with_create_starts_session(fake_clock):
    registry = make_registry(fake_clock, buffer_factory=lambda: SegmentBuffer(10))

    await registry.write(
        "ride-1",
        lambda s: s.buffer.append_segment(b"ts", 10.0, created_at=fake_clock.now),
        create=True,
    )

    session = await registry.require("ride-1")
    assert session.is_active
    assert len(session.buffer) == 1


@pytest.mark.asyncio
async def test_write_updates_last_activity(fake_clock):
    registry = make_registry(fake_clock)
    session = await registry.start("cam-1")

    fake_clock.advance(12)
    await registry.write("cam-1", lambda s: s.buffer.update_frame(b"frame"))

    assert session.last_activity == fake_clock.now


@pytest.mark.asyncio
async def test_read_policy_follows_buffer_kind(fake_clock):
    frames = make_registry(fake_clock)
    segments = make_registry(fake_clock, buffer_factory=lambda: SegmentBuffer(10))

    await frames.start("k")
    await segments.start("k")
    await frames.stop("k")
    await segments.stop("k")

    with pytest.raises(SessionInactiveError):
        await frames.read("k", lambda s: s.buffer.frame_count)
    assert await segments.read("k", lambda s: s.buffer.generate_playlist(s.is_active))


@pytest.mark.asyncio
async def test_inspect_ignores_liveness(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("cam-1")
    await registry.stop("cam-1")

    assert await registry.inspect("cam-1", lambda s: s.is_active) is False


@pytest.mark.asyncio
async def test_list_active_excludes_stopped(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("a")
    await registry.start("b")
    await registry.stop("b")

    active = await registry.list_active()

    assert [s.key for s in active] == ["a"]


# -----------------------------------------------------------------------------
# Eviction
# -----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_stopped_session_evicted_after_grace(fake_clock):
    registry = make_registry(fake_clock, grace=30)
    await registry.start("cam-1")
    await registry.stop("cam-1")

    fake_clock.advance(29)
    assert await registry.sweep() == []
    assert await registry.get("cam-1") is not None

    fake_clock.advance(1)
    assert await registry.sweep() == ["cam-1"]
    assert await registry.get("cam-1") is None


@pytest.mark.asyncio
async def test_restart_during_grace_cancels_eviction(fake_clock):
    registry = make_registry(fake_clock, grace=30)
    first = await registry.start("cam-1")
    await registry.stop("cam-1")

    fake_clock.advance(10)
    restarted = await registry.start("cam-1")
    fake_clock.advance(25)

    assert restarted is not first
    assert restarted.is_active
    assert await registry.sweep() == []
    assert await registry.get("cam-1") is restarted


@pytest.mark.asyncio
async def test_idle_active_session_evicted(fake_clock):
    registry = make_registry(fake_clock, idle_ttl=1800)
    await registry.start("quiet")
    await registry.start("busy")

    fake_clock.advance(1000)
    await registry.write("busy", lambda s: s.buffer.update_frame(b"frame"))
    fake_clock.advance(801)

    assert await registry.sweep() == ["quiet"]
    assert await registry.get("busy") is not None


@pytest.mark.asyncio
async def test_sweeper_task_starts_and_stops(fake_clock):
    registry = make_registry(fake_clock)

    registry.start_sweeper()
    registry.start_sweeper()
    task = registry._sweep_task

    assert task is not None and not task.done()

    await registry.stop_sweeper()
    await asyncio.sleep(0)

    assert task.cancelled()
    assert registry._sweep_task is None


@pytest.mark.asyncio
async def test_concurrent_writes_are_serialized(fake_clock):
    registry = make_registry(fake_clock)
    await registry.start("cam-1")

    await asyncio.gather(*(
        registry.write("cam-1", lambda s: s.buffer.update_frame(b"x" * 10))
        for _ in range(50)
    ))

    session = await registry.require("cam-1")
    assert session.buffer.frame_count == 50
    assert session.buffer.total_bytes_received == 500
