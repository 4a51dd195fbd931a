"""
Tests for progress snapshots and the drop-oldest progress channel.
"""

import asyncio

import pytest

from retouch.pipeline.progress import (
    ProgressChannel,
    ProgressEmitter,
    ProgressTracker,
    overall_progress,
)
from retouch.schemas import PipelineStage


@pytest.fixture
def tracker(settings):
    # 20s generation + 5s validation per step by default
    return ProgressTracker(total_variations=4, steps_per_variation=2, settings=settings, started_at=1000.0)


class TestOverallProgress:

    @pytest.mark.parametrize("stage,stage_progress,expected", [
        (PipelineStage.ANALYZING, 0, 5),
        (PipelineStage.ANALYZING, 100, 25),
        (PipelineStage.PLANNING, 100, 40),
        (PipelineStage.GENERATING, 50, 62),
        (PipelineStage.VALIDATING, 100, 95),
        (PipelineStage.COMPLETE, 0, 100),
        (PipelineStage.FAILED, 100, 100),
    ])
    def test_weighted_bands(self, stage, stage_progress, expected):
        assert overall_progress(stage, stage_progress) == expected


class TestProgressTracker:

    def test_request_level_snapshot(self, tracker, settings):
        snapshot = tracker.snapshot(PipelineStage.ANALYZING, "Analyzing image...")
        assert snapshot.total_variations == 4
        assert snapshot.started_at == 1000.0
        assert snapshot.overall_progress == 5
        assert snapshot.estimated_time_remaining == (
            settings.estimated_analyzing_seconds + settings.estimated_planning_seconds + 2 * 25
        )

    def test_stage_progress_is_share_of_slots(self, tracker):
        tracker.transition(0, PipelineStage.GENERATING, 0)
        snapshot = tracker.transition(1, PipelineStage.GENERATING, 0)
        assert snapshot.stage == PipelineStage.GENERATING
        assert snapshot.stage_progress == 50
        assert snapshot.current_variation == 2

    def test_validating_slots_count_as_having_generated(self, tracker):
        tracker.transition(0, PipelineStage.VALIDATING, 0)
        snapshot = tracker.transition(1, PipelineStage.GENERATING, 0)
        assert snapshot.stage_progress == 50

    def test_eta_follows_slowest_slot(self, tracker):
        tracker.transition(0, PipelineStage.GENERATING, 1)
        tracker.transition(1, PipelineStage.GENERATING, 1)
        tracker.transition(2, PipelineStage.GENERATING, 1)
        snapshot = tracker.transition(3, PipelineStage.VALIDATING, 0)
        # Slot 3: 5s validation plus one more 25s step
        assert snapshot.estimated_time_remaining == 30

    def test_finished_slots_reported_in_last_band(self, tracker):
        for slot in range(4):
            tracker.transition(slot, PipelineStage.GENERATING, 0)
        snapshot = tracker.transition(2, PipelineStage.FAILED, 2)
        assert snapshot.stage == PipelineStage.VALIDATING
        assert "failed" in snapshot.message
        assert tracker.finished == 1

    def test_terminal_snapshot_has_no_time_left(self, tracker):
        snapshot = tracker.snapshot(PipelineStage.COMPLETE, "done", stage_progress=100)
        assert snapshot.overall_progress == 100
        assert snapshot.estimated_time_remaining == 0


class TestProgressChannel:

    async def test_drains_in_order_until_closed(self, tracker):
        channel = ProgressChannel(maxsize=8)
        for message in ("a", "b", "c"):
            channel.publish(tracker.snapshot(PipelineStage.ANALYZING, message))
        channel.close()

        received = [snapshot.message async for snapshot in channel]
        assert received == ["a", "b", "c"]

    async def test_full_channel_drops_oldest(self, tracker):
        channel = ProgressChannel(maxsize=2)
        for message in ("a", "b", "c", "d"):
            channel.publish(tracker.snapshot(PipelineStage.ANALYZING, message))
        channel.close()

        received = [snapshot.message async for snapshot in channel]
        assert received == ["d"]
        assert channel.dropped == 3

    async def test_publish_after_close_ignored(self, tracker):
        channel = ProgressChannel(maxsize=4)
        channel.close()
        channel.publish(tracker.snapshot(PipelineStage.ANALYZING, "late"))
        assert await channel.get() is None

    async def test_consumer_waits_for_publisher(self, tracker):
        channel = ProgressChannel(maxsize=4)

        async def produce():
            await asyncio.sleep(0.01)
            channel.publish(tracker.snapshot(PipelineStage.ANALYZING, "x"))
            channel.close()

        producer = asyncio.create_task(produce())
        received = [snapshot.message async for snapshot in channel]
        await producer
        assert received == ["x"]


class TestProgressEmitter:

    async def test_sync_callback(self, tracker):
        received = []
        emitter = ProgressEmitter(received.append)
        emitter.emit(tracker.snapshot(PipelineStage.ANALYZING, "a"))
        assert [s.message for s in received] == ["a"]
        assert emitter.last.message == "a"

    async def test_async_callback_drained(self, tracker):
        received = []

        async def sink(snapshot):
            await asyncio.sleep(0)
            received.append(snapshot.message)

        emitter = ProgressEmitter(sink)
        emitter.emit(tracker.snapshot(PipelineStage.ANALYZING, "a"))
        await emitter.drain()
        assert received == ["a"]

    async def test_failing_sink_is_swallowed(self, tracker):
        def sink(snapshot):
            raise RuntimeError("websocket closed")

        emitter = ProgressEmitter(sink)
        emitter.emit(tracker.snapshot(PipelineStage.ANALYZING, "a"))
        await emitter.drain()
