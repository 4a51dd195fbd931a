"""
Progress Reporting

ProgressTracker turns pipeline transitions into PipelineProgress snapshots.
ProgressChannel is a bounded queue of snapshots the caller drains; when it is
full the oldest snapshot is dropped, since every snapshot fully replaces the
previous one. ProgressEmitter fans snapshots out to a channel or a plain
(sync or async) callback without ever blocking a pipeline.
"""

import asyncio
import inspect
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Union

from ..config import Settings, get_settings
from ..metrics import update_generation_progress
from ..schemas import PipelineProgress, PipelineStage

logger = logging.getLogger(__name__)

# Overall progress band (start, end) for each stage
STAGE_WEIGHTS: dict[PipelineStage, tuple[int, int]] = {
    PipelineStage.PENDING: (0, 0),
    PipelineStage.ANALYZING: (5, 25),
    PipelineStage.PLANNING: (25, 40),
    PipelineStage.GENERATING: (40, 85),
    PipelineStage.VALIDATING: (85, 95),
    PipelineStage.COMPLETE: (100, 100),
    PipelineStage.FAILED: (100, 100),
}

TERMINAL_STAGES = (PipelineStage.COMPLETE, PipelineStage.FAILED)

# Order in which a slot moves through the per-step stages
_SLOT_STAGE_RANK = {
    PipelineStage.PENDING: 0,
    PipelineStage.GENERATING: 1,
    PipelineStage.VALIDATING: 2,
    PipelineStage.COMPLETE: 3,
    PipelineStage.FAILED: 3,
}

_CLOSED = object()


def overall_progress(stage: PipelineStage, stage_progress: float) -> int:
    """Map progress within a stage onto the weighted overall band."""
    start, end = STAGE_WEIGHTS[stage]
    fraction = min(max(stage_progress, 0), 100) / 100
    return round(start + (end - start) * fraction)


class ProgressChannel:
    """
    Bounded, drop-oldest queue of progress snapshots.

    Usage:
        channel = ProgressChannel()
        ...  # hand channel to the orchestrator as its progress sink
        async for snapshot in channel:
            render(snapshot)
    """

    def __init__(self, maxsize: int | None = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or get_settings().progress_queue_size)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1

    def publish(self, snapshot: PipelineProgress) -> None:
        """Queue a snapshot without blocking. Ignored once the channel is closed."""
        if self._closed:
            return
        self._put(snapshot)

    def close(self) -> None:
        """Mark the end of the stream; iteration stops after the queued snapshots."""
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    async def get(self) -> PipelineProgress | None:
        """Next snapshot, or None once the channel is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    async def __aiter__(self) -> AsyncIterator[PipelineProgress]:
        while True:
            snapshot = await self.get()
            if snapshot is None:
                return
            yield snapshot


ProgressCallback = Callable[[PipelineProgress], Union[None, Awaitable[None]]]
ProgressSink = Union[ProgressChannel, ProgressCallback]


class ProgressEmitter:
    """
    Delivers snapshots to the caller's sink.

    Sink failures are logged and swallowed so a broken consumer can never fail
    a pipeline. Async callbacks run as tasks; ``drain`` waits for them.
    """

    def __init__(self, sink: ProgressSink | None = None):
        self.sink = sink
        self.last: PipelineProgress | None = None
        self._pending: set[asyncio.Task] = set()

    def emit(self, snapshot: PipelineProgress) -> None:
        self.last = snapshot
        update_generation_progress(snapshot.overall_progress, snapshot.estimated_time_remaining)

        if self.sink is None:
            return
        if isinstance(self.sink, ProgressChannel):
            self.sink.publish(snapshot)
            return

        try:
            result = self.sink(snapshot)
        except Exception as e:
            logger.warning(f"Progress sink failed: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Progress sink failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for in-flight async callbacks."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


class ProgressTracker:
    """
    Aggregates the state of K concurrently running slots.

    ``stage_progress`` is the share of slots that have reached the reported
    stage; the estimate of time remaining follows the slowest unfinished slot.
    """

    def __init__(
        self,
        total_variations: int,
        steps_per_variation: int,
        settings: Settings | None = None,
        started_at: float | None = None,
    ):
        self.total_variations = total_variations
        self.steps_per_variation = steps_per_variation
        self.settings = settings or get_settings()
        self.started_at = started_at if started_at is not None else time.time()
        self._slots: dict[int, tuple[PipelineStage, int]] = {
            slot: (PipelineStage.PENDING, 0) for slot in range(total_variations)
        }

    @property
    def _step_seconds(self) -> float:
        return self.settings.estimated_generating_seconds + self.settings.estimated_validating_seconds

    def _slot_remaining(self, stage: PipelineStage, step_index: int) -> float:
        remaining_steps = max(self.steps_per_variation - step_index, 0)
        if stage in TERMINAL_STAGES:
            return 0.0
        if stage == PipelineStage.VALIDATING:
            return self.settings.estimated_validating_seconds + (remaining_steps - 1) * self._step_seconds
        return remaining_steps * self._step_seconds

    def estimate_time_remaining(self, stage: PipelineStage) -> float:
        """Seconds left for the whole request, as seen from ``stage``."""
        generation = self.steps_per_variation * self._step_seconds
        if stage == PipelineStage.PENDING or stage == PipelineStage.ANALYZING:
            return (
                self.settings.estimated_analyzing_seconds
                + self.settings.estimated_planning_seconds
                + generation
            )
        if stage == PipelineStage.PLANNING:
            return self.settings.estimated_planning_seconds + generation
        if stage in TERMINAL_STAGES:
            return 0.0
        return max(
            (self._slot_remaining(s, i) for s, i in self._slots.values()),
            default=0.0,
        )

    def snapshot(
        self,
        stage: PipelineStage,
        message: str,
        stage_progress: float = 0,
        current_variation: int = 0,
    ) -> PipelineProgress:
        """Build a snapshot for a request-level stage."""
        stage_progress = min(max(stage_progress, 0), 100)
        return PipelineProgress(
            stage=stage,
            stage_progress=round(stage_progress),
            current_variation=current_variation,
            total_variations=self.total_variations,
            message=message,
            estimated_time_remaining=self.estimate_time_remaining(stage),
            started_at=self.started_at,
            overall_progress=overall_progress(stage, stage_progress),
        )

    def _share_reached(self, stage: PipelineStage) -> float:
        if not self.total_variations:
            return 100.0
        rank = _SLOT_STAGE_RANK[stage]
        reached = sum(1 for s, _ in self._slots.values() if _SLOT_STAGE_RANK[s] >= rank)
        return 100 * reached / self.total_variations

    def transition(self, slot: int, stage: PipelineStage, step_index: int) -> PipelineProgress:
        """Record that ``slot`` moved to ``stage`` at ``step_index`` and return the new snapshot."""
        self._slots[slot] = (stage, step_index)
        variation = slot + 1

        if stage in TERMINAL_STAGES:
            # Finished slots count towards the last band
            reported = PipelineStage.VALIDATING
            outcome = "finished" if stage == PipelineStage.COMPLETE else "failed"
            message = f"Variation {variation} {outcome}"
        elif stage == PipelineStage.VALIDATING:
            reported = stage
            message = f"Validating step {step_index + 1}/{self.steps_per_variation} for variation {variation}"
        else:
            reported = PipelineStage.GENERATING
            message = f"Applying step {step_index + 1}/{self.steps_per_variation} for variation {variation}"

        return self.snapshot(
            reported,
            message,
            stage_progress=self._share_reached(reported),
            current_variation=variation,
        )

    @property
    def finished(self) -> int:
        return sum(1 for s, _ in self._slots.values() if s in TERMINAL_STAGES)
