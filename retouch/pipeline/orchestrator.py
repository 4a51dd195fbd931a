"""
Pipeline Orchestrator

Analyzes the source image once, fans out K independent sequential pipelines,
turns each terminal PipelineRun into a public VariationResult and reports
aggregate progress while the slots run.
"""

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Iterable, Union

from ..config import Settings, get_settings
from ..metrics import record_variation
from ..schemas import (
    AnalysisResult,
    FixSelection,
    GenerationResult,
    PipelineStage,
    VariationResult,
)
from ..shared.prompts import VARIATION_PROFILES, VariationProfile, get_variation_profile
from .analyzer import AnalysisMemo, ImageAnalyzer
from .critic import FinalReviewer
from .editor import SingleEditApplier
from .plan import OrderedFixPlan, normalize_fix_selections
from .planner import plan_edits
from .progress import ProgressChannel, ProgressEmitter, ProgressSink, ProgressTracker
from .sequential import PipelineRun, SequentialPipeline
from .validator import StepValidator

logger = logging.getLogger(__name__)

# (image bytes, slot index) -> URL
UploadFn = Callable[[bytes, int], Union[str, Awaitable[str]]]
VariationCallback = Callable[[VariationResult], Union[None, Awaitable[None]]]


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


def style_label(plan: OrderedFixPlan) -> str:
    """Human-readable label for a variation, e.g. ``eyeContact+lighting``."""
    return "+".join(edit_type.value for edit_type in plan.edit_types) or "sequential"


class PipelineOrchestrator:
    """
    Runs K variation pipelines concurrently.

    Every slot runs to its own completion or failure; a failing slot never
    cancels or alters its siblings, and the caller always receives exactly K
    results.
    """

    def __init__(
        self,
        analyzer: ImageAnalyzer | None = None,
        applier: SingleEditApplier | None = None,
        validator: StepValidator | None = None,
        reviewer: FinalReviewer | None = None,
        settings: Settings | None = None,
        profiles: tuple[VariationProfile, ...] = VARIATION_PROFILES,
    ):
        self.settings = settings or get_settings()
        self.analyzer = analyzer or ImageAnalyzer(settings=self.settings)
        self.applier = applier or SingleEditApplier(settings=self.settings)
        self.validator = validator or StepValidator(settings=self.settings)
        if reviewer is None and self.settings.final_review_enabled:
            reviewer = FinalReviewer(settings=self.settings)
        self.reviewer = reviewer
        self.profiles = tuple(profiles)
        if not self.profiles:
            raise ValueError("At least one variation profile is required")

    def fallback_image_url(self, slot: int) -> str:
        return self.settings.fallback_image_url.format(seed=f"fallback-{slot}")

    def _fallback_result(self, slot: int, style: str, profile: str | None, attempts: int, error: str) -> VariationResult:
        return VariationResult(
            index=slot,
            style=style,
            success=False,
            image_url=self.fallback_image_url(slot),
            attempts=attempts,
            fallback=True,
            profile=profile,
            error=error,
        )

    async def _build_result(
        self,
        slot: int,
        run: PipelineRun,
        plan: OrderedFixPlan,
        image: bytes,
        upload_fn: UploadFn,
    ) -> VariationResult:
        style = style_label(plan)

        if not run.success or run.final_image is None:
            return self._fallback_result(slot, style, run.profile, run.attempts, run.error or "Pipeline failed")

        try:
            url = await _maybe_await(upload_fn(run.final_image, slot))
        except Exception as e:
            logger.error(f"[slot {slot}] Upload failed: {e}")
            return self._fallback_result(slot, style, run.profile, run.attempts, f"Upload failed: {e}")

        scores = None
        if self.reviewer is not None and run.steps:
            critique = await self.reviewer.review(image, run.final_image, [s.edit_type.value for s in run.steps])
            if critique is not None:
                scores = critique.scores

        return VariationResult(
            index=slot,
            style=style,
            success=True,
            image_url=url,
            attempts=run.attempts,
            fallback=False,
            profile=run.profile,
            scores=scores,
        )

    async def _run_slot(
        self,
        slot: int,
        image: bytes,
        analysis: AnalysisResult,
        plan: OrderedFixPlan,
        emitter: ProgressEmitter,
        tracker: ProgressTracker,
        upload_fn: UploadFn,
        on_variation: VariationCallback | None,
    ) -> VariationResult:
        profile = get_variation_profile(slot, self.profiles)
        pipeline = SequentialPipeline(
            slot=slot,
            plan=plan,
            analysis=analysis,
            profile=profile,
            applier=self.applier,
            validator=self.validator,
            settings=self.settings,
            on_transition=lambda s, stage, index: emitter.emit(tracker.transition(s, stage, index)),
        )

        try:
            run = await pipeline.run(image)
            result = await self._build_result(slot, run, plan, image, upload_fn)
        except Exception as e:
            # Contain unexpected errors to this slot
            logger.exception(f"[slot {slot}] Unexpected pipeline error")
            result = self._fallback_result(slot, style_label(plan), profile.id, 0, f"Pipeline error: {e}")

        record_variation(result.success, result.fallback)
        logger.info(f"[slot {slot}] Variation {'succeeded' if result.success else 'failed'} ({result.attempts} attempts)")

        if on_variation is not None:
            try:
                await _maybe_await(on_variation(result))
            except Exception as e:
                logger.warning(f"[slot {slot}] Variation callback failed: {e}")

        return result

    async def _run_all(
        self,
        image: bytes,
        analysis: AnalysisResult,
        plan: OrderedFixPlan,
        num_variations: int,
        emitter: ProgressEmitter,
        tracker: ProgressTracker,
        upload_fn: UploadFn,
        on_variation: VariationCallback | None,
    ) -> list[VariationResult]:
        logger.info(f"Launching {num_variations} pipelines with {len(plan)} steps each: {list(plan.edit_types)}")
        return list(await asyncio.gather(*(
            self._run_slot(slot, image, analysis, plan, emitter, tracker, upload_fn, on_variation)
            for slot in range(num_variations)
        )))

    async def run(
        self,
        image: bytes,
        analysis: AnalysisResult,
        fix_selections: Iterable[FixSelection] | None,
        num_variations: int,
        progress_sink: ProgressSink | None,
        upload_fn: UploadFn,
        on_variation: VariationCallback | None = None,
    ) -> list[VariationResult]:
        """
        Run K variation pipelines against an already analyzed image.

        Args:
            image: Source image bytes
            analysis: Analysis shared read-only by every slot
            fix_selections: Requested fixes, normalized into canonical order
            num_variations: Number of slots K
            progress_sink: ProgressChannel or callable receiving snapshots
            upload_fn: Persists a successful final image and returns its URL
            on_variation: Called with each VariationResult as it is ready

        Returns:
            Exactly ``num_variations`` results, ordered by slot
        """
        if num_variations < 1:
            raise ValueError("num_variations must be at least 1")

        plan = normalize_fix_selections(fix_selections)
        tracker = ProgressTracker(num_variations, len(plan), self.settings)
        emitter = ProgressEmitter(progress_sink)
        try:
            return await self._run_all(image, analysis, plan, num_variations, emitter, tracker, upload_fn, on_variation)
        finally:
            await emitter.drain()

    async def generate(
        self,
        image: bytes,
        fix_selections: Iterable[FixSelection] | None = None,
        *,
        upload_fn: UploadFn,
        num_variations: int | None = None,
        analysis_override: AnalysisResult | None = None,
        progress_sink: ProgressSink | None = None,
        on_variation: VariationCallback | None = None,
        memo: AnalysisMemo | None = None,
    ) -> GenerationResult:
        """
        Full request: analyze once, optionally plan, run K pipelines.

        A ProgressChannel passed as ``progress_sink`` is closed once the final
        ``complete`` or ``failed`` snapshot has been published.

        Raises:
            ValueError: On invalid fix selections or variation count
        """
        started = time.time()
        if num_variations is None:
            num_variations = self.settings.parallel_pipelines
        emitter = ProgressEmitter(progress_sink)

        try:
            if num_variations < 1:
                raise ValueError("num_variations must be at least 1")
            plan = normalize_fix_selections(fix_selections)
            tracker = ProgressTracker(num_variations, len(plan), self.settings, started_at=started)

            emitter.emit(tracker.snapshot(PipelineStage.ANALYZING, "Analyzing image..."))
            memo = memo if memo is not None else AnalysisMemo()
            if analysis_override is not None:
                analysis = analysis_override
                memo.put(image, analysis)
                logger.info("Using provided analysis, skipping analyzer")
            else:
                analysis = await memo.get_or_analyze(image, self.analyzer)
            emitter.emit(tracker.snapshot(PipelineStage.ANALYZING, "Analysis complete", stage_progress=100))

            edit_plan = None
            if self.settings.planner_enabled:
                emitter.emit(tracker.snapshot(PipelineStage.PLANNING, "Planning edits..."))
                edit_plan = plan_edits(analysis, plan)
                emitter.emit(tracker.snapshot(PipelineStage.PLANNING, "Plan ready", stage_progress=100))

            variations = await self._run_all(
                image, analysis, plan, num_variations, emitter, tracker, upload_fn, on_variation
            )

            succeeded = sum(1 for v in variations if v.success)
            success = succeeded > 0
            if success:
                final = tracker.snapshot(
                    PipelineStage.COMPLETE,
                    f"Generated {succeeded}/{num_variations} variations",
                    stage_progress=100,
                )
            else:
                final = tracker.snapshot(PipelineStage.FAILED, "All variations failed", stage_progress=100)
            emitter.emit(final)

            total_time_ms = int((time.time() - started) * 1000)
            logger.info(f"Generation finished: {succeeded}/{num_variations} succeeded in {total_time_ms}ms")
            return GenerationResult(
                success=success,
                variations=variations,
                analysis=analysis,
                plan=edit_plan,
                total_time_ms=total_time_ms,
            )
        finally:
            await emitter.drain()
            if isinstance(progress_sink, ProgressChannel):
                progress_sink.close()
