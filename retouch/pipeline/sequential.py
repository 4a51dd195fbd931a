"""
Sequential Pipeline

Drives one variation through the ordered fix plan. Each step edits the image
carried over from the previous validated step, is checked by the step
validator, and is retried up to ``max_retries_per_step`` times. A step that
runs out of attempts fails the whole variation; later steps are never tried.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..config import Settings, get_settings
from ..metrics import record_step, record_step_attempt
from ..schemas import AnalysisResult, EditType, FixTemplate, PipelineStage, StepValidation
from ..shared.prompts import VariationProfile
from .editor import SingleEditApplier
from .plan import OrderedFixPlan
from .validator import StepValidator

logger = logging.getLogger(__name__)

# (slot, stage, step index) -> None
TransitionCallback = Callable[[int, PipelineStage, int], None]


@dataclass
class SequentialStep:
    """Record of one issue's processing. Appended once, never edited."""
    edit_type: EditType
    template: FixTemplate
    attempts: int
    success: bool
    validation: StepValidation | None = None
    error: str | None = None


@dataclass
class PipelineRun:
    """Terminal state of one variation pipeline."""
    id: int
    steps: list[SequentialStep] = field(default_factory=list)
    final_image: bytes | None = None
    success: bool = False
    profile: str | None = None

    @property
    def attempts(self) -> int:
        return sum(step.attempts for step in self.steps)

    @property
    def error(self) -> str | None:
        failed = next((step for step in self.steps if not step.success), None)
        return failed.error if failed else None


class SequentialPipeline:
    """
    One variation: apply, validate, retry, advance.

    The pipeline owns its PipelineRun until ``run`` returns. Edit and
    validation failures arrive as values and never escape as exceptions.
    """

    def __init__(
        self,
        slot: int,
        plan: OrderedFixPlan,
        analysis: AnalysisResult,
        profile: VariationProfile,
        applier: SingleEditApplier,
        validator: StepValidator,
        settings: Settings | None = None,
        on_transition: TransitionCallback | None = None,
    ):
        self.slot = slot
        self.plan = plan
        self.analysis = analysis
        self.profile = profile
        self.applier = applier
        self.validator = validator
        self.settings = settings or get_settings()
        self.on_transition = on_transition

    def _notify(self, stage: PipelineStage, step_index: int):
        if self.on_transition is None:
            return
        try:
            self.on_transition(self.slot, stage, step_index)
        except Exception as e:
            logger.warning(f"[slot {self.slot}] Progress callback failed: {e}")

    async def run(self, image: bytes) -> PipelineRun:
        """
        Run every step of the plan against ``image``.

        Returns:
            PipelineRun; ``final_image`` is set only when every step succeeded
        """
        run = PipelineRun(id=self.slot, profile=self.profile.id)
        carried = image
        max_attempts = self.settings.max_retries_per_step

        for index, fix in enumerate(self.plan):
            edit_name = fix.edit_type.value
            attempts = 0
            validation: StepValidation | None = None
            last_error: str | None = None
            accepted: bytes | None = None

            while attempts < max_attempts and accepted is None:
                attempts += 1
                self._notify(PipelineStage.GENERATING, index)

                edit = await self.applier.apply(
                    carried,
                    fix.edit_type,
                    fix.template,
                    self.analysis,
                    attempt=attempts,
                    variation_hint=self.profile.prompt_hint,
                    intensity_multiplier=self.profile.intensity_multiplier,
                    custom_prompt=fix.custom_prompt,
                    retry_feedback=last_error,
                )
                if not edit.success or edit.image is None:
                    last_error = edit.error or "Edit failed"
                    record_step_attempt(edit_name, "no_image")
                    logger.warning(f"[slot {self.slot}] {edit_name} attempt {attempts} failed: {last_error}")
                    continue

                self._notify(PipelineStage.VALIDATING, index)
                validation = await self.validator.validate_step(carried, edit.image, fix.edit_type, fix.template)

                if validation.can_proceed:
                    accepted = edit.image
                    record_step_attempt(edit_name, "accepted")
                else:
                    last_error = validation.feedback or "Validation rejected the edit"
                    record_step_attempt(edit_name, "rejected")
                    logger.info(f"[slot {self.slot}] {edit_name} attempt {attempts} rejected: {last_error}")

            success = accepted is not None
            record_step(edit_name, success)

            if not success:
                run.steps.append(SequentialStep(
                    edit_type=fix.edit_type,
                    template=fix.template,
                    attempts=attempts,
                    success=False,
                    validation=validation,
                    error=f"{edit_name} failed after {attempts} attempt(s): {last_error}",
                ))
                logger.warning(f"[slot {self.slot}] Pipeline failed at {edit_name}")
                self._notify(PipelineStage.FAILED, len(self.plan))
                return run

            run.steps.append(SequentialStep(
                edit_type=fix.edit_type,
                template=fix.template,
                attempts=attempts,
                success=True,
                validation=validation,
            ))
            carried = accepted
            logger.info(f"[slot {self.slot}] {edit_name} accepted after {attempts} attempt(s)")

        run.final_image = carried
        run.success = True
        self._notify(PipelineStage.COMPLETE, len(self.plan))
        return run
