"""
Step Validator

Judges one applied edit by comparing the before and after images with a
separate Gemini call. Fails closed: when no verdict can be obtained the edit
is rejected, since a wrongly accepted step corrupts every later step of the
same pipeline.
"""

import asyncio
import logging

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..metrics import record_validation
from ..schemas import EditType, FixTemplate, StepValidation, StepValidationResponse
from ..shared.prompts import build_step_validation_prompt
from .client import GeminiClient, get_gemini_client, extract_text, image_part
from .parsing import parse_json_response

logger = logging.getLogger(__name__)


def indeterminate(reason: str) -> StepValidation:
    """Verdict for when the validator could not check the edit."""
    return StepValidation(
        identity_preserved=False,
        edit_applied=False,
        naturalness=0,
        can_proceed=False,
        feedback=reason,
    )


def decide_can_proceed(response: StepValidationResponse, min_naturalness: float) -> StepValidation:
    """
    Turn the model's raw answers into a verdict.

    ``can_proceed`` holds only when the person is the same, the edit was
    applied, naturalness reaches ``min_naturalness`` and there are no artifacts.
    """
    reasons = []
    if not response.same_person:
        reasons.append("identity not preserved")
    if not response.edit_applied:
        reasons.append("edit not applied")
    if response.naturalness_score < min_naturalness:
        reasons.append(f"naturalness {response.naturalness_score:g} below {min_naturalness:g}")
    if response.has_artifacts:
        reasons.append(f"artifacts: {response.artifact_description or 'unspecified'}")

    return StepValidation(
        identity_preserved=response.same_person,
        edit_applied=response.edit_applied,
        naturalness=response.naturalness_score,
        can_proceed=not reasons,
        feedback="; ".join(reasons) or None,
    )


class StepValidator:
    """Gemini before/after comparison for a single step."""

    def __init__(self, client: GeminiClient | None = None, settings: Settings | None = None):
        self.client = client or get_gemini_client()
        self.settings = settings or get_settings()

    async def validate_step(
        self,
        before: bytes,
        after: bytes,
        edit_type: EditType,
        template: FixTemplate,
    ) -> StepValidation:
        """
        Validate one edit.

        Args:
            before: Image the edit was applied to
            after: Edited image
            edit_type: Issue type that was supposedly fixed
            template: Recipe that was requested

        Returns:
            StepValidation; ``can_proceed`` is False on any parse or call failure
        """
        edit_name = EditType(edit_type).value
        logger.info(f"Validating step {edit_name}...")

        try:
            response = await self.client.generate(
                self.settings.validator_model,
                [build_step_validation_prompt(edit_type, template), image_part(before), image_part(after)],
                stage="validate",
                timeout=self.settings.validation_timeout,
                temperature=0.2,
                top_p=0.8,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Step validation timed out after {self.settings.validation_timeout}s")
            return self._reject(edit_name, "Step validation timed out")
        except Exception as e:
            logger.error(f"Error during step validation: {e}")
            return self._reject(edit_name, "Step validation failed")

        parsed = parse_json_response(extract_text(response))
        if not isinstance(parsed, dict):
            return self._reject(edit_name, "Failed to parse validation response")

        try:
            answers = StepValidationResponse.model_validate(parsed)
        except ValidationError:
            return self._reject(edit_name, "Validation response did not match schema")

        verdict = decide_can_proceed(answers, self.settings.min_naturalness_score)
        logger.info(
            f"Step {edit_name}: proceed={verdict.can_proceed} "
            f"naturalness={verdict.naturalness:g} feedback={verdict.feedback}"
        )
        return self._record(edit_name, verdict)

    @classmethod
    def _reject(cls, edit_name: str, reason: str) -> StepValidation:
        logger.warning(f"Step {edit_name} rejected without a verdict: {reason}")
        return cls._record(edit_name, indeterminate(reason))

    @staticmethod
    def _record(edit_name: str, verdict: StepValidation) -> StepValidation:
        record_validation(edit_name, verdict.can_proceed, verdict.naturalness)
        return verdict
