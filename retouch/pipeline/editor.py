"""
Single Edit Applier

Applies one issue fix to an image with one Gemini image-editing call. Never
raises and never retries; retry policy belongs to the sequential pipeline.
"""

import asyncio
import logging
from dataclasses import dataclass

from ..config import Settings, get_settings
from ..schemas import AnalysisResult, EditType, FixTemplate
from ..shared.prompts import build_single_edit_prompt
from .client import GeminiClient, get_gemini_client, extract_image, extract_text, image_part

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditResult:
    """Outcome of one edit call: an image on success, an error otherwise."""
    success: bool
    image: bytes | None = None
    error: str | None = None

    @classmethod
    def ok(cls, image: bytes) -> "EditResult":
        return cls(success=True, image=image)

    @classmethod
    def failed(cls, error: str) -> "EditResult":
        return cls(success=False, error=error)


class SingleEditApplier:
    """Gemini image editor for one focused fix."""

    def __init__(self, client: GeminiClient | None = None, settings: Settings | None = None):
        self.client = client or get_gemini_client()
        self.settings = settings or get_settings()

    async def apply(
        self,
        image: bytes,
        edit_type: EditType,
        template: FixTemplate,
        analysis: AnalysisResult,
        attempt: int = 1,
        variation_hint: str | None = None,
        *,
        intensity_multiplier: float = 1.0,
        custom_prompt: str | None = None,
        retry_feedback: str | None = None,
    ) -> EditResult:
        """
        Apply a single fix.

        Args:
            image: Current carried image
            edit_type: Issue type to fix
            template: Edit recipe
            analysis: Source analysis, used as context in the prompt
            attempt: 1-based attempt number, lets retries ask for gentler edits
            variation_hint: Slot-specific phrasing
            intensity_multiplier: Slot-specific strength hint
            custom_prompt: Extra user instruction
            retry_feedback: Validator feedback from the previous attempt

        Returns:
            EditResult with the edited image, or a descriptive error
        """
        logger.info(f"Single edit {EditType(edit_type).value} (attempt {attempt})")

        prompt = build_single_edit_prompt(
            edit_type,
            template,
            analysis,
            custom_prompt=custom_prompt,
            attempt=attempt,
            max_attempts=self.settings.max_retries_per_step,
            variation_hint=variation_hint,
            intensity_multiplier=intensity_multiplier,
            retry_feedback=retry_feedback,
        )

        try:
            response = await self.client.generate(
                self.settings.editor_model,
                [image_part(image), prompt],
                stage="edit",
                timeout=self.settings.editing_timeout,
                temperature=0.7,
                top_p=0.95,
                top_k=64,
                response_modalities=["IMAGE", "TEXT"],
            )
        except asyncio.TimeoutError:
            logger.warning(f"Edit timed out after {self.settings.editing_timeout}s")
            return EditResult.failed(f"Edit timed out after {self.settings.editing_timeout:g}s")
        except Exception as e:
            logger.error(f"Error during single edit: {e}")
            return EditResult.failed(str(e) or e.__class__.__name__)

        edited = extract_image(response)
        if edited:
            logger.info("Single edit image generated")
            return EditResult.ok(edited)

        text = extract_text(response)
        if text:
            logger.warning(f"No image in response, got text: {text[:200]}")
            return EditResult.failed(f"Model did not return an image: {text[:200]}")
        return EditResult.failed("Model did not return an image")
