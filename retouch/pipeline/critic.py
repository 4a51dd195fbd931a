"""
Final Reviewer

Optional whole-image review of a finished variation against the original.
Scores are attached to the VariationResult for display and never change
whether the variation succeeded.
"""

import asyncio
import logging

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..schemas import CriticResult, CriticScores
from ..shared.prompts import build_critic_prompt
from .client import GeminiClient, get_gemini_client, extract_text, image_part
from .parsing import parse_json_response

logger = logging.getLogger(__name__)

CRITIC_WEIGHTS = {
    "identity_preservation": 0.35,
    "edit_accuracy": 0.25,
    "naturalness": 0.25,
    "technical_quality": 0.15,
}

PASS_SCORE = 75
RETRY_MIN_SCORE = 50
MIN_IDENTITY_FOR_PASS = 70
CRITICAL_SEVERITY = 7


def calculate_overall_score(scores: CriticScores) -> float:
    """Weighted overall score."""
    return round(sum(getattr(scores, name) * weight for name, weight in CRITIC_WEIGHTS.items()))


def determine_decision(critique: CriticResult) -> str:
    """Pass, retry or fail from scores and detected issues."""
    issues = critique.issues
    scores = critique.scores

    # Critical issues are an automatic fail
    for issue in (issues.face_distortion, issues.identity_drift):
        if issue.detected and issue.severity >= CRITICAL_SEVERITY:
            return "fail"

    if scores.overall >= PASS_SCORE:
        if scores.identity_preservation < MIN_IDENTITY_FOR_PASS:
            return "retry"
        return "pass"
    if scores.overall >= RETRY_MIN_SCORE:
        return "retry"
    return "fail"


class FinalReviewer:
    """Gemini before/after critique of a finished variation."""

    def __init__(self, client: GeminiClient | None = None, settings: Settings | None = None):
        self.client = client or get_gemini_client()
        self.settings = settings or get_settings()

    async def review(self, original: bytes, edited: bytes, applied: list[str]) -> CriticResult | None:
        """
        Review a finished variation.

        Args:
            original: Source image
            edited: Final variation image
            applied: Names of the edits that were applied

        Returns:
            CriticResult, or None if no review could be obtained
        """
        try:
            response = await self.client.generate(
                self.settings.critic_model,
                [build_critic_prompt(applied), image_part(original), image_part(edited)],
                stage="critique",
                timeout=self.settings.critique_timeout,
                temperature=0.3,
                top_p=0.8,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Final review timed out after {self.settings.critique_timeout}s")
            return None
        except Exception as e:
            logger.error(f"Error during final review: {e}")
            return None

        parsed = parse_json_response(extract_text(response))
        if not isinstance(parsed, dict):
            logger.warning("Failed to parse final review response")
            return None

        try:
            critique = CriticResult.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"Final review did not match schema ({e.error_count()} errors)")
            return None

        if not critique.scores.overall:
            critique.scores.overall = calculate_overall_score(critique.scores)
        critique.decision = determine_decision(critique)

        logger.info(
            f"Final review: {critique.decision} overall={critique.scores.overall:g} "
            f"identity={critique.scores.identity_preservation:g}"
        )
        return critique
