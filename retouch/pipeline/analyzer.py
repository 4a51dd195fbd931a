"""
Image Analyzer

Inspects the source portrait once per request and returns a structured
AnalysisResult. Fails closed: any error yields a conservative fallback
analysis instead of an exception, because every later stage needs one.
"""

import asyncio
import hashlib
import logging

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..metrics import record_analysis_fallback
from ..schemas import (
    AnalysisResult,
    CompositionAnalysis,
    FaceAnalysis,
    IssueDetection,
    IssuesDetected,
    LightingAnalysis,
    PoseAnalysis,
)
from ..shared.prompts import build_analyzer_prompt
from .client import GeminiClient, get_gemini_client, extract_text, image_part
from .parsing import parse_json_response

logger = logging.getLogger(__name__)

FALLBACK_QUALITY = 60
FALLBACK_SEVERITY = 3


def create_fallback_analysis() -> AnalysisResult:
    """Conservative analysis used when the real one cannot be produced."""
    unknown = IssueDetection(
        present=True,
        severity=FALLBACK_SEVERITY,
        description="Unable to analyze - assuming fix needed",
    )
    return AnalysisResult(
        face=FaceAnalysis(),
        pose=PoseAnalysis(),
        lighting=LightingAnalysis(),
        composition=CompositionAnalysis(),
        issues_detected=IssuesDetected(
            eye_contact=unknown,
            posture=unknown,
            angle=unknown,
            lighting=unknown,
        ),
        overall_quality=FALLBACK_QUALITY,
        summary="Fallback analysis used due to processing error. Conservative edits recommended.",
    )


class ImageAnalyzer:
    """Single-call Gemini portrait analysis."""

    def __init__(self, client: GeminiClient | None = None, settings: Settings | None = None):
        self.client = client or get_gemini_client()
        self.settings = settings or get_settings()

    async def analyze(self, image: bytes) -> AnalysisResult:
        """
        Analyze a portrait photo.

        Args:
            image: Encoded source image

        Returns:
            Parsed AnalysisResult, or the fallback analysis on any failure
        """
        logger.info("Starting image analysis...")

        try:
            response = await self.client.generate(
                self.settings.analyzer_model,
                [image_part(image), build_analyzer_prompt()],
                stage="analyze",
                timeout=self.settings.analysis_timeout,
                temperature=0.3,
                top_p=0.8,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Analysis timed out after {self.settings.analysis_timeout}s, using fallback")
            return self._fallback()
        except Exception as e:
            logger.error(f"Error during analysis: {e}")
            return self._fallback()

        parsed = parse_json_response(extract_text(response))
        if not isinstance(parsed, dict):
            logger.warning("Failed to parse analysis response, using fallback")
            return self._fallback()

        try:
            analysis = AnalysisResult.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"Analysis response did not match schema ({e.error_count()} errors), using fallback")
            return self._fallback()

        logger.info(
            f"Analysis complete: face={analysis.face.detected} "
            f"gaze={analysis.face.gaze_direction} quality={analysis.overall_quality:g}"
        )
        return analysis

    @staticmethod
    def _fallback() -> AnalysisResult:
        record_analysis_fallback()
        return create_fallback_analysis()


class AnalysisMemo:
    """
    Request-scoped analysis cache keyed by the SHA-256 of the image bytes.

    Concurrent lookups of the same image share one in-flight analysis, so an
    image is analyzed at most once for the lifetime of the memo.
    """

    def __init__(self):
        self._entries: dict[str, asyncio.Future] = {}

    @staticmethod
    def key_for(image: bytes) -> str:
        return hashlib.sha256(image).hexdigest()

    def __contains__(self, image: bytes) -> bool:
        return self.key_for(image) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, image: bytes, analysis: AnalysisResult) -> None:
        future = asyncio.get_running_loop().create_future()
        future.set_result(analysis)
        self._entries[self.key_for(image)] = future

    async def get_or_analyze(self, image: bytes, analyzer: ImageAnalyzer) -> AnalysisResult:
        key = self.key_for(image)
        future = self._entries.get(key)
        if future is None:
            future = asyncio.ensure_future(analyzer.analyze(image))
            self._entries[key] = future
        return await asyncio.shield(future)
