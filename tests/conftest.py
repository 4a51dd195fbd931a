"""
Pytest configuration and fixtures for the retouch tests.

Gemini is never called: stages get a ScriptedClient that replays canned
responses, and orchestrator tests use in-memory applier/validator doubles.
"""

import asyncio
import io
import json
from types import SimpleNamespace

import pytest
from PIL import Image

from retouch.config import Settings
from retouch.pipeline.editor import EditResult
from retouch.schemas import AnalysisResult, EditType, FixSelection, StepValidation
from retouch.shared.templates import get_default_template


# ============================================================================
# Gemini response doubles
# ============================================================================

def text_response(text: str):
    """Response object shaped like a google-genai GenerateContentResponse with text."""
    part = SimpleNamespace(text=text, inline_data=None)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))], text=text)


def json_response(payload) -> SimpleNamespace:
    return text_response(json.dumps(payload))


def image_response(data: bytes, text: str | None = None):
    """Response carrying an inline image part."""
    parts = [SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type="image/png"))]
    if text:
        parts.append(SimpleNamespace(text=text, inline_data=None))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))], text=text)


class ScriptedClient:
    """
    Stand-in for GeminiClient.

    Replays ``script`` in order; an Exception instance (or class) is raised
    instead of returned. The last entry repeats once the script runs out.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    async def generate(self, model, contents, **kwargs):
        self.calls.append({"model": model, "contents": contents, **kwargs})
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException) or (isinstance(item, type) and issubclass(item, BaseException)):
            raise item
        return item


class FakeApplier:
    """
    In-memory SingleEditApplier.

    ``fail_when(slot_hint, edit_type, attempt)`` returning True makes that call
    fail. Successful edits append a marker to the image so each step's output
    is distinguishable.
    """

    def __init__(self, fail_when=None, delay: float = 0):
        self.fail_when = fail_when or (lambda hint, edit_type, attempt: False)
        self.delay = delay
        self.calls = []

    async def apply(self, image, edit_type, template, analysis, attempt=1, variation_hint=None, **kwargs):
        self.calls.append({
            "image": image,
            "edit_type": edit_type,
            "attempt": attempt,
            "variation_hint": variation_hint,
            **kwargs,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_when(variation_hint, edit_type, attempt):
            return EditResult.failed("Model did not return an image")
        return EditResult.ok(image + f"|{EditType(edit_type).value}".encode())


class FakeValidator:
    """In-memory StepValidator; ``proceed(before, after, edit_type)`` decides the verdict."""

    def __init__(self, proceed=None):
        self.proceed = proceed or (lambda before, after, edit_type: True)
        self.calls = []

    async def validate_step(self, before, after, edit_type, template):
        self.calls.append({"before": before, "after": after, "edit_type": edit_type})
        ok = self.proceed(before, after, edit_type)
        return StepValidation(
            identity_preserved=True,
            edit_applied=ok,
            naturalness=85 if ok else 40,
            can_proceed=ok,
            feedback=None if ok else "edit not applied",
        )


class FakeAnalyzer:
    def __init__(self, analysis):
        self.analysis = analysis
        self.calls = 0

    async def analyze(self, image):
        self.calls += 1
        return self.analysis


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        google_ai_api_key="test-key",
        max_retries_per_step=3,
        parallel_pipelines=3,
        min_naturalness_score=60,
        analysis_timeout=1,
        editing_timeout=1,
        validation_timeout=1,
        critique_timeout=1,
    )


@pytest.fixture
def png_bytes():
    """A tiny real PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 150, 120)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def analysis_payload():
    """Analyzer JSON as Gemini returns it (camelCase)."""
    return {
        "face": {"detected": True, "gazeDirection": "left", "gazeConfidence": 80, "expression": "neutral"},
        "pose": {"headTilt": 4, "shoulderLine": "left_high", "shoulderAngle": 3, "bodyPosture": "slouched"},
        "lighting": {
            "mainDirection": "left",
            "quality": "harsh",
            "colorTemp": "cool",
            "shadowIntensity": 70,
            "highlightClipping": False,
        },
        "composition": {"subjectPosition": "center", "headroom": "good", "cameraAngle": "below"},
        "issuesDetected": {
            "eyeContact": {"present": True, "severity": 4, "description": "Looking away from camera"},
            "posture": {"present": True, "severity": 2, "description": "Slight slouch"},
            "angle": {"present": False, "severity": 1, "description": ""},
            "lighting": {"present": True, "severity": 3, "description": "Harsh side light"},
        },
        "overallQuality": 72,
        "summary": "Decent portrait with averted gaze and harsh light.",
    }


@pytest.fixture
def sample_analysis(analysis_payload):
    return AnalysisResult.model_validate(analysis_payload)


@pytest.fixture
def eye_contact_only():
    return [FixSelection(edit_type=EditType.EYE_CONTACT, template=get_default_template(EditType.EYE_CONTACT))]


@pytest.fixture
def all_fixes():
    # Deliberately out of canonical order
    return [
        FixSelection(edit_type=edit_type, template=get_default_template(edit_type))
        for edit_type in (EditType.LIGHTING, EditType.EYE_CONTACT, EditType.ANGLE, EditType.POSTURE)
    ]
