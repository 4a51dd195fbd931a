"""
Pydantic Schemas

Data model shared by the pipeline stages and the worker.

Models that are exchanged with Gemini or serialized for the web app use
camelCase aliases (``issuesDetected``, ``gazeDirection`` ...) while Python code
works with snake_case attribute names.
"""
from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    """Immutable camelCase model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class EditType(str, Enum):
    """Fixable visual issue types."""
    EYE_CONTACT = "eyeContact"
    POSTURE = "posture"
    ANGLE = "angle"
    LIGHTING = "lighting"


# ============================================================================
# Analysis Schemas
# ============================================================================

class FaceAnalysis(FrozenCamelModel):
    detected: bool = True
    gaze_direction: str = "away"  # camera, left, right, up, down, away
    gaze_confidence: float = 50
    expression: str = "neutral"

    @field_validator("gaze_confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return _clamp(v, 0, 100)


class PoseAnalysis(FrozenCamelModel):
    head_tilt: float = 0  # degrees, positive = right tilt
    shoulder_line: str = "level"  # level, left_high, right_high
    shoulder_angle: float = 0
    body_posture: str = "upright"  # upright, slouched, leaning_forward, leaning_back


class LightingAnalysis(FrozenCamelModel):
    main_direction: str = "front"  # front, left, right, above, below, behind
    quality: str = "medium"  # soft, medium, harsh
    color_temp: str = "neutral"  # warm, neutral, cool
    shadow_intensity: float = 50
    highlight_clipping: bool = False

    @field_validator("shadow_intensity")
    @classmethod
    def clamp_shadow(cls, v: float) -> float:
        return _clamp(v, 0, 100)


class CompositionAnalysis(FrozenCamelModel):
    subject_position: str = "center"  # center, left, right
    headroom: str = "good"  # too_much, good, too_little
    camera_angle: str = "eye_level"  # above, eye_level, below


class IssueDetection(FrozenCamelModel):
    """Whether one issue type is present, and how badly."""
    present: bool
    severity: int = Field(default=1, description="1 (minor) to 5 (severe)")
    description: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def clamp_severity(cls, v) -> int:
        try:
            severity = round(float(v))
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"severity must be a finite number, got {v!r}") from e
        return int(_clamp(severity, 1, 5))


class IssuesDetected(FrozenCamelModel):
    eye_contact: IssueDetection
    posture: IssueDetection
    angle: IssueDetection
    lighting: IssueDetection

    def for_type(self, edit_type: EditType) -> IssueDetection:
        return {
            EditType.EYE_CONTACT: self.eye_contact,
            EditType.POSTURE: self.posture,
            EditType.ANGLE: self.angle,
            EditType.LIGHTING: self.lighting,
        }[EditType(edit_type)]


class AnalysisResult(FrozenCamelModel):
    """Immutable description of the source image, computed once per request."""
    face: FaceAnalysis
    pose: PoseAnalysis
    lighting: LightingAnalysis
    composition: CompositionAnalysis
    issues_detected: IssuesDetected
    overall_quality: float = Field(description="0-100")
    summary: str = ""

    @field_validator("overall_quality")
    @classmethod
    def clamp_quality(cls, v: float) -> float:
        return _clamp(v, 0, 100)


# ============================================================================
# Fix Selection Schemas
# ============================================================================

class FixTemplate(FrozenCamelModel):
    """A named edit recipe for one issue type."""
    id: str
    edit_type: EditType
    label: str
    description: str
    prompt_modifier: str
    icon_key: str | None = None
    is_default: bool = False


class FixSelection(FrozenCamelModel):
    """One requested edit."""
    edit_type: EditType
    enabled: bool = True
    template: FixTemplate
    custom_prompt: str | None = None


class FixOptions(CamelModel):
    """Legacy boolean fix bag sent by older clients."""
    fix_eye_contact: bool = False
    improve_posture: bool = False
    adjust_angle: bool = False
    enhance_lighting: bool = False


# ============================================================================
# Validation Schemas
# ============================================================================

class StepValidation(FrozenCamelModel):
    """Verdict for one applied edit. ``can_proceed`` is the only gate."""
    identity_preserved: bool
    edit_applied: bool
    naturalness: float = Field(ge=0, le=100)
    can_proceed: bool
    feedback: str | None = None


class StepValidationResponse(CamelModel):
    """Raw JSON the step validator model is asked to return."""
    same_person: bool
    edit_applied: bool
    naturalness_score: float
    has_artifacts: bool
    artifact_description: str | None = None

    @field_validator("naturalness_score")
    @classmethod
    def clamp_naturalness(cls, v: float) -> float:
        return _clamp(v, 0, 100)


class CriticScores(CamelModel):
    identity_preservation: float = 0
    edit_accuracy: float = 0
    naturalness: float = 0
    technical_quality: float = 0
    overall: float = 0


class CriticIssue(CamelModel):
    detected: bool = False
    description: str = ""
    severity: float = 0


class CriticIssues(CamelModel):
    face_distortion: CriticIssue = Field(default_factory=CriticIssue)
    color_shift: CriticIssue = Field(default_factory=CriticIssue)
    artifacts: CriticIssue = Field(default_factory=CriticIssue)
    identity_drift: CriticIssue = Field(default_factory=CriticIssue)
    unnatural_edits: CriticIssue = Field(default_factory=CriticIssue)


class CriticResult(CamelModel):
    """Full before/after review of a finished variation."""
    scores: CriticScores
    issues: CriticIssues = Field(default_factory=CriticIssues)
    decision: Literal["pass", "retry", "fail"] = "retry"
    feedback: str = ""


# ============================================================================
# Planning Schemas
# ============================================================================

class EditStep(CamelModel):
    order: int
    edit_type: EditType
    target: str  # eyes, face, head, shoulders, body, lighting, global
    action: str
    intensity: int = Field(ge=0, le=100)
    technical_guidance: str
    warnings_and_constraints: list[str] = []


class RiskAssessment(CamelModel):
    identity_risk: Literal["low", "medium", "high"]
    distortion_risk: Literal["low", "medium", "high"]
    overall_risk: Literal["low", "medium", "high"]


class EditPlan(CamelModel):
    reasoning: str
    strategy: Literal["conservative", "moderate", "aggressive"]
    risk_assessment: RiskAssessment
    steps: list[EditStep]
    fallback_plan: str


# ============================================================================
# Progress & Result Schemas
# ============================================================================

class PipelineStage(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    GENERATING = "generating"
    VALIDATING = "validating"
    COMPLETE = "complete"
    FAILED = "failed"


class PipelineProgress(FrozenCamelModel):
    """Point-in-time progress snapshot. Each one replaces the previous."""
    stage: PipelineStage
    stage_progress: int = Field(ge=0, le=100)
    current_variation: int = 0
    total_variations: int
    message: str
    estimated_time_remaining: float = 0  # seconds
    started_at: float  # unix timestamp
    overall_progress: int = Field(default=0, ge=0, le=100)


class VariationResult(CamelModel):
    """Public result for one variation slot."""
    index: int
    style: str
    success: bool
    image_url: str
    attempts: int
    fallback: bool
    profile: str | None = None
    scores: CriticScores | None = None
    error: str | None = None


class GenerationResult(CamelModel):
    success: bool
    variations: list[VariationResult]
    analysis: AnalysisResult
    plan: EditPlan | None = None
    total_time_ms: int
