"""
Retouch Prompt Templates

Prompts sent to Gemini by each pipeline stage, plus the variation profiles
that give each parallel pipeline its own personality.
"""

from dataclasses import dataclass

from ..schemas import AnalysisResult, EditType, FixTemplate


@dataclass(frozen=True)
class VariationProfile:
    """Per-slot phrasing and strength hint. Never changes which edits run."""
    id: str
    label: str
    intensity_multiplier: float
    prompt_hint: str


VARIATION_PROFILES: tuple[VariationProfile, ...] = (
    VariationProfile(
        id="balanced",
        label="Balanced",
        intensity_multiplier=1.0,
        prompt_hint="Keep edits balanced and natural.",
    ),
    VariationProfile(
        id="subtle",
        label="Subtle",
        intensity_multiplier=0.8,
        prompt_hint="Make smaller, more conservative changes.",
    ),
    VariationProfile(
        id="strong",
        label="Strong",
        intensity_multiplier=1.15,
        prompt_hint="Apply slightly stronger edits while preserving identity.",
    ),
    VariationProfile(
        id="crisp",
        label="Crisp",
        intensity_multiplier=1.0,
        prompt_hint="Focus on clarity and precision without over-editing.",
    ),
    VariationProfile(
        id="soft",
        label="Soft",
        intensity_multiplier=0.9,
        prompt_hint="Keep edits gentle with softer transitions.",
    ),
)


# =============================================================================
# Analyzer
# =============================================================================

ANALYZER_SYSTEM_PROMPT = (
    "You are an expert portrait photography analyst. You assess gaze direction, "
    "posture, lighting and camera angle in portrait photos. Be precise and objective. "
    "Your analysis is used to plan edits. Always output valid JSON matching the schema."
)

ANALYZER_USER_PROMPT = """Analyze this portrait photo and return JSON only.

Evaluate face and gaze, pose and posture, lighting, composition, and for each of
the four issue types (eyeContact, posture, angle, lighting) whether it is present,
its severity from 1 (minor) to 5 (severe), and a one-line description. Also give
an overall quality score from 0 to 100 and a 2-3 sentence summary.

Output JSON in this exact format:
{
  "face": {
    "detected": boolean,
    "gazeDirection": "camera" | "left" | "right" | "up" | "down" | "away",
    "gazeConfidence": number,
    "expression": string
  },
  "pose": {
    "headTilt": number,
    "shoulderLine": "level" | "left_high" | "right_high",
    "shoulderAngle": number,
    "bodyPosture": "upright" | "slouched" | "leaning_forward" | "leaning_back"
  },
  "lighting": {
    "mainDirection": "front" | "left" | "right" | "above" | "below" | "behind",
    "quality": "soft" | "medium" | "harsh",
    "colorTemp": "warm" | "neutral" | "cool",
    "shadowIntensity": number,
    "highlightClipping": boolean
  },
  "composition": {
    "subjectPosition": "center" | "left" | "right",
    "headroom": "too_much" | "good" | "too_little",
    "cameraAngle": "above" | "eye_level" | "below"
  },
  "issuesDetected": {
    "eyeContact": { "present": boolean, "severity": number, "description": string },
    "posture": { "present": boolean, "severity": number, "description": string },
    "angle": { "present": boolean, "severity": number, "description": string },
    "lighting": { "present": boolean, "severity": number, "description": string }
  },
  "overallQuality": number,
  "summary": string
}"""


def build_analyzer_prompt() -> str:
    return f"{ANALYZER_SYSTEM_PROMPT}\n\n{ANALYZER_USER_PROMPT}"


# =============================================================================
# Single edit
# =============================================================================

SINGLE_EDIT_SYSTEM_PROMPT = """You are a professional portrait retoucher.

You will make ONE specific edit to this photo.

ABSOLUTE RULES:
1. Make ONLY the requested change
2. Keep the person's identity EXACTLY the same
3. Keep ALL other elements identical (background, clothing, other features)
4. The result must look like a real photograph
5. Output ONLY the edited image, no text"""


def _describe_current_state(edit_type: EditType, analysis: AnalysisResult) -> tuple[str, str, str]:
    """Return (heading, current state, focus/do-not-change block) for an issue type."""
    if edit_type == EditType.EYE_CONTACT:
        return (
            "Adjust eye gaze/direction.",
            f"Eyes looking {analysis.face.gaze_direction}",
            "Focus area: Eyes and immediate eye region ONLY.\n"
            "Do NOT change: Face shape, expression, skin, anything else.",
        )
    if edit_type == EditType.POSTURE:
        return (
            "Adjust posture/body position.",
            f"{analysis.pose.body_posture}, shoulders {analysis.pose.shoulder_line}",
            "Focus area: Shoulders, neck, upper body positioning.\n"
            "Do NOT change: Face, expression, hands, background.",
        )
    if edit_type == EditType.ANGLE:
        return (
            "Subtle angle adjustment.",
            f"Head tilt {analysis.pose.head_tilt:g}°, camera {analysis.composition.camera_angle}",
            "Focus area: Head/face angle perspective.\n"
            "Do NOT change: Identity, expression, background.",
        )
    return (
        "Lighting adjustment only.",
        f"{analysis.lighting.main_direction} light, {analysis.lighting.quality} quality, "
        f"{analysis.lighting.color_temp} temp",
        "Focus area: Light, shadow, exposure, color temperature.\n"
        "Do NOT change: Any physical features, pose, composition.",
    )


def build_single_edit_prompt(
    edit_type: EditType,
    template: FixTemplate,
    analysis: AnalysisResult,
    custom_prompt: str | None = None,
    attempt: int = 1,
    max_attempts: int = 3,
    variation_hint: str | None = None,
    intensity_multiplier: float = 1.0,
    retry_feedback: str | None = None,
) -> str:
    """
    Build the instruction for one focused edit.

    Args:
        edit_type: Issue type being fixed
        template: Edit recipe chosen for this issue
        analysis: Source image analysis, used to describe the current state
        custom_prompt: Extra user instruction
        attempt: 1-based attempt number within the step
        max_attempts: Retry budget for the step
        variation_hint: Per-slot phrasing hint
        intensity_multiplier: Per-slot strength hint
        retry_feedback: What the validator disliked about the previous attempt

    Returns:
        Full prompt text including the system rules
    """
    heading, current, focus = _describe_current_state(EditType(edit_type), analysis)
    issue = analysis.issues_detected.for_type(edit_type)

    prompt = (
        f"EDIT: {heading}\n"
        f"Current state: {current}\n"
        f"Target: {template.prompt_modifier}\n"
    )
    if issue.present:
        prompt += f"Detected issue (severity {issue.severity}/5): {issue.description}\n"
    prompt += f"\n{focus}"

    if variation_hint:
        prompt += f"\n\nVariation guidance: {variation_hint}"
    if intensity_multiplier != 1.0:
        prompt += f"\nEdit strength: {round(intensity_multiplier * 100)}% of a normal correction."

    if custom_prompt:
        prompt += f"\n\nAdditional instruction: {custom_prompt}"

    if attempt > 1:
        prompt += (
            f"\n\nRETRY {attempt}/{max_attempts}: Previous attempt failed validation. "
            "Be MORE CONSERVATIVE. Make smaller changes."
        )
        if retry_feedback:
            prompt += f"\nValidator feedback: {retry_feedback}"

    return f"{SINGLE_EDIT_SYSTEM_PROMPT}\n\n{prompt}"


# =============================================================================
# Step validation
# =============================================================================

def build_step_validation_prompt(edit_type: EditType, template: FixTemplate) -> str:
    return f"""Compare the ORIGINAL image (first) with the EDITED image (second).

The intended change was: "{template.prompt_modifier}"

Answer:
1) Is this clearly the same person? (yes/no)
2) Was the {EditType(edit_type).value} edit applied successfully? (yes/no)
3) Does the edited image look natural? (score 0-100)
4) Are there any visible distortions or artifacts? (yes/no, describe if yes)

Output JSON exactly:
{{
  "samePerson": boolean,
  "editApplied": boolean,
  "naturalnessScore": number,
  "hasArtifacts": boolean,
  "artifactDescription": string | null
}}"""


# =============================================================================
# Final review
# =============================================================================

CRITIC_SYSTEM_PROMPT = """You are a quality control specialist for professional portrait editing.

Compare an original photo with an edited version. Watch for facial distortion,
identity drift, AI artifacts, color inconsistencies and whether the edits worked.
If there are ANY signs of face distortion or identity loss the image must not pass.

Scoring guidelines:
- 90-100: Exceptional, professional quality
- 75-89: Good, suitable for use
- 50-74: Issues detected, may need retry with adjustments
- Below 50: Significant problems, should not be used"""

CRITIC_USER_PROMPT = """Compare the ORIGINAL image (first) with the EDITED image (second).

Score identity preservation, edit accuracy, naturalness and technical quality
from 0 to 100, flag each issue, and decide pass / retry / fail.

Output JSON:
{
  "scores": {
    "identityPreservation": number,
    "editAccuracy": number,
    "naturalness": number,
    "technicalQuality": number,
    "overall": number
  },
  "issues": {
    "faceDistortion": { "detected": boolean, "description": string, "severity": number },
    "colorShift": { "detected": boolean, "description": string, "severity": number },
    "artifacts": { "detected": boolean, "description": string, "severity": number },
    "identityDrift": { "detected": boolean, "description": string, "severity": number },
    "unnaturalEdits": { "detected": boolean, "description": string, "severity": number }
  },
  "decision": "pass" | "retry" | "fail",
  "feedback": string
}"""


def build_critic_prompt(applied: list[str]) -> str:
    changes = ", ".join(applied) if applied else "none"
    return f"{CRITIC_SYSTEM_PROMPT}\n\n{CRITIC_USER_PROMPT}\n\nRequested changes: {changes}"


def get_variation_profile(slot: int, profiles: tuple[VariationProfile, ...] = VARIATION_PROFILES) -> VariationProfile:
    """
    Get the profile for a slot, cycling when there are more slots than profiles.

    Args:
        slot: 0-based variation slot
        profiles: Profile list to cycle through

    Returns:
        The slot's VariationProfile
    """
    if not profiles:
        raise ValueError("At least one variation profile is required")
    return profiles[slot % len(profiles)]
