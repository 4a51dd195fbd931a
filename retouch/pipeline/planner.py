"""
Edit Planner

Optional stage that describes, before any pipeline starts, how each enabled
fix will be approached. The plan is informational: pipelines still run the
ordered fix plan exactly as normalized.
"""

import logging

from ..schemas import AnalysisResult, EditPlan, EditStep, EditType, RiskAssessment
from .plan import OrderedFixPlan

logger = logging.getLogger(__name__)

# Per-issue defaults: target region, action, base intensity, guidance, constraints
STEP_RECIPES: dict[EditType, dict] = {
    EditType.EYE_CONTACT: {
        "target": "eyes",
        "action": "Adjust gaze to camera direction",
        "intensity": 60,
        "guidance": "Carefully redirect pupils and iris to face camera. Preserve eye shape, color, and reflections.",
        "constraints": [
            "HIGH RISK - Preserve exact eye shape",
            "Maintain catchlights",
            "Both eyes must match",
            "If unsure, apply minimal change",
        ],
    },
    EditType.POSTURE: {
        "target": "shoulders",
        "action": "Improve posture - straighten and open up",
        "intensity": 50,
        "guidance": "Slightly adjust shoulder alignment, suggest more upright position",
        "constraints": ["Keep natural", "Do not distort clothing"],
    },
    EditType.ANGLE: {
        "target": "global",
        "action": "Subtle perspective adjustment for more flattering angle",
        "intensity": 40,
        "guidance": "Simulate slightly higher camera position",
        "constraints": ["Maintain proportions", "Keep background consistent"],
    },
    EditType.LIGHTING: {
        "target": "lighting",
        "action": "Enhance lighting with soft, flattering adjustments",
        "intensity": 50,
        "guidance": "Reduce harsh shadows, add subtle fill light, warm up slightly",
        "constraints": ["Do not overexpose", "Maintain skin tones"],
    },
}


def _intensity(base: int, severity: int) -> int:
    # Severity 3 keeps the base; each level above or below moves it by 10
    return max(10, min(90, base + (severity - 3) * 10))


def plan_edits(analysis: AnalysisResult, plan: OrderedFixPlan) -> EditPlan:
    """
    Describe the edit strategy for an ordered fix plan.

    Args:
        analysis: Source image analysis; issue severity scales step intensity
        plan: Normalized fix plan

    Returns:
        Conservative EditPlan with one step per enabled fix, in plan order
    """
    steps = []
    for order, fix in enumerate(plan, start=1):
        recipe = STEP_RECIPES[fix.edit_type]
        issue = analysis.issues_detected.for_type(fix.edit_type)
        steps.append(EditStep(
            order=order,
            edit_type=fix.edit_type,
            target=recipe["target"],
            action=f"{recipe['action']} ({fix.template.label})",
            intensity=_intensity(recipe["intensity"], issue.severity if issue.present else 1),
            technical_guidance=f"{recipe['guidance']}. {fix.template.prompt_modifier}",
            warnings_and_constraints=list(recipe["constraints"]),
        ))

    edits_eyes = EditType.EYE_CONTACT in plan.edit_types
    risk = RiskAssessment(
        identity_risk="high" if edits_eyes else "medium",
        distortion_risk="high" if edits_eyes else "low",
        overall_risk="high" if edits_eyes else ("medium" if steps else "low"),
    )

    logger.info(f"Plan created: {len(steps)} steps, overall risk {risk.overall_risk}")
    return EditPlan(
        reasoning=(
            "Apply one focused edit at a time in canonical order, validating each "
            "before the next, with emphasis on identity preservation."
        ),
        strategy="conservative",
        risk_assessment=risk,
        steps=steps,
        fallback_plan="If edits cause distortion, reduce intensity by 50% and avoid eye modifications entirely.",
    )
