"""
Tests for the optional edit planner.
"""

from retouch.pipeline.plan import normalize_fix_selections
from retouch.pipeline.planner import plan_edits
from retouch.schemas import EditType


def test_one_step_per_fix_in_plan_order(sample_analysis, all_fixes):
    plan = normalize_fix_selections(all_fixes)
    edit_plan = plan_edits(sample_analysis, plan)

    assert [step.edit_type for step in edit_plan.steps] == list(plan.edit_types)
    assert [step.order for step in edit_plan.steps] == [1, 2, 3, 4]
    assert edit_plan.strategy == "conservative"


def test_eye_contact_raises_identity_risk(sample_analysis, eye_contact_only):
    edit_plan = plan_edits(sample_analysis, normalize_fix_selections(eye_contact_only))
    assert edit_plan.risk_assessment.identity_risk == "high"
    assert edit_plan.steps[0].target == "eyes"


def test_intensity_follows_severity(sample_analysis, all_fixes):
    edit_plan = plan_edits(sample_analysis, normalize_fix_selections(all_fixes))
    by_type = {step.edit_type: step for step in edit_plan.steps}
    # Eye contact severity 4 raises the base; angle is not present
    assert by_type[EditType.EYE_CONTACT].intensity == 70
    assert by_type[EditType.ANGLE].intensity == 20
    assert by_type[EditType.LIGHTING].intensity == 50


def test_empty_plan_is_low_risk(sample_analysis):
    edit_plan = plan_edits(sample_analysis, normalize_fix_selections([]))
    assert edit_plan.steps == []
    assert edit_plan.risk_assessment.overall_risk == "low"
