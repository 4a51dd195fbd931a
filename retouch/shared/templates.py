"""
Fix Templates

Curated edit recipes for each fixable issue type. Exactly one template per
issue type is the default.
"""

from ..schemas import EditType, FixTemplate

EYE_CONTACT_TEMPLATES = [
    FixTemplate(
        id="direct",
        edit_type=EditType.EYE_CONTACT,
        label="Look at camera",
        description="Direct, natural eye contact",
        prompt_modifier="Adjust the eyes to look directly at the camera. Keep the gaze relaxed and natural.",
        is_default=True,
    ),
    FixTemplate(
        id="slight_left",
        edit_type=EditType.EYE_CONTACT,
        label="Slightly left",
        description="Looking just left of camera",
        prompt_modifier="Adjust gaze to look slightly to the left of the camera.",
    ),
    FixTemplate(
        id="slight_right",
        edit_type=EditType.EYE_CONTACT,
        label="Slightly right",
        description="Looking just right of camera",
        prompt_modifier="Adjust gaze to look slightly to the right of the camera.",
    ),
    FixTemplate(
        id="confident",
        edit_type=EditType.EYE_CONTACT,
        label="More confident",
        description="Stronger, more engaging look",
        prompt_modifier="Make eye contact more confident and engaging without changing expression.",
    ),
]

POSTURE_TEMPLATES = [
    FixTemplate(
        id="shoulders_back",
        edit_type=EditType.POSTURE,
        label="Shoulders back",
        description="More confident stance",
        prompt_modifier="Pull shoulders back slightly for a more confident, open posture.",
        icon_key="shouldersBack",
        is_default=True,
    ),
    FixTemplate(
        id="chin_up",
        edit_type=EditType.POSTURE,
        label="Chin up",
        description="Lift chin slightly",
        prompt_modifier="Raise the chin slightly for a more confident appearance.",
        icon_key="chinUp",
    ),
    FixTemplate(
        id="straighten_head",
        edit_type=EditType.POSTURE,
        label="Straighten head",
        description="Reduce head tilt",
        prompt_modifier="Straighten head position to reduce tilt while keeping expression.",
        icon_key="straightenHead",
    ),
    FixTemplate(
        id="lean_in",
        edit_type=EditType.POSTURE,
        label="Lean in slightly",
        description="More engaged posture",
        prompt_modifier="Add a subtle forward lean for a more engaged, approachable look.",
        icon_key="leanIn",
    ),
]

ANGLE_TEMPLATES = [
    FixTemplate(
        id="flattering",
        edit_type=EditType.ANGLE,
        label="More flattering",
        description="AI chooses best adjustment",
        prompt_modifier="Make a subtle angle adjustment for a more flattering perspective.",
        is_default=True,
    ),
    FixTemplate(
        id="reduce_tilt",
        edit_type=EditType.ANGLE,
        label="Reduce tilt",
        description="Straighten the angle",
        prompt_modifier="Reduce head and camera tilt for a more level, balanced composition.",
    ),
    FixTemplate(
        id="slight_turn",
        edit_type=EditType.ANGLE,
        label="Slight turn",
        description="Subtle three-quarter view",
        prompt_modifier="Create a subtle three-quarter angle for more dimension.",
    ),
]

LIGHTING_TEMPLATES = [
    FixTemplate(
        id="softer",
        edit_type=EditType.LIGHTING,
        label="Softer shadows",
        description="Reduce harsh shadows",
        prompt_modifier="Soften harsh shadows and create more even, flattering light.",
        is_default=True,
    ),
    FixTemplate(
        id="warmer",
        edit_type=EditType.LIGHTING,
        label="Warmer tone",
        description="Add warmth to lighting",
        prompt_modifier="Add a subtle warm tone to the lighting while keeping skin natural.",
    ),
    FixTemplate(
        id="brighter",
        edit_type=EditType.LIGHTING,
        label="Brighten face",
        description="More light on face",
        prompt_modifier="Brighten the face area slightly, reducing underexposure.",
    ),
    FixTemplate(
        id="even",
        edit_type=EditType.LIGHTING,
        label="Even lighting",
        description="Balance light across face",
        prompt_modifier="Balance lighting across the face, reducing one-sided shadows.",
    ),
]

TEMPLATES: dict[EditType, list[FixTemplate]] = {
    EditType.EYE_CONTACT: EYE_CONTACT_TEMPLATES,
    EditType.POSTURE: POSTURE_TEMPLATES,
    EditType.ANGLE: ANGLE_TEMPLATES,
    EditType.LIGHTING: LIGHTING_TEMPLATES,
}


def get_templates(edit_type: EditType | str) -> list[FixTemplate]:
    """Get all templates for an issue type."""
    return TEMPLATES[EditType(edit_type)]


def get_default_template(edit_type: EditType | str) -> FixTemplate:
    """Get the default template for an issue type."""
    templates = get_templates(edit_type)
    return next((t for t in templates if t.is_default), templates[0])


def get_template(edit_type: EditType | str, template_id: str) -> FixTemplate:
    """
    Look up a template by id.

    Raises:
        ValueError: If the issue type has no template with that id
    """
    for template in get_templates(edit_type):
        if template.id == template_id:
            return template
    available = ", ".join(t.id for t in get_templates(edit_type))
    raise ValueError(f"Unknown template '{template_id}' for {EditType(edit_type).value}. Available: {available}")
