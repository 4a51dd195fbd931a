"""
Fix Plan

Turns the caller's fix selections into the single ordered list of edits every
variation pipeline runs.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from ..schemas import EditType, FixOptions, FixSelection
from ..shared.templates import get_default_template

logger = logging.getLogger(__name__)

# Canonical processing order. Each edit works on the previous edit's output,
# so every pipeline must apply issues in this same relative order.
EDIT_ORDER: tuple[EditType, ...] = (
    EditType.EYE_CONTACT,
    EditType.POSTURE,
    EditType.ANGLE,
    EditType.LIGHTING,
)


@dataclass(frozen=True)
class OrderedFixPlan:
    """Enabled fixes in canonical order. Shared read-only by all pipelines."""
    fixes: tuple[FixSelection, ...] = ()

    def __iter__(self) -> Iterator[FixSelection]:
        return iter(self.fixes)

    def __len__(self) -> int:
        return len(self.fixes)

    @property
    def edit_types(self) -> tuple[EditType, ...]:
        return tuple(fix.edit_type for fix in self.fixes)

    @property
    def is_empty(self) -> bool:
        return not self.fixes


def neutral_selections() -> list[FixSelection]:
    """Every issue type with its default template, all disabled."""
    return [
        FixSelection(edit_type=edit_type, enabled=False, template=get_default_template(edit_type))
        for edit_type in EDIT_ORDER
    ]


def selections_from_options(options: FixOptions) -> list[FixSelection]:
    """Convert the legacy boolean fix bag into default-template selections."""
    flags = {
        EditType.EYE_CONTACT: options.fix_eye_contact,
        EditType.POSTURE: options.improve_posture,
        EditType.ANGLE: options.adjust_angle,
        EditType.LIGHTING: options.enhance_lighting,
    }
    return [
        FixSelection(edit_type=edit_type, enabled=flags[edit_type], template=get_default_template(edit_type))
        for edit_type in EDIT_ORDER
    ]


def normalize_fix_selections(selections: Iterable[FixSelection] | None) -> OrderedFixPlan:
    """
    Build the ordered fix plan.

    Keeps enabled selections only, sorted into EDIT_ORDER regardless of input
    order. An empty or missing list yields a neutral plan with no steps. When an
    issue type is selected twice, the first enabled selection wins.

    Raises:
        ValueError: If a selection's template belongs to another issue type
    """
    selections = list(selections or []) or neutral_selections()

    by_type: dict[EditType, FixSelection] = {}
    for selection in selections:
        if selection.template.edit_type != selection.edit_type:
            raise ValueError(
                f"Template '{selection.template.id}' is for {selection.template.edit_type.value}, "
                f"not {selection.edit_type.value}"
            )
        if not selection.enabled:
            continue
        if selection.edit_type in by_type:
            logger.warning(f"Duplicate {selection.edit_type.value} selection ignored")
            continue
        by_type[selection.edit_type] = selection

    return OrderedFixPlan(fixes=tuple(by_type[t] for t in EDIT_ORDER if t in by_type))
