"""
Tests for StepValidator. The validator must fail closed.
"""

import asyncio

import pytest

from conftest import ScriptedClient, json_response, text_response
from retouch.pipeline.validator import StepValidator, decide_can_proceed, indeterminate
from retouch.schemas import EditType, StepValidationResponse
from retouch.shared.templates import get_default_template

TEMPLATE = get_default_template(EditType.EYE_CONTACT)

GOOD = {
    "samePerson": True,
    "editApplied": True,
    "naturalnessScore": 82,
    "hasArtifacts": False,
    "artifactDescription": None,
}


async def validate(settings, response):
    validator = StepValidator(client=ScriptedClient(response), settings=settings)
    return await validator.validate_step(b"before", b"after", EditType.EYE_CONTACT, TEMPLATE)


async def test_good_edit_can_proceed(settings):
    verdict = await validate(settings, json_response(GOOD))
    assert verdict.can_proceed
    assert verdict.identity_preserved
    assert verdict.naturalness == 82
    assert verdict.feedback is None


@pytest.mark.parametrize("override,reason", [
    ({"samePerson": False}, "identity not preserved"),
    ({"editApplied": False}, "edit not applied"),
    ({"naturalnessScore": 59}, "naturalness 59 below 60"),
    ({"hasArtifacts": True, "artifactDescription": "warped iris"}, "artifacts: warped iris"),
])
async def test_each_gate_blocks(settings, override, reason):
    verdict = await validate(settings, json_response({**GOOD, **override}))
    assert not verdict.can_proceed
    assert reason in verdict.feedback


async def test_naturalness_at_minimum_passes(settings):
    verdict = await validate(settings, json_response({**GOOD, "naturalnessScore": 60}))
    assert verdict.can_proceed


@pytest.mark.parametrize("response", [
    text_response("These look similar."),
    json_response({"samePerson": True}),
    json_response(["not", "an", "object"]),
    RuntimeError("connection reset"),
    asyncio.TimeoutError(),
])
async def test_fails_closed(settings, response):
    verdict = await validate(settings, response)
    assert verdict.can_proceed is False
    assert verdict.naturalness == 0
    assert verdict.feedback


def test_decide_can_proceed_collects_every_reason():
    answers = StepValidationResponse.model_validate({
        "samePerson": False,
        "editApplied": False,
        "naturalnessScore": 20,
        "hasArtifacts": True,
    })
    verdict = decide_can_proceed(answers, 60)
    assert verdict.feedback == (
        "identity not preserved; edit not applied; naturalness 20 below 60; artifacts: unspecified"
    )


def test_indeterminate_never_proceeds():
    verdict = indeterminate("no verdict")
    assert not verdict.can_proceed
    assert not verdict.identity_preserved
    assert not verdict.edit_applied
