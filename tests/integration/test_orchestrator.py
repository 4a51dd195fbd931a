"""
End-to-end orchestrator tests with in-memory pipeline stages.
"""

import pytest

from conftest import FakeAnalyzer, FakeApplier, FakeValidator, ScriptedClient
from retouch.pipeline.analyzer import AnalysisMemo, ImageAnalyzer
from retouch.pipeline.orchestrator import PipelineOrchestrator
from retouch.pipeline.progress import ProgressChannel
from retouch.schemas import EditType, PipelineStage
from retouch.shared.prompts import VARIATION_PROFILES


class Uploads:
    """Records uploaded variations and hands back fake URLs."""

    def __init__(self):
        self.calls = []

    def __call__(self, data: bytes, slot: int) -> str:
        self.calls.append((slot, data))
        return f"https://cdn.test/variation-{slot + 1}.png"


@pytest.fixture
def uploads():
    return Uploads()


def make_orchestrator(settings, analysis, applier=None, validator=None, analyzer=None):
    return PipelineOrchestrator(
        analyzer=analyzer or FakeAnalyzer(analysis),
        applier=applier or FakeApplier(),
        validator=validator or FakeValidator(),
        settings=settings,
    )


async def test_single_fix_all_pass(settings, sample_analysis, eye_contact_only, uploads):
    orchestrator = make_orchestrator(settings, sample_analysis)

    result = await orchestrator.generate(b"img", eye_contact_only, upload_fn=uploads, num_variations=3)

    assert result.success
    assert len(result.variations) == 3
    for index, variation in enumerate(result.variations):
        assert variation.index == index
        assert variation.success
        assert not variation.fallback
        assert variation.attempts == 1
        assert variation.style == "eyeContact"
        assert variation.image_url == f"https://cdn.test/variation-{index + 1}.png"
    assert sorted(slot for slot, _ in uploads.calls) == [0, 1, 2]


async def test_validator_always_rejects(settings, sample_analysis, eye_contact_only, uploads):
    validator = FakeValidator(lambda before, after, edit_type: False)
    orchestrator = make_orchestrator(settings, sample_analysis, validator=validator)

    result = await orchestrator.generate(b"img", eye_contact_only, upload_fn=uploads, num_variations=3)

    assert not result.success
    assert len(result.variations) == 3
    for variation in result.variations:
        assert not variation.success
        assert variation.fallback
        assert variation.attempts == settings.max_retries_per_step
        assert "eyeContact failed after 3 attempt(s)" in variation.error
        assert variation.image_url.startswith("https://picsum.photos/seed/fallback-")
    assert uploads.calls == []


async def test_no_selections_runs_zero_step_pipelines(settings, sample_analysis, uploads):
    applier = FakeApplier()
    orchestrator = make_orchestrator(settings, sample_analysis, applier=applier)

    result = await orchestrator.generate(b"img", [], upload_fn=uploads, num_variations=3)

    assert result.success
    assert all(v.success and v.attempts == 0 for v in result.variations)
    assert {v.style for v in result.variations} == {"sequential"}
    assert applier.calls == []
    # Final image of a zero-step pipeline is the original
    assert [data for _, data in uploads.calls] == [b"img"] * 3


async def test_analyzer_failure_uses_fallback(settings, eye_contact_only, uploads):
    analyzer = ImageAnalyzer(client=ScriptedClient(RuntimeError("analysis service down")), settings=settings)
    orchestrator = PipelineOrchestrator(
        analyzer=analyzer,
        applier=FakeApplier(),
        validator=FakeValidator(),
        settings=settings,
    )

    result = await orchestrator.generate(b"img", eye_contact_only, upload_fn=uploads, num_variations=2)

    assert result.analysis.overall_quality == 60
    assert result.success
    assert all(v.success for v in result.variations)


async def test_failure_in_one_slot_is_isolated(settings, sample_analysis, all_fixes, uploads):
    failing_hint = VARIATION_PROFILES[1].prompt_hint
    applier = FakeApplier(fail_when=lambda hint, edit_type, attempt: hint == failing_hint)
    orchestrator = make_orchestrator(settings, sample_analysis, applier=applier)

    result = await orchestrator.generate(b"img", all_fixes, upload_fn=uploads, num_variations=3)

    assert result.success
    assert [v.success for v in result.variations] == [True, False, True]
    assert result.variations[1].fallback
    assert result.variations[0].attempts == result.variations[2].attempts == 4
    assert result.variations[0].style == "eyeContact+posture+angle+lighting"


async def test_canonical_order_in_every_slot(settings, sample_analysis, all_fixes, uploads):
    applier = FakeApplier()
    orchestrator = make_orchestrator(settings, sample_analysis, applier=applier)

    await orchestrator.generate(b"img", all_fixes, upload_fn=uploads, num_variations=3)

    for _, data in uploads.calls:
        assert data == b"img|eyeContact|posture|angle|lighting"


async def test_profiles_cycle_past_profile_count(settings, sample_analysis, eye_contact_only, uploads):
    orchestrator = make_orchestrator(settings, sample_analysis)
    k = len(VARIATION_PROFILES) + 2

    result = await orchestrator.generate(b"img", eye_contact_only, upload_fn=uploads, num_variations=k)

    assert len(result.variations) == k
    assert [v.profile for v in result.variations] == [
        VARIATION_PROFILES[i % len(VARIATION_PROFILES)].id for i in range(k)
    ]


async def test_upload_failure_becomes_fallback(settings, sample_analysis, eye_contact_only):
    def upload(data, slot):
        if slot == 0:
            raise ConnectionError("bucket unavailable")
        return f"https://cdn.test/{slot}"

    orchestrator = make_orchestrator(settings, sample_analysis)
    result = await orchestrator.generate(b"img", eye_contact_only, upload_fn=upload, num_variations=2)

    first, second = result.variations
    assert first.fallback and not first.success
    assert "Upload failed" in first.error
    assert second.success
    assert result.success


async def test_async_upload_and_variation_callback(settings, sample_analysis, eye_contact_only):
    seen = []

    async def upload(data, slot):
        return f"https://cdn.test/{slot}"

    async def on_variation(variation):
        seen.append(variation.index)

    orchestrator = make_orchestrator(settings, sample_analysis)
    result = await orchestrator.generate(
        b"img", eye_contact_only, upload_fn=upload, num_variations=3, on_variation=on_variation
    )

    assert sorted(seen) == [0, 1, 2]
    assert result.variations[2].image_url == "https://cdn.test/2"


async def test_analysis_override_skips_analyzer(settings, sample_analysis, eye_contact_only, uploads):
    analyzer = FakeAnalyzer(sample_analysis)
    orchestrator = make_orchestrator(settings, sample_analysis, analyzer=analyzer)
    memo = AnalysisMemo()

    result = await orchestrator.generate(
        b"img", eye_contact_only, upload_fn=uploads, analysis_override=sample_analysis, memo=memo
    )

    assert analyzer.calls == 0
    assert result.analysis is sample_analysis
    assert b"img" in memo


async def test_default_variation_count(settings, sample_analysis, eye_contact_only, uploads):
    orchestrator = make_orchestrator(settings, sample_analysis)
    result = await orchestrator.generate(b"img", eye_contact_only, upload_fn=uploads)
    assert len(result.variations) == settings.parallel_pipelines


async def test_progress_channel_receives_final_snapshot(settings, sample_analysis, eye_contact_only, uploads):
    channel = ProgressChannel(maxsize=256)
    orchestrator = make_orchestrator(settings, sample_analysis)

    await orchestrator.generate(
        b"img", eye_contact_only, upload_fn=uploads, num_variations=2, progress_sink=channel
    )
    snapshots = [snapshot async for snapshot in channel]

    stages = [s.stage for s in snapshots]
    assert stages[0] == PipelineStage.ANALYZING
    assert PipelineStage.GENERATING in stages
    assert PipelineStage.VALIDATING in stages
    assert stages[-1] == PipelineStage.COMPLETE
    assert snapshots[-1].overall_progress == 100
    assert all(s.total_variations == 2 for s in snapshots)
    assert channel.closed


async def test_failed_request_reports_failed_stage(settings, sample_analysis, eye_contact_only, uploads):
    received = []
    validator = FakeValidator(lambda before, after, edit_type: False)
    orchestrator = make_orchestrator(settings, sample_analysis, validator=validator)

    await orchestrator.generate(
        b"img", eye_contact_only, upload_fn=uploads, num_variations=2, progress_sink=received.append
    )

    assert received[-1].stage == PipelineStage.FAILED


async def test_planner_attaches_plan(settings, sample_analysis, all_fixes, uploads):
    settings.planner_enabled = True
    orchestrator = make_orchestrator(settings, sample_analysis)

    result = await orchestrator.generate(b"img", all_fixes, upload_fn=uploads, num_variations=1)

    assert result.plan is not None
    assert [step.edit_type for step in result.plan.steps] == [
        EditType.EYE_CONTACT, EditType.POSTURE, EditType.ANGLE, EditType.LIGHTING,
    ]


async def test_run_returns_k_results(settings, sample_analysis, eye_contact_only, uploads):
    orchestrator = make_orchestrator(settings, sample_analysis)
    results = await orchestrator.run(b"img", sample_analysis, eye_contact_only, 4, None, uploads)
    assert [r.index for r in results] == [0, 1, 2, 3]


async def test_invalid_variation_count(settings, sample_analysis, eye_contact_only, uploads):
    orchestrator = make_orchestrator(settings, sample_analysis)
    with pytest.raises(ValueError):
        await orchestrator.run(b"img", sample_analysis, eye_contact_only, 0, None, uploads)


async def test_generate_rejects_zero_variations(settings, sample_analysis, eye_contact_only, uploads):
    analyzer = FakeAnalyzer(sample_analysis)
    orchestrator = make_orchestrator(settings, sample_analysis, analyzer=analyzer)
    with pytest.raises(ValueError):
        await orchestrator.generate(b"img", eye_contact_only, upload_fn=uploads, num_variations=0)
    assert analyzer.calls == 0
    assert uploads.calls == []
