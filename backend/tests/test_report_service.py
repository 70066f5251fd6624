import asyncio

import pytest

from app.reporting.generator import ReportGenerationError
from app.reporting.schema import REPORT_SECTIONS
from app.reporting.service import (
    InterviewNotFoundError,
    InvalidInterviewIdError,
    InvalidOverridesError,
    InvalidTranscriptError,
    ReportNotGeneratedError,
    ReportService,
)
from app.reporting.store import FileReportStore
from app.system_metrics import get_metrics_snapshot
from interview_fakes import StubGenerator, sample_report


TURNS = [
    {"role": "interviewer", "text": "Hi, are you happy to continue?"},
    {"role": "participant", "text": "Yes"},
    {"role": "interviewer", "text": "What's your role?"},
    {"role": "participant", "text": "I'm a CSM"},
]


def _service(tmp_path, generator=None) -> ReportService:
    return ReportService(store=FileReportStore(tmp_path / "interviews"), generator=generator or StubGenerator())


@pytest.mark.asyncio
async def test_finalize_stores_snapshot_and_report(tmp_path):
    service = _service(tmp_path)

    result = await service.finalize("iv-1", TURNS)

    assert result["ok"] is True
    assert result["report_status"] == "ready"
    assert result["report_overrides"] == {}
    assert list(result["report_final"]) == list(REPORT_SECTIONS)
    assert [turn["text"] for turn in result["snapshot"]["transcripts"]] == [turn["text"] for turn in TURNS]

    folder = tmp_path / "interviews" / "iv-1"
    assert (folder / "snapshot.json").exists()
    assert (folder / "report_model.json").exists()
    assert (folder / "report_overrides.json").exists()


@pytest.mark.asyncio
async def test_finalize_is_idempotent_once_report_exists(tmp_path):
    generator = StubGenerator()
    service = _service(tmp_path, generator)

    first = await service.finalize("iv-1", TURNS)
    second = await service.finalize("iv-1", TURNS[:2])

    assert len(generator.calls) == 1
    assert second["report_model"] == first["report_model"]
    assert len(second["snapshot"]["transcripts"]) == 4


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "transcripts",
    [None, [], "turns", [{"role": "bot", "text": "x"}], [{"role": "participant"}], [{"role": "participant", "text": "x", "status": "draft"}]],
)
async def test_finalize_rejects_invalid_transcripts(tmp_path, transcripts):
    service = _service(tmp_path)

    with pytest.raises(InvalidTranscriptError):
        await service.finalize("iv-1", transcripts)

    assert not (tmp_path / "interviews" / "iv-1").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("interview_id", ["", "../etc", "a/b", None])
async def test_invalid_interview_id_is_rejected(tmp_path, interview_id):
    service = _service(tmp_path)

    with pytest.raises(InvalidInterviewIdError):
        await service.finalize(interview_id, TURNS)


@pytest.mark.asyncio
async def test_generation_failure_keeps_snapshot_and_retry_succeeds(tmp_path):
    failing = StubGenerator(error=ReportGenerationError("both models failed"))
    service = _service(tmp_path, failing)

    with pytest.raises(ReportGenerationError):
        await service.finalize("iv-1", TURNS)

    pending = await service.get_report("iv-1")
    assert pending == {"ok": True, "report_status": "pending", "snapshot": pending["snapshot"]}
    assert len(pending["snapshot"]["transcripts"]) == 4

    service.generator = StubGenerator()
    retried = await service.finalize("iv-1", TURNS)
    assert retried["report_status"] == "ready"


@pytest.mark.asyncio
async def test_get_report_unknown_id_is_not_found(tmp_path):
    service = _service(tmp_path)

    with pytest.raises(InterviewNotFoundError):
        await service.get_report("missing")


@pytest.mark.asyncio
async def test_patch_accumulates_overrides_and_recomputes_final(tmp_path):
    service = _service(tmp_path)
    await service.finalize("iv-1", TURNS)

    await service.patch_overrides("iv-1", {"ratings": {"notes": "updated"}})
    result = await service.patch_overrides("iv-1", {"use_case": {"title": "Renewals prep"}})

    assert result["report_overrides"] == {
        "ratings": {"notes": "updated"},
        "use_case": {"title": "Renewals prep"},
    }
    assert result["report_final"]["ratings"]["notes"] == "updated"
    assert result["report_final"]["ratings"]["dimensions"] == sample_report("iv-1")["ratings"]["dimensions"]
    assert result["report_final"]["use_case"]["workflow_steps"] == ["Draft", "Edit", "Send"]
    assert result["report_model"] == sample_report("iv-1")

    stored = await service.get_report("iv-1")
    assert stored["report_final"] == result["report_final"]
    assert get_metrics_snapshot()["override_patches"] == 2


@pytest.mark.asyncio
async def test_patch_requires_report_then_object(tmp_path):
    service = _service(tmp_path)

    with pytest.raises(ReportNotGeneratedError):
        await service.patch_overrides("iv-1", {"ratings": {"notes": "x"}})

    await service.finalize("iv-1", TURNS)
    for bad in (None, ["notes"], "notes", 3):
        with pytest.raises(InvalidOverridesError):
            await service.patch_overrides("iv-1", bad)

    assert (await service.get_report("iv-1"))["report_overrides"] == {}


@pytest.mark.asyncio
async def test_concurrent_patches_do_not_lose_updates(tmp_path):
    service = _service(tmp_path)
    await service.finalize("iv-1", TURNS)

    patches = [{"themes": {f"k{index}": [str(index)]}} for index in range(10)]
    await asyncio.gather(*(service.patch_overrides("iv-1", patch) for patch in patches))

    overrides = (await service.get_report("iv-1"))["report_overrides"]
    assert sorted(overrides["themes"]) == sorted(f"k{index}" for index in range(10))
    assert service._locks == {}


@pytest.mark.asyncio
async def test_per_interview_locks_are_released_after_use(tmp_path):
    service = _service(tmp_path)

    for index in range(50):
        await service.finalize(f"iv-{index}", TURNS)
    await service.patch_overrides("iv-0", {"ratings": {"notes": "n"}})

    assert service._locks == {}

