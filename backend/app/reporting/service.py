import asyncio
import logging
from contextlib import asynccontextmanager
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Optional, Protocol

from app.system_metrics import increment_metric
from core.logger import log_event

from .merge import merge_final
from .store import ReportStore, is_valid_interview_id

logger = logging.getLogger("app.reporting.service")

_TURN_ROLES = {"interviewer", "participant"}


class ReportServiceError(Exception):
    pass


class InvalidInterviewIdError(ReportServiceError):
    pass


class InvalidTranscriptError(ReportServiceError):
    pass


class InvalidOverridesError(ReportServiceError):
    pass


class InterviewNotFoundError(ReportServiceError):
    pass


class ReportNotGeneratedError(ReportServiceError):
    pass


class Generator(Protocol):
    async def generate(self, interview_id: str, transcripts: list[dict]) -> dict:
        ...


def _validate_transcripts(transcripts) -> list[dict]:
    if not isinstance(transcripts, list) or not transcripts:
        raise InvalidTranscriptError("Missing transcripts")

    cleaned = []
    for index, turn in enumerate(transcripts):
        if not isinstance(turn, Mapping):
            raise InvalidTranscriptError(f"Transcript turn {index} is not an object")
        role = turn.get("role")
        text = turn.get("text")
        if role not in _TURN_ROLES:
            raise InvalidTranscriptError(f"Transcript turn {index} has an invalid role")
        if not isinstance(text, str):
            raise InvalidTranscriptError(f"Transcript turn {index} has no text")
        if turn.get("status", "final") != "final":
            raise InvalidTranscriptError(f"Transcript turn {index} is not final")
        cleaned.append(dict(turn))
    return cleaned


class _IdLock:
    """Lock plus the number of callers holding or waiting on it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


def _ready_view(snapshot: Optional[dict], report_model: dict, overrides: dict) -> dict:
    return {
        "ok": True,
        "report_status": "ready",
        "report_model": report_model,
        "report_overrides": overrides,
        "report_final": merge_final(report_model, overrides),
        "snapshot": snapshot,
    }


class ReportService:
    """
    Finalize, read and override interview reports.

    Writes for one interview id are serialized by a per-id lock, so a
    PATCH always merges into the latest stored overrides. A lock lives only
    while some call holds or waits on it.
    """

    def __init__(self, store: ReportStore, generator: Generator):
        self.store = store
        self.generator = generator
        self._locks: dict[str, _IdLock] = {}

    @asynccontextmanager
    async def _locked(self, interview_id: str):
        entry = self._locks.get(interview_id)
        if entry is None:
            entry = self._locks[interview_id] = _IdLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._locks.pop(interview_id, None)

    @staticmethod
    def _require_id(interview_id) -> str:
        if not is_valid_interview_id(interview_id):
            raise InvalidInterviewIdError("Missing interview id")
        return interview_id

    async def finalize(self, interview_id: str, transcripts) -> dict:
        interview_id = self._require_id(interview_id)
        turns = _validate_transcripts(transcripts)

        async with self._locked(interview_id):
            existing = await self.store.get_report(interview_id)
            stored_snapshot = await self.store.get_snapshot(interview_id)
            if existing and stored_snapshot:
                log_event("report", "finalize_reused", interview_id)
                return _ready_view(stored_snapshot, existing["report_model"], existing["report_overrides"])

            snapshot = {
                "interview_id": interview_id,
                "transcripts": turns,
                "saved_at": datetime.now(timezone.utc).isoformat(),
            }
            await self.store.save_snapshot(interview_id, snapshot)
            log_event("report", "snapshot_saved", interview_id, turns=len(turns))

            # Raises ReportGenerationError; the snapshot stays for a retry.
            report_model = await self.generator.generate(interview_id, turns)
            overrides: dict = {}
            await self.store.save_report(interview_id, report_model, overrides)
            log_event("report", "report_saved", interview_id)
            return _ready_view(snapshot, report_model, overrides)

    async def get_report(self, interview_id: str) -> dict:
        interview_id = self._require_id(interview_id)
        snapshot = await self.store.get_snapshot(interview_id)
        if not snapshot:
            raise InterviewNotFoundError("Snapshot not found")

        state = await self.store.get_report(interview_id)
        if not state:
            return {"ok": True, "report_status": "pending", "snapshot": snapshot}
        return _ready_view(snapshot, state["report_model"], state["report_overrides"])

    async def patch_overrides(self, interview_id: str, patch) -> dict:
        interview_id = self._require_id(interview_id)

        async with self._locked(interview_id):
            state = await self.store.get_report(interview_id)
            if not state:
                raise ReportNotGeneratedError("Report not generated for this interview")
            if not isinstance(patch, Mapping):
                raise InvalidOverridesError("Invalid overrides payload")

            overrides = merge_final(state["report_overrides"], patch)
            await self.store.save_report(interview_id, state["report_model"], overrides)
            snapshot = await self.store.get_snapshot(interview_id)

        increment_metric("override_patches")
        log_event("report", "overrides_patched", interview_id, keys=sorted(str(key) for key in patch))
        return _ready_view(snapshot, state["report_model"], overrides)
