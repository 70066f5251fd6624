import csv
import dataclasses
import io
import logging
import uuid
from typing import Optional

from .classifier import FALLBACK_ASSISTANT_KEY, classify_event
from .models import EventKind, IngestResult, TranscriptTurn, TurnRole, TurnStatus
from .state import TranscriptState

logger = logging.getLogger("transcript_engine")

CSV_HEADERS = ["interview_id", "turn_index", "speaker", "text", "iso_time"]
LAST_ANSWER_MAX_CHARS = 600


class TranscriptAssembler:
    """
    Deterministic transcript assembler.
    No AI.
    No guesses.
    Single source of truth = TranscriptState.

    Unknown or malformed events are ignored; the realtime vocabulary is
    much larger than what the transcript needs.
    """

    def __init__(self):
        self.state = TranscriptState()

    # -------------------------
    # INPUT API (FROM REALTIME CHANNEL)
    # -------------------------

    def ingest(self, event) -> IngestResult:
        classified = classify_event(event)

        if classified.kind == EventKind.USER_TRANSCRIPT:
            turn = self.upsert_participant(classified.key, classified.text or "")
            return IngestResult(kind=classified.kind, turn=turn, finalized=turn is not None)

        if classified.kind == EventKind.ASSISTANT_DELTA:
            turn = self.append_interviewer_delta(classified.key, classified.text or "")
            return IngestResult(kind=classified.kind, turn=turn)

        if classified.kind == EventKind.ASSISTANT_DONE:
            turn, duplicate = self.finalize_interviewer(classified.key, classified.text or "")
            return IngestResult(
                kind=classified.kind,
                turn=turn,
                finalized=turn is not None and not duplicate,
                duplicate=duplicate,
                is_audio_done=classified.is_audio_done,
            )

        return IngestResult(kind=EventKind.IRRELEVANT)

    def upsert_participant(self, item_id: Optional[str], text: str) -> Optional[TranscriptTurn]:
        cleaned = str(text or "").strip()
        if not cleaned:
            return None

        turn_id = item_id or str(uuid.uuid4())
        existing = self.state.participant_turns.get(turn_id)
        if existing is not None:
            existing.text = cleaned
            existing.status = TurnStatus.FINAL
            return existing

        turn = TranscriptTurn(id=turn_id, role=TurnRole.PARTICIPANT, text=cleaned, status=TurnStatus.FINAL)
        self.state.participant_turns[turn_id] = turn
        logger.info("PARTICIPANT_TURN added | id=%s", turn_id)
        return self.state.append(turn)

    def add_participant_text(self, text: str, item_id: Optional[str] = None) -> Optional[TranscriptTurn]:
        """Record a typed participant turn locally (its channel echo is dropped)."""
        return self.upsert_participant(item_id or str(uuid.uuid4()), text)

    def append_interviewer_delta(self, key: Optional[str], delta: str) -> Optional[TranscriptTurn]:
        if not delta:
            return None

        draft_key = key or FALLBACK_ASSISTANT_KEY
        draft = self.state.drafts.get(draft_key)
        if draft is not None:
            draft.text = f"{draft.text}{delta}"
            return draft

        draft = TranscriptTurn(
            role=TurnRole.INTERVIEWER,
            text=delta,
            status=TurnStatus.DRAFT,
            source_key=draft_key,
        )
        self.state.drafts[draft_key] = draft
        logger.info("INTERVIEWER_DRAFT opened | key=%s", draft_key)
        return self.state.append(draft)

    def finalize_interviewer(self, key: Optional[str], final_text: str) -> tuple[Optional[TranscriptTurn], bool]:
        """
        Close the draft for `key`. Returns (turn, duplicate).

        A terminal event for an already finalized key is a duplicate and
        leaves the transcript untouched. The constant fallback bucket is not
        an identity, so there only an identical text counts as a duplicate.
        """
        draft_key = key or FALLBACK_ASSISTANT_KEY

        draft = self.state.drafts.pop(draft_key, None)
        if draft is not None:
            if final_text:
                draft.text = final_text
            draft.status = TurnStatus.FINAL
            self.state.finalized[draft_key] = draft
            return draft, False

        previous = self.state.finalized.get(draft_key)
        if previous is not None and (draft_key != FALLBACK_ASSISTANT_KEY or previous.text == final_text or not final_text):
            logger.info("Duplicate finalize ignored | key=%s", draft_key)
            return previous, True

        if not final_text:
            return None, False

        turn = TranscriptTurn(
            role=TurnRole.INTERVIEWER,
            text=final_text,
            status=TurnStatus.FINAL,
            source_key=draft_key,
        )
        self.state.finalized[draft_key] = turn
        return self.state.append(turn), False

    def reset(self) -> None:
        self.state.clear()

    # -------------------------
    # OUTPUT API
    # -------------------------

    @property
    def turns(self) -> tuple:
        return tuple(self.state.turns)

    def downstream_snapshot(self) -> tuple:
        """
        Ordered copies of every non-draft turn with text.
        Draft turns never reach report generation.
        """
        return tuple(
            dataclasses.replace(turn)
            for turn in self.state.turns
            if turn.status != TurnStatus.DRAFT and turn.text.strip()
        )

    def snapshot_payload(self) -> list[dict]:
        return [turn.to_dict() for turn in self.downstream_snapshot()]

    def last_participant_answer(self, limit: int = LAST_ANSWER_MAX_CHARS) -> Optional[str]:
        for turn in reversed(self.state.turns):
            if turn.role == TurnRole.PARTICIPANT and turn.is_final and turn.text.strip():
                return turn.text.strip()[:limit]
        return None

    def to_csv(self, interview_id: str) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for index, turn in enumerate(self.downstream_snapshot(), start=1):
            speaker = "INTERVIEWER" if turn.role == TurnRole.INTERVIEWER else "PARTICIPANT"
            writer.writerow([interview_id, index, speaker, turn.text, turn.timestamp_iso])
        return buffer.getvalue()

    def snapshot(self) -> dict:
        return {
            "turns": len(self.state.turns),
            "open_drafts": len(self.state.drafts),
            "participant_turns": len(self.state.participant_turns),
        }
