from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid


class TurnRole(str, Enum):
    INTERVIEWER = "interviewer"
    PARTICIPANT = "participant"


class TurnStatus(str, Enum):
    DRAFT = "draft"
    FINAL = "final"


class EventKind(str, Enum):
    USER_TRANSCRIPT = "user_transcript"
    ASSISTANT_DELTA = "assistant_delta"
    ASSISTANT_DONE = "assistant_done"
    IRRELEVANT = "irrelevant"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _now_display() -> str:
    return datetime.now().strftime("%H:%M:%S")


@dataclass
class TranscriptTurn:
    """
    One utterance by the interviewer or the participant.
    Draft turns still receive streamed text; final turns are frozen.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    role: TurnRole = TurnRole.PARTICIPANT
    text: str = ""
    status: TurnStatus = TurnStatus.DRAFT
    timestamp: str = field(default_factory=_now_display)
    timestamp_iso: str = field(default_factory=_now_iso)
    source_key: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status == TurnStatus.FINAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "timestampIso": self.timestamp_iso,
        }


@dataclass(frozen=True)
class ClassifiedEvent:
    """
    Result of classifying one raw realtime event.
    `key` is the draft key for assistant events, the item id for user events.
    """
    kind: EventKind
    key: Optional[str] = None
    text: Optional[str] = None
    is_audio_done: bool = False


@dataclass(frozen=True)
class IngestResult:
    kind: EventKind
    turn: Optional[TranscriptTurn] = None
    finalized: bool = False
    duplicate: bool = False
    is_audio_done: bool = False
