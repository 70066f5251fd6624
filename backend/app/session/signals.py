"""Inputs to and outputs from the session transition function."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from app.transcript.models import IngestResult
from core.state import InputMode

CONFIRM_TIMER = "session_confirm"
CONSENT_FALLBACK_TIMER = "consent_fallback"
CONSENT_PROMPT_TIMER = "consent_prompt"
ALL_TIMERS = (CONFIRM_TIMER, CONSENT_FALLBACK_TIMER, CONSENT_PROMPT_TIMER)


# -------------------------
# SIGNALS
# -------------------------

@dataclass(frozen=True)
class Start:
    interview_id: str


@dataclass(frozen=True)
class ChannelOpened:
    pass


@dataclass(frozen=True)
class ChannelOpenFailed:
    error: str


@dataclass(frozen=True)
class ServerEvent:
    event: dict
    ingest: Optional[IngestResult] = None

    @property
    def event_type(self) -> str:
        return str(self.event.get("type") or "")


@dataclass(frozen=True)
class TimerFired:
    name: str
    epoch: int


@dataclass(frozen=True)
class PauseRequested:
    pass


@dataclass(frozen=True)
class ResumeRequested:
    last_answer: Optional[str] = None


@dataclass(frozen=True)
class TextSubmitted:
    text: str
    item_id: Optional[str] = None


@dataclass(frozen=True)
class InputModeChanged:
    mode: InputMode


@dataclass(frozen=True)
class StopRequested:
    pass


@dataclass(frozen=True)
class ChannelClosed:
    pass


Signal = Union[
    Start,
    ChannelOpened,
    ChannelOpenFailed,
    ServerEvent,
    TimerFired,
    PauseRequested,
    ResumeRequested,
    TextSubmitted,
    InputModeChanged,
    StopRequested,
    ChannelClosed,
]


# -------------------------
# EFFECTS
# -------------------------

@dataclass(frozen=True)
class SendClientEvent:
    payload: dict


@dataclass(frozen=True)
class ScheduleTimer:
    name: str
    delay_sec: float
    epoch: int


@dataclass(frozen=True)
class CancelTimer:
    name: str


@dataclass(frozen=True)
class SetAudioEnabled:
    enabled: bool


@dataclass(frozen=True)
class ReleaseAudio:
    pass


@dataclass(frozen=True)
class CloseChannel:
    pass


@dataclass(frozen=True)
class ResetTranscript:
    pass


@dataclass(frozen=True)
class Notify:
    name: str
    detail: dict = field(default_factory=dict)


Effect = Union[
    SendClientEvent,
    ScheduleTimer,
    CancelTimer,
    SetAudioEnabled,
    ReleaseAudio,
    CloseChannel,
    ResetTranscript,
    Notify,
]
