from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from core.state import InputMode, SessionPhase

ACTIVE_PHASES = frozenset({
    SessionPhase.CONFIGURING,
    SessionPhase.AWAITING_FIRST_QUESTION,
    SessionPhase.LIVE,
    SessionPhase.PAUSED,
})


@dataclass(frozen=True)
class SessionState:
    """
    Guards for ONE interview attempt. Never persisted.

    `epoch` increments on every start/stop so timers armed by an earlier
    attempt can be recognised as stale.
    """
    phase: SessionPhase = SessionPhase.IDLE
    interview_id: Optional[str] = None
    epoch: int = 0
    channel_open: bool = False

    configured_once: bool = False
    session_ready_confirmed: bool = False
    pending_initial_response: bool = False
    first_question_sent: bool = False
    retry_count: int = 0
    degraded: bool = False

    input_mode: InputMode = InputMode.VOICE
    resume_phase: Optional[SessionPhase] = None
    interview_ended: bool = False

    first_assistant_audio_done: bool = False
    consent_followup_sent: bool = False
    initial_greeting_seen: bool = False

    error: Optional[str] = None

    def __post_init__(self):
        if self.first_question_sent and not self.session_ready_confirmed:
            raise ValueError("first question cannot be sent before the session configuration is confirmed")

    @classmethod
    def initial(cls, interview_id: Optional[str] = None, epoch: int = 0) -> "SessionState":
        if interview_id is None:
            return cls(epoch=epoch)
        return cls(phase=SessionPhase.CONNECTING, interview_id=interview_id, epoch=epoch)

    @property
    def is_active(self) -> bool:
        return self.channel_open and self.phase != SessionPhase.IDLE

    @property
    def is_paused(self) -> bool:
        return self.phase == SessionPhase.PAUSED

    def reset_latches(self, **changes) -> "SessionState":
        """Clear every per-attempt guard, keeping id/epoch unless overridden."""
        return replace(
            self,
            configured_once=False,
            session_ready_confirmed=False,
            pending_initial_response=False,
            first_question_sent=False,
            retry_count=0,
            degraded=False,
            resume_phase=None,
            first_assistant_audio_done=False,
            consent_followup_sent=False,
            initial_greeting_seen=False,
            **changes,
        )

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "interview_id": self.interview_id,
            "channel_open": self.channel_open,
            "configured_once": self.configured_once,
            "session_ready_confirmed": self.session_ready_confirmed,
            "first_question_sent": self.first_question_sent,
            "retry_count": self.retry_count,
            "degraded": self.degraded,
            "input_mode": self.input_mode.value,
            "interview_ended": self.interview_ended,
            "error": self.error,
        }
