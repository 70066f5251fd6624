"""
Interview session protocol as a pure function:

    (SessionState, Signal) -> (SessionState, [Effect])

Nothing here touches the network, the clock or the microphone. The
controller executes the returned effects.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Tuple

from app.interview.prompts import session_has_expected_instructions
from app.transcript import rules
from app.transcript.models import EventKind
from core.config import (
    CONSENT_FALLBACK_DELAY_SEC,
    SESSION_CONFIRM_MAX_RETRIES,
    SESSION_CONFIRM_TIMEOUT_SEC,
)
from core.state import InputMode, SessionPhase

from . import messages
from .signals import (
    ALL_TIMERS,
    CONFIRM_TIMER,
    CONSENT_FALLBACK_TIMER,
    CONSENT_PROMPT_TIMER,
    CancelTimer,
    ChannelClosed,
    ChannelOpened,
    ChannelOpenFailed,
    CloseChannel,
    Effect,
    InputModeChanged,
    Notify,
    PauseRequested,
    ReleaseAudio,
    ResetTranscript,
    ResumeRequested,
    ScheduleTimer,
    SendClientEvent,
    ServerEvent,
    SetAudioEnabled,
    Signal,
    Start,
    StopRequested,
    TextSubmitted,
    TimerFired,
)
from .state import SessionState

Transition = Tuple[SessionState, List[Effect]]

PAUSABLE_PHASES = frozenset({
    SessionPhase.CONFIGURING,
    SessionPhase.AWAITING_FIRST_QUESTION,
    SessionPhase.LIVE,
})


class SessionProtocol:
    def __init__(
        self,
        confirm_timeout_sec: float = SESSION_CONFIRM_TIMEOUT_SEC,
        max_config_retries: int = SESSION_CONFIRM_MAX_RETRIES,
        consent_delay_sec: float = CONSENT_FALLBACK_DELAY_SEC,
    ):
        self.confirm_timeout_sec = float(confirm_timeout_sec)
        self.max_config_retries = max(0, int(max_config_retries))
        self.consent_delay_sec = max(0.0, float(consent_delay_sec))

    def transition(self, state: SessionState, signal: Signal) -> Transition:
        if isinstance(signal, Start):
            return self._on_start(state, signal)
        if isinstance(signal, ChannelOpened):
            return self._on_channel_opened(state)
        if isinstance(signal, ChannelOpenFailed):
            return self._on_channel_open_failed(state, signal)
        if isinstance(signal, ServerEvent):
            return self._on_server_event(state, signal)
        if isinstance(signal, TimerFired):
            return self._on_timer(state, signal)
        if isinstance(signal, PauseRequested):
            return self._on_pause(state)
        if isinstance(signal, ResumeRequested):
            return self._on_resume(state, signal)
        if isinstance(signal, TextSubmitted):
            return self._on_text(state, signal)
        if isinstance(signal, InputModeChanged):
            return self._on_input_mode(state, signal)
        if isinstance(signal, StopRequested):
            return self._end_session(state, reason="stop", close_channel=True)
        if isinstance(signal, ChannelClosed):
            return self._on_channel_closed(state)
        raise TypeError(f"unsupported signal: {signal!r}")

    # -------------------------
    # CONNECTION LIFECYCLE
    # -------------------------

    def _on_start(self, state: SessionState, signal: Start) -> Transition:
        if state.channel_open or state.phase not in (SessionPhase.IDLE, SessionPhase.ENDED):
            return state, []

        fresh = SessionState.initial(signal.interview_id, epoch=state.epoch + 1)
        effects: List[Effect] = [CancelTimer(name) for name in ALL_TIMERS]
        effects += [ResetTranscript(), Notify("session_starting", {"interview_id": signal.interview_id})]
        return fresh, effects

    def _on_channel_opened(self, state: SessionState) -> Transition:
        if state.phase != SessionPhase.CONNECTING:
            return state, []
        opened = state.reset_latches(
            phase=SessionPhase.CONFIGURING,
            channel_open=True,
            input_mode=InputMode.VOICE,
            error=None,
        )
        return opened, [SetAudioEnabled(True), Notify("channel_open")]

    def _on_channel_open_failed(self, state: SessionState, signal: ChannelOpenFailed) -> Transition:
        if state.phase != SessionPhase.CONNECTING:
            return state, []
        failed = state.reset_latches(phase=SessionPhase.IDLE, channel_open=False, error=signal.error)
        return failed, [ReleaseAudio(), Notify("connect_failed", {"error": signal.error})]

    def _on_channel_closed(self, state: SessionState) -> Transition:
        if state.phase == SessionPhase.CONNECTING:
            return self._on_channel_open_failed(state, ChannelOpenFailed(error="channel closed while connecting"))
        if not state.channel_open:
            return state, []
        return self._end_session(state, reason="channel_closed", close_channel=False)

    def _end_session(self, state: SessionState, reason: str, close_channel: bool) -> Transition:
        if not state.channel_open and state.phase in (SessionPhase.IDLE, SessionPhase.ENDED):
            return state, []

        effects: List[Effect] = [CancelTimer(name) for name in ALL_TIMERS]
        effects.append(ReleaseAudio())
        if close_channel and (state.channel_open or state.phase == SessionPhase.CONNECTING):
            effects.append(CloseChannel())

        if state.phase == SessionPhase.CONNECTING:
            ended = state.reset_latches(phase=SessionPhase.IDLE, channel_open=False, epoch=state.epoch + 1)
            return ended, effects

        ended = state.reset_latches(
            phase=SessionPhase.ENDED,
            channel_open=False,
            epoch=state.epoch + 1,
            input_mode=InputMode.VOICE,
            interview_ended=True,
        )
        if not state.interview_ended:
            effects.append(Notify("interview_ended", {"reason": reason}))
        effects.append(Notify("session_closed", {"reason": reason}))
        return ended, effects

    # -------------------------
    # CONFIGURATION HANDSHAKE
    # -------------------------

    def _configure(self, state: SessionState) -> Transition:
        if state.configured_once:
            return state, []
        configured = replace(state, configured_once=True, retry_count=0)
        effects: List[Effect] = [SendClientEvent(messages.session_update())]
        configured, queued = self._queue_initial_response(configured)
        return configured, effects + queued

    def _queue_initial_response(self, state: SessionState) -> Transition:
        if state.first_question_sent:
            return state, []
        queued = replace(state, pending_initial_response=True)
        return queued, [
            CancelTimer(CONFIRM_TIMER),
            ScheduleTimer(CONFIRM_TIMER, self.confirm_timeout_sec, state.epoch),
        ]

    def _on_confirm_timeout(self, state: SessionState) -> Transition:
        if state.first_question_sent or state.session_ready_confirmed or not state.pending_initial_response:
            return state, []

        if state.retry_count >= self.max_config_retries:
            # Fail safe: withhold prompts rather than run off-script.
            phase = SessionPhase.LIVE if state.phase == SessionPhase.CONFIGURING else state.phase
            degraded = replace(state, degraded=True, phase=phase)
            return degraded, [Notify("session_degraded", {"retries": state.retry_count})]

        retried = replace(state, retry_count=state.retry_count + 1)
        effects: List[Effect] = [
            Notify("session_config_retry", {"attempt": retried.retry_count}),
            SendClientEvent(messages.session_update()),
        ]
        retried, queued = self._queue_initial_response(retried)
        return retried, effects + queued

    def _on_session_updated(self, state: SessionState, event: dict) -> Transition:
        session = event.get("session") if isinstance(event.get("session"), dict) else {}
        if not session_has_expected_instructions(session.get("instructions")):
            return state, [Notify("session_update_unconfirmed")]
        if state.session_ready_confirmed:
            return state, []

        confirmed = replace(state, session_ready_confirmed=True, degraded=False)
        effects: List[Effect] = [CancelTimer(CONFIRM_TIMER), Notify("session_confirmed")]
        confirmed, sent = self._send_initial_if_ready(confirmed)
        return confirmed, effects + sent

    def _send_initial_if_ready(self, state: SessionState) -> Transition:
        if not state.pending_initial_response or state.first_question_sent or not state.session_ready_confirmed:
            return state, []

        changes = dict(
            first_question_sent=True,
            pending_initial_response=False,
            first_assistant_audio_done=False,
            consent_followup_sent=False,
            initial_greeting_seen=False,
        )
        if state.phase == SessionPhase.PAUSED:
            changes["resume_phase"] = SessionPhase.AWAITING_FIRST_QUESTION
        elif state.phase in (SessionPhase.CONFIGURING, SessionPhase.LIVE):
            changes["phase"] = SessionPhase.AWAITING_FIRST_QUESTION

        dispatched = replace(state, **changes)
        return dispatched, [
            CancelTimer(CONFIRM_TIMER),
            CancelTimer(CONSENT_FALLBACK_TIMER),
            Notify("initial_question_sent"),
            SendClientEvent(messages.response_create()),
        ]

    # -------------------------
    # INBOUND EVENTS
    # -------------------------

    def _on_server_event(self, state: SessionState, signal: ServerEvent) -> Transition:
        if not state.channel_open:
            return state, []

        event_type = signal.event_type
        if event_type == "session.created":
            return self._configure(state)
        if event_type == "session.updated":
            return self._on_session_updated(state, signal.event)
        if event_type == "error":
            error = signal.event.get("error")
            message = error.get("message") if isinstance(error, dict) else str(error or "realtime error")
            return replace(state, error=message), [Notify("realtime_error", {"error": message})]

        ingest = signal.ingest
        if ingest is None or ingest.turn is None:
            return state, []

        if ingest.kind == EventKind.ASSISTANT_DELTA:
            if state.phase == SessionPhase.AWAITING_FIRST_QUESTION:
                return replace(state, phase=SessionPhase.LIVE), []
            return state, []

        if ingest.kind == EventKind.ASSISTANT_DONE and ingest.finalized:
            return self._on_interviewer_turn(state, ingest.turn.text, ingest.is_audio_done)

        return state, []

    def _on_interviewer_turn(self, state: SessionState, text: str, is_audio_done: bool) -> Transition:
        effects: List[Effect] = []
        if state.phase == SessionPhase.AWAITING_FIRST_QUESTION:
            state = replace(state, phase=SessionPhase.LIVE)

        if rules.is_closing_line(text) and not state.interview_ended:
            state = replace(state, interview_ended=True, phase=SessionPhase.ENDED)
            effects.append(Notify("interview_ended", {"reason": "closing_line"}))

        greeting_has_consent = rules.has_consent_question(text)
        if greeting_has_consent and not state.initial_greeting_seen:
            state = replace(state, initial_greeting_seen=True)
            effects += [
                CancelTimer(CONSENT_FALLBACK_TIMER),
                ScheduleTimer(CONSENT_FALLBACK_TIMER, self.consent_delay_sec, state.epoch),
            ]

        if not is_audio_done or state.first_assistant_audio_done:
            return state, effects

        state = replace(state, first_assistant_audio_done=True)
        if greeting_has_consent or state.consent_followup_sent:
            return state, effects

        # Opening audio skipped the consent question: speak it directly.
        state = replace(state, consent_followup_sent=True)
        effects.append(ScheduleTimer(CONSENT_PROMPT_TIMER, self.consent_delay_sec, state.epoch))
        return state, effects

    # -------------------------
    # TIMERS
    # -------------------------

    def _on_timer(self, state: SessionState, signal: TimerFired) -> Transition:
        if signal.epoch != state.epoch or not state.channel_open:
            return state, []

        if signal.name == CONFIRM_TIMER:
            return self._on_confirm_timeout(state)

        if signal.name == CONSENT_FALLBACK_TIMER:
            if state.consent_followup_sent:
                return state, []
            return replace(state, consent_followup_sent=True), [
                Notify("consent_fallback_sent"),
                SendClientEvent(messages.consent_response()),
            ]

        if signal.name == CONSENT_PROMPT_TIMER:
            return state, [
                Notify("consent_fallback_sent"),
                SendClientEvent(messages.consent_response()),
            ]

        return state, []

    # -------------------------
    # LOCAL CONTROLS
    # -------------------------

    def _on_pause(self, state: SessionState) -> Transition:
        if not state.channel_open or state.phase not in PAUSABLE_PHASES:
            return state, []
        paused = replace(state, phase=SessionPhase.PAUSED, resume_phase=state.phase)
        # Local muting only: nothing is sent to the remote side.
        return paused, [
            SetAudioEnabled(False),
            CancelTimer(CONSENT_FALLBACK_TIMER),
            CancelTimer(CONSENT_PROMPT_TIMER),
            Notify("paused"),
        ]

    def _on_resume(self, state: SessionState, signal: ResumeRequested) -> Transition:
        if not state.channel_open or state.phase != SessionPhase.PAUSED:
            return state, []

        resumed = replace(state, phase=state.resume_phase or SessionPhase.LIVE, resume_phase=None)
        effects: List[Effect] = [SetAudioEnabled(resumed.input_mode == InputMode.VOICE), Notify("resumed")]
        if resumed.session_ready_confirmed and resumed.first_question_sent:
            effects.append(SendClientEvent(messages.resume_response(signal.last_answer)))
        else:
            effects.append(Notify("prompt_held", {"trigger": "resume"}))
        return resumed, effects

    def _on_text(self, state: SessionState, signal: TextSubmitted) -> Transition:
        text = str(signal.text or "").strip()
        if not text:
            return state, []

        effects: List[Effect] = [SendClientEvent(messages.user_text_item(text, signal.item_id))]
        if state.session_ready_confirmed:
            effects.append(SendClientEvent(messages.response_create()))
            return state, effects

        effects.append(Notify("prompt_held", {"trigger": "text"}))
        queued, timers = self._queue_initial_response(state)
        return queued, effects + timers

    def _on_input_mode(self, state: SessionState, signal: InputModeChanged) -> Transition:
        if not state.channel_open:
            return state, []
        switched = replace(state, input_mode=signal.mode)
        enabled = signal.mode == InputMode.VOICE and state.phase != SessionPhase.PAUSED
        return switched, [SetAudioEnabled(enabled)]
