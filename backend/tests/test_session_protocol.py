import itertools

import pytest

from app.interview.prompts import INTERVIEWER_SYSTEM_PROMPT
from app.realtime.audio import AudioGate
from app.session.controller import SessionProtocolController
from app.session.protocol import SessionProtocol
from app.session.scheduler import VirtualScheduler
from app.session.signals import (
    CONFIRM_TIMER,
    CONSENT_FALLBACK_TIMER,
    ChannelClosed,
    ChannelOpened,
    Notify,
    SendClientEvent,
    Start,
    TimerFired,
)
from app.session.state import SessionState
from app.transcript.rules import CONSENT_QUESTION
from core.state import SessionPhase
from interview_fakes import FakeChannel


SESSION_CREATED = {"type": "session.created", "session": {"instructions": "default assistant"}}
SESSION_CONFIRMED = {"type": "session.updated", "session": {"instructions": INTERVIEWER_SYSTEM_PROMPT.strip()}}
SESSION_STALE = {"type": "session.updated", "session": {"instructions": "You are a helpful assistant."}}


def _protocol() -> SessionProtocol:
    return SessionProtocol(confirm_timeout_sec=2.0, max_config_retries=2, consent_delay_sec=0.2)


def _controller():
    scheduler = VirtualScheduler()
    ids = iter(f"iv-{n}" for n in itertools.count(1))
    controller = SessionProtocolController(
        scheduler=scheduler,
        audio=AudioGate(),
        protocol=_protocol(),
        id_factory=lambda: next(ids),
    )
    notices: list[str] = []
    controller.add_listener(lambda name, detail: notices.append(name))
    return controller, scheduler, notices


def _open(controller, channel=None):
    channel = channel or FakeChannel()
    assert controller.begin() is True
    controller.channel_opened(channel)
    return channel


def _assistant_done(text: str, response_id: str = "resp_1") -> dict:
    return {
        "type": "response.output_audio_transcript.done",
        "response_id": response_id,
        "item_id": f"item_{response_id}",
        "output_index": 0,
        "content_index": 0,
        "transcript": text,
    }


def _confirmed_live(controller):
    channel = _open(controller)
    controller.handle_server_event(SESSION_CREATED)
    controller.handle_server_event(SESSION_CONFIRMED)
    return channel


def test_first_question_requires_confirmation_invariant():
    with pytest.raises(ValueError):
        SessionState(first_question_sent=True)


def test_handshake_sends_config_once_then_first_question_after_echo():
    controller, _, _ = _controller()
    channel = _open(controller)

    assert controller.state.phase == SessionPhase.CONFIGURING
    assert controller.audio.enabled is True

    controller.handle_server_event(SESSION_CREATED)
    controller.handle_server_event(SESSION_CREATED)
    assert channel.types() == ["session.update"]
    assert controller.state.pending_initial_response is True

    controller.handle_server_event(SESSION_CONFIRMED)
    controller.handle_server_event(SESSION_CONFIRMED)

    assert channel.types() == ["session.update", "response.create"]
    assert controller.state.phase == SessionPhase.AWAITING_FIRST_QUESTION
    assert controller.state.first_question_sent is True


def test_echo_without_persona_does_not_release_prompt():
    controller, _, notices = _controller()
    channel = _open(controller)

    controller.handle_server_event(SESSION_CREATED)
    controller.handle_server_event(SESSION_STALE)

    assert "response.create" not in channel.types()
    assert "session_update_unconfirmed" in notices


def test_confirmation_timeout_retries_then_withholds_prompt():
    controller, scheduler, notices = _controller()
    channel = _open(controller)
    controller.handle_server_event(SESSION_CREATED)

    scheduler.advance(2.0)
    scheduler.advance(2.0)
    assert channel.types() == ["session.update"] * 3
    assert controller.state.retry_count == 2

    scheduler.advance(2.0)
    assert controller.state.degraded is True
    assert controller.state.phase == SessionPhase.LIVE
    assert "response.create" not in channel.types()
    assert "session_degraded" in notices

    scheduler.advance(30.0)
    assert channel.types() == ["session.update"] * 3

    # A late echo still releases the queued question exactly once.
    controller.handle_server_event(SESSION_CONFIRMED)
    assert channel.types().count("response.create") == 1
    assert controller.state.degraded is False


@pytest.mark.parametrize("steps", list(itertools.permutations(["created", "confirm", "advance", "text", "pause"])))
def test_no_prompt_before_confirmation_for_any_interleaving(steps):
    controller, scheduler, _ = _controller()
    channel = _open(controller)

    for step in steps:
        if step == "created":
            controller.handle_server_event(SESSION_CREATED)
        elif step == "confirm":
            controller.handle_server_event(SESSION_CONFIRMED)
        elif step == "advance":
            scheduler.advance(2.0)
        elif step == "text":
            controller.submit_text("hello")
        elif step == "pause":
            controller.pause()

        if "response.create" in channel.types():
            assert controller.state.session_ready_confirmed is True
        assert channel.types().count("session.update") <= 1 + controller.state.retry_count


def test_pause_is_local_and_resume_sends_one_continuation():
    controller, _, _ = _controller()
    channel = _confirmed_live(controller)
    controller.handle_server_event(_assistant_done("What's your role?"))
    controller.handle_server_event({
        "type": "conversation.item.input_audio_transcription.completed",
        "item_id": "u1",
        "transcript": "I'm a CSM working with enterprise accounts",
    })
    sent_before = len(channel.sent)

    controller.pause()
    assert controller.state.phase == SessionPhase.PAUSED
    assert controller.audio.enabled is False
    assert len(channel.sent) == sent_before
    assert controller.push_audio(b"\x00\x01") is False

    controller.resume()
    new = channel.sent[sent_before:]
    assert [payload["type"] for payload in new] == ["response.create"]
    instructions = new[0]["response"]["instructions"]
    assert "I'm a CSM working with enterprise accounts" in instructions
    assert "Do not restart the interview" in instructions
    assert INTERVIEWER_SYSTEM_PROMPT.strip()[:48] not in instructions
    assert controller.state.phase == SessionPhase.LIVE
    assert controller.audio.enabled is True


def test_resume_before_first_question_holds_prompt():
    controller, _, notices = _controller()
    channel = _open(controller)
    controller.handle_server_event(SESSION_CREATED)

    controller.pause()
    controller.resume()

    assert channel.types() == ["session.update"]
    assert "prompt_held" in notices
    assert controller.state.phase == SessionPhase.CONFIGURING


def test_consent_fallback_after_greeting_with_consent_question():
    controller, scheduler, notices = _controller()
    channel = _confirmed_live(controller)

    controller.handle_server_event(_assistant_done(f"Hi, I'm Luné. {CONSENT_QUESTION}"))
    assert controller.state.phase == SessionPhase.LIVE
    assert CONSENT_FALLBACK_TIMER in scheduler.pending

    scheduler.advance(0.2)
    consent = channel.sent[-1]
    assert consent["type"] == "response.create"
    assert CONSENT_QUESTION in consent["response"]["instructions"]
    assert consent["response"]["max_output_tokens"] == 40
    assert notices.count("consent_fallback_sent") == 1

    scheduler.advance(5.0)
    assert notices.count("consent_fallback_sent") == 1


def test_consent_prompt_when_greeting_skips_question():
    controller, scheduler, notices = _controller()
    channel = _confirmed_live(controller)

    controller.handle_server_event(_assistant_done("Hi, I'm Luné, thanks for joining."))
    scheduler.advance(0.2)

    assert CONSENT_QUESTION in channel.sent[-1]["response"]["instructions"]
    assert notices.count("consent_fallback_sent") == 1

    controller.handle_server_event(_assistant_done("Let's begin.", response_id="resp_2"))
    scheduler.advance(1.0)
    assert notices.count("consent_fallback_sent") == 1


def test_pause_cancels_pending_consent_timer():
    controller, scheduler, notices = _controller()
    _confirmed_live(controller)
    controller.handle_server_event(_assistant_done(f"Hello. {CONSENT_QUESTION}"))

    controller.pause()
    scheduler.advance(1.0)

    assert "consent_fallback_sent" not in notices


def test_closing_line_latches_end_once():
    controller, _, notices = _controller()
    channel = _confirmed_live(controller)

    controller.handle_server_event(_assistant_done("Thanks, that's really helpful. That concludes our interview."))
    controller.handle_server_event(_assistant_done("Is there anything else you'd like to add?", response_id="resp_2"))

    assert controller.interview_ended is True
    assert controller.state.phase == SessionPhase.ENDED
    assert notices.count("interview_ended") == 1

    controller.stop()
    assert notices.count("interview_ended") == 1
    assert channel.closed is True


def test_stop_releases_audio_and_fresh_start_resets_everything():
    controller, scheduler, notices = _controller()
    channel = _confirmed_live(controller)
    controller.handle_server_event(_assistant_done("What's your role?"))
    first_id = controller.interview_id

    controller.stop()

    assert controller.audio.released is True
    assert controller.audio.enabled is False
    assert channel.closed is True
    assert controller.channel is None
    assert scheduler.pending == []
    assert controller.state.phase == SessionPhase.ENDED
    assert controller.send_client_event({"type": "response.create"}) is False
    assert controller.last_error

    second = _open(controller)
    assert controller.interview_id != first_id
    assert controller.transcript.turns == ()
    assert controller.state.first_question_sent is False
    assert controller.state.configured_once is False
    assert controller.state.interview_ended is False
    controller.handle_server_event(SESSION_CREATED)
    assert second.types() == ["session.update"]


def test_stale_timer_from_previous_attempt_is_noop():
    protocol = _protocol()
    state, _ = protocol.transition(SessionState.initial(), Start(interview_id="a"))
    state, _ = protocol.transition(state, ChannelOpened())
    old_epoch = state.epoch

    state, effects = protocol.transition(state, TimerFired(name=CONFIRM_TIMER, epoch=old_epoch - 1))

    assert effects == []


def test_channel_open_failure_returns_to_idle_with_error():
    controller, _, notices = _controller()
    controller.begin()

    controller.channel_failed("token mint failed")

    assert controller.state.phase == SessionPhase.IDLE
    assert controller.state.error == "token mint failed"
    assert controller.last_error == "token mint failed"
    assert "connect_failed" in notices
    assert controller.begin() is True


def test_channel_closed_ends_session():
    controller, _, notices = _controller()
    _confirmed_live(controller)

    controller.dispatch(ChannelClosed())

    assert controller.state.phase == SessionPhase.ENDED
    assert "interview_ended" in notices


def test_realtime_error_is_recorded_not_fatal():
    controller, _, notices = _controller()
    _confirmed_live(controller)

    controller.handle_server_event({"type": "error", "error": {"message": "rate limited"}})

    assert controller.last_error == "rate limited"
    assert controller.state.phase == SessionPhase.AWAITING_FIRST_QUESTION
    assert "realtime_error" in notices


def test_text_mode_mutes_audio_and_sends_typed_turn():
    controller, _, _ = _controller()
    channel = _confirmed_live(controller)

    controller.switch_to_text()
    assert controller.audio.enabled is False

    turn = controller.submit_text("I mostly use Canvas")

    assert turn is not None
    assert channel.sent[-2]["type"] == "conversation.item.create"
    assert channel.sent[-2]["item"]["content"][0]["text"] == "I mostly use Canvas"
    assert channel.sent[-1]["type"] == "response.create"

    controller.switch_to_voice()
    assert controller.audio.enabled is True


def test_transition_is_pure():
    protocol = _protocol()
    state = SessionState.initial()

    started, effects = protocol.transition(state, Start(interview_id="x"))

    assert state.phase == SessionPhase.IDLE
    assert started.phase == SessionPhase.CONNECTING
    assert any(isinstance(effect, Notify) and effect.name == "session_starting" for effect in effects)
    assert not any(isinstance(effect, SendClientEvent) for effect in effects)
