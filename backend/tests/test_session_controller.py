import asyncio
import json
import logging

import pytest

from app.interview.prompts import INTERVIEWER_SYSTEM_PROMPT
from app.session.controller import SessionProtocolController
from app.session.protocol import SessionProtocol
from app.system_metrics import get_metrics_snapshot
from core.state import SessionPhase
from interview_fakes import QueueChannel


async def _drain():
    for _ in range(5):
        await asyncio.sleep(0)


def _controller(factory) -> SessionProtocolController:
    return SessionProtocolController(
        channel_factory=factory,
        protocol=SessionProtocol(confirm_timeout_sec=0.05, max_config_retries=1, consent_delay_sec=0.01),
    )


@pytest.mark.asyncio
async def test_start_runs_handshake_over_receive_loop():
    channel = QueueChannel()

    async def _factory():
        return channel

    controller = _controller(_factory)
    assert await controller.start() is True
    assert controller.state.phase == SessionPhase.CONFIGURING

    channel.push({"type": "session.created"})
    channel.push({"type": "session.updated", "session": {"instructions": INTERVIEWER_SYSTEM_PROMPT}})
    await _drain()

    assert channel.types() == ["session.update", "response.create"]

    channel.push(None)
    await _drain()
    assert controller.state.phase == SessionPhase.ENDED
    assert controller.channel is None
    await controller.aclose()


@pytest.mark.asyncio
async def test_confirm_timeout_uses_real_timers():
    channel = QueueChannel()

    async def _factory():
        return channel

    controller = _controller(_factory)
    await controller.start()
    channel.push({"type": "session.created"})
    await asyncio.sleep(0.2)

    assert channel.types() == ["session.update", "session.update"]
    assert controller.state.degraded is True
    assert get_metrics_snapshot()["session_config_degraded"] == 1
    await controller.aclose()


@pytest.mark.asyncio
async def test_factory_failure_returns_to_idle():
    async def _factory():
        raise RuntimeError("Failed to generate token")

    controller = _controller(_factory)

    assert await controller.start() is False
    assert controller.state.phase == SessionPhase.IDLE
    assert controller.last_error == "Failed to generate token"
    assert get_metrics_snapshot()["session_connect_failures"] == 1


@pytest.mark.asyncio
async def test_stop_while_connecting_closes_late_channel():
    channel = QueueChannel()
    gate = asyncio.Event()

    async def _factory():
        await gate.wait()
        return channel

    controller = _controller(_factory)
    task = asyncio.create_task(controller.start())
    await _drain()

    controller.stop()
    gate.set()

    assert await task is False
    assert channel.closed is True
    assert controller.state.phase == SessionPhase.IDLE


@pytest.mark.asyncio
async def test_aclose_stops_and_releases_audio():
    channel = QueueChannel()

    async def _factory():
        return channel

    controller = _controller(_factory)
    await controller.start()
    assert controller.audio.enabled is True

    await controller.aclose()

    assert controller.audio.released is True
    assert channel.closed is True
    assert controller.tasks == []
    assert get_metrics_snapshot()["sessions_started"] == 1
    assert get_metrics_snapshot()["sessions_ended"] == 1


@pytest.mark.asyncio
async def test_stopped_receive_loops_do_not_accumulate():
    channels: list[QueueChannel] = []

    async def _factory():
        channels.append(QueueChannel())
        return channels[-1]

    controller = _controller(_factory)
    for _ in range(3):
        assert await controller.start() is True
        assert len(controller.tasks) == 1
        controller.stop()
        await _drain()

    assert controller.tasks == []
    assert all(channel.closed for channel in channels)


def test_qa_mode_logs_realtime_payloads_with_speech_redacted(caplog):
    caplog.set_level(logging.INFO, logger="interview.events")
    controller = SessionProtocolController(qa_mode=True)

    controller.handle_server_event({"type": "response.output_audio_transcript.delta", "delta": "hello there"})

    records = [json.loads(record.getMessage()) for record in caplog.records if record.name == "interview.events"]
    server = [record for record in records if record["event"] == "server_event"]
    assert server[0]["type"] == "response.output_audio_transcript.delta"
    assert server[0]["payload"]["delta"] == {"redacted": True, "length": 11}


def test_payload_logging_is_off_outside_qa_mode(caplog):
    caplog.set_level(logging.INFO, logger="interview.events")
    controller = SessionProtocolController(qa_mode=False)

    controller.handle_server_event({"type": "session.created"})

    assert not [record for record in caplog.records if "server_event" in record.getMessage()]
