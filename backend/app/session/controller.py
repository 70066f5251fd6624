import asyncio
import base64
import logging
import uuid
from collections import deque
from typing import Awaitable, Callable, Optional

from app.realtime.audio import AudioGate
from app.realtime.channel import ChannelNotOpenError, RealtimeChannel
from app.system_metrics import increment_metric
from app.transcript.engine import TranscriptAssembler
from app.transcript.models import TranscriptTurn
from core.config import QA_MODE
from core.logger import log_event
from core.state import InputMode, SessionPhase

from . import messages
from .protocol import SessionProtocol
from .scheduler import AsyncioScheduler, Scheduler
from .signals import (
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

logger = logging.getLogger("session_controller")

ChannelFactory = Callable[[], Awaitable[RealtimeChannel]]
Listener = Callable[[str, dict], None]

EVENT_LOG_LIMIT = 500

_METRIC_BY_NOTICE = {
    "session_starting": "sessions_started",
    "interview_ended": "sessions_ended",
    "connect_failed": "session_connect_failures",
    "session_config_retry": "session_config_retries",
    "session_degraded": "session_config_degraded",
    "consent_fallback_sent": "consent_fallbacks_sent",
}


class SessionProtocolController:
    """
    Drives ONE interview at a time over a realtime channel.

    Every state change goes through `SessionProtocol.transition`; this class
    only feeds it signals and carries out the effects it returns. All work
    happens on the event loop thread, one signal at a time.
    """

    def __init__(
        self,
        channel_factory: Optional[ChannelFactory] = None,
        scheduler: Optional[Scheduler] = None,
        audio: Optional[AudioGate] = None,
        protocol: Optional[SessionProtocol] = None,
        id_factory: Optional[Callable[[], str]] = None,
        qa_mode: bool = QA_MODE,
    ):
        self.state = SessionState.initial()
        self.qa_mode = qa_mode
        self.transcript = TranscriptAssembler()
        self.protocol = protocol or SessionProtocol()
        self.scheduler = scheduler or AsyncioScheduler()
        self.audio = audio or AudioGate()
        self.channel: Optional[RealtimeChannel] = None
        self.last_error: Optional[str] = None
        self.events: deque = deque(maxlen=EVENT_LOG_LIMIT)
        self.tasks: list[asyncio.Task] = []
        self._channel_factory = channel_factory
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._listeners: list[Listener] = []

    # -------------------------
    # CORE LOOP
    # -------------------------

    def dispatch(self, signal: Signal) -> SessionState:
        self.state, effects = self.protocol.transition(self.state, signal)
        for effect in effects:
            self._apply(effect)
        return self.state

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, SendClientEvent):
            self.send_client_event(effect.payload)
        elif isinstance(effect, ScheduleTimer):
            self.scheduler.schedule(effect.name, effect.delay_sec, self._timer_callback(effect.name, effect.epoch))
        elif isinstance(effect, CancelTimer):
            self.scheduler.cancel(effect.name)
        elif isinstance(effect, SetAudioEnabled):
            self.audio.set_enabled(effect.enabled)
        elif isinstance(effect, ReleaseAudio):
            self.audio.release()
        elif isinstance(effect, CloseChannel):
            self._close_channel()
        elif isinstance(effect, ResetTranscript):
            self.transcript.reset()
            self.events.clear()
            self.last_error = None
        elif isinstance(effect, Notify):
            self._notify(effect.name, effect.detail)

    def _timer_callback(self, name: str, epoch: int):
        def _fire():
            self.dispatch(TimerFired(name=name, epoch=epoch))
        return _fire

    def send_client_event(self, payload: dict) -> bool:
        channel = self.channel
        try:
            if channel is None:
                raise ChannelNotOpenError(f"no channel; dropped {payload.get('type')}")
            channel.send(payload)
        except ChannelNotOpenError as exc:
            self.last_error = str(exc)
            logger.error("Failed to send client event | type=%s err=%s", payload.get("type"), exc)
            return False
        self.events.appendleft({"direction": "out", **payload})
        if self.qa_mode:
            log_event("realtime", "client_event", self.state.interview_id or "", type=payload.get("type"), payload=payload)
        return True

    def handle_server_event(self, event: dict) -> SessionState:
        if not isinstance(event, dict):
            return self.state
        self.events.appendleft({"direction": "in", **event})
        if self.qa_mode:
            log_event("realtime", "server_event", self.state.interview_id or "", type=event.get("type"), payload=event)
        if event.get("type") == "error":
            logger.error("[realtime error] %s", event.get("error"))
        ingest = self.transcript.ingest(event)
        return self.dispatch(ServerEvent(event=event, ingest=ingest))

    # -------------------------
    # LIFECYCLE
    # -------------------------

    def begin(self) -> bool:
        """Mint a new interview id and move to connecting."""
        self.dispatch(Start(interview_id=self._id_factory()))
        return self.state.phase == SessionPhase.CONNECTING

    def channel_opened(self, channel: RealtimeChannel) -> None:
        self.channel = channel
        self.dispatch(ChannelOpened())

    def channel_failed(self, error: str) -> None:
        self.last_error = error
        self.dispatch(ChannelOpenFailed(error=error))

    async def start(self) -> bool:
        if self._channel_factory is None:
            raise RuntimeError("start() requires a channel factory")
        if not self.begin():
            return False

        epoch = self.state.epoch
        try:
            channel = await self._channel_factory()
        except Exception as exc:
            logger.error("Failed to start session: %s", exc)
            self.channel_failed(str(exc) or exc.__class__.__name__)
            return False

        if self.state.epoch != epoch or self.state.phase != SessionPhase.CONNECTING:
            # Stopped while connecting.
            channel.close()
            return False

        self.channel_opened(channel)
        messages_fn = getattr(channel, "messages", None)
        if messages_fn is not None:
            self.create_task(self._receive_loop(channel))
        return True

    async def _receive_loop(self, channel) -> None:
        try:
            async for event in channel.messages():
                self.handle_server_event(event)
        finally:
            if self.channel is channel:
                self.channel = None
                self.dispatch(ChannelClosed())

    def create_task(self, coro):
        task = asyncio.create_task(coro)
        self.tasks.append(task)
        task.add_done_callback(self._forget_task)
        return task

    def _forget_task(self, task: asyncio.Task) -> None:
        if task in self.tasks:
            self.tasks.remove(task)

    def stop(self) -> None:
        """Release the microphone and close the channel, synchronously."""
        self.dispatch(StopRequested())
        self.scheduler.cancel_all()
        for task in self.tasks:
            task.cancel()

    async def aclose(self) -> None:
        self.stop()
        await asyncio.gather(*list(self.tasks), return_exceptions=True)
        self.tasks.clear()

    def _close_channel(self) -> None:
        channel, self.channel = self.channel, None
        if channel is not None:
            channel.close()

    # -------------------------
    # PARTICIPANT CONTROLS
    # -------------------------

    def pause(self) -> None:
        self.dispatch(PauseRequested())

    def resume(self) -> None:
        self.dispatch(ResumeRequested(last_answer=self.transcript.last_participant_answer()))

    def switch_to_text(self) -> None:
        self.dispatch(InputModeChanged(mode=InputMode.TEXT))

    def switch_to_voice(self) -> None:
        self.dispatch(InputModeChanged(mode=InputMode.VOICE))

    def submit_text(self, text: str) -> Optional[TranscriptTurn]:
        if not str(text or "").strip():
            return None
        item_id = uuid.uuid4().hex
        turn = None
        if self.state.channel_open:
            turn = self.transcript.add_participant_text(text, item_id=item_id)
        self.dispatch(TextSubmitted(text=text, item_id=item_id))
        return turn

    def push_audio(self, frame: bytes) -> bool:
        admitted = self.audio.admit(frame)
        if admitted is None:
            return False
        return self.send_client_event(messages.audio_append(base64.b64encode(admitted).decode("ascii")))

    # -------------------------
    # NOTIFICATIONS
    # -------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self, name: str, detail: dict) -> None:
        log_event("session", name, self.state.interview_id or "", phase=self.state.phase.value, **detail)
        metric = _METRIC_BY_NOTICE.get(name)
        if metric:
            increment_metric(metric)
        if name in ("connect_failed", "realtime_error"):
            self.last_error = detail.get("error") or self.last_error
        for listener in list(self._listeners):
            try:
                listener(name, dict(detail))
            except Exception:
                logger.exception("Session listener failed | notice=%s", name)

    # -------------------------
    # VISIBILITY
    # -------------------------

    @property
    def interview_id(self) -> Optional[str]:
        return self.state.interview_id

    @property
    def interview_ended(self) -> bool:
        return self.state.interview_ended

    def snapshot(self) -> dict:
        return {
            **self.state.to_dict(),
            "audio_enabled": self.audio.enabled,
            "pending_timers": list(getattr(self.scheduler, "pending", [])),
            "transcript": self.transcript.snapshot(),
            "last_error": self.last_error,
        }
