from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger("audio_gate")


class AudioGate:
    """
    Outbound microphone gate for ONE active session.

    Muting is local: frames are dropped here and never reach the channel.
    `release()` drops the capture resource entirely until re-enabled by a
    new session.
    """

    def __init__(self, on_release: Optional[Callable[[], None]] = None):
        self._on_release = on_release
        self.enabled = False
        self.released = True

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.released = False
        self.enabled = bool(enabled) and not self.released

    def release(self) -> None:
        if self.released:
            return
        self.enabled = False
        self.released = True
        if self._on_release is not None:
            self._on_release()
        logger.info("Audio capture released")

    def admit(self, frame: bytes) -> Optional[bytes]:
        if not frame or not self.enabled:
            return None
        return frame
