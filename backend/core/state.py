# backend/core/state.py

from enum import Enum


class SessionPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    AWAITING_FIRST_QUESTION = "awaiting-first-question"
    LIVE = "live"
    PAUSED = "paused"
    ENDED = "ended"


class InputMode(str, Enum):
    VOICE = "voice"
    TEXT = "text"
