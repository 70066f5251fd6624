import json
import logging
from typing import Any

logger = logging.getLogger("interview.events")

# Participant speech and model prompts never reach the log stream.
REDACTED_FIELDS = frozenset({"text", "transcript", "transcripts", "instructions", "prompt", "delta", "last_answer", "quote"})
MAX_FIELD_CHARS = 300


def _redact(value: Any) -> dict:
    return {"redacted": True, "length": len(str(value or ""))}


def _scrub(field: str, value: Any) -> Any:
    if field.lower() in REDACTED_FIELDS:
        return _redact(value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= MAX_FIELD_CHARS else value[:MAX_FIELD_CHARS] + "..."
    if isinstance(value, dict):
        return {str(k): _scrub(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scrub(field, item) for item in value]
    return str(value)


def log_event(component: str, event: str, interview_id: str, **fields) -> None:
    """Emit one JSON line per interview event.

    Events named ``*_failed`` or ``*_error`` go out at WARNING, everything else at INFO.
    """
    name = str(event or "unknown")
    record = {"component": component or "app", "event": name, "interview_id": interview_id or ""}
    for key, value in fields.items():
        record[str(key)] = _scrub(str(key), value)
    level = logging.WARNING if name.endswith(("_failed", "_error")) else logging.INFO
    logger.log(level, json.dumps(record, ensure_ascii=False, default=str))
