import threading
import time
from typing import Any


COUNTERS = (
    "sessions_started",
    "sessions_ended",
    "session_connect_failures",
    "session_config_retries",
    "session_config_degraded",
    "consent_fallbacks_sent",
    "reports_generated",
    "report_fallback_used",
    "report_generation_failures",
    "override_patches",
    "store_errors",
)

_lock = threading.Lock()
_counts: dict[str, int] = dict.fromkeys(COUNTERS, 0)
_generation_durations: list[float] = []
_MAX_DURATION_SAMPLES = 500


def increment_metric(name: str, amount: int = 1) -> None:
    key = (name or "").strip()
    if key:
        with _lock:
            _counts[key] = _counts.get(key, 0) + int(amount)


def observe_report_generation(seconds: float) -> None:
    with _lock:
        _generation_durations.append(max(0.0, float(seconds or 0.0)))
        # Keep a rolling window; the snapshot reports recent latency.
        del _generation_durations[:-_MAX_DURATION_SAMPLES]


def reset_metrics() -> None:
    with _lock:
        _counts.clear()
        _counts.update(dict.fromkeys(COUNTERS, 0))
        _generation_durations.clear()


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        counts = dict(_counts)
        durations = sorted(_generation_durations)

    snapshot: dict[str, Any] = {"generated_at": time.time(), **counts}
    if durations:
        snapshot["avg_report_generation_sec"] = round(sum(durations) / len(durations), 3)
        snapshot["max_report_generation_sec"] = round(durations[-1], 3)
    else:
        snapshot["avg_report_generation_sec"] = 0.0
        snapshot["max_report_generation_sec"] = 0.0
    if extra:
        snapshot.update(extra)
    return snapshot
