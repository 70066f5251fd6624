from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from threading import Lock
from typing import Any, Optional, Protocol

from app.system_metrics import increment_metric
from core.config import REDIS_URL, REPORT_DATA_DIR, REPORT_STORE, REPORT_TTL_SEC
from core.logger import log_event

logger = logging.getLogger("app.reporting.store")

_INTERVIEW_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def is_valid_interview_id(interview_id: Any) -> bool:
    return isinstance(interview_id, str) and bool(_INTERVIEW_ID_RE.match(interview_id)) and ".." not in interview_id


class ReportStore(Protocol):
    async def get_snapshot(self, interview_id: str) -> Optional[dict]:
        ...

    async def save_snapshot(self, interview_id: str, snapshot: dict) -> None:
        ...

    async def get_report(self, interview_id: str) -> Optional[dict]:
        """Return {"report_model": ..., "report_overrides": ...} or None."""
        ...

    async def save_report(self, interview_id: str, report_model: dict, overrides: dict) -> None:
        ...


class FileReportStore:
    """
    One directory per interview:

        <root>/<interview_id>/snapshot.json
        <root>/<interview_id>/report_model.json
        <root>/<interview_id>/report_overrides.json
    """

    SNAPSHOT = "snapshot.json"
    REPORT_MODEL = "report_model.json"
    REPORT_OVERRIDES = "report_overrides.json"

    def __init__(self, root: Path | str = REPORT_DATA_DIR):
        self.root = Path(root)
        self._lock = Lock()

    def _dir(self, interview_id: str) -> Path:
        if not is_valid_interview_id(interview_id):
            raise ValueError(f"invalid interview id: {interview_id!r}")
        return self.root / interview_id

    def _read(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            increment_metric("store_errors")
            logger.warning("Report store read failed | path=%s err=%s", path, exc)
            return None

    def _write(self, path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        temp_path.replace(path)

    async def get_snapshot(self, interview_id: str) -> Optional[dict]:
        with self._lock:
            data = self._read(self._dir(interview_id) / self.SNAPSHOT)
        return data if isinstance(data, dict) else None

    async def save_snapshot(self, interview_id: str, snapshot: dict) -> None:
        with self._lock:
            self._write(self._dir(interview_id) / self.SNAPSHOT, snapshot)

    async def get_report(self, interview_id: str) -> Optional[dict]:
        folder = self._dir(interview_id)
        with self._lock:
            model = self._read(folder / self.REPORT_MODEL)
            overrides = self._read(folder / self.REPORT_OVERRIDES)
        if not isinstance(model, dict):
            return None
        return {
            "report_model": model,
            "report_overrides": overrides if isinstance(overrides, dict) else {},
        }

    async def save_report(self, interview_id: str, report_model: dict, overrides: dict) -> None:
        folder = self._dir(interview_id)
        with self._lock:
            self._write(folder / self.REPORT_MODEL, report_model)
            self._write(folder / self.REPORT_OVERRIDES, overrides or {})


class RedisReportStore:
    """Redis-backed report state with a TTL.

    Keys:
    - interview:{id}:snapshot (json string)
    - interview:{id}:report (json string: report_model + report_overrides)

    Redis failures are logged and absorbed. Every write also lands in a
    bounded process-local cache (same TTL) that serves reads redis cannot.
    """

    def __init__(self, redis_url: str, ttl_sec: int = REPORT_TTL_SEC, client=None, cache_max_entries: int = 1024):
        if client is None:
            try:
                import redis.asyncio as redis_async  # type: ignore
            except Exception as exc:
                raise RuntimeError("redis package not installed; install 'redis' to enable REPORT_STORE=redis") from exc
            client = redis_async.from_url(redis_url, decode_responses=True)

        self._redis = client
        self.ttl_sec = max(1, int(ttl_sec))
        self.cache_max_entries = max(1, int(cache_max_entries))
        self._cache: dict[str, tuple[float, Any]] = {}

    @staticmethod
    def _snapshot_key(interview_id: str) -> str:
        return f"interview:{interview_id}:snapshot"

    @staticmethod
    def _report_key(interview_id: str) -> str:
        return f"interview:{interview_id}:report"

    def _cache_get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.time():
            self._cache.pop(key, None)
            return None
        return json.loads(value)

    def _cache_put(self, key: str, raw: str) -> None:
        now = time.time()
        for stale in [k for k, (expires_at, _) in self._cache.items() if expires_at <= now]:
            del self._cache[stale]
        # Re-insert so dict order stays oldest-write first.
        self._cache.pop(key, None)
        self._cache[key] = (now + self.ttl_sec, raw)
        while len(self._cache) > self.cache_max_entries:
            self._cache.pop(next(iter(self._cache)))

    async def _set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        self._cache_put(key, raw)
        try:
            await self._redis.set(key, raw, ex=self.ttl_sec)
        except Exception as exc:
            increment_metric("store_errors")
            log_event("store", "redis_set_failed", "", key=key, error=str(exc))
            logger.warning("Redis set failed | key=%s err=%s", key, exc)

    async def _get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._redis.get(key)
        except Exception as exc:
            increment_metric("store_errors")
            log_event("store", "redis_get_failed", "", key=key, error=str(exc))
            logger.warning("Redis get failed | key=%s err=%s", key, exc)
            return self._cache_get(key)

        if raw is None:
            return self._cache_get(key)
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Redis value is not JSON | key=%s", key)
            return self._cache_get(key)

    async def get_snapshot(self, interview_id: str) -> Optional[dict]:
        data = await self._get(self._snapshot_key(interview_id))
        return data if isinstance(data, dict) else None

    async def save_snapshot(self, interview_id: str, snapshot: dict) -> None:
        await self._set(self._snapshot_key(interview_id), snapshot)

    async def get_report(self, interview_id: str) -> Optional[dict]:
        data = await self._get(self._report_key(interview_id))
        if not isinstance(data, dict) or not isinstance(data.get("report_model"), dict):
            return None
        overrides = data.get("report_overrides")
        return {
            "report_model": data["report_model"],
            "report_overrides": overrides if isinstance(overrides, dict) else {},
        }

    async def save_report(self, interview_id: str, report_model: dict, overrides: dict) -> None:
        await self._set(
            self._report_key(interview_id),
            {"report_model": report_model, "report_overrides": overrides or {}},
        )


def build_report_store() -> ReportStore:
    if REPORT_STORE != "redis":
        return FileReportStore(REPORT_DATA_DIR)

    if not REDIS_URL:
        raise RuntimeError("REPORT_STORE=redis requires REDIS_URL")
    return RedisReportStore(REDIS_URL)
