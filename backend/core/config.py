import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=True)


def _env_float(name: str, default: float, floor: float) -> float:
    try:
        return max(floor, float(os.getenv(name, str(default))))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, floor: int) -> int:
    try:
        return max(floor, int(os.getenv(name, str(default))))
    except (TypeError, ValueError):
        return default


OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
OPENAI_BASE_URL = str(os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1").strip().rstrip("/")
QA_MODE = os.getenv("QA_MODE", "false").lower() == "true"

# Realtime interview session
REALTIME_URL = str(os.getenv("REALTIME_URL") or "wss://api.openai.com/v1/realtime").strip()
REALTIME_MODEL = str(os.getenv("REALTIME_MODEL") or "gpt-realtime").strip()
REALTIME_VOICE = str(os.getenv("REALTIME_VOICE") or "shimmer").strip()
TRANSCRIPTION_MODEL = str(os.getenv("TRANSCRIPTION_MODEL") or "gpt-4o-transcribe").strip()

SESSION_CONFIRM_TIMEOUT_SEC = _env_float("SESSION_CONFIRM_TIMEOUT_SEC", 2.0, 0.1)
SESSION_CONFIRM_MAX_RETRIES = _env_int("SESSION_CONFIRM_MAX_RETRIES", 2, 0)
CONSENT_FALLBACK_DELAY_SEC = _env_float("CONSENT_FALLBACK_DELAY_SEC", 0.2, 0.0)

# Report generation
REPORT_MODEL = str(os.getenv("REPORT_MODEL") or "gpt-5.2").strip()
REPORT_FALLBACK_MODEL = str(os.getenv("REPORT_FALLBACK_MODEL") or "gpt-5-mini").strip()
REPORT_REASONING_EFFORT = str(os.getenv("REPORT_REASONING_EFFORT") or "medium").strip()
REPORT_TIMEOUT_SEC = _env_float("REPORT_TIMEOUT_SEC", 90.0, 5.0)

# Report persistence
REPORT_STORE = str(os.getenv("REPORT_STORE") or "file").strip().lower()
REPORT_DATA_DIR = Path(os.getenv("REPORT_DATA_DIR") or (_BACKEND_ROOT / "data" / "interviews"))
REDIS_URL = str(os.getenv("REDIS_URL") or "").strip()
REPORT_TTL_SEC = _env_int("REPORT_TTL_SEC", 60 * 60 * 2, 60)

# HTTP surface
_DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in str(os.getenv("CORS_ALLOW_ORIGINS") or _DEFAULT_CORS_ORIGINS).split(",")
    if origin.strip()
]

# MCP server
MCP_HOST = str(os.getenv("MCP_HOST") or "127.0.0.1").strip()
MCP_PORT = _env_int("MCP_PORT", 4000, 1)
