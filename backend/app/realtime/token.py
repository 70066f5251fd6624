from __future__ import annotations

import logging
from typing import Any

import httpx

from core.config import OPENAI_API_KEY, OPENAI_BASE_URL, REALTIME_MODEL, REALTIME_VOICE, TRANSCRIPTION_MODEL

logger = logging.getLogger("realtime_token")

TOKEN_TIMEOUT_SEC = 10.0


class TokenMintError(RuntimeError):
    def __init__(self, status_code: int, payload: dict):
        super().__init__(str(payload.get("error") or payload))
        self.status_code = int(status_code)
        self.payload = payload


def session_config() -> dict:
    return {
        "session": {
            "type": "realtime",
            "model": REALTIME_MODEL,
            "audio": {
                "output": {"voice": REALTIME_VOICE},
                "input": {"transcription": {"model": TRANSCRIPTION_MODEL}},
            },
        },
    }


def extract_client_secret(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    value = data.get("value")
    if isinstance(value, str) and value:
        return value
    secret = data.get("client_secret")
    if isinstance(secret, dict):
        nested = secret.get("value")
        return nested if isinstance(nested, str) and nested else None
    if isinstance(secret, str) and secret:
        return secret
    return None


async def mint_client_secret(
    api_key: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict:
    """
    Exchange the server credential for a short-lived realtime secret.
    Upstream errors keep their status code and body.
    """
    key = OPENAI_API_KEY if api_key is None else api_key
    if not key:
        raise TokenMintError(500, {"error": "Missing OPENAI_API_KEY"})

    headers = {
        "OpenAI-Beta": "realtime=v1",
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
    }
    url = f"{OPENAI_BASE_URL}/realtime/client_secrets"

    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=TOKEN_TIMEOUT_SEC) as client:
                response = await client.post(url, headers=headers, json=session_config())
        else:
            response = await http_client.post(url, headers=headers, json=session_config())
    except httpx.HTTPError as exc:
        logger.error("Token generation error: %s", exc)
        raise TokenMintError(500, {"error": "Failed to generate token"}) from exc

    try:
        data = response.json()
    except ValueError:
        data = {"error": {"message": response.text}}

    if response.status_code >= 400:
        logger.warning("Token upstream rejected | status=%s", response.status_code)
        raise TokenMintError(response.status_code, data if isinstance(data, dict) else {"error": data})

    return data
