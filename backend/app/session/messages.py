"""Outbound realtime client events."""

from __future__ import annotations

from app.interview.prompts import (
    INTERVIEWER_SYSTEM_PROMPT,
    TRANSCRIPTION_PROMPT,
    build_consent_instructions,
    build_resume_instructions,
)
from core.config import REALTIME_MODEL, REALTIME_VOICE, TRANSCRIPTION_MODEL

CONSENT_MAX_OUTPUT_TOKENS = 40


def session_update() -> dict:
    return {
        "type": "session.update",
        "session": {
            "type": "realtime",
            "model": REALTIME_MODEL,
            "instructions": INTERVIEWER_SYSTEM_PROMPT.strip(),
            "audio": {
                "output": {"voice": REALTIME_VOICE},
                "input": {
                    "transcription": {
                        "model": TRANSCRIPTION_MODEL,
                        "language": "en",
                        "prompt": TRANSCRIPTION_PROMPT,
                    },
                },
            },
        },
    }


def response_create(instructions: str | None = None, **overrides) -> dict:
    message: dict = {"type": "response.create"}
    response = dict(overrides)
    if instructions:
        response["instructions"] = instructions
    if response:
        message["response"] = response
    return message


def resume_response(last_answer: str | None) -> dict:
    return response_create(build_resume_instructions(last_answer))


def consent_response() -> dict:
    return response_create(
        build_consent_instructions(),
        temperature=0,
        max_output_tokens=CONSENT_MAX_OUTPUT_TOKENS,
    )


def user_text_item(text: str, item_id: str | None = None) -> dict:
    item: dict = {
        "type": "message",
        "role": "user",
        "content": [{"type": "input_text", "text": text}],
    }
    if item_id:
        item["id"] = item_id
    return {"type": "conversation.item.create", "item": item}


def audio_append(audio_b64: str) -> dict:
    return {"type": "input_audio_buffer.append", "audio": audio_b64}
