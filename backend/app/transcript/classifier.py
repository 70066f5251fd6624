from __future__ import annotations

from typing import Any, Optional

from .models import ClassifiedEvent, EventKind

ASSISTANT_DELTA_TYPES = frozenset({
    "response.output_audio_transcript.delta",
})
ASSISTANT_DONE_TYPES = frozenset({
    "response.output_audio_transcript.done",
})
USER_TRANSCRIPT_TYPES = frozenset({
    "conversation.item.input_audio_transcription.completed",
    "input_audio_transcription.completed",
})

FALLBACK_ASSISTANT_KEY = "assistant"

_IRRELEVANT = ClassifiedEvent(kind=EventKind.IRRELEVANT)


def _first_str(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def assistant_transcript_key(event: dict) -> str:
    """
    Draft key for an assistant utterance.

    Built from (response, item, output slot, content slot) when any of them
    is present, so every delta of one utterance maps to one key while
    overlapping responses stay apart. Falls back to the event id, then to a
    constant bucket.
    """
    response_id = _first_str(event.get("response_id"), _as_dict(event.get("response")).get("id"))
    item_id = _first_str(event.get("item_id"), event.get("output_item_id"))
    output_index = event.get("output_index")
    content_index = event.get("content_index")

    if response_id or item_id or output_index is not None or content_index is not None:
        return ":".join([
            response_id or "response",
            item_id or "item",
            "output" if output_index is None else str(output_index),
            "content" if content_index is None else str(content_index),
        ])

    return _first_str(event.get("id")) or FALLBACK_ASSISTANT_KEY


def _transcript_from_payload(payload: dict) -> Optional[str]:
    return _first_str(payload.get("transcript"), payload.get("text"))


def user_transcript_from_item(item: dict) -> Optional[str]:
    if not isinstance(item, dict) or item.get("role") != "user":
        return None

    nested = item.get("input_audio_transcription")
    if isinstance(nested, dict):
        transcript = _transcript_from_payload(nested)
        if transcript:
            return transcript

    content = item.get("content")
    if not isinstance(content, list):
        return None

    for part in content:
        if not isinstance(part, dict):
            continue
        nested = part.get("input_audio_transcription")
        if isinstance(nested, dict):
            transcript = _transcript_from_payload(nested)
            if transcript:
                return transcript
        if part.get("type") in {"input_audio", "input_audio_transcription"}:
            transcript = _transcript_from_payload(part)
            if transcript:
                return transcript

    for part in content:
        if isinstance(part, dict) and part.get("type") == "input_text" and isinstance(part.get("text"), str):
            return part["text"]
    return None


def user_transcript_from_event(event: dict) -> Optional[tuple[Optional[str], str]]:
    """Return (item_id, text) for any event shape that carries participant speech."""
    item = _as_dict(event.get("item"))
    event_type = str(event.get("type") or "")

    payload = event.get("input_audio_transcription")
    if isinstance(payload, dict):
        text = _transcript_from_payload(payload)
        if text:
            item_id = _first_str(payload.get("item_id"), event.get("item_id"), item.get("id"), event.get("id"))
            return item_id, text

    if item.get("role") == "user":
        text = user_transcript_from_item(item)
        if text:
            return _first_str(item.get("id"), event.get("item_id"), event.get("id")), text

    text = _transcript_from_payload(event)
    if text and (
        "input_audio_transcription" in event_type
        or ("input_audio_transcript" in event_type and "output_audio_transcript" not in event_type)
    ):
        return _first_str(event.get("item_id"), item.get("id"), event.get("id")), text

    return None


def _is_typed_user_echo(event: dict) -> bool:
    item = _as_dict(event.get("item"))
    content = item.get("content")
    if item.get("role") != "user" or not isinstance(content, list):
        return False
    return any(
        isinstance(part, dict) and part.get("type") == "input_text" and isinstance(part.get("text"), str)
        for part in content
    )


def classify_event(event: Any) -> ClassifiedEvent:
    if not isinstance(event, dict):
        return _IRRELEVANT

    event_type = str(event.get("type") or "")

    if event_type in USER_TRANSCRIPT_TYPES:
        found = user_transcript_from_event(event)
        if not found:
            return _IRRELEVANT
        item_id, text = found
        return ClassifiedEvent(kind=EventKind.USER_TRANSCRIPT, key=item_id, text=text)

    # Typed turns are recorded locally when submitted; their echo is dropped.
    if _is_typed_user_echo(event):
        return _IRRELEVANT

    found = user_transcript_from_event(event)
    if found:
        item_id, text = found
        return ClassifiedEvent(kind=EventKind.USER_TRANSCRIPT, key=item_id, text=text)

    if event_type in ASSISTANT_DELTA_TYPES:
        delta = _first_str(event.get("delta"), event.get("text"), event.get("transcript"))
        return ClassifiedEvent(kind=EventKind.ASSISTANT_DELTA, key=assistant_transcript_key(event), text=delta)

    if event_type in ASSISTANT_DONE_TYPES:
        final_text = _first_str(event.get("text"), event.get("transcript"), event.get("delta"))
        is_audio_done = "output_audio" in event_type and "transcript" in event_type and "done" in event_type
        return ClassifiedEvent(
            kind=EventKind.ASSISTANT_DONE,
            key=assistant_transcript_key(event),
            text=final_text,
            is_audio_done=is_audio_done,
        )

    return _IRRELEVANT
