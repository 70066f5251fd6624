import asyncio
import json
import logging
import time
from typing import Any, Optional

from openai import AsyncOpenAI

from app.system_metrics import increment_metric, observe_report_generation
from core.config import (
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    REPORT_FALLBACK_MODEL,
    REPORT_MODEL,
    REPORT_REASONING_EFFORT,
    REPORT_TIMEOUT_SEC,
)
from core.logger import log_event

from .prompts import build_report_input
from .schema import response_format

logger = logging.getLogger("app.reporting.generator")

# Built on first use; AsyncOpenAI refuses to construct without a key.
client: Optional[AsyncOpenAI] = None

MAX_OUTPUT_TOKENS = 2000


class ReportGenerationError(RuntimeError):
    pass


def get_client() -> AsyncOpenAI:
    global client
    if client is None:
        client = AsyncOpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
    return client


def _as_dict(response: Any) -> dict:
    if isinstance(response, dict):
        return response
    dump = getattr(response, "model_dump", None)
    if callable(dump):
        data = dump()
        if isinstance(data, dict):
            return data
    raise ReportGenerationError(f"Unexpected response type: {type(response).__name__}")


def _loads(text: str) -> dict:
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise ReportGenerationError(f"Unparseable report output: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ReportGenerationError("Report output is not a JSON object")
    return parsed


def parse_report_output(response: Any) -> dict:
    """
    Pull the report object out of a Responses API result.

    A refusal part fails the attempt. The first `output_text` part wins;
    other text-bearing parts are used only if they parse. The aggregated
    `output_text` is the last resort.
    """
    output_text = None if isinstance(response, dict) else getattr(response, "output_text", None)
    data = _as_dict(response)
    if output_text is None:
        output_text = data.get("output_text")

    for output in data.get("output") or []:
        content = (output or {}).get("content") if isinstance(output, dict) else None
        if not isinstance(content, list):
            continue
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "refusal":
                reason = part.get("refusal") or part.get("text") or json.dumps(part)
                raise ReportGenerationError(f"Model refusal: {reason}")
            text = part.get("text")
            if part.get("type") == "output_text" and isinstance(text, str):
                return _loads(text)
            if isinstance(text, str):
                try:
                    return _loads(text)
                except ReportGenerationError:
                    continue

    if isinstance(output_text, str) and output_text.strip():
        return _loads(output_text)

    raise ReportGenerationError("No text content in model response")


class ReportGenerator:
    """Primary model first, one fallback model on any failure."""

    def __init__(
        self,
        openai_client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
        model: str = REPORT_MODEL,
        fallback_model: str = REPORT_FALLBACK_MODEL,
        reasoning_effort: str = REPORT_REASONING_EFFORT,
        timeout_sec: float = REPORT_TIMEOUT_SEC,
    ):
        self.client = openai_client
        self.api_key = OPENAI_API_KEY if api_key is None else api_key
        self.model = model
        self.fallback_model = fallback_model
        self.reasoning_effort = reasoning_effort
        self.timeout_sec = timeout_sec

    async def generate(self, interview_id: str, transcripts: list[dict]) -> dict:
        started = time.perf_counter()
        try:
            try:
                report = await self._attempt(self.model, interview_id, transcripts)
            except ReportGenerationError as exc:
                if not self.fallback_model or self.fallback_model == self.model:
                    raise
                logger.warning("Report generation failed on primary model | model=%s err=%s", self.model, exc)
                increment_metric("report_fallback_used")
                log_event("report", "fallback_model", interview_id, model=self.fallback_model, error=str(exc))
                report = await self._attempt(self.fallback_model, interview_id, transcripts)
        except ReportGenerationError as exc:
            increment_metric("report_generation_failures")
            log_event("report", "generation_failed", interview_id, error=str(exc))
            raise

        observe_report_generation(time.perf_counter() - started)
        increment_metric("reports_generated")
        return report

    async def _attempt(self, model: str, interview_id: str, transcripts: list[dict]) -> dict:
        if not self.api_key:
            raise ReportGenerationError("Missing OPENAI_API_KEY")
        if self.client is None:
            if self.api_key == OPENAI_API_KEY:
                self.client = get_client()
            else:
                self.client = AsyncOpenAI(api_key=self.api_key, base_url=OPENAI_BASE_URL)

        log_event("report", "generation_attempt", interview_id, model=model, turns=len(transcripts or []))
        try:
            response = await asyncio.wait_for(
                self.client.responses.create(
                    model=model,
                    input=build_report_input(interview_id, transcripts),
                    text={"format": response_format()},
                    reasoning={"effort": self.reasoning_effort},
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ReportGenerationError(f"Report generation timed out after {self.timeout_sec}s") from exc
        except ReportGenerationError:
            raise
        except Exception as exc:
            raise ReportGenerationError(f"Upstream error: {exc}") from exc

        return parse_report_output(response)
