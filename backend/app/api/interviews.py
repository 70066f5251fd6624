import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse

from app.realtime.token import TokenMintError, mint_client_secret
from app.reporting.generator import ReportGenerationError, ReportGenerator
from app.reporting.service import (
    InterviewNotFoundError,
    InvalidInterviewIdError,
    InvalidOverridesError,
    InvalidTranscriptError,
    ReportNotGeneratedError,
    ReportService,
)
from app.reporting.store import build_report_store
from app.schemas import FinalizeRequest
from app.system_metrics import get_metrics_snapshot

logger = logging.getLogger("app.api.interviews")

router = APIRouter(prefix="/api")

_report_service: ReportService | None = None


def get_report_service() -> ReportService:
    global _report_service
    if _report_service is None:
        _report_service = ReportService(store=build_report_store(), generator=ReportGenerator())
    return _report_service


@router.get("/token")
async def get_token():
    try:
        return await mint_client_secret()
    except TokenMintError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.payload)


@router.post("/interviews/{interview_id}/finalize")
async def finalize_interview(interview_id: str, req: FinalizeRequest | None = None):
    service = get_report_service()
    transcripts = req.transcripts if req is not None else None
    try:
        return await service.finalize(interview_id, transcripts)
    except (InvalidInterviewIdError, InvalidTranscriptError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ReportGenerationError as exc:
        logger.error("Report generation failed | interview_id=%s err=%s", interview_id, exc)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "report_status": "failed", "error": str(exc)},
        )


@router.get("/interviews/{interview_id}/report")
async def get_interview_report(interview_id: str):
    service = get_report_service()
    try:
        return await service.get_report(interview_id)
    except InvalidInterviewIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except InterviewNotFoundError as exc:
        return JSONResponse(
            status_code=404,
            content={"ok": False, "report_status": "pending", "error": str(exc)},
        )


@router.patch("/interviews/{interview_id}/report_overrides")
async def patch_report_overrides(interview_id: str, patch: Any = Body(default=None)):
    service = get_report_service()
    try:
        return await service.patch_overrides(interview_id, patch)
    except (InvalidInterviewIdError, InvalidOverridesError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ReportNotGeneratedError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/metrics")
async def metrics():
    return get_metrics_snapshot()
