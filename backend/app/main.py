import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.interviews import router as interviews_router
from core.config import CORS_ALLOW_ORIGINS, QA_MODE, REPORT_FALLBACK_MODEL, REPORT_MODEL, REPORT_STORE

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("app.main")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info(
        "[SYSTEM] interview service up | qa_mode=%s store=%s model=%s fallback=%s origins=%s",
        QA_MODE,
        REPORT_STORE,
        REPORT_MODEL,
        REPORT_FALLBACK_MODEL,
        ",".join(CORS_ALLOW_ORIGINS),
    )
    yield
    logger.info("[SYSTEM] interview service stopped")


app = FastAPI(title="Interview Research Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.include_router(interviews_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
