import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from study_processor.api.jobs import router as jobs_router
from study_processor.api.processor import router as processor_router
from study_processor.api.study_materials import router as study_materials_router
from study_processor.core.config import settings
from study_processor.db.session import get_db

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(title="AI Study Processor API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.include_router(processor_router)
app.include_router(study_materials_router)
app.include_router(jobs_router)


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    # lightweight DB check
    db_ok = False
    db: Session | None = None
    try:
        db = next(get_db())
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False
    finally:
        if db is not None:
            db.close()

    return HealthResponse(ok=True, service="ai-study-processor", version=app.version, db_ok=db_ok)
