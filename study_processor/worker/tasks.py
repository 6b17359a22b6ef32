from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from study_processor.core.config import settings
from study_processor.db.session import SessionLocal
from study_processor.services.jobs import merge_job_payload, set_job_status
from study_processor.services.processor import JobStage, ProcessResult, StudyProcessor, build_context
from study_processor.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def build_processor() -> StudyProcessor:
    return StudyProcessor(build_context(settings))


def _set_status(job_id: int, status: str, error: str | None = None) -> None:
    db = SessionLocal()
    try:
        set_job_status(db, job_id, status, error=error)
    finally:
        db.close()


def _merge_payload(job_id: int, patch: dict[str, Any]) -> None:
    db = SessionLocal()
    try:
        merge_job_payload(db, job_id, patch)
    finally:
        db.close()


async def _run(payload: dict, on_stage) -> ProcessResult:
    processor = build_processor()
    try:
        return await processor.process(payload, on_stage=on_stage)
    finally:
        await processor.aclose()


@celery_app.task(name="ai_study_processor.process")
def process_study_material(job_id: int, payload: dict) -> dict:
    """
    Queued variant of POST /ai-study-processor.
    The job row mirrors the processor's stage so callers can poll /jobs/{id}.
    """

    async def on_stage(stage: JobStage, error: Optional[str]) -> None:
        patch: dict[str, Any] = {"progress": {"stage": stage.value}}
        if error:
            patch["error"] = error
        await asyncio.to_thread(_merge_payload, job_id, patch)

    try:
        _set_status(job_id, "running")
        result = asyncio.run(_run(payload, on_stage))

        summary = {
            "material_id": result.material_id,
            "content_type": result.content_type,
            "title": result.title,
            "content_id": result.content_id,
            "fallback": result.fallback,
        }
        _merge_payload(job_id, {"result": summary})
        # a fallback result is still a success, but worth surfacing
        _set_status(job_id, "done", error="model response did not parse; stored fallback" if result.fallback else None)
        return {"ok": True, "job_id": job_id, **summary}

    except Exception as e:
        err = str(e) or type(e).__name__
        logger.error("job %s failed: %s", job_id, err)
        _set_status(job_id, "failed", error=err)
        raise
