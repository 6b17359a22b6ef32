from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from study_processor.db.session import get_db
from study_processor.services.jobs import JOB_TYPE_AI_STUDY_PROCESSOR, create_job, get_job
from study_processor.worker.tasks import process_study_material

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobCreateResponse(BaseModel):
    ok: bool
    job_id: int
    task_id: str


@router.post("", response_model=JobCreateResponse)
def create_and_run_job(payload: dict, db: Session = Depends(get_db)) -> JobCreateResponse:
    # validation happens in the worker so queued and direct calls fail the same way
    job = create_job(db, JOB_TYPE_AI_STUDY_PROCESSOR, {"request": payload})
    async_result = process_study_material.delay(job.id, payload)
    return JobCreateResponse(ok=True, job_id=job.id, task_id=async_result.id)


class JobGetResponse(BaseModel):
    ok: bool
    job_id: int
    job_type: str
    status: str
    error: str | None
    payload_json: str


@router.get("/{job_id}", response_model=JobGetResponse)
def get_job_status(job_id: int, db: Session = Depends(get_db)) -> JobGetResponse:
    job = get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobGetResponse(
        ok=True,
        job_id=job.id,
        job_type=job.job_type,
        status=job.status,
        error=job.error,
        payload_json=job.payload_json,
    )
