import json
from typing import Any

from sqlalchemy.orm import Session

from study_processor.models.job import Job

JOB_TYPE_AI_STUDY_PROCESSOR = "ai_study_processor"


def create_job(db: Session, job_type: str, payload: dict) -> Job:
    job = Job(
        job_type=job_type,
        status="queued",
        payload_json=json.dumps(payload or {}, ensure_ascii=False),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_job(db: Session, job_id: int) -> Job | None:
    return db.query(Job).filter(Job.id == job_id).first()


def set_job_status(db: Session, job_id: int, status: str, error: str | None = None) -> Job:
    job = db.query(Job).filter(Job.id == job_id).one()
    job.status = status
    job.error = error
    db.commit()
    db.refresh(job)
    return job


def merge_job_payload(db: Session, job_id: int, patch: dict[str, Any]) -> Job:
    """
    Merge a patch into payload_json.
    - Keeps existing keys
    - Overwrites keys present in patch
    """
    job = db.query(Job).filter(Job.id == job_id).one()
    base: dict[str, Any]
    try:
        base = json.loads(job.payload_json or "{}")
        if not isinstance(base, dict):
            base = {}
    except ValueError:
        base = {}

    for k, v in (patch or {}).items():
        base[k] = v

    job.payload_json = json.dumps(base, ensure_ascii=False)
    db.commit()
    db.refresh(job)
    return job
