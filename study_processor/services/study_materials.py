from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from study_processor.core.errors import MaterialNotFound, PersistenceError
from study_processor.db.session import SessionLocal
from study_processor.models.generated_content import GeneratedContent
from study_processor.models.study_material import STATUS_UPLOADED, StudyMaterial

logger = logging.getLogger(__name__)


# ----------------------------
# Session-level helpers
# ----------------------------

def create_material(
    db: Session,
    *,
    title: str,
    content: str | None,
    user_id: str | None = None,
    file_type: str | None = None,
    file_path: str | None = None,
    needs_extraction: bool = False,
) -> StudyMaterial:
    m = StudyMaterial(
        user_id=user_id,
        title=title,
        content=content,
        file_type=file_type,
        file_path=file_path,
        needs_extraction=needs_extraction,
        status=STATUS_UPLOADED,
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return m


def get_material(db: Session, material_id: str) -> StudyMaterial | None:
    return db.query(StudyMaterial).filter(StudyMaterial.id == material_id).first()


def set_material_status(db: Session, material_id: str, status: str) -> StudyMaterial:
    m = get_material(db, material_id)
    if not m:
        raise MaterialNotFound(material_id)
    m.status = status
    db.commit()
    db.refresh(m)
    return m


def insert_generated_content(
    db: Session,
    material_id: str,
    content_type: str,
    title: str,
    payload: dict[str, Any],
) -> GeneratedContent:
    row = GeneratedContent(
        study_material_id=material_id,
        content_type=content_type,
        title=title,
        content=json.dumps(payload, ensure_ascii=False),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_generated_content(db: Session, material_id: str) -> list[GeneratedContent]:
    return (
        db.query(GeneratedContent)
        .filter(GeneratedContent.study_material_id == material_id)
        .order_by(GeneratedContent.created_at.desc(), GeneratedContent.id.desc())
        .all()
    )


def _safe_json_loads(s: str | None):
    if not s:
        return None
    try:
        return json.loads(s)
    except ValueError:
        return None


def material_to_dict(m: StudyMaterial) -> dict[str, Any]:
    return {
        "id": m.id,
        "user_id": m.user_id,
        "title": m.title,
        "content": m.content,
        "file_type": m.file_type,
        "file_path": m.file_path,
        "needs_extraction": m.needs_extraction,
        "status": m.status,
        "created_at": m.created_at.isoformat() if m.created_at else None,
        "updated_at": m.updated_at.isoformat() if m.updated_at else None,
    }


def content_to_dict(row: GeneratedContent) -> dict[str, Any]:
    return {
        "id": row.id,
        "study_material_id": row.study_material_id,
        "content_type": row.content_type,
        "title": row.title,
        "content": _safe_json_loads(row.content),
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


# ----------------------------
# Async store used by the processor
# ----------------------------

class MaterialStore:
    """
    Persistence collaborator for the processor.

    Each call opens its own short-lived session and runs in a worker thread,
    so concurrent invocations never share a session.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def _run(self, fn, *args):
        db = self.session_factory()
        try:
            return fn(db, *args)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        finally:
            db.close()

    async def set_status(self, material_id: str, status: str) -> StudyMaterial:
        m = await asyncio.to_thread(self._run, set_material_status, material_id, status)
        logger.info("material %s status=%s", material_id, status)
        return m

    async def insert_content(
        self,
        material_id: str,
        content_type: str,
        title: str,
        payload: dict[str, Any],
    ) -> str:
        row = await asyncio.to_thread(
            self._run, insert_generated_content, material_id, content_type, title, payload
        )
        return row.id
