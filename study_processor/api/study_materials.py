from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from study_processor.db.session import get_db
from study_processor.services.study_materials import (
    content_to_dict,
    create_material,
    get_material,
    list_generated_content,
    material_to_dict,
)

router = APIRouter(prefix="/study-materials", tags=["study_materials"])


class StudyMaterialCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    content: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    file_type: str | None = Field(default=None, alias="fileType")
    file_path: str | None = Field(default=None, alias="filePath")
    needs_extraction: bool = Field(default=False, alias="needsExtraction")


@router.post("")
def create_study_material(req: StudyMaterialCreateRequest, db: Session = Depends(get_db)):
    title = (req.title or "").strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    if req.needs_extraction and not req.file_path:
        raise HTTPException(status_code=400, detail="filePath is required when needsExtraction is set")

    m = create_material(
        db,
        title=title,
        content=req.content,
        user_id=req.user_id,
        file_type=req.file_type,
        file_path=req.file_path,
        needs_extraction=req.needs_extraction,
    )
    return {"ok": True, "study_material": material_to_dict(m)}


@router.get("/{material_id}")
def get_study_material(material_id: str, db: Session = Depends(get_db)):
    m = get_material(db, material_id)
    if not m:
        raise HTTPException(status_code=404, detail="Study material not found")
    return {"ok": True, "study_material": material_to_dict(m)}


@router.get("/{material_id}/ai-content")
def get_ai_content(material_id: str, db: Session = Depends(get_db)):
    m = get_material(db, material_id)
    if not m:
        raise HTTPException(status_code=404, detail="Study material not found")

    rows = list_generated_content(db, material_id)
    return {"ok": True, "study_material_id": material_id, "items": [content_to_dict(r) for r in rows]}
