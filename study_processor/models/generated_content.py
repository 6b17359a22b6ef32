from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from study_processor.db.base_class import Base


class GeneratedContent(Base):
    """
    One AI artifact for a study material. Rows are append-only:
    every successful invocation inserts a new one, nothing updates them.
    """
    __tablename__ = "ai_content"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    study_material_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("study_materials.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # summary | flashcard | quiz
    content_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)  # JSON string

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    study_material: Mapped["StudyMaterial"] = relationship(backref="ai_contents")  # noqa: F821
