"""create study_materials, ai_content and jobs

Revision ID: 4c1d7e2a9b30
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4c1d7e2a9b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "study_materials",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("file_type", sa.String(length=128), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("needs_extraction", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="uploaded"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_study_materials_user_id", "study_materials", ["user_id"])
    op.create_index("ix_study_materials_status", "study_materials", ["status"])

    op.create_table(
        "ai_content",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "study_material_id",
            sa.String(length=64),
            sa.ForeignKey("study_materials.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content_type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_ai_content_study_material_id", "ai_content", ["study_material_id"])
    op.create_index("ix_ai_content_content_type", "ai_content", ["content_type"])

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="queued"),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("error", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_index("ix_ai_content_content_type", table_name="ai_content")
    op.drop_index("ix_ai_content_study_material_id", table_name="ai_content")
    op.drop_table("ai_content")
    op.drop_index("ix_study_materials_status", table_name="study_materials")
    op.drop_index("ix_study_materials_user_id", table_name="study_materials")
    op.drop_table("study_materials")
