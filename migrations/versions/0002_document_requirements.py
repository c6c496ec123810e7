"""Add document requirement catalog"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0002_document_requirements"
down_revision = "0001_lms_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "document_requirements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("required_at_status", sa.String(length=30), nullable=False),
        sa.Column("doc_type", sa.String(length=100), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "required_at_status", "doc_type", name="uq_document_requirements_status_doc_type"
        ),
    )


def downgrade() -> None:
    op.drop_table("document_requirements")
