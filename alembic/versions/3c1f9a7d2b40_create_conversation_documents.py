"""create conversation_documents table

Revision ID: 3c1f9a7d2b40
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1f9a7d2b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create conversation_documents with its partition and expiry indexes."""
    op.create_table(
        "conversation_documents",
        sa.Column("id", sa.String(300), nullable=False),
        sa.Column("document_type", sa.String(40), nullable=True),
        sa.Column("conversation_id", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_conversation_documents_document_type"),
        "conversation_documents",
        ["document_type"],
        unique=False,
    )
    op.create_index(
        op.f("ix_conversation_documents_expires_at"),
        "conversation_documents",
        ["expires_at"],
        unique=False,
    )
    op.create_index(
        "ix_conversation_documents_partition",
        "conversation_documents",
        ["user_id", "conversation_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop conversation_documents."""
    op.drop_index("ix_conversation_documents_partition", table_name="conversation_documents")
    op.drop_index(
        op.f("ix_conversation_documents_expires_at"), table_name="conversation_documents"
    )
    op.drop_index(
        op.f("ix_conversation_documents_document_type"), table_name="conversation_documents"
    )
    op.drop_table("conversation_documents")
