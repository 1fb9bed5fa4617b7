"""request comments (public and staff-internal)

Revision ID: 0002_request_comments
Revises: 0001_init
Create Date: 2026-10-19 15:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = "0002_request_comments"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "request_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "request_id", sa.Integer(),
            sa.ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("is_internal", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_request_comments_request_id", "request_comments", ["request_id"])
    op.create_index("ix_request_comments_author_id", "request_comments", ["author_id"])


def downgrade() -> None:
    op.drop_index("ix_request_comments_author_id", table_name="request_comments")
    op.drop_index("ix_request_comments_request_id", table_name="request_comments")
    op.drop_table("request_comments")
