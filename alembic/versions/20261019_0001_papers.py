"""Generated exam papers table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "papers",
        sa.Column("paper_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("semester", sa.String(), nullable=False),
        sa.Column("student_name", sa.String(), nullable=True),
        sa.Column("full_json_data", sa.Text(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("paper_id"),
    )
    op.create_index("ix_papers_user_id", "papers", ["user_id"], unique=False)
    op.create_index("ix_papers_job_id", "papers", ["job_id"], unique=False)
    op.create_index("ix_papers_user_created", "papers", ["user_id", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_papers_user_created", table_name="papers")
    op.drop_index("ix_papers_job_id", table_name="papers")
    op.drop_index("ix_papers_user_id", table_name="papers")
    op.drop_table("papers")
