"""create tests, questions and attempts tables

Revision ID: 3b9c0e51a7d2
Revises:
Create Date: 2024-05-01 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3b9c0e51a7d2"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "tests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("owner_telegram_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_tests_id", "tests", ["id"])
    op.create_index("ix_tests_owner_id", "tests", ["owner_id"])
    op.create_index("ix_tests_status", "tests", ["status"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("test_id", sa.Integer(), sa.ForeignKey("tests.id"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("correct_answer", sa.String(500), nullable=True),
        sa.Column("options", json_type, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_questions_id", "questions", ["id"])
    op.create_index("ix_questions_test_id", "questions", ["test_id"])

    op.create_table(
        "attempts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("test_id", sa.Integer(), sa.ForeignKey("tests.id"), nullable=False),
        sa.Column("candidate_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_spent_seconds", sa.Integer(), nullable=True),
        sa.Column("answers", json_type, nullable=False),
        sa.Column("earned_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "auto_submitted", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("tab_switches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fullscreen_exits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "copy_paste_attempts", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_suspicious", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("proctoring_events", json_type, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        # One attempt per candidate per test, enforced by the database
        sa.UniqueConstraint(
            "test_id", "candidate_id", name="uq_attempts_test_candidate"
        ),
    )
    op.create_index("ix_attempts_id", "attempts", ["id"])
    op.create_index("ix_attempts_test_id", "attempts", ["test_id"])
    op.create_index("ix_attempts_candidate_id", "attempts", ["candidate_id"])
    op.create_index(
        "ix_attempts_status_expires_at", "attempts", ["status", "expires_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_attempts_status_expires_at", table_name="attempts")
    op.drop_index("ix_attempts_candidate_id", table_name="attempts")
    op.drop_index("ix_attempts_test_id", table_name="attempts")
    op.drop_index("ix_attempts_id", table_name="attempts")
    op.drop_table("attempts")

    op.drop_index("ix_questions_test_id", table_name="questions")
    op.drop_index("ix_questions_id", table_name="questions")
    op.drop_table("questions")

    op.drop_index("ix_tests_status", table_name="tests")
    op.drop_index("ix_tests_owner_id", table_name="tests")
    op.drop_index("ix_tests_id", table_name="tests")
    op.drop_table("tests")
