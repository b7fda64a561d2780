"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("theme", sa.String(length=191), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_teams"),
        sa.UniqueConstraint("name", name="uq_teams_name"),
    )

    op.create_table(
        "team_members",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("team_id", ID_TYPE, nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=191), nullable=False),
        sa.Column("email", sa.String(length=191), nullable=False),
        sa.Column("gender", sa.String(length=10), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column(
            "is_ieee_member",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("ieee_number", sa.String(length=191), nullable=True),
        sa.Column("school_standard", sa.String(length=20), nullable=True),
        sa.Column("school_id_url", sa.String(length=512), nullable=True),
        sa.Column("contact_no", sa.String(length=32), nullable=True),
        sa.Column("institute_name", sa.String(length=191), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_team_members_team_id_teams",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_team_members"),
        sa.UniqueConstraint(
            "team_id", "slot_index", name="uq_team_members_team_slot"
        ),
        sa.CheckConstraint(
            "role IN ('Leader','Member','SchoolStudent')",
            name="ck_team_members_role_enum",
        ),
        sa.CheckConstraint(
            "gender IN ('Male','Female','Other')",
            name="ck_team_members_gender_enum",
        ),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_email", "team_members", ["email"])
    op.create_index("ix_team_members_team_role", "team_members", ["team_id", "role"])

    op.create_table(
        "faculty_mentors",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("team_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("email", sa.String(length=191), nullable=False),
        sa.Column("faculty_id", sa.String(length=191), nullable=False),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_faculty_mentors_team_id_teams",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_faculty_mentors"),
        sa.UniqueConstraint("team_id", name="uq_faculty_mentors_team_id"),
    )

    op.create_table(
        "community_representatives",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("team_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("email", sa.String(length=191), nullable=False),
        sa.Column("affiliation", sa.String(length=191), nullable=False),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_community_representatives_team_id_teams",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_community_representatives"),
        sa.UniqueConstraint("team_id", name="uq_community_representatives_team_id"),
    )

    op.create_table(
        "users",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("email", sa.String(length=191), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("team_id", ID_TYPE, nullable=True),
        sa.Column(
            "deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_users_team_id_teams",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("team_id", name="uq_users_team_id"),
        sa.CheckConstraint(
            "role IN ('admin','coordinator','evaluator','participant','head')",
            name="ck_users_role_enum",
        ),
    )

    op.create_table(
        "submissions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("team_id", ID_TYPE, nullable=False),
        sa.Column("title", sa.String(length=191), nullable=True),
        sa.Column("tagline", sa.String(length=191), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("problem_statement", sa.Text(), nullable=True),
        sa.Column("demo_video_url", sa.String(length=512), nullable=True),
        sa.Column("live_link_url", sa.String(length=512), nullable=True),
        sa.Column("code_repo_url", sa.String(length=512), nullable=True),
        sa.Column("ppt_url", sa.String(length=512), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_submissions_team_id_teams",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_submissions"),
        sa.UniqueConstraint("team_id", name="uq_submissions_team_id"),
    )

    op.create_table(
        "evaluation_criteria",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_evaluation_criteria"),
    )

    op.create_table(
        "evaluations",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("submission_id", ID_TYPE, nullable=False),
        sa.Column("evaluator_id", ID_TYPE, nullable=False),
        sa.Column("total_score", sa.Float(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["submissions.id"],
            name="fk_evaluations_submission_id_submissions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["evaluator_id"],
            ["users.id"],
            name="fk_evaluations_evaluator_id_users",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_evaluations"),
        sa.UniqueConstraint(
            "submission_id",
            "evaluator_id",
            name="uq_evaluations_submission_evaluator",
        ),
    )
    op.create_index("ix_evaluations_submission_id", "evaluations", ["submission_id"])
    op.create_index("ix_evaluations_evaluator_id", "evaluations", ["evaluator_id"])

    op.create_table(
        "evaluation_scores",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("evaluation_id", ID_TYPE, nullable=False),
        sa.Column("criterion_id", ID_TYPE, nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(
            ["evaluation_id"],
            ["evaluations.id"],
            name="fk_evaluation_scores_evaluation_id_evaluations",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["criterion_id"],
            ["evaluation_criteria.id"],
            name="fk_evaluation_scores_criterion_id_evaluation_criteria",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_evaluation_scores"),
        sa.UniqueConstraint(
            "evaluation_id",
            "criterion_id",
            name="uq_evaluation_scores_evaluation_criterion",
        ),
    )
    op.create_index(
        "ix_evaluation_scores_evaluation_id", "evaluation_scores", ["evaluation_id"]
    )
    op.create_index(
        "ix_evaluation_scores_criterion_id", "evaluation_scores", ["criterion_id"]
    )


def downgrade() -> None:
    op.drop_table("evaluation_scores")
    op.drop_table("evaluations")
    op.drop_table("evaluation_criteria")
    op.drop_table("submissions")
    op.drop_table("users")
    op.drop_table("community_representatives")
    op.drop_table("faculty_mentors")
    op.drop_table("team_members")
    op.drop_table("teams")
