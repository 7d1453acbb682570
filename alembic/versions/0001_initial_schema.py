"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("linkedin_url", sa.String(), nullable=True),
        sa.Column("github_url", sa.String(), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("theme_preference", sa.String(length=16), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    op.create_table(
        "student_profiles",
        sa.Column("id", sa.String(length=36), sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("student_id", sa.String(), nullable=True),
        sa.Column("college_name", sa.String(), nullable=True),
        sa.Column("university", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("stream", sa.String(), nullable=True),
        sa.Column("graduation_year", sa.Integer(), nullable=True),
        sa.Column("cgpa", sa.Float(), nullable=True),
        sa.Column("skills", sa.JSON(), nullable=True),
        sa.Column("certifications", sa.JSON(), nullable=True),
        sa.Column("projects", sa.JSON(), nullable=True),
        sa.Column("internships", sa.JSON(), nullable=True),
        sa.Column("achievements", sa.JSON(), nullable=True),
        sa.Column("job_type_preference", sa.String(), nullable=True),
        sa.Column("placement_readiness_score", sa.Integer(), nullable=True),
        sa.Column("resume_url", sa.String(), nullable=True),
        sa.Column("resume_text", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "alumni_profiles",
        sa.Column("id", sa.String(length=36), sa.ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("company", sa.String(), nullable=True),
        sa.Column("designation", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("university", sa.String(), nullable=True),
        sa.Column("graduation_year", sa.Integer(), nullable=True),
        sa.Column("experience_years", sa.Integer(), nullable=True),
        sa.Column("domain", sa.String(), nullable=True),
        sa.Column("availability_for_mentorship", sa.Boolean(), nullable=True),
        sa.Column("availability_for_referrals", sa.Boolean(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("alumni_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("company", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("job_type", sa.String(), nullable=True),
        sa.Column("salary_range", sa.String(), nullable=True),
        sa.Column("external_url", sa.String(), nullable=True),
        sa.Column("interview_questions", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("requirements", sa.JSON(), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=True),
        sa.Column("preferred_colleges", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_jobs_alumni_id", "jobs", ["alumni_id"])

    op.create_table(
        "job_applications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("job_id", sa.String(length=36), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("cover_letter", sa.Text(), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_job_applications_job_id", "job_applications", ["job_id"])
    op.create_index("ix_job_applications_student_id", "job_applications", ["student_id"])

    op.create_table(
        "mentorship_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("alumni_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("topics", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=True),
        sa.Column("alumni_response", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_mentorship_requests_student_id", "mentorship_requests", ["student_id"])
    op.create_index("ix_mentorship_requests_alumni_id", "mentorship_requests", ["alumni_id"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("alumni_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("job_id", sa.String(length=36), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=True),
        sa.Column("alumni_response", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_referrals_student_id", "referrals", ["student_id"])
    op.create_index("ix_referrals_alumni_id", "referrals", ["alumni_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("sender_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("receiver_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_receiver_id", "messages", ["receiver_id"])

    op.create_table(
        "badges",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_name", sa.String(), nullable=False),
        sa.Column("badge_type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_badges_user_id", "badges", ["user_id"])

    op.create_table(
        "job_matches",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("job_id", sa.String(length=36), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("similarity_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("job_id", "student_id", name="uq_job_matches_job_student"),
    )
    op.create_index("ix_job_matches_student_id", "job_matches", ["student_id"])


def downgrade() -> None:
    for table in (
        "job_matches",
        "badges",
        "messages",
        "referrals",
        "mentorship_requests",
        "job_applications",
        "jobs",
        "alumni_profiles",
        "student_profiles",
        "profiles",
    ):
        op.drop_table(table)
