import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import relationship
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    # Python-side default keeps microseconds so same-second rows still order
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Profile(TimestampMixin, Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    role = Column(String(16), nullable=False, default="student")
    phone = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    linkedin_url = Column(String, nullable=True)
    github_url = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    theme_preference = Column(String(16), nullable=True, default="system")

    student_profile = relationship(
        "StudentProfile", back_populates="profile", uselist=False, cascade="all, delete-orphan"
    )
    alumni_profile = relationship(
        "AlumniProfile", back_populates="profile", uselist=False, cascade="all, delete-orphan"
    )
    jobs = relationship("Job", back_populates="alumni", foreign_keys="Job.alumni_id")
    badges = relationship("Badge", back_populates="profile", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class StudentProfile(TimestampMixin, Base):
    __tablename__ = "student_profiles"

    id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    student_id = Column(String, nullable=True)
    college_name = Column(String, nullable=True)
    university = Column(String, nullable=True)
    department = Column(String, nullable=True)
    stream = Column(String, nullable=True)
    graduation_year = Column(Integer, nullable=True)
    cgpa = Column(Float, nullable=True)
    skills = Column(JSON, nullable=True)
    certifications = Column(JSON, nullable=True)
    projects = Column(JSON, nullable=True)
    internships = Column(JSON, nullable=True)
    achievements = Column(JSON, nullable=True)
    job_type_preference = Column(String, nullable=True)
    placement_readiness_score = Column(Integer, nullable=True)
    resume_url = Column(String, nullable=True)
    resume_text = Column(Text, nullable=True)

    profile = relationship("Profile", back_populates="student_profile")


class AlumniProfile(TimestampMixin, Base):
    __tablename__ = "alumni_profiles"

    id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    company = Column(String, nullable=True)
    designation = Column(String, nullable=True)
    department = Column(String, nullable=True)
    university = Column(String, nullable=True)
    graduation_year = Column(Integer, nullable=True)
    experience_years = Column(Integer, nullable=True)
    domain = Column(String, nullable=True)
    availability_for_mentorship = Column(Boolean, nullable=True, default=False)
    availability_for_referrals = Column(Boolean, nullable=True, default=False)

    profile = relationship("Profile", back_populates="alumni_profile")


class Job(TimestampMixin, Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=_uuid)
    alumni_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    company = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String, nullable=True)
    job_type = Column(String, nullable=True)
    salary_range = Column(String, nullable=True)
    external_url = Column(String, nullable=True)
    interview_questions = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=True, default=True)
    requirements = Column(JSON, nullable=True)
    keywords = Column(JSON, nullable=True)
    preferred_colleges = Column(JSON, nullable=True)

    alumni = relationship("Profile", back_populates="jobs", foreign_keys=[alumni_id])
    applications = relationship("JobApplication", back_populates="job", cascade="all, delete-orphan")
    matches = relationship("JobMatch", back_populates="job", cascade="all, delete-orphan")
    referrals = relationship("Referral", back_populates="job", cascade="all, delete-orphan")


class JobApplication(TimestampMixin, Base):
    __tablename__ = "job_applications"

    id = Column(String(36), primary_key=True, default=_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="applied")
    cover_letter = Column(Text, nullable=True)
    applied_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    job = relationship("Job", back_populates="applications")
    student = relationship("Profile", foreign_keys=[student_id])


class MentorshipRequest(TimestampMixin, Base):
    __tablename__ = "mentorship_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    student_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    alumni_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    message = Column(Text, nullable=True)
    topics = Column(JSON, nullable=True)
    status = Column(String(32), nullable=True, default="pending")
    alumni_response = Column(Text, nullable=True)

    student = relationship("Profile", foreign_keys=[student_id])
    alumni = relationship("Profile", foreign_keys=[alumni_id])


class Referral(TimestampMixin, Base):
    __tablename__ = "referrals"

    id = Column(String(36), primary_key=True, default=_uuid)
    student_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    alumni_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=True)
    status = Column(String(32), nullable=True, default="pending")
    alumni_response = Column(Text, nullable=True)

    student = relationship("Profile", foreign_keys=[student_id])
    alumni = relationship("Profile", foreign_keys=[alumni_id])
    job = relationship("Job", back_populates="referrals")


class Message(TimestampMixin, Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    sender_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    receiver_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    sender = relationship("Profile", foreign_keys=[sender_id])
    receiver = relationship("Profile", foreign_keys=[receiver_id])


class Badge(Base):
    __tablename__ = "badges"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    badge_name = Column(String, nullable=False)
    badge_type = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    earned_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    profile = relationship("Profile", back_populates="badges")


class JobMatch(Base):
    __tablename__ = "job_matches"
    __table_args__ = (UniqueConstraint("job_id", "student_id", name="uq_job_matches_job_student"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    similarity_score = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    job = relationship("Job", back_populates="matches")
    student = relationship("Profile", foreign_keys=[student_id])
