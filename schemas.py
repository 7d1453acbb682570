from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from workflows import ThemePreference, UserRole


def _split_list(value: Any, separator: str) -> Any:
    """Accept the form-style strings the web client sends for list fields."""
    if value is None:
        return value
    if isinstance(value, str):
        value = value.split(separator)
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return value


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Profiles ---
class ProfileCreate(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole = UserRole.student
    # Auth backends hand out the account id; local signups get a fresh UUID
    id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_must_look_valid(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_url: Optional[str] = None
    theme_preference: Optional[ThemePreference] = None


class ProfileSummary(ORMModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    avatar_url: Optional[str] = None


class Profile(ProfileSummary):
    email: str
    phone: Optional[str] = None
    bio: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_url: Optional[str] = None
    theme_preference: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StudentProfileUpdate(BaseModel):
    student_id: Optional[str] = None
    college_name: Optional[str] = None
    university: Optional[str] = None
    department: Optional[str] = None
    stream: Optional[str] = None
    graduation_year: Optional[int] = None
    cgpa: Optional[float] = None
    skills: Optional[List[str]] = None
    certifications: Optional[List[str]] = None
    projects: Optional[List[dict[str, Any]]] = None
    internships: Optional[List[dict[str, Any]]] = None
    achievements: Optional[List[dict[str, Any]]] = None
    job_type_preference: Optional[str] = None
    resume_url: Optional[str] = None

    @field_validator("skills", mode="before")
    @classmethod
    def split_skills(cls, v):
        return _split_list(v, ",")

    @field_validator("certifications", mode="before")
    @classmethod
    def split_certifications(cls, v):
        return _split_list(v, "\n")


class StudentProfile(ORMModel):
    id: str
    student_id: Optional[str] = None
    college_name: Optional[str] = None
    university: Optional[str] = None
    department: Optional[str] = None
    stream: Optional[str] = None
    graduation_year: Optional[int] = None
    cgpa: Optional[float] = None
    skills: Optional[List[str]] = None
    certifications: Optional[List[str]] = None
    projects: Optional[List[dict[str, Any]]] = None
    internships: Optional[List[dict[str, Any]]] = None
    achievements: Optional[List[dict[str, Any]]] = None
    job_type_preference: Optional[str] = None
    placement_readiness_score: Optional[int] = None
    resume_url: Optional[str] = None


class AlumniProfileUpdate(BaseModel):
    company: Optional[str] = None
    designation: Optional[str] = None
    department: Optional[str] = None
    university: Optional[str] = None
    graduation_year: Optional[int] = None
    experience_years: Optional[int] = None
    domain: Optional[str] = None
    availability_for_mentorship: Optional[bool] = None
    availability_for_referrals: Optional[bool] = None


class AlumniProfile(ORMModel):
    id: str
    company: Optional[str] = None
    designation: Optional[str] = None
    department: Optional[str] = None
    university: Optional[str] = None
    graduation_year: Optional[int] = None
    experience_years: Optional[int] = None
    domain: Optional[str] = None
    availability_for_mentorship: Optional[bool] = None
    availability_for_referrals: Optional[bool] = None


class AlumniDirectoryEntry(BaseModel):
    profile: ProfileSummary
    alumni_profile: Optional[AlumniProfile] = None


class AvatarUploadResult(BaseModel):
    avatar_url: str


# --- Badges ---
class BadgeCreate(BaseModel):
    user_id: str
    badge_name: str
    badge_type: str
    description: Optional[str] = None


class Badge(ORMModel):
    id: str
    user_id: str
    badge_name: str
    badge_type: str
    description: Optional[str] = None
    earned_at: datetime


# --- Jobs ---
class JobCreate(BaseModel):
    title: str
    company: str
    description: str
    location: Optional[str] = None
    job_type: Optional[str] = "full-time"
    salary_range: Optional[str] = None
    external_url: Optional[str] = None
    interview_questions: Optional[str] = None
    is_active: bool = True
    requirements: List[str] = []
    keywords: List[str] = []
    preferred_colleges: List[str] = []

    @field_validator("title", "company", "description")
    @classmethod
    def required_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("requirements", mode="before")
    @classmethod
    def split_requirements(cls, v):
        return _split_list(v, "\n") or []

    @field_validator("keywords", "preferred_colleges", mode="before")
    @classmethod
    def split_keywords(cls, v):
        return _split_list(v, ",") or []


class JobActiveUpdate(BaseModel):
    is_active: bool


class JobSummary(ORMModel):
    id: str
    title: str
    company: str
    location: Optional[str] = None
    alumni_id: str
    keywords: Optional[List[str]] = None


class Job(JobSummary):
    description: str
    job_type: Optional[str] = None
    salary_range: Optional[str] = None
    external_url: Optional[str] = None
    interview_questions: Optional[str] = None
    is_active: Optional[bool] = None
    requirements: Optional[List[str]] = None
    preferred_colleges: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime


class JobWithCount(Job):
    applications_count: int = 0


class JobRecommendation(BaseModel):
    job: Job
    match_score: int


# --- Applications ---
class ApplicationCreate(BaseModel):
    cover_letter: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class Application(ORMModel):
    id: str
    job_id: str
    student_id: str
    status: str
    cover_letter: Optional[str] = None
    applied_at: datetime
    created_at: datetime
    updated_at: datetime
    job: Optional[JobSummary] = None


class ContactProfile(ProfileSummary):
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_url: Optional[str] = None


class ApplicationWithStudent(Application):
    student: Optional[ContactProfile] = None
    student_profile: Optional[StudentProfile] = None
    match_score: int = 0


# --- Mentorship ---
class MentorshipCreate(BaseModel):
    alumni_id: str
    message: Optional[str] = None
    topics: List[str] = []

    @field_validator("topics", mode="before")
    @classmethod
    def split_topics(cls, v):
        return _split_list(v, ",") or []


class MentorshipRespond(BaseModel):
    status: str
    response: Optional[str] = None


class MentorshipRequest(ORMModel):
    id: str
    student_id: str
    alumni_id: str
    message: Optional[str] = None
    topics: Optional[List[str]] = None
    status: Optional[str] = None
    alumni_response: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MentorshipRequestForAlumni(MentorshipRequest):
    student: Optional[ContactProfile] = None
    student_profile: Optional[StudentProfile] = None


class MentorshipRequestForStudent(MentorshipRequest):
    alumni: Optional[ContactProfile] = None
    alumni_profile: Optional[AlumniProfile] = None


# --- Referrals ---
class ReferralCreate(BaseModel):
    job_id: str
    # Defaults to the alumni who posted the job
    alumni_id: Optional[str] = None
    message: Optional[str] = None


class ReferralRespond(BaseModel):
    status: str
    response: Optional[str] = None


class Referral(ORMModel):
    id: str
    student_id: str
    alumni_id: str
    job_id: str
    message: Optional[str] = None
    status: Optional[str] = None
    alumni_response: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    job: Optional[JobSummary] = None
    student: Optional[ProfileSummary] = None
    alumni: Optional[ProfileSummary] = None


# --- Messages ---
class MessageCreate(BaseModel):
    receiver_id: str
    content: str

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class Message(ORMModel):
    id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime
    sender: Optional[ProfileSummary] = None
    receiver: Optional[ProfileSummary] = None


class Conversation(BaseModel):
    other_id: str
    display_name: Optional[str] = None
    role: Optional[str] = None
    avatar_url: Optional[str] = None
    last_message: Message
    message_count: int
