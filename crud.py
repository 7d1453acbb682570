import uuid
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

import models
import schemas


# --- Profile CRUD ---
def get_profile(db: Session, profile_id: str):
    """Get a profile by its primary key ID."""
    return db.query(models.Profile).filter(models.Profile.id == profile_id).first()


def get_profile_by_email(db: Session, email: str):
    return db.query(models.Profile).filter(models.Profile.email == email.lower()).first()


def create_profile(db: Session, profile: schemas.ProfileCreate):
    db_profile = models.Profile(
        id=profile.id or str(uuid.uuid4()),
        email=profile.email.lower(),
        first_name=profile.first_name,
        last_name=profile.last_name,
        role=profile.role.value,
    )
    # Every student/alumni account starts with an empty extension record
    if profile.role.value == "student":
        db_profile.student_profile = models.StudentProfile(id=db_profile.id)
    elif profile.role.value == "alumni":
        db_profile.alumni_profile = models.AlumniProfile(id=db_profile.id)
    db.add(db_profile)
    db.flush()  # Assign defaults without committing
    db.refresh(db_profile)
    return db_profile


def update_profile(db: Session, db_profile: models.Profile, update: schemas.ProfileUpdate):
    for field, value in update.model_dump(exclude_unset=True).items():
        if field == "theme_preference" and value is not None:
            value = value.value
        setattr(db_profile, field, value)
    db.add(db_profile)
    db.flush()
    return db_profile


def set_avatar_url(db: Session, db_profile: models.Profile, avatar_url: str):
    db_profile.avatar_url = avatar_url
    db.add(db_profile)
    db.flush()
    return db_profile


def list_alumni(db: Session, mentorship_only: bool = False):
    query = (
        db.query(models.Profile)
        .outerjoin(models.AlumniProfile, models.AlumniProfile.id == models.Profile.id)
        .filter(models.Profile.role == "alumni")
    )
    if mentorship_only:
        query = query.filter(models.AlumniProfile.availability_for_mentorship.is_(True))
    return query.order_by(models.Profile.first_name, models.Profile.last_name).all()


# --- Role extension CRUD ---
def get_student_profile(db: Session, profile_id: str):
    return db.get(models.StudentProfile, profile_id)


def upsert_student_profile(db: Session, profile_id: str, data: schemas.StudentProfileUpdate):
    # Read-then-write, same as the upsert the web client issued
    db_student = db.get(models.StudentProfile, profile_id)
    if db_student is None:
        db_student = models.StudentProfile(id=profile_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(db_student, field, value)
    db.add(db_student)
    db.flush()
    return db_student


def get_alumni_profile(db: Session, profile_id: str):
    return db.get(models.AlumniProfile, profile_id)


def upsert_alumni_profile(db: Session, profile_id: str, data: schemas.AlumniProfileUpdate):
    db_alumni = db.get(models.AlumniProfile, profile_id)
    if db_alumni is None:
        db_alumni = models.AlumniProfile(id=profile_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(db_alumni, field, value)
    db.add(db_alumni)
    db.flush()
    return db_alumni


# --- Badge CRUD ---
def get_badges_for_profile(db: Session, profile_id: str):
    return (
        db.query(models.Badge)
        .filter(models.Badge.user_id == profile_id)
        .order_by(models.Badge.earned_at.desc())
        .all()
    )


def create_badge(db: Session, badge: schemas.BadgeCreate):
    db_badge = models.Badge(**badge.model_dump())
    db.add(db_badge)
    db.flush()
    return db_badge


# --- Job CRUD ---
def create_job(db: Session, job: schemas.JobCreate, alumni_id: str):
    """Creates a new job posting owned by an alumni profile."""
    db_job = models.Job(alumni_id=alumni_id, **job.model_dump())
    db.add(db_job)
    db.flush()
    return db_job


def get_job(db: Session, job_id: str):
    return db.query(models.Job).filter(models.Job.id == job_id).first()


def get_job_for_owner(db: Session, job_id: str, alumni_id: str):
    return (
        db.query(models.Job)
        .filter(models.Job.id == job_id, models.Job.alumni_id == alumni_id)
        .first()
    )


def get_active_jobs(db: Session):
    """Active postings, newest first."""
    return (
        db.query(models.Job)
        .filter(models.Job.is_active.is_(True))
        .order_by(models.Job.created_at.desc())
        .all()
    )


def get_jobs_for_alumni_with_counts(db: Session, alumni_id: str):
    """Returns (job, application_count) pairs for the alumni's own postings."""
    counts = (
        db.query(
            models.JobApplication.job_id.label("job_id"),
            func.count(models.JobApplication.id).label("applications_count"),
        )
        .group_by(models.JobApplication.job_id)
        .subquery()
    )
    return (
        db.query(models.Job, func.coalesce(counts.c.applications_count, 0))
        .outerjoin(counts, counts.c.job_id == models.Job.id)
        .filter(models.Job.alumni_id == alumni_id)
        .order_by(models.Job.created_at.desc())
        .all()
    )


def update_job(db: Session, db_job: models.Job, job: schemas.JobCreate):
    for field, value in job.model_dump().items():
        setattr(db_job, field, value)
    db.add(db_job)
    db.flush()
    return db_job


def set_job_active(db: Session, db_job: models.Job, is_active: bool):
    db_job.is_active = is_active
    db.add(db_job)
    db.flush()
    return db_job


def delete_job(db: Session, job_id: str, alumni_id: str) -> bool:
    """Delete a job owned by the given alumni; False if not found or not theirs."""
    db_job = get_job_for_owner(db, job_id=job_id, alumni_id=alumni_id)
    if not db_job:
        return False

    db.delete(db_job)
    db.flush()
    return True


# --- Job application CRUD ---
def get_application(db: Session, application_id: str):
    return (
        db.query(models.JobApplication)
        .filter(models.JobApplication.id == application_id)
        .first()
    )


def find_application(db: Session, job_id: str, student_id: str) -> Optional[models.JobApplication]:
    return (
        db.query(models.JobApplication)
        .filter(
            models.JobApplication.job_id == job_id,
            models.JobApplication.student_id == student_id,
        )
        .first()
    )


def create_application(db: Session, job_id: str, student_id: str, cover_letter: Optional[str] = None):
    db_application = models.JobApplication(
        job_id=job_id,
        student_id=student_id,
        status="applied",
        cover_letter=cover_letter,
    )
    db.add(db_application)
    db.flush()
    return db_application


def get_applications_for_student(db: Session, student_id: str):
    return (
        db.query(models.JobApplication)
        .filter(models.JobApplication.student_id == student_id)
        .order_by(models.JobApplication.created_at.desc())
        .all()
    )


def get_applications_for_alumni(db: Session, alumni_id: str):
    """Applications to any job the alumni owns, most recently applied first."""
    return (
        db.query(models.JobApplication)
        .join(models.Job, models.Job.id == models.JobApplication.job_id)
        .filter(models.Job.alumni_id == alumni_id)
        .order_by(models.JobApplication.applied_at.desc())
        .all()
    )


def set_application_status(db: Session, db_application: models.JobApplication, status: str):
    db_application.status = status
    db.add(db_application)
    db.flush()
    return db_application


# --- Job match CRUD ---
def replace_job_matches(db: Session, student_id: str, scores: dict[str, int]):
    # Bulk delete runs immediately, so the unique (job, student) pair is free again
    db.query(models.JobMatch).filter(models.JobMatch.student_id == student_id).delete(
        synchronize_session=False
    )
    rows = [
        models.JobMatch(job_id=job_id, student_id=student_id, similarity_score=float(score))
        for job_id, score in scores.items()
    ]
    db.add_all(rows)
    db.flush()
    return rows


# --- Mentorship CRUD ---
def create_mentorship_request(db: Session, student_id: str, request: schemas.MentorshipCreate):
    db_request = models.MentorshipRequest(
        student_id=student_id,
        alumni_id=request.alumni_id,
        message=request.message,
        topics=request.topics,
        status="pending",
    )
    db.add(db_request)
    db.flush()
    return db_request


def get_mentorship_request(db: Session, request_id: str):
    return db.get(models.MentorshipRequest, request_id)


def get_mentorship_requests_for_alumni(db: Session, alumni_id: str):
    return (
        db.query(models.MentorshipRequest)
        .filter(models.MentorshipRequest.alumni_id == alumni_id)
        .order_by(models.MentorshipRequest.created_at.desc())
        .all()
    )


def get_mentorship_requests_for_student(db: Session, student_id: str):
    return (
        db.query(models.MentorshipRequest)
        .filter(models.MentorshipRequest.student_id == student_id)
        .order_by(models.MentorshipRequest.created_at.desc())
        .all()
    )


def respond_to_mentorship_request(
    db: Session, db_request: models.MentorshipRequest, status: str, response: Optional[str]
):
    db_request.status = status
    db_request.alumni_response = response
    db.add(db_request)
    db.flush()
    return db_request


# --- Referral CRUD ---
def create_referral(db: Session, student_id: str, alumni_id: str, job_id: str, message: Optional[str]):
    db_referral = models.Referral(
        student_id=student_id,
        alumni_id=alumni_id,
        job_id=job_id,
        message=message,
        status="pending",
    )
    db.add(db_referral)
    db.flush()
    return db_referral


def get_referral(db: Session, referral_id: str):
    return db.get(models.Referral, referral_id)


def get_referrals_for_profile(db: Session, profile_id: str):
    """Referrals the profile asked for or was asked for, newest first."""
    return (
        db.query(models.Referral)
        .filter(
            or_(
                models.Referral.student_id == profile_id,
                models.Referral.alumni_id == profile_id,
            )
        )
        .order_by(models.Referral.created_at.desc())
        .all()
    )


def respond_to_referral(db: Session, db_referral: models.Referral, status: str, response: Optional[str]):
    db_referral.status = status
    if response is not None:
        db_referral.alumni_response = response
    db.add(db_referral)
    db.flush()
    return db_referral


# --- Message CRUD ---
def create_message(db: Session, sender_id: str, message: schemas.MessageCreate):
    db_message = models.Message(
        sender_id=sender_id,
        receiver_id=message.receiver_id,
        content=message.content,
    )
    db.add(db_message)
    db.flush()
    return db_message


def get_messages_for_profile(db: Session, profile_id: str):
    """Every message the profile sent or received, newest first."""
    return (
        db.query(models.Message)
        .filter(
            or_(
                models.Message.sender_id == profile_id,
                models.Message.receiver_id == profile_id,
            )
        )
        .order_by(models.Message.created_at.desc())
        .all()
    )


def get_thread(db: Session, profile_id: str, other_id: str):
    """Messages between two profiles in both directions, oldest first."""
    return (
        db.query(models.Message)
        .filter(
            or_(
                and_(models.Message.sender_id == profile_id, models.Message.receiver_id == other_id),
                and_(models.Message.sender_id == other_id, models.Message.receiver_id == profile_id),
            )
        )
        .order_by(models.Message.created_at.asc())
        .all()
    )
