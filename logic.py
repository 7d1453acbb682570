import math
from typing import Any, Iterable, Optional, Sequence

import structlog
from aws_embedded_metrics import metric_scope
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

import crud
import models
import schemas
from workflows import UserRole, check_transition

# Set up logging
logger = structlog.get_logger(__name__)

DEFAULT_MENTORSHIP_REJECTION = (
    "Unfortunately, I cannot take on additional mentorship commitments at this time."
)


# ---------------------------------------------------------------------------
# Skill matching
# ---------------------------------------------------------------------------
def calculate_match_score(skills: Optional[Sequence[Any]], keywords: Optional[Sequence[Any]]) -> int:
    """Percentage of job keywords covered by the student's skills.

    A keyword counts as covered when any skill contains it as a
    case-insensitive substring. Missing or empty inputs score 0.
    """
    if not skills or not keywords or not isinstance(skills, (list, tuple)):
        return 0

    student_skills = [str(skill).lower() for skill in skills]
    matching = [
        keyword
        for keyword in keywords
        if any(str(keyword).lower() in skill for skill in student_skills)
    ]
    # Half-up rounding, the way the web client displayed it
    return int(math.floor(len(matching) / len(keywords) * 100 + 0.5))


def recommend_jobs(db: Session, student: models.Profile) -> list[tuple[models.Job, int]]:
    """Score every active job against the student's skills and persist the scores."""
    student_profile = crud.get_student_profile(db, student.id)
    skills = student_profile.skills if student_profile else None

    jobs = crud.get_active_jobs(db)
    scored = [(job, calculate_match_score(skills, job.keywords)) for job in jobs]
    crud.replace_job_matches(db, student.id, {job.id: score for job, score in scored})

    # sorted() is stable, so equal scores keep the newest-first job order
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    logger.info("Recommended jobs", profile_id=student.id, jobs=len(scored))
    return scored


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------
def aggregate_conversations(messages: Iterable[models.Message], profile_id: str) -> list[schemas.Conversation]:
    """Group a newest-first message list into one summary per counterparty."""
    conversations: dict[str, dict[str, Any]] = {}

    for message in messages:
        if message.sender_id == profile_id:
            other_id, other = message.receiver_id, message.receiver
        else:
            other_id, other = message.sender_id, message.sender

        entry = conversations.get(other_id)
        if entry is None:
            conversations[other_id] = {
                "other_id": other_id,
                "display_name": other.display_name if other is not None else None,
                "role": other.role if other is not None else None,
                "avatar_url": other.avatar_url if other is not None else None,
                "last_message": message,
                "message_count": 1,
            }
            continue

        entry["message_count"] += 1
        if message.created_at > entry["last_message"].created_at:
            entry["last_message"] = message

    ordered = sorted(
        conversations.values(),
        key=lambda entry: entry["last_message"].created_at,
        reverse=True,
    )
    return [
        schemas.Conversation(
            **{**entry, "last_message": schemas.Message.model_validate(entry["last_message"])}
        )
        for entry in ordered
    ]


@metric_scope
async def send_message(db: Session, sender: models.Profile, message: schemas.MessageCreate, metrics=None):
    if message.receiver_id == sender.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot message yourself")

    receiver = crud.get_profile(db, message.receiver_id)
    if not receiver:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")

    db_message = crud.create_message(db, sender_id=sender.id, message=message)
    db.commit()
    db.refresh(db_message)
    metrics.put_metric("messages_sent", 1, "Count")
    logger.info("Message sent", message_id=db_message.id, sender_id=sender.id, receiver_id=receiver.id)
    return db_message


# ---------------------------------------------------------------------------
# Job applications
# ---------------------------------------------------------------------------
@metric_scope
async def submit_application(
    db: Session,
    job_id: str,
    student: models.Profile,
    cover_letter: Optional[str] = None,
    metrics=None,
):
    """Apply the student to a job unless an application already exists.

    The lookup and the insert are separate round trips; two concurrent
    submissions can both pass the lookup.
    """
    metrics.set_property("job_id", job_id)

    job = crud.get_job(db, job_id)
    if not job or not job.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    if crud.find_application(db, job_id=job_id, student_id=student.id):
        metrics.put_metric("applications_duplicate", 1, "Count")
        logger.warning("Duplicate application rejected", job_id=job_id, profile_id=student.id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You have already applied for this job")

    application = crud.create_application(db, job_id=job_id, student_id=student.id, cover_letter=cover_letter)
    db.commit()
    db.refresh(application)
    metrics.put_metric("applications_submitted", 1, "Count")
    logger.info("Application submitted", application_id=application.id, job_id=job_id, profile_id=student.id)
    return application


def change_application_status(db: Session, actor: models.Profile, application_id: str, new_status: str):
    application = crud.get_application(db, application_id)
    # Applications to other alumni's jobs are invisible, not forbidden
    if not application or (actor.role != UserRole.admin.value and application.job.alumni_id != actor.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")

    new_status = check_transition("application", application.status, new_status)
    previous = application.status
    crud.set_application_status(db, application, new_status)
    logger.info(
        "Application status updated",
        application_id=application.id,
        previous=previous,
        status=new_status,
    )
    return application


def build_application_view(application: models.JobApplication) -> schemas.ApplicationWithStudent:
    """Alumni-side view: the application joined with the student and their extension."""
    student_profile = application.student.student_profile if application.student else None
    skills = student_profile.skills if student_profile else None
    keywords = application.job.keywords if application.job else None

    view = schemas.ApplicationWithStudent.model_validate(application)
    view.student_profile = (
        schemas.StudentProfile.model_validate(student_profile) if student_profile else None
    )
    view.match_score = calculate_match_score(skills, keywords)
    return view


def filter_applications(
    views: Iterable[schemas.ApplicationWithStudent],
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
) -> list[schemas.ApplicationWithStudent]:
    """Status filter plus case-insensitive search over student name and job title."""
    term = (search or "").strip().lower()
    results = []
    for view in views:
        if status_filter and status_filter != "all" and view.status != status_filter:
            continue
        if term:
            haystack = [
                view.student.first_name if view.student else None,
                view.student.last_name if view.student else None,
                view.job.title if view.job else None,
            ]
            if not any(value and term in value.lower() for value in haystack):
                continue
        results.append(view)
    return results


# ---------------------------------------------------------------------------
# Mentorship
# ---------------------------------------------------------------------------
def request_mentorship(db: Session, student: models.Profile, request: schemas.MentorshipCreate):
    alumni = crud.get_profile(db, request.alumni_id)
    if not alumni or alumni.role != UserRole.alumni.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alumni not found")

    alumni_profile = crud.get_alumni_profile(db, alumni.id)
    if not alumni_profile or not alumni_profile.availability_for_mentorship:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This alumni is not available for mentorship",
        )

    db_request = crud.create_mentorship_request(db, student_id=student.id, request=request)
    logger.info("Mentorship requested", request_id=db_request.id, profile_id=student.id, alumni_id=alumni.id)
    return db_request


@metric_scope
async def respond_to_mentorship(
    db: Session,
    alumni: models.Profile,
    request_id: str,
    new_status: str,
    response: Optional[str] = None,
    metrics=None,
):
    """Alumni answer to a mentorship request.

    Accepting needs a written response; rejecting without one stores the
    default rejection text.
    """
    db_request = crud.get_mentorship_request(db, request_id)
    if not db_request or db_request.alumni_id != alumni.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mentorship request not found")

    new_status = check_transition("mentorship", db_request.status or "pending", new_status)
    text = (response or "").strip()
    if new_status == "accepted" and not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please write a response message")
    if new_status == "rejected" and not text:
        text = DEFAULT_MENTORSHIP_REJECTION

    crud.respond_to_mentorship_request(db, db_request, new_status, text or db_request.alumni_response)
    db.commit()
    db.refresh(db_request)
    metrics.put_metric(f"mentorship_{new_status}", 1, "Count")
    logger.info("Mentorship response sent", request_id=request_id, status=new_status)
    return db_request


def build_mentorship_for_alumni(db_request: models.MentorshipRequest) -> schemas.MentorshipRequestForAlumni:
    view = schemas.MentorshipRequestForAlumni.model_validate(db_request)
    student_profile = db_request.student.student_profile if db_request.student else None
    view.student_profile = schemas.StudentProfile.model_validate(student_profile) if student_profile else None
    return view


def build_mentorship_for_student(db_request: models.MentorshipRequest) -> schemas.MentorshipRequestForStudent:
    view = schemas.MentorshipRequestForStudent.model_validate(db_request)
    alumni_profile = db_request.alumni.alumni_profile if db_request.alumni else None
    view.alumni_profile = schemas.AlumniProfile.model_validate(alumni_profile) if alumni_profile else None
    return view


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------
def request_referral(db: Session, student: models.Profile, request: schemas.ReferralCreate):
    job = crud.get_job(db, request.job_id)
    if not job or not job.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    alumni_id = request.alumni_id or job.alumni_id
    alumni = crud.get_profile(db, alumni_id)
    if not alumni or alumni.role != UserRole.alumni.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alumni not found")

    if alumni_id != job.alumni_id:
        alumni_profile = crud.get_alumni_profile(db, alumni_id)
        if not alumni_profile or not alumni_profile.availability_for_referrals:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This alumni is not available for referrals",
            )

    referral = crud.create_referral(
        db, student_id=student.id, alumni_id=alumni_id, job_id=job.id, message=request.message
    )
    logger.info("Referral requested", referral_id=referral.id, job_id=job.id, alumni_id=alumni_id)
    return referral


def respond_to_referral(
    db: Session, alumni: models.Profile, referral_id: str, new_status: str, response: Optional[str] = None
):
    referral = crud.get_referral(db, referral_id)
    if not referral or referral.alumni_id != alumni.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Referral not found")

    new_status = check_transition("referral", referral.status or "pending", new_status)
    crud.respond_to_referral(db, referral, new_status, (response or "").strip() or None)
    logger.info("Referral response sent", referral_id=referral_id, status=new_status)
    return referral
