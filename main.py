import asyncio
import os
from typing import List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sse_starlette.sse import EventSourceResponse
import structlog

import crud
import logic
import models
import schemas
import storage
from auth import get_current_profile, require_role, verify_token
from database import SessionLocal, create_db_and_tables, get_db
from events import manager
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from settings import Settings, get_settings
from workflows import SELF_SERVICE_ROLES, UserRole


logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Campus Connect",
    description="Backend API for the Campus Connect student and alumni network",
    version="0.1.0",
)

# Tracing middleware needs the app, so observability comes right after it
init_observability(app, get_settings())

# Create DB tables on startup
create_db_and_tables()

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)

# Uploaded avatars are served straight from the media directory
os.makedirs(get_settings().media_root, exist_ok=True)
app.mount(get_settings().media_url, StaticFiles(directory=get_settings().media_root), name="media")

student_only = require_role(UserRole.student)
alumni_only = require_role(UserRole.alumni)
alumni_or_admin = require_role(UserRole.alumni, UserRole.admin)
admin_only = require_role(UserRole.admin)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Surface database rejections (constraint, type errors) as 400s."""
    original = getattr(exc, "orig", None)
    detail = str(original) if original else "Database request failed"
    logger.error("Database error", error=detail, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


def _all_connected() -> list[str]:
    return list(manager.active_connections)


@app.get("/", tags=["Meta"])
async def read_root():
    return {"name": "Campus Connect", "status": "ok"}


# Add route for favicon.ico
@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Profile Endpoints ---
@app.post("/profiles/", response_model=schemas.Profile, status_code=status.HTTP_201_CREATED, tags=["Profiles"])
def create_profile_endpoint(profile: schemas.ProfileCreate, db: Session = Depends(get_db)):
    if profile.role.value not in SELF_SERVICE_ROLES:
        raise HTTPException(status_code=400, detail="Only student and alumni accounts can sign up")
    if crud.get_profile_by_email(db, email=profile.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    if profile.id and crud.get_profile(db, profile.id):
        raise HTTPException(status_code=400, detail="Profile already exists")
    db_profile = crud.create_profile(db=db, profile=profile)
    db.commit()
    logger.info("Profile created", profile_id=db_profile.id, role=db_profile.role)
    return db_profile


@app.get("/profiles/me", response_model=schemas.Profile, tags=["Profiles"])
def get_me(current_profile: models.Profile = Depends(get_current_profile)):
    """Returns the signed-in profile record."""
    return current_profile


@app.patch("/profiles/me", response_model=schemas.Profile, tags=["Profiles"])
async def update_me(
    update: schemas.ProfileUpdate,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    profile = crud.get_profile(db, current_profile.id)
    crud.update_profile(db, profile, update)
    db.commit()
    db.refresh(profile)
    await manager.invalidate(["profile", profile.id], [profile.id])
    return profile


@app.get("/profiles/me/student", response_model=schemas.StudentProfile, tags=["Profiles"])
def get_my_student_profile(
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    student_profile = crud.get_student_profile(db, current_profile.id)
    if not student_profile:
        raise HTTPException(status_code=404, detail="Student profile not found")
    return student_profile


@app.put("/profiles/me/student", response_model=schemas.StudentProfile, tags=["Profiles"])
async def upsert_my_student_profile(
    data: schemas.StudentProfileUpdate,
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    student_profile = crud.upsert_student_profile(db, current_profile.id, data)
    db.commit()
    db.refresh(student_profile)
    logger.info("Student profile saved", profile_id=current_profile.id)
    await manager.invalidate(["student-profile", current_profile.id], [current_profile.id])
    return student_profile


@app.get("/profiles/me/alumni", response_model=schemas.AlumniProfile, tags=["Profiles"])
def get_my_alumni_profile(
    current_profile: models.Profile = Depends(alumni_only),
    db: Session = Depends(get_db),
):
    alumni_profile = crud.get_alumni_profile(db, current_profile.id)
    if not alumni_profile:
        raise HTTPException(status_code=404, detail="Alumni profile not found")
    return alumni_profile


@app.put("/profiles/me/alumni", response_model=schemas.AlumniProfile, tags=["Profiles"])
async def upsert_my_alumni_profile(
    data: schemas.AlumniProfileUpdate,
    current_profile: models.Profile = Depends(alumni_only),
    db: Session = Depends(get_db),
):
    alumni_profile = crud.upsert_alumni_profile(db, current_profile.id, data)
    db.commit()
    db.refresh(alumni_profile)
    logger.info("Alumni profile saved", profile_id=current_profile.id)
    await manager.invalidate(["alumni-profile", current_profile.id], [current_profile.id])
    return alumni_profile


@app.post("/profiles/me/avatar", response_model=schemas.AvatarUploadResult, tags=["Profiles"])
async def upload_avatar_endpoint(
    avatar: UploadFile = File(...),
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    avatar_url = await storage.save_avatar(settings, current_profile.id, avatar)
    profile = crud.get_profile(db, current_profile.id)
    crud.set_avatar_url(db, profile, avatar_url)
    db.commit()
    await manager.invalidate(["profile", profile.id], [profile.id])
    return {"avatar_url": avatar_url}


@app.get("/profiles/{profile_id}", response_model=schemas.Profile, tags=["Profiles"])
def get_profile_endpoint(
    profile_id: str,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    profile = crud.get_profile(db, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.get("/profiles/{profile_id}/badges", response_model=List[schemas.Badge], tags=["Profiles"])
def get_badges_endpoint(
    profile_id: str,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return crud.get_badges_for_profile(db, profile_id)


@app.post("/badges/", response_model=schemas.Badge, status_code=status.HTTP_201_CREATED, tags=["Profiles"])
def award_badge_endpoint(
    badge: schemas.BadgeCreate,
    current_profile: models.Profile = Depends(admin_only),
    db: Session = Depends(get_db),
):
    if not crud.get_profile(db, badge.user_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    db_badge = crud.create_badge(db, badge)
    db.commit()
    db.refresh(db_badge)
    logger.info("Badge awarded", profile_id=badge.user_id, badge=badge.badge_name)
    return db_badge


@app.get("/alumni/", response_model=List[schemas.AlumniDirectoryEntry], tags=["Profiles"])
def list_alumni_endpoint(
    mentorship: bool = False,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return [
        schemas.AlumniDirectoryEntry(
            profile=schemas.ProfileSummary.model_validate(profile),
            alumni_profile=(
                schemas.AlumniProfile.model_validate(profile.alumni_profile)
                if profile.alumni_profile
                else None
            ),
        )
        for profile in crud.list_alumni(db, mentorship_only=mentorship)
    ]


# --- Job Endpoints ---
@app.get("/jobs/", response_model=List[schemas.Job], tags=["Jobs"])
def get_jobs_endpoint(
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return crud.get_active_jobs(db)


@app.get("/jobs/mine", response_model=List[schemas.JobWithCount], tags=["Jobs"])
def get_my_jobs_endpoint(
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    return [
        schemas.JobWithCount(**schemas.Job.model_validate(job).model_dump(), applications_count=count)
        for job, count in crud.get_jobs_for_alumni_with_counts(db, current_profile.id)
    ]


@app.get("/jobs/recommended", response_model=List[schemas.JobRecommendation], tags=["Jobs"])
def get_recommended_jobs_endpoint(
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    scored = logic.recommend_jobs(db, current_profile)
    db.commit()
    return [
        schemas.JobRecommendation(job=schemas.Job.model_validate(job), match_score=score)
        for job, score in scored
    ]


@app.get("/jobs/{job_id}", response_model=schemas.Job, tags=["Jobs"])
def get_job_endpoint(
    job_id: str,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    job = crud.get_job(db, job_id)
    # Inactive postings stay visible to their owner only
    if not job or (not job.is_active and job.alumni_id != current_profile.id):
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.post("/jobs/", response_model=schemas.Job, status_code=status.HTTP_201_CREATED, tags=["Jobs"])
async def create_job_endpoint(
    job: schemas.JobCreate,
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    db_job = crud.create_job(db, job=job, alumni_id=current_profile.id)
    db.commit()
    db.refresh(db_job)
    logger.info("Job posted", job_id=db_job.id, profile_id=current_profile.id)
    await manager.invalidate(["jobs"], _all_connected())
    await manager.invalidate(["alumni-jobs", current_profile.id], [current_profile.id])
    return db_job


def _owned_job(db: Session, job_id: str, profile: models.Profile) -> models.Job:
    job = crud.get_job_for_owner(db, job_id=job_id, alumni_id=profile.id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.put("/jobs/{job_id}", response_model=schemas.Job, tags=["Jobs"])
async def update_job_endpoint(
    job_id: str,
    job: schemas.JobCreate,
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    db_job = _owned_job(db, job_id, current_profile)
    crud.update_job(db, db_job, job)
    db.commit()
    db.refresh(db_job)
    logger.info("Job updated", job_id=job_id)
    await manager.invalidate(["jobs"], _all_connected())
    return db_job


@app.patch("/jobs/{job_id}/active", response_model=schemas.Job, tags=["Jobs"])
async def set_job_active_endpoint(
    job_id: str,
    update: schemas.JobActiveUpdate,
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    db_job = _owned_job(db, job_id, current_profile)
    crud.set_job_active(db, db_job, update.is_active)
    db.commit()
    db.refresh(db_job)
    logger.info("Job active flag changed", job_id=job_id, is_active=update.is_active)
    await manager.invalidate(["jobs"], _all_connected())
    return db_job


@app.delete("/jobs/{job_id}", tags=["Jobs"])
async def delete_job_endpoint(
    job_id: str,
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    logger.info("Attempting to delete job", job_id=job_id, profile_id=current_profile.id)
    if not crud.delete_job(db=db, job_id=job_id, alumni_id=current_profile.id):
        raise HTTPException(status_code=404, detail="Job not found")
    db.commit()
    await manager.invalidate(["jobs"], _all_connected())
    return {"status": "deleted", "job_id": job_id}


@app.post(
    "/jobs/{job_id}/apply",
    response_model=schemas.Application,
    status_code=status.HTTP_201_CREATED,
    tags=["Applications"],
)
async def apply_to_job_endpoint(
    job_id: str,
    application: schemas.ApplicationCreate,
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    db_application = await logic.submit_application(
        db, job_id, current_profile, cover_letter=application.cover_letter
    )
    await manager.invalidate(["alumni-applications", db_application.job.alumni_id], [db_application.job.alumni_id])
    await manager.invalidate(["my-applications", current_profile.id], [current_profile.id])
    return db_application


# --- Application Endpoints ---
@app.get("/applications/mine", response_model=List[schemas.Application], tags=["Applications"])
def get_my_applications_endpoint(
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    return crud.get_applications_for_student(db, current_profile.id)


@app.get("/applications/received", response_model=List[schemas.ApplicationWithStudent], tags=["Applications"])
def get_received_applications_endpoint(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    views = [
        logic.build_application_view(application)
        for application in crud.get_applications_for_alumni(db, current_profile.id)
    ]
    return logic.filter_applications(views, status_filter=status_filter, search=search)


@app.patch("/applications/{application_id}/status", response_model=schemas.Application, tags=["Applications"])
async def update_application_status_endpoint(
    application_id: str,
    update: schemas.StatusUpdate,
    current_profile: models.Profile = Depends(alumni_or_admin),
    db: Session = Depends(get_db),
):
    application = logic.change_application_status(db, current_profile, application_id, update.status)
    db.commit()
    db.refresh(application)
    await manager.invalidate(["alumni-applications", application.job.alumni_id], [application.job.alumni_id])
    await manager.invalidate(["my-applications", application.student_id], [application.student_id])
    return application


# --- Mentorship Endpoints ---
@app.post(
    "/mentorship/",
    response_model=schemas.MentorshipRequest,
    status_code=status.HTTP_201_CREATED,
    tags=["Mentorship"],
)
async def create_mentorship_request_endpoint(
    request: schemas.MentorshipCreate,
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    db_request = logic.request_mentorship(db, current_profile, request)
    db.commit()
    db.refresh(db_request)
    await manager.invalidate(["mentorship-requests", db_request.alumni_id], [db_request.alumni_id])
    await manager.invalidate(["my-mentorship-requests", current_profile.id], [current_profile.id])
    return db_request


@app.get(
    "/mentorship/incoming",
    response_model=List[schemas.MentorshipRequestForAlumni],
    tags=["Mentorship"],
)
def get_incoming_mentorship_endpoint(
    current_profile: models.Profile = Depends(alumni_only),
    db: Session = Depends(get_db),
):
    return [
        logic.build_mentorship_for_alumni(db_request)
        for db_request in crud.get_mentorship_requests_for_alumni(db, current_profile.id)
    ]


@app.get(
    "/mentorship/mine",
    response_model=List[schemas.MentorshipRequestForStudent],
    tags=["Mentorship"],
)
def get_my_mentorship_endpoint(
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    return [
        logic.build_mentorship_for_student(db_request)
        for db_request in crud.get_mentorship_requests_for_student(db, current_profile.id)
    ]


@app.post("/mentorship/{request_id}/respond", response_model=schemas.MentorshipRequest, tags=["Mentorship"])
async def respond_to_mentorship_endpoint(
    request_id: str,
    answer: schemas.MentorshipRespond,
    current_profile: models.Profile = Depends(alumni_only),
    db: Session = Depends(get_db),
):
    db_request = await logic.respond_to_mentorship(
        db, current_profile, request_id, answer.status, answer.response
    )
    await manager.invalidate(["mentorship-requests", current_profile.id], [current_profile.id])
    await manager.invalidate(["my-mentorship-requests", db_request.student_id], [db_request.student_id])
    return db_request


# --- Referral Endpoints ---
@app.post("/referrals/", response_model=schemas.Referral, status_code=status.HTTP_201_CREATED, tags=["Referrals"])
async def create_referral_endpoint(
    request: schemas.ReferralCreate,
    current_profile: models.Profile = Depends(student_only),
    db: Session = Depends(get_db),
):
    referral = logic.request_referral(db, current_profile, request)
    db.commit()
    db.refresh(referral)
    await manager.invalidate(["referrals", referral.alumni_id], [referral.alumni_id])
    await manager.invalidate(["referrals", current_profile.id], [current_profile.id])
    return referral


@app.get("/referrals/", response_model=List[schemas.Referral], tags=["Referrals"])
def get_referrals_endpoint(
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return crud.get_referrals_for_profile(db, current_profile.id)


@app.post("/referrals/{referral_id}/respond", response_model=schemas.Referral, tags=["Referrals"])
async def respond_to_referral_endpoint(
    referral_id: str,
    answer: schemas.ReferralRespond,
    current_profile: models.Profile = Depends(alumni_only),
    db: Session = Depends(get_db),
):
    referral = logic.respond_to_referral(db, current_profile, referral_id, answer.status, answer.response)
    db.commit()
    db.refresh(referral)
    await manager.invalidate(["referrals", referral.student_id], [referral.student_id])
    await manager.invalidate(["referrals", current_profile.id], [current_profile.id])
    return referral


# --- Message Endpoints ---
@app.get("/messages/", response_model=List[schemas.Message], tags=["Messages"])
def get_messages_endpoint(
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return crud.get_messages_for_profile(db, current_profile.id)


@app.get("/messages/conversations", response_model=List[schemas.Conversation], tags=["Messages"])
def get_conversations_endpoint(
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    messages = crud.get_messages_for_profile(db, current_profile.id)
    return logic.aggregate_conversations(messages, current_profile.id)


@app.get("/messages/thread/{other_id}", response_model=List[schemas.Message], tags=["Messages"])
def get_thread_endpoint(
    other_id: str,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    return crud.get_thread(db, current_profile.id, other_id)


@app.post("/messages/", response_model=schemas.Message, status_code=status.HTTP_201_CREATED, tags=["Messages"])
async def send_message_endpoint(
    message: schemas.MessageCreate,
    current_profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    db_message = await logic.send_message(db, current_profile, message)
    participants = [db_message.sender_id, db_message.receiver_id]
    for profile_id in participants:
        await manager.invalidate(["messages", profile_id], [profile_id])
    return db_message


# --- SSE Endpoint --- #
@app.get("/events", tags=["Events"])
async def stream_events(
    request: Request,
    token: Optional[str] = None,
    profile_id: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    """Server-Sent Events stream of cache invalidations for one profile.

    EventSource cannot send headers, so the bearer token (or, with auth
    disabled, the profile id) travels in the query string.
    """
    if token:
        payload = verify_token(token)
        profile_id = payload.sub
    elif settings.auth_enabled:
        logger.warning("SSE 401: No token provided while auth is enabled")
        raise HTTPException(401, "No token provided")
    elif profile_id is None:
        logger.warning("SSE 401: Missing profile_id in local mode")
        raise HTTPException(401, "profile_id query parameter required in local mode")

    with SessionLocal() as db:
        if not crud.get_profile(db, profile_id):
            logger.warning("SSE 401: Unknown profile", profile_id=profile_id)
            raise HTTPException(401, "Unknown profile")

    queue = await manager.connect(profile_id)

    async def event_generator():
        try:
            while True:
                message_dict = await queue.get()
                if await request.is_disconnected():
                    logger.info("SSE client disconnected before sending", profile_id=profile_id)
                    break
                yield message_dict
        except asyncio.CancelledError:
            logger.info("SSE connection cancelled", profile_id=profile_id)
        finally:
            manager.disconnect(profile_id, queue)

    return EventSourceResponse(event_generator())


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
