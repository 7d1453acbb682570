import uuid
from unittest.mock import patch

import pytest
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

import crud
import logic
import models
import schemas
from settings import Settings
from workflows import UserRole


def create_test_job(db: Session, alumni: models.Profile, keywords=None, is_active: bool = True, title: str = "Backend Engineer") -> models.Job:
    """Helper to post a job directly in the test database."""
    job = crud.create_job(
        db,
        job=schemas.JobCreate(
            title=title,
            company="Acme",
            description="Build APIs",
            keywords=keywords or ["python", "sql"],
            is_active=is_active,
        ),
        alumni_id=alumni.id,
    )
    db.commit()
    db.refresh(job)
    return job


def count_applications(db: Session, job_id: str, student_id: str) -> int:
    db.expire_all()
    return (
        db.query(models.JobApplication)
        .filter(models.JobApplication.job_id == job_id, models.JobApplication.student_id == student_id)
        .count()
    )


def test_apply_creates_application(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni)

    response = test_client.post(
        f"/jobs/{job.id}/apply",
        json={"cover_letter": "I would love to join"},
        headers={"X-Profile-Id": student.id},
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["status"] == "applied"
    assert data["job_id"] == job.id
    assert data["student_id"] == student.id
    assert data["job"]["title"] == "Backend Engineer"


def test_apply_twice_returns_conflict(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni)
    headers = {"X-Profile-Id": student.id}

    first = test_client.post(f"/jobs/{job.id}/apply", json={}, headers=headers)
    second = test_client.post(f"/jobs/{job.id}/apply", json={}, headers=headers)

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json()["detail"] == "You have already applied for this job"
    assert count_applications(db_session, job.id, student.id) == 1


@pytest.mark.asyncio
async def test_duplicate_application_never_reaches_insert(db_session: Session, make_profile):
    """
    A second submission for the same (job, student) pair must stop at the
    lookup and never call the insert.
    """
    # 1. Arrange
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni)
    await logic.submit_application(db_session, job.id, student)

    # 2. Act
    with patch("logic.crud.create_application", wraps=crud.create_application) as mock_create:
        with pytest.raises(HTTPException) as exc_info:
            await logic.submit_application(db_session, job.id, student, cover_letter="again")

    # 3. Assert
    assert exc_info.value.status_code == status.HTTP_409_CONFLICT
    mock_create.assert_not_called()
    assert count_applications(db_session, job.id, student.id) == 1


def test_apply_to_inactive_job_is_not_found(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni, is_active=False)

    response = test_client.post(f"/jobs/{job.id}/apply", json={}, headers={"X-Profile-Id": student.id})

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_alumni_cannot_apply(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    job = create_test_job(db_session, alumni)

    response = test_client.post(f"/jobs/{job.id}/apply", json={}, headers={"X-Profile-Id": alumni.id})

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_status_can_move_between_any_values(test_client, db_session, make_profile):
    """Default mode writes any valid status over any other, including backwards."""
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni)
    application = crud.create_application(db_session, job_id=job.id, student_id=student.id)
    db_session.commit()
    headers = {"X-Profile-Id": alumni.id}

    for new_status in ["hired", "applied", "rejected", "shortlisted", "reviewed", "reviewed"]:
        response = test_client.patch(
            f"/applications/{application.id}/status", json={"status": new_status}, headers=headers
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == new_status


def test_unknown_status_is_rejected(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni)
    application = crud.create_application(db_session, job_id=job.id, student_id=student.id)
    db_session.commit()

    response = test_client.patch(
        f"/applications/{application.id}/status",
        json={"status": "interviewing"},
        headers={"X-Profile-Id": alumni.id},
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_strict_mode_rejects_backward_move(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, alumni)
    application = crud.create_application(db_session, job_id=job.id, student_id=student.id)
    db_session.commit()
    headers = {"X-Profile-Id": alumni.id}

    with patch("workflows.get_settings", return_value=Settings(enforce_status_transitions=True)):
        forward = test_client.patch(
            f"/applications/{application.id}/status", json={"status": "shortlisted"}, headers=headers
        )
        backward = test_client.patch(
            f"/applications/{application.id}/status", json={"status": "applied"}, headers=headers
        )

    assert forward.status_code == status.HTTP_200_OK
    assert backward.status_code == status.HTTP_409_CONFLICT


def test_other_alumni_cannot_change_status(test_client, db_session, make_profile):
    owner = make_profile(UserRole.alumni)
    stranger = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    job = create_test_job(db_session, owner)
    application = crud.create_application(db_session, job_id=job.id, student_id=student.id)
    db_session.commit()

    response = test_client.patch(
        f"/applications/{application.id}/status",
        json={"status": "reviewed"},
        headers={"X-Profile-Id": stranger.id},
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_received_applications_filter_and_search(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    tag = uuid.uuid4().hex[:6]
    alice = make_profile(UserRole.student, first_name=f"Alice{tag}", skills=["Python", "Flask"])
    bob = make_profile(UserRole.student, first_name=f"Bob{tag}", skills=["Java"])
    job = create_test_job(db_session, alumni, keywords=["python", "sql"], title=f"Data Engineer {tag}")
    crud.create_application(db_session, job_id=job.id, student_id=alice.id)
    bob_application = crud.create_application(db_session, job_id=job.id, student_id=bob.id)
    crud.set_application_status(db_session, bob_application, "shortlisted")
    db_session.commit()
    headers = {"X-Profile-Id": alumni.id}

    everything = test_client.get("/applications/received", headers=headers)
    shortlisted = test_client.get("/applications/received", params={"status": "shortlisted"}, headers=headers)
    by_name = test_client.get("/applications/received", params={"search": f"alice{tag}"}, headers=headers)
    by_title = test_client.get("/applications/received", params={"search": f"ENGINEER {tag}"}, headers=headers)

    assert everything.status_code == status.HTTP_200_OK
    assert len(everything.json()) == 2
    assert [a["student_id"] for a in shortlisted.json()] == [bob.id]
    matches = by_name.json()
    assert [a["student_id"] for a in matches] == [alice.id]
    assert matches[0]["match_score"] == 50
    assert matches[0]["student"]["email"] == alice.email
    assert matches[0]["student_profile"]["skills"] == ["Python", "Flask"]
    assert len(by_title.json()) == 2


def test_my_applications_lists_only_own(test_client, db_session, make_profile):
    alumni = make_profile(UserRole.alumni)
    student = make_profile(UserRole.student)
    other = make_profile(UserRole.student)
    first_job = create_test_job(db_session, alumni)
    second_job = create_test_job(db_session, alumni)
    crud.create_application(db_session, job_id=first_job.id, student_id=student.id)
    crud.create_application(db_session, job_id=second_job.id, student_id=student.id)
    crud.create_application(db_session, job_id=first_job.id, student_id=other.id)
    db_session.commit()

    response = test_client.get("/applications/mine", headers={"X-Profile-Id": student.id})

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert {a["job_id"] for a in data} == {first_job.id, second_job.id}
    # Newest first
    assert data[0]["job_id"] == second_job.id
