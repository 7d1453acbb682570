import uuid

import pytest
from fastapi import status

import crud
from main import app
from settings import Settings, get_settings
from workflows import UserRole

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def media_settings(tmp_path):
    """Point avatar storage at a temporary media directory."""
    settings = Settings(media_root=str(tmp_path), max_avatar_bytes=1024)
    app.dependency_overrides[get_settings] = lambda: settings
    yield settings
    del app.dependency_overrides[get_settings]


def test_signup_creates_profile_and_extension(test_client):
    email = f"New.Student-{uuid.uuid4().hex[:6]}@Example.com"

    response = test_client.post(
        "/profiles/", json={"email": email, "first_name": "New", "last_name": "Student", "role": "student"}
    )

    assert response.status_code == status.HTTP_201_CREATED
    profile = response.json()
    assert profile["email"] == email.lower()
    assert profile["theme_preference"] == "system"

    extension = test_client.get("/profiles/me/student", headers={"X-Profile-Id": profile["id"]})
    assert extension.status_code == status.HTTP_200_OK
    assert extension.json()["id"] == profile["id"]


def test_signup_duplicate_email(test_client, make_profile):
    existing = make_profile(UserRole.alumni)

    response = test_client.post("/profiles/", json={"email": existing.email.upper(), "role": "alumni"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Email already registered"


def test_signup_rejects_unknown_role(test_client):
    response = test_client.post("/profiles/", json={"email": f"x-{uuid.uuid4().hex}@example.com", "role": "recruiter"})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_unknown_profile_header_is_unauthorized(test_client):
    response = test_client.get("/profiles/me", headers={"X-Profile-Id": "nobody"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_update_my_profile(test_client, make_profile):
    student = make_profile(UserRole.student)

    response = test_client.patch(
        "/profiles/me",
        json={"bio": "CS junior", "theme_preference": "dark"},
        headers={"X-Profile-Id": student.id},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["bio"] == "CS junior"
    assert data["theme_preference"] == "dark"
    assert data["first_name"] == "Test"


def test_student_profile_accepts_form_style_lists(test_client, make_profile):
    student = make_profile(UserRole.student)

    response = test_client.put(
        "/profiles/me/student",
        json={
            "college_name": "State College",
            "cgpa": 8.7,
            "skills": "Python, React ,, SQL",
            "certifications": "AWS Practitioner\n\nScrum Master",
        },
        headers={"X-Profile-Id": student.id},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["skills"] == ["Python", "React", "SQL"]
    assert data["certifications"] == ["AWS Practitioner", "Scrum Master"]
    assert data["cgpa"] == 8.7


def test_alumni_cannot_edit_student_profile(test_client, make_profile):
    alumni = make_profile(UserRole.alumni)

    response = test_client.put("/profiles/me/student", json={"cgpa": 9.0}, headers={"X-Profile-Id": alumni.id})

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_alumni_directory_mentorship_filter(test_client, make_profile):
    student = make_profile(UserRole.student)
    mentor = make_profile(UserRole.alumni, company="Globex", availability_for_mentorship=True)
    busy = make_profile(UserRole.alumni, availability_for_mentorship=False)
    headers = {"X-Profile-Id": student.id}

    everyone = test_client.get("/alumni/", headers=headers).json()
    mentors = test_client.get("/alumni/", params={"mentorship": "true"}, headers=headers).json()

    everyone_ids = {entry["profile"]["id"] for entry in everyone}
    mentor_ids = {entry["profile"]["id"] for entry in mentors}
    assert {mentor.id, busy.id} <= everyone_ids
    assert mentor.id in mentor_ids
    assert busy.id not in mentor_ids
    assert student.id not in everyone_ids
    entry = next(e for e in mentors if e["profile"]["id"] == mentor.id)
    assert entry["alumni_profile"]["company"] == "Globex"


def test_avatar_upload(test_client, make_profile, media_settings, tmp_path):
    student = make_profile(UserRole.student)
    headers = {"X-Profile-Id": student.id}

    response = test_client.post(
        "/profiles/me/avatar", files={"avatar": ("me.png", PNG_BYTES, "image/png")}, headers=headers
    )

    assert response.status_code == status.HTTP_200_OK
    avatar_url = response.json()["avatar_url"]
    assert avatar_url == f"http://localhost:8000/media/avatars/{student.id}/avatar.png"
    assert (tmp_path / "avatars" / student.id / "avatar.png").read_bytes() == PNG_BYTES
    assert test_client.get("/profiles/me", headers=headers).json()["avatar_url"] == avatar_url


def test_avatar_reupload_replaces_previous_file(test_client, make_profile, media_settings, tmp_path):
    student = make_profile(UserRole.student)
    headers = {"X-Profile-Id": student.id}

    test_client.post("/profiles/me/avatar", files={"avatar": ("a.png", PNG_BYTES, "image/png")}, headers=headers)
    test_client.post("/profiles/me/avatar", files={"avatar": ("a.jpg", b"\xff\xd8\xff", "image/jpeg")}, headers=headers)

    stored = sorted(p.name for p in (tmp_path / "avatars" / student.id).iterdir())
    assert stored == ["avatar.jpg"]


def test_avatar_rejects_wrong_type_and_size(test_client, make_profile, media_settings):
    student = make_profile(UserRole.student)
    headers = {"X-Profile-Id": student.id}

    wrong_type = test_client.post(
        "/profiles/me/avatar", files={"avatar": ("cv.pdf", b"%PDF-1.4", "application/pdf")}, headers=headers
    )
    too_big = test_client.post(
        "/profiles/me/avatar", files={"avatar": ("big.png", b"\x00" * 2048, "image/png")}, headers=headers
    )

    assert wrong_type.status_code == status.HTTP_400_BAD_REQUEST
    assert too_big.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


def test_only_admin_awards_badges(test_client, make_profile):
    admin = make_profile(UserRole.admin)
    student = make_profile(UserRole.student)
    badge = {"user_id": student.id, "badge_name": "Early Bird", "badge_type": "engagement"}

    denied = test_client.post("/badges/", json=badge, headers={"X-Profile-Id": student.id})
    awarded = test_client.post("/badges/", json=badge, headers={"X-Profile-Id": admin.id})
    listed = test_client.get(f"/profiles/{student.id}/badges", headers={"X-Profile-Id": student.id})

    assert denied.status_code == status.HTTP_403_FORBIDDEN
    assert awarded.status_code == status.HTTP_201_CREATED
    assert [b["badge_name"] for b in listed.json()] == ["Early Bird"]


def test_signup_cannot_claim_admin(test_client, db_session):
    email = f"sneaky-{uuid.uuid4().hex[:8]}@example.com"

    response = test_client.post("/profiles/", json={"email": email, "role": "admin"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert crud.get_profile_by_email(db_session, email) is None
