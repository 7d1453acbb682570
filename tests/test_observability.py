import re
import uuid
from unittest.mock import MagicMock, patch

from aws_embedded_metrics.config import get_config
from fastapi import FastAPI, status
from sqlalchemy.exc import SQLAlchemyError

import observability
from settings import Settings
from workflows import UserRole

GENERATED_ID = re.compile(r"^[0-9a-f]{32}$")


class FakeXRayMiddleware:
    def __init__(self, app, **kwargs):
        self.app = app


# --- Request ids ---

def test_well_formed_request_id_is_reused(test_client):
    response = test_client.get("/", headers={"X-Request-ID": "client-req.0001"})

    assert response.headers["X-Request-ID"] == "client-req.0001"


def test_malformed_request_id_is_replaced(test_client):
    response = test_client.get("/", headers={"X-Request-ID": "bad id; drop table"})

    echoed = response.headers["X-Request-ID"]
    assert echoed != "bad id; drop table"
    assert GENERATED_ID.match(echoed)


def test_missing_request_id_is_generated(test_client):
    first = test_client.get("/").headers["X-Request-ID"]
    second = test_client.get("/").headers["X-Request-ID"]

    assert GENERATED_ID.match(first)
    assert first != second


# --- Database errors ---

def test_integrity_error_becomes_bad_request(test_client, make_profile):
    """
    When the email lookup misses a concurrent signup, the unique index on
    profiles.email rejects the insert and the driver message is returned.
    """
    # 1. Arrange: an existing profile, and a lookup that fails to see it
    existing = make_profile(UserRole.student)

    # 2. Act
    with patch("main.crud.get_profile_by_email", return_value=None):
        response = test_client.post("/profiles/", json={"email": existing.email, "role": "student"})

    # 3. Assert
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "UNIQUE constraint failed: profiles.email" in response.json()["detail"]


def test_database_error_without_driver_message(test_client, make_profile):
    student = make_profile(UserRole.student)

    with patch("main.crud.get_badges_for_profile", side_effect=SQLAlchemyError("connection lost")):
        response = test_client.get(f"/profiles/{student.id}/badges", headers={"X-Profile-Id": student.id})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"detail": "Database request failed"}


# --- Metrics and tracing ---

def test_metrics_default_namespace_is_configured():
    # main applies this at import, which the test session already did
    assert get_config().namespace == Settings().metrics_namespace


def test_tracing_attaches_middleware_when_enabled():
    app = FastAPI()
    recorder = MagicMock()

    with patch.object(observability, "xray_recorder", recorder), \
         patch.object(observability, "patch", MagicMock()) as mock_patch, \
         patch.object(observability, "XRayMiddleware", FakeXRayMiddleware):
        observability._setup_tracing(app, Settings(enable_xray=True, service_name=f"svc-{uuid.uuid4().hex[:6]}"))

    assert [m.cls for m in app.user_middleware] == [FakeXRayMiddleware]
    recorder.configure.assert_called_once()
    mock_patch.assert_called_once_with(observability.TRACED_MODULES, raise_errors=False)


def test_tracing_is_off_by_default():
    app = FastAPI()

    with patch.object(observability, "patch", MagicMock()) as mock_patch:
        observability._setup_tracing(app, Settings())

    assert app.user_middleware == []
    mock_patch.assert_not_called()
