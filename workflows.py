"""Status enums and transition tables for the application, mentorship and
referral workflows.

Statuses are stored as plain strings. By default any enum value may be written
over any other; with ``ENFORCE_STATUS_TRANSITIONS=1`` moves outside the tables
below are rejected with 409.
"""
from __future__ import annotations

import enum
from typing import Type

import structlog
from fastapi import HTTPException, status

from settings import get_settings

logger = structlog.get_logger(__name__)


class UserRole(str, enum.Enum):
    student = "student"
    alumni = "alumni"
    admin = "admin"


# Roles a user may pick for themselves at signup
SELF_SERVICE_ROLES = frozenset({UserRole.student.value, UserRole.alumni.value})


class ThemePreference(str, enum.Enum):
    light = "light"
    dark = "dark"
    system = "system"


class ApplicationStatus(str, enum.Enum):
    applied = "applied"
    reviewed = "reviewed"
    shortlisted = "shortlisted"
    rejected = "rejected"
    hired = "hired"


class MentorshipStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    active = "active"
    completed = "completed"


class ReferralStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    completed = "completed"


APPLICATION_TRANSITIONS: dict[str, set[str]] = {
    "applied": {"reviewed", "shortlisted", "rejected"},
    "reviewed": {"shortlisted", "rejected"},
    "shortlisted": {"rejected", "hired"},
    "rejected": set(),
    "hired": set(),
}

MENTORSHIP_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"accepted", "rejected"},
    "accepted": {"active", "completed"},
    "rejected": set(),
    "active": {"completed"},
    "completed": set(),
}

REFERRAL_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"accepted", "rejected"},
    "accepted": {"completed"},
    "rejected": set(),
    "completed": set(),
}

WORKFLOWS: dict[str, tuple[Type[enum.Enum], dict[str, set[str]]]] = {
    "application": (ApplicationStatus, APPLICATION_TRANSITIONS),
    "mentorship": (MentorshipStatus, MENTORSHIP_TRANSITIONS),
    "referral": (ReferralStatus, REFERRAL_TRANSITIONS),
}


def is_allowed(workflow: str, current: str, new: str) -> bool:
    """True if the transition table lists ``current -> new``.

    Re-writing the current status is always allowed.
    """
    _, table = WORKFLOWS[workflow]
    return current == new or new in table.get(current, set())


def check_transition(workflow: str, current: str, new: str) -> str:
    """Validate a status write and return the normalised new value.

    Unknown values are rejected with 422 regardless of mode. Illegal moves are
    only rejected (409) when transition enforcement is switched on.
    """
    enum_cls, _ = WORKFLOWS[workflow]
    valid = {member.value for member in enum_cls}
    if new not in valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {workflow} status '{new}'. Expected one of: {', '.join(sorted(valid))}",
        )

    if not is_allowed(workflow, current, new):
        if get_settings().enforce_status_transitions:
            logger.warning("Rejected status transition", workflow=workflow, current=current, new=new)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot move {workflow} from '{current}' to '{new}'",
            )
        logger.info("Unchecked status transition", workflow=workflow, current=current, new=new)
    return new
