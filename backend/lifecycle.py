"""
Interview status state machine.

    scheduled -> in-progress -> completed

Transitions only move forward. An in-progress interview whose start is older
than AUTO_EXPIRY_WINDOW is read back as completed.
"""
import datetime

from config import AUTO_EXPIRY_WINDOW
from errors import ValidationError
from models import Interview, as_utc

SCHEDULED = "scheduled"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"

STATUSES = (SCHEDULED, IN_PROGRESS, COMPLETED)
_RANK = {status: i for i, status in enumerate(STATUSES)}


def validate_status(status) -> str:
    if not isinstance(status, str) or status not in _RANK:
        raise ValidationError(f"Invalid status: expected one of {', '.join(STATUSES)}")
    return status


def check_transition(current: str, new: str) -> None:
    if _RANK[new] < _RANK.get(current, 0):
        raise ValidationError(f"Invalid status transition: {current} -> {new}")


def apply_transition(interview: Interview, new: str, now: datetime.datetime) -> bool:
    """Move interview to `new`, stamping times. Returns False for a no-op."""
    validate_status(new)
    check_transition(interview.status, new)
    if interview.status == new:
        return False

    if new == IN_PROGRESS and interview.start_date_time is None:
        interview.start_date_time = now
    if new == COMPLETED and interview.end_date_time is None:
        interview.end_date_time = now
    interview.status = new
    interview.updated_at = now
    return True


def is_expired(interview: Interview, now: datetime.datetime) -> bool:
    if interview.status != IN_PROGRESS or interview.start_date_time is None:
        return False
    return as_utc(interview.start_date_time) < now - AUTO_EXPIRY_WINDOW


def apply_auto_expiry(interview: Interview, now: datetime.datetime) -> bool:
    if not is_expired(interview, now):
        return False
    interview.status = COMPLETED
    interview.updated_at = now
    return True
