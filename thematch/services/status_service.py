"""Lifecycle status of a match, derived from its dates.

The stored ``status`` column is only a cache of ``compute_status``; every
read path recomputes it.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union

from thematch.core.exceptions import InvalidInput
from thematch.models.tournament_model import MatchStatus

Timestamp = Union[datetime, str, None]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_datetime(value: Timestamp, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInput(f"Malformed timestamp for {field}: {value!r}", code="malformed_timestamp")
    elif not isinstance(value, datetime):
        raise InvalidInput(f"Malformed timestamp for {field}: {value!r}", code="malformed_timestamp")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def compute_status(
    registration_start: Timestamp = None,
    registration_deadline: Timestamp = None,
    start_date: Timestamp = None,
    end_date: Timestamp = None,
    current_status: Optional[str] = None,
    now: Optional[datetime] = None,
    clock: Clock = utc_now,
) -> MatchStatus:
    if current_status == MatchStatus.CANCELLED:
        return MatchStatus.CANCELLED

    reg_start = _to_datetime(registration_start, "registration_start")
    reg_deadline = _to_datetime(registration_deadline, "registration_deadline")
    starts = _to_datetime(start_date, "start_date")
    ends = _to_datetime(end_date, "end_date")
    now = _to_datetime(now if now is not None else clock(), "now")

    if ends and now > ends:
        return MatchStatus.COMPLETED

    if starts and now >= starts:
        return MatchStatus.IN_PROGRESS

    if reg_start and now >= reg_start:
        if reg_deadline and now <= reg_deadline:
            return MatchStatus.REGISTRATION
        if reg_deadline and now > reg_deadline:
            return MatchStatus.DRAFT
        # No deadline: intentionally falls through and stays draft.

    return MatchStatus.DRAFT


def to_utc(value: Timestamp) -> Optional[datetime]:
    """Parses a timestamp into an aware UTC datetime; naive values are taken as UTC."""
    parsed = _to_datetime(value, "timestamp")
    return parsed.astimezone(timezone.utc) if parsed is not None else None


def compute_match_status(match, now: Optional[datetime] = None, clock: Clock = utc_now) -> MatchStatus:
    """compute_status for anything shaped like a Match (model or ORM row)."""
    return compute_status(
        match.registration_start,
        match.registration_deadline,
        match.start_date,
        match.end_date,
        match.status,
        now=now,
        clock=clock,
    )


STATUS_LABELS: Dict[str, str] = {
    MatchStatus.DRAFT.value: "Draft",
    MatchStatus.REGISTRATION.value: "Registration open",
    MatchStatus.IN_PROGRESS.value: "In progress",
    MatchStatus.COMPLETED.value: "Completed",
    MatchStatus.CANCELLED.value: "Cancelled",
}

STATUS_COLORS: Dict[str, str] = {
    MatchStatus.DRAFT.value: "gray",
    MatchStatus.REGISTRATION.value: "green",
    MatchStatus.IN_PROGRESS.value: "blue",
    MatchStatus.COMPLETED.value: "gray",
    MatchStatus.CANCELLED.value: "red",
}


def _status_key(status) -> str:
    return status.value if isinstance(status, MatchStatus) else str(status)


def status_label(status) -> str:
    return STATUS_LABELS.get(_status_key(status), "Unknown")


def status_color(status) -> str:
    return STATUS_COLORS.get(_status_key(status), "gray")


def status_display(status) -> Dict[str, str]:
    return {"status": _status_key(status), "label": status_label(status), "color": status_color(status)}
