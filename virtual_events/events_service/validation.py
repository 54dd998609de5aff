"""
Event payload parsing and validation.

`parse_event_payload` turns an API payload (camelCase) into column values
and checks each field on its own. `validate_event` runs the cross-field
rules against a fully built candidate event, before anything is written.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from virtual_events.errors import ValidationError

# --- CONSTANTS FOR VALIDATION ---
TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 5000
CAPACITY_MAX = 2**31 - 1  # INTEGER column
VALID_MODES = ["virtual", "in-person", "hybrid"]
VALID_STATUSES = ["draft", "published", "cancelled", "completed"]
LOCATION_FIELD_LIMITS = {
    "addressLine1": 200,
    "addressLine2": 200,
    "city": 100,
    "state": 100,
    "country": 100,
    "postalCode": 30,
}

# API field -> events column. Only these fields can be set by clients.
EVENT_FIELDS = {
    "title": "title",
    "description": "description",
    "mode": "mode",
    "startAt": "start_at",
    "endAt": "end_at",
    "registrationDeadline": "registration_deadline",
    "capacity": "capacity",
    "isUnlimitedCapacity": "is_unlimited_capacity",
    "meetingUrl": "meeting_url",
    "location": "location",
    "status": "status",
    "isPublic": "is_public",
    "tags": "tags",
    "price": "price",
}

EVENT_DEFAULTS = {
    "description": "",
    "mode": "virtual",
    "end_at": None,
    "registration_deadline": None,
    "capacity": 100,
    "is_unlimited_capacity": False,
    "meeting_url": None,
    "location": {},
    "status": "draft",
    "is_public": True,
    "tags": [],
    "price": 0,
}


def parse_dt(val: Any) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 string to a timezone-aware datetime.

    Naive values are taken to be UTC.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if not isinstance(val, str) or not val:
        return None
    try:
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith("Z"):
            val = val[:-1] + "+00:00"
        parsed = datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_id(value: Any, label: str = "event") -> int:
    """Parse a path identifier; anything but a positive integer is a 400."""
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()) or int(text) < 1:
        raise ValidationError(f"Invalid {label} id")
    return int(text)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_location(value: Any, errors: List[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict):
        errors.append({"field": "location", "message": "location must be an object"})
        return None
    location = {}
    for key, raw in value.items():
        limit = LOCATION_FIELD_LIMITS.get(key)
        if limit is None:
            errors.append({"field": f"location.{key}", "message": "Unknown location field"})
            continue
        if not isinstance(raw, str):
            errors.append({"field": f"location.{key}", "message": f"{key} must be a string"})
            continue
        raw = raw.strip()
        if len(raw) > limit:
            errors.append({
                "field": f"location.{key}",
                "message": f"{key} must be at most {limit} characters long",
            })
            continue
        location[key] = raw
    return location


def parse_event_payload(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Check field types and ranges and map them to column names.

    Args:
        data: Request JSON.
        partial: True for updates, where every field is optional.

    Returns:
        dict: column -> value for the fields present in `data`.

    Raises:
        ValidationError: With one entry per offending field.
    """
    errors: List[Dict[str, str]] = []
    fields: Dict[str, Any] = {}

    if not partial:
        for required in ("title", "startAt"):
            if data.get(required) in (None, ""):
                errors.append({"field": required, "message": f"{required} is required"})

    for key, value in data.items():
        column = EVENT_FIELDS.get(key)
        if column is None:
            continue

        if key == "title":
            if not isinstance(value, str) or not TITLE_MIN_LENGTH <= len(value.strip()) <= TITLE_MAX_LENGTH:
                errors.append({
                    "field": key,
                    "message": f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters long",
                })
                continue
            value = value.strip()

        elif key == "description":
            if not isinstance(value, str) or len(value) > DESCRIPTION_MAX_LENGTH:
                errors.append({
                    "field": key,
                    "message": f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters long",
                })
                continue
            value = value.strip()

        elif key == "mode":
            if value not in VALID_MODES:
                errors.append({"field": key, "message": f"mode must be one of: {', '.join(VALID_MODES)}"})
                continue

        elif key == "status":
            if value not in VALID_STATUSES:
                errors.append({"field": key, "message": f"status must be one of: {', '.join(VALID_STATUSES)}"})
                continue

        elif key in ("startAt", "endAt", "registrationDeadline"):
            if value is None and key != "startAt":
                fields[column] = None
                continue
            parsed = parse_dt(value)
            if parsed is None:
                errors.append({"field": key, "message": f"Invalid date format for {key}. Use ISO-8601."})
                continue
            value = parsed

        elif key == "capacity":
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= CAPACITY_MAX:
                errors.append({"field": key, "message": f"capacity must be an integer between 1 and {CAPACITY_MAX}"})
                continue

        elif key in ("isUnlimitedCapacity", "isPublic"):
            if not isinstance(value, bool):
                errors.append({"field": key, "message": f"{key} must be a boolean"})
                continue

        elif key == "meetingUrl":
            if value is not None and not isinstance(value, str):
                errors.append({"field": key, "message": "meetingUrl must be a string"})
                continue
            value = (value or "").strip() or None

        elif key == "location":
            value = _parse_location(value, errors)
            if value is None:
                continue

        elif key == "tags":
            if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
                errors.append({"field": key, "message": "tags must be a list of strings"})
                continue
            value = [t.strip() for t in value if t.strip()]

        elif key == "price":
            if not _is_number(value) or not math.isfinite(value) or value < 0:
                errors.append({"field": key, "message": "price must be a finite number greater than or equal to 0"})
                continue

        fields[column] = value

    if errors:
        raise ValidationError("Invalid event data", errors)

    return fields


def is_valid_meeting_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_event(candidate: Dict[str, Any]) -> None:
    """
    Cross-field rules for a fully built event (column-keyed).

    Raises:
        ValidationError: With one entry per violated rule.
    """
    errors: List[Dict[str, str]] = []
    start_at = candidate.get("start_at")
    end_at = candidate.get("end_at")
    deadline = candidate.get("registration_deadline")

    if start_at is None:
        errors.append({"field": "startAt", "message": "startAt is required"})
    else:
        if end_at is not None and end_at <= start_at:
            errors.append({"field": "endAt", "message": "endAt must be after startAt"})
        if deadline is not None and deadline > start_at:
            errors.append({
                "field": "registrationDeadline",
                "message": "registrationDeadline must be on/before startAt",
            })

    meeting_url = candidate.get("meeting_url")
    if meeting_url:
        if not is_valid_meeting_url(meeting_url):
            errors.append({"field": "meetingUrl", "message": "meetingUrl must be a valid URL"})
    elif candidate.get("mode") != "in-person":
        errors.append({
            "field": "meetingUrl",
            "message": "meetingUrl is required for virtual and hybrid events",
        })

    capacity = candidate.get("capacity")
    if not candidate.get("is_unlimited_capacity") and (capacity is None or capacity < 1):
        errors.append({"field": "capacity", "message": f"capacity must be an integer between 1 and {CAPACITY_MAX}"})

    if errors:
        raise ValidationError("Invalid event data", errors)


def build_event(fields: Dict[str, Any], created_by: Optional[int] = None) -> Dict[str, Any]:
    """Fill defaults around parsed fields to get a complete candidate event."""
    candidate = dict(EVENT_DEFAULTS)
    candidate["location"] = {}
    candidate["tags"] = []
    candidate.update(fields)
    candidate["created_by"] = created_by
    return candidate
