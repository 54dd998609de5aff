"""
Row → JSON conversion.

Store rows use snake_case column names; the API speaks camelCase. Datetimes
are rendered as ISO-8601 strings.
"""

from datetime import datetime
from typing import Any, Dict, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_user(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["user_id"],
        "name": row["name"],
        "username": row["username"],
        "email": row["email"],
        "role": row["role"],
        "createdAt": _iso(row.get("created_at")),
    }


def serialize_attendee(row: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": row["user_id"], "name": row["name"], "email": row["email"]}


def serialize_event(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["event_id"],
        "title": row["title"],
        "description": row.get("description") or "",
        "mode": row["mode"],
        "startAt": _iso(row["start_at"]),
        "endAt": _iso(row.get("end_at")),
        "registrationDeadline": _iso(row.get("registration_deadline")),
        "capacity": row["capacity"],
        "isUnlimitedCapacity": bool(row["is_unlimited_capacity"]),
        "attendees": list(row.get("attendees") or []),
        "meetingUrl": row.get("meeting_url"),
        "location": dict(row.get("location") or {}),
        "status": row["status"],
        "isPublic": bool(row["is_public"]),
        "tags": list(row.get("tags") or []),
        "price": float(row.get("price") or 0),
        "createdBy": row.get("created_by"),
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }


def serialize_registration(row: Dict[str, Any]) -> Dict[str, Any]:
    data = {
        "id": row["registration_id"],
        "eventId": row["event_id"],
        "userId": row["user_id"],
        "status": row["status"],
        "registeredAt": _iso(row.get("registered_at")),
        "cancelledAt": _iso(row.get("cancelled_at")),
        "source": row.get("source"),
        "metadata": dict(row.get("metadata") or {}),
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }
    if "event" in row:
        data["event"] = serialize_event(row["event"]) if row["event"] else None
    return data
