"""
Event lifecycle: create, read, update and delete events.

Writes that depend on the attendee set (capacity changes, deletion) are
single conditional statements; when one matches nothing, the event is
re-read only to tell "missing" apart from "conflict".
"""

import logging
from typing import Any, Dict, List, Optional

from flask import current_app

from virtual_events.errors import ConflictError, NotFoundError, ValidationError
from virtual_events.events_service.validation import (
    build_event,
    parse_event_payload,
    validate_event,
)


class EventLifecycleManager:
    def __init__(self, store) -> None:
        self.store = store

    def list(self) -> List[Dict[str, Any]]:
        return self.store.list_events()

    def get(self, event_id: int) -> Dict[str, Any]:
        event = self.store.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def create(self, payload: Dict[str, Any], created_by: Optional[int] = None) -> Dict[str, Any]:
        fields = parse_event_payload(payload)
        candidate = build_event(fields, created_by)
        validate_event(candidate)

        event = self.store.insert_event(candidate)
        logging.info(f"[Events] Created event {event['event_id']} by user {created_by}")
        return event

    def update(self, event_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Partially update an event.

        Only whitelisted fields are merged; attendees are never writable here.
        The merged event must pass the same checks as a new one, and the
        current attendees must still fit the resulting capacity.
        """
        changes = parse_event_payload(payload, partial=True)
        if not changes:
            raise ValidationError("No valid fields to update")

        current = self.get(event_id)
        merged = dict(current)
        merged.update(changes)
        validate_event(merged)

        capacity = merged["capacity"]
        is_unlimited = bool(merged["is_unlimited_capacity"])
        if not is_unlimited and len(current.get("attendees") or []) > capacity:
            raise ConflictError("Capacity cannot be lower than the number of registered attendees")

        updated = self.store.update_event_if_fits(event_id, changes, capacity, is_unlimited)
        if updated is None:
            if self.store.get_event(event_id) is None:
                raise NotFoundError("Event not found")
            raise ConflictError("Capacity cannot be lower than the number of registered attendees")

        logging.info(f"[Events] Updated event {event_id}: {sorted(changes)}")
        return updated

    def delete(self, event_id: int) -> None:
        """
        Delete an event that has no attendees.

        Raises:
            ConflictError: Attendees are registered.
            NotFoundError: No such event.
        """
        if self.store.delete_event_if_empty(event_id):
            logging.info(f"[Events] Deleted event {event_id}")
            return

        if self.store.get_event(event_id) is None:
            raise NotFoundError("Event not found")
        raise ConflictError("Cannot delete event with registered attendees")


def get_lifecycle_manager() -> EventLifecycleManager:
    """Return the lifecycle manager attached to the running application."""
    return current_app.extensions["event_lifecycle"]
