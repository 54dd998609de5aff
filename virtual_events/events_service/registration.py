"""
Event registration admission control.

A user joins an event through one conditional write on the events row:
the attendee is appended only if, at that instant, the event is published,
its registration deadline has not passed and there is room (or the user
already holds a seat). The registration row is then upserted on its unique
(event, user) key.

When the store supports transactions both writes share one transaction.
Otherwise the attendee add is compensated if the upsert fails. Concurrent
duplicates that collide on the unique key are reported as "already
registered". A confirmation email is queued once everything is durable.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from flask import current_app

from virtual_events.errors import (
    ApiError,
    AuthError,
    ConcurrencyLossError,
    DuplicateKeyError,
    NotFoundError,
    StorageError,
)

REGISTRATION_STATUSES = ("registered", "cancelled", "waitlisted")
SOURCE_MAX_LENGTH = 100


class RegistrationResult(NamedTuple):
    registration: Dict[str, Any]
    event: Dict[str, Any]
    created: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_rejection(event: Optional[Dict[str, Any]], user_id: int, now: datetime) -> ApiError:
    """
    Explain why the conditional add matched nothing.

    Checks run in a fixed priority order so clients always see the most
    specific reason: not found, not published, deadline passed, full.
    """
    if event is None:
        return NotFoundError("Event not found")

    if event["status"] != "published":
        return ConcurrencyLossError(ConcurrencyLossError.NOT_OPEN, "Event is not open for registration")

    deadline = event.get("registration_deadline")
    if deadline is not None and deadline < now:
        return ConcurrencyLossError(ConcurrencyLossError.DEADLINE_PASSED, "Registration deadline has passed")

    attendees = event.get("attendees") or []
    if (user_id not in attendees
            and not event["is_unlimited_capacity"]
            and len(attendees) >= event["capacity"]):
        return ConcurrencyLossError(ConcurrencyLossError.FULL, "Event is full")

    return ConcurrencyLossError(ConcurrencyLossError.INELIGIBLE, "Unable to register for this event")


class RegistrationEngine:
    """
    Registers users for events.

    Args:
        store: Persistence adapter (EventStore or compatible).
        notifier: Optional object with notify_registration(user, event).
        use_transactions: Run both writes in one transaction when the store
            supports it; otherwise use the compensating protocol.
        clock: Returns the current aware datetime; injectable for tests.
    """

    def __init__(self, store, notifier=None, use_transactions: bool = True,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.notifier = notifier
        self.use_transactions = use_transactions and getattr(store, "supports_transactions", False)
        self._clock = clock or _utcnow

    def register(self, event_id: int, user_id: int, source: str = "api",
                 metadata: Optional[Dict[str, Any]] = None) -> RegistrationResult:
        """
        Register `user_id` for `event_id`.

        Returns:
            RegistrationResult: created is False for a repeated registration.

        Raises:
            AuthError: The user behind the token no longer exists.
            NotFoundError: No such event.
            ConcurrencyLossError: The event is not open, past its deadline or full.
            StorageError: A write failed.
        """
        user = self.store.get_user(user_id)
        if user is None:
            raise AuthError("User no longer exists")

        now = self._clock()
        if self.use_transactions:
            result = self._register_in_transaction(event_id, user_id, now, source, metadata)
        else:
            result = self._register_with_compensation(event_id, user_id, now, source, metadata)

        logging.info(
            f"[Registration] User {user_id} -> event {event_id}: "
            f"{'registered' if result.created else 'already registered'}"
        )
        self._notify(user, result)
        return result

    def _register_in_transaction(self, event_id: int, user_id: int, now: datetime,
                                 source: str, metadata: Optional[Dict[str, Any]]) -> RegistrationResult:
        event = None
        try:
            with self.store.transaction() as tx:
                event, _ = tx.add_attendee_if_eligible(event_id, user_id, now)
                if event is not None:
                    registration, created = tx.upsert_registration(event_id, user_id, now, source, metadata)
        except DuplicateKeyError:
            return self._already_registered(event_id, user_id)

        if event is None:
            raise classify_rejection(self.store.get_event(event_id), user_id, now)

        return RegistrationResult(registration, event, created)

    def _register_with_compensation(self, event_id: int, user_id: int, now: datetime,
                                    source: str, metadata: Optional[Dict[str, Any]]) -> RegistrationResult:
        event, added = self.store.add_attendee_if_eligible(event_id, user_id, now)
        if event is None:
            raise classify_rejection(self.store.get_event(event_id), user_id, now)

        try:
            registration, created = self.store.upsert_registration(event_id, user_id, now, source, metadata)
        except DuplicateKeyError:
            return self._already_registered(event_id, user_id)
        except Exception:
            if added:
                self._compensate(event_id, user_id)
            raise

        return RegistrationResult(registration, event, created)

    def _already_registered(self, event_id: int, user_id: int) -> RegistrationResult:
        registration = self.store.find_registration(event_id, user_id)
        event = self.store.get_event(event_id)
        if registration is None or event is None:
            raise StorageError("Registration conflict could not be resolved")
        return RegistrationResult(registration, event, False)

    def _compensate(self, event_id: int, user_id: int) -> None:
        try:
            self.store.remove_attendee(event_id, user_id)
        except Exception as e:
            logging.error(
                f"[Registration] Compensation failed; user {user_id} may remain in "
                f"attendees of event {event_id} without a registration: {e}"
            )
        else:
            logging.warning(f"[Registration] Rolled back attendee {user_id} on event {event_id}")

    def _notify(self, user: Dict[str, Any], result: RegistrationResult) -> None:
        if self.notifier is None or not result.created:
            return
        try:
            self.notifier.notify_registration(user, result.event)
        except Exception as e:
            logging.warning(f"[Registration] Notification for user {user['user_id']} not sent: {e}")

    # --- QUERIES ---

    def list_registrations_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return self.store.list_registrations_for_user(user_id)

    def list_attendees(self, event_id: int) -> List[Dict[str, Any]]:
        event = self.store.get_event(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return self.store.get_user_contacts(event.get("attendees") or [])


def get_registration_engine() -> RegistrationEngine:
    """Return the engine attached to the running application."""
    return current_app.extensions["registration_engine"]
