"""
In-memory stand-in for EventStore.

Implements the same methods with the same atomicity guarantees: every
mutating call runs under one lock, so add_attendee_if_eligible is a true
conditional update. Failures can be injected per method through
`fail_on`, e.g. ``store.fail_on["upsert_registration"] = StorageError("boom")``.
"""

import copy
import itertools
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from virtual_events.errors import DuplicateKeyError

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
    "price": 0.0,
    "created_by": None,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _State:
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users: Dict[int, Dict[str, Any]] = {}
        self.events: Dict[int, Dict[str, Any]] = {}
        self.registrations: Dict[Tuple[int, int], Dict[str, Any]] = {}
        self.user_ids = itertools.count(1)
        self.event_ids = itertools.count(1)
        self.registration_ids = itertools.count(1)


class FakeStore:
    def __init__(self, supports_transactions: bool = True, state: Optional[_State] = None,
                 journal: Optional[List[Callable[[], None]]] = None) -> None:
        self.supports_transactions = supports_transactions
        self._state = state or _State()
        self._journal = journal
        self.fail_on: Dict[str, Exception] = {} if state is None else None
        self.calls: List[str] = [] if state is None else None

    # The bound copies created by transaction() share these with the root store.
    def _bind(self, root: "FakeStore") -> "FakeStore":
        self.fail_on = root.fail_on
        self.calls = root.calls
        return self

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc

    def _record_undo(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    @contextmanager
    def transaction(self) -> Iterator["FakeStore"]:
        if self._journal is not None:
            yield self
            return
        journal: List[Callable[[], None]] = []
        bound = FakeStore(self.supports_transactions, self._state, journal)._bind(self)
        try:
            yield bound
        except BaseException:
            with self._state.lock:
                for undo in reversed(journal):
                    undo()
            raise

    # --- seeding helpers for tests ---

    def seed_user(self, name: str = "Test User", username: Optional[str] = None,
                  email: Optional[str] = None, password_hash: str = "hash",
                  role: str = "attendee") -> Dict[str, Any]:
        with self._state.lock:
            user_id = next(self._state.user_ids)
            user = {
                "user_id": user_id,
                "name": name,
                "username": username or f"user{user_id}",
                "email": email or f"user{user_id}@example.com",
                "password_hash": password_hash,
                "role": role,
                "created_at": _now(),
                "updated_at": _now(),
            }
            self._state.users[user_id] = user
        return self._public_user(user)

    def seed_event(self, **fields: Any) -> Dict[str, Any]:
        attendees = list(fields.pop("attendees", []))
        event = self.insert_event(fields)
        with self._state.lock:
            self._state.events[event["event_id"]]["attendees"] = attendees
        return self.get_event(event["event_id"])

    def seed_registration(self, event_id: int, user_id: int, **fields: Any) -> Dict[str, Any]:
        row, _ = self.upsert_registration(event_id, user_id, fields.pop("registered_at", _now()))
        with self._state.lock:
            self._state.registrations[(event_id, user_id)].update(fields)
            return dict(self._state.registrations[(event_id, user_id)])

    def registration_rows(self) -> List[Dict[str, Any]]:
        with self._state.lock:
            return [dict(r) for r in self._state.registrations.values()]

    # --- USERS ---

    @staticmethod
    def _public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in user.items() if k != "password_hash"}

    def insert_user(self, name: str, username: str, email: str, password_hash: str,
                    role: str = "attendee") -> Dict[str, Any]:
        self._enter("insert_user")
        with self._state.lock:
            for user in self._state.users.values():
                if user["email"] == email or user["username"] == username:
                    raise DuplicateKeyError("Duplicate key (users)")
            return self.seed_user(name, username, email, password_hash, role)

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        self._enter("find_user_by_email")
        with self._state.lock:
            for user in self._state.users.values():
                if user["email"] == email:
                    return dict(user)
        return None

    def find_user_by_email_or_username(self, email: str, username: str) -> Optional[Dict[str, Any]]:
        self._enter("find_user_by_email_or_username")
        with self._state.lock:
            for user in self._state.users.values():
                if user["email"] == email or user["username"] == username:
                    return self._public_user(user)
        return None

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        self._enter("get_user")
        with self._state.lock:
            user = self._state.users.get(user_id)
            return self._public_user(user) if user else None

    def get_user_contacts(self, user_ids: List[int]) -> List[Dict[str, Any]]:
        self._enter("get_user_contacts")
        with self._state.lock:
            return [
                {"user_id": u["user_id"], "name": u["name"], "email": u["email"]}
                for uid, u in sorted(self._state.users.items())
                if uid in set(user_ids)
            ]

    # --- EVENTS ---

    def list_events(self) -> List[Dict[str, Any]]:
        self._enter("list_events")
        with self._state.lock:
            events = [copy.deepcopy(e) for e in self._state.events.values()]
        return sorted(events, key=lambda e: (e["start_at"], e["event_id"]))

    def get_event(self, event_id: int) -> Optional[Dict[str, Any]]:
        self._enter("get_event")
        with self._state.lock:
            event = self._state.events.get(event_id)
            return copy.deepcopy(event) if event else None

    def get_events(self, event_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        with self._state.lock:
            return {
                eid: copy.deepcopy(self._state.events[eid])
                for eid in event_ids if eid in self._state.events
            }

    def insert_event(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("insert_event")
        with self._state.lock:
            event_id = next(self._state.event_ids)
            event = dict(EVENT_DEFAULTS)
            event.update(copy.deepcopy(fields))
            event.update({
                "event_id": event_id,
                "attendees": [],
                "created_at": _now(),
                "updated_at": _now(),
            })
            self._state.events[event_id] = event
            self._record_undo(lambda: self._state.events.pop(event_id, None))
            return copy.deepcopy(event)

    def update_event_if_fits(self, event_id: int, changes: Dict[str, Any],
                             capacity: int, is_unlimited: bool) -> Optional[Dict[str, Any]]:
        self._enter("update_event_if_fits")
        with self._state.lock:
            event = self._state.events.get(event_id)
            if event is None:
                return None
            if not is_unlimited and len(event["attendees"]) > capacity:
                return None
            event.update(copy.deepcopy(changes))
            event["updated_at"] = _now()
            return copy.deepcopy(event)

    def delete_event_if_empty(self, event_id: int) -> bool:
        self._enter("delete_event_if_empty")
        with self._state.lock:
            event = self._state.events.get(event_id)
            if event is None or event["attendees"]:
                return False
            del self._state.events[event_id]
            for key in [k for k in self._state.registrations if k[0] == event_id]:
                del self._state.registrations[key]
            return True

    def add_attendee_if_eligible(self, event_id: int, user_id: int,
                                 now: datetime) -> Tuple[Optional[Dict[str, Any]], bool]:
        self._enter("add_attendee_if_eligible")
        with self._state.lock:
            event = self._state.events.get(event_id)
            if event is None or event["status"] != "published":
                return None, False
            deadline = event["registration_deadline"]
            if deadline is not None and deadline < now:
                return None, False
            attendees = event["attendees"]
            already = user_id in attendees
            if not (already or event["is_unlimited_capacity"] or len(attendees) < event["capacity"]):
                return None, False
            if not already:
                attendees.append(user_id)
                self._record_undo(lambda: self._drop_attendee(event_id, user_id))
            return copy.deepcopy(event), not already

    def _drop_attendee(self, event_id: int, user_id: int) -> None:
        with self._state.lock:
            event = self._state.events.get(event_id)
            if event is not None:
                event["attendees"] = [a for a in event["attendees"] if a != user_id]

    def remove_attendee(self, event_id: int, user_id: int) -> None:
        self._enter("remove_attendee")
        self._drop_attendee(event_id, user_id)

    # --- REGISTRATIONS ---

    def upsert_registration(self, event_id: int, user_id: int, now: datetime,
                            source: str = "api",
                            metadata: Optional[Dict[str, Any]] = None) -> Tuple[Dict[str, Any], bool]:
        self._enter("upsert_registration")
        key = (event_id, user_id)
        with self._state.lock:
            row = self._state.registrations.get(key)
            if row is not None:
                previous = {k: row[k] for k in ("status", "cancelled_at", "updated_at")}
                row.update({"status": "registered", "cancelled_at": None, "updated_at": _now()})
                self._record_undo(lambda: row.update(previous))
                return dict(row), previous["status"] != "registered"
            row = {
                "registration_id": next(self._state.registration_ids),
                "event_id": event_id,
                "user_id": user_id,
                "status": "registered",
                "registered_at": now,
                "cancelled_at": None,
                "source": source,
                "metadata": dict(metadata or {}),
                "created_at": _now(),
                "updated_at": _now(),
            }
            self._state.registrations[key] = row
            self._record_undo(lambda: self._state.registrations.pop(key, None))
            return dict(row), True

    def find_registration(self, event_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        self._enter("find_registration")
        with self._state.lock:
            row = self._state.registrations.get((event_id, user_id))
            return dict(row) if row else None

    def list_registrations_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        self._enter("list_registrations_for_user")
        with self._state.lock:
            rows = [dict(r) for r in self._state.registrations.values() if r["user_id"] == user_id]
        rows.sort(key=lambda r: (r["registered_at"], r["registration_id"]), reverse=True)
        events = self.get_events([r["event_id"] for r in rows])
        for row in rows:
            row["event"] = events.get(row["event_id"])
        return rows
