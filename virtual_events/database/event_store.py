"""
Persistence adapter for users, events and event registrations.

All SQL lives here. Rows are returned as plain dicts keyed by column name.
The adapter exposes the two primitives the registration path depends on:

- a conditional atomic update (`add_attendee_if_eligible`) that checks the
  eligibility predicate and appends the attendee in one statement, and
- a unique (event_id, user_id) index behind `upsert_registration`.

`transaction()` yields a store bound to a single connection so several
calls commit or roll back together.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

import psycopg2
from psycopg2.extras import Json

from virtual_events.database.db_connection import Database
from virtual_events.errors import translate_db_error

# Columns that callers may write on insert/update.
EVENT_WRITABLE_COLUMNS = (
    "title",
    "description",
    "mode",
    "start_at",
    "end_at",
    "registration_deadline",
    "capacity",
    "is_unlimited_capacity",
    "meeting_url",
    "location",
    "status",
    "is_public",
    "tags",
    "price",
    "created_by",
)

JSON_COLUMNS = ("location", "metadata")

USER_PUBLIC_COLUMNS = "user_id, name, username, email, role, created_at, updated_at"


def _adapt(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and value is not None:
        return Json(value)
    return value


class EventStore:
    supports_transactions = True

    def __init__(self, db: Database, conn=None) -> None:
        self._db = db
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator["psycopg2.extensions.cursor"]:
        try:
            if self._conn is not None:
                with self._conn.cursor() as cur:
                    yield cur
            else:
                with self._db.connection() as conn:
                    with conn.cursor() as cur:
                        yield cur
        except psycopg2.Error as e:
            raise translate_db_error(e) from e

    @contextmanager
    def transaction(self) -> Iterator["EventStore"]:
        """Yield a store whose calls share one connection and one commit."""
        if self._conn is not None:
            yield self
            return
        with self._db.connection() as conn:
            yield EventStore(self._db, conn)

    # --- USERS ---

    def insert_user(self, name: str, username: str, email: str, password_hash: str,
                    role: str = "attendee") -> Dict[str, Any]:
        sql = f"""
            INSERT INTO users (name, username, email, password_hash, role)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {USER_PUBLIC_COLUMNS};
        """
        with self._cursor() as cur:
            cur.execute(sql, (name, username, email, password_hash, role))
            return dict(cur.fetchone())

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Includes password_hash; only the identity layer should call this."""
        sql = f"SELECT {USER_PUBLIC_COLUMNS}, password_hash FROM users WHERE email = %s;"
        with self._cursor() as cur:
            cur.execute(sql, (email,))
            row = cur.fetchone()
        return dict(row) if row else None

    def find_user_by_email_or_username(self, email: str, username: str) -> Optional[Dict[str, Any]]:
        sql = f"SELECT {USER_PUBLIC_COLUMNS} FROM users WHERE email = %s OR username = %s LIMIT 1;"
        with self._cursor() as cur:
            cur.execute(sql, (email, username))
            row = cur.fetchone()
        return dict(row) if row else None

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        sql = f"SELECT {USER_PUBLIC_COLUMNS} FROM users WHERE user_id = %s;"
        with self._cursor() as cur:
            cur.execute(sql, (user_id,))
            row = cur.fetchone()
        return dict(row) if row else None

    def get_user_contacts(self, user_ids: List[int]) -> List[Dict[str, Any]]:
        """Name/email projection for a set of users, ordered by id."""
        if not user_ids:
            return []
        sql = "SELECT user_id, name, email FROM users WHERE user_id = ANY(%s) ORDER BY user_id;"
        with self._cursor() as cur:
            cur.execute(sql, (list(user_ids),))
            return [dict(row) for row in cur.fetchall()]

    # --- EVENTS ---

    def list_events(self) -> List[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM events ORDER BY start_at, event_id;")
            return [dict(row) for row in cur.fetchall()]

    def get_event(self, event_id: int) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM events WHERE event_id = %s;", (event_id,))
            row = cur.fetchone()
        return dict(row) if row else None

    def get_events(self, event_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        if not event_ids:
            return {}
        with self._cursor() as cur:
            cur.execute("SELECT * FROM events WHERE event_id = ANY(%s);", (list(event_ids),))
            return {row["event_id"]: dict(row) for row in cur.fetchall()}

    def insert_event(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        columns = [c for c in EVENT_WRITABLE_COLUMNS if c in fields]
        placeholders = ", ".join(["%s"] * len(columns))
        sql = f"""
            INSERT INTO events ({', '.join(columns)})
            VALUES ({placeholders})
            RETURNING *;
        """
        values = [_adapt(c, fields[c]) for c in columns]
        with self._cursor() as cur:
            cur.execute(sql, values)
            return dict(cur.fetchone())

    def update_event_if_fits(self, event_id: int, changes: Dict[str, Any],
                             capacity: int, is_unlimited: bool) -> Optional[Dict[str, Any]]:
        """
        Apply `changes` only if the current attendees fit the resulting capacity.

        Returns the updated row, or None if the event is missing or the
        attendee count no longer fits.
        """
        columns = [c for c in EVENT_WRITABLE_COLUMNS if c in changes]
        set_clause = ", ".join(f"{c} = %s" for c in columns)
        if set_clause:
            set_clause += ", "
        set_clause += "updated_at = CURRENT_TIMESTAMP"

        sql = f"""
            UPDATE events SET {set_clause}
            WHERE event_id = %s
              AND (%s OR cardinality(attendees) <= %s)
            RETURNING *;
        """
        values = [_adapt(c, changes[c]) for c in columns]
        values.extend([event_id, is_unlimited, capacity])
        with self._cursor() as cur:
            cur.execute(sql, values)
            row = cur.fetchone()
        return dict(row) if row else None

    def delete_event_if_empty(self, event_id: int) -> bool:
        """Delete the event only while it has no attendees."""
        sql = """
            DELETE FROM events
            WHERE event_id = %s AND cardinality(attendees) = 0
            RETURNING event_id;
        """
        with self._cursor() as cur:
            cur.execute(sql, (event_id,))
            return cur.fetchone() is not None

    def add_attendee_if_eligible(self, event_id: int, user_id: int,
                                 now: datetime) -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Add user_id to attendees if the event is open, before its deadline
        and has room (or the user is already in it).

        The predicate and the write are one statement. The CTE takes the row
        lock first, and PostgreSQL re-checks the UPDATE's WHERE clause
        against the newest row version, so concurrent callers cannot push
        attendees past capacity.

        Returns:
            tuple: (event, added). event is None if nothing matched; added is
            False when the user already held a seat.
        """
        sql = """
            WITH current_event AS (
                SELECT event_id, %(user_id)s = ANY(attendees) AS was_attending
                FROM events
                WHERE event_id = %(event_id)s
                FOR UPDATE
            )
            UPDATE events e
            SET attendees = CASE
                    WHEN c.was_attending THEN e.attendees
                    ELSE array_append(e.attendees, %(user_id)s)
                END,
                updated_at = CURRENT_TIMESTAMP
            FROM current_event c
            WHERE e.event_id = c.event_id
              AND e.status = 'published'
              AND (e.registration_deadline IS NULL OR e.registration_deadline >= %(now)s)
              AND (
                    c.was_attending
                    OR e.is_unlimited_capacity
                    OR cardinality(e.attendees) < e.capacity
              )
            RETURNING e.*, c.was_attending;
        """
        params = {"event_id": event_id, "user_id": user_id, "now": now}
        with self._cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        if not row:
            return None, False
        event = dict(row)
        was_attending = bool(event.pop("was_attending"))
        return event, not was_attending

    def remove_attendee(self, event_id: int, user_id: int) -> None:
        sql = """
            UPDATE events
            SET attendees = array_remove(attendees, %s), updated_at = CURRENT_TIMESTAMP
            WHERE event_id = %s;
        """
        with self._cursor() as cur:
            cur.execute(sql, (user_id, event_id))

    # --- REGISTRATIONS ---

    def upsert_registration(self, event_id: int, user_id: int, now: datetime,
                            source: str = "api",
                            metadata: Optional[Dict[str, Any]] = None) -> Tuple[Dict[str, Any], bool]:
        """
        Mark (event_id, user_id) as registered.

        registered_at, source and metadata are only written on first insert.
        Returns (row, created). created is True for a new row and for a
        reactivated cancelled/waitlisted one, False if it was already registered.
        """
        sql = """
            WITH prior AS (
                SELECT status FROM event_registrations
                WHERE event_id = %(event_id)s AND user_id = %(user_id)s
            )
            INSERT INTO event_registrations
                (event_id, user_id, status, registered_at, cancelled_at, source, metadata)
            VALUES (%(event_id)s, %(user_id)s, 'registered', %(now)s, NULL, %(source)s, %(metadata)s)
            ON CONFLICT (event_id, user_id) DO UPDATE
            SET status = 'registered',
                cancelled_at = NULL,
                updated_at = CURRENT_TIMESTAMP
            RETURNING event_registrations.*,
                      (xmax = 0) AS inserted,
                      (SELECT status FROM prior) AS previous_status;
        """
        params = {
            "event_id": event_id,
            "user_id": user_id,
            "now": now,
            "source": source,
            "metadata": Json(metadata or {}),
        }
        with self._cursor() as cur:
            cur.execute(sql, params)
            row = dict(cur.fetchone())
        inserted = bool(row.pop("inserted"))
        previous_status = row.pop("previous_status")
        return row, inserted or previous_status != "registered"

    def find_registration(self, event_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        sql = "SELECT * FROM event_registrations WHERE event_id = %s AND user_id = %s;"
        with self._cursor() as cur:
            cur.execute(sql, (event_id, user_id))
            row = cur.fetchone()
        return dict(row) if row else None

    def list_registrations_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        """Registrations of one user, newest first, each with its event under "event"."""
        sql = """
            SELECT * FROM event_registrations
            WHERE user_id = %s
            ORDER BY registered_at DESC, registration_id DESC;
        """
        with self._cursor() as cur:
            cur.execute(sql, (user_id,))
            registrations = [dict(row) for row in cur.fetchall()]

        events = self.get_events(sorted({r["event_id"] for r in registrations}))
        for registration in registrations:
            registration["event"] = events.get(registration["event_id"])
        return registrations
