"""
Database schema for the virtual events backend.

Creates the users, events and event_registrations tables if they do not
exist. Called by the gateway when INIT_DB is enabled, or run directly:

    python -m virtual_events.database.init_db
"""

import logging
import sys

from virtual_events.config import load_config
from virtual_events.database.db_connection import Database

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id       SERIAL PRIMARY KEY,
        name          VARCHAR(100) NOT NULL,
        username      VARCHAR(15)  NOT NULL UNIQUE,
        email         VARCHAR(255) NOT NULL UNIQUE,
        password_hash TEXT         NOT NULL,
        role          VARCHAR(20)  NOT NULL DEFAULT 'attendee'
                      CHECK (role IN ('attendee', 'organizer', 'admin')),
        created_at    TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at    TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        event_id              SERIAL PRIMARY KEY,
        title                 VARCHAR(200) NOT NULL,
        description           TEXT         NOT NULL DEFAULT '',
        mode                  VARCHAR(20)  NOT NULL DEFAULT 'virtual'
                              CHECK (mode IN ('virtual', 'in-person', 'hybrid')),
        start_at              TIMESTAMPTZ  NOT NULL,
        end_at                TIMESTAMPTZ,
        registration_deadline TIMESTAMPTZ,
        capacity              INTEGER      NOT NULL DEFAULT 100 CHECK (capacity >= 1),
        is_unlimited_capacity BOOLEAN      NOT NULL DEFAULT FALSE,
        attendees             INTEGER[]    NOT NULL DEFAULT '{}',
        meeting_url           TEXT,
        location              JSONB        NOT NULL DEFAULT '{}'::jsonb,
        status                VARCHAR(20)  NOT NULL DEFAULT 'draft'
                              CHECK (status IN ('draft', 'published', 'cancelled', 'completed')),
        is_public             BOOLEAN      NOT NULL DEFAULT TRUE,
        tags                  TEXT[]       NOT NULL DEFAULT '{}',
        price                 DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (price >= 0),
        created_by            INTEGER REFERENCES users(user_id) ON DELETE SET NULL,
        created_at            TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at            TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_events_start_at ON events (start_at);",
    "CREATE INDEX IF NOT EXISTS ix_events_status ON events (status);",
    """
    CREATE TABLE IF NOT EXISTS event_registrations (
        registration_id SERIAL PRIMARY KEY,
        event_id        INTEGER      NOT NULL REFERENCES events(event_id) ON DELETE CASCADE,
        user_id         INTEGER      NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        status          VARCHAR(20)  NOT NULL DEFAULT 'registered'
                        CHECK (status IN ('registered', 'cancelled', 'waitlisted')),
        registered_at   TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP,
        cancelled_at    TIMESTAMPTZ,
        source          VARCHAR(100) NOT NULL DEFAULT 'api',
        metadata        JSONB        NOT NULL DEFAULT '{}'::jsonb,
        created_at      TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at      TIMESTAMPTZ  NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT uq_event_registrations_event_user UNIQUE (event_id, user_id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_event_registrations_user ON event_registrations (user_id);",
]


def init_db(db: Database) -> None:
    """Apply every schema statement in a single transaction."""
    with db.connection() as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
    logging.info("Database schema is up to date")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")
    config = load_config()
    database = Database(config["DATABASE_URL"], config["DB_POOL_MIN"], config["DB_POOL_MAX"])
    try:
        database.open()
        init_db(database)
    except Exception as e:
        logging.error(f"Schema creation FAILED: {e}")
        sys.exit(1)
    finally:
        database.close()
