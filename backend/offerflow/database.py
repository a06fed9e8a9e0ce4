import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from offerflow.config import settings
from offerflow.utils.filesystem import ensure_data_dir


class Base(DeclarativeBase):
    pass


# Seconds a writer waits for the SQLite write lock before giving up.
BUSY_TIMEOUT_SECONDS = 30


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_SECONDS * 1000}")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": BUSY_TIMEOUT_SECONDS},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_session_factory():
    return SessionLocal


SCHEMA_SQL = """\
-- ============================================================
-- COLLABORATOR RECORDS (read-only for the orchestrator)
-- ============================================================
CREATE TABLE IF NOT EXISTS job_postings (
    id         TEXT PRIMARY KEY,
    title      TEXT NOT NULL,
    location   TEXT,
    salary_min INTEGER,
    salary_max INTEGER,
    currency   TEXT DEFAULT 'USD',
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE TABLE IF NOT EXISTS candidates (
    id               TEXT PRIMARY KEY,
    first_name       TEXT NOT NULL,
    last_name        TEXT NOT NULL,
    email            TEXT,
    expected_salary  INTEGER,
    experience_years INTEGER,
    current_location TEXT
);

CREATE TABLE IF NOT EXISTS job_applications (
    id           TEXT PRIMARY KEY,
    job_id       TEXT NOT NULL REFERENCES job_postings(id),
    candidate_id TEXT NOT NULL REFERENCES candidates(id),
    status       TEXT NOT NULL DEFAULT 'applied',
    applied_at   TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_applications_job ON job_applications(job_id);

-- ============================================================
-- OFFER WORKFLOWS
-- ============================================================
CREATE TABLE IF NOT EXISTS offer_workflows (
    id                           TEXT PRIMARY KEY,
    application_id               TEXT NOT NULL REFERENCES job_applications(id),
    current_step                 TEXT NOT NULL DEFAULT 'background_check'
                                 CHECK(current_step IN ('background_check','generate_offer','hr_approval',
                                                        'send_offer','track_response')),
    status                       TEXT NOT NULL DEFAULT 'pending'
                                 CHECK(status IN ('pending','in_progress','completed','rejected','cancelled')),
    version                      INTEGER NOT NULL DEFAULT 1,
    created_by                   TEXT NOT NULL,

    background_check_request_id  TEXT,
    background_check_status      TEXT,
    background_check_result      TEXT,
    background_check_completed_at TEXT,

    offer_details                TEXT,
    offer_generated_at           TEXT,

    hr_approval_comments         TEXT,
    hr_approved_by               TEXT,
    hr_approved_at               TEXT,

    email_request_id             TEXT,
    offer_letter_ref             TEXT,
    sent_at                      TEXT,

    candidate_response           TEXT
                                 CHECK(candidate_response IN ('accepted','rejected','negotiating','pending')),
    candidate_comment            TEXT,
    candidate_response_at        TEXT,

    completed_at                 TEXT,
    cancelled_at                 TEXT,
    cancel_reason                TEXT,
    created_at                   TEXT NOT NULL,
    updated_at                   TEXT NOT NULL
);

-- At most one non-cancelled workflow per application.
CREATE UNIQUE INDEX IF NOT EXISTS idx_workflows_active_application
    ON offer_workflows(application_id) WHERE status != 'cancelled';
CREATE INDEX IF NOT EXISTS idx_workflows_status ON offer_workflows(status);

-- ============================================================
-- WORKFLOW EVENTS (audit timeline)
-- ============================================================
CREATE TABLE IF NOT EXISTS workflow_events (
    id          TEXT PRIMARY KEY,
    workflow_id TEXT NOT NULL REFERENCES offer_workflows(id),
    event_type  TEXT NOT NULL
                CHECK(event_type IN ('created','step_completed','offer_regenerated',
                                     'response_recorded','cancelled')),
    step        TEXT,
    notes       TEXT,
    actor_id    TEXT,
    occurred_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_workflow_events_workflow ON workflow_events(workflow_id);
"""


# Column additions for databases created before the column existed in SCHEMA_SQL.
MIGRATIONS: list[str] = []


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    ensure_data_dir(path.parent)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently (ALTER TABLE fails if column exists)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # column already exists
    conn.close()
