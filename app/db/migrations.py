"""Versioned schema catalog.

Each entry is applied exactly once, in ascending version order, by
``app.db.migrator``. Reverse scripts are only run by an operator through
``python -m app.cli revert``.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.db.backends import StorageBackend
from app.errors import MigrationError


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    forward: tuple[str, ...]
    reverse: tuple[str, ...] | None = None
    # False for table rebuilds that would otherwise cascade-delete child rows
    foreign_keys: bool = True


# ── SQLite ────────────────────────────────────────────────

_CAMPUS_CHECK = "campus IN ('김해캠퍼스', '부산캠퍼스')"


def _sqlite_reports_table(table: str, description_min: int) -> str:
    return f"""
        CREATE TABLE {table} (
            id TEXT PRIMARY KEY,
            campus TEXT NOT NULL CHECK ({_CAMPUS_CHECK}),
            building TEXT NOT NULL CHECK (length(building) > 0),
            location TEXT NOT NULL CHECK (length(location) > 0),
            problem_types TEXT NOT NULL CHECK (json_valid(problem_types)),
            custom_problem TEXT,
            description TEXT NOT NULL CHECK (length(description) >= {description_min}),
            password_hash TEXT NOT NULL CHECK (length(password_hash) > 0),
            empathy_count INTEGER NOT NULL DEFAULT 0 CHECK (empathy_count >= 0),
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """


_SQLITE_REPORT_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_reports_created_at ON reports(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_reports_empathy_count ON reports(empathy_count DESC)",
    "CREATE INDEX IF NOT EXISTS idx_reports_campus ON reports(campus)",
    "CREATE INDEX IF NOT EXISTS idx_reports_building ON reports(building)",
    "CREATE INDEX IF NOT EXISTS idx_reports_campus_building ON reports(campus, building)",
    "CREATE INDEX IF NOT EXISTS idx_reports_campus_created_at ON reports(campus, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_reports_campus_empathy_count ON reports(campus, empathy_count DESC)",
)

_SQLITE_EMPATHY_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_empathies_report_id ON empathies(report_id)",
    "CREATE INDEX IF NOT EXISTS idx_empathies_user_identifier ON empathies(user_identifier)",
    "CREATE INDEX IF NOT EXISTS idx_empathies_created_at ON empathies(created_at DESC)",
)

_SQLITE_COUNTER_TRIGGERS = (
    """
    CREATE TRIGGER IF NOT EXISTS update_empathy_count_on_insert
    AFTER INSERT ON empathies
    BEGIN
        UPDATE reports
        SET empathy_count = empathy_count + 1,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.report_id;
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS update_empathy_count_on_delete
    AFTER DELETE ON empathies
    BEGIN
        UPDATE reports
        SET empathy_count = empathy_count - 1,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = OLD.report_id;
    END
    """,
)

_SQLITE_TIMESTAMP_TRIGGER = """
    CREATE TRIGGER IF NOT EXISTS update_reports_timestamp
    AFTER UPDATE ON reports
    FOR EACH ROW
    WHEN NEW.updated_at = OLD.updated_at
    BEGIN
        UPDATE reports
        SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END
"""


def _index_name(create_index: str) -> str:
    # "CREATE INDEX IF NOT EXISTS <name> ON ..."
    return create_index.split()[5]


def _sqlite_rebuild_reports(description_min: int) -> tuple[str, ...]:
    # Counter triggers name ``reports`` in their bodies; RENAME refuses to run
    # while they point at a table that has just been dropped.
    return (
        "DROP TRIGGER IF EXISTS update_empathy_count_on_insert",
        "DROP TRIGGER IF EXISTS update_empathy_count_on_delete",
        _sqlite_reports_table("reports_new", description_min),
        "INSERT INTO reports_new SELECT * FROM reports",
        "DROP TABLE reports",
        "ALTER TABLE reports_new RENAME TO reports",
        *_SQLITE_REPORT_INDEXES,
        *_SQLITE_COUNTER_TRIGGERS,
        _SQLITE_TIMESTAMP_TRIGGER,
    )


SQLITE_CATALOG: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="initial_schema",
        forward=(
            _sqlite_reports_table("reports", 20).replace("CREATE TABLE", "CREATE TABLE IF NOT EXISTS", 1),
            """
            CREATE TABLE IF NOT EXISTS empathies (
                id TEXT PRIMARY KEY,
                report_id TEXT NOT NULL,
                user_identifier TEXT NOT NULL CHECK (length(user_identifier) > 0),
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (report_id) REFERENCES reports(id) ON DELETE CASCADE,
                UNIQUE (report_id, user_identifier)
            )
            """,
        ),
        reverse=(
            "DROP TABLE IF EXISTS empathies",
            "DROP TABLE IF EXISTS reports",
        ),
    ),
    Migration(
        version=2,
        name="add_indexes",
        forward=_SQLITE_REPORT_INDEXES + _SQLITE_EMPATHY_INDEXES,
        reverse=tuple(
            f"DROP INDEX IF EXISTS {_index_name(stmt)}"
            for stmt in _SQLITE_REPORT_INDEXES + _SQLITE_EMPATHY_INDEXES
        ),
    ),
    Migration(
        version=3,
        name="add_triggers",
        forward=_SQLITE_COUNTER_TRIGGERS + (_SQLITE_TIMESTAMP_TRIGGER,),
        reverse=(
            "DROP TRIGGER IF EXISTS update_empathy_count_on_insert",
            "DROP TRIGGER IF EXISTS update_empathy_count_on_delete",
            "DROP TRIGGER IF EXISTS update_reports_timestamp",
        ),
    ),
    Migration(
        version=4,
        name="update_description_min_length",
        forward=_sqlite_rebuild_reports(10),
        reverse=_sqlite_rebuild_reports(20),
        foreign_keys=False,
    ),
)


# ── PostgreSQL ────────────────────────────────────────────

POSTGRES_CATALOG: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="initial_schema",
        forward=(
            f"""
            CREATE TABLE IF NOT EXISTS reports (
                id VARCHAR(26) PRIMARY KEY,
                campus TEXT NOT NULL CHECK ({_CAMPUS_CHECK}),
                building TEXT NOT NULL CHECK (length(building) > 0),
                location TEXT NOT NULL CHECK (length(location) > 0),
                problem_types JSON NOT NULL,
                custom_problem TEXT,
                description TEXT NOT NULL CHECK (length(description) >= 10),
                password_hash TEXT NOT NULL CHECK (length(password_hash) > 0),
                empathy_count INTEGER NOT NULL DEFAULT 0 CHECK (empathy_count >= 0),
                created_at TIMESTAMPTZ DEFAULT now(),
                updated_at TIMESTAMPTZ DEFAULT now()
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS empathies (
                id VARCHAR(26) PRIMARY KEY,
                report_id VARCHAR(26) NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
                user_identifier TEXT NOT NULL CHECK (length(user_identifier) > 0),
                created_at TIMESTAMPTZ DEFAULT now(),
                CONSTRAINT uq_empathies_report_user UNIQUE (report_id, user_identifier)
            )
            """,
        ),
        reverse=(
            "DROP TABLE IF EXISTS empathies",
            "DROP TABLE IF EXISTS reports",
        ),
    ),
    Migration(
        version=2,
        name="add_indexes",
        forward=(
            "CREATE INDEX IF NOT EXISTS idx_reports_created_at ON reports(created_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_reports_empathy_count ON reports(empathy_count DESC)",
            "CREATE INDEX IF NOT EXISTS idx_reports_campus_building ON reports(campus, building)",
            "CREATE INDEX IF NOT EXISTS idx_empathies_report_id ON empathies(report_id)",
        ),
        reverse=(
            "DROP INDEX IF EXISTS idx_reports_created_at",
            "DROP INDEX IF EXISTS idx_reports_empathy_count",
            "DROP INDEX IF EXISTS idx_reports_campus_building",
            "DROP INDEX IF EXISTS idx_empathies_report_id",
        ),
    ),
)


_CATALOGS = {"sqlite": SQLITE_CATALOG, "postgresql": POSTGRES_CATALOG}


def catalog_for(backend: StorageBackend) -> tuple[Migration, ...]:
    try:
        return _CATALOGS[backend.name]
    except KeyError:
        raise MigrationError(f"No migration catalog for storage backend {backend.name!r}")
