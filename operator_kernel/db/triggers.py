"""
Module: operator_kernel.db.triggers
Responsibility: Loading, installing and verifying the database triggers that
    keep operator history append-only and operator costs undeletable.  This
    is the database-level complement to the ORM guards in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/ or domain/.

Invariants enforced (per dialect, PostgreSQL and SQLite):
    - operator_history: BEFORE UPDATE and BEFORE DELETE raise.
    - operator_costs: BEFORE DELETE raises.

Failure modes:
    - The database rejects the statement (IntegrityError through SQLAlchemy:
      ``restrict_violation`` on PostgreSQL, ``RAISE(ABORT)`` on SQLite).
    - FileNotFoundError if SQL files are missing from the sql/ directory.

Audit relevance:
    Raw SQL, Core statements on a Connection and direct database sessions
    never see the ORM guards.  These triggers still reject them.
"""

import sqlite3
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from operator_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_operator_history.sql",
    "02_operator_cost.sql",
]

DROP_FILE = "99_drop_all.sql"

SUPPORTED_DIALECTS = ("postgresql", "sqlite")

ALL_TRIGGER_NAMES = [
    "trg_operator_history_immutability_update",
    "trg_operator_history_immutability_delete",
    "trg_operator_cost_deletion_protection",
]


def _load_sql_file(dialect: str, filename: str) -> str:
    return (SQL_DIR / dialect / filename).read_text(encoding="utf-8")


def _split_statements(dialect: str, sql: str) -> list[str]:
    """
    Executable statements of a SQL file.

    PostgreSQL takes a whole file in one call.  SQLite executes one
    statement at a time, and trigger bodies contain semicolons, so lines are
    accumulated until they form a complete statement.
    """
    if dialect != "sqlite":
        return [sql]
    statements = []
    buffer = ""
    for line in sql.splitlines(keepends=True):
        buffer += line
        if sqlite3.complete_statement(buffer):
            statements.append(buffer.strip())
            buffer = ""
    return statements


def _run(bind: Engine | Connection, filenames: list[str]) -> None:
    dialect = bind.dialect.name
    statements = [
        statement
        for filename in filenames
        for statement in _split_statements(dialect, _load_sql_file(dialect, filename))
    ]
    if isinstance(bind, Engine):
        with bind.begin() as conn:
            for statement in statements:
                conn.execute(text(statement))
    else:
        for statement in statements:
            bind.execute(text(statement))


def supports_triggers(bind: Engine | Connection) -> bool:
    return bind.dialect.name in SUPPORTED_DIALECTS


def install_immutability_triggers(bind: Engine | Connection) -> None:
    """
    Install the database-level immutability triggers.

    Idempotent: PostgreSQL functions use CREATE OR REPLACE and triggers are
    dropped before creation; SQLite uses CREATE TRIGGER IF NOT EXISTS.

    Preconditions: Tables exist (call after create_tables()).

    Args:
        bind: An Engine (runs in its own transaction) or a Connection (runs
            inside the caller's transaction, e.g. ``session.connection()``).
    """
    if not supports_triggers(bind):
        logger.warning(
            "immutability_triggers_unsupported_dialect",
            extra={"dialect": bind.dialect.name},
        )
        return
    _run(bind, TRIGGER_FILES)
    logger.info(
        "immutability_triggers_installed",
        extra={"dialect": bind.dialect.name, "count": len(ALL_TRIGGER_NAMES)},
    )


def uninstall_immutability_triggers(bind: Engine | Connection) -> None:
    """
    Remove the database-level immutability triggers.

    WARNING: Only for migrations and tests that rewrite history on purpose.
    Re-install immediately afterwards.
    """
    if not supports_triggers(bind):
        return
    _run(bind, [DROP_FILE])
    logger.warning(
        "immutability_triggers_uninstalled",
        extra={"dialect": bind.dialect.name},
    )


def get_installed_triggers(bind: Engine | Connection) -> list[str]:
    """Names from ALL_TRIGGER_NAMES present in the database, sorted."""
    if not supports_triggers(bind):
        return []
    if bind.dialect.name == "postgresql":
        query = "SELECT tgname FROM pg_trigger WHERE NOT tgisinternal ORDER BY tgname"
    else:
        query = "SELECT name FROM sqlite_master WHERE type = 'trigger' ORDER BY name"

    if isinstance(bind, Engine):
        with bind.connect() as conn:
            names = conn.execute(text(query)).scalars().all()
    else:
        names = bind.execute(text(query)).scalars().all()
    return [name for name in names if name in ALL_TRIGGER_NAMES]


def triggers_installed(bind: Engine | Connection) -> bool:
    return len(get_installed_triggers(bind)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(bind: Engine | Connection) -> list[str]:
    return sorted(set(ALL_TRIGGER_NAMES) - set(get_installed_triggers(bind)))
