"""Applying CQL migration files in lexicographical order of their names.

Migrations live in a flat directory of ``*.cql`` files; the migration name
is the file name. Progress is recorded statement by statement in the
``gocqlx_migrate`` table so an interrupted file resumes where it stopped.
A comment of the form ``-- CALL <name>;`` runs the configured callback.
"""

from __future__ import annotations

import contextlib
import dataclasses
import enum
import fnmatch
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Protocol, Sequence

from cqlxkit.iterx import Iterx
from cqlxkit.migrate.callback import CallbackEvent, CallbackFunc
from cqlxkit.migrate.checksum import _as_directory, checksum, file_checksum

INFO_SCHEMA = """CREATE TABLE IF NOT EXISTS gocqlx_migrate (
\tname text,
\tchecksum text,
\tdone int,
\tstart_time timestamp,
\tend_time timestamp,
\tPRIMARY KEY(name)
)"""

SELECT_INFO = "SELECT * FROM gocqlx_migrate"

INSERT_INFO = (
    "INSERT INTO gocqlx_migrate (name,checksum,done,start_time,end_time) "
    "VALUES (?,?,?,?,?)"
)

_CALLBACK_RE = re.compile(r"-- *CALL +(.+);")


class AwaitSchemaAgreement(enum.Enum):
    """When to wait for cluster schema agreement while migrating."""

    DISABLED = 0
    BEFORE_EACH_FILE = 1
    BEFORE_EACH_STATEMENT = 2

    def should_await(self, stage: "AwaitSchemaAgreement") -> bool:
        """Tell whether agreement is awaited at ``stage``."""
        return self is stage


#: Extra schema agreement checks; agreement is always awaited once at the end.
DEFAULT_AWAIT_SCHEMA_AGREEMENT = AwaitSchemaAgreement.DISABLED

#: Callback run before and after each migration file and for CALL comments.
CALLBACK: Optional[CallbackFunc] = None


class Session(Protocol):
    """What the migrator needs from a database session."""

    def execute(self, stmt: str, values: Sequence[Any] = ()) -> Any: ...

    def query(self, stmt: str) -> Any: ...

    def await_schema_agreement(self) -> Any: ...


class MigrationError(Exception):
    """Raised when migrations cannot be listed, verified or applied."""


@dataclasses.dataclass
class Info:
    """A migration as recorded in the database."""

    name: str = ""
    checksum: str = ""
    done: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


@contextlib.contextmanager
def _wrap(prefix: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        raise MigrationError(f"{prefix}: {exc}") from exc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def list_migrations(session: Session) -> List[Info]:
    """Return applied migrations sorted by name, creating the table if needed."""
    session.execute(INFO_SCHEMA)
    infos = Iterx(session.query(SELECT_INFO)).select(Info)
    return sorted(infos, key=lambda info: info.name)


def is_callback(stmt: str) -> str:
    """Return the name of a ``-- CALL <name>;`` statement, else an empty string."""
    match = _CALLBACK_RE.fullmatch(stmt)
    return match.group(1) if match else ""


def migrate(session: Session, directory: Any) -> None:
    """Apply new migrations from a directory on disk."""
    from_fs(session, Path(directory))


def from_fs(session: Session, directory: Any) -> None:
    """Apply new ``*.cql`` migrations from a directory.

    ``directory`` is a path or any traversable with ``iterdir`` and ``/``.
    """
    root = _as_directory(directory)

    with _wrap("list migrations"):
        applied = list_migrations(session)

    files = _migration_files(root)
    if not files:
        raise MigrationError("no migration files found")

    if len(applied) > len(files):
        raise MigrationError("database is ahead")

    for info, name in zip(applied, files):
        if info.name != name:
            raise MigrationError("inconsistent migrations")
        with _wrap(f'calculate checksum for "{name}"'):
            digest = file_checksum(root, name)
        if info.checksum != digest:
            raise MigrationError(
                f'file "{name}" was tempered with, expected md5 {info.checksum}'
            )

    pending = [(name, 0) for name in files[len(applied):]]
    if applied:
        pending.insert(0, (files[len(applied) - 1], applied[-1].done))

    for name, done in pending:
        with _wrap(f'apply migration "{name}"'):
            _apply_migration(session, root, name, done)

    with _wrap("awaiting schema agreement"):
        session.await_schema_agreement()


def _migration_files(root: Any) -> List[str]:
    try:
        entries = list(root.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return []
    except OSError as exc:
        raise MigrationError(f"list migrations: {exc}") from exc
    return sorted(
        entry.name
        for entry in entries
        if entry.is_file() and fnmatch.fnmatchcase(entry.name, "*.cql")
    )


def _split_statements(text: str) -> List[str]:
    *complete, tail = text.split(";")
    statements = [part + ";" for part in complete]
    if tail.strip():
        statements.append(tail)
    return statements


def _apply_migration(session: Session, root: Any, name: str, done: int) -> None:
    data = (root / name).read_bytes()
    info = Info(name=name, checksum=checksum(data), start_time=_now())
    callback = CALLBACK
    await_mode = DEFAULT_AWAIT_SCHEMA_AGREEMENT

    if await_mode.should_await(AwaitSchemaAgreement.BEFORE_EACH_FILE):
        with _wrap("awaiting schema agreement"):
            session.await_schema_agreement()

    statements = _split_statements(data.decode("utf-8"))
    for number, raw in enumerate(statements, 1):
        if number <= done:
            continue

        if callback is not None and number == 1:
            with _wrap("before migration callback"):
                callback(session, CallbackEvent.BEFORE_MIGRATION, info.name)

        if await_mode.should_await(AwaitSchemaAgreement.BEFORE_EACH_STATEMENT):
            with _wrap("awaiting schema agreement"):
                session.await_schema_agreement()

        stmt = raw.strip()
        call = is_callback(stmt)
        if call:
            if callback is None:
                raise MigrationError(
                    f"statement {number}: missing callback handler while trying to call {call}"
                )
            with _wrap(f"callback {call}"):
                callback(session, CallbackEvent.CALL_COMMENT, call)
        else:
            with _wrap(f"statement {number}"):
                session.execute(stmt)

        info.done = number
        info.end_time = _now()
        with _wrap(f"migration statement {number}"):
            session.execute(
                INSERT_INFO,
                (info.name, info.checksum, info.done, info.start_time, info.end_time),
            )

    if not statements:
        raise MigrationError(f'no migration statements found in "{info.name}"')

    if callback is not None and len(statements) > done:
        with _wrap("after migration callback"):
            callback(session, CallbackEvent.AFTER_MIGRATION, info.name)