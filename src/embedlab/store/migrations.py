"""SQL schema migration runner.

Migrations are ``*.sql`` files applied in filename order. Each applied file is
recorded in a ledger table keyed by filename. Several processes may start
against the same database at once: statements are written to be re-runnable,
and a unique violation on the ledger insert means another process recorded the
same migration first, which counts as success.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog

from embedlab.config.constants import MIGRATIONS_TABLE
from embedlab.core.errors import BackingStoreError, ConflictError, EmbedLabError

log = structlog.get_logger(__name__)

CREATE_LEDGER_SQL = f"""
CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
  id text PRIMARY KEY,
  applied_at timestamptz NOT NULL DEFAULT now()
)
"""
SELECT_APPLIED_SQL = f"SELECT id FROM {MIGRATIONS_TABLE}"
INSERT_APPLIED_SQL = f"INSERT INTO {MIGRATIONS_TABLE} (id) VALUES (:id)"


class MigrationStore(Protocol):
    async def fetch_all(self, sql: str, params: Any = None) -> list[dict[str, Any]]: ...

    async def execute(self, sql: str, params: Any = None) -> None: ...

    async def execute_script(self, sql: str) -> None: ...


@dataclass(frozen=True, slots=True)
class Migration:
    id: str
    path: Path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")


@dataclass
class MigrationReport:
    applied: list[str] = field(default_factory=list)
    already_recorded: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def statements_run(self) -> int:
        return len(self.applied) + len(self.already_recorded)


def default_migrations_dir() -> Path:
    return Path(__file__).parent / "sql"


def discover_migrations(directory: Path) -> list[Migration]:
    """List ``*.sql`` files sorted by name. A missing directory has none."""
    if not directory.is_dir():
        return []
    files = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".sql")
    return [Migration(id=p.name, path=p) for p in files]


async def _applied_ids(db: MigrationStore) -> set[str]:
    try:
        await db.execute_script(CREATE_LEDGER_SQL)
    except ConflictError:
        # IF NOT EXISTS raced with another runner creating the same table.
        log.info("migrations.ledger_created_concurrently", table=MIGRATIONS_TABLE)
    rows = await db.fetch_all(SELECT_APPLIED_SQL)
    return {str(row["id"]) for row in rows if row.get("id")}


async def run_pending_migrations(
    db: MigrationStore | None,
    directory: Path | None = None,
) -> MigrationReport:
    """Apply every migration missing from the ledger.

    Raises:
        BackingStoreError: A migration (or the ledger) failed. Fatal at startup.
    """
    if db is None:
        log.warning("migrations.skipped", reason="database url not configured")
        return MigrationReport(skipped=True)

    migrations = discover_migrations(directory or default_migrations_dir())
    if not migrations:
        log.info("migrations.none_found", directory=str(directory or default_migrations_dir()))
        return MigrationReport()

    try:
        applied = await _applied_ids(db)
    except EmbedLabError as e:
        log.error("migrations.ledger_failed", table=MIGRATIONS_TABLE, error=str(e))
        raise BackingStoreError.migration_failed(MIGRATIONS_TABLE, e) from e
    pending = [m for m in migrations if m.id not in applied]
    report = MigrationReport()
    if not pending:
        log.info("migrations.up_to_date", total=len(migrations))
        return report

    log.info("migrations.pending", count=len(pending), ids=[m.id for m in pending])
    for migration in pending:
        try:
            await db.execute_script(migration.read())
            try:
                await db.execute(INSERT_APPLIED_SQL, {"id": migration.id})
            except ConflictError:
                log.warning("migrations.already_recorded", id=migration.id)
                report.already_recorded.append(migration.id)
                continue
        except (EmbedLabError, OSError) as e:
            log.error("migrations.failed", id=migration.id, error=str(e))
            raise BackingStoreError.migration_failed(migration.id, e) from e

        log.info("migrations.applied", id=migration.id)
        report.applied.append(migration.id)

    return report
