"""Corpus store access and schema migrations."""

from embedlab.store.db import Database
from embedlab.store.migrations import (
    Migration,
    MigrationReport,
    default_migrations_dir,
    discover_migrations,
    run_pending_migrations,
)

__all__ = [
    "Database",
    "Migration",
    "MigrationReport",
    "default_migrations_dir",
    "discover_migrations",
    "run_pending_migrations",
]
