from __future__ import annotations

import logging
from pathlib import Path

from database.base import Database

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent

MIGRATION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id TEXT PRIMARY KEY,
    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


async def run_migrations(database: Database, migrations_path: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending ``*.sql`` files in name order and return the ids applied now."""
    await database.executescript(MIGRATION_TABLE_SQL)
    rows = await database.fetchall("SELECT id FROM schema_migrations;")
    already_applied = {row["id"] for row in rows}

    newly_applied: list[str] = []
    for migration_file in sorted(migrations_path.glob("*.sql")):
        migration_id = migration_file.name
        if migration_id in already_applied:
            continue
        LOGGER.info("Applying migration %s", migration_id)
        await database.executescript(migration_file.read_text(encoding="utf-8"))
        await database.execute("INSERT INTO schema_migrations(id) VALUES (?);", [migration_id])
        newly_applied.append(migration_id)

    if newly_applied:
        LOGGER.info("Applied %s migration(s)", len(newly_applied))
    else:
        LOGGER.debug("Schema up to date (%s migration(s))", len(already_applied))
    return newly_applied
