from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest_asyncio

from database.base import Database
from database.migrations.runner import run_migrations


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await db.connect()
    await run_migrations(db)
    yield db
    await db.close()
