from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from database.base import Database
from database.models import TicketRecord
from database.repositories import TicketRepository
from services.stats_service import StatsService
from utils.time import format_response_time, to_iso

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


async def _create(repo: TicketRepository, ticket_id: str, channel_id: int) -> None:
    await repo.create(
        TicketRecord(
            ticket_id=ticket_id,
            guild_id=1,
            channel_id=channel_id,
            user_id=10,
            ticket_type="general",
            created_at=to_iso(T0),
        )
    )


def test_format_response_time() -> None:
    assert format_response_time(timedelta(minutes=42, seconds=30)) == "42 minutes"
    assert format_response_time(timedelta(hours=2, minutes=5)) == "2h 5m"


@pytest.mark.asyncio
async def test_empty_guild_has_no_average(database: Database) -> None:
    stats = await StatsService(TicketRepository(database)).get_ticket_stats(1)

    assert stats.total == 0
    assert stats.avg_response_time == "N/A"


@pytest.mark.asyncio
async def test_counts_and_average_response_time(database: Database) -> None:
    repo = TicketRepository(database)
    for index in range(4):
        await _create(repo, f"ticket-{index}", index)
    await repo.mark_claimed("ticket-0", 7, to_iso(T0 + timedelta(minutes=10)))
    await repo.mark_claimed("ticket-1", 7, to_iso(T0 + timedelta(minutes=30)))
    await repo.mark_claimed("ticket-2", 8, to_iso(T0 + timedelta(hours=3)))
    await repo.mark_closed("ticket-1", to_iso(T0 + timedelta(hours=1)))
    await repo.mark_locked("ticket-3")
    service = StatsService(repo)

    stats = await service.get_ticket_stats(1)
    assert (stats.total, stats.open, stats.closed, stats.locked, stats.claimed) == (4, 2, 1, 1, 3)
    assert stats.avg_response_time == "1h 13m"

    mine = await service.get_ticket_stats(1, claimed_by=7)
    assert (mine.total, mine.claimed) == (2, 2)
    assert mine.avg_response_time == "20 minutes"
