from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from database.base import Database
from database.models import TicketRecord
from fakes import FakeGuild, build_ticket_service, make_channel, make_member
from services.auto_close_service import AutoCloseService
from utils.constants import TICKET_STATUS_CLOSED, TICKET_STATUS_OPEN
from utils.time import to_iso

NOW = datetime(2024, 5, 3, 12, 0, tzinfo=UTC)
BOT_ID = 999


async def _seed(service, fake: FakeGuild, ticket_id: str, channel_id: int, age_hours: int) -> TicketRecord:
    fake.add_channel(make_channel(channel_id, ticket_id.lower()))
    record = TicketRecord(
        ticket_id=ticket_id,
        guild_id=fake.guild.id,
        channel_id=channel_id,
        user_id=10,
        ticket_type="general",
        created_at=to_iso(NOW - timedelta(hours=age_hours)),
    )
    await service.deps.ticket_repo.create(record)
    return record


@pytest.mark.asyncio
async def test_sweep_closes_only_stale_tickets_per_guild(database: Database, tmp_path: Path) -> None:
    service = build_ticket_service(database, tmp_path)
    sweeper = AutoCloseService(service.deps.settings_repo, service.deps.ticket_repo, service)

    guild_a = FakeGuild(1)
    guild_b = FakeGuild(2)
    guild_a.add_member(make_member(10))
    settings_a = await service.deps.settings_repo.get_or_create(1)
    settings_a.auto_close_after_hours = 48
    settings_a.enable_transcripts = False
    await service.deps.settings_repo.save(settings_a)

    stale = await _seed(service, guild_a, "ticket-STALE", 11, 50)
    fresh = await _seed(service, guild_a, "ticket-FRESH", 12, 10)
    untouched = await _seed(service, guild_b, "ticket-B", 21, 500)

    report = await sweeper.sweep([guild_a.guild, guild_b.guild], actor_id=BOT_ID, now=NOW)

    assert report.guilds_scanned == 2
    assert report.tickets_closed == 1
    assert report.failures == 0

    closed = await service.deps.ticket_repo.get_by_id(stale.ticket_id)
    assert closed is not None
    assert closed.status == TICKET_STATUS_CLOSED
    assert closed.closed_at == to_iso(NOW)
    for ticket in (fresh, untouched):
        current = await service.deps.ticket_repo.get_by_id(ticket.ticket_id)
        assert current is not None and current.status == TICKET_STATUS_OPEN

    guild_a.channels[11].delete.assert_awaited_once()
    guild_a.channels[12].delete.assert_not_awaited()
    guild_b.channels[21].send.assert_not_awaited()

    entries = await service.deps.audit_repo.list(1, ticket_id=stale.ticket_id)
    assert entries[0].action == "ticket_closed"
    assert entries[0].performed_by == BOT_ID
    assert entries[0].details == {"auto_close": True, "hours": 48}


@pytest.mark.asyncio
async def test_sweep_closes_ticket_whose_channel_is_gone(database: Database, tmp_path: Path) -> None:
    service = build_ticket_service(database, tmp_path)
    sweeper = AutoCloseService(service.deps.settings_repo, service.deps.ticket_repo, service)
    fake = FakeGuild(1)
    settings = await service.deps.settings_repo.get_or_create(1)
    settings.auto_close_after_hours = 24
    await service.deps.settings_repo.save(settings)
    record = await _seed(service, fake, "ticket-GONE", 11, 30)
    del fake.channels[11]

    report = await sweeper.sweep([fake.guild], actor_id=BOT_ID, now=NOW)

    assert report.tickets_closed == 1
    entries = await service.deps.audit_repo.list(1, ticket_id=record.ticket_id)
    assert entries[0].details == {"auto_close": True, "hours": 24}
    current = await service.deps.ticket_repo.get_by_id(record.ticket_id)
    assert current is not None and current.status == TICKET_STATUS_CLOSED


@pytest.mark.asyncio
async def test_already_closed_ticket_is_skipped(database: Database, tmp_path: Path) -> None:
    service = build_ticket_service(database, tmp_path)
    fake = FakeGuild(1)
    settings = await service.deps.settings_repo.get_or_create(1)
    settings.auto_close_after_hours = 24
    record = await _seed(service, fake, "ticket-RACE", 11, 30)
    await service.deps.ticket_repo.mark_closed(record.ticket_id, to_iso(NOW - timedelta(minutes=1)))

    closed = await service.auto_close_ticket(fake.guild, record, settings, actor_id=BOT_ID, now=NOW)

    assert closed is False
    fake.channels[11].delete.assert_not_awaited()
    assert await service.deps.audit_repo.list(1, ticket_id=record.ticket_id) == []


@pytest.mark.asyncio
async def test_failing_guild_does_not_stop_the_sweep(database: Database, tmp_path: Path) -> None:
    service = build_ticket_service(database, tmp_path)
    sweeper = AutoCloseService(service.deps.settings_repo, service.deps.ticket_repo, service)
    broken = FakeGuild(1)
    healthy = FakeGuild(2)
    for guild_id in (1, 2):
        settings = await service.deps.settings_repo.get_or_create(guild_id)
        settings.auto_close_after_hours = 1
        settings.enable_transcripts = False
        await service.deps.settings_repo.save(settings)
    await _seed(service, broken, "ticket-X", 11, 5)
    record = await _seed(service, healthy, "ticket-Y", 21, 5)

    original = service.auto_close_ticket

    async def flaky(guild, ticket, settings, **kwargs):
        if guild is broken.guild:
            raise RuntimeError("boom")
        return await original(guild, ticket, settings, **kwargs)

    service.auto_close_ticket = flaky  # type: ignore[method-assign]
    report = await sweeper.sweep([broken.guild, healthy.guild], actor_id=BOT_ID, now=NOW)

    assert report.failures == 1
    assert report.tickets_closed == 1
    current = await service.deps.ticket_repo.get_by_id(record.ticket_id)
    assert current is not None and current.status == TICKET_STATUS_CLOSED


@pytest.mark.asyncio
async def test_auto_close_is_audited_before_channel_side_effects(database: Database, tmp_path: Path) -> None:
    service = build_ticket_service(database, tmp_path)
    fake = FakeGuild(1)
    settings = await service.deps.settings_repo.get_or_create(1)
    settings.auto_close_after_hours = 24
    settings.enable_transcripts = False
    record = await _seed(service, fake, "ticket-SHUTDOWN", 11, 30)
    fake.channels[11].send.side_effect = asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await service.auto_close_ticket(fake.guild, record, settings, actor_id=BOT_ID, now=NOW)

    current = await service.deps.ticket_repo.get_by_id(record.ticket_id)
    assert current is not None and current.status == TICKET_STATUS_CLOSED
    entries = await service.deps.audit_repo.list(1, ticket_id=record.ticket_id)
    assert [entry.action for entry in entries] == ["ticket_closed"]
