from __future__ import annotations

import pytest

from core.errors import ValidationError
from database.base import Database
from database.models import WorkingHours
from database.repositories import AuditRepository, GuildSettingsRepository
from services.settings_service import (
    SettingsService,
    parse_auto_close_hours,
    parse_hour,
    parse_snowflake,
    parse_snowflake_list,
    parse_ticket_prefix,
)


def _service(database: Database) -> SettingsService:
    return SettingsService(GuildSettingsRepository(database), AuditRepository(database))


def test_parsers_accept_valid_input() -> None:
    assert parse_snowflake(" 123 ", "Category ID") == 123
    assert parse_snowflake("", "Category ID") is None
    assert parse_snowflake_list("1, 2,,2 , 3", "Roles") == [1, 2, 3]
    assert parse_snowflake_list("", "Roles") == []
    assert parse_ticket_prefix(" support ") == "support"
    assert parse_auto_close_hours("48") == 48
    assert parse_auto_close_hours("0") is None
    assert parse_hour("0", "Start hour") == 0
    assert parse_hour("23", "End hour") == 23


@pytest.mark.parametrize(
    ("parser", "raw"),
    [
        (lambda raw: parse_snowflake(raw, "Category ID"), "abc"),
        (lambda raw: parse_snowflake_list(raw, "Roles"), "1, two"),
        (lambda raw: parse_snowflake(raw, "Category ID"), "12\u00b2"),
        (lambda raw: parse_snowflake_list(raw, "Roles"), "1, \u00b9\u00b2"),
        (parse_ticket_prefix, ""),
        (parse_ticket_prefix, "x" * 21),
        (parse_ticket_prefix, "Support!"),
        (parse_auto_close_hours, "-1"),
        (parse_auto_close_hours, "soon"),
        (lambda raw: parse_hour(raw, "Start hour"), "24"),
        (lambda raw: parse_hour(raw, "Start hour"), "nine"),
    ],
)
def test_parsers_reject_invalid_input(parser, raw: str) -> None:
    with pytest.raises(ValidationError):
        parser(raw)


@pytest.mark.asyncio
async def test_updates_persist_and_are_audited(database: Database) -> None:
    service = _service(database)

    await service.set_support_roles(1, 50, "11, 12")
    await service.set_ticket_prefix(1, 50, "help")
    await service.set_auto_close_hours(1, 50, "72")
    settings = await service.set_working_hours(1, 50, "22", "6")

    assert settings.support_role_ids == [11, 12]
    assert settings.ticket_prefix == "help"
    assert settings.auto_close_after_hours == 72
    assert settings.working_hours == WorkingHours(22, 6)

    stored = await service.get(1)
    assert stored.support_role_ids == [11, 12]
    assert stored.working_hours == WorkingHours(22, 6)

    entries = await service.audit_repo.list(1)
    assert len(entries) == 4
    assert all(entry.action == "settings_updated" and entry.performed_by == 50 for entry in entries)
    details = [entry.details for entry in entries]
    assert {"working_hours": {"start": 22, "end": 6}} in details
    assert {"support_role_ids": [11, 12]} in details


@pytest.mark.asyncio
async def test_invalid_update_changes_nothing(database: Database) -> None:
    service = _service(database)

    with pytest.raises(ValidationError):
        await service.set_ticket_prefix(1, 50, "Bad Prefix")

    assert (await service.get(1)).ticket_prefix == "ticket"
    assert await service.audit_repo.list(1) == []


@pytest.mark.asyncio
async def test_toggles_flip_flags(database: Database) -> None:
    service = _service(database)

    assert (await service.toggle_multiple_tickets(1, 50)).allow_multiple_tickets is True
    assert (await service.toggle_claim_system(1, 50)).enable_claim_system is False
    assert (await service.toggle_transcripts(1, 50)).enable_transcripts is False
    assert (await service.toggle_transcripts(1, 50)).enable_transcripts is True

    cleared = await service.set_claim_role(1, 50, "")
    assert cleared.claim_role_id is None
    channel = await service.set_transcript_channel(1, 50, "777")
    assert channel.transcript_channel_id == 777
    category = await service.set_ticket_category(1, 50, "888")
    assert category.ticket_category_id == 888
