from __future__ import annotations

from unittest.mock import MagicMock

import discord

from database.models import GuildSettings
from fakes import make_member
from utils.permissions import build_ticket_overwrites, can_claim_tickets, can_manage_tickets, is_admin
from utils.time import is_within_working_hours, parse_iso, to_iso


def test_staff_checks() -> None:
    settings = GuildSettings(guild_id=1, support_role_ids=[5], claim_role_id=6)

    assert is_admin(make_member(1, admin=True))
    assert can_manage_tickets(make_member(2, role_ids=[5]), settings)
    assert not can_manage_tickets(make_member(3, role_ids=[6]), settings)
    assert can_claim_tickets(make_member(3, role_ids=[6]), settings)
    assert not can_claim_tickets(make_member(4), settings)


def test_overwrites_skip_missing_roles_and_duplicate_claim_role() -> None:
    guild = MagicMock(spec=discord.Guild)
    guild.default_role = discord.Object(id=1)
    guild.me = discord.Object(id=2)
    roles = {5: discord.Object(id=5)}
    guild.get_role = MagicMock(side_effect=roles.get)
    opener = discord.Object(id=10)

    settings = GuildSettings(guild_id=1, support_role_ids=[5, 404], claim_role_id=5)
    overwrites = build_ticket_overwrites(guild, opener, settings)

    assert set(overwrites) == {guild.default_role, guild.me, opener, roles[5]}
    assert overwrites[roles[5]].manage_messages is True
    assert overwrites[opener].attach_files is True


def test_working_hours_window() -> None:
    assert is_within_working_hours(9, 17, 9)
    assert not is_within_working_hours(9, 17, 17)
    assert is_within_working_hours(22, 6, 23)
    assert is_within_working_hours(22, 6, 3)
    assert not is_within_working_hours(22, 6, 12)


def test_iso_round_trip_keeps_lexical_order() -> None:
    earlier = parse_iso("2024-05-01T10:00:00Z")
    later = parse_iso("2024-05-01T10:00:00.500000+00:00")
    assert earlier is not None and later is not None
    assert to_iso(earlier) < to_iso(later)
    assert parse_iso(to_iso(later)) == later
