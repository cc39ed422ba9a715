from __future__ import annotations

import logging
from typing import Any

from core.errors import ValidationError
from database.models import GuildSettings, WorkingHours
from database.repositories import AuditRepository, GuildSettingsRepository
from utils.constants import AUDIT_SETTINGS_UPDATED, CHANNEL_NAME_PATTERN, TICKET_PREFIX_MAX_LENGTH

LOGGER = logging.getLogger(__name__)


def parse_snowflake(raw: str, label: str) -> int | None:
    value = raw.strip()
    if not value:
        return None
    if not (value.isascii() and value.isdigit()):
        raise ValidationError(f"{label} must be a numeric Discord ID.")
    return int(value)


def parse_snowflake_list(raw: str, label: str) -> list[int]:
    ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not (part.isascii() and part.isdigit()):
            raise ValidationError(f"{label} must be a comma-separated list of numeric IDs (`{part}` is not).")
        if int(part) not in ids:
            ids.append(int(part))
    return ids


def parse_ticket_prefix(raw: str) -> str:
    prefix = raw.strip()
    if not 1 <= len(prefix) <= TICKET_PREFIX_MAX_LENGTH:
        raise ValidationError(f"Ticket prefix must be between 1 and {TICKET_PREFIX_MAX_LENGTH} characters.")
    if not CHANNEL_NAME_PATTERN.match(prefix):
        raise ValidationError(
            "Ticket prefix may only contain lowercase letters, numbers, hyphens (-) and underscores (_)."
        )
    return prefix


def parse_auto_close_hours(raw: str) -> int | None:
    value = raw.strip()
    try:
        hours = int(value)
    except ValueError:
        raise ValidationError("Auto-close hours must be a whole number (0 disables auto-close).") from None
    if hours < 0:
        raise ValidationError("Auto-close hours must be 0 or greater (0 disables auto-close).")
    return hours or None


def parse_hour(raw: str, label: str) -> int:
    try:
        hour = int(raw.strip())
    except ValueError:
        raise ValidationError(f"{label} must be a whole number between 0 and 23.") from None
    if not 0 <= hour <= 23:
        raise ValidationError(f"{label} must be between 0 and 23.")
    return hour


class SettingsService:
    def __init__(self, settings_repo: GuildSettingsRepository, audit_repo: AuditRepository) -> None:
        self.settings_repo = settings_repo
        self.audit_repo = audit_repo

    async def get(self, guild_id: int) -> GuildSettings:
        return await self.settings_repo.get_or_create(guild_id)

    async def set_ticket_category(self, guild_id: int, actor_id: int, raw: str) -> GuildSettings:
        return await self._update(guild_id, actor_id, ticket_category_id=parse_snowflake(raw, "Category ID"))

    async def set_support_roles(self, guild_id: int, actor_id: int, raw: str) -> GuildSettings:
        return await self._update(
            guild_id, actor_id, support_role_ids=parse_snowflake_list(raw, "Support role IDs")
        )

    async def set_claim_role(self, guild_id: int, actor_id: int, raw: str) -> GuildSettings:
        return await self._update(guild_id, actor_id, claim_role_id=parse_snowflake(raw, "Claim role ID"))

    async def set_transcript_channel(self, guild_id: int, actor_id: int, raw: str) -> GuildSettings:
        return await self._update(
            guild_id, actor_id, transcript_channel_id=parse_snowflake(raw, "Transcript channel ID")
        )

    async def set_ticket_prefix(self, guild_id: int, actor_id: int, raw: str) -> GuildSettings:
        return await self._update(guild_id, actor_id, ticket_prefix=parse_ticket_prefix(raw))

    async def set_auto_close_hours(self, guild_id: int, actor_id: int, raw: str) -> GuildSettings:
        return await self._update(guild_id, actor_id, auto_close_after_hours=parse_auto_close_hours(raw))

    async def set_working_hours(
        self, guild_id: int, actor_id: int, start_raw: str, end_raw: str
    ) -> GuildSettings:
        hours = WorkingHours(start=parse_hour(start_raw, "Start hour"), end=parse_hour(end_raw, "End hour"))
        return await self._update(guild_id, actor_id, working_hours=hours)

    async def toggle_multiple_tickets(self, guild_id: int, actor_id: int) -> GuildSettings:
        settings = await self.get(guild_id)
        return await self._update(guild_id, actor_id, allow_multiple_tickets=not settings.allow_multiple_tickets)

    async def toggle_claim_system(self, guild_id: int, actor_id: int) -> GuildSettings:
        settings = await self.get(guild_id)
        return await self._update(guild_id, actor_id, enable_claim_system=not settings.enable_claim_system)

    async def toggle_transcripts(self, guild_id: int, actor_id: int) -> GuildSettings:
        settings = await self.get(guild_id)
        return await self._update(guild_id, actor_id, enable_transcripts=not settings.enable_transcripts)

    async def _update(self, guild_id: int, actor_id: int, **changes: Any) -> GuildSettings:
        settings = await self.settings_repo.get_or_create(guild_id)
        details: dict[str, Any] = {}
        for name, value in changes.items():
            setattr(settings, name, value)
            details[name] = {"start": value.start, "end": value.end} if isinstance(value, WorkingHours) else value
        await self.settings_repo.save(settings)
        await self.audit_repo.record(
            guild_id=guild_id,
            action=AUDIT_SETTINGS_UPDATED,
            performed_by=actor_id,
            details=details,
        )
        LOGGER.info("Settings updated: %s", ", ".join(details), extra={"guild_id": guild_id})
        return settings
