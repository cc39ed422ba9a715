from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import discord

from core.config import AppConfig
from core.errors import (
    AlreadyClaimedError,
    DuplicateTicketError,
    PermissionDeniedError,
    ReopenWindowExpiredError,
    TicketNotFoundError,
    TicketStateError,
    ValidationError,
)
from database.models import GuildSettings, TicketRecord
from database.repositories import AuditRepository, GuildSettingsRepository, TicketRepository
from services.transcript_service import TranscriptArtifact, TranscriptService
from utils.constants import (
    AUDIT_TICKET_CLAIMED,
    AUDIT_TICKET_CLOSED,
    AUDIT_TICKET_CREATED,
    AUDIT_TICKET_LOCKED,
    AUDIT_TICKET_RENAMED,
    AUDIT_TICKET_REOPENED,
    AUDIT_TICKET_UNLOCKED,
    CHANNEL_NAME_MAX_LENGTH,
    CHANNEL_NAME_PATTERN,
    REOPEN_WINDOW,
    TICKET_STATUS_CLOSED,
    TICKET_STATUS_LOCKED,
    TICKET_STATUS_OPEN,
    TICKET_TYPES,
)
from utils.embeds import (
    auto_closed_embed,
    auto_response_embed,
    out_of_hours_embed,
    ticket_closed_embed,
    ticket_created_embed,
)
from utils.permissions import build_ticket_overwrites, can_claim_tickets, can_manage_tickets
from utils.ticket_id import generate_ticket_id, ticket_token
from utils.time import is_within_working_hours, parse_iso, to_iso, utc_now
from views.ticket_controls import build_ticket_controls

LOGGER = logging.getLogger(__name__)


def sanitize_channel_fragment(name: str) -> str:
    name = name.strip().lower()
    name = re.sub(r"[^a-z0-9_-]+", "-", name)
    name = re.sub(r"-{2,}", "-", name).strip("-")
    return name or "user"


def build_channel_name(prefix: str, username: str, ticket_id: str) -> str:
    fragment = sanitize_channel_fragment(username)[:10].strip("-") or "user"
    name = f"{sanitize_channel_fragment(prefix)}-{fragment}-{ticket_token(ticket_id).lower()}"
    return name[:CHANNEL_NAME_MAX_LENGTH]


def validate_channel_name(raw: str) -> str:
    name = raw.strip()
    if not 1 <= len(name) <= CHANNEL_NAME_MAX_LENGTH:
        raise ValidationError(f"Channel name must be between 1 and {CHANNEL_NAME_MAX_LENGTH} characters.")
    if not CHANNEL_NAME_PATTERN.match(name):
        raise ValidationError(
            "Channel name may only contain lowercase letters, numbers, hyphens (-) and underscores (_)."
        )
    return name


async def collect_channel_history(
    channel: discord.abc.Messageable, page_size: int = 100
) -> list[discord.Message]:
    """Fetch the full history newest-first in pages, then return it oldest-first without duplicates."""
    collected: dict[int, discord.Message] = {}
    before: discord.Message | None = None
    while True:
        page = [message async for message in channel.history(limit=page_size, before=before)]
        for message in page:
            collected.setdefault(message.id, message)
        if len(page) < page_size:
            break
        if before is not None and page[-1].id == before.id:
            break
        before = page[-1]
    return sorted(collected.values(), key=lambda message: (message.created_at, message.id))


@dataclass(slots=True)
class TicketServiceDeps:
    settings_repo: GuildSettingsRepository
    ticket_repo: TicketRepository
    audit_repo: AuditRepository
    transcript_service: TranscriptService


class TicketService:
    def __init__(self, config: AppConfig, deps: TicketServiceDeps) -> None:
        self.config = config
        self.deps = deps

    async def get_ticket(self, guild: discord.Guild, ticket_id: str) -> TicketRecord:
        ticket = await self.deps.ticket_repo.get_by_id(ticket_id)
        if not ticket or ticket.guild_id != guild.id:
            raise TicketNotFoundError()
        return ticket

    async def ensure_can_manage(self, guild: discord.Guild, actor: discord.Member) -> GuildSettings:
        settings = await self.deps.settings_repo.get_or_create(guild.id)
        self._require_staff(actor, settings)
        return settings

    async def create_ticket(
        self,
        guild: discord.Guild,
        opener: discord.Member,
        ticket_type: str,
        *,
        now: datetime | None = None,
    ) -> tuple[TicketRecord, discord.TextChannel]:
        if ticket_type not in TICKET_TYPES:
            raise ValidationError(f"Unknown ticket type `{ticket_type}`.")
        settings = await self.deps.settings_repo.get_or_create(guild.id)

        # Best-effort: two simultaneous selections by one member can both pass this check.
        if not settings.allow_multiple_tickets:
            existing = await self.deps.ticket_repo.list_open_for_user(guild.id, opener.id)
            if existing:
                channel_id = existing[0].channel_id
                raise DuplicateTicketError(
                    f"You already have an open ticket: <#{channel_id}>\n"
                    "Please close it before creating a new one.",
                    channel_id=channel_id,
                )

        ticket_id = await generate_ticket_id(self.deps.ticket_repo, guild.id, settings.ticket_prefix)

        category = guild.get_channel(settings.ticket_category_id) if settings.ticket_category_id else None
        if category is not None and not isinstance(category, discord.CategoryChannel):
            LOGGER.warning(
                "Configured ticket category %s is not a category channel",
                settings.ticket_category_id,
                extra={"guild_id": guild.id},
            )
            category = None

        channel = await guild.create_text_channel(
            name=build_channel_name(settings.ticket_prefix, opener.name, ticket_id),
            category=category,
            overwrites=build_ticket_overwrites(guild, opener, settings),
            topic=f"Ticket {ticket_id} - {opener}",
            reason=f"Ticket {ticket_id} opened by {opener} ({opener.id})",
        )

        created_at = now or utc_now()
        record = TicketRecord(
            ticket_id=ticket_id,
            guild_id=guild.id,
            channel_id=channel.id,
            user_id=opener.id,
            ticket_type=ticket_type,
            status=TICKET_STATUS_OPEN,
            created_at=to_iso(created_at),
        )
        await self.deps.ticket_repo.create(record)
        await self._audit(
            record,
            AUDIT_TICKET_CREATED,
            opener.id,
            {"type": ticket_type, "channel_id": channel.id},
            at=created_at,
        )

        await self._post_welcome(channel, record, opener, settings, created_at)
        return record, channel

    async def _post_welcome(
        self,
        channel: discord.TextChannel,
        ticket: TicketRecord,
        opener: discord.Member,
        settings: GuildSettings,
        created_at: datetime,
    ) -> None:
        # Each post is independent; the controls message must go out even if a notice fails.
        await self._send_welcome_part(channel, ticket, "created notice", embed=ticket_created_embed(ticket, opener))
        auto_response = auto_response_embed(ticket.ticket_type)
        if auto_response is not None:
            await self._send_welcome_part(channel, ticket, "auto-response", embed=auto_response)
        local_hour = created_at.astimezone().hour
        if not is_within_working_hours(settings.working_hours.start, settings.working_hours.end, local_hour):
            await self._send_welcome_part(channel, ticket, "out-of-hours notice", embed=out_of_hours_embed(settings))
        mentions = " ".join(f"<@&{role_id}>" for role_id in settings.support_role_ids)
        await self._send_welcome_part(
            channel,
            ticket,
            "controls",
            content=mentions or "New ticket created!",
            view=build_ticket_controls(ticket, settings),
            allowed_mentions=discord.AllowedMentions(roles=True, users=False, everyone=False),
        )

    async def _send_welcome_part(
        self, channel: discord.TextChannel, ticket: TicketRecord, part: str, **kwargs: Any
    ) -> None:
        try:
            await channel.send(**kwargs)
        except discord.HTTPException:
            LOGGER.warning(
                "Failed to post %s for %s",
                part,
                ticket.ticket_id,
                exc_info=True,
                extra={"guild_id": ticket.guild_id, "ticket_id": ticket.ticket_id},
            )

    async def claim_ticket(
        self,
        guild: discord.Guild,
        ticket_id: str,
        actor: discord.Member,
        *,
        now: datetime | None = None,
    ) -> TicketRecord:
        ticket = await self.get_ticket(guild, ticket_id)
        if ticket.claimed_by is not None:
            raise AlreadyClaimedError(
                f"This ticket has already been claimed by <@{ticket.claimed_by}>.",
                claimed_by=ticket.claimed_by,
            )
        settings = await self.deps.settings_repo.get_or_create(guild.id)
        if not can_claim_tickets(actor, settings):
            raise PermissionDeniedError("Only support staff or the claim role can claim tickets.")

        claimed_at = now or utc_now()
        if not await self.deps.ticket_repo.mark_claimed(ticket.ticket_id, actor.id, to_iso(claimed_at)):
            latest = await self.deps.ticket_repo.get_by_id(ticket.ticket_id)
            claimed_by = latest.claimed_by if latest else None
            raise AlreadyClaimedError(
                f"This ticket has already been claimed by <@{claimed_by}>.",
                claimed_by=claimed_by,
            )

        ticket.claimed_by = actor.id
        ticket.claimed_at = to_iso(claimed_at)
        await self._audit(ticket, AUDIT_TICKET_CLAIMED, actor.id, at=claimed_at)
        return ticket

    async def close_ticket(
        self,
        guild: discord.Guild,
        ticket_id: str,
        actor: discord.Member,
        *,
        now: datetime | None = None,
    ) -> TicketRecord:
        ticket = await self.get_ticket(guild, ticket_id)
        settings = await self.ensure_can_manage(guild, actor)
        if ticket.is_closed:
            raise TicketStateError("This ticket is already closed.")

        closed_at = now or utc_now()
        if not await self.deps.ticket_repo.mark_closed(ticket.ticket_id, to_iso(closed_at)):
            raise TicketStateError("This ticket is already closed.")
        ticket.status = TICKET_STATUS_CLOSED
        ticket.closed_at = to_iso(closed_at)
        await self._audit(ticket, AUDIT_TICKET_CLOSED, actor.id, at=closed_at)

        await self._run_close_side_effects(
            guild, ticket, settings, notice=ticket_closed_embed(ticket, actor.mention), closed_at=closed_at
        )
        return ticket

    async def auto_close_ticket(
        self,
        guild: discord.Guild,
        ticket: TicketRecord,
        settings: GuildSettings,
        *,
        actor_id: int,
        now: datetime | None = None,
    ) -> bool:
        """Close a stale ticket on behalf of the system; returns False if it was already closed."""
        closed_at = now or utc_now()
        if not await self.deps.ticket_repo.mark_closed(ticket.ticket_id, to_iso(closed_at)):
            LOGGER.info(
                "Skipping auto-close for %s, already closed",
                ticket.ticket_id,
                extra={"guild_id": guild.id, "ticket_id": ticket.ticket_id},
            )
            return False
        ticket.status = TICKET_STATUS_CLOSED
        ticket.closed_at = to_iso(closed_at)
        await self._audit(
            ticket,
            AUDIT_TICKET_CLOSED,
            actor_id,
            {"auto_close": True, "hours": settings.auto_close_after_hours},
            at=closed_at,
        )

        await self._run_close_side_effects(
            guild,
            ticket,
            settings,
            notice=auto_closed_embed(ticket, settings.auto_close_after_hours),
            closed_at=closed_at,
        )
        return True

    async def lock_ticket(self, guild: discord.Guild, ticket_id: str, actor: discord.Member) -> TicketRecord:
        ticket = await self.get_ticket(guild, ticket_id)
        await self.ensure_can_manage(guild, actor)
        if ticket.is_closed:
            raise TicketStateError("Closed tickets cannot be locked.")
        if ticket.is_locked:
            raise TicketStateError("This ticket is already locked.")
        if not await self.deps.ticket_repo.mark_locked(ticket.ticket_id):
            raise TicketStateError("This ticket changed state. Refresh and try again.")
        ticket.status = TICKET_STATUS_LOCKED

        await self._set_owner_access(guild, ticket, "Ticket locked", send_messages=False)
        await self._audit(ticket, AUDIT_TICKET_LOCKED, actor.id)
        return ticket

    async def unlock_ticket(self, guild: discord.Guild, ticket_id: str, actor: discord.Member) -> TicketRecord:
        ticket = await self.get_ticket(guild, ticket_id)
        await self.ensure_can_manage(guild, actor)
        if not ticket.is_locked:
            raise TicketStateError("Only locked tickets can be unlocked.")
        if not await self.deps.ticket_repo.mark_unlocked(ticket.ticket_id):
            raise TicketStateError("This ticket changed state. Refresh and try again.")
        ticket.status = TICKET_STATUS_OPEN

        await self._set_owner_access(guild, ticket, "Ticket unlocked", send_messages=True)
        await self._audit(ticket, AUDIT_TICKET_UNLOCKED, actor.id)
        return ticket

    async def reopen_ticket(
        self,
        guild: discord.Guild,
        ticket_id: str,
        actor: discord.Member,
        *,
        now: datetime | None = None,
    ) -> TicketRecord:
        ticket = await self.get_ticket(guild, ticket_id)
        await self.ensure_can_manage(guild, actor)
        if not ticket.is_closed:
            raise TicketStateError("Only closed tickets can be reopened.")

        now = now or utc_now()
        closed_at = parse_iso(ticket.closed_at)
        if closed_at is not None and now - closed_at > REOPEN_WINDOW:
            raise ReopenWindowExpiredError()

        if not await self.deps.ticket_repo.mark_reopened(ticket.ticket_id):
            raise TicketStateError("This ticket changed state. Refresh and try again.")
        ticket.status = TICKET_STATUS_OPEN
        ticket.closed_at = None

        restored = await self._set_owner_access(
            guild,
            ticket,
            "Ticket reopened",
            view_channel=True,
            send_messages=True,
            read_message_history=True,
        )
        await self._audit(ticket, AUDIT_TICKET_REOPENED, actor.id, {"access_restored": restored}, at=now)
        return ticket

    async def rename_ticket(
        self, guild: discord.Guild, ticket_id: str, actor: discord.Member, new_name: str
    ) -> str:
        ticket = await self.get_ticket(guild, ticket_id)
        await self.ensure_can_manage(guild, actor)
        name = validate_channel_name(new_name)

        channel = await self._resolve_channel(guild, ticket.channel_id)
        if channel is None:
            raise TicketStateError("The ticket channel no longer exists.")
        old_name = channel.name
        await channel.edit(name=name, reason=f"Ticket {ticket.ticket_id} renamed by {actor} ({actor.id})")
        await self._audit(ticket, AUDIT_TICKET_RENAMED, actor.id, {"old_name": old_name, "new_name": name})
        return name

    def _require_staff(self, actor: discord.Member, settings: GuildSettings) -> None:
        if not can_manage_tickets(actor, settings):
            raise PermissionDeniedError("Only support staff can manage tickets.")

    async def _audit(
        self,
        ticket: TicketRecord,
        action: str,
        actor_id: int,
        details: dict[str, Any] | None = None,
        *,
        at: datetime | None = None,
    ) -> None:
        await self.deps.audit_repo.record(
            guild_id=ticket.guild_id,
            action=action,
            performed_by=actor_id,
            ticket_id=ticket.ticket_id,
            details=details,
            created_at=to_iso(at) if at else None,
        )
        LOGGER.info(
            "%s %s by %s",
            action,
            ticket.ticket_id,
            actor_id,
            extra={"guild_id": ticket.guild_id, "ticket_id": ticket.ticket_id},
        )

    async def _resolve_channel(self, guild: discord.Guild, channel_id: int) -> discord.TextChannel | None:
        channel = guild.get_channel(channel_id)
        if channel is None:
            try:
                channel = await guild.fetch_channel(channel_id)
            except discord.HTTPException:
                return None
        return channel if isinstance(channel, discord.TextChannel) else None

    async def _resolve_member(self, guild: discord.Guild, user_id: int) -> discord.Member | None:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.HTTPException:
            return None

    async def _set_owner_access(
        self, guild: discord.Guild, ticket: TicketRecord, reason: str, **changes: bool
    ) -> bool:
        channel = await self._resolve_channel(guild, ticket.channel_id)
        owner = await self._resolve_member(guild, ticket.user_id)
        if channel is None or owner is None:
            LOGGER.warning(
                "Cannot update owner access for %s (channel=%s owner=%s)",
                ticket.ticket_id,
                channel is not None,
                owner is not None,
                extra={"guild_id": guild.id, "ticket_id": ticket.ticket_id},
            )
            return False
        return await self._update_overwrite(channel, owner, reason, **changes)

    async def _update_overwrite(
        self, channel: discord.TextChannel, target: discord.Member, reason: str, **changes: bool
    ) -> bool:
        # set_permissions replaces the whole overwrite, so start from the current one.
        overwrite = channel.overwrites_for(target)
        for name, value in changes.items():
            setattr(overwrite, name, value)
        try:
            await channel.set_permissions(target, overwrite=overwrite, reason=reason)
        except discord.HTTPException:
            LOGGER.warning("Failed to update permissions on channel %s", channel.id, exc_info=True)
            return False
        return True

    async def _run_close_side_effects(
        self,
        guild: discord.Guild,
        ticket: TicketRecord,
        settings: GuildSettings,
        *,
        notice: discord.Embed,
        closed_at: datetime,
    ) -> None:
        extra = {"guild_id": guild.id, "ticket_id": ticket.ticket_id}
        try:
            channel = await self._resolve_channel(guild, ticket.channel_id)
            if channel is None:
                LOGGER.info("Channel for %s is already gone, skipping close side effects", ticket.ticket_id, extra=extra)
                return
            deleted = await self._finalize_close(guild, channel, ticket, settings, notice=notice, closed_at=closed_at)
        except Exception:
            LOGGER.exception("Close side effects failed for %s", ticket.ticket_id, extra=extra)
            return
        LOGGER.info(
            "Closed %s (%s)",
            ticket.ticket_id,
            "channel deleted" if deleted else "channel hidden from owner",
            extra=extra,
        )

    async def _finalize_close(
        self,
        guild: discord.Guild,
        channel: discord.TextChannel,
        ticket: TicketRecord,
        settings: GuildSettings,
        *,
        notice: discord.Embed,
        closed_at: datetime,
    ) -> bool:
        owner = await self._resolve_member(guild, ticket.user_id)
        if settings.enable_transcripts:
            await self._archive_transcript(guild, channel, ticket, settings, owner, closed_at)

        try:
            await channel.send(embed=notice, view=build_ticket_controls(ticket, settings))
        except discord.HTTPException:
            LOGGER.warning("Failed to post closing notice for %s", ticket.ticket_id, exc_info=True)

        await asyncio.sleep(self.config.lifecycle.close_delete_delay_seconds)
        return await self._delete_channel(channel, ticket, owner)

    async def _archive_transcript(
        self,
        guild: discord.Guild,
        channel: discord.TextChannel,
        ticket: TicketRecord,
        settings: GuildSettings,
        owner: discord.Member | None,
        closed_at: datetime,
    ) -> TranscriptArtifact | None:
        try:
            messages = await collect_channel_history(channel, self.config.lifecycle.history_page_size)
        except discord.HTTPException:
            LOGGER.warning(
                "Could not fetch history for %s, skipping transcript",
                ticket.ticket_id,
                exc_info=True,
                extra={"guild_id": guild.id, "ticket_id": ticket.ticket_id},
            )
            return None

        artifact = self.deps.transcript_service.render(channel, ticket, messages, closed_at)

        if settings.transcript_channel_id:
            destination = guild.get_channel(settings.transcript_channel_id)
            if isinstance(destination, discord.TextChannel):
                try:
                    await destination.send(
                        content=f"Transcript for ticket `{ticket.ticket_id}` <@{ticket.user_id}>",
                        file=artifact.to_file(),
                        allowed_mentions=discord.AllowedMentions.none(),
                    )
                except discord.HTTPException:
                    LOGGER.warning("Failed to deliver transcript for %s", ticket.ticket_id, exc_info=True)
            else:
                LOGGER.warning(
                    "Transcript channel %s not found",
                    settings.transcript_channel_id,
                    extra={"guild_id": guild.id},
                )

        if owner is not None:
            try:
                await owner.send(
                    content=f"Here is the transcript of your ticket `{ticket.ticket_id}` in **{guild.name}**.",
                    file=artifact.to_file(),
                )
            except discord.HTTPException:
                LOGGER.info("Could not DM transcript to %s", ticket.user_id, extra={"ticket_id": ticket.ticket_id})
        return artifact

    async def _delete_channel(
        self, channel: discord.TextChannel, ticket: TicketRecord, owner: discord.Member | None
    ) -> bool:
        try:
            await channel.delete(reason=f"Ticket {ticket.ticket_id} closed")
            return True
        except discord.HTTPException:
            LOGGER.warning(
                "Failed to delete channel %s, revoking owner access instead",
                channel.id,
                exc_info=True,
                extra={"guild_id": ticket.guild_id, "ticket_id": ticket.ticket_id},
            )
        if owner is not None:
            await self._update_overwrite(channel, owner, "Ticket closed", view_channel=False)
        return False
