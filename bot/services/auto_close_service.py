from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

import discord

from database.repositories import GuildSettingsRepository, TicketRepository
from services.ticket_service import TicketService
from utils.time import utc_now

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    guilds_scanned: int = 0
    tickets_closed: int = 0
    failures: int = 0


class AutoCloseService:
    def __init__(
        self,
        settings_repo: GuildSettingsRepository,
        ticket_repo: TicketRepository,
        ticket_service: TicketService,
    ) -> None:
        self.settings_repo = settings_repo
        self.ticket_repo = ticket_repo
        self.ticket_service = ticket_service

    async def sweep(
        self, guilds: Iterable[discord.Guild], *, actor_id: int, now: datetime | None = None
    ) -> SweepReport:
        now = now or utc_now()
        report = SweepReport()
        for guild in guilds:
            report.guilds_scanned += 1
            try:
                await self.sweep_guild(guild, actor_id=actor_id, now=now, report=report)
            except Exception:
                report.failures += 1
                LOGGER.exception("Auto-close sweep failed for guild %s", guild.id, extra={"guild_id": guild.id})
        return report

    async def sweep_guild(
        self,
        guild: discord.Guild,
        *,
        actor_id: int,
        now: datetime,
        report: SweepReport,
    ) -> None:
        settings = await self.settings_repo.get_or_create(guild.id)
        hours = settings.auto_close_after_hours
        if not hours or hours <= 0:
            return

        stale = await self.ticket_repo.list_stale_for_auto_close(guild.id, hours, now)
        if stale:
            LOGGER.info("Found %s stale ticket(s) older than %sh", len(stale), hours, extra={"guild_id": guild.id})
        for ticket in stale:
            try:
                if await self.ticket_service.auto_close_ticket(
                    guild, ticket, settings, actor_id=actor_id, now=now
                ):
                    report.tickets_closed += 1
            except Exception:
                report.failures += 1
                LOGGER.exception(
                    "Auto-close failed for ticket %s",
                    ticket.ticket_id,
                    extra={"guild_id": guild.id, "ticket_id": ticket.ticket_id},
                )
