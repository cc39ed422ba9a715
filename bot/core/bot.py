from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.actions import ActionRegistry
from core.config import AppConfig
from core.errors import handle_app_command_error, handle_prefix_command_error
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import AuditRepository, GuildSettingsRepository, TicketRepository
from services.auto_close_service import AutoCloseService
from services.settings_service import SettingsService
from services.stats_service import StatsService
from services.ticket_service import TicketService, TicketServiceDeps
from services.transcript_service import TranscriptService

LOGGER = logging.getLogger(__name__)


class TicketBot(commands.Bot):
    def __init__(self, config: AppConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True

        super().__init__(
            command_prefix=config.discord.prefix,
            intents=intents,
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(
                everyone=config.discord.allowed_mentions_everyone,
                roles=True,
                users=True,
                replied_user=False,
            ),
            help_command=None,
        )
        self.config = config
        self.database = Database(
            url=config.database.url,
            timeout_seconds=config.database.timeout_seconds,
            pool_min_size=config.database.pool_min_size,
            pool_max_size=config.database.pool_max_size,
        )

        # Repositories and services are initialized during setup_hook.
        self.settings_repo: GuildSettingsRepository
        self.ticket_repo: TicketRepository
        self.audit_repo: AuditRepository

        self.transcript_service: TranscriptService
        self.ticket_service: TicketService
        self.settings_service: SettingsService
        self.stats_service: StatsService
        self.auto_close_service: AutoCloseService

        # Set by the tickets cog when it loads.
        self.action_registry: ActionRegistry | None = None

    def build_services(self) -> None:
        self.settings_repo = GuildSettingsRepository(self.database)
        self.ticket_repo = TicketRepository(self.database)
        self.audit_repo = AuditRepository(self.database)

        self.transcript_service = TranscriptService(self.config.transcripts)
        deps = TicketServiceDeps(
            settings_repo=self.settings_repo,
            ticket_repo=self.ticket_repo,
            audit_repo=self.audit_repo,
            transcript_service=self.transcript_service,
        )
        self.ticket_service = TicketService(self.config, deps)
        self.settings_service = SettingsService(self.settings_repo, self.audit_repo)
        self.stats_service = StatsService(self.ticket_repo)
        self.auto_close_service = AutoCloseService(self.settings_repo, self.ticket_repo, self.ticket_service)

    async def load_configured_extensions(self) -> None:
        for ext in self.config.enabled_extensions:
            try:
                await self.load_extension(ext)
                LOGGER.info("Loaded extension: %s", ext)
            except commands.ExtensionAlreadyLoaded:
                LOGGER.warning("Extension already loaded: %s", ext)
            except commands.ExtensionError:
                LOGGER.exception("Failed to load extension: %s", ext)

    async def setup_hook(self) -> None:
        await self.database.connect()
        await run_migrations(self.database)

        self.build_services()
        await self.load_configured_extensions()

        if self.config.discord.sync_commands_on_start:
            synced = await self.tree.sync()
            LOGGER.info("Synced %s application commands", len(synced))

        self.tree.on_error = handle_app_command_error  # type: ignore[assignment]

    async def on_ready(self) -> None:
        LOGGER.info("Bot ready as %s (%s)", self.user, self.user.id if self.user else "n/a")
        activity_type = self.config.discord.activity_type.lower()
        if activity_type == "playing":
            activity = discord.Game(name=self.config.discord.status_text)
        elif activity_type == "listening":
            activity = discord.Activity(
                type=discord.ActivityType.listening, name=self.config.discord.status_text
            )
        else:
            activity = discord.Activity(
                type=discord.ActivityType.watching, name=self.config.discord.status_text
            )
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def on_command_error(self, ctx: commands.Context[commands.Bot], error: commands.CommandError) -> None:
        if ctx.command and ctx.command.has_error_handler():
            return
        await handle_prefix_command_error(ctx, error)

    async def close(self) -> None:
        await super().close()
        await self.database.close()
