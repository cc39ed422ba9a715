from __future__ import annotations

import logging

import discord
from discord.ext import commands, tasks

from core.actions import ActionRegistry
from core.bot import TicketBot
from core.errors import ValidationError
from database.models import TicketRecord
from utils.constants import TicketAction
from utils.decorators import guild_admin_only
from utils.embeds import (
    make_embed,
    settings_embed,
    staff_embed,
    stats_embed,
    success_embed,
    ticket_panel_embed,
)
from views.settings_panel import SettingsPanelView
from views.ticket_controls import RenameTicketModal, TicketActionButton, build_ticket_controls
from views.ticket_panel import TicketPanelView

LOGGER = logging.getLogger(__name__)


def _interaction_context(interaction: discord.Interaction) -> tuple[discord.Guild, discord.Member]:
    if not interaction.guild or not isinstance(interaction.user, discord.Member):
        raise ValidationError("Guild context is required.")
    return interaction.guild, interaction.user


class TicketsCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot
        self.auto_close_worker.change_interval(minutes=bot.config.lifecycle.auto_close_interval_minutes)
        self.auto_close_worker.start()

    def cog_unload(self) -> None:
        self.auto_close_worker.cancel()

    async def cog_load(self) -> None:
        self.bot.action_registry = ActionRegistry(
            {
                TicketAction.CLAIM: self.handle_claim,
                TicketAction.CLOSE: self.handle_close,
                TicketAction.LOCK: self.handle_lock,
                TicketAction.UNLOCK: self.handle_unlock,
                TicketAction.REOPEN: self.handle_reopen,
                TicketAction.RENAME: self.handle_rename,
            }
        )
        self.bot.add_dynamic_items(TicketActionButton)
        self.bot.add_view(TicketPanelView())

    async def _refresh_controls(
        self, interaction: discord.Interaction, ticket: TicketRecord, notice: discord.Embed
    ) -> None:
        settings = await self.bot.settings_service.get(ticket.guild_id)
        await interaction.response.edit_message(view=build_ticket_controls(ticket, settings))
        await interaction.followup.send(embed=notice)

    async def handle_claim(self, interaction: discord.Interaction, ticket_id: str) -> None:
        guild, member = _interaction_context(interaction)
        ticket = await self.bot.ticket_service.claim_ticket(guild, ticket_id, member)
        await self._refresh_controls(
            interaction,
            ticket,
            staff_embed("Ticket Claimed", f"{member.mention} has claimed this ticket and will assist you."),
        )

    async def handle_close(self, interaction: discord.Interaction, ticket_id: str) -> None:
        guild, member = _interaction_context(interaction)
        await interaction.response.defer(ephemeral=True, thinking=True)
        ticket = await self.bot.ticket_service.close_ticket(guild, ticket_id, member)
        try:
            await interaction.followup.send(
                embed=success_embed(f"Ticket `{ticket.ticket_id}` closed."), ephemeral=True
            )
        except discord.HTTPException:
            LOGGER.debug("Close confirmation not delivered for %s", ticket.ticket_id)

    async def handle_lock(self, interaction: discord.Interaction, ticket_id: str) -> None:
        guild, member = _interaction_context(interaction)
        ticket = await self.bot.ticket_service.lock_ticket(guild, ticket_id, member)
        await self._refresh_controls(
            interaction,
            ticket,
            staff_embed("Ticket Locked", f"{member.mention} locked this ticket. The owner can no longer send messages."),
        )

    async def handle_unlock(self, interaction: discord.Interaction, ticket_id: str) -> None:
        guild, member = _interaction_context(interaction)
        ticket = await self.bot.ticket_service.unlock_ticket(guild, ticket_id, member)
        await self._refresh_controls(
            interaction,
            ticket,
            staff_embed("Ticket Unlocked", f"{member.mention} unlocked this ticket."),
        )

    async def handle_reopen(self, interaction: discord.Interaction, ticket_id: str) -> None:
        guild, member = _interaction_context(interaction)
        ticket = await self.bot.ticket_service.reopen_ticket(guild, ticket_id, member)
        await self._refresh_controls(
            interaction,
            ticket,
            staff_embed("Ticket Reopened", f"{member.mention} reopened this ticket."),
        )

    async def handle_rename(self, interaction: discord.Interaction, ticket_id: str) -> None:
        guild, member = _interaction_context(interaction)
        await self.bot.ticket_service.ensure_can_manage(guild, member)
        current = interaction.channel.name if isinstance(interaction.channel, discord.TextChannel) else None
        await interaction.response.send_modal(RenameTicketModal(ticket_id, current))

    @commands.hybrid_group(name="ticket", with_app_command=True, description="Ticket command group.")
    async def ticket(self, ctx: commands.Context[TicketBot]) -> None:
        if ctx.invoked_subcommand is None:
            await ctx.reply(
                embed=make_embed(
                    "Ticket Commands",
                    "`/ticket send <channel>` to post the ticket panel\n"
                    "`/ticket settings` to configure the bot\n"
                    "`/ticket stats [user]` for ticket statistics",
                ),
                mention_author=False,
            )

    @ticket.command(name="send", description="Post the ticket creation panel in a channel.")
    @guild_admin_only()
    async def ticket_send(self, ctx: commands.Context[TicketBot], channel: discord.TextChannel) -> None:
        await channel.send(embed=ticket_panel_embed(), view=TicketPanelView())
        LOGGER.info("Ticket panel posted in %s", channel.id, extra={"guild_id": channel.guild.id})
        await ctx.reply(
            embed=success_embed(f"Ticket panel sent to {channel.mention}."), ephemeral=True, mention_author=False
        )

    @ticket.command(name="settings", description="Open the ticket settings panel.")
    @guild_admin_only()
    async def ticket_settings(self, ctx: commands.Context[TicketBot]) -> None:
        assert ctx.guild is not None
        settings = await self.bot.settings_service.get(ctx.guild.id)
        await ctx.reply(
            embed=settings_embed(settings),
            view=SettingsPanelView(self.bot, settings),
            ephemeral=True,
            mention_author=False,
        )

    @ticket.command(name="stats", description="Show ticket statistics.")
    @commands.guild_only()
    async def ticket_stats(self, ctx: commands.Context[TicketBot], user: discord.Member | None = None) -> None:
        assert ctx.guild is not None
        stats = await self.bot.stats_service.get_ticket_stats(ctx.guild.id, user.id if user else None)
        scope = f"Tickets claimed by {user.mention}" if user else f"All tickets in **{ctx.guild.name}**"
        await ctx.reply(embed=stats_embed(stats, scope), mention_author=False)

    @tasks.loop(minutes=60)
    async def auto_close_worker(self) -> None:
        if not self.bot.user:
            return
        try:
            report = await self.bot.auto_close_service.sweep(self.bot.guilds, actor_id=self.bot.user.id)
        except Exception:
            LOGGER.exception("Auto-close sweep crashed")
            return
        if report.tickets_closed or report.failures:
            LOGGER.info(
                "Auto-close sweep finished: %s closed, %s failure(s) across %s guild(s)",
                report.tickets_closed,
                report.failures,
                report.guilds_scanned,
            )

    @auto_close_worker.before_loop
    async def before_auto_close_worker(self) -> None:
        await self.bot.wait_until_ready()


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(TicketsCog(bot))
