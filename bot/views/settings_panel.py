from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import discord

from core.errors import PermissionDeniedError, report_interaction_error
from database.models import GuildSettings
from utils.constants import TICKET_PREFIX_MAX_LENGTH
from utils.embeds import settings_embed
from utils.permissions import is_admin

if TYPE_CHECKING:
    from core.bot import TicketBot
    from services.settings_service import SettingsService

SettingApplier = Callable[[int, int, str], Awaitable[GuildSettings]]


class SettingValueModal(discord.ui.Modal):
    def __init__(
        self,
        panel: SettingsPanelView,
        *,
        title: str,
        label: str,
        placeholder: str,
        default: str,
        max_length: int,
        apply: SettingApplier,
    ) -> None:
        super().__init__(title=title, timeout=300)
        self.panel = panel
        self.apply = apply
        self.value_input = discord.ui.TextInput(
            label=label,
            placeholder=placeholder,
            default=default or None,
            required=False,
            max_length=max_length,
        )
        self.add_item(self.value_input)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        settings = await self.apply(interaction.guild.id, interaction.user.id, str(self.value_input.value))
        await self.panel.refresh(interaction, settings)

    async def on_error(self, interaction: discord.Interaction, error: Exception, /) -> None:  # type: ignore[override]
        await report_interaction_error(interaction, error)


class WorkingHoursModal(discord.ui.Modal, title="Working Hours"):
    start = discord.ui.TextInput(label="Start hour (0-23)", placeholder="9", max_length=2)
    end = discord.ui.TextInput(label="End hour (0-23)", placeholder="17", max_length=2)

    def __init__(self, panel: SettingsPanelView, settings: GuildSettings) -> None:
        super().__init__(timeout=300)
        self.panel = panel
        self.start.default = str(settings.working_hours.start)
        self.end.default = str(settings.working_hours.end)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        settings = await self.panel.service.set_working_hours(
            interaction.guild.id, interaction.user.id, str(self.start.value), str(self.end.value)
        )
        await self.panel.refresh(interaction, settings)

    async def on_error(self, interaction: discord.Interaction, error: Exception, /) -> None:  # type: ignore[override]
        await report_interaction_error(interaction, error)


class SettingsPanelView(discord.ui.View):
    def __init__(self, bot: TicketBot, settings: GuildSettings) -> None:
        super().__init__(timeout=300)
        self.bot = bot
        self.settings = settings
        self._sync_toggle_styles()

    @property
    def service(self) -> SettingsService:
        return self.bot.settings_service

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if not isinstance(interaction.user, discord.Member) or not is_admin(interaction.user):
            raise PermissionDeniedError("You need the Administrator or Manage Server permission.")
        return True

    async def on_error(  # type: ignore[override]
        self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item, /
    ) -> None:
        await report_interaction_error(interaction, error)

    async def refresh(self, interaction: discord.Interaction, settings: GuildSettings) -> None:
        self.settings = settings
        self._sync_toggle_styles()
        await interaction.response.edit_message(embed=settings_embed(settings), view=self)

    def _sync_toggle_styles(self) -> None:
        for button, enabled in (
            (self.toggle_multiple, self.settings.allow_multiple_tickets),
            (self.toggle_claim, self.settings.enable_claim_system),
            (self.toggle_transcripts, self.settings.enable_transcripts),
        ):
            button.style = discord.ButtonStyle.success if enabled else discord.ButtonStyle.secondary

    def _value_modal(
        self, title: str, label: str, placeholder: str, default: str, apply: SettingApplier, max_length: int = 200
    ) -> SettingValueModal:
        return SettingValueModal(
            self,
            title=title,
            label=label,
            placeholder=placeholder,
            default=default,
            max_length=max_length,
            apply=apply,
        )

    @discord.ui.button(label="Category", style=discord.ButtonStyle.primary, emoji="📁", row=0)
    async def category(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(
            self._value_modal(
                "Ticket Category",
                "Category channel ID (empty to clear)",
                "123456789012345678",
                str(self.settings.ticket_category_id or ""),
                self.service.set_ticket_category,
                max_length=20,
            )
        )

    @discord.ui.button(label="Support Roles", style=discord.ButtonStyle.primary, emoji="🛡️", row=0)
    async def support_roles(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(
            self._value_modal(
                "Support Roles",
                "Role IDs, comma-separated",
                "123456789012345678, 234567890123456789",
                ", ".join(str(role_id) for role_id in self.settings.support_role_ids),
                self.service.set_support_roles,
                max_length=1000,
            )
        )

    @discord.ui.button(label="Claim Role", style=discord.ButtonStyle.primary, emoji="🙋", row=0)
    async def claim_role(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(
            self._value_modal(
                "Claim Role",
                "Role ID (empty to clear)",
                "123456789012345678",
                str(self.settings.claim_role_id or ""),
                self.service.set_claim_role,
                max_length=20,
            )
        )

    @discord.ui.button(label="Transcript Channel", style=discord.ButtonStyle.primary, emoji="📜", row=0)
    async def transcript_channel(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(
            self._value_modal(
                "Transcript Channel",
                "Text channel ID (empty to clear)",
                "123456789012345678",
                str(self.settings.transcript_channel_id or ""),
                self.service.set_transcript_channel,
                max_length=20,
            )
        )

    @discord.ui.button(label="Prefix", style=discord.ButtonStyle.secondary, emoji="🏷️", row=1)
    async def prefix(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(
            self._value_modal(
                "Ticket Prefix",
                f"Prefix (1-{TICKET_PREFIX_MAX_LENGTH} characters)",
                "ticket",
                self.settings.ticket_prefix,
                self.service.set_ticket_prefix,
                max_length=TICKET_PREFIX_MAX_LENGTH,
            )
        )

    @discord.ui.button(label="Auto-Close", style=discord.ButtonStyle.secondary, emoji="⏰", row=1)
    async def auto_close(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(
            self._value_modal(
                "Auto-Close",
                "Hours before auto-close (0 disables)",
                "48",
                str(self.settings.auto_close_after_hours or 0),
                self.service.set_auto_close_hours,
                max_length=5,
            )
        )

    @discord.ui.button(label="Working Hours", style=discord.ButtonStyle.secondary, emoji="🕘", row=1)
    async def working_hours(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        await interaction.response.send_modal(WorkingHoursModal(self, self.settings))

    @discord.ui.button(label="Multiple Tickets", emoji="🎫", row=2)
    async def toggle_multiple(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        assert interaction.guild is not None
        settings = await self.service.toggle_multiple_tickets(interaction.guild.id, interaction.user.id)
        await self.refresh(interaction, settings)

    @discord.ui.button(label="Claim System", emoji="🙋", row=2)
    async def toggle_claim(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        assert interaction.guild is not None
        settings = await self.service.toggle_claim_system(interaction.guild.id, interaction.user.id)
        await self.refresh(interaction, settings)

    @discord.ui.button(label="Transcripts", emoji="📜", row=2)
    async def toggle_transcripts(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        assert interaction.guild is not None
        settings = await self.service.toggle_transcripts(interaction.guild.id, interaction.user.id)
        await self.refresh(interaction, settings)
