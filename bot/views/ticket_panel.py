from __future__ import annotations

from typing import TYPE_CHECKING, cast

import discord

from core.errors import ValidationError, report_interaction_error
from utils.constants import (
    TICKET_PANEL_SELECT_ID,
    TICKET_TYPE_DESCRIPTIONS,
    TICKET_TYPE_EMOJIS,
    TICKET_TYPE_NAMES,
    TICKET_TYPES,
)
from utils.embeds import success_embed

if TYPE_CHECKING:
    from core.bot import TicketBot


class TicketTypeSelect(discord.ui.Select):
    def __init__(self) -> None:
        options = [
            discord.SelectOption(
                label=TICKET_TYPE_NAMES[key],
                value=key,
                emoji=TICKET_TYPE_EMOJIS[key],
                description=TICKET_TYPE_DESCRIPTIONS[key][:100],
            )
            for key in TICKET_TYPES
        ]
        super().__init__(
            placeholder="Select a ticket type...",
            min_values=1,
            max_values=1,
            options=options,
            custom_id=TICKET_PANEL_SELECT_ID,
        )

    async def callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            raise ValidationError("Tickets can only be opened inside a server.")
        bot = cast("TicketBot", interaction.client)
        await interaction.response.defer(ephemeral=True, thinking=True)
        _, channel = await bot.ticket_service.create_ticket(interaction.guild, interaction.user, self.values[0])
        await interaction.followup.send(
            embed=success_embed(f"Your ticket has been created: {channel.mention}"),
            ephemeral=True,
        )


class TicketPanelView(discord.ui.View):
    def __init__(self) -> None:
        super().__init__(timeout=None)
        self.add_item(TicketTypeSelect())

    async def on_error(  # type: ignore[override]
        self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item, /
    ) -> None:
        await report_interaction_error(interaction, error)
