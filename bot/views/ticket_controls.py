from __future__ import annotations

import re
from typing import TYPE_CHECKING, cast

import discord

from core.errors import TicketStateError, ValidationError, report_interaction_error
from database.models import GuildSettings, TicketRecord
from utils.constants import CHANNEL_NAME_MAX_LENGTH, TicketAction
from utils.embeds import success_embed

if TYPE_CHECKING:
    from core.bot import TicketBot

BUTTON_STYLES: dict[TicketAction, tuple[str, discord.ButtonStyle, str, int]] = {
    TicketAction.CLAIM: ("Claim", discord.ButtonStyle.success, "🙋", 0),
    TicketAction.CLOSE: ("Close", discord.ButtonStyle.danger, "🔒", 0),
    TicketAction.LOCK: ("Lock", discord.ButtonStyle.secondary, "🔐", 0),
    TicketAction.UNLOCK: ("Unlock", discord.ButtonStyle.secondary, "🔓", 0),
    TicketAction.REOPEN: ("Reopen", discord.ButtonStyle.success, "♻️", 0),
    TicketAction.RENAME: ("Rename", discord.ButtonStyle.secondary, "✏️", 1),
}

_ACTION_PATTERN = "|".join(re.escape(action.value) for action in TicketAction)


def action_custom_id(action: TicketAction, ticket_id: str) -> str:
    return f"ticket:{action.value}:{ticket_id}"


def visible_actions(ticket: TicketRecord, settings: GuildSettings) -> list[TicketAction]:
    if ticket.is_closed:
        return [TicketAction.REOPEN, TicketAction.RENAME]
    actions: list[TicketAction] = []
    if settings.enable_claim_system and ticket.claimed_by is None:
        actions.append(TicketAction.CLAIM)
    actions.append(TicketAction.CLOSE)
    actions.append(TicketAction.UNLOCK if ticket.is_locked else TicketAction.LOCK)
    actions.append(TicketAction.RENAME)
    return actions


class TicketActionButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=rf"ticket:(?P<action>{_ACTION_PATTERN}):(?P<ticket_id>.+)",
):
    def __init__(self, action: TicketAction, ticket_id: str) -> None:
        label, style, emoji, row = BUTTON_STYLES[action]
        super().__init__(
            discord.ui.Button(
                label=label,
                style=style,
                emoji=emoji,
                row=row,
                custom_id=action_custom_id(action, ticket_id),
            )
        )
        self.action = action
        self.ticket_id = ticket_id

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match: re.Match[str],
        /,
    ) -> TicketActionButton:
        return cls(TicketAction(match["action"]), match["ticket_id"])

    async def callback(self, interaction: discord.Interaction) -> None:
        registry = getattr(interaction.client, "action_registry", None)
        try:
            if registry is None:
                raise TicketStateError("Ticket actions are still starting up. Try again in a moment.")
            await registry.dispatch(self.action, interaction, self.ticket_id)
        except Exception as exc:
            await report_interaction_error(interaction, exc)


def build_ticket_controls(ticket: TicketRecord, settings: GuildSettings) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for action in visible_actions(ticket, settings):
        view.add_item(TicketActionButton(action, ticket.ticket_id))
    return view


class RenameTicketModal(discord.ui.Modal, title="Rename Ticket"):
    new_name = discord.ui.TextInput(
        label="New channel name",
        placeholder="lowercase letters, numbers, - and _",
        required=True,
        max_length=CHANNEL_NAME_MAX_LENGTH,
    )

    def __init__(self, ticket_id: str, current_name: str | None = None) -> None:
        super().__init__(timeout=300)
        self.ticket_id = ticket_id
        if current_name:
            self.new_name.default = current_name

    async def on_submit(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            raise ValidationError("Guild context is required.")
        bot = cast("TicketBot", interaction.client)
        new_name = await bot.ticket_service.rename_ticket(
            interaction.guild, self.ticket_id, interaction.user, str(self.new_name.value)
        )
        await interaction.response.send_message(
            embed=success_embed(f"Channel renamed to `{new_name}`."), ephemeral=True
        )

    async def on_error(self, interaction: discord.Interaction, error: Exception, /) -> None:  # type: ignore[override]
        await report_interaction_error(interaction, error)
