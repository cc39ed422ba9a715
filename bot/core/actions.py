from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType

import discord

from utils.constants import TicketAction

LOGGER = logging.getLogger(__name__)

ActionHandler = Callable[[discord.Interaction, str], Awaitable[None]]


class ActionRegistry:
    """Immutable ``TicketAction -> handler`` table, built once when the tickets cog loads."""

    __slots__ = ("_handlers",)

    def __init__(self, handlers: Mapping[TicketAction, ActionHandler]) -> None:
        missing = [action.value for action in TicketAction if action not in handlers]
        if missing:
            raise ValueError(f"No handler registered for ticket action(s): {', '.join(missing)}")
        self._handlers: Mapping[TicketAction, ActionHandler] = MappingProxyType(dict(handlers))

    async def dispatch(self, action: TicketAction, interaction: discord.Interaction, ticket_id: str) -> None:
        LOGGER.debug(
            "Dispatching %s for %s",
            action.value,
            ticket_id,
            extra={"ticket_id": ticket_id, "guild_id": getattr(interaction.guild, "id", None)},
        )
        await self._handlers[action](interaction, ticket_id)
