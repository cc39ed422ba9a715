from __future__ import annotations

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.actions import ActionRegistry
from core.errors import GENERIC_FAILURE_MESSAGE, TicketStateError
from database.models import GuildSettings, TicketRecord
from utils.constants import TICKET_STATUS_CLOSED, TICKET_STATUS_LOCKED, TicketAction
from views.ticket_controls import TicketActionButton, action_custom_id, build_ticket_controls, visible_actions


def _ticket(**changes) -> TicketRecord:
    ticket = TicketRecord(ticket_id="ticket-AB12", guild_id=1, channel_id=2, user_id=3, ticket_type="general")
    for name, value in changes.items():
        setattr(ticket, name, value)
    return ticket


def _handlers() -> dict[TicketAction, AsyncMock]:
    return {action: AsyncMock() for action in TicketAction}


def _interaction() -> MagicMock:
    interaction = MagicMock()
    interaction.response.is_done.return_value = False
    interaction.response.send_message = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def test_registry_requires_every_action() -> None:
    handlers = _handlers()
    del handlers[TicketAction.RENAME]

    with pytest.raises(ValueError, match="rename"):
        ActionRegistry(handlers)


@pytest.mark.asyncio
async def test_registry_dispatches_by_action() -> None:
    handlers = _handlers()
    registry = ActionRegistry(handlers)
    interaction = _interaction()

    await registry.dispatch(TicketAction.LOCK, interaction, "ticket-AB12")

    handlers[TicketAction.LOCK].assert_awaited_once_with(interaction, "ticket-AB12")
    handlers[TicketAction.CLOSE].assert_not_awaited()

    for action in TicketAction:
        await registry.dispatch(action, interaction, "ticket-AB12")
    assert all(handler.await_count >= 1 for handler in handlers.values())


def test_registry_is_read_only() -> None:
    registry = ActionRegistry(_handlers())
    with pytest.raises(TypeError):
        registry._handlers[TicketAction.CLAIM] = AsyncMock()  # type: ignore[index]


def test_visible_actions_follow_ticket_state() -> None:
    settings = GuildSettings(guild_id=1)

    assert visible_actions(_ticket(), settings) == [
        TicketAction.CLAIM,
        TicketAction.CLOSE,
        TicketAction.LOCK,
        TicketAction.RENAME,
    ]
    assert visible_actions(_ticket(claimed_by=9), settings) == [
        TicketAction.CLOSE,
        TicketAction.LOCK,
        TicketAction.RENAME,
    ]
    assert visible_actions(_ticket(status=TICKET_STATUS_LOCKED), settings)[2] == TicketAction.UNLOCK
    assert visible_actions(_ticket(status=TICKET_STATUS_CLOSED), settings) == [
        TicketAction.REOPEN,
        TicketAction.RENAME,
    ]

    settings.enable_claim_system = False
    assert TicketAction.CLAIM not in visible_actions(_ticket(), settings)


@pytest.mark.asyncio
async def test_controls_round_trip_through_custom_ids() -> None:
    view = build_ticket_controls(_ticket(), GuildSettings(guild_id=1))
    custom_ids = [item.item.custom_id for item in view.children]

    assert custom_ids[0] == action_custom_id(TicketAction.CLAIM, "ticket-AB12") == "ticket:claim:ticket-AB12"
    assert view.timeout is None

    match = re.fullmatch(TicketActionButton.__discord_ui_compiled_template__, "ticket:reopen:support-XY-Z9")
    assert match is not None
    button = await TicketActionButton.from_custom_id(MagicMock(), MagicMock(), match)
    assert button.action is TicketAction.REOPEN
    assert button.ticket_id == "support-XY-Z9"


@pytest.mark.asyncio
async def test_button_callback_reports_errors() -> None:
    interaction = _interaction()
    handlers = _handlers()
    handlers[TicketAction.CLOSE].side_effect = TicketStateError("This ticket is already closed.")
    interaction.client.action_registry = ActionRegistry(handlers)

    await TicketActionButton(TicketAction.CLOSE, "ticket-AB12").callback(interaction)
    embed = interaction.response.send_message.await_args.kwargs["embed"]
    assert embed.description == "This ticket is already closed."

    interaction = _interaction()
    handlers[TicketAction.CLAIM].side_effect = RuntimeError("db down")
    interaction.client.action_registry = ActionRegistry(handlers)
    await TicketActionButton(TicketAction.CLAIM, "ticket-AB12").callback(interaction)
    embed = interaction.response.send_message.await_args.kwargs["embed"]
    assert embed.description == GENERIC_FAILURE_MESSAGE
