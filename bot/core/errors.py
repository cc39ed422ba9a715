from __future__ import annotations

import logging
from dataclasses import dataclass

import discord
from discord import app_commands
from discord.ext import commands

from utils.embeds import error_embed

LOGGER = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Something went wrong while processing that action. Please try again later."


class BotError(RuntimeError):
    user_message: str = "An unexpected error occurred."


@dataclass(slots=True)
class ValidationError(BotError):
    user_message: str = "The provided input is not valid."


@dataclass(slots=True)
class PermissionDeniedError(BotError):
    user_message: str = "You do not have permission to run this action."


@dataclass(slots=True)
class TicketNotFoundError(BotError):
    user_message: str = "The requested ticket could not be found."


@dataclass(slots=True)
class TicketStateError(BotError):
    user_message: str = "The ticket is not in a valid state for this action."


@dataclass(slots=True)
class AlreadyClaimedError(BotError):
    user_message: str = "This ticket has already been claimed."
    claimed_by: int | None = None


@dataclass(slots=True)
class ReopenWindowExpiredError(BotError):
    user_message: str = "This ticket was closed more than 24 hours ago and can no longer be reopened."


@dataclass(slots=True)
class DuplicateTicketError(BotError):
    user_message: str = "You already have an open ticket."
    channel_id: int | None = None


async def send_error_response(
    target: commands.Context[commands.Bot] | discord.Interaction[commands.Bot], message: str
) -> None:
    embed = error_embed(message)
    if isinstance(target, commands.Context):
        await target.reply(embed=embed, mention_author=False, ephemeral=True)
        return
    if target.response.is_done():
        await target.followup.send(embed=embed, ephemeral=True)
    else:
        await target.response.send_message(embed=embed, ephemeral=True)


async def report_interaction_error(interaction: discord.Interaction[commands.Bot], error: Exception) -> None:
    if isinstance(error, BotError):
        message = error.user_message
        LOGGER.info(
            "Interaction rejected: %s. guild=%s user=%s",
            type(error).__name__,
            getattr(interaction.guild, "id", None),
            interaction.user.id if interaction.user else None,
        )
    else:
        message = GENERIC_FAILURE_MESSAGE
        LOGGER.exception(
            "Interaction failed. guild=%s user=%s custom_id=%s",
            getattr(interaction.guild, "id", None),
            interaction.user.id if interaction.user else None,
            (interaction.data or {}).get("custom_id"),
            exc_info=error,
        )
    try:
        await send_error_response(interaction, message)
    except discord.HTTPException:
        # The ticket channel may already be deleted.
        LOGGER.warning("Could not deliver error notice for interaction %s", interaction.id)


def _unwrap(error: Exception) -> Exception:
    while isinstance(error, (commands.HybridCommandError, commands.CommandInvokeError, app_commands.CommandInvokeError)):
        error = error.original
    return error


def _humanize_command_error(error: Exception) -> str:
    error = _unwrap(error)
    if isinstance(error, BotError):
        return error.user_message
    if isinstance(error, (commands.CommandOnCooldown, app_commands.CommandOnCooldown)):
        return f"Cooldown active. Retry in {error.retry_after:.1f} seconds."
    if isinstance(error, commands.MissingPermissions):
        return "You are missing required Discord permissions."
    if isinstance(error, (commands.CheckFailure, app_commands.CheckFailure)):
        return "You are not authorized for this command."
    if isinstance(error, (commands.BadArgument, commands.MissingRequiredArgument)):
        return "Command argument was invalid."
    return GENERIC_FAILURE_MESSAGE


async def handle_prefix_command_error(
    ctx: commands.Context[commands.Bot], error: commands.CommandError
) -> None:
    if isinstance(error, commands.CommandNotFound):
        return
    message = _humanize_command_error(error)
    original = _unwrap(error)
    if isinstance(original, BotError):
        LOGGER.info(
            "Command rejected: %s. command=%s guild=%s user=%s",
            type(original).__name__,
            getattr(ctx.command, "qualified_name", None),
            getattr(ctx.guild, "id", None),
            ctx.author.id,
        )
    else:
        LOGGER.exception(
            "Command failed. command=%s guild=%s user=%s",
            getattr(ctx.command, "qualified_name", None),
            getattr(ctx.guild, "id", None),
            ctx.author.id,
            exc_info=error,
        )
    await send_error_response(ctx, message)


async def handle_app_command_error(
    interaction: discord.Interaction[commands.Bot], error: app_commands.AppCommandError
) -> None:
    message = _humanize_command_error(error)
    LOGGER.exception(
        "Slash command failed. command=%s guild=%s user=%s",
        getattr(interaction.command, "qualified_name", None),
        getattr(interaction.guild, "id", None),
        interaction.user.id if interaction.user else None,
        exc_info=error,
    )
    try:
        await send_error_response(interaction, message)
    except discord.HTTPException:
        LOGGER.warning("Could not deliver slash-command error for interaction %s", interaction.id)
