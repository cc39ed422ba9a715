from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import discord
from discord.ext import commands

from utils.permissions import is_admin

F = TypeVar("F", bound=Callable[..., Any])


def guild_admin_only() -> Callable[[F], F]:
    """Hybrid-command check: Administrator or Manage Server."""

    async def predicate(ctx: commands.Context[Any]) -> bool:
        if ctx.guild is None or not isinstance(ctx.author, discord.Member):
            raise commands.NoPrivateMessage()
        if is_admin(ctx.author):
            return True
        raise commands.MissingPermissions(["manage_guild"])

    return commands.check(predicate)
