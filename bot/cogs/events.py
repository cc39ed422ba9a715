from __future__ import annotations

import logging

import discord
from discord.ext import commands

from core.bot import TicketBot

LOGGER = logging.getLogger(__name__)


class EventsCog(commands.Cog):
    def __init__(self, bot: TicketBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        for guild in self.bot.guilds:
            await self.bot.settings_repo.get_or_create(guild.id)

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.bot.settings_repo.get_or_create(guild.id)
        LOGGER.info("Created default settings for new guild %s", guild.id, extra={"guild_id": guild.id})


async def setup(bot: TicketBot) -> None:
    await bot.add_cog(EventsCog(bot))
