from __future__ import annotations

from collections.abc import Iterable

import discord

from database.models import GuildSettings

OWNER_PERMISSIONS = {
    "view_channel": True,
    "send_messages": True,
    "read_message_history": True,
    "attach_files": True,
    "embed_links": True,
}

SUPPORT_PERMISSIONS = {**OWNER_PERMISSIONS, "manage_messages": True}

CLAIM_ROLE_PERMISSIONS = {
    "view_channel": True,
    "send_messages": True,
    "read_message_history": True,
}

BOT_PERMISSIONS = {
    "view_channel": True,
    "send_messages": True,
    "read_message_history": True,
    "manage_channels": True,
    "manage_messages": True,
    "embed_links": True,
    "attach_files": True,
}


def is_admin(member: discord.Member) -> bool:
    perms = member.guild_permissions
    return bool(perms.administrator or perms.manage_guild)


def has_any_role(member: discord.Member, role_ids: Iterable[int]) -> bool:
    wanted = set(role_ids)
    if not wanted:
        return False
    return any(role.id in wanted for role in member.roles)


def can_manage_tickets(member: discord.Member, settings: GuildSettings) -> bool:
    return is_admin(member) or has_any_role(member, settings.support_role_ids)


def can_claim_tickets(member: discord.Member, settings: GuildSettings) -> bool:
    if can_manage_tickets(member, settings):
        return True
    return settings.claim_role_id is not None and has_any_role(member, [settings.claim_role_id])


def build_ticket_overwrites(
    guild: discord.Guild,
    opener: discord.abc.Snowflake,
    settings: GuildSettings,
) -> dict[discord.abc.Snowflake, discord.PermissionOverwrite]:
    overwrites: dict[discord.abc.Snowflake, discord.PermissionOverwrite] = {
        guild.default_role: discord.PermissionOverwrite(view_channel=False),
        opener: discord.PermissionOverwrite(**OWNER_PERMISSIONS),
    }
    if guild.me is not None:
        overwrites[guild.me] = discord.PermissionOverwrite(**BOT_PERMISSIONS)

    for role_id in settings.support_role_ids:
        role = guild.get_role(role_id)
        if role:
            overwrites[role] = discord.PermissionOverwrite(**SUPPORT_PERMISSIONS)

    if settings.claim_role_id and settings.claim_role_id not in settings.support_role_ids:
        claim_role = guild.get_role(settings.claim_role_id)
        if claim_role:
            overwrites[claim_role] = discord.PermissionOverwrite(**CLAIM_ROLE_PERMISSIONS)
    return overwrites
