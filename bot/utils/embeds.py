from __future__ import annotations

from datetime import UTC, datetime

import discord

from database.models import GuildSettings, TicketRecord, TicketStats
from utils.constants import (
    AUTO_RESPONSES,
    TICKET_TYPE_DESCRIPTIONS,
    TICKET_TYPE_EMOJIS,
    TICKET_TYPE_NAMES,
    TICKET_TYPES,
)


def make_embed(
    title: str,
    description: str,
    color: discord.Color | None = None,
    footer: str | None = None,
) -> discord.Embed:
    resolved_color = color if color is not None else discord.Color.blurple()
    embed = discord.Embed(
        title=title,
        description=description,
        color=resolved_color,
        timestamp=datetime.now(UTC),
    )
    if footer:
        embed.set_footer(text=footer)
    return embed


def staff_embed(title: str, description: str) -> discord.Embed:
    return make_embed(title=title, description=description, color=discord.Color.gold())


def success_embed(message: str) -> discord.Embed:
    return make_embed(title="Success", description=message, color=discord.Color.green())


def error_embed(message: str) -> discord.Embed:
    return make_embed(title="Error", description=message, color=discord.Color.red())


def ticket_panel_embed() -> discord.Embed:
    lines = [
        f"{TICKET_TYPE_EMOJIS[key]} **{TICKET_TYPE_NAMES[key]}** - {TICKET_TYPE_DESCRIPTIONS[key]}"
        for key in TICKET_TYPES
    ]
    return make_embed(
        "🎫 Support Tickets",
        "Need help? Pick the ticket type that matches your request from the menu below.\n\n"
        + "\n".join(lines),
    )


def ticket_created_embed(ticket: TicketRecord, opener: discord.abc.User) -> discord.Embed:
    name = TICKET_TYPE_NAMES.get(ticket.ticket_type, ticket.ticket_type)
    emoji = TICKET_TYPE_EMOJIS.get(ticket.ticket_type, "🎫")
    embed = make_embed(
        f"{emoji} {name}",
        f"Welcome {opener.mention}! A staff member will be with you soon.",
        footer=f"Ticket {ticket.ticket_id}",
    )
    embed.add_field(name="Ticket ID", value=ticket.ticket_id, inline=True)
    embed.add_field(name="Type", value=name, inline=True)
    embed.add_field(name="Status", value=ticket.status.title(), inline=True)
    return embed


def auto_response_embed(ticket_type: str) -> discord.Embed | None:
    message = AUTO_RESPONSES.get(ticket_type)
    if not message:
        return None
    return make_embed("📝 Getting Started", message, color=discord.Color.teal())


def out_of_hours_embed(settings: GuildSettings) -> discord.Embed:
    hours = settings.working_hours
    return make_embed(
        "🌙 Outside Working Hours",
        f"Our staff is available from **{hours.start:02d}:00** to **{hours.end:02d}:00**. "
        "Your ticket has been received and we will respond as soon as possible.",
        color=discord.Color.dark_grey(),
    )


def ticket_closed_embed(ticket: TicketRecord, closed_by: str) -> discord.Embed:
    return make_embed(
        "🔒 Ticket Closed",
        f"This ticket was closed by {closed_by}. The channel will be deleted shortly.",
        color=discord.Color.red(),
        footer=f"Ticket {ticket.ticket_id}",
    )


def settings_embed(settings: GuildSettings) -> discord.Embed:
    def _channel(value: int | None) -> str:
        return f"<#{value}>" if value else "Not set"

    def _role(value: int | None) -> str:
        return f"<@&{value}>" if value else "Not set"

    def _toggle(value: bool) -> str:
        return "✅ Enabled" if value else "❌ Disabled"

    embed = make_embed("⚙️ Ticket Settings", "Use the buttons below to change a setting.")
    embed.add_field(name="Ticket Category", value=_channel(settings.ticket_category_id), inline=True)
    embed.add_field(
        name="Support Roles",
        value=", ".join(f"<@&{role_id}>" for role_id in settings.support_role_ids) or "Not set",
        inline=True,
    )
    embed.add_field(name="Claim Role", value=_role(settings.claim_role_id), inline=True)
    embed.add_field(name="Transcript Channel", value=_channel(settings.transcript_channel_id), inline=True)
    embed.add_field(name="Ticket Prefix", value=f"`{settings.ticket_prefix}`", inline=True)
    embed.add_field(
        name="Auto-Close",
        value=f"{settings.auto_close_after_hours} hours" if settings.auto_close_after_hours else "Disabled",
        inline=True,
    )
    embed.add_field(
        name="Working Hours",
        value=f"{settings.working_hours.start:02d}:00 - {settings.working_hours.end:02d}:00",
        inline=True,
    )
    embed.add_field(name="Multiple Tickets", value=_toggle(settings.allow_multiple_tickets), inline=True)
    embed.add_field(name="Claim System", value=_toggle(settings.enable_claim_system), inline=True)
    embed.add_field(name="Transcripts", value=_toggle(settings.enable_transcripts), inline=True)
    return embed


def stats_embed(stats: TicketStats, scope: str) -> discord.Embed:
    embed = make_embed("📊 Ticket Statistics", scope)
    embed.add_field(name="Total", value=str(stats.total), inline=True)
    embed.add_field(name="Open", value=str(stats.open), inline=True)
    embed.add_field(name="Closed", value=str(stats.closed), inline=True)
    embed.add_field(name="Locked", value=str(stats.locked), inline=True)
    embed.add_field(name="Claimed", value=str(stats.claimed), inline=True)
    embed.add_field(name="Avg. Response Time", value=stats.avg_response_time, inline=True)
    return embed


def auto_closed_embed(ticket: TicketRecord, hours: int | None) -> discord.Embed:
    return make_embed(
        "🔒 Ticket Auto-Closed",
        f"This ticket has been automatically closed due to inactivity ({hours} hours).",
        color=discord.Color.red(),
        footer=f"Ticket {ticket.ticket_id}",
    )
