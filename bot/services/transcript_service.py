from __future__ import annotations

import html
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import discord

from core.config import TranscriptConfig
from database.models import TicketRecord
from utils.constants import TICKET_TYPE_NAMES
from utils.time import utc_now

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class TranscriptArtifact:
    path: Path
    message_count: int

    @property
    def filename(self) -> str:
        return self.path.name

    def to_file(self) -> discord.File:
        # A discord.File is consumed on send, so build one per destination.
        return discord.File(self.path, filename=self.path.name)


class TranscriptService:
    def __init__(self, config: TranscriptConfig) -> None:
        self.config = config
        self.base_dir = Path(config.storage_directory)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def render(
        self,
        channel: discord.abc.GuildChannel,
        ticket: TicketRecord,
        messages: Sequence[discord.Message],
        closed_at: datetime | None = None,
    ) -> TranscriptArtifact:
        """Write the HTML transcript for an already ordered, deduplicated history."""
        closed_at = closed_at or utc_now()
        guild_dir = self.base_dir / str(ticket.guild_id)
        guild_dir.mkdir(parents=True, exist_ok=True)

        path = guild_dir / f"transcript-{ticket.ticket_id}-{int(closed_at.timestamp())}.html"
        path.write_text(self._build_html(channel, ticket, messages, closed_at), encoding="utf-8")
        LOGGER.info(
            "Transcript written for %s (%s messages)",
            ticket.ticket_id,
            len(messages),
            extra={"guild_id": ticket.guild_id, "ticket_id": ticket.ticket_id},
        )
        return TranscriptArtifact(path=path, message_count=len(messages))

    def _build_html(
        self,
        channel: discord.abc.GuildChannel,
        ticket: TicketRecord,
        messages: Sequence[discord.Message],
        closed_at: datetime,
    ) -> str:
        rows: list[str] = []
        for msg in messages:
            escaped_content = html.escape(msg.content or "")
            attachment_html = ""
            if self.config.include_attachments and msg.attachments:
                links = "".join(
                    f'<li><a href="{html.escape(a.url)}">{html.escape(a.filename)}</a></li>'
                    for a in msg.attachments
                )
                attachment_html = f"<ul>{links}</ul>"
            embed_html = "".join(
                f"<div class='embed'>{html.escape(embed.title or '')}"
                f"<br>{html.escape(embed.description or '')}</div>"
                for embed in msg.embeds
            )
            bot_tag = " <span class='tag'>BOT</span>" if msg.author.bot else ""
            rows.append(
                "<div class='msg'>"
                f"<div class='meta'>{html.escape(str(msg.author))}{bot_tag} | "
                f"{msg.created_at.isoformat()}</div>"
                f"<div class='content'>{escaped_content}</div>"
                f"{embed_html}{attachment_html}"
                "</div>"
            )

        type_name = TICKET_TYPE_NAMES.get(ticket.ticket_type, ticket.ticket_type)
        footer = f"Ticket {ticket.ticket_id} • Closed {closed_at.strftime('%Y-%m-%d %H:%M UTC')}"
        return (
            "<!doctype html><html><head><meta charset='utf-8'>"
            f"<title>{html.escape(ticket.ticket_id)}</title>"
            "<style>"
            "body{font-family:Arial,sans-serif;background:#f5f7fb;color:#1f2937;padding:16px;}"
            ".msg{background:white;border:1px solid #e5e7eb;border-radius:8px;padding:10px;margin-bottom:8px;}"
            ".meta{font-size:12px;color:#6b7280;margin-bottom:6px;}"
            ".content{white-space:pre-wrap;}"
            ".embed{border-left:4px solid #5865f2;padding:4px 8px;margin-top:6px;background:#f9fafb;}"
            ".tag{background:#5865f2;color:white;border-radius:3px;padding:0 4px;font-size:10px;}"
            "footer{margin-top:16px;font-size:12px;color:#6b7280;}"
            "</style></head><body>"
            f"<h1>Transcript - #{html.escape(channel.name)}</h1>"
            f"<p>{html.escape(type_name)} opened by &lt;@{ticket.user_id}&gt; at "
            f"{html.escape(ticket.created_at or '')}</p>"
            + "".join(rows)
            + f"<footer>{html.escape(footer)}</footer>"
            + "</body></html>"
        )
