from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from core.config import TranscriptConfig
from database.models import TicketRecord
from fakes import history_of, make_channel, make_message
from services.ticket_service import collect_channel_history
from services.transcript_service import TranscriptService

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_history_is_paginated_and_returned_oldest_first() -> None:
    messages = [make_message(i, T0 + timedelta(minutes=i), f"m{i}") for i in range(1, 8)]
    channel = make_channel(1)
    channel.history = history_of(messages)

    collected = await collect_channel_history(channel, page_size=3)

    assert [message.id for message in collected] == [1, 2, 3, 4, 5, 6, 7]


@pytest.mark.asyncio
async def test_overlapping_pages_are_deduplicated() -> None:
    messages = [make_message(i, T0 + timedelta(minutes=i)) for i in range(1, 5)]
    newest_first = list(reversed(messages))
    calls: list[object] = []

    def history(*, limit: int = 100, before=None):
        calls.append(before)

        async def iterate():
            # Every page repeats the cursor message.
            start = 0 if before is None else newest_first.index(before)
            for message in newest_first[start : start + limit]:
                yield message

        return iterate()

    channel = make_channel(1)
    channel.history = history

    collected = await collect_channel_history(channel, page_size=2)

    assert [message.id for message in collected] == [1, 2, 3, 4]
    assert len(calls) >= 3


@pytest.mark.asyncio
async def test_same_timestamp_messages_sort_by_id() -> None:
    messages = [make_message(9, T0), make_message(3, T0), make_message(5, T0 - timedelta(seconds=1))]
    channel = make_channel(1)
    channel.history = history_of(messages)

    collected = await collect_channel_history(channel)

    assert [message.id for message in collected] == [5, 3, 9]


def test_render_writes_html_artifact(tmp_path: Path) -> None:
    service = TranscriptService(TranscriptConfig(storage_directory=str(tmp_path)))
    ticket = TicketRecord(
        ticket_id="ticket-ABC123",
        guild_id=5,
        channel_id=1,
        user_id=10,
        ticket_type="developer",
        created_at="2024-05-01T09:00:00.000000+00:00",
    )
    channel = make_channel(1, "ticket-user-abc123")
    closed_at = T0 + timedelta(hours=2)

    artifact = service.render(
        channel, ticket, [make_message(1, T0, "<b>hi</b>"), make_message(2, T0, "bye", bot=True)], closed_at
    )

    assert artifact.path.parent == tmp_path / "5"
    assert artifact.filename == f"transcript-ticket-ABC123-{int(closed_at.timestamp())}.html"
    assert artifact.message_count == 2
    body = artifact.path.read_text(encoding="utf-8")
    assert "&lt;b&gt;hi&lt;/b&gt;" in body
    assert "Developer Work Request" in body
    assert "Ticket ticket-ABC123 • Closed 2024-05-01 12:00 UTC" in body
    assert artifact.to_file().filename == artifact.filename
