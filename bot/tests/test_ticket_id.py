from __future__ import annotations

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from utils.ticket_id import generate_ticket_id, to_base36, ticket_token


@pytest.mark.asyncio
async def test_generates_prefixed_uppercase_token() -> None:
    repo = MagicMock()
    repo.exists = AsyncMock(return_value=False)

    ticket_id = await generate_ticket_id(repo, 1, "ticket")

    assert re.fullmatch(r"ticket-[A-Z0-9]{8}", ticket_id)
    repo.exists.assert_awaited_once_with(ticket_id)


@pytest.mark.asyncio
async def test_falls_back_to_timestamp_after_repeated_collisions() -> None:
    repo = MagicMock()
    repo.exists = AsyncMock(return_value=True)

    ticket_id = await generate_ticket_id(repo, 1, "ticket")

    assert repo.exists.await_count == 5
    assert re.fullmatch(r"ticket-[A-Z0-9]+", ticket_id)


@pytest.mark.asyncio
async def test_retries_until_a_free_candidate() -> None:
    repo = MagicMock()
    repo.exists = AsyncMock(side_effect=[True, True, False])

    ticket_id = await generate_ticket_id(repo, 1, "support")

    assert repo.exists.await_count == 3
    assert ticket_id.startswith("support-")


def test_base36_and_token_helpers() -> None:
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    with pytest.raises(ValueError):
        to_base36(-1)
    assert ticket_token("my-prefix-AB12CD34") == "AB12CD34"
