from __future__ import annotations

import logging
import string
import time
from typing import TYPE_CHECKING
from uuid import uuid4

from utils.constants import TICKET_ID_MAX_ATTEMPTS

if TYPE_CHECKING:
    from database.repositories import TicketRepository

LOGGER = logging.getLogger(__name__)

_BASE36_ALPHABET = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def random_token() -> str:
    return str(uuid4()).split("-")[0].upper()


def fallback_token() -> str:
    return to_base36(time.time_ns() // 1_000_000)


async def generate_ticket_id(
    ticket_repo: TicketRepository,
    guild_id: int,
    prefix: str,
    *,
    max_attempts: int = TICKET_ID_MAX_ATTEMPTS,
) -> str:
    for _ in range(max_attempts):
        candidate = f"{prefix}-{random_token()}"
        if not await ticket_repo.exists(candidate):
            return candidate
    LOGGER.warning(
        "Ticket id collided %s times, using timestamp token. guild=%s", max_attempts, guild_id
    )
    return f"{prefix}-{fallback_token()}"


def ticket_token(ticket_id: str) -> str:
    return ticket_id.rsplit("-", 1)[-1]
