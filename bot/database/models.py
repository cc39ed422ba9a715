from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from utils.constants import (
    DEFAULT_TICKET_PREFIX,
    DEFAULT_WORKING_HOURS_END,
    DEFAULT_WORKING_HOURS_START,
    TICKET_STATUS_CLOSED,
    TICKET_STATUS_LOCKED,
    TICKET_STATUS_OPEN,
)


@dataclass(slots=True)
class WorkingHours:
    start: int = DEFAULT_WORKING_HOURS_START
    end: int = DEFAULT_WORKING_HOURS_END


@dataclass(slots=True)
class GuildSettings:
    guild_id: int
    ticket_prefix: str = DEFAULT_TICKET_PREFIX
    allow_multiple_tickets: bool = False
    enable_claim_system: bool = True
    enable_transcripts: bool = True
    auto_close_after_hours: int | None = None
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    ticket_category_id: int | None = None
    support_role_ids: list[int] = field(default_factory=list)
    claim_role_id: int | None = None
    transcript_channel_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class TicketRecord:
    ticket_id: str
    guild_id: int
    channel_id: int
    user_id: int
    ticket_type: str
    status: str = TICKET_STATUS_OPEN
    claimed_by: int | None = None
    created_at: str | None = None
    closed_at: str | None = None
    claimed_at: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == TICKET_STATUS_CLOSED

    @property
    def is_locked(self) -> bool:
        return self.status == TICKET_STATUS_LOCKED


@dataclass(slots=True, frozen=True)
class AuditLogEntry:
    id: str
    guild_id: int
    action: str
    performed_by: int
    ticket_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None
    seq: int = 0


@dataclass(slots=True)
class TicketStats:
    total: int = 0
    open: int = 0
    closed: int = 0
    locked: int = 0
    claimed: int = 0
    avg_response_time: str = "N/A"
