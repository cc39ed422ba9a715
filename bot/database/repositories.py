from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from database.base import Database
from database.models import AuditLogEntry, GuildSettings, TicketRecord, WorkingHours
from utils.constants import (
    AUDIT_ACTIONS,
    LIVE_TICKET_STATUSES,
    TICKET_STATUS_CLOSED,
    TICKET_STATUS_LOCKED,
    TICKET_STATUS_OPEN,
)
from utils.time import to_iso, utc_now


def _json_load(value: str | None, default: Any) -> Any:
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, separators=(",", ":"))


def _now_iso() -> str:
    return to_iso(utc_now())  # type: ignore[return-value]


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


class GuildSettingsRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def get_or_create(self, guild_id: int) -> GuildSettings:
        now = _now_iso()
        await self.db.execute(
            """
            INSERT INTO guild_settings(guild_id, created_at, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(guild_id) DO NOTHING;
            """,
            [guild_id, now, now],
        )
        row = await self.db.fetchone("SELECT * FROM guild_settings WHERE guild_id = ?;", [guild_id])
        assert row is not None
        return self._row_to_settings(row)

    async def save(self, settings: GuildSettings) -> GuildSettings:
        settings.updated_at = _now_iso()
        if settings.created_at is None:
            settings.created_at = settings.updated_at
        await self.db.execute(
            """
            INSERT INTO guild_settings(
                guild_id, ticket_prefix, allow_multiple_tickets, enable_claim_system,
                enable_transcripts, auto_close_after_hours, working_hours_start, working_hours_end,
                ticket_category_id, support_role_ids_json, claim_role_id, transcript_channel_id,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                ticket_prefix = excluded.ticket_prefix,
                allow_multiple_tickets = excluded.allow_multiple_tickets,
                enable_claim_system = excluded.enable_claim_system,
                enable_transcripts = excluded.enable_transcripts,
                auto_close_after_hours = excluded.auto_close_after_hours,
                working_hours_start = excluded.working_hours_start,
                working_hours_end = excluded.working_hours_end,
                ticket_category_id = excluded.ticket_category_id,
                support_role_ids_json = excluded.support_role_ids_json,
                claim_role_id = excluded.claim_role_id,
                transcript_channel_id = excluded.transcript_channel_id,
                updated_at = excluded.updated_at;
            """,
            [
                settings.guild_id,
                settings.ticket_prefix,
                settings.allow_multiple_tickets,
                settings.enable_claim_system,
                settings.enable_transcripts,
                settings.auto_close_after_hours,
                settings.working_hours.start,
                settings.working_hours.end,
                settings.ticket_category_id,
                _json_dump(settings.support_role_ids),
                settings.claim_role_id,
                settings.transcript_channel_id,
                settings.created_at,
                settings.updated_at,
            ],
        )
        return settings

    def _row_to_settings(self, row: dict[str, Any]) -> GuildSettings:
        return GuildSettings(
            guild_id=int(row["guild_id"]),
            ticket_prefix=row["ticket_prefix"],
            allow_multiple_tickets=bool(row["allow_multiple_tickets"]),
            enable_claim_system=bool(row["enable_claim_system"]),
            enable_transcripts=bool(row["enable_transcripts"]),
            auto_close_after_hours=_optional_int(row["auto_close_after_hours"]),
            working_hours=WorkingHours(
                start=int(row["working_hours_start"]),
                end=int(row["working_hours_end"]),
            ),
            ticket_category_id=_optional_int(row["ticket_category_id"]),
            support_role_ids=[int(role_id) for role_id in _json_load(row["support_role_ids_json"], [])],
            claim_role_id=_optional_int(row["claim_role_id"]),
            transcript_channel_id=_optional_int(row["transcript_channel_id"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class TicketRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, ticket: TicketRecord) -> None:
        if ticket.created_at is None:
            ticket.created_at = _now_iso()
        await self.db.execute(
            """
            INSERT INTO tickets(
                ticket_id, guild_id, channel_id, user_id, ticket_type, status,
                claimed_by, created_at, closed_at, claimed_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            [
                ticket.ticket_id,
                ticket.guild_id,
                ticket.channel_id,
                ticket.user_id,
                ticket.ticket_type,
                ticket.status,
                ticket.claimed_by,
                ticket.created_at,
                ticket.closed_at,
                ticket.claimed_at,
            ],
        )

    async def get_by_id(self, ticket_id: str) -> TicketRecord | None:
        row = await self.db.fetchone("SELECT * FROM tickets WHERE ticket_id = ?;", [ticket_id])
        if not row:
            return None
        return self._row_to_ticket(row)

    async def get_by_channel(self, channel_id: int) -> TicketRecord | None:
        row = await self.db.fetchone("SELECT * FROM tickets WHERE channel_id = ?;", [channel_id])
        if not row:
            return None
        return self._row_to_ticket(row)

    async def exists(self, ticket_id: str) -> bool:
        row = await self.db.fetchone("SELECT 1 AS found FROM tickets WHERE ticket_id = ?;", [ticket_id])
        return row is not None

    async def list_open_for_user(self, guild_id: int, user_id: int) -> list[TicketRecord]:
        rows = await self.db.fetchall(
            """
            SELECT * FROM tickets
            WHERE guild_id = ? AND user_id = ? AND status IN (?, ?)
            ORDER BY created_at ASC;
            """,
            [guild_id, user_id, *LIVE_TICKET_STATUSES],
        )
        return [self._row_to_ticket(row) for row in rows]

    async def list_stale_for_auto_close(
        self, guild_id: int, hours: int, now: datetime | None = None
    ) -> list[TicketRecord]:
        cutoff = (now or utc_now()) - timedelta(hours=hours)
        rows = await self.db.fetchall(
            """
            SELECT * FROM tickets
            WHERE guild_id = ? AND status IN (?, ?) AND created_at < ?
            ORDER BY created_at ASC;
            """,
            [guild_id, *LIVE_TICKET_STATUSES, to_iso(cutoff)],
        )
        return [self._row_to_ticket(row) for row in rows]

    async def list_for_stats(self, guild_id: int, claimed_by: int | None = None) -> list[TicketRecord]:
        if claimed_by is None:
            rows = await self.db.fetchall("SELECT * FROM tickets WHERE guild_id = ?;", [guild_id])
        else:
            rows = await self.db.fetchall(
                "SELECT * FROM tickets WHERE guild_id = ? AND claimed_by = ?;",
                [guild_id, claimed_by],
            )
        return [self._row_to_ticket(row) for row in rows]

    async def mark_claimed(self, ticket_id: str, staff_id: int, claimed_at: str) -> bool:
        changed = await self.db.execute(
            """
            UPDATE tickets
            SET claimed_by = ?, claimed_at = ?
            WHERE ticket_id = ? AND claimed_by IS NULL;
            """,
            [staff_id, claimed_at, ticket_id],
        )
        return changed > 0

    async def mark_closed(self, ticket_id: str, closed_at: str) -> bool:
        changed = await self.db.execute(
            """
            UPDATE tickets
            SET status = ?, closed_at = ?
            WHERE ticket_id = ? AND status != ?;
            """,
            [TICKET_STATUS_CLOSED, closed_at, ticket_id, TICKET_STATUS_CLOSED],
        )
        return changed > 0

    async def mark_locked(self, ticket_id: str) -> bool:
        return await self._transition(ticket_id, TICKET_STATUS_OPEN, TICKET_STATUS_LOCKED)

    async def mark_unlocked(self, ticket_id: str) -> bool:
        return await self._transition(ticket_id, TICKET_STATUS_LOCKED, TICKET_STATUS_OPEN)

    async def mark_reopened(self, ticket_id: str) -> bool:
        changed = await self.db.execute(
            """
            UPDATE tickets
            SET status = ?, closed_at = NULL
            WHERE ticket_id = ? AND status = ?;
            """,
            [TICKET_STATUS_OPEN, ticket_id, TICKET_STATUS_CLOSED],
        )
        return changed > 0

    async def _transition(self, ticket_id: str, from_status: str, to_status: str) -> bool:
        changed = await self.db.execute(
            "UPDATE tickets SET status = ? WHERE ticket_id = ? AND status = ?;",
            [to_status, ticket_id, from_status],
        )
        return changed > 0

    def _row_to_ticket(self, row: dict[str, Any]) -> TicketRecord:
        return TicketRecord(
            ticket_id=row["ticket_id"],
            guild_id=int(row["guild_id"]),
            channel_id=int(row["channel_id"]),
            user_id=int(row["user_id"]),
            ticket_type=row["ticket_type"],
            status=row["status"],
            claimed_by=_optional_int(row["claimed_by"]),
            created_at=row["created_at"],
            closed_at=row["closed_at"],
            claimed_at=row["claimed_at"],
        )


class AuditRepository:
    def __init__(self, db: Database) -> None:
        self.db = db
        # Serializes seq allocation with its insert within this process.
        self._write_lock = asyncio.Lock()

    async def record(
        self,
        guild_id: int,
        action: str,
        performed_by: int,
        ticket_id: str | None = None,
        details: dict[str, Any] | None = None,
        created_at: str | None = None,
    ) -> AuditLogEntry:
        if action not in AUDIT_ACTIONS:
            raise ValueError(f"Unknown audit action: {action}")
        async with self._write_lock:
            row = await self.db.fetchone("SELECT COALESCE(MAX(seq), 0) AS last_seq FROM audit_logs;")
            entry = AuditLogEntry(
                id=str(uuid4()),
                guild_id=guild_id,
                action=action,
                performed_by=performed_by,
                ticket_id=ticket_id,
                details=dict(details or {}),
                created_at=created_at or _now_iso(),
                seq=int(row["last_seq"] if row else 0) + 1,
            )
            await self.db.execute(
                """
                INSERT INTO audit_logs(id, guild_id, ticket_id, action, performed_by, details_json, created_at, seq)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                [
                    entry.id,
                    entry.guild_id,
                    entry.ticket_id,
                    entry.action,
                    entry.performed_by,
                    _json_dump(entry.details),
                    entry.created_at,
                    entry.seq,
                ],
            )
        return entry

    async def list(self, guild_id: int, ticket_id: str | None = None, limit: int = 50) -> list[AuditLogEntry]:
        if ticket_id is None:
            rows = await self.db.fetchall(
                "SELECT * FROM audit_logs WHERE guild_id = ? ORDER BY created_at DESC, seq DESC LIMIT ?;",
                [guild_id, limit],
            )
        else:
            rows = await self.db.fetchall(
                """
                SELECT * FROM audit_logs
                WHERE guild_id = ? AND ticket_id = ?
                ORDER BY created_at DESC, seq DESC
                LIMIT ?;
                """,
                [guild_id, ticket_id, limit],
            )
        return [self._row_to_entry(row) for row in rows]

    def _row_to_entry(self, row: dict[str, Any]) -> AuditLogEntry:
        return AuditLogEntry(
            id=row["id"],
            guild_id=int(row["guild_id"]),
            action=row["action"],
            performed_by=int(row["performed_by"]),
            ticket_id=row["ticket_id"],
            details=dict(_json_load(row["details_json"], {})),
            created_at=row["created_at"],
            seq=int(row["seq"] or 0),
        )
