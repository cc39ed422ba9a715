from __future__ import annotations

from datetime import timedelta

from database.models import TicketStats
from database.repositories import TicketRepository
from utils.constants import TICKET_STATUS_CLOSED, TICKET_STATUS_LOCKED, TICKET_STATUS_OPEN
from utils.time import format_response_time, parse_iso


class StatsService:
    def __init__(self, ticket_repo: TicketRepository) -> None:
        self.ticket_repo = ticket_repo

    async def get_ticket_stats(self, guild_id: int, claimed_by: int | None = None) -> TicketStats:
        tickets = await self.ticket_repo.list_for_stats(guild_id, claimed_by)
        stats = TicketStats(total=len(tickets))

        response_times: list[timedelta] = []
        for ticket in tickets:
            if ticket.status == TICKET_STATUS_OPEN:
                stats.open += 1
            elif ticket.status == TICKET_STATUS_CLOSED:
                stats.closed += 1
            elif ticket.status == TICKET_STATUS_LOCKED:
                stats.locked += 1
            if ticket.claimed_by is None:
                continue
            stats.claimed += 1
            created = parse_iso(ticket.created_at)
            claimed = parse_iso(ticket.claimed_at)
            if created and claimed and claimed >= created:
                response_times.append(claimed - created)

        if response_times:
            average = sum(response_times, timedelta()) / len(response_times)
            stats.avg_response_time = format_response_time(average)
        return stats
