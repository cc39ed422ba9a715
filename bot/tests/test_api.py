from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from core.api import create_api_app
from core.config import AppConfig, DiscordConfig, FastApiConfig
from database.models import AuditLogEntry, TicketStats


def _client(api_key: str = "") -> tuple[TestClient, SimpleNamespace]:
    bot = SimpleNamespace(
        config=AppConfig(discord=DiscordConfig(token="x"), fastapi=FastApiConfig(enabled=True, api_key=api_key)),
        database=SimpleNamespace(is_connected=True),
        stats_service=SimpleNamespace(
            get_ticket_stats=AsyncMock(return_value=TicketStats(total=3, open=1, closed=2, claimed=2))
        ),
        audit_repo=SimpleNamespace(
            list=AsyncMock(
                return_value=[
                    AuditLogEntry(
                        id="a1",
                        guild_id=1,
                        action="ticket_closed",
                        performed_by=5,
                        ticket_id="ticket-AB12",
                        details={"auto_close": True, "hours": 48},
                        created_at="2024-05-01T10:00:00.000000+00:00",
                    )
                ]
            )
        ),
    )
    return TestClient(create_api_app(bot)), bot  # type: ignore[arg-type]


def test_health() -> None:
    client, _ = _client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "connected"}


def test_stats_endpoint_passes_claimant_filter() -> None:
    client, bot = _client()

    response = client.get("/guilds/1/stats", params={"claimed_by": 7})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["claimed_by"] == 7
    assert body["avg_response_time"] == "N/A"
    bot.stats_service.get_ticket_stats.assert_awaited_once_with(1, 7)


def test_audit_endpoint_lists_entries() -> None:
    client, bot = _client()

    response = client.get("/guilds/1/audit", params={"ticket_id": "ticket-AB12", "limit": 10})

    assert response.status_code == 200
    assert response.json()["items"][0]["action"] == "ticket_closed"
    bot.audit_repo.list.assert_awaited_once_with(1, ticket_id="ticket-AB12", limit=10)


def test_api_key_is_enforced_when_configured() -> None:
    client, _ = _client(api_key="secret")

    assert client.get("/guilds/1/stats").status_code == 401
    assert client.get("/guilds/1/stats", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/guilds/1/stats", headers={"X-API-Key": "secret"}).status_code == 200
    assert client.get("/health").status_code == 200
