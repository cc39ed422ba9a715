from __future__ import annotations

from dataclasses import asdict

from fastapi import Depends, FastAPI, Header, HTTPException, Query

from core.bot import TicketBot


def _auth(x_api_key: str | None, expected: str) -> None:
    if not expected:
        return
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


def create_api_app(bot: TicketBot) -> FastAPI:
    app = FastAPI(title="Ticket Bot API", version="1.0.0")

    async def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        _auth(x_api_key, bot.config.fastapi.api_key)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "database": "connected" if bot.database.is_connected else "disconnected"}

    @app.get("/guilds/{guild_id}/stats", dependencies=[Depends(require_api_key)])
    async def ticket_stats(guild_id: int, claimed_by: int | None = None) -> dict[str, object]:
        stats = await bot.stats_service.get_ticket_stats(guild_id, claimed_by)
        return {"guild_id": guild_id, "claimed_by": claimed_by, **asdict(stats)}

    @app.get("/guilds/{guild_id}/audit", dependencies=[Depends(require_api_key)])
    async def audit_log(
        guild_id: int,
        ticket_id: str | None = None,
        limit: int = Query(default=50, ge=1, le=500),
    ) -> dict[str, object]:
        entries = await bot.audit_repo.list(guild_id, ticket_id=ticket_id, limit=limit)
        return {
            "items": [
                {
                    "id": entry.id,
                    "action": entry.action,
                    "performed_by": entry.performed_by,
                    "ticket_id": entry.ticket_id,
                    "details": entry.details,
                    "created_at": entry.created_at,
                }
                for entry in entries
            ]
        }

    return app
