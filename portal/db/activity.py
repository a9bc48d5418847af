from datetime import UTC, datetime
from typing import Any

from psycopg.types.json import Json

from portal.db.core import _get_connection


async def insert_activity(
    kind: str,
    event_id: str,
    actor: str | None,
    payload: dict[str, Any],
    ts_ms: int,
) -> None:
    ts = datetime.fromtimestamp(ts_ms / 1000, tz=UTC)
    async with _get_connection() as conn:
        await conn.execute(
            "INSERT INTO activity (kind, event_id, actor, ts, payload) VALUES (%s, %s, %s, %s, %s)",
            (kind, event_id, actor, ts, Json(payload)),
        )


async def fetch_activity(
    event_id: str | None,
    kind: str | None,
    before_iso: str | None,
    limit: int,
) -> list[dict[str, Any]]:
    before_ts = (
        datetime.fromisoformat(before_iso.replace("Z", "+00:00"))
        if before_iso
        else datetime.now(UTC)
    )
    clauses = ["ts < %s"]
    params: list[Any] = [before_ts]
    if event_id:
        clauses.append("event_id = %s")
        params.append(event_id)
    if kind:
        clauses.append("kind = %s")
        params.append(kind)
    where = " AND ".join(clauses)
    sql = f"SELECT kind, event_id, actor, ts, payload FROM activity WHERE {where} ORDER BY ts DESC LIMIT %s"
    params.append(limit)
    async with _get_connection() as conn:
        rows = await conn.execute(sql, tuple(params))
        out: list[dict[str, Any]] = []
        async for row in rows:
            kind_v, event_v, actor_v, ts, payload = row
            out.append(
                {
                    "kind": kind_v,
                    "event_id": event_v,
                    "actor": actor_v,
                    "timestamp": ts.astimezone(UTC).isoformat(),
                    "payload": payload,
                }
            )
        return out
