"""Tests for the optional activity history."""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg
import pytest


class _Rows:
    def __init__(self, rows):
        self._rows = rows

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for row in self._rows:
            yield row


def _fake_connection(rows=()):
    conn = MagicMock()
    conn.execute = AsyncMock(return_value=_Rows(list(rows)))

    @asynccontextmanager
    async def _get_connection():
        yield conn

    return conn, _get_connection


class TestRecordActivity:
    """Test the best-effort activity producer."""

    @pytest.mark.asyncio
    async def test_no_pool_is_a_noop(self):
        from portal.producers.activity_producer import record_activity

        with patch("portal.producers.activity_producer.db.get_pool", return_value=None), patch(
            "portal.producers.activity_producer.db.insert_activity", new_callable=AsyncMock
        ) as insert:
            assert await record_activity("registration", "e1", None, {"name": "Ann"}) is False
        insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_writes_when_pool_present(self):
        from portal.producers.activity_producer import record_activity

        with patch("portal.producers.activity_producer.db.get_pool", return_value=MagicMock()), patch(
            "portal.producers.activity_producer.db.insert_activity", new_callable=AsyncMock
        ) as insert:
            assert await record_activity("event_created", "e1", "admin", {"title": "T"}) is True

        args = insert.call_args.args
        assert args[:4] == ("event_created", "e1", "admin", {"title": "T"})
        assert isinstance(args[4], int)

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self):
        from portal.producers.activity_producer import record_activity

        with patch("portal.producers.activity_producer.db.get_pool", return_value=MagicMock()), patch(
            "portal.producers.activity_producer.db.insert_activity",
            AsyncMock(side_effect=OSError("db down")),
        ):
            assert await record_activity("registration", "e1", None, {}) is False


class TestActivityQueries:
    @pytest.mark.asyncio
    async def test_insert_converts_timestamp(self):
        from portal.db import activity

        conn, get_conn = _fake_connection()
        with patch.object(activity, "_get_connection", get_conn):
            await activity.insert_activity("registration", "e1", None, {"name": "Ann"}, 0)

        sql, params = conn.execute.call_args.args
        assert sql.startswith("INSERT INTO activity")
        assert params[3] == datetime(1970, 1, 1, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_fetch_filters_and_maps_rows(self):
        from portal.db import activity

        ts = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
        conn, get_conn = _fake_connection([("registration", "e1", None, ts, {"name": "Ann"})])
        with patch.object(activity, "_get_connection", get_conn):
            rows = await activity.fetch_activity("e1", "registration", "2026-06-01T00:00:00Z", 10)

        sql, params = conn.execute.call_args.args
        assert "event_id = %s" in sql
        assert "kind = %s" in sql
        assert params[1:] == ("e1", "registration", 10)
        assert rows == [
            {
                "kind": "registration",
                "event_id": "e1",
                "actor": None,
                "timestamp": "2026-05-01T12:00:00+00:00",
                "payload": {"name": "Ann"},
            }
        ]

    @pytest.mark.asyncio
    async def test_fetch_rejects_bad_timestamp(self):
        from portal.db import activity

        with pytest.raises(ValueError):
            await activity.fetch_activity(None, None, "yesterday", 10)

    @pytest.mark.asyncio
    async def test_connection_without_pool(self):
        from portal.db import core

        with patch.object(core, "_pool", None):
            with pytest.raises(RuntimeError):
                async with core._get_connection():
                    pass


class TestActivityEndpoint:
    def test_lists_entries_for_admin(self, client, admin_headers):
        entry = {
            "kind": "registration",
            "event_id": "e1",
            "actor": None,
            "timestamp": "2026-05-01T12:00:00+00:00",
            "payload": {"name": "Ann"},
        }
        with patch("portal.controllers.activity.db.get_pool", return_value=MagicMock()), patch(
            "portal.controllers.activity.db.fetch_activity", AsyncMock(return_value=[entry])
        ):
            res = client.get("/activity?event_id=e1", headers=admin_headers)

        assert res.status_code == 200
        body = res.json()
        assert body["entries"][0]["event_id"] == "e1"
        assert body["next_before"] == "2026-05-01T12:00:00+00:00"

    def test_bad_before_is_rejected(self, client, admin_headers):
        with patch("portal.controllers.activity.db.get_pool", return_value=MagicMock()), patch(
            "portal.controllers.activity.db.fetch_activity", AsyncMock(side_effect=ValueError("bad"))
        ):
            res = client.get("/activity?before=yesterday", headers=admin_headers)

        assert res.status_code == 422

    def test_query_failure_is_database_error(self, client, admin_headers):
        with patch("portal.controllers.activity.db.get_pool", return_value=MagicMock()), patch(
            "portal.controllers.activity.db.fetch_activity",
            AsyncMock(side_effect=psycopg.OperationalError("server closed the connection")),
        ):
            res = client.get("/activity", headers=admin_headers)

        assert res.status_code == 500
        body = res.json()
        assert body["error"] == "database_error"
        assert body["detail"] == "Failed to read activity history"
