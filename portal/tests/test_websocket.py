"""WebSocket tests for the live event feed and identity stream."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.websockets import WebSocketDisconnect


def _upcoming(days: int = 3) -> str:
    return (datetime.now(timezone.utc).date() + timedelta(days=days)).isoformat()


class TestEventsFeedSocket:
    def test_initial_snapshot_then_update(self, client, admin_headers):
        """The feed sends the current list on connect and again after a change."""
        event = {"title": "Tasting", "description": "Wine", "date": _upcoming(), "time": "18:00"}
        event_id = client.post("/events", json=event, headers=admin_headers).json()["id"]

        with client.websocket_connect("/ws/events") as ws:
            first = ws.receive_json()
            assert first["type"] == "events"
            assert [e["id"] for e in first["events"]] == [event_id]
            assert first["events"][0]["registrations_count"] == 0

            res = client.post(f"/events/{event_id}/registrations", json={"name": "Ann", "email": "ann@x.com"})
            assert res.status_code == 201

            counts = []
            while not counts or counts[-1] != 1:
                message = ws.receive_json()
                assert message["type"] == "events"
                counts.append(message["events"][0]["registrations_count"])
            assert counts[-1] == 1

    def test_empty_feed(self, client):
        with client.websocket_connect("/ws/events") as ws:
            assert ws.receive_json() == {"type": "events", "events": []}

    def test_heartbeat_pings(self, client, monkeypatch):
        import portal.controllers.ws_events as ws_events

        monkeypatch.setattr(ws_events, "HEARTBEAT_SEC", 0.05)
        with client.websocket_connect("/ws/events") as ws:
            ws.receive_json()
            assert ws.receive_json() == {"type": "ping"}

    def test_heartbeat_finishes_before_handler_returns(self, client, monkeypatch):
        """The heartbeat task is cancelled and awaited before the socket handler exits."""
        import portal.controllers.ws_events as ws_events

        order = []
        closed = threading.Event()

        async def fake_heartbeat(_send):
            try:
                await asyncio.Event().wait()
            finally:
                order.append("heartbeat_done")

        def record_info(msg, *_args):
            if msg.startswith("ws_events.close"):
                order.append("handler_closed")
                closed.set()

        monkeypatch.setattr(ws_events, "_heartbeat", fake_heartbeat)
        monkeypatch.setattr(ws_events, "_logger", MagicMock(info=MagicMock(side_effect=record_info)))

        with client.websocket_connect("/ws/events") as ws:
            ws.receive_json()

        assert closed.wait(timeout=3.0)
        assert order == ["heartbeat_done", "handler_closed"]


class TestIdentitySocket:
    def test_without_token(self, client):
        with client.websocket_connect("/ws/identity") as ws:
            assert ws.receive_json() == {"type": "identity_changed", "identity": None}

    def test_sends_current_identity_then_sign_out(self, client, admin_headers):
        token = admin_headers["Authorization"].split()[1]

        with client.websocket_connect(f"/ws/identity?token={token}") as ws:
            first = ws.receive_json()
            assert first["identity"]["email"] == "charles@example.com"
            assert first["identity"]["is_admin"] is True

            client.post("/auth/logout", headers=admin_headers)
            assert ws.receive_json() == {"type": "identity_changed", "identity": None}

    def test_subscribe_failure_closes_and_releases_pubsub(self, client, monkeypatch):
        from portal import state

        released = threading.Event()

        class BrokenPubSub:
            async def subscribe(self, *_args):
                raise RedisConnectionError("refused")

            async def unsubscribe(self, *_args):
                return None

            async def aclose(self):
                released.set()

        monkeypatch.setattr(state.identity_provider.redis_client, "pubsub", lambda: BrokenPubSub())

        with client.websocket_connect("/ws/identity?token=abc") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
            assert exc_info.value.code == 1011

        assert released.wait(timeout=3.0)
