"""
Tests for health, metrics and request logging.
"""

import asyncio
import json
import logging
import sqlite3
import time

import httpx

from conftest import join, post
from chatroom.logging_utils import ChatJsonFormatter, LOG_FORMAT, request_id_ctx
from chatroom.main import app
from chatroom.storage import engine


class TestHealth:
    def test_liveness(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readiness(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_response_includes_request_id_header(self, client):
        response = client.get("/participants")

        assert response.status_code == 200
        assert "x-request-id" in response.headers


class TestMetrics:
    def test_metrics_exposition(self, client):
        join(client, "Ana")
        post(client, "Ana", "Todos", "hi")
        post(client, "Nobody", "Todos", "hi")

        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert "http_requests_total" in body
        assert 'chat_operations_total{operation="post",result="ok"}' in body
        assert 'chat_operations_total{operation="post",result="validation_error"}' in body

    def test_message_routes_labelled_by_template(self, client):
        client.delete("/messages/some-id", headers={"User": "Ana"})

        body = client.get("/metrics").text
        assert 'path="/messages/{message_id}"' in body


class TestBlockingStore:
    def test_liveness_answers_while_a_write_waits_on_the_database(self, client):
        """A request stuck on the SQLite write lock must not stall the event loop."""
        blocker = sqlite3.connect(engine.url.database, isolation_level=None)
        blocker.execute("BEGIN IMMEDIATE")

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                pending_join = asyncio.create_task(ac.post("/participants", json={"name": "Ana"}))
                await asyncio.sleep(0.2)

                started = time.monotonic()
                live = await ac.get("/health/live")
                elapsed = time.monotonic() - started

                blocker.rollback()
                joined = await pending_join
                return live, elapsed, joined

        try:
            live, elapsed, joined = asyncio.run(scenario())
        finally:
            blocker.close()

        assert live.status_code == 200
        assert elapsed < 1.0
        assert joined.status_code == 201


class TestJsonLogging:
    def _format(self, **extra):
        record = logging.LogRecord("chatroom.requests", logging.WARNING, __file__, 1, "Request completed", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return json.loads(ChatJsonFormatter(LOG_FORMAT).format(record))

    def test_record_carries_ts_level_and_request_id(self):
        token = request_id_ctx.set("req-1")
        try:
            entry = self._format(status=404)
        finally:
            request_id_ctx.reset(token)

        assert entry["level"] == "WARNING"
        assert entry["request_id"] == "req-1"
        assert entry["status"] == 404
        assert entry["ts"].endswith("Z")

    def test_explicit_request_id_is_kept(self):
        token = request_id_ctx.set("from-context")
        try:
            entry = self._format(request_id="explicit")
        finally:
            request_id_ctx.reset(token)

        assert entry["request_id"] == "explicit"

    def test_no_request_id_outside_a_request(self):
        assert "request_id" not in self._format()
