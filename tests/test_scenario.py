"""
End-to-end chat room scenario over HTTP with a controllable clock.
"""

from conftest import STALE_AFTER_MS, join, post

from chatroom.models import Message
from chatroom.storage import SessionLocal


def test_join_chat_idle_evict_rejoin(client, clock, sweeper):
    # Ana joins; the arrival is visible to every viewer
    join(client, "Ana")
    for viewer in ("Ana", "Zoe", None):
        headers = {"User": viewer} if viewer else {}
        messages = client.get("/messages", headers=headers).json()
        assert [(m["from"], m["text"]) for m in messages] == [("Ana", "entered the room")]

    # Ana's broadcast reaches everyone
    assert post(client, "Ana", "Todos", "hi").status_code == 201
    for viewer in ("Ana", "Zoe"):
        texts = [m["text"] for m in client.get("/messages", headers={"User": viewer}).json()]
        assert texts[-1] == "hi"

    # Bob never joined
    with SessionLocal() as db:
        before = db.query(Message).count()
    assert post(client, "Bob", "Todos", "hello?").status_code == 422
    with SessionLocal() as db:
        assert db.query(Message).count() == before

    # Ana goes idle past the threshold; the next sweep evicts her
    clock.advance(STALE_AFTER_MS + 1)
    assert sweeper.sweep() == ["Ana"]
    assert client.get("/participants").json() == []

    messages = client.get("/messages", headers={"User": "Zoe"}).json()
    departures = [m for m in messages if m["type"] == "status" and m["text"] == "left the room"]
    assert len(departures) == 1
    assert departures[0]["from"] == "Ana"

    # An evicted participant can no longer post or heartbeat
    assert post(client, "Ana", "Todos", "still here?").status_code == 422
    assert client.post("/status", headers={"User": "Ana"}).status_code == 404

    # Ana can rejoin immediately with the same name
    response = client.post("/participants", json={"name": "Ana"})
    assert response.status_code == 201
    assert [p["name"] for p in client.get("/participants").json()] == ["Ana"]


def test_heartbeats_keep_participant_across_sweeps(client, clock, sweeper):
    join(client, "Ana")

    for _ in range(5):
        clock.advance(STALE_AFTER_MS - 1)
        assert client.post("/status", headers={"User": "Ana"}).status_code == 200
        assert sweeper.sweep() == []

    assert [p["name"] for p in client.get("/participants").json()] == ["Ana"]
