"""Tests for the change broker."""

import asyncio

import pytest

from api.models import ChangeEvent
from api.services.changes import ChangeBroker


@pytest.fixture
def broker():
    return ChangeBroker(max_queue_size=2)


def event(kind="insert", note_id="n1"):
    return ChangeEvent(type=kind, note_id=note_id)


@pytest.mark.asyncio
class TestChangeBroker:
    """Per-owner fan-out."""

    async def test_publish_reaches_every_stream_of_owner(self, broker):
        first = broker.subscribe("alice")
        second = broker.subscribe("alice")

        delivered = broker.publish("alice", event())

        assert delivered == 2
        assert (await first.get()).note_id == "n1"
        assert (await second.get()).note_id == "n1"

    async def test_publish_is_owner_scoped(self, broker):
        alice = broker.subscribe("alice")
        bob = broker.subscribe("bob")

        broker.publish("alice", event())

        assert alice.qsize() == 1
        assert bob.empty()

    async def test_publish_without_streams(self, broker):
        assert broker.publish("nobody", event()) == 0

    async def test_unsubscribe_stops_delivery(self, broker):
        queue = broker.subscribe("alice")

        broker.unsubscribe("alice", queue)
        broker.publish("alice", event())

        assert queue.empty()
        assert broker.stream_count("alice") == 0

    async def test_unsubscribe_unknown_is_noop(self, broker):
        broker.unsubscribe("alice", asyncio.Queue())

        assert broker.stream_count() == 0

    async def test_full_queue_drops_event(self, broker):
        queue = broker.subscribe("alice")
        broker.publish("alice", event(note_id="n1"))
        broker.publish("alice", event(note_id="n2"))

        delivered = broker.publish("alice", event(note_id="n3"))

        assert delivered == 0
        assert [queue.get_nowait().note_id for _ in range(2)] == ["n1", "n2"]

    async def test_stream_count(self, broker):
        broker.subscribe("alice")
        broker.subscribe("alice")
        broker.subscribe("bob")

        assert broker.stream_count() == 3
        assert broker.stream_count("alice") == 2
        assert broker.stream_count("carol") == 0
