"""Tests for MessageStore and ConnectionRegistry."""
import pytest

from genielearn.chat.registry import Connection, ConnectionRegistry, RegistryError
from genielearn.chat.store import MessageStore
from genielearn.database import Database


@pytest.fixture
def store():
    db = Database(":memory:")
    yield MessageStore(db)
    db.close()


class TestMessageStore:
    def test_insert_assigns_id_and_timestamp(self, store):
        message = store.insert_sync("g1", "u1", "Ada", "hello")
        assert message.id
        assert message.timestamp.tzinfo is not None
        assert store.count("g1") == 1

    def test_list_is_oldest_first(self, store):
        ids = [store.insert_sync("g1", "u1", "Ada", f"m{i}").id for i in range(5)]
        assert [m.id for m in store.list_sync("g1")] == ids

    def test_list_is_scoped_to_group(self, store):
        store.insert_sync("g1", "u1", "Ada", "one")
        store.insert_sync("g2", "u1", "Ada", "two")
        assert [m.content for m in store.list_sync("g2")] == ["two"]

    def test_pagination(self, store):
        for i in range(7):
            store.insert_sync("g1", "u1", "Ada", f"m{i}")
        first = store.list_sync("g1", limit=3, offset=0)
        last = store.list_sync("g1", limit=3, offset=6)
        assert [m.content for m in first] == ["m0", "m1", "m2"]
        assert [m.content for m in last] == ["m6"]

    def test_limit_is_clamped(self, store):
        for i in range(3):
            store.insert_sync("g1", "u1", "Ada", f"m{i}")
        assert len(store.list_sync("g1", limit=0)) == 1
        assert len(store.list_sync("g1", limit=1000)) == 3

    def test_round_trip_keeps_sender_name(self, store):
        sent = store.insert_sync("g1", "u1", "Ada Lovelace", "hi")
        (loaded,) = store.list_sync("g1")
        assert loaded == sent

    @pytest.mark.asyncio
    async def test_async_insert_and_list(self, store):
        message = await store.insert("g1", "u1", "Ada", "async hello")
        assert [m.id for m in await store.list("g1")] == [message.id]


class FakeTransport:
    async def send_json(self, data):
        pass

    async def close(self, code=1000):
        pass


class TestConnectionRegistry:
    def test_register_and_snapshot(self):
        registry = ConnectionRegistry()
        a = Connection(transport=FakeTransport(), group_id="g1")
        b = Connection(transport=FakeTransport(), group_id="g1")
        registry.register(a)
        registry.register(b)

        snapshot = registry.connections("g1")
        registry.unregister(a)

        assert snapshot == [a, b]
        assert registry.connections("g1") == [b]

    def test_connection_belongs_to_one_group(self):
        registry = ConnectionRegistry()
        conn = Connection(transport=FakeTransport(), group_id="g1")
        registry.register(conn)

        conn.group_id = "g2"
        with pytest.raises(RegistryError):
            registry.register(conn)
        assert registry.group_of(conn) == "g1"

    def test_unregister_twice(self):
        registry = ConnectionRegistry()
        conn = Connection(transport=FakeTransport(), group_id="g1")
        registry.register(conn)

        assert registry.unregister(conn) is True
        assert registry.unregister(conn) is False
        assert registry.groups() == []

    def test_group_size(self):
        registry = ConnectionRegistry()
        for _ in range(3):
            registry.register(Connection(transport=FakeTransport(), group_id="g1"))
        assert registry.group_size("g1") == 3
        assert registry.group_size("other") == 0

        registry.clear()
        assert registry.group_size("g1") == 0
