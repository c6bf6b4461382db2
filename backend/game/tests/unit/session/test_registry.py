import pytest

from game.messaging.protocol import ConnectionGoneError
from game.session.registry import ConnectionRegistry
from game.tests.mocks.connection import MockConnection


class TestConnectionRegistry:
    def test_register_and_lookup(self):
        registry = ConnectionRegistry()
        connection = MockConnection("c1")
        registry.register(connection)
        assert "c1" in registry
        assert registry.get("c1") is connection
        assert len(registry) == 1

    def test_unregister(self):
        registry = ConnectionRegistry()
        connection = MockConnection("c1")
        registry.register(connection)
        assert registry.unregister("c1") is connection
        assert registry.unregister("c1") is None
        assert "c1" not in registry

    async def test_send_delivers(self):
        registry = ConnectionRegistry()
        connection = MockConnection("c1")
        registry.register(connection)
        await registry.send({"action": "PING"}, "c1")
        assert connection.sent_messages == [{"action": "PING"}]

    async def test_send_to_unknown_connection(self):
        with pytest.raises(ConnectionGoneError):
            await ConnectionRegistry().send({"action": "PING"}, "nobody")

    async def test_close_all(self):
        registry = ConnectionRegistry()
        connections = [MockConnection(f"c{i}") for i in range(3)]
        for connection in connections:
            registry.register(connection)
        await registry.close_all()
        assert all(connection.is_closed for connection in connections)
        assert len(registry) == 0
