import pytest

from clubhouse.utils.websocket_manager import ConnectionInfo, WebSocketManager


@pytest.mark.anyio("asyncio")
async def test_publish_uses_snapshot_when_subscribers_change(recording_socket):
    manager = WebSocketManager()
    room = "meeting:MTG-WS-1"

    def _drop_peer():
        manager.unsubscribe(room, "conn-b")

    first = recording_socket(on_send=_drop_peer)
    second = recording_socket()
    manager.subscribe(room, ConnectionInfo(id="conn-a", websocket=first))
    manager.subscribe(room, ConnectionInfo(id="conn-b", websocket=second))

    await manager.publish(room, {"type": "meeting_update"})

    assert list(manager.subscribers(room)) == ["conn-a"]
    assert first.sent == [{"type": "meeting_update"}]


@pytest.mark.anyio("asyncio")
async def test_publish_drops_failed_connections(recording_socket):
    manager = WebSocketManager()
    room = "meeting:MTG-WS-2"
    ok = recording_socket()
    manager.subscribe(room, ConnectionInfo(id="conn-ok", websocket=ok))
    manager.subscribe(
        room, ConnectionInfo(id="conn-fail", websocket=recording_socket(should_fail=True))
    )

    delivered = await manager.publish(room, {"type": "ping"})

    assert delivered == 1
    assert ok.sent == [{"type": "ping"}]
    assert list(manager.subscribers(room)) == ["conn-ok"]


@pytest.mark.anyio("asyncio")
async def test_publish_is_once_per_subscriber_and_room_scoped(recording_socket):
    manager = WebSocketManager()
    socket = recording_socket()
    connection = ConnectionInfo(id="conn-1", websocket=socket)
    manager.subscribe("meeting:A", connection)
    manager.subscribe("meeting:A", connection)

    await manager.publish("meeting:A", {"type": "a"})
    await manager.publish("meeting:B", {"type": "b"})
    await manager.publish("meeting:A", {"type": "skipped"}, skip_connection="conn-1")

    assert socket.sent == [{"type": "a"}]


def test_unsubscribe_all_clears_every_room(recording_socket):
    manager = WebSocketManager()
    connection = ConnectionInfo(id="conn-1", websocket=recording_socket())
    other = ConnectionInfo(id="conn-2", websocket=recording_socket())
    manager.subscribe("meeting:A", connection)
    manager.subscribe("club:C", connection)
    manager.subscribe("club:C", other)

    left = manager.unsubscribe_all("conn-1")

    assert sorted(left) == ["club:C", "meeting:A"]
    assert manager.rooms_for("conn-1") == []
    assert manager.subscribers("meeting:A") == {}
    assert list(manager.subscribers("club:C")) == ["conn-2"]
    assert manager.unsubscribe("club:C", "conn-1") is False


@pytest.mark.anyio("asyncio")
async def test_start_and_shutdown_reset_the_registry(recording_socket):
    manager = WebSocketManager()
    manager.start()
    assert manager.started is True
    manager.subscribe("meeting:A", ConnectionInfo(id="conn-1", websocket=recording_socket()))

    await manager.shutdown()

    assert manager.started is False
    assert manager.subscribers("meeting:A") == {}
