import json
from datetime import datetime, timezone

from bson import ObjectId

from bgmi_gateway.notifier import END_OF_STREAM, EventNotifier


async def test_notify_reaches_every_listener():
    notifier = EventNotifier()
    first, second = notifier.connect(), notifier.connect()

    assert notifier.notify("WINNER_UPDATED", [{"winnerTeam": "Alpha"}]) == 2

    for listener in (first, second):
        message = json.loads(listener.get_nowait())
        assert message["event"] == "WINNER_UPDATED"
        assert message["payload"] == [{"winnerTeam": "Alpha"}]
        assert datetime.fromisoformat(message["time"]).tzinfo is not None


async def test_notify_without_listeners_is_a_no_op():
    assert EventNotifier().notify("TOURNAMENT_ADDED", []) == 0


async def test_late_listener_gets_no_replay():
    notifier = EventNotifier()
    notifier.notify("TOURNAMENT_ADDED", [{"name": "deadzone"}])

    listener = notifier.connect()
    assert listener.empty()


async def test_disconnected_listener_stops_receiving():
    notifier = EventNotifier()
    listener = notifier.connect()
    notifier.disconnect(listener)
    notifier.disconnect(listener)

    assert notifier.notify("JOIN_MATCH", {}) == 0
    assert listener.empty()


async def test_slow_listener_is_dropped_without_blocking():
    notifier = EventNotifier(queue_size=1)
    slow, fast = notifier.connect(), notifier.connect()

    notifier.notify("LEADERBOARD_UPDATED", [1])
    fast.get_nowait()
    delivered = notifier.notify("LEADERBOARD_UPDATED", [2])

    assert delivered == 1
    assert slow not in notifier.listeners
    assert fast in notifier.listeners
    assert slow.get_nowait() is END_OF_STREAM


async def test_payload_with_mongo_types_is_serialized():
    notifier = EventNotifier()
    listener = notifier.connect()
    oid = ObjectId()
    when = datetime(2025, 1, 1, tzinfo=timezone.utc)

    notifier.notify("JOIN_MATCH", {"_id": oid, "createdAt": when})

    payload = json.loads(listener.get_nowait())["payload"]
    assert payload == {"_id": str(oid), "createdAt": when.isoformat()}


async def test_close_ends_every_stream():
    notifier = EventNotifier(queue_size=1)
    idle, full = notifier.connect(), notifier.connect()
    full.put_nowait("pending")

    notifier.close()

    assert idle.get_nowait() is END_OF_STREAM
    assert full.get_nowait() is END_OF_STREAM
    assert notifier.listeners == []
