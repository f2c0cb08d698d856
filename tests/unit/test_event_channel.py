from __future__ import annotations

from subburn.utils.events import EngineEvent, EventChannel


def test_publish_reaches_subscribers_in_order() -> None:
    channel: EventChannel[EngineEvent] = EventChannel()
    seen: list[tuple[str, float]] = []
    channel.subscribe(lambda e: seen.append(("a", e.percent)))
    channel.subscribe(lambda e: seen.append(("b", e.percent)))

    channel.publish(EngineEvent(kind="progress", percent=10.0))

    assert seen == [("a", 10.0), ("b", 10.0)]


def test_unsubscribe_stops_delivery() -> None:
    channel: EventChannel[int] = EventChannel()
    seen: list[int] = []
    unsubscribe = channel.subscribe(seen.append)
    channel.publish(1)
    unsubscribe()
    unsubscribe()
    channel.publish(2)
    assert seen == [1]
    assert channel.subscriber_count == 0


def test_failing_handler_does_not_block_others() -> None:
    channel: EventChannel[int] = EventChannel()
    seen: list[int] = []

    def broken(_event: int) -> None:
        raise RuntimeError("handler bug")

    channel.subscribe(broken)
    channel.subscribe(seen.append)
    channel.publish(7)
    assert seen == [7]
