from autodev.event_bus import RUN_STARTED, EventBus, RunEvent


def test_event_bus_pub_sub():
    test_bus = EventBus()
    received_events: list[RunEvent] = []

    def dummy_subscriber(event: RunEvent):
        received_events.append(event)

    test_bus.subscribe(dummy_subscriber)

    test_bus.emit(
        event_type=RUN_STARTED,
        run_id="run_abc",
        payload={"key": "value"}
    )

    assert len(received_events) == 1

    event = received_events[0]
    assert event.event_type == RUN_STARTED
    assert event.run_id == "run_abc"
    assert event.payload == {"key": "value"}

    # Verify auto-generated fields
    assert event.event_id is not None
    assert isinstance(event.event_id, str)
    assert event.timestamp is not None


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received: list[RunEvent] = []
    unsubscribe = bus.subscribe(received.append)

    bus.emit("a")
    unsubscribe()
    bus.emit("b")

    assert [e.event_type for e in received] == ["a"]


def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received: list[RunEvent] = []

    def broken(event: RunEvent):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.emit("status_changed", "run_1", {"status": "coding"})

    assert len(received) == 1
    assert received[0].payload["status"] == "coding"
