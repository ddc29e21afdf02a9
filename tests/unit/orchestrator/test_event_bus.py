"""
Unit tests for the per-session event bus
"""
from whiteninja.modules.orchestrator.event_bus import BuildEvent, BuildEventType, EventBus


class TestEventBus:
    """Test ordered delivery and bounded history"""

    def test_subscribers_see_events_in_emission_order(self):
        bus = EventBus("session-1")
        seen = []
        bus.subscribe("*", lambda e: seen.append(e.data["n"]))

        for n in range(5):
            bus.emit(BuildEventType.AGENT_MESSAGE, {"n": n})

        assert seen == [0, 1, 2, 3, 4]

    def test_typed_subscription_filters(self):
        bus = EventBus("session-1")
        files = []
        bus.subscribe(BuildEventType.FILE_CREATED, files.append)
        bus.subscribe("build_progress", files.append)

        bus.emit(BuildEventType.AGENT_THINKING, {"thought": "hmm"})
        bus.emit(BuildEventType.FILE_CREATED, {"path": "index.html"})
        bus.emit(BuildEventType.BUILD_PROGRESS, {"percent": 5})

        assert [e.type for e in files] == [BuildEventType.FILE_CREATED, BuildEventType.BUILD_PROGRESS]

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus("session-1")
        seen = []

        def broken(_):
            raise RuntimeError("socket gone")

        bus.subscribe("*", broken)
        bus.subscribe("*", seen.append)
        bus.emit(BuildEventType.BUILD_PROGRESS, {"percent": 10})

        assert len(seen) == 1

    def test_history_is_bounded(self):
        bus = EventBus("session-1", max_history=3)
        for n in range(10):
            bus.emit(BuildEventType.AGENT_MESSAGE, {"n": n})

        assert [e.data["n"] for e in bus.get_history()] == [7, 8, 9]
        assert bus.event_count == 10

    def test_history_filters(self):
        bus = EventBus("session-1")
        bus.emit(BuildEventType.AGENT_MESSAGE, {"n": 1})
        bus.emit(BuildEventType.FILE_CREATED, {"path": "a"})
        bus.emit(BuildEventType.AGENT_MESSAGE, {"n": 2})

        messages = bus.get_history(event_types=[BuildEventType.AGENT_MESSAGE])
        assert [e.data["n"] for e in messages] == [1, 2]
        assert len(bus.get_history(limit=1)) == 1
        assert bus.get_history(limit=0) == []

    def test_unsubscribe(self):
        bus = EventBus("session-1")
        seen = []
        bus.subscribe("*", seen.append)
        bus.unsubscribe("*", seen.append)
        bus.emit(BuildEventType.BUILD_PROGRESS, {"percent": 1})
        assert seen == []


class TestBuildEvent:
    """Test wire serialization"""

    def test_to_dict_flattens_payload(self):
        event = BuildEvent(type=BuildEventType.PHASE_CHANGE, data={"from": "PLANNING", "to": "SCAFFOLDING"}, timestamp=42)
        assert event.to_dict() == {"type": "phase_change", "from": "PLANNING", "to": "SCAFFOLDING", "timestamp": 42}

