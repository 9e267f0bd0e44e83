"""Fake notification sink: records emitted events for testing."""

from notifications.channel.sink_port import NotificationSink


class FakeNotificationSink(NotificationSink):
    """Sink that records events in memory for test assertions."""

    def __init__(self):
        self.emitted: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Socket transport unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Socket transport unavailable"):
        """Configure the fake sink behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def emit(self, target_id: str, event_name: str, payload: dict) -> None:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        self.emitted.append(
            {
                "target_id": str(target_id),
                "event_name": event_name,
                "payload": payload,
            }
        )

    def events_for(self, target_id: str) -> list[dict]:
        return [e for e in self.emitted if e["target_id"] == str(target_id)]

    def reset(self):
        """Clear emitted events (useful between tests)."""
        self.emitted.clear()
        self.should_succeed = True
        self.failure_reason = "Socket transport unavailable"
