"""Notification sink registry.

Provides singleton access to the sink the ordering core emits to. The
in-memory fake is the default; a socket or queue backed sink can be
installed with set_sink() at process start.
"""

from notifications.channel.sink_port import NotificationSink

_current_sink: NotificationSink | None = None


def get_sink() -> NotificationSink:
    """Return the configured sink. Defaults to FakeNotificationSink."""
    global _current_sink
    if _current_sink is None:
        from notifications.channel.fake_sink import FakeNotificationSink

        _current_sink = FakeNotificationSink()
    return _current_sink


def set_sink(sink: NotificationSink) -> None:
    global _current_sink
    _current_sink = sink


def reset_sink() -> None:
    """Reset the singleton (useful for testing)."""
    global _current_sink
    _current_sink = None
