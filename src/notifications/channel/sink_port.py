"""Notification sink port: abstract interface for real-time events."""

from abc import ABC, abstractmethod


class NotificationSink(ABC):
    """Fire-and-forget dispatcher of real-time events to a user or vendor.

    Implementations may raise; callers treat delivery as best-effort and
    never let a failure here undo the operation that triggered it.
    """

    @abstractmethod
    def emit(self, target_id: str, event_name: str, payload: dict) -> None:
        """Send ``event_name`` with ``payload`` to the room of ``target_id``."""
        ...
