"""Human-readable order numbers: ``ORD-<epoch millis>-<6-digit sequence>``.

The sequence is process-wide and strictly increasing, so two numbers issued
by the same generator never collide even within one millisecond.
"""

import threading
import time
from collections.abc import Callable


class OrderNumberGenerator:
    def __init__(
        self,
        prefix: str = "ORD",
        seed: Callable[[], int] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.prefix = prefix
        self._seed = seed
        self._clock = clock
        self._lock = threading.Lock()
        self._sequence: int | None = None
        self._last_millis = 0

    def next(self) -> str:
        with self._lock:
            if self._sequence is None:
                # Continue after the orders already on record
                self._sequence = self._seed() if self._seed else 0
            self._sequence += 1
            self._last_millis = max(int(self._clock() * 1000), self._last_millis)
            return f"{self.prefix}-{self._last_millis}-{self._sequence:06d}"
