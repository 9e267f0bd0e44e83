"""Tests for OrderNumberGenerator."""

import re
import threading

from ordering.order.numbering import OrderNumberGenerator

_FORMAT = re.compile(r"^ORD-\d{13}-\d{6}$")


class TestOrderNumberFormat:
    def test_format(self):
        number = OrderNumberGenerator().next()
        assert _FORMAT.match(number)

    def test_sequence_is_zero_padded(self):
        generator = OrderNumberGenerator(clock=lambda: 1700000000.0)
        assert generator.next() == "ORD-1700000000000-000001"
        assert generator.next() == "ORD-1700000000000-000002"

    def test_seed_continues_existing_sequence(self):
        generator = OrderNumberGenerator(seed=lambda: 41, clock=lambda: 1700000000.0)
        assert generator.next().endswith("-000042")

    def test_seed_read_once(self):
        calls = []

        def seed():
            calls.append(1)
            return 0

        generator = OrderNumberGenerator(seed=seed)
        generator.next()
        generator.next()
        assert len(calls) == 1

    def test_clock_never_moves_backwards(self):
        ticks = iter([1700000000.5, 1699999999.0])
        generator = OrderNumberGenerator(clock=lambda: next(ticks))

        first = generator.next()
        second = generator.next()
        assert first.split("-")[1] == second.split("-")[1]


class TestOrderNumberUniqueness:
    def test_concurrent_numbers_are_unique(self):
        generator = OrderNumberGenerator()
        numbers = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                number = generator.next()
                with lock:
                    numbers.append(number)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(numbers) == 400
        assert len(set(numbers)) == 400
