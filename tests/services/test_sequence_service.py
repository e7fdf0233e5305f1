"""Tests for SequenceService -- locked monotonic counters."""

from qms_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session):
        service = SequenceService(session)

        assert service.current_value("test_counter") is None
        assert service.next_value("test_counter") == 1
        assert service.current_value("test_counter") == 1

    def test_values_are_strictly_increasing(self, session):
        service = SequenceService(session)

        values = [service.next_value("test_monotonic") for _ in range(5)]

        assert values == [1, 2, 3, 4, 5]

    def test_sequences_are_independent(self, session):
        service = SequenceService(session)
        service.next_value("seq_a")
        service.next_value("seq_a")

        assert service.next_value("seq_b") == 1
