"""Tests for yearly document numbering (SequenceService)."""

from datetime import datetime, timezone

import pytest

from procurement_kernel.exceptions import ValidationError
from procurement_kernel.services.sequence_service import (
    GRN_PREFIX,
    INVOICE_PREFIX,
    SequenceService,
)


class TestSequenceService:

    def test_numbers_are_sequential_per_prefix(self, store, clock):
        sequences = SequenceService(store, clock)
        assert sequences.next_number(GRN_PREFIX) == "GRN20240001"
        assert sequences.next_number(GRN_PREFIX) == "GRN20240002"
        assert sequences.next_number(INVOICE_PREFIX) == "INV20240001"

    def test_counter_restarts_each_year(self, store, clock):
        sequences = SequenceService(store, clock)
        sequences.next_number(GRN_PREFIX)
        clock.set_time(datetime(2025, 1, 2, tzinfo=timezone.utc))
        assert sequences.next_number(GRN_PREFIX) == "GRN20250001"
        assert sequences.current_value(GRN_PREFIX, 2024) == 1

    def test_rollback_releases_number(self, store, clock):
        sequences = SequenceService(store, clock)
        with pytest.raises(RuntimeError):
            with store.atomic():
                sequences.next_number(GRN_PREFIX)
                raise RuntimeError("GRN creation failed")
        assert sequences.next_number(GRN_PREFIX) == "GRN20240001"

    @pytest.mark.parametrize("prefix", ["", "GR-N", "P O"])
    def test_prefix_must_be_alphanumeric(self, store, clock, prefix):
        with pytest.raises(ValidationError):
            SequenceService(store, clock).next_value(prefix)
