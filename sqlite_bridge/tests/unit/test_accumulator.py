"""Unit tests for the aggregate accumulator store."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from sqlite_bridge.domain.services.accumulator import AccumulatorStore, AccumulatorTag
from sqlite_bridge.domain.services.marshaller import INT64_MAX


def zeroed_cell() -> SimpleNamespace:
    """Stand-in for a freshly allocated, zero-filled accumulator struct."""
    return SimpleNamespace(initialized=0, tag=0, integer=0, number=0.0, slot=0)


@pytest.mark.unit
class TestAccumulatorStore:
    """Tests for AccumulatorStore."""

    @pytest.fixture
    def store(self) -> AccumulatorStore:
        return AccumulatorStore()

    def test_zeroed_cell_is_uninitialized(self, store: AccumulatorStore) -> None:
        assert store.is_initialized(zeroed_cell()) is False

    def test_initialize_seeds_start_value(self, store: AccumulatorStore) -> None:
        cell = zeroed_cell()

        store.initialize(cell, 10)

        assert store.is_initialized(cell)
        assert cell.tag == AccumulatorTag.BIGINT
        assert store.read(cell) == 10

    @pytest.mark.parametrize(
        ("value", "tag"),
        [
            (None, AccumulatorTag.NULL),
            (True, AccumulatorTag.BOOLEAN),
            (2.5, AccumulatorTag.NUMBER),
            (-7, AccumulatorTag.BIGINT),
            (INT64_MAX, AccumulatorTag.BIGINT),
            ("text", AccumulatorTag.STRING),
            (INT64_MAX + 1, AccumulatorTag.REFERENCE),
            ({"k": [1, 2]}, AccumulatorTag.REFERENCE),
        ],
    )
    def test_tags(self, store: AccumulatorStore, value: object, tag: AccumulatorTag) -> None:
        cell = zeroed_cell()
        store.initialize(cell, value)

        assert cell.tag == tag
        assert store.read(cell) == value
        assert type(store.read(cell)) is type(value)

    def test_inline_values_use_no_slots(self, store: AccumulatorStore) -> None:
        cell = zeroed_cell()
        store.initialize(cell, 0)
        store.write(cell, 1.5)
        store.write(cell, False)

        assert store.live_slots == 0

    def test_references_are_returned_by_identity(self, store: AccumulatorStore) -> None:
        items: list[int] = []
        cell = zeroed_cell()
        store.initialize(cell, items)

        store.read(cell).append(1)

        assert store.read(cell) is items
        assert items == [1]

    def test_overwrite_releases_previous_reference(self, store: AccumulatorStore) -> None:
        cell = zeroed_cell()
        store.initialize(cell, "a")
        store.write(cell, "ab")
        store.write(cell, ["x"])

        assert store.live_slots == 1
        assert store.read(cell) == ["x"]

        store.write(cell, 3)

        assert store.live_slots == 0
        assert store.read(cell) == 3

    def test_destroy_zeroes_cell_and_releases_slot(self, store: AccumulatorStore) -> None:
        cell = zeroed_cell()
        store.initialize(cell, object())

        store.destroy(cell)

        assert store.live_slots == 0
        assert cell.initialized == 0
        assert cell.tag == AccumulatorTag.NONE
        assert cell.slot == 0
        assert store.read(cell) is None

    def test_groups_are_independent(self, store: AccumulatorStore) -> None:
        first, second = zeroed_cell(), zeroed_cell()
        store.initialize(first, "one")
        store.initialize(second, "two")

        store.destroy(first)

        assert store.live_slots == 1
        assert store.read(second) == "two"

    def test_clear_drops_everything(self, store: AccumulatorStore) -> None:
        for value in ("a", "b", "c"):
            store.initialize(zeroed_cell(), value)

        store.clear()

        assert store.live_slots == 0
