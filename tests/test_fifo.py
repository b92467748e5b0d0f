"""FIFO allocation over in-memory batches."""
from datetime import datetime

import pytest

from autoparts.errors import ValidationError
from autoparts.models import Batch, BatchStatus
from autoparts.services.fifo import allocate, available_batches, available_quantity


def _batch(id, day, qty, price=10.0, status=BatchStatus.ACTIVE):
    return Batch(
        id=id,
        product_id=1,
        purchase_date=datetime(2024, 1, day),
        purchase_price=price,
        initial_quantity=max(qty, 1),
        current_quantity=qty,
        status=status,
    )


def test_oldest_batch_is_drawn_first():
    newer = _batch(2, 20, 10, price=12.0)
    older = _batch(1, 5, 5, price=10.0)

    result = allocate([newer, older], 7)

    assert [(b.id, q) for b, q in result.selected] == [(1, 5), (2, 2)]
    assert result.is_complete
    assert result.primary_batch.id == 1
    assert result.total_cost == pytest.approx(5 * 10.0 + 2 * 12.0)


def test_allocation_is_deterministic():
    batches = [_batch(3, 9, 4), _batch(1, 2, 3), _batch(2, 2, 6)]

    first = allocate(batches, 8)
    second = allocate(list(batches), 8)

    assert first.selected == second.selected
    # same purchase date keeps input order
    assert [b.id for b, _ in first.selected] == [1, 2]


def test_skips_archived_and_empty_batches():
    batches = [
        _batch(1, 1, 5, status=BatchStatus.ARCHIVED),
        _batch(2, 2, 0, status=BatchStatus.DEPLETED),
        _batch(3, 3, 4),
    ]

    assert [b.id for b in available_batches(batches)] == [3]
    assert available_quantity(batches) == 4
    assert [b.id for b, _ in allocate(batches, 2).selected] == [3]


def test_shortfall_is_reported_not_raised():
    result = allocate([_batch(1, 1, 3), _batch(2, 2, 2)], 9)

    assert result.allocated == 5
    assert result.shortfall == 4
    assert not result.is_complete


def test_allocation_does_not_mutate_batches():
    b = _batch(1, 1, 5)
    allocate([b], 3)
    assert b.current_quantity == 5


def test_no_batches_gives_empty_allocation():
    result = allocate([], 1)
    assert result.lines == ()
    assert result.primary_batch is None
    assert result.shortfall == 1


@pytest.mark.parametrize("bad", [0, -3, 1.5, "two", None])
def test_rejects_bad_quantity(bad):
    with pytest.raises(ValidationError):
        allocate([_batch(1, 1, 5)], bad)
