from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from autoparts.models import Batch
from autoparts.utils import whole_number


@dataclass(frozen=True)
class AllocationLine:
    batch: Batch
    quantity: int

    @property
    def cost(self) -> float:
        return self.batch.purchase_price * self.quantity


@dataclass(frozen=True)
class Allocation:
    requested: int
    lines: tuple[AllocationLine, ...]

    @property
    def allocated(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def shortfall(self) -> int:
        return self.requested - self.allocated

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0

    @property
    def selected(self) -> list[tuple[Batch, int]]:
        return [(line.batch, line.quantity) for line in self.lines]

    @property
    def primary_batch(self) -> Optional[Batch]:
        return self.lines[0].batch if self.lines else None

    @property
    def total_cost(self) -> float:
        return sum(line.cost for line in self.lines)


def available_batches(batches: Iterable[Batch]) -> list[Batch]:
    """
    Active batches with stock left, oldest purchase first.

    sorted() is stable, so batches sharing a purchase date keep the order they
    were passed in (loaders pass them in id order, i.e. insertion order).
    """
    usable = [b for b in batches if b.is_available]
    return sorted(usable, key=lambda b: b.purchase_date)


def available_quantity(batches: Iterable[Batch]) -> int:
    return sum(b.current_quantity for b in available_batches(batches))


def allocate(batches: Iterable[Batch], quantity: int) -> Allocation:
    """
    Draw `quantity` units from the oldest active batches first.

    Never mutates the batches. When stock runs out the allocation is returned
    with a positive shortfall; callers must reject the sale in that case.
    """
    quantity = whole_number(quantity, "Quantity")
    remaining = quantity
    lines: list[AllocationLine] = []

    for b in available_batches(batches):
        if remaining <= 0:
            break
        take = min(int(b.current_quantity), remaining)
        lines.append(AllocationLine(batch=b, quantity=take))
        remaining -= take

    return Allocation(requested=quantity, lines=tuple(lines))
