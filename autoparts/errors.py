"""
Typed errors for the inventory engine.

Every error carries a machine-readable ``code`` next to its message so pages
and callers can branch on the type instead of parsing text:

    InventoryError
    +-- ValidationError          bad or missing input (also a ValueError)
    +-- NotFoundError            unknown product / batch / category / sale
    +-- ConflictError            duplicates and blocked deletes
    |   +-- HasAssociatedSalesError
    |   +-- ReportFinalizedError
    +-- InsufficientStockError   sale exceeds active batch stock
    +-- PersistenceError         storage failure; the unit of work was rolled back
"""
from __future__ import annotations


class InventoryError(Exception):
    """Base class for all inventory engine errors."""

    code: str = "INVENTORY_ERROR"


class ValidationError(InventoryError, ValueError):
    code: str = "VALIDATION_ERROR"


class NotFoundError(InventoryError):
    code: str = "NOT_FOUND"

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found: {ident}")


class ConflictError(InventoryError):
    code: str = "CONFLICT"


class HasAssociatedSalesError(ConflictError):
    """Batch cannot be deleted because sales reference it."""

    code: str = "HAS_ASSOCIATED_SALES"

    def __init__(self, batch_id: int, sale_count: int):
        self.batch_id = batch_id
        self.sale_count = sale_count
        super().__init__(
            f"Cannot delete batch {batch_id}: it has {sale_count} associated sale(s)."
        )


class ReportFinalizedError(ConflictError):
    code: str = "REPORT_FINALIZED"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(
            f"Report for {month + 1:02d}/{year} is already finalized and cannot change."
        )


class InsufficientStockError(InventoryError):
    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Not enough stock for product {product_id}: requested {requested}, "
            f"available {available} (short {self.shortfall})."
        )


class PersistenceError(InventoryError):
    code: str = "PERSISTENCE_ERROR"
