from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from autoparts.utils import clean_text, to_datetime


class BatchStatus:
    ACTIVE = "active"
    DEPLETED = "depleted"
    ARCHIVED = "archived"

    ALL = (ACTIVE, DEPLETED, ARCHIVED)


def status_for_quantity(current_quantity: int, status: Optional[str] = None) -> str:
    """Depleted iff nothing is left; archived is sticky."""
    if status == BatchStatus.ARCHIVED:
        return BatchStatus.ARCHIVED
    return BatchStatus.DEPLETED if int(current_quantity) == 0 else BatchStatus.ACTIVE


@dataclass
class Category:
    id: int
    name: str
    description: Optional[str] = None
    color: str = "#CBD5E1"

    @classmethod
    def from_row(cls, r) -> "Category":
        return cls(
            id=int(r["id"]),
            name=str(r["name"]),
            description=r["description"],
            color=str(r["color"]),
        )


@dataclass
class Product:
    id: int
    sku: str
    name: str
    category_id: Optional[int]
    selling_price: float
    total_stock: int = 0
    min_stock_level: int = 0
    category: str = "Uncategorized"
    description: Optional[str] = None
    location: Optional[str] = None

    @property
    def is_low_stock(self) -> bool:
        return self.total_stock <= self.min_stock_level

    @classmethod
    def from_row(cls, r) -> "Product":
        keys = r.keys()
        category = r["category_name"] if "category_name" in keys else None
        return cls(
            id=int(r["id"]),
            sku=str(r["sku"]),
            name=str(r["name"]),
            category_id=int(r["category_id"]) if r["category_id"] is not None else None,
            selling_price=float(r["selling_price"]),
            total_stock=int(r["total_stock"]),
            min_stock_level=int(r["min_stock_level"]),
            category=str(category) if category else "Uncategorized",
            description=r["description"],
            location=r["location"],
        )


@dataclass
class Batch:
    id: Optional[int]
    product_id: int
    purchase_date: datetime
    purchase_price: float
    initial_quantity: int
    current_quantity: int
    status: str = BatchStatus.ACTIVE
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status == BatchStatus.ACTIVE and self.current_quantity > 0

    @property
    def stock_value(self) -> float:
        return self.current_quantity * self.purchase_price

    @classmethod
    def from_row(cls, r) -> "Batch":
        return cls(
            id=int(r["id"]),
            product_id=int(r["product_id"]),
            purchase_date=to_datetime(r["purchase_date"]),
            purchase_price=float(r["purchase_price"]),
            initial_quantity=int(r["initial_quantity"]),
            current_quantity=int(r["current_quantity"]),
            status=str(r["status"]),
            supplier=clean_text(r["supplier"]),
            invoice_number=clean_text(r["invoice_number"]),
            notes=clean_text(r["notes"]),
        )


@dataclass
class SaleLine:
    batch_id: int
    quantity: int
    unit_cost: float

    @property
    def cost(self) -> float:
        return self.quantity * self.unit_cost

    @classmethod
    def from_row(cls, r) -> "SaleLine":
        return cls(
            batch_id=int(r["batch_id"]),
            quantity=int(r["quantity"]),
            unit_cost=float(r["unit_cost"]),
        )


@dataclass
class Sale:
    id: Optional[int]
    product_id: int
    batch_id: int
    quantity: int
    sale_price: float
    purchase_price: float
    profit: float
    profit_margin: float
    sale_date: datetime
    customer_ref: Optional[str] = None
    invoice_number: Optional[str] = None
    lines: list[SaleLine] = field(default_factory=list)

    @property
    def revenue(self) -> float:
        return self.sale_price * self.quantity

    @property
    def cost(self) -> float:
        # Full FIFO cost when the per-batch lines are known.
        if self.lines:
            return sum(line.cost for line in self.lines)
        return self.purchase_price * self.quantity

    @property
    def batch_ids(self) -> list[int]:
        if self.lines:
            return [line.batch_id for line in self.lines]
        return [self.batch_id]

    @classmethod
    def from_row(cls, r, lines: Optional[list[SaleLine]] = None) -> "Sale":
        return cls(
            id=int(r["id"]),
            product_id=int(r["product_id"]),
            batch_id=int(r["batch_id"]),
            quantity=int(r["quantity"]),
            sale_price=float(r["sale_price"]),
            purchase_price=float(r["purchase_price"]),
            profit=float(r["profit"]),
            profit_margin=float(r["profit_margin"]),
            sale_date=to_datetime(r["sale_date"]),
            customer_ref=clean_text(r["customer_ref"]),
            invoice_number=clean_text(r["invoice_number"]),
            lines=list(lines or []),
        )
