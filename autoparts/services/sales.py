from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

from autoparts.db import q, transaction, x, x_count
from autoparts.errors import InsufficientStockError, NotFoundError, PersistenceError
from autoparts.models import BatchStatus, Sale, SaleLine
from autoparts.services.batches import list_product_batches
from autoparts.services.catalog import get_product
from autoparts.services.fifo import Allocation, allocate, available_quantity
from autoparts.utils import DateLike, clean_text, iso_now, margin_pct, money, to_iso, whole_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleTotals:
    quantity: int
    unit_price: float
    total_revenue: float
    total_cost: float
    total_profit: float
    profit_margin: float


@dataclass(frozen=True)
class SalePreview:
    """Dry run of a sale: what FIFO would draw, and the money it would make."""

    product_id: int
    allocation: Allocation
    totals: SaleTotals

    @property
    def can_fulfil(self) -> bool:
        return self.allocation.is_complete


def compute_sale_totals(allocation: Allocation, unit_price: float) -> SaleTotals:
    """
    Aggregate profit over every batch line of an allocation.

    Margin is profit over cost (x100), and 0 when the goods cost nothing.
    """
    total_cost = allocation.total_cost
    total_revenue = float(unit_price) * allocation.allocated
    total_profit = total_revenue - total_cost
    return SaleTotals(
        quantity=allocation.allocated,
        unit_price=float(unit_price),
        total_revenue=total_revenue,
        total_cost=total_cost,
        total_profit=total_profit,
        profit_margin=margin_pct(total_profit, total_cost),
    )


def preview_sale(conn: sqlite3.Connection, *, product_id: int, quantity: int, unit_price: float) -> SalePreview:
    quantity = whole_number(quantity, "Quantity")
    unit_price = money(unit_price, "Sale price")
    product = get_product(conn, product_id)
    allocation = allocate(list_product_batches(conn, product.id), quantity)
    return SalePreview(
        product_id=product.id,
        allocation=allocation,
        totals=compute_sale_totals(allocation, unit_price),
    )


def record_sale(
    conn: sqlite3.Connection,
    *,
    product_id: int,
    quantity: int,
    unit_price: float,
    sale_date: Optional[DateLike] = None,
    customer_ref: Optional[str] = None,
    invoice_number: Optional[str] = None,
) -> Sale:
    """
    Sell `quantity` units of a product, drawing stock FIFO across its batches.

    Allocation and every write happen inside one transaction that holds the
    database write lock: batch decrements, the product stock decrement, the
    sale header (linked to the oldest batch drawn from) and one sale line per
    batch consumed. Either all of it commits or none of it does.

    Raises InsufficientStockError, without touching anything, when active
    batches cannot cover the quantity.
    """
    quantity = whole_number(quantity, "Quantity")
    unit_price = money(unit_price, "Sale price")
    sale_date_iso = to_iso(sale_date) if sale_date is not None else iso_now()

    with transaction(conn):
        product = get_product(conn, product_id)
        batches = list_product_batches(conn, product.id)

        allocation = allocate(batches, quantity)
        if allocation.shortfall > 0:
            logger.warning(
                "Sale rejected for product %s: requested %s, available %s",
                product.id, quantity, allocation.allocated,
            )
            raise InsufficientStockError(product.id, quantity, available_quantity(batches))

        totals = compute_sale_totals(allocation, unit_price)
        primary = allocation.primary_batch

        sale_id = x(
            conn,
            """
            INSERT INTO sales (
                product_id, batch_id, quantity, sale_price, purchase_price,
                profit, profit_margin, sale_date, customer_ref, invoice_number, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                product.id,
                primary.id,
                quantity,
                unit_price,
                primary.purchase_price,
                totals.total_profit,
                totals.profit_margin,
                sale_date_iso,
                clean_text(customer_ref),
                clean_text(invoice_number),
                iso_now(),
            ),
        )

        for line in allocation.lines:
            x(
                conn,
                "INSERT INTO sale_lines (sale_id, batch_id, quantity, unit_cost) VALUES (?, ?, ?, ?)",
                (sale_id, line.batch.id, line.quantity, line.batch.purchase_price),
            )
            # Guarded decrement: the row must still hold what we allocated.
            n = x_count(
                conn,
                """
                UPDATE batches
                SET current_quantity = current_quantity - ?,
                    status = CASE WHEN current_quantity - ? = 0 THEN ? ELSE status END
                WHERE id = ? AND status = ? AND current_quantity >= ?
                """,
                (
                    line.quantity,
                    line.quantity,
                    BatchStatus.DEPLETED,
                    line.batch.id,
                    BatchStatus.ACTIVE,
                    line.quantity,
                ),
            )
            if n != 1:
                raise PersistenceError(f"Batch {line.batch.id} changed while the sale was being recorded.")

        n = x_count(
            conn,
            "UPDATE products SET total_stock = total_stock - ? WHERE id = ? AND total_stock >= ?",
            (quantity, product.id, quantity),
        )
        if n != 1:
            raise PersistenceError(f"Stock counter for product {product.id} is out of sync with its batches.")

    logger.info(
        "Sale %s recorded: product %s, %s unit(s) across %s batch(es), profit %.2f",
        sale_id, product.id, quantity, len(allocation.lines), totals.total_profit,
    )
    return get_sale(conn, sale_id)


def sell(
    conn: sqlite3.Connection,
    product_id: int,
    quantity: int,
    unit_price: float,
    sale_date: Optional[DateLike] = None,
    customer_ref: Optional[str] = None,
) -> Sale:
    return record_sale(
        conn,
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        sale_date=sale_date,
        customer_ref=customer_ref,
    )


def _lines_by_sale(conn: sqlite3.Connection, sale_ids: list[int]) -> dict[int, list[SaleLine]]:
    if not sale_ids:
        return {}
    out: dict[int, list[SaleLine]] = {sid: [] for sid in sale_ids}
    # chunk to stay under SQLite's bound-parameter limit
    for i in range(0, len(sale_ids), 500):
        chunk = sale_ids[i:i + 500]
        marks = ",".join("?" for _ in chunk)
        rows = q(
            conn,
            f"SELECT * FROM sale_lines WHERE sale_id IN ({marks}) ORDER BY sale_id, id",
            chunk,
        )
        for r in rows:
            out[int(r["sale_id"])].append(SaleLine.from_row(r))
    return out


def get_sale(conn: sqlite3.Connection, sale_id: int) -> Sale:
    rows = q(conn, "SELECT * FROM sales WHERE id=?", (int(sale_id),))
    if not rows:
        raise NotFoundError("Sale", sale_id)
    lines = _lines_by_sale(conn, [int(sale_id)])[int(sale_id)]
    return Sale.from_row(rows[0], lines)


def list_sales(
    conn: sqlite3.Connection,
    *,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    batch_id: Optional[int] = None,
    product_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[Sale]:
    """Newest first. `batch_id` matches the primary batch or any sale line."""
    where = ["1=1"]
    params: list = []
    if start is not None:
        where.append("s.sale_date >= ?")
        params.append(to_iso(start))
    if end is not None:
        where.append("s.sale_date <= ?")
        params.append(to_iso(end))
    if product_id is not None:
        where.append("s.product_id = ?")
        params.append(int(product_id))
    if batch_id is not None:
        where.append("(s.batch_id = ? OR s.id IN (SELECT sale_id FROM sale_lines WHERE batch_id = ?))")
        params.extend([int(batch_id), int(batch_id)])

    sql = f"SELECT s.* FROM sales s WHERE {' AND '.join(where)} ORDER BY s.sale_date DESC, s.id DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(whole_number(limit, "Limit"))

    rows = q(conn, sql, params)
    lines = _lines_by_sale(conn, [int(r["id"]) for r in rows])
    return [Sale.from_row(r, lines[int(r["id"])]) for r in rows]
