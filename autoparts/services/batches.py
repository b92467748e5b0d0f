from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from autoparts.db import q, transaction, x, x_count
from autoparts.errors import HasAssociatedSalesError, NotFoundError, PersistenceError, ValidationError
from autoparts.models import Batch, BatchStatus, status_for_quantity
from autoparts.services.catalog import get_product
from autoparts.utils import DateLike, clean_text, iso_now, money, to_iso, whole_number

logger = logging.getLogger(__name__)


def get_batch(conn: sqlite3.Connection, batch_id: int) -> Batch:
    rows = q(conn, "SELECT * FROM batches WHERE id=?", (int(batch_id),))
    if not rows:
        raise NotFoundError("Batch", batch_id)
    return Batch.from_row(rows[0])


def list_product_batches(conn: sqlite3.Connection, product_id: int) -> list[Batch]:
    rows = q(
        conn,
        "SELECT * FROM batches WHERE product_id=? ORDER BY purchase_date ASC, id ASC",
        (int(product_id),),
    )
    return [Batch.from_row(r) for r in rows]


def list_batches(
    conn: sqlite3.Connection,
    *,
    status: Optional[str] = None,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    product_id: Optional[int] = None,
) -> list[Batch]:
    """Newest purchases first. `status='all'` or None means no status filter."""
    where = ["1=1"]
    params: list = []
    if status and status != "all":
        if status not in BatchStatus.ALL:
            raise ValidationError(f"Unknown batch status: {status}")
        where.append("status = ?")
        params.append(status)
    if start is not None:
        where.append("purchase_date >= ?")
        params.append(to_iso(start))
    if end is not None:
        where.append("purchase_date <= ?")
        params.append(to_iso(end))
    if product_id is not None:
        where.append("product_id = ?")
        params.append(int(product_id))

    rows = q(
        conn,
        f"SELECT * FROM batches WHERE {' AND '.join(where)} ORDER BY purchase_date DESC, id DESC",
        params,
    )
    return [Batch.from_row(r) for r in rows]


def batch_quantities(conn: sqlite3.Connection, product_id: Optional[int] = None) -> list[dict]:
    """Lightweight stock figures, per batch for one product or per product overall."""
    if product_id is not None:
        rows = q(
            conn,
            """
            SELECT id, product_id, current_quantity, initial_quantity,
                   purchase_price, purchase_date, status
            FROM batches
            WHERE product_id=?
            ORDER BY purchase_date ASC, id ASC
            """,
            (int(product_id),),
        )
        return [dict(r) for r in rows]

    rows = q(
        conn,
        """
        SELECT product_id,
               COUNT(id) AS batch_count,
               COALESCE(SUM(current_quantity),0) AS total_quantity,
               COALESCE(SUM(initial_quantity),0) AS total_initial_quantity
        FROM batches
        GROUP BY product_id
        ORDER BY product_id
        """,
    )
    return [dict(r) for r in rows]


def add_batch(
    conn: sqlite3.Connection,
    *,
    product_id: int,
    purchase_date: DateLike,
    purchase_price: float,
    quantity: int,
    supplier: Optional[str] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> Batch:
    """
    Receive stock: one new active batch, and the product's total_stock grows
    by the same amount in the same transaction.
    """
    purchase_date_iso = to_iso(purchase_date)
    purchase_price = money(purchase_price, "Purchase price", allow_zero=True)
    quantity = whole_number(quantity, "Quantity")

    with transaction(conn):
        product = get_product(conn, product_id)
        batch_id = x(
            conn,
            """
            INSERT INTO batches (
                product_id, purchase_date, purchase_price,
                initial_quantity, current_quantity, status,
                supplier, invoice_number, notes, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                product.id,
                purchase_date_iso,
                purchase_price,
                quantity,
                quantity,
                BatchStatus.ACTIVE,
                clean_text(supplier),
                clean_text(invoice_number),
                clean_text(notes),
                iso_now(),
            ),
        )
        x(conn, "UPDATE products SET total_stock = total_stock + ? WHERE id=?", (quantity, product.id))

    logger.info("Batch %s added for product %s: %s @ %.2f", batch_id, product.id, quantity, purchase_price)
    return get_batch(conn, batch_id)


def count_batch_sales(conn: sqlite3.Connection, batch_id: int) -> int:
    """Sales touching a batch, either as primary batch or through a sale line."""
    r = q(
        conn,
        """
        SELECT COUNT(DISTINCT s.id) AS n
        FROM sales s
        LEFT JOIN sale_lines sl ON sl.sale_id = s.id
        WHERE s.batch_id = ? OR sl.batch_id = ?
        """,
        (int(batch_id), int(batch_id)),
    )
    return int(r[0]["n"]) if r else 0


def delete_batch(conn: sqlite3.Connection, batch_id: int) -> Batch:
    """
    Remove a batch that no sale references. The product loses the batch's
    remaining units from total_stock in the same transaction.
    """
    with transaction(conn):
        batch = get_batch(conn, batch_id)
        n_sales = count_batch_sales(conn, batch.id)
        if n_sales:
            raise HasAssociatedSalesError(batch.id, n_sales)

        x(conn, "DELETE FROM batches WHERE id=?", (batch.id,))
        x(
            conn,
            "UPDATE products SET total_stock = total_stock - ? WHERE id=?",
            (batch.current_quantity, batch.product_id),
        )

    logger.info("Batch %s deleted (product %s, %s units removed)", batch.id, batch.product_id, batch.current_quantity)
    return batch


def update_batch(
    conn: sqlite3.Connection,
    batch_id: int,
    *,
    purchase_date: Optional[DateLike] = None,
    purchase_price: Optional[float] = None,
    initial_quantity: Optional[int] = None,
    current_quantity: Optional[int] = None,
    status: Optional[str] = None,
    supplier: Optional[str] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> Batch:
    """
    Administrative correction of a batch.

    A change of current_quantity moves the product's total_stock by the same
    delta in the same transaction, and status follows the quantity
    (depleted at zero, active otherwise) unless the batch is archived.
    """
    updates: dict = {}
    if purchase_date is not None:
        updates["purchase_date"] = to_iso(purchase_date)
    if purchase_price is not None:
        updates["purchase_price"] = money(purchase_price, "Purchase price", allow_zero=True)
    if initial_quantity is not None:
        updates["initial_quantity"] = whole_number(initial_quantity, "Initial quantity")
    if current_quantity is not None:
        updates["current_quantity"] = whole_number(current_quantity, "Current quantity", minimum=0)
    if status is not None and status not in BatchStatus.ALL:
        raise ValidationError(f"Unknown batch status: {status}")
    if supplier is not None:
        updates["supplier"] = clean_text(supplier)
    if invoice_number is not None:
        updates["invoice_number"] = clean_text(invoice_number)
    if notes is not None:
        updates["notes"] = clean_text(notes)

    with transaction(conn):
        batch = get_batch(conn, batch_id)

        new_initial = updates.get("initial_quantity", batch.initial_quantity)
        new_current = updates.get("current_quantity", batch.current_quantity)
        if new_current > new_initial:
            raise ValidationError(
                f"Current quantity ({new_current}) cannot exceed initial quantity ({new_initial})."
            )

        if status is not None or "current_quantity" in updates:
            updates["status"] = status_for_quantity(new_current, status or batch.status)

        if not updates:
            return batch

        assignments = ", ".join(f"{col}=?" for col in updates)
        x(conn, f"UPDATE batches SET {assignments} WHERE id=?", (*updates.values(), batch.id))

        stock_change = new_current - batch.current_quantity
        if stock_change:
            n = x_count(
                conn,
                "UPDATE products SET total_stock = total_stock + ? WHERE id=?",
                (stock_change, batch.product_id),
            )
            if n != 1:
                raise PersistenceError(f"Product {batch.product_id} vanished while correcting batch {batch.id}.")

    if stock_change:
        logger.info("Batch %s corrected: current quantity %+d", batch.id, stock_change)
    return get_batch(conn, batch.id)
