from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from autoparts.db import q, transaction, x_count
from autoparts.models import BatchStatus, Product
from autoparts.services.catalog import list_products

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockDiscrepancy:
    product_id: int
    sku: str
    recorded_stock: int
    batch_stock: int

    @property
    def difference(self) -> int:
        return self.recorded_stock - self.batch_stock


def inventory_summary(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    """Per-product stock, value at batch cost, and the low-stock flag."""
    return q(
        conn,
        """
        WITH stock AS (
          SELECT product_id,
                 COUNT(CASE WHEN status = ? AND current_quantity > 0 THEN 1 END) AS active_batches,
                 COALESCE(SUM(current_quantity),0) AS batch_stock,
                 COALESCE(SUM(current_quantity * purchase_price),0) AS stock_value,
                 MIN(CASE WHEN status = ? AND current_quantity > 0 THEN purchase_date END) AS oldest_active
          FROM batches
          GROUP BY product_id
        )
        SELECT
          p.id AS product_id,
          p.sku,
          p.name,
          COALESCE(c.name, 'Uncategorized') AS category,
          ROUND(p.selling_price, 2) AS selling_price,
          p.total_stock,
          p.min_stock_level,
          COALESCE(s.active_batches, 0) AS active_batches,
          ROUND(COALESCE(s.stock_value, 0), 2) AS stock_value,
          s.oldest_active,
          CASE WHEN p.total_stock <= p.min_stock_level THEN 1 ELSE 0 END AS low_stock
        FROM products p
        LEFT JOIN categories c ON c.id = p.category_id
        LEFT JOIN stock s ON s.product_id = p.id
        ORDER BY p.name COLLATE NOCASE, p.id
        """,
        (BatchStatus.ACTIVE, BatchStatus.ACTIVE),
    )


def low_stock_products(conn: sqlite3.Connection) -> list[Product]:
    return [p for p in list_products(conn) if p.is_low_stock]


def stock_discrepancies(conn: sqlite3.Connection) -> list[StockDiscrepancy]:
    """Products whose total_stock no longer equals the sum of their batches."""
    rows = q(
        conn,
        """
        SELECT p.id, p.sku, p.total_stock,
               COALESCE((SELECT SUM(b.current_quantity) FROM batches b WHERE b.product_id = p.id), 0) AS batch_stock
        FROM products p
        ORDER BY p.id
        """,
    )
    out = [
        StockDiscrepancy(
            product_id=int(r["id"]),
            sku=str(r["sku"]),
            recorded_stock=int(r["total_stock"]),
            batch_stock=int(r["batch_stock"]),
        )
        for r in rows
        if int(r["total_stock"]) != int(r["batch_stock"])
    ]
    for d in out:
        logger.warning(
            "Stock counter drift on %s: recorded %s, batches hold %s", d.sku, d.recorded_stock, d.batch_stock
        )
    return out


def rebuild_total_stock(conn: sqlite3.Connection) -> int:
    """Recompute every product's total_stock from its batches. Returns rows changed."""
    with transaction(conn):
        n = x_count(
            conn,
            """
            UPDATE products
            SET total_stock = COALESCE(
                (SELECT SUM(b.current_quantity) FROM batches b WHERE b.product_id = products.id), 0)
            WHERE total_stock <> COALESCE(
                (SELECT SUM(b.current_quantity) FROM batches b WHERE b.product_id = products.id), 0)
            """,
        )
    if n:
        logger.info("Rebuilt stock counters for %s product(s)", n)
    return n
