from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from autoparts.db import q, transaction, x, x_count
from autoparts.errors import ConflictError, NotFoundError, ValidationError
from autoparts.models import Category, Product
from autoparts.utils import clean_text, iso_now, money, whole_number

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_COLOR = "#CBD5E1"

_PRODUCT_SELECT = """
    SELECT p.*, c.name AS category_name
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
"""


# -------------------------
# Categories
# -------------------------

def list_categories(conn: sqlite3.Connection) -> list[Category]:
    rows = q(conn, "SELECT * FROM categories ORDER BY name COLLATE NOCASE")
    return [Category.from_row(r) for r in rows]


def get_category(conn: sqlite3.Connection, category_id: int) -> Category:
    rows = q(conn, "SELECT * FROM categories WHERE id=?", (int(category_id),))
    if not rows:
        raise NotFoundError("Category", category_id)
    return Category.from_row(rows[0])


def _category_name_taken(conn, name: str, exclude_id: Optional[int] = None) -> bool:
    rows = q(
        conn,
        "SELECT id FROM categories WHERE name = ? COLLATE NOCASE AND id <> ?",
        (name, int(exclude_id) if exclude_id is not None else -1),
    )
    return bool(rows)


def create_category(
    conn: sqlite3.Connection,
    *,
    name: str,
    description: Optional[str] = None,
    color: Optional[str] = None,
) -> Category:
    name = clean_text(name)
    if not name:
        raise ValidationError("Category name is required.")

    with transaction(conn):
        if _category_name_taken(conn, name):
            raise ConflictError(f"A category named '{name}' already exists.")
        category_id = x(
            conn,
            "INSERT INTO categories (name, description, color, created_at) VALUES (?, ?, ?, ?)",
            (name, clean_text(description), clean_text(color) or DEFAULT_CATEGORY_COLOR, iso_now()),
        )

    logger.info("Category created: %s (%s)", name, category_id)
    return get_category(conn, category_id)


def update_category(
    conn: sqlite3.Connection,
    category_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    color: Optional[str] = None,
) -> Category:
    current = get_category(conn, category_id)

    new_name = current.name
    if name is not None:
        new_name = clean_text(name)
        if not new_name:
            raise ValidationError("Category name cannot be empty.")

    with transaction(conn):
        if new_name.lower() != current.name.lower() and _category_name_taken(conn, new_name, current.id):
            raise ConflictError(f"A category named '{new_name}' already exists.")
        x(
            conn,
            "UPDATE categories SET name=?, description=?, color=? WHERE id=?",
            (
                new_name,
                clean_text(description) if description is not None else current.description,
                clean_text(color) or current.color,
                current.id,
            ),
        )

    return get_category(conn, current.id)


def delete_category(conn: sqlite3.Connection, category_id: int) -> Category:
    with transaction(conn):
        category = get_category(conn, category_id)
        n = int(q(conn, "SELECT COUNT(1) AS n FROM products WHERE category_id=?", (category.id,))[0]["n"])
        if n:
            raise ConflictError(f"Cannot delete category '{category.name}': {n} product(s) use it.")
        x(conn, "DELETE FROM categories WHERE id=?", (category.id,))

    logger.info("Category deleted: %s (%s)", category.name, category.id)
    return category


# -------------------------
# Products
# -------------------------

def list_products(conn: sqlite3.Connection, *, category_id: Optional[int] = None) -> list[Product]:
    if category_id is None:
        rows = q(conn, _PRODUCT_SELECT + " ORDER BY p.name COLLATE NOCASE, p.id")
    else:
        rows = q(
            conn,
            _PRODUCT_SELECT + " WHERE p.category_id=? ORDER BY p.name COLLATE NOCASE, p.id",
            (int(category_id),),
        )
    return [Product.from_row(r) for r in rows]


def get_product(conn: sqlite3.Connection, product_id: int) -> Product:
    rows = q(conn, _PRODUCT_SELECT + " WHERE p.id=?", (int(product_id),))
    if not rows:
        raise NotFoundError("Product", product_id)
    return Product.from_row(rows[0])


def get_product_by_sku(conn: sqlite3.Connection, sku: str) -> Product:
    rows = q(conn, _PRODUCT_SELECT + " WHERE p.sku = ? COLLATE NOCASE", (str(sku).strip(),))
    if not rows:
        raise NotFoundError("Product", sku)
    return Product.from_row(rows[0])


def _sku_taken(conn, sku: str, exclude_id: Optional[int] = None) -> bool:
    rows = q(
        conn,
        "SELECT id FROM products WHERE sku = ? COLLATE NOCASE AND id <> ?",
        (sku, int(exclude_id) if exclude_id is not None else -1),
    )
    return bool(rows)


def create_product(
    conn: sqlite3.Connection,
    *,
    sku: str,
    name: str,
    category_id: int,
    selling_price: float,
    min_stock_level: int = 0,
    description: Optional[str] = None,
    location: Optional[str] = None,
) -> Product:
    """New products start with zero stock; stock only arrives through batches."""
    sku = clean_text(sku)
    name = clean_text(name)
    if not sku or not name:
        raise ValidationError("SKU and name are required.")
    if category_id is None:
        raise ValidationError("Category is required.")
    selling_price = money(selling_price, "Selling price")
    min_stock_level = whole_number(min_stock_level, "Minimum stock level", minimum=0)

    with transaction(conn):
        get_category(conn, category_id)
        if _sku_taken(conn, sku):
            raise ConflictError(f"A product with SKU '{sku}' already exists.")
        product_id = x(
            conn,
            """
            INSERT INTO products (
                sku, name, category_id, description, selling_price,
                total_stock, min_stock_level, location, created_at
            ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
            """,
            (
                sku,
                name,
                int(category_id),
                clean_text(description),
                selling_price,
                min_stock_level,
                clean_text(location),
                iso_now(),
            ),
        )

    logger.info("Product created: %s (%s), SKU %s", name, product_id, sku)
    return get_product(conn, product_id)


def update_product(
    conn: sqlite3.Connection,
    product_id: int,
    *,
    sku: Optional[str] = None,
    name: Optional[str] = None,
    category_id: Optional[int] = None,
    selling_price: Optional[float] = None,
    min_stock_level: Optional[int] = None,
    description: Optional[str] = None,
    location: Optional[str] = None,
) -> Product:
    """
    Edit catalog fields. total_stock is not editable here: it follows the
    batch ledger (see batches.update_batch for quantity corrections).
    """
    current = get_product(conn, product_id)

    updates: dict = {}
    if sku is not None:
        new_sku = clean_text(sku)
        if not new_sku:
            raise ValidationError("SKU cannot be empty.")
        updates["sku"] = new_sku
    if name is not None:
        new_name = clean_text(name)
        if not new_name:
            raise ValidationError("Name cannot be empty.")
        updates["name"] = new_name
    if selling_price is not None:
        updates["selling_price"] = money(selling_price, "Selling price")
    if min_stock_level is not None:
        updates["min_stock_level"] = whole_number(min_stock_level, "Minimum stock level", minimum=0)
    if description is not None:
        updates["description"] = clean_text(description)
    if location is not None:
        updates["location"] = clean_text(location)
    if category_id is not None:
        updates["category_id"] = int(category_id)

    if not updates:
        return current

    with transaction(conn):
        if "category_id" in updates:
            get_category(conn, updates["category_id"])
        if "sku" in updates and _sku_taken(conn, updates["sku"], current.id):
            raise ConflictError(f"A product with SKU '{updates['sku']}' already exists.")
        assignments = ", ".join(f"{col}=?" for col in updates)
        x(conn, f"UPDATE products SET {assignments} WHERE id=?", (*updates.values(), current.id))

    return get_product(conn, current.id)


def delete_product(conn: sqlite3.Connection, product_id: int) -> Product:
    with transaction(conn):
        product = get_product(conn, product_id)
        counts = q(
            conn,
            """
            SELECT
              (SELECT COUNT(1) FROM batches WHERE product_id=?) AS batches,
              (SELECT COUNT(1) FROM sales WHERE product_id=?) AS sales
            """,
            (product.id, product.id),
        )[0]
        if int(counts["batches"]) or int(counts["sales"]):
            raise ConflictError(
                f"Cannot delete product '{product.name}': it has "
                f"{int(counts['batches'])} batch(es) and {int(counts['sales'])} sale(s)."
            )
        x_count(conn, "DELETE FROM products WHERE id=?", (product.id,))

    logger.info("Product deleted: %s (%s)", product.name, product.id)
    return product
