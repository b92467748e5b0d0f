from __future__ import annotations

import random
from datetime import date, datetime, timedelta

from autoparts.db import ensure_schema, q, transaction, x
from autoparts.services.batches import add_batch
from autoparts.services.catalog import create_product, get_product_by_sku
from autoparts.services.sales import record_sale
from autoparts.utils import iso_now

DEFAULT_CATEGORIES = [
    ("Brakes", "Brake components and accessories", "#EF4444"),
    ("Engine", "Engine parts and components", "#3B82F6"),
    ("Filters", "Oil, air, and cabin filters", "#10B981"),
    ("Electrical", "Electrical components and wiring", "#F59E0B"),
    ("Suspension", "Suspension and steering parts", "#8B5CF6"),
]

# sku, name, category, selling price, min stock level, base unit cost
DEMO_PRODUCTS = [
    ("BP-2023-001", "Performance Brake Pads", "Brakes", 79.99, 10, 42.0),
    ("OIL-2023-001", "Synthetic Oil Filter", "Filters", 12.99, 25, 5.5),
    ("AF-2023-002", "Engine Air Filter", "Filters", 24.99, 15, 11.0),
    ("SP-2023-004", "Iridium Spark Plug", "Engine", 14.49, 40, 6.25),
    ("ALT-2023-001", "Alternator 120A", "Electrical", 189.0, 3, 118.0),
    ("SH-2023-003", "Front Shock Absorber", "Suspension", 96.5, 6, 58.0),
]

SUPPLIERS = ["BrakeTech Inc.", "FilterPro", "AutoParts Wholesale", "Volt Supply Co."]


def upsert_reference_data(conn) -> None:
    ensure_schema(conn)
    with transaction(conn):
        for name, desc, color in DEFAULT_CATEGORIES:
            x(
                conn,
                "INSERT OR IGNORE INTO categories(name, description, color, created_at) VALUES (?, ?, ?, ?)",
                (name, desc, color, iso_now()),
            )


def wipe_all(conn) -> None:
    # Keep schema, delete data (order matters for FKs).
    with transaction(conn):
        for t in ["monthly_reports", "sale_lines", "sales", "batches", "products", "categories"]:
            conn.execute(f"DELETE FROM {t};")


def load_demo_data(conn, *, seed: int = 7, today: date | None = None) -> None:
    """
    Three months of purchases with FIFO sales on top, so that reports and
    rollover have something to show.
    """
    random.seed(seed)
    upsert_reference_data(conn)
    today = today or date.today()

    cat_ids = {str(r["name"]): int(r["id"]) for r in q(conn, "SELECT id, name FROM categories")}
    existing = {str(r["sku"]).upper() for r in q(conn, "SELECT sku FROM products")}

    for sku, name, cat, price, min_level, unit_cost in DEMO_PRODUCTS:
        if sku.upper() not in existing:
            create_product(
                conn,
                sku=sku,
                name=name,
                category_id=cat_ids[cat],
                selling_price=price,
                min_stock_level=min_level,
            )

        product = get_product_by_sku(conn, sku)
        start = datetime.combine(today.replace(day=1), datetime.min.time())
        for months_back in (2, 1, 0):
            purchased = start - timedelta(days=30 * months_back) + timedelta(days=random.randint(0, 4))
            add_batch(
                conn,
                product_id=product.id,
                purchase_date=purchased,
                purchase_price=round(unit_cost * random.uniform(0.92, 1.12), 2),
                quantity=random.randint(10, 40),
                supplier=random.choice(SUPPLIERS),
                invoice_number=f"INV-{purchased:%Y%m}-{random.randint(100, 999)}",
                notes="Demo purchase",
            )

        for _ in range(4):
            sold_at = start - timedelta(days=random.randint(0, 55)) + timedelta(hours=random.randint(8, 18))
            if sold_at.date() > today:
                sold_at = datetime.combine(today, datetime.min.time())
            record_sale(
                conn,
                product_id=product.id,
                quantity=random.randint(1, 6),
                unit_price=price,
                sale_date=sold_at,
                customer_ref="Walk-in",
            )
