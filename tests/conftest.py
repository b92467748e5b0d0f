"""Shared fixtures: an in-memory database with the schema and a tiny catalog."""
from datetime import datetime

import pytest

from autoparts.db import connect, ensure_schema
from autoparts.services.batches import add_batch
from autoparts.services.catalog import create_category, create_product


@pytest.fixture
def conn():
    c = connect(":memory:")
    ensure_schema(c)
    yield c
    c.close()


@pytest.fixture
def category(conn):
    return create_category(conn, name="Brakes", description="Brake parts", color="#EF4444")


@pytest.fixture
def make_product(conn, category):
    """Factory: make_product(sku="BP-1", selling_price=20.0)."""
    counter = {"n": 0}

    def _make(sku=None, name=None, selling_price=20.0, min_stock_level=0):
        counter["n"] += 1
        return create_product(
            conn,
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name or f"Part {counter['n']}",
            category_id=category.id,
            selling_price=selling_price,
            min_stock_level=min_stock_level,
        )

    return _make


@pytest.fixture
def product(make_product):
    return make_product(sku="BP-2023-001", name="Brake Pads", selling_price=20.0)


@pytest.fixture
def two_batches(conn, product):
    """Jan 5: 5 @ 10.00, Feb 5: 10 @ 12.00."""
    jan = add_batch(conn, product_id=product.id, purchase_date=datetime(2024, 1, 5), purchase_price=10.0, quantity=5)
    feb = add_batch(conn, product_id=product.id, purchase_date=datetime(2024, 2, 5), purchase_price=12.0, quantity=10)
    return jan, feb
