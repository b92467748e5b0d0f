"""Stock summary, low-stock flags and counter drift."""
from autoparts.services.batches import add_batch
from autoparts.services.inventory import (
    inventory_summary,
    low_stock_products,
    rebuild_total_stock,
    stock_discrepancies,
)


def test_summary_values_stock_at_batch_cost(conn, product, two_batches):
    row = dict(inventory_summary(conn)[0])

    assert row["total_stock"] == 15
    assert row["active_batches"] == 2
    assert row["stock_value"] == 5 * 10 + 10 * 12
    assert row["oldest_active"] == "2024-01-05T00:00:00"
    assert row["category"] == "Brakes"


def test_low_stock(conn, make_product):
    low = make_product(sku="LOW-1", min_stock_level=5)
    ok = make_product(sku="OK-1", min_stock_level=5)
    add_batch(conn, product_id=ok.id, purchase_date="2024-01-01", purchase_price=1, quantity=9)
    add_batch(conn, product_id=low.id, purchase_date="2024-01-01", purchase_price=1, quantity=5)

    assert [p.sku for p in low_stock_products(conn)] == ["LOW-1"]


def test_drift_is_detected_and_rebuilt(conn, product, two_batches):
    assert stock_discrepancies(conn) == []

    conn.execute("UPDATE products SET total_stock = 3 WHERE id = ?", (product.id,))

    drift = stock_discrepancies(conn)
    assert len(drift) == 1
    assert drift[0].difference == 3 - 15

    assert rebuild_total_stock(conn) == 1
    assert stock_discrepancies(conn) == []
    assert rebuild_total_stock(conn) == 0
