"""Demo data loads a consistent ledger and can be wiped."""
from datetime import date

from autoparts.db import q
from autoparts.services.demo_data import DEMO_PRODUCTS, load_demo_data, wipe_all
from autoparts.services.inventory import stock_discrepancies


def _count(conn, table):
    return q(conn, f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]


def test_demo_ledger_is_consistent(conn):
    load_demo_data(conn, today=date(2024, 6, 15))

    assert _count(conn, "products") == len(DEMO_PRODUCTS)
    assert _count(conn, "batches") == 3 * len(DEMO_PRODUCTS)
    assert _count(conn, "sales") == 4 * len(DEMO_PRODUCTS)
    assert stock_discrepancies(conn) == []

    sold = q(conn, "SELECT COALESCE(SUM(quantity),0) AS n FROM sale_lines")[0]["n"]
    totals = q(conn, "SELECT SUM(initial_quantity) AS i, SUM(current_quantity) AS c FROM batches")[0]
    assert totals["c"] == totals["i"] - sold


def test_wipe_all(conn):
    load_demo_data(conn, today=date(2024, 6, 15))
    wipe_all(conn)

    for table in ("categories", "products", "batches", "sales", "sale_lines", "monthly_reports"):
        assert _count(conn, table) == 0
