"""Unit of work on a connection shared between threads, as get_conn() does."""
import threading

import pytest

from autoparts.db import q, transaction, x
from autoparts.services.catalog import get_product
from autoparts.services.sales import get_sale, record_sale


def _count_sales(conn):
    return q(conn, "SELECT COUNT(*) AS n FROM sales")[0]["n"]


def test_nested_block_joins_outer_in_same_thread(conn, product):
    with pytest.raises(RuntimeError):
        with transaction(conn):
            x(conn, "UPDATE products SET min_stock_level = 7 WHERE id=?", (product.id,))
            with transaction(conn):
                x(conn, "UPDATE products SET location = 'A1' WHERE id=?", (product.id,))
            raise RuntimeError("abort outer")

    p = get_product(conn, product.id)
    assert (p.min_stock_level, p.location) == (0, None)


def test_other_thread_waits_instead_of_joining(conn, product, two_batches):
    entered, release = threading.Event(), threading.Event()
    result = {}

    def failing_unit():
        try:
            with transaction(conn):
                x(conn, "UPDATE products SET min_stock_level = 99 WHERE id=?", (product.id,))
                entered.set()
                release.wait(5)
                raise RuntimeError("abort")
        except RuntimeError:
            pass

    def sale():
        result["sale"] = record_sale(conn, product_id=product.id, quantity=2, unit_price=20)

    holder = threading.Thread(target=failing_unit)
    holder.start()
    assert entered.wait(5)

    seller = threading.Thread(target=sale)
    seller.start()
    seller.join(0.3)
    assert seller.is_alive()

    release.set()
    holder.join(5)
    seller.join(5)
    assert not seller.is_alive()

    # the rollback of the first unit did not take the sale with it
    sale_id = result["sale"].id
    assert get_sale(conn, sale_id).quantity == 2
    assert _count_sales(conn) == 1
    p = get_product(conn, product.id)
    assert p.total_stock == 13
    assert p.min_stock_level == 0
    assert not conn.in_transaction
