"""Recording sales: FIFO draw, profit math, and all-or-nothing writes."""
from datetime import datetime, timedelta, timezone

import pytest

from autoparts.db import q
from autoparts.errors import InsufficientStockError, NotFoundError, PersistenceError, ValidationError
from autoparts.models import BatchStatus
from autoparts.services.batches import add_batch, get_batch, list_product_batches, update_batch
from autoparts.services.catalog import get_product
from autoparts.services.sales import get_sale, list_sales, preview_sale, record_sale, sell


def _snapshot(conn):
    return (
        [tuple(r) for r in q(conn, "SELECT id, current_quantity, status FROM batches ORDER BY id")],
        [tuple(r) for r in q(conn, "SELECT id, total_stock FROM products ORDER BY id")],
        q(conn, "SELECT COUNT(*) AS n FROM sales")[0]["n"],
        q(conn, "SELECT COUNT(*) AS n FROM sale_lines")[0]["n"],
    )


@pytest.fixture
def worked_example(conn, product):
    b1 = add_batch(conn, product_id=product.id, purchase_date="2023-01-01", purchase_price=10, quantity=5)
    b2 = add_batch(conn, product_id=product.id, purchase_date="2023-02-01", purchase_price=12, quantity=5)
    return b1, b2


def test_multi_batch_sale_profit(conn, product, worked_example):
    b1, b2 = worked_example

    sale = sell(conn, product.id, 7, 20, sale_date="2023-02-10T12:00:00")

    assert [(line.batch_id, line.quantity) for line in sale.lines] == [(b1.id, 5), (b2.id, 2)]
    assert sale.cost == pytest.approx(74.0)
    assert sale.revenue == pytest.approx(140.0)
    assert sale.profit == pytest.approx(66.0)
    assert sale.profit_margin == pytest.approx(66.0 / 74.0 * 100)
    assert sale.profit_margin == pytest.approx(89.19, abs=0.01)

    # header keeps the oldest batch and its cost
    assert sale.batch_id == b1.id
    assert sale.purchase_price == pytest.approx(10.0)


def test_batches_and_stock_are_decremented(conn, product, worked_example):
    b1, b2 = worked_example

    sell(conn, product.id, 7, 20)

    first, second = get_batch(conn, b1.id), get_batch(conn, b2.id)
    assert (first.current_quantity, first.status) == (0, BatchStatus.DEPLETED)
    assert (second.current_quantity, second.status) == (3, BatchStatus.ACTIVE)
    assert get_product(conn, product.id).total_stock == 3


def test_stock_is_conserved(conn, product, two_batches):
    record_sale(conn, product_id=product.id, quantity=4, unit_price=25)
    record_sale(conn, product_id=product.id, quantity=6, unit_price=25)

    batches = list_product_batches(conn, product.id)
    initial = sum(b.initial_quantity for b in batches)
    remaining = sum(b.current_quantity for b in batches)
    sold = sum(s.quantity for s in list_sales(conn, product_id=product.id))

    assert remaining == initial - sold
    assert get_product(conn, product.id).total_stock == remaining


def test_oversell_is_rejected_without_writes(conn, product, two_batches):
    before = _snapshot(conn)

    with pytest.raises(InsufficientStockError) as exc:
        record_sale(conn, product_id=product.id, quantity=16, unit_price=20)

    assert exc.value.requested == 16
    assert exc.value.available == 15
    assert exc.value.shortfall == 1
    assert _snapshot(conn) == before


def test_single_batch_profit_formula(conn, product, two_batches):
    sale = record_sale(conn, product_id=product.id, quantity=3, unit_price=18)

    assert len(sale.lines) == 1
    assert sale.profit == pytest.approx((18 - 10) * 3)
    assert sale.profit_margin == pytest.approx((18 - 10) / 10 * 100)


def test_zero_cost_stock_has_zero_margin(conn, product):
    add_batch(conn, product_id=product.id, purchase_date="2024-03-01", purchase_price=0, quantity=2)

    sale = record_sale(conn, product_id=product.id, quantity=2, unit_price=15)

    assert sale.profit == pytest.approx(30.0)
    assert sale.profit_margin == 0.0


def test_archived_batches_are_not_sold_from(conn, product, two_batches):
    jan, feb = two_batches
    update_batch(conn, jan.id, status=BatchStatus.ARCHIVED)

    sale = record_sale(conn, product_id=product.id, quantity=2, unit_price=20)

    assert sale.batch_ids == [feb.id]
    assert get_batch(conn, jan.id).current_quantity == 5


def test_storage_failure_rolls_everything_back(conn, product, two_batches):
    conn.execute(
        """
        CREATE TRIGGER fail_stock BEFORE UPDATE ON products
        BEGIN SELECT RAISE(ABORT, 'disk full'); END;
        """
    )
    before = _snapshot(conn)

    with pytest.raises(PersistenceError):
        record_sale(conn, product_id=product.id, quantity=7, unit_price=20)

    assert _snapshot(conn) == before
    assert not conn.in_transaction


def test_preview_does_not_write(conn, product, two_batches):
    before = _snapshot(conn)

    preview = preview_sale(conn, product_id=product.id, quantity=7, unit_price=20)

    assert preview.can_fulfil
    assert preview.totals.total_cost == pytest.approx(5 * 10 + 2 * 12)
    assert preview.totals.total_profit == pytest.approx(140 - 74)
    assert _snapshot(conn) == before


def test_preview_reports_shortfall(conn, product, two_batches):
    preview = preview_sale(conn, product_id=product.id, quantity=20, unit_price=20)
    assert not preview.can_fulfil
    assert preview.allocation.shortfall == 5


def test_sale_date_defaults_to_utc_now(conn, product, two_batches):
    before = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)
    sale = record_sale(conn, product_id=product.id, quantity=1, unit_price=20)
    after = datetime.now(timezone.utc).replace(tzinfo=None)
    assert before <= sale.sale_date <= after


def test_aware_and_default_dates_share_one_clock(conn, product, two_batches):
    local_now = datetime.now().astimezone()
    explicit = record_sale(conn, product_id=product.id, quantity=1, unit_price=20, sale_date=local_now)
    default = record_sale(conn, product_id=product.id, quantity=1, unit_price=20)
    assert abs(default.sale_date - explicit.sale_date) < timedelta(seconds=5)


@pytest.mark.parametrize("quantity, price", [(0, 20), (-1, 20), (2, 0), (2, -5), (2, float("nan"))])
def test_rejects_bad_input(conn, product, two_batches, quantity, price):
    with pytest.raises(ValidationError):
        record_sale(conn, product_id=product.id, quantity=quantity, unit_price=price)


def test_unknown_product(conn):
    with pytest.raises(NotFoundError):
        record_sale(conn, product_id=999, quantity=1, unit_price=10)


def test_list_sales_filters_by_batch_line(conn, product, two_batches):
    jan, feb = two_batches
    multi = record_sale(conn, product_id=product.id, quantity=7, unit_price=20, sale_date="2024-02-10")
    later = record_sale(conn, product_id=product.id, quantity=1, unit_price=20, sale_date="2024-02-11")

    assert [s.id for s in list_sales(conn, batch_id=feb.id)] == [later.id, multi.id]
    assert [s.id for s in list_sales(conn, batch_id=jan.id)] == [multi.id]
    assert [s.id for s in list_sales(conn, start="2024-02-11")] == [later.id]
    assert get_sale(conn, multi.id).lines == multi.lines
