"""Categories and products."""
import pytest

from autoparts.errors import ConflictError, NotFoundError, ValidationError
from autoparts.services.batches import add_batch
from autoparts.services.catalog import (
    create_category,
    create_product,
    delete_category,
    delete_product,
    get_product_by_sku,
    list_categories,
    list_products,
    update_category,
    update_product,
)


def test_new_product_starts_empty(conn, category):
    p = create_product(conn, sku=" ALT-120 ", name="Alternator", category_id=category.id, selling_price=189)

    assert p.sku == "ALT-120"
    assert p.total_stock == 0
    assert p.category == "Brakes"
    assert p.is_low_stock


def test_sku_is_unique_ignoring_case(conn, product, category):
    with pytest.raises(ConflictError):
        create_product(conn, sku="bp-2023-001", name="Other", category_id=category.id, selling_price=5)
    assert get_product_by_sku(conn, "bp-2023-001").id == product.id


def test_category_name_is_unique_ignoring_case(conn, category):
    with pytest.raises(ConflictError):
        create_category(conn, name="BRAKES")


def test_product_needs_existing_category(conn):
    with pytest.raises(NotFoundError):
        create_product(conn, sku="X-1", name="X", category_id=99, selling_price=1)


@pytest.mark.parametrize("sku, name, price", [("", "Name", 1), ("X-1", " ", 1), ("X-1", "Name", 0)])
def test_product_validation(conn, category, sku, name, price):
    with pytest.raises(ValidationError):
        create_product(conn, sku=sku, name=name, category_id=category.id, selling_price=price)


def test_update_product_keeps_stock(conn, product):
    add_batch(conn, product_id=product.id, purchase_date="2024-01-01", purchase_price=5, quantity=4)

    p = update_product(conn, product.id, name="Ceramic Brake Pads", selling_price=24.5, min_stock_level=2)

    assert (p.name, p.selling_price, p.min_stock_level) == ("Ceramic Brake Pads", 24.5, 2)
    assert p.total_stock == 4


def test_update_product_sku_conflict(conn, make_product):
    a = make_product(sku="A-1")
    make_product(sku="B-1")
    with pytest.raises(ConflictError):
        update_product(conn, a.id, sku="b-1")


def test_rename_category(conn, category):
    other = create_category(conn, name="Engine")

    assert update_category(conn, category.id, name="brakes", color="#000000").name == "brakes"
    with pytest.raises(ConflictError):
        update_category(conn, other.id, name="Brakes")


def test_delete_category_in_use(conn, product, category):
    with pytest.raises(ConflictError):
        delete_category(conn, category.id)

    delete_product(conn, product.id)
    delete_category(conn, category.id)
    assert list_categories(conn) == []


def test_delete_product_with_batches(conn, product):
    add_batch(conn, product_id=product.id, purchase_date="2024-01-01", purchase_price=5, quantity=1)
    with pytest.raises(ConflictError):
        delete_product(conn, product.id)
    assert [p.id for p in list_products(conn)] == [product.id]
