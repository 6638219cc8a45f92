import pytest

from posledger.errors import BadRequestError, ConflictError, NotFoundError
from posledger.extensions import db
from posledger.models import InventoryMovement, MovementType, Product
from posledger.services import products_service
from posledger.services.stock_service import adjust_inventory


def test_opening_stock_is_booked_in_ledger(db_session, admin_user):
    product = products_service.create_product(
        payload={"sku": "MUG-01", "name": "Mug", "selling_price_cents": 899},
        user_id=admin_user.id,
        opening_stock=12,
    )

    assert product.current_stock == 12
    movement = db.session.query(InventoryMovement).filter_by(product_id=product.id).one()
    assert movement.movement_type == MovementType.ADJUSTMENT_IN
    assert movement.quantity == 12
    assert (movement.stock_before, movement.stock_after) == (0, 12)
    assert movement.reason == "Opening stock"
    assert movement.user_id == admin_user.id


def test_zero_opening_stock_records_nothing(db_session, admin_user):
    product = products_service.create_product(
        payload={"sku": "MUG-02", "name": "Mug", "selling_price_cents": 899},
        user_id=admin_user.id,
    )
    assert product.current_stock == 0
    assert db.session.query(InventoryMovement).filter_by(product_id=product.id).count() == 0


@pytest.mark.parametrize(
    "payload, opening_stock",
    [
        ({"name": "No SKU", "selling_price_cents": 1}, 0),
        ({"sku": "X-1", "name": "Bad price", "selling_price_cents": -1}, 0),
        ({"sku": "X-2", "name": "Bad min", "selling_price_cents": 1, "minimum_stock": -3}, 0),
        ({"sku": "X-3", "name": "Direct", "selling_price_cents": 1, "current_stock": 50}, 0),
        ({"sku": "X-4", "name": "Unknown field", "selling_price_cents": 1, "colour": "red"}, 0),
        ({"sku": "X-5", "name": "Negative opening", "selling_price_cents": 1}, -1),
        ({"sku": "X-6", "name": "Backdated", "selling_price_cents": 1, "created_at": "2020-01-01T00:00:00Z"}, 0),
    ],
)
def test_create_rejects_invalid_payload(db_session, admin_user, payload, opening_stock):
    with pytest.raises(BadRequestError):
        products_service.create_product(payload=payload, user_id=admin_user.id, opening_stock=opening_stock)
    assert db.session.query(Product).count() == 0


def test_duplicate_sku_is_conflict(db_session, make_product, admin_user):
    make_product(sku="DUP-1")
    with pytest.raises(ConflictError):
        products_service.create_product(
            payload={"sku": "DUP-1", "name": "Again", "selling_price_cents": 1},
            user_id=admin_user.id,
        )

    other = make_product(sku="DUP-2")
    with pytest.raises(ConflictError):
        products_service.update_product(product_id=other.id, payload={"sku": "DUP-1"})


def test_update_refuses_stock_fields(db_session, make_product):
    product = make_product(stock=4)

    with pytest.raises(BadRequestError) as exc_info:
        products_service.update_product(product_id=product.id, payload={"current_stock": 100})

    assert exc_info.value.details["fields"] == ["current_stock"]
    assert db.session.get(Product, product.id).current_stock == 4


def test_update_master_data(db_session, make_product):
    product = make_product("Old name", stock=2)
    updated = products_service.update_product(
        product_id=product.id,
        payload={"name": "New name", "minimum_stock": 1, "is_active": False},
    )

    assert updated.name == "New name"
    assert updated.minimum_stock == 1
    assert updated.is_active is False
    assert updated.current_stock == 2


def test_get_and_update_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        products_service.get_product(5150)
    with pytest.raises(NotFoundError):
        products_service.update_product(product_id=5150, payload={"name": "ghost"})


def test_low_stock_listing(db_session, make_product, inventory_user):
    plenty = make_product("Apples", stock=20, minimum_stock=5)
    edge = make_product("Bananas", stock=5, minimum_stock=5)
    make_product("Cherries", stock=1, minimum_stock=2, is_active=False)

    adjust_inventory(product_id=plenty.id, movement_type="ADJUSTMENT_OUT", quantity=16,
                     reason="Spoiled", user_id=inventory_user.id)

    low = products_service.list_products(low_stock_only=True)
    assert [p.name for p in low] == ["Apples", "Bananas", "Cherries"]

    active_low = products_service.list_products(low_stock_only=True, include_inactive=False)
    assert [p.id for p in active_low] == [plenty.id, edge.id]
