from datetime import timedelta

from sqlalchemy import update

from posledger.extensions import db
from posledger.models import MovementType, Product
from posledger.services import ledger_service
from posledger.services.stock_service import adjust_inventory
from posledger.time_utils import utcnow


def test_list_movements_newest_first_with_filters(db_session, make_product, inventory_user, admin_user):
    a = make_product(stock=5)
    b = make_product(stock=5)
    adjust_inventory(product_id=a.id, movement_type="ADJUSTMENT_OUT", quantity=1,
                     reason="Damaged", user_id=inventory_user.id)
    adjust_inventory(product_id=a.id, movement_type="ADJUSTMENT_IN", quantity=2,
                     reason="Found", user_id=inventory_user.id)

    all_for_a = ledger_service.list_movements(product_id=a.id)
    assert [m.quantity for m in all_for_a] == [2, -1, 5]

    by_user = ledger_service.list_movements(user_id=inventory_user.id)
    assert {m.product_id for m in by_user} == {a.id}
    assert len(by_user) == 2

    outs = ledger_service.list_movements(movement_type=MovementType.ADJUSTMENT_OUT)
    assert [m.quantity for m in outs] == [-1]

    openings = ledger_service.list_movements(product_id=b.id, user_id=admin_user.id)
    assert [m.reason for m in openings] == ["Opening stock"]

    assert len(ledger_service.list_movements(limit=2)) == 2


def test_list_movements_date_range_is_inclusive(db_session, make_product):
    product = make_product(stock=3)
    movement = ledger_service.list_movements(product_id=product.id)[0]
    at = movement.occurred_at

    assert ledger_service.list_movements(product_id=product.id, start=at, end=at) == [movement]
    assert ledger_service.list_movements(product_id=product.id, start=at + timedelta(seconds=1)) == []
    assert ledger_service.list_movements(product_id=product.id, end=at - timedelta(seconds=1)) == []
    assert ledger_service.list_movements(
        product_id=product.id,
        start=utcnow() - timedelta(hours=1),
        end=utcnow() + timedelta(hours=1),
    ) == [movement]


def test_stock_from_ledger_sums_signed_quantities(db_session, make_product, inventory_user):
    product = make_product(stock=8)
    adjust_inventory(product_id=product.id, movement_type="ADJUSTMENT_OUT", quantity=3,
                     reason="Shrink", user_id=inventory_user.id)

    assert ledger_service.stock_from_ledger(product.id) == 5
    assert ledger_service.stock_from_ledger(999999) == 0


def test_find_ledger_mismatches_reports_tampered_projection(db_session, make_product):
    good = make_product(stock=4)
    tampered = make_product(stock=4, sku="TAMPER-1")
    never_moved = make_product(stock=0)

    assert ledger_service.find_ledger_mismatches() == []

    # Simulate an out-of-band write that bypassed the stock mutator
    db.session.execute(update(Product).where(Product.id == tampered.id).values(current_stock=9))
    db.session.commit()

    mismatches = ledger_service.find_ledger_mismatches()
    assert mismatches == [
        {"product_id": tampered.id, "sku": "TAMPER-1", "current_stock": 9, "ledger_stock": 4},
    ]
    assert good.id not in {m["product_id"] for m in mismatches}
    assert never_moved.id not in {m["product_id"] for m in mismatches}
