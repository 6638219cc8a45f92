"""
Sale orchestrator tests: atomicity, price snapshot, totals and cancellation.
"""

from decimal import Decimal

import pytest

from posledger.errors import BadRequestError, ConflictError, InsufficientStockError, NotFoundError
from posledger.extensions import db
from posledger.models import InventoryMovement, MovementType, Product, Sale
from posledger.models.sales import SALE_STATUS_CANCELLED, SALE_STATUS_COMPLETED
from posledger.services import products_service, return_service, sales_service
from posledger.services.ledger_service import find_ledger_mismatches
from posledger.services.sales_service import compute_sale_totals


def _stock(product_id):
    return db.session.get(Product, product_id).current_stock


def _movement_count(product_id):
    return db.session.query(InventoryMovement).filter_by(product_id=product_id).count()


class TestCreateSale:
    def test_sale_decrements_stock_and_records_one_exit_per_line(self, db_session, make_product, cashier_user):
        a = make_product(stock=10, price_cents=250)
        b = make_product(stock=3, price_cents=1000)

        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": a.id, "quantity": 4}, {"product_id": b.id, "quantity": 1}],
            payment_method="cash",
        )

        assert sale.status == SALE_STATUS_COMPLETED
        assert sale.payment_method == "CASH"
        assert sale.subtotal_cents == 2000
        assert sale.total_cents == 2000
        assert sale.receipt_number == f"R-{sale.id:08d}"
        assert _stock(a.id) == 6
        assert _stock(b.id) == 2

        exits = (
            db.session.query(InventoryMovement)
            .filter_by(sale_id=sale.id)
            .order_by(InventoryMovement.id.asc())
            .all()
        )
        assert [(m.product_id, m.quantity, m.movement_type) for m in exits] == [
            (a.id, -4, MovementType.SALE_EXIT),
            (b.id, -1, MovementType.SALE_EXIT),
        ]
        assert all(m.user_id == cashier_user.id for m in exits)

    def test_insufficient_second_line_rolls_back_first(self, db_session, make_product, cashier_user):
        a = make_product("A", stock=5)
        b = make_product("B", stock=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                user_id=cashier_user.id,
                lines=[{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 2}],
                payment_method="CASH",
            )

        assert exc_info.value.details["product_id"] == b.id
        assert exc_info.value.details["required"] == 2
        assert exc_info.value.details["available"] == 1
        assert _stock(a.id) == 5
        assert _movement_count(a.id) == 1
        assert db.session.query(Sale).count() == 0

    def test_same_product_lines_jointly_exceeding_stock_roll_back(self, db_session, make_product, cashier_user):
        product = make_product(stock=5)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                user_id=cashier_user.id,
                lines=[
                    {"product_id": product.id, "quantity": 3},
                    {"product_id": product.id, "quantity": 3},
                ],
                payment_method="CASH",
            )

        assert _stock(product.id) == 5
        assert _movement_count(product.id) == 1
        assert db.session.query(Sale).count() == 0
        assert find_ledger_mismatches() == []

    def test_unit_price_is_snapshotted(self, db_session, make_product, cashier_user):
        product = make_product(stock=5, price_cents=1500)
        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 2}],
            payment_method="CARD",
        )

        products_service.update_product(product_id=product.id, payload={"selling_price_cents": 9999})

        stored = db.session.get(Sale, sale.id)
        assert stored.lines[0].unit_price_cents == 1500
        assert stored.lines[0].line_subtotal_cents == 3000
        assert stored.subtotal_cents == 3000

    def test_unknown_product_is_not_found(self, db_session, cashier_user):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                user_id=cashier_user.id,
                lines=[{"product_id": 424242, "quantity": 1}],
                payment_method="CASH",
            )

    def test_inactive_product_is_conflict(self, db_session, make_product, cashier_user):
        product = make_product(stock=5, is_active=False)
        with pytest.raises(ConflictError):
            sales_service.create_sale(
                user_id=cashier_user.id,
                lines=[{"product_id": product.id, "quantity": 1}],
                payment_method="CASH",
            )
        assert _stock(product.id) == 5

    def test_unknown_customer_is_not_found(self, db_session, make_product, cashier_user):
        product = make_product(stock=5)
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                user_id=cashier_user.id,
                lines=[{"product_id": product.id, "quantity": 1}],
                payment_method="CASH",
                customer_id=987654,
            )

    def test_customer_is_attached(self, db_session, make_product, cashier_user, customer):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 1}],
            payment_method="CASH",
            customer_id=customer.id,
        )
        assert sale.customer_id == customer.id

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"lines": []},
            {"lines": [{"product_id": 1, "quantity": 0}]},
            {"lines": [{"product_id": 1, "quantity": -1}]},
            {"lines": [{"product_id": 1, "quantity": 1.5}]},
            {"lines": [{"quantity": 1}]},
            {"payment_method": "   "},
            {"discount_percent": "100.01"},
            {"discount_percent": -1},
            {"discount_percent": "1.234"},
            {"discount_amount_cents": -5},
            {"tax_rate_bps": -1},
        ],
    )
    def test_invalid_input_is_bad_request(self, db_session, make_product, cashier_user, kwargs):
        product = make_product(stock=5)
        params = {
            "user_id": cashier_user.id,
            "lines": [{"product_id": product.id, "quantity": 1}],
            "payment_method": "CASH",
        }
        params.update(kwargs)

        with pytest.raises(BadRequestError):
            sales_service.create_sale(**params)
        assert _stock(product.id) == 5

    def test_duplicate_receipt_number_is_conflict(self, db_session, make_product, cashier_user):
        product = make_product(stock=5)
        sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 1}],
            payment_method="CASH",
            receipt_number="POS-1",
        )
        with pytest.raises(ConflictError):
            sales_service.create_sale(
                user_id=cashier_user.id,
                lines=[{"product_id": product.id, "quantity": 1}],
                payment_method="CASH",
                receipt_number="POS-1",
            )
        assert _stock(product.id) == 4

    def test_generated_receipt_prefix_is_reserved(self, db_session, make_product, cashier_user):
        product = make_product(stock=5)
        for taken in ("R-00000002", "r-7"):
            with pytest.raises(BadRequestError):
                sales_service.create_sale(
                    user_id=cashier_user.id,
                    lines=[{"product_id": product.id, "quantity": 1}],
                    payment_method="CASH",
                    receipt_number=taken,
                )
        assert _stock(product.id) == 5

    def test_client_receipt_then_generated_receipt(self, db_session, make_product, cashier_user):
        product = make_product(stock=5)
        first = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 1}],
            payment_method="CASH",
            receipt_number="POS-00000002",
        )
        second = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 1}],
            payment_method="CASH",
        )

        assert first.receipt_number == "POS-00000002"
        assert second.receipt_number == f"R-{second.id:08d}"
        assert _stock(product.id) == 3

    def test_discount_and_tax_are_stored(self, db_session, make_product, cashier_user):
        product = make_product(stock=5, price_cents=1000)
        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 3}],
            payment_method="CARD",
            discount_percent="10",
            discount_amount_cents=200,
            tax_rate_bps=825,
        )

        # 3000 - 300 - 200 = 2500; tax 2500 * 8.25% = 206.25 -> 206
        assert sale.discount_total_cents == 500
        assert sale.tax_cents == 206
        assert sale.total_cents == 2706
        assert sale.discount_percent == Decimal("10.00")


class TestComputeSaleTotals:
    def test_percent_then_fixed_then_tax(self):
        totals = compute_sale_totals(
            subtotal_cents=10000,
            discount_percent=Decimal("15"),
            discount_amount_cents=500,
            tax_rate_bps=1000,
        )
        assert totals.percent_discount_cents == 1500
        assert totals.discounted_cents == 8000
        assert totals.discount_total_cents == 2000
        assert totals.tax_cents == 800
        assert totals.total_cents == 8800

    def test_rounds_half_up(self):
        # 1 cent * 50% = 0.5 -> 1
        totals = compute_sale_totals(subtotal_cents=1, discount_percent=Decimal("50"))
        assert totals.percent_discount_cents == 1
        assert totals.discounted_cents == 0

        # 125 * 2% = 2.5 -> 3
        assert compute_sale_totals(subtotal_cents=125, tax_rate_bps=200).tax_cents == 3

    def test_discount_clamps_at_zero(self):
        totals = compute_sale_totals(subtotal_cents=1000, discount_amount_cents=5000, tax_rate_bps=825)
        assert totals.discounted_cents == 0
        assert totals.discount_total_cents == 1000
        assert totals.tax_cents == 0
        assert totals.total_cents == 0

    def test_no_adjustments(self):
        totals = compute_sale_totals(subtotal_cents=1234)
        assert totals.total_cents == 1234
        assert totals.discount_total_cents == 0


class TestCancelSale:
    def test_cancel_restores_stock_with_compensating_movements(self, db_session, make_product, cashier_user, manager_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 2}],
            payment_method="CASH",
        )

        cancelled = sales_service.cancel_sale(sale_id=sale.id, user_id=manager_user.id, reason="Wrong item")

        assert cancelled.status == SALE_STATUS_CANCELLED
        assert cancelled.cancelled_by_user_id == manager_user.id
        assert cancelled.cancel_reason == "Wrong item"
        assert cancelled.cancelled_at is not None
        assert _stock(product.id) == 5

        movements = (
            db.session.query(InventoryMovement)
            .filter_by(sale_id=sale.id)
            .order_by(InventoryMovement.id.asc())
            .all()
        )
        assert [(m.movement_type, m.quantity) for m in movements] == [
            (MovementType.SALE_EXIT, -2),
            (MovementType.ADJUSTMENT_IN, 2),
        ]
        assert movements[1].user_id == manager_user.id

    def test_cancel_twice_is_conflict(self, db_session, make_product, cashier_user, manager_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 2}],
            payment_method="CASH",
        )
        sales_service.cancel_sale(sale_id=sale.id, user_id=manager_user.id)

        with pytest.raises(ConflictError):
            sales_service.cancel_sale(sale_id=sale.id, user_id=manager_user.id)
        assert _stock(product.id) == 5

    def test_cancel_with_returns_is_conflict(self, db_session, make_product, cashier_user, manager_user):
        product = make_product(stock=5)
        sale = sales_service.create_sale(
            user_id=cashier_user.id,
            lines=[{"product_id": product.id, "quantity": 2}],
            payment_method="CASH",
        )
        return_service.create_return(
            original_sale_id=sale.id,
            user_id=cashier_user.id,
            items=[{"product_id": product.id, "quantity": 1}],
        )

        with pytest.raises(ConflictError):
            sales_service.cancel_sale(sale_id=sale.id, user_id=manager_user.id)
        assert _stock(product.id) == 4
        assert db.session.get(Sale, sale.id).status == SALE_STATUS_COMPLETED

    def test_cancel_unknown_sale_is_not_found(self, db_session, manager_user):
        with pytest.raises(NotFoundError):
            sales_service.cancel_sale(sale_id=123456, user_id=manager_user.id)


def test_list_sales_filters_by_status(db_session, make_product, cashier_user, manager_user):
    product = make_product(stock=10)
    first = sales_service.create_sale(
        user_id=cashier_user.id, lines=[{"product_id": product.id, "quantity": 1}], payment_method="CASH"
    )
    second = sales_service.create_sale(
        user_id=cashier_user.id, lines=[{"product_id": product.id, "quantity": 1}], payment_method="CASH"
    )
    sales_service.cancel_sale(sale_id=first.id, user_id=manager_user.id)

    completed = sales_service.list_sales(status=SALE_STATUS_COMPLETED)
    assert [s.id for s in completed] == [second.id]
    assert {s.id for s in sales_service.list_sales()} == {first.id, second.id}
