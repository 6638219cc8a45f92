from sqlalchemy import update

from posledger.extensions import db
from posledger.models import Product, User


def test_stock_verify_passes_then_fails_after_tamper(app, db_session, make_product):
    product = make_product(stock=3, sku="CLI-1")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stock", "verify"])
    assert result.exit_code == 0
    assert "PASS" in result.output

    db.session.execute(update(Product).where(Product.id == product.id).values(current_stock=7))
    db.session.commit()

    result = runner.invoke(args=["stock", "verify"])
    assert result.exit_code == 1
    assert "CLI-1" in result.output
    assert "current_stock=7 ledger=3" in result.output


def test_stock_low(app, db_session, make_product):
    make_product("Scarce", stock=1, minimum_stock=4, sku="LOW-1")
    make_product("Plenty", stock=9, minimum_stock=4, sku="OK-1")

    result = app.test_cli_runner().invoke(args=["stock", "low"])
    assert result.exit_code == 0
    assert "LOW-1" in result.output
    assert "OK-1" not in result.output


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    assert first.exit_code == 0
    assert "Created admin user" in first.output

    second = runner.invoke(args=["system", "init"])
    assert second.exit_code == 0
    assert "Using existing admin user" in second.output
    assert db.session.query(User).filter_by(username="admin").count() == 1


def test_users_create_and_deactivate(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--username", "jane",
        "--email", "jane@example.com",
        "--password", "Password123!",
        "--role", "CASHIER",
    ])
    assert result.exit_code == 0
    assert "Created user: jane" in result.output

    weak = runner.invoke(args=[
        "users", "create",
        "--username", "joe",
        "--email", "joe@example.com",
        "--password", "weak",
        "--role", "CASHIER",
    ])
    assert weak.exit_code == 1
    assert "FAIL" in weak.output

    result = runner.invoke(args=["users", "deactivate", "jane"])
    assert result.exit_code == 0
    assert db.session.query(User).filter_by(username="jane").one().is_active is False

    missing = runner.invoke(args=["users", "deactivate", "nobody"])
    assert missing.exit_code == 1
