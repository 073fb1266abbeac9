# Overview: Threaded tests for ledger and transfer safeguards on a file-backed SQLite database.

"""
Concurrency Tests

These run real threads against a temporary on-disk database, each with its
own app context and session, and check that:
- Concurrent decrements never oversell under the reject policy
- Concurrent first writes to a branch seed exactly one row
- Two racing ships of one transfer move stock exactly once
"""

import threading

import pytest

from branchstock import create_app
from branchstock.errors import ConflictError, InsufficientStockError
from branchstock.extensions import db
from branchstock.models import Branch, BranchStock, Product, Shop, StockAdjustment
from branchstock.services import adjustment_service, transfer_service
from branchstock.services.concurrency import run_in_transaction
from branchstock.services.ledger_service import apply_delta, get_stock

ACTOR = 7


@pytest.fixture
def file_app(tmp_path):
    db_path = tmp_path / "concurrency.db"
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        "NEGATIVE_STOCK_POLICY": "reject",
    })

    with app.app_context():
        db.create_all()

        shop = Shop(name="Concurrency Shop", code="CONC", is_active=True)
        db.session.add(shop)
        db.session.commit()

        branches = [Branch(shop_id=shop.id, name=f"Branch {n}", code=f"C{n}") for n in (1, 2)]
        product = Product(shop_id=shop.id, sku="CONCUR-1", name="Concurrent Product",
                          unit_cost_cents=400, unit_price_cents=1000, stock=10)
        db.session.add_all(branches + [product])
        db.session.commit()

        app.config["TEST_IDS"] = {
            "shop_id": shop.id,
            "branch_1": branches[0].id,
            "branch_2": branches[1].id,
            "product_id": product.id,
        }
        db.session.remove()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


def _run_threads(app, target, count):
    """Run target in `count` threads, each in its own app context; collect results."""
    results = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                outcome = target()
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_decrements_never_oversell(file_app):
    ids = file_app.config["TEST_IDS"]

    def sell_one():
        run_in_transaction(lambda: adjustment_service.adjust_stock(
            ids["shop_id"], ACTOR, ids["product_id"], -1, "sale"
        ))
        return "sold"

    results = _run_threads(file_app, sell_one, 12)

    sold = [r for r in results if r == "sold"]
    rejected = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(sold) == 10
    assert len(rejected) == 2

    with file_app.app_context():
        assert get_stock(ids["shop_id"], ids["product_id"]) == 0
        assert db.session.query(StockAdjustment).count() == 10


def test_concurrent_first_branch_writes_seed_once(file_app):
    ids = file_app.config["TEST_IDS"]

    def receive_one():
        level = run_in_transaction(lambda: apply_delta(ids["shop_id"], ids["product_id"], ids["branch_1"], 1))
        return level.quantity

    results = _run_threads(file_app, receive_one, 8)

    assert not [r for r in results if isinstance(r, Exception)]
    assert sorted(results) == list(range(11, 19))

    with file_app.app_context():
        rows = db.session.query(BranchStock).filter_by(
            product_id=ids["product_id"], branch_id=ids["branch_1"]
        ).all()
        assert len(rows) == 1
        assert rows[0].quantity == 18
        # Pool is a separate key
        assert get_stock(ids["shop_id"], ids["product_id"]) == 10


def test_racing_ships_move_stock_once(file_app):
    ids = file_app.config["TEST_IDS"]

    with file_app.app_context():
        transfer = transfer_service.create_transfer(ids["shop_id"], ACTOR, {
            "from_branch_id": ids["branch_1"],
            "to_branch_id": ids["branch_2"],
            "items": [{"product_id": ids["product_id"], "quantity": 4}],
        })
        transfer_service.approve_transfer(ids["shop_id"], transfer.id, ACTOR)
        db.session.commit()
        transfer_id = transfer.id
        db.session.remove()

    def ship():
        run_in_transaction(
            lambda: transfer_service.ship_transfer(ids["shop_id"], transfer_id, ACTOR),
            conflict_attempts=3,
        )
        return "shipped"

    results = _run_threads(file_app, ship, 2)

    assert results.count("shipped") == 1
    losers = [r for r in results if r != "shipped"]
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)

    with file_app.app_context():
        assert get_stock(ids["shop_id"], ids["product_id"], ids["branch_1"]) == 6
        assert transfer_service.get_transfer(ids["shop_id"], transfer_id).status == "in_transit"
        assert db.session.query(StockAdjustment).filter_by(reason="transfer").count() == 1
