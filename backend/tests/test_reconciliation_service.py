# Overview: Pytest coverage for cash and physical stock reconciliation.

from datetime import date, datetime

import pytest

from branchstock.errors import ConflictError, NotFoundError, ValidationError
from branchstock.models import Order, OrderPayment, StockAdjustment
from branchstock.services import reconciliation_service
from branchstock.services.ledger_service import apply_delta, get_stock

ACTOR = 7
DAY = date(2026, 3, 15)


def _order(db_session, shop, number, payments, payment_status="paid", when=None):
    """Insert a historical order with the given (method, amount_cents) payments."""
    total = sum(amount for _, amount in payments)
    order = Order(
        shop_id=shop.id,
        order_number=number,
        actor_id=ACTOR,
        payment_status=payment_status,
        subtotal_cents=total,
        total_cents=total,
        created_at=when or datetime(2026, 3, 15, 12, 0),
    )
    db_session.add(order)
    db_session.flush()
    for method, amount in payments:
        db_session.add(OrderPayment(order_id=order.id, method=method, amount_cents=amount))
    db_session.commit()
    return order


@pytest.fixture
def cash_day(db_session, shop_a):
    """Shop A takes 1000.00 cash on DAY, plus noise that must not count."""
    _order(db_session, shop_a, "STK-2026-AAAAAA", [("cash", 60000)])
    _order(db_session, shop_a, "STK-2026-BBBBBB", [("cash", 40000), ("card", 25000)], payment_status="partial")
    _order(db_session, shop_a, "STK-2026-CCCCCC", [("card", 9000)])
    _order(db_session, shop_a, "STK-2026-DDDDDD", [("cash", 7000)], payment_status="unpaid")
    _order(db_session, shop_a, "STK-2026-EEEEEE", [("cash", 3000)], when=datetime(2026, 3, 16, 0, 0))


class TestExpectedCash:

    def test_counts_cash_on_paid_and_partial_orders(self, db_session, shop_a, cash_day):
        assert reconciliation_service.expected_cash_cents(shop_a.id, DAY) == 100000

    def test_scoped_to_shop(self, db_session, shop_b, cash_day):
        assert reconciliation_service.expected_cash_cents(shop_b.id, DAY) == 0


class TestDailyReconciliation:

    def test_small_shortage_is_reconciled(self, db_session, shop_a, cash_day, audit_sink):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, "2026-03-15", 95000)
        db_session.commit()

        assert rec.expected_cash_cents == 100000
        assert rec.variance_cents == -5000
        assert rec.variance_percentage == -5.0
        assert rec.status == "reconciled"
        assert rec.reconciled_by == ACTOR
        assert audit_sink.actions() == ["create_reconciliation"]

    def test_large_shortage_waits_for_approval(self, db_session, shop_a, cash_day):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 70000)
        db_session.commit()

        assert rec.variance_cents == -30000
        assert rec.variance_percentage == -30.0
        assert rec.status == "variance_pending"

        approved = reconciliation_service.approve_reconciliation(shop_a.id, rec.id, 9)
        db_session.commit()

        assert approved.status == "reconciled"
        assert approved.approved_by == 9
        assert approved.approval_time is not None

        with pytest.raises(ConflictError):
            reconciliation_service.approve_reconciliation(shop_a.id, rec.id, 9)

    def test_exact_threshold_is_reconciled(self, db_session, shop_a, cash_day):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 110000)
        assert rec.variance_cents == 10000
        assert rec.status == "reconciled"

    def test_no_sales_day(self, db_session, shop_a):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 2500)

        assert rec.expected_cash_cents == 0
        assert rec.variance_cents == 2500
        assert rec.variance_percentage == 0.0

    def test_duplicate_date_rejected(self, db_session, shop_a, shop_b, cash_day):
        reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 100000)
        db_session.commit()

        with pytest.raises(ConflictError, match="Reconciliation for 2026-03-15 already exists"):
            reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 100000)

        # Other tenants reconcile the same date independently
        reconciliation_service.create_daily_reconciliation(shop_b.id, ACTOR, DAY, 0)

    @pytest.mark.parametrize("day, amount", [
        ("not-a-date", 100),
        (None, 100),
        ("2026-03-15", -1),
        ("2026-03-15", "ten"),
    ])
    def test_invalid_input(self, db_session, shop_a, day, amount):
        with pytest.raises(ValidationError):
            reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, day, amount)

    def test_investigation_keeps_status(self, db_session, shop_a, cash_day, audit_sink):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 70000)
        db_session.commit()

        rec = reconciliation_service.investigate_variance(
            shop_a.id, rec.id, ACTOR, "cash_shortage", "Till 2 short after shift change"
        )
        db_session.commit()

        assert rec.status == "variance_pending"
        assert len(rec.variances) == 1
        assert rec.variances[0].amount_cents == -30000
        assert rec.variances[0].variance_type == "cash_shortage"
        assert "investigate_variance" in audit_sink.actions()

    def test_investigation_requires_known_type_and_notes(self, db_session, shop_a, cash_day):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 70000)

        with pytest.raises(ValidationError):
            reconciliation_service.investigate_variance(shop_a.id, rec.id, ACTOR, "theft", "notes")
        with pytest.raises(ValidationError):
            reconciliation_service.investigate_variance(shop_a.id, rec.id, ACTOR, "other", "  ")

    def test_other_tenant_cannot_approve(self, db_session, shop_a, shop_b, cash_day):
        rec = reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, DAY, 70000)
        db_session.commit()

        with pytest.raises(NotFoundError):
            reconciliation_service.approve_reconciliation(shop_b.id, rec.id, ACTOR)


class TestReporting:

    @pytest.fixture
    def history(self, db_session, shop_a):
        # expected 0 each day, so percentages are 0 and statuses follow the threshold
        reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, date(2026, 3, 1), 4000)
        reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, date(2026, 3, 2), 20000)
        reconciliation_service.create_daily_reconciliation(shop_a.id, ACTOR, date(2026, 3, 10), 0)
        db_session.commit()

    def test_history_is_newest_first(self, db_session, shop_a, history):
        rows = reconciliation_service.get_reconciliation_history(shop_a.id)
        assert [r.reconciliation_date.day for r in rows] == [10, 2, 1]

        in_range = reconciliation_service.get_reconciliation_history(
            shop_a.id, start=date(2026, 3, 2), end=date(2026, 3, 9)
        )
        assert [r.reconciliation_date.day for r in in_range] == [2]

        pending = reconciliation_service.get_reconciliation_history(shop_a.id, status="variance_pending")
        assert [r.variance_cents for r in pending] == [20000]

    def test_variance_report(self, db_session, shop_a, history):
        report = reconciliation_service.get_variance_report(shop_a.id, date(2026, 3, 1), date(2026, 3, 31))

        assert report["total_reconciliations"] == 3
        assert report["total_variance_cents"] == 24000
        assert report["total_overage_cents"] == 24000
        assert report["total_shortage_cents"] == 0
        assert report["average_variance_cents"] == 8000
        assert report["max_variance_cents"] == 20000
        assert report["min_variance_cents"] == 0
        assert report["pending_variances"] == 1

    def test_empty_report(self, db_session, shop_a):
        report = reconciliation_service.get_variance_report(shop_a.id, date(2026, 1, 1), date(2026, 1, 31))
        assert report["total_reconciliations"] == 0

    def test_report_range_must_be_ordered(self, db_session, shop_a):
        with pytest.raises(ValidationError):
            reconciliation_service.get_variance_report(shop_a.id, date(2026, 2, 1), date(2026, 1, 1))

    def test_stats(self, db_session, shop_a, history):
        stats = reconciliation_service.get_reconciliation_stats(shop_a.id)

        assert stats["total_reconciliations"] == 3
        assert stats["reconciled"] == 2
        assert stats["pending_variances"] == 1
        assert stats["last_reconciliation"] == "2026-03-10"


class TestStockReconciliation:

    def test_count_books_correction(self, db_session, shop_a, branch_a1, product_a, audit_sink):
        record = reconciliation_service.create_stock_reconciliation(
            shop_a.id, ACTOR, product_a.id, 93, branch_id=branch_a1.id, day=DAY
        )
        db_session.commit()

        assert record.system_quantity == 100
        assert record.variance == -7
        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 93
        assert get_stock(shop_a.id, product_a.id) == 100

        adjustment = db_session.get(StockAdjustment, record.adjustment_id)
        assert adjustment.reason == "correction"
        assert adjustment.quantity_change == -7
        assert adjustment.reference == "COUNT-20260315"
        assert audit_sink.actions()[-1] == "stock_reconciliation"

    def test_matching_count_books_nothing(self, db_session, shop_a, product_a):
        record = reconciliation_service.create_stock_reconciliation(shop_a.id, ACTOR, product_a.id, 100)
        db_session.commit()

        assert record.variance == 0
        assert record.adjustment_id is None
        assert db_session.query(StockAdjustment).count() == 0

    def test_count_overrides_negative_ledger(self, db_session, shop_a, product_a2, allow_negative):
        apply_delta(shop_a.id, product_a2.id, None, -8)
        db_session.commit()

        record = reconciliation_service.create_stock_reconciliation(shop_a.id, ACTOR, product_a2.id, 2)
        db_session.commit()

        assert record.system_quantity == -3
        assert record.variance == 5
        assert get_stock(shop_a.id, product_a2.id) == 2

    def test_negative_count_rejected(self, db_session, shop_a, product_a):
        with pytest.raises(ValidationError):
            reconciliation_service.create_stock_reconciliation(shop_a.id, ACTOR, product_a.id, -1)

    def test_foreign_product(self, db_session, shop_a, product_b):
        with pytest.raises(NotFoundError):
            reconciliation_service.create_stock_reconciliation(shop_a.id, ACTOR, product_b.id, 3)

    def test_history_filters(self, db_session, shop_a, product_a, product_a2):
        reconciliation_service.create_stock_reconciliation(shop_a.id, ACTOR, product_a.id, 100, day=DAY)
        reconciliation_service.create_stock_reconciliation(shop_a.id, ACTOR, product_a2.id, 4, day=DAY)
        db_session.commit()

        assert len(reconciliation_service.get_stock_reconciliation_history(shop_a.id)) == 2
        variances = reconciliation_service.get_stock_reconciliation_history(shop_a.id, only_variances=True)
        assert [r.product_id for r in variances] == [product_a2.id]
        by_product = reconciliation_service.get_stock_reconciliation_history(shop_a.id, product_id=product_a.id)
        assert len(by_product) == 1
