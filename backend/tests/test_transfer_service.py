# Overview: Pytest coverage for the stock transfer lifecycle.

"""
Stock Transfer Tests

LIFECYCLE:
- create (pending_approval | draft) -> submit -> approve -> ship -> receive
- reject from draft/pending_approval, cancel from any non-terminal state

LEDGER EFFECTS:
- ship decrements the source; receive increments the destination by
  received - damaged; cancel in flight returns outstanding units

CONCURRENCY:
- A transition guarded on a version the row no longer has raises
  StaleStateError and leaves stock untouched
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from branchstock.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from branchstock.models import StockAdjustment, StockTransfer
from branchstock.services import transfer_service
from branchstock.services.concurrency import run_in_transaction
from branchstock.services.ledger_service import apply_delta, get_stock
from branchstock.time_utils import utcnow

ACTOR = 7


def _create(shop, source, destination, items, **extra):
    payload = {
        "from_branch_id": source if source == "main" else source.id,
        "to_branch_id": destination if destination == "main" else destination.id,
        "items": items,
    }
    as_draft = extra.pop("as_draft", False)
    payload.update(extra)
    return transfer_service.create_transfer(shop.id, ACTOR, payload, as_draft=as_draft)


def _in_transit(db_session, shop, source, destination, items):
    transfer = _create(shop, source, destination, items)
    transfer_service.approve_transfer(shop.id, transfer.id, ACTOR)
    transfer_service.ship_transfer(shop.id, transfer.id, ACTOR, tracking_number="TRK-1", carrier="DHL")
    db_session.commit()
    return transfer


def _bump_version(db_session, transfer_id):
    """Simulate another request winning the race on this transfer."""
    db_session.execute(
        update(StockTransfer)
        .where(StockTransfer.id == transfer_id)
        .values(version_id=StockTransfer.version_id + 1)
        .execution_options(synchronize_session=False)
    )


class TestCreateTransfer:

    def test_create_pending(self, db_session, shop_a, branch_a1, branch_a2, product_a, audit_sink):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}],
                           priority="high", reason="Weekend demand")
        db_session.commit()

        assert transfer.status == "pending_approval"
        assert transfer.transfer_type == "branch_to_branch"
        assert transfer.priority == "high"
        assert transfer.from_branch_name == "Downtown"
        assert transfer.to_branch_name == "Airport"
        assert transfer.total_value_cents == 6000
        assert transfer.version_id == 1
        assert transfer.items[0].unit_cost_cents == 600
        assert transfer.items[0].sku == "PROD-A-001"
        assert audit_sink.actions() == ["create_stock_transfer"]

    def test_transfer_numbers_are_sequential(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        first = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        second = _create(shop_a, branch_a2, branch_a1, [{"product_id": product_a.id, "quantity": 1}])
        db_session.commit()

        today = utcnow().strftime("%Y%m%d")
        assert first.transfer_number == f"TRF-{today}-0001"
        assert second.transfer_number == f"TRF-{today}-0002"

    def test_numbering_is_per_shop(self, db_session, shop_a, shop_b, branch_a1, branch_b1, product_a, product_b):
        a = _create(shop_a, branch_a1, "main", [{"product_id": product_a.id, "quantity": 1}])
        b = _create(shop_b, "main", branch_b1, [{"product_id": product_b.id, "quantity": 1}])
        db_session.commit()

        assert a.transfer_number.endswith("-0001")
        assert b.transfer_number.endswith("-0001")

    def test_main_store_endpoints(self, db_session, shop_a, branch_a1, product_a):
        transfer = _create(shop_a, "main", branch_a1, [{"product_id": product_a.id, "quantity": 5}])

        assert transfer.transfer_type == "main_to_branch"
        assert transfer.is_from_main_store is True
        assert transfer.from_branch_id is None
        assert transfer.from_branch_name == "Main Store"

    def test_draft(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}],
                           as_draft=True)
        assert transfer.status == "draft"

        transfer_service.submit_transfer(shop_a.id, transfer.id, ACTOR)
        assert transfer.status == "pending_approval"
        assert transfer.version_id == 2

    def test_create_does_not_move_stock(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])
        db_session.commit()

        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 100
        assert db_session.query(StockAdjustment).count() == 0

    def test_same_source_and_destination(self, db_session, shop_a, branch_a1, product_a):
        with pytest.raises(ValidationError, match="must be different"):
            _create(shop_a, branch_a1, branch_a1, [{"product_id": product_a.id, "quantity": 1}])

    def test_source_must_allow_transfers(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        branch_a1.can_transfer_stock = False
        db_session.commit()

        with pytest.raises(ValidationError, match="does not allow stock transfers"):
            _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])

    def test_shortfalls_are_aggregated(self, db_session, shop_a, branch_a1, branch_a2, product_a, product_a2):
        with pytest.raises(InsufficientStockError) as exc:
            _create(shop_a, branch_a1, branch_a2, [
                {"product_id": product_a.id, "quantity": 150},
                {"product_id": product_a2.id, "quantity": 6},
            ])

        assert len(exc.value.shortfalls) == 2
        assert (
            "Insufficient stock in source branch for Product A. Available: 100, Requested: 150"
            in exc.value.message
        )
        assert "Widget. Available: 5, Requested: 6" in exc.value.message

    def test_duplicate_products_rejected(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        with pytest.raises(ValidationError, match="more than once"):
            _create(shop_a, branch_a1, branch_a2, [
                {"product_id": product_a.id, "quantity": 1},
                {"product_id": product_a.id, "quantity": 2},
            ])

    def test_non_positive_quantity_rejected(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        with pytest.raises(ValidationError):
            _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 0}])

    def test_empty_items_rejected(self, db_session, shop_a, branch_a1, branch_a2):
        with pytest.raises(ValidationError):
            _create(shop_a, branch_a1, branch_a2, [])

    def test_foreign_branch(self, db_session, shop_a, branch_a1, branch_b1, product_a):
        with pytest.raises(NotFoundError, match="Destination branch not found"):
            _create(shop_a, branch_a1, branch_b1, [{"product_id": product_a.id, "quantity": 1}])


class TestTransitions:

    def test_approve(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])
        transfer_service.approve_transfer(shop_a.id, transfer.id, 11, notes="OK for Friday")

        assert transfer.status == "approved"
        assert transfer.approved_by == 11
        assert transfer.approved_at is not None
        assert transfer.approval_notes == "OK for Friday"
        assert transfer.version_id == 2

    def test_ship_decrements_source(self, db_session, shop_a, branch_a1, branch_a2, product_a, audit_sink):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        assert transfer.status == "in_transit"
        assert transfer.tracking_number == "TRK-1"
        assert transfer.carrier == "DHL"
        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 90
        # Destination untouched until receipt
        assert get_stock(shop_a.id, product_a.id, branch_a2.id) == 100

        adjustment = db_session.query(StockAdjustment).one()
        assert adjustment.reason == "transfer"
        assert adjustment.quantity_change == -10
        assert adjustment.branch_id == branch_a1.id
        assert adjustment.reference == transfer.transfer_number
        assert adjustment.notes == f"Transfer {transfer.transfer_number} to Airport"
        assert audit_sink.actions() == [
            "create_stock_transfer", "approve_stock_transfer", "ship_stock_transfer",
        ]

    def test_ship_requires_approval(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])

        with pytest.raises(ConflictError, match="Cannot ship transfer with status: pending_approval"):
            transfer_service.ship_transfer(shop_a.id, transfer.id, ACTOR)

    def test_second_ship_is_rejected(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        with pytest.raises(ConflictError):
            transfer_service.ship_transfer(shop_a.id, transfer.id, ACTOR)
        db_session.rollback()

        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 90

    def test_ship_short_source_rolls_back(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 80}])
        transfer_service.approve_transfer(shop_a.id, transfer.id, ACTOR)
        db_session.commit()

        # Stock sold elsewhere between approval and shipping
        apply_delta(shop_a.id, product_a.id, branch_a1.id, -50)
        db_session.commit()

        with pytest.raises(InsufficientStockError):
            transfer_service.ship_transfer(shop_a.id, transfer.id, ACTOR)
        db_session.rollback()

        assert transfer_service.get_transfer(shop_a.id, transfer.id).status == "approved"
        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 50

    def test_reject_requires_reason(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            transfer_service.reject_transfer(shop_a.id, transfer.id, ACTOR, "  ")

    def test_rejected_is_terminal(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        transfer_service.reject_transfer(shop_a.id, transfer.id, ACTOR, "Not needed")

        assert transfer.status == "rejected"
        assert transfer.rejection_reason == "Not needed"
        with pytest.raises(ConflictError):
            transfer_service.approve_transfer(shop_a.id, transfer.id, ACTOR)
        with pytest.raises(ConflictError):
            transfer_service.cancel_transfer(shop_a.id, transfer.id, ACTOR, "Changed mind")

    def test_cancel_before_ship_has_no_ledger_effect(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])
        transfer_service.approve_transfer(shop_a.id, transfer.id, ACTOR)
        transfer_service.cancel_transfer(shop_a.id, transfer.id, ACTOR, "Truck unavailable")
        db_session.commit()

        assert transfer.status == "cancelled"
        assert transfer.cancellation_reason == "Truck unavailable"
        assert db_session.query(StockAdjustment).count() == 0

    def test_cancel_requires_reason(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            transfer_service.cancel_transfer(shop_a.id, transfer.id, ACTOR, None)

    def test_ship_then_cancel_nets_to_zero(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        before = get_stock(shop_a.id, product_a.id, branch_a1.id)
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        transfer_service.cancel_transfer(shop_a.id, transfer.id, ACTOR, "Wrong destination")
        db_session.commit()

        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == before
        changes = [a.quantity_change for a in db_session.query(StockAdjustment).order_by(StockAdjustment.id)]
        assert changes == [-10, 10]

    def test_cancel_partially_received_returns_outstanding(
        self, db_session, shop_a, branch_a1, branch_a2, product_a
    ):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])
        transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR,
                                          [{"product_id": product_a.id, "received_quantity": 4}])
        transfer_service.cancel_transfer(shop_a.id, transfer.id, ACTOR, "Rest lost")
        db_session.commit()

        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 96
        assert get_stock(shop_a.id, product_a.id, branch_a2.id) == 104

    def test_cross_tenant_transfer_is_not_found(self, db_session, shop_a, shop_b, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        db_session.commit()

        with pytest.raises(NotFoundError):
            transfer_service.approve_transfer(shop_b.id, transfer.id, ACTOR)


class TestReceive:

    def test_partial_then_complete(self, db_session, shop_a, branch_a1, branch_a2, product_a, product_a2):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2, [
            {"product_id": product_a.id, "quantity": 10},
            {"product_id": product_a2.id, "quantity": 4},
        ])

        transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR, [
            {"product_id": product_a.id, "received_quantity": 6},
            {"product_id": product_a2.id, "received_quantity": 1},
        ])
        db_session.commit()
        assert transfer.status == "partially_received"
        assert get_stock(shop_a.id, product_a.id, branch_a2.id) == 106

        transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR, [
            {"product_id": product_a.id, "received_quantity": 4},
            {"product_id": product_a2.id, "received_quantity": 3},
        ], notes="Second truck")
        db_session.commit()

        assert transfer.status == "received"
        assert transfer.receipt_notes == "Second truck"
        assert get_stock(shop_a.id, product_a.id, branch_a2.id) == 110
        assert get_stock(shop_a.id, product_a2.id, branch_a2.id) == 9
        assert transfer.total_received == transfer.total_items

    def test_damaged_units_never_enter_stock(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR, [
            {"product_id": product_a.id, "received_quantity": 10, "damaged_quantity": 3},
        ])
        db_session.commit()

        item = transfer.items[0]
        assert transfer.status == "received"
        assert item.received_quantity == 10
        assert item.damaged_quantity == 3
        assert get_stock(shop_a.id, product_a.id, branch_a2.id) == 107

        receipt = (
            db_session.query(StockAdjustment)
            .filter_by(branch_id=branch_a2.id)
            .one()
        )
        assert receipt.quantity_change == 7
        assert receipt.notes.endswith("(3 damaged)")

    def test_item_quantities_stay_consistent(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 9}])

        for received, damaged in ((3, 1), (2, 0), (4, 4)):
            transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR, [
                {"product_id": product_a.id, "received_quantity": received, "damaged_quantity": damaged},
            ])
            item = transfer.items[0]
            assert item.received_quantity + item.outstanding_quantity == item.quantity
            assert item.damaged_quantity <= item.received_quantity

        assert transfer.status == "received"

    @pytest.mark.parametrize("line, message", [
        ({"received_quantity": 2, "damaged_quantity": 3}, "cannot exceed received"),
        ({"received_quantity": 11}, "outstanding"),
        ({"received_quantity": 0}, "at least one received unit"),
        ({"received_quantity": -1}, "must be >= 0"),
    ])
    def test_invalid_receipt_changes_nothing(
        self, db_session, shop_a, branch_a1, branch_a2, product_a, line, message
    ):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        with pytest.raises(ValidationError, match=message):
            transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR,
                                              [{"product_id": product_a.id, **line}])
        db_session.rollback()

        transfer = transfer_service.get_transfer(shop_a.id, transfer.id)
        assert transfer.status == "in_transit"
        assert transfer.items[0].received_quantity == 0
        assert get_stock(shop_a.id, product_a.id, branch_a2.id) == 100

    def test_product_not_in_transfer(self, db_session, shop_a, branch_a1, branch_a2, product_a, product_a2):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        with pytest.raises(ValidationError, match="not in transfer"):
            transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR,
                                              [{"product_id": product_a2.id, "received_quantity": 1}])

    def test_receive_requires_shipment(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])
        transfer_service.approve_transfer(shop_a.id, transfer.id, ACTOR)

        with pytest.raises(ConflictError, match="Cannot receive transfer with status: approved"):
            transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR,
                                              [{"product_id": product_a.id, "received_quantity": 1}])

    def test_received_is_terminal(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 2}])
        transfer_service.receive_transfer(shop_a.id, transfer.id, ACTOR,
                                          [{"product_id": product_a.id, "received_quantity": 2}])

        with pytest.raises(ConflictError):
            transfer_service.cancel_transfer(shop_a.id, transfer.id, ACTOR, "Too late")


class TestOptimisticConcurrency:

    def test_stale_version_raises_and_moves_nothing(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])
        transfer_service.approve_transfer(shop_a.id, transfer.id, ACTOR)
        db_session.commit()

        transfer = transfer_service.get_transfer(shop_a.id, transfer.id)
        _bump_version(db_session, transfer.id)

        with pytest.raises(StaleStateError):
            transfer_service.ship_transfer(shop_a.id, transfer.id, ACTOR)
        db_session.rollback()

        assert db_session.query(StockAdjustment).count() == 0
        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 100

    def test_bounded_retry_recovers(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 10}])
        transfer_service.approve_transfer(shop_a.id, transfer.id, ACTOR)
        db_session.commit()
        transfer_id = transfer.id

        transfer = transfer_service.get_transfer(shop_a.id, transfer_id)
        _bump_version(db_session, transfer_id)

        shipped = run_in_transaction(
            lambda: transfer_service.ship_transfer(shop_a.id, transfer_id, ACTOR),
            conflict_attempts=2,
        )

        assert shipped.status == "in_transit"
        assert get_stock(shop_a.id, product_a.id, branch_a1.id) == 90
        assert db_session.query(StockAdjustment).count() == 1

    def test_retry_surfaces_real_conflict(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        transfer = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 10}])

        with pytest.raises(ConflictError) as exc:
            run_in_transaction(
                lambda: transfer_service.ship_transfer(shop_a.id, transfer.id, ACTOR),
                conflict_attempts=3,
            )
        assert not isinstance(exc.value, StaleStateError)


class TestTransferQueries:

    def test_list_with_filters_and_pages(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        for _ in range(3):
            _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        urgent = _create(shop_a, branch_a2, branch_a1, [{"product_id": product_a.id, "quantity": 1}],
                         priority="urgent")
        db_session.commit()

        page = transfer_service.list_transfers(shop_a.id, page=1, limit=2)
        assert page["total"] == 4
        assert page["pages"] == 2
        assert len(page["transfers"]) == 2

        by_priority = transfer_service.list_transfers(shop_a.id, priority="urgent")
        assert [t.id for t in by_priority["transfers"]] == [urgent.id]

        outgoing = transfer_service.list_transfers(shop_a.id, from_branch_id=branch_a1.id)
        assert outgoing["total"] == 3

    def test_list_filters_on_main_pool(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        to_branch = _create(shop_a, "main", branch_a1, [{"product_id": product_a.id, "quantity": 1}])
        to_main = _create(shop_a, branch_a2, "main", [{"product_id": product_a.id, "quantity": 1}])
        _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        db_session.commit()

        from_main = transfer_service.list_transfers(shop_a.id, from_branch_id="main")
        assert [t.id for t in from_main["transfers"]] == [to_branch.id]

        into_main = transfer_service.list_transfers(shop_a.id, to_branch_id="MAIN")
        assert [t.id for t in into_main["transfers"]] == [to_main.id]

        assert transfer_service.list_transfers(shop_a.id, from_branch_id=str(branch_a2.id))["total"] == 1

    def test_list_rejects_bad_location(self, db_session, shop_a):
        with pytest.raises(ValidationError):
            transfer_service.list_transfers(shop_a.id, to_branch_id="warehouse")

    def test_list_rejects_unknown_status(self, db_session, shop_a):
        with pytest.raises(ValidationError):
            transfer_service.list_transfers(shop_a.id, status="lost")

    def test_branch_view(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        _create(shop_a, "main", branch_a1, [{"product_id": product_a.id, "quantity": 1}])
        db_session.commit()

        assert len(transfer_service.list_transfers_for_branch(shop_a.id, branch_a1.id, "incoming")) == 1
        assert len(transfer_service.list_transfers_for_branch(shop_a.id, branch_a1.id, "outgoing")) == 1
        assert len(transfer_service.list_transfers_for_branch(shop_a.id, branch_a1.id)) == 2
        assert len(transfer_service.list_transfers_for_branch(shop_a.id, branch_a2.id)) == 1

    def test_stats(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        pending = _create(shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        received = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                               [{"product_id": product_a.id, "quantity": 2}])
        transfer_service.receive_transfer(shop_a.id, received.id, ACTOR,
                                          [{"product_id": product_a.id, "received_quantity": 2}])
        db_session.commit()

        stats = transfer_service.get_transfer_stats(shop_a.id)
        assert stats["pending"] == 1
        assert stats["received"] == 1
        assert stats["in_transit"] == 0
        assert stats["total_value_cents"] == 1200
        assert stats["this_month"] == 2
        assert pending.status == "pending_approval"

    def test_stale_transfers(self, db_session, shop_a, branch_a1, branch_a2, product_a):
        old = _in_transit(db_session, shop_a, branch_a1, branch_a2,
                          [{"product_id": product_a.id, "quantity": 1}])
        _in_transit(db_session, shop_a, branch_a1, branch_a2, [{"product_id": product_a.id, "quantity": 1}])
        db_session.execute(
            update(StockTransfer)
            .where(StockTransfer.id == old.id)
            .values(shipped_at=utcnow() - timedelta(days=10))
            .execution_options(synchronize_session=False)
        )
        db_session.commit()

        stale = transfer_service.list_stale_transfers(shop_a.id)
        assert [t.id for t in stale] == [old.id]
        assert transfer_service.list_stale_transfers(shop_a.id, 30) == []
