"""
Order lifecycle: status transitions, totals, table coupling and settlement.
"""
from datetime import datetime

import pytest

from models.coupon import Coupon, CouponType
from models.customer_data import CollectionSource, CustomerData
from models.order_management import OrderHistory, OrderStatus, OrderType, PaymentMethod, PendingOrder
from models.table_management import TableStatus
from services import order_lifecycle, table_occupancy
from services.errors import CouponValidationError, InvalidTransitionError, TableStateError


def dine_in(db_session, location, user, tables, items=()):
    order = order_lifecycle.create_temporary_order(
        db_session, location, user, OrderType.DINE_IN, [t.id for t in tables], items
    )
    db_session.commit()
    return order


class TestTransitions:
    @pytest.mark.parametrize("current,new", [
        (OrderStatus.TEMPORARY, OrderStatus.ONGOING),
        (OrderStatus.ONGOING, OrderStatus.TRANSFERRED),
        (OrderStatus.ONGOING, OrderStatus.TEMPORARY),
        (OrderStatus.TRANSFERRED, OrderStatus.SETTLED),
        (OrderStatus.TRANSFERRED, OrderStatus.COMPLETED),
        (OrderStatus.TRANSFERRED, OrderStatus.CANCELLED),
    ])
    def test_allowed(self, current, new):
        order_lifecycle.validate_status_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        (OrderStatus.TEMPORARY, OrderStatus.SETTLED),
        (OrderStatus.TEMPORARY, OrderStatus.TRANSFERRED),
        (OrderStatus.TRANSFERRED, OrderStatus.ONGOING),
        (OrderStatus.SETTLED, OrderStatus.CANCELLED),
        (OrderStatus.CANCELLED, OrderStatus.ONGOING),
        (OrderStatus.COMPLETED, OrderStatus.SETTLED),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(InvalidTransitionError):
            order_lifecycle.validate_status_transition(current, new)


class TestOrderCreation:
    def test_order_number_sequence(self, db_session, location, staff, tables):
        first = dine_in(db_session, location, staff, [tables[0]])
        second = dine_in(db_session, location, staff, [tables[1]])

        today = datetime.utcnow().strftime("%y%m%d")
        assert first.order_number == f"ORD-{today}-001"
        assert second.order_number == f"ORD-{today}-002"

    def test_empty_order_is_temporary_and_occupies_tables(self, db_session, location, staff, tables):
        order = dine_in(db_session, location, staff, [tables[0]])

        assert order.status == OrderStatus.TEMPORARY
        assert tables[0].status == TableStatus.OCCUPIED
        assert tables[0].current_order_id == order.id
        assert db_session.query(OrderHistory).filter_by(order_id=order.id, action="created").count() == 1

    def test_order_with_items_is_ongoing(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)

        assert order.status == OrderStatus.ONGOING
        assert order.subtotal == 300
        assert order.cgst_amount == 7.5
        assert order.sgst_amount == 7.5
        assert order.total_amount == 315

    def test_occupied_table_refused(self, db_session, location, staff, tables):
        dine_in(db_session, location, staff, [tables[0]])
        with pytest.raises(TableStateError):
            dine_in(db_session, location, staff, [tables[0]])

    def test_merged_table_occupies_whole_group(self, db_session, location, staff, tables):
        table_occupancy.merge_tables(db_session, [tables[0], tables[1]])
        db_session.commit()

        order = dine_in(db_session, location, staff, [tables[1]])
        assert order.table_ids == [tables[0].id, tables[1].id]
        assert tables[0].status == TableStatus.OCCUPIED

    def test_delivery_order_without_tables(self, db_session, location, staff, items):
        order = order_lifecycle.create_temporary_order(
            db_session, location, staff, OrderType.DELIVERY, items=items,
            customer_name="Ravi", delivery_address="12 Park Street", order_mode="swiggy",
        )
        assert order.tables == []
        assert order.order_mode == "swiggy"

    def test_dine_in_requires_table(self, db_session, location, staff):
        with pytest.raises(ValueError):
            order_lifecycle.create_temporary_order(db_session, location, staff, OrderType.DINE_IN)

    def test_manager_order_goes_to_queue(self, db_session, location, manager, tables, items):
        order = order_lifecycle.create_manager_order(
            db_session, location, manager, OrderType.DINE_IN, [tables[0].id], items
        )
        db_session.commit()

        assert order.status == OrderStatus.TRANSFERRED
        assert db_session.query(PendingOrder).filter_by(order_id=order.id).count() == 1

    def test_manager_order_needs_items(self, db_session, location, manager, tables):
        with pytest.raises(InvalidTransitionError):
            order_lifecycle.create_manager_order(db_session, location, manager, OrderType.DINE_IN, [tables[0].id])


class TestStaffEditing:
    def test_emptying_items_returns_to_temporary(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.update_order_items(db_session, order, [], staff)

        assert order.status == OrderStatus.TEMPORARY
        assert order.total_amount == 0

    def test_transferred_order_is_read_only_to_staff(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.update_order_items(db_session, order, items, staff)

    def test_empty_order_cannot_be_transferred(self, db_session, location, staff, tables):
        order = dine_in(db_session, location, staff, [tables[0]])
        with pytest.raises(InvalidTransitionError):
            order_lifecycle.transfer_order(db_session, order, staff)

    def test_manager_edit_keeps_items(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        order_lifecycle.manager_update_order(
            db_session, order, manager, items=[{"name": "Thali", "price": 400, "quantity": 1}], notes="swap"
        )
        assert order.subtotal == 400
        with pytest.raises(ValueError):
            order_lifecycle.manager_update_order(db_session, order, manager, items=[])


class TestTransferAndSettle:
    def test_transfer_records_customer_data(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(
            db_session, order, staff, customer={"name": "Asha", "phone": "9800000000", "city": "Pune"},
            payment_method=PaymentMethod.UPI,
        )
        db_session.commit()

        record = db_session.query(CustomerData).filter_by(order_id=order.id).one()
        assert record.source == CollectionSource.STAFF
        assert record.payment_method == PaymentMethod.UPI
        assert order.pending_payment_method == PaymentMethod.UPI
        assert tables[0].status == TableStatus.OCCUPIED

    def test_settle_releases_every_table(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0], tables[1]], items)
        order_lifecycle.transfer_order(db_session, order, staff, payment_method=PaymentMethod.CARD)
        db_session.commit()

        order, release_result = order_lifecycle.settle_order(db_session, order, manager)
        db_session.commit()

        assert order.status == OrderStatus.SETTLED
        assert order.payment_method == PaymentMethod.CARD
        assert order.amount_paid == order.total_amount
        assert release_result.succeeded == [tables[0].id, tables[1].id]
        for table in tables[:2]:
            assert table.status == TableStatus.AVAILABLE
            assert table.current_order_id is None
        assert db_session.query(PendingOrder).filter_by(order_id=order.id).count() == 0

    def test_settle_defaults_to_cash(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)
        order, _ = order_lifecycle.settle_order(db_session, order, manager)
        assert order.payment_method == PaymentMethod.CASH

    def test_settle_keeps_staff_as_collector(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff, customer={"phone": "9800000000"})
        order_lifecycle.settle_order(db_session, order, manager, payment_method=PaymentMethod.CARD)
        db_session.commit()

        record = db_session.query(CustomerData).filter_by(order_id=order.id).one()
        assert record.source == CollectionSource.STAFF
        assert record.payment_method == PaymentMethod.CARD

    def test_cannot_settle_ongoing_order(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        with pytest.raises(InvalidTransitionError):
            order_lifecycle.settle_order(db_session, order, manager)

    def test_accept_assigns_manager(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        entry = order_lifecycle.accept_pending_order(db_session, order, manager)
        assert entry.assigned_to_id == manager.id

    def test_settle_skips_table_taken_by_another_order(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)
        tables[0].current_order_id = order.id + 100
        db_session.commit()

        order, release_result = order_lifecycle.settle_order(db_session, order, manager)
        assert order.status == OrderStatus.SETTLED
        assert release_result.failed[0]["table_id"] == tables[0].id
        assert tables[0].status == TableStatus.OCCUPIED

    def test_settled_order_cannot_be_settled_again(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)
        order_lifecycle.settle_order(db_session, order, manager, payment_method=PaymentMethod.UPI, amount=100)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.settle_order(db_session, order, manager, payment_method=PaymentMethod.CASH, amount=1)
        db_session.rollback()

        assert order.amount_paid == 100
        assert order.payment_method == PaymentMethod.UPI
        settled = db_session.query(OrderHistory).filter_by(order_id=order.id, action="settled").count()
        assert settled == 1

    def test_completed_order_cannot_be_completed_again(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)
        order_lifecycle.complete_order(db_session, order, manager)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.complete_order(db_session, order, manager)

    def test_transferred_order_cannot_be_transferred_again(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.transfer_order(db_session, order, staff)
        db_session.rollback()
        assert db_session.query(PendingOrder).filter_by(order_id=order.id).count() == 1


class TestCancel:
    def test_staff_cancels_ongoing_order(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order, release_result = order_lifecycle.cancel_order(db_session, order, staff, reason="walked out")

        assert order.status == OrderStatus.CANCELLED
        assert release_result.ok
        assert tables[0].status == TableStatus.AVAILABLE

    def test_staff_cannot_cancel_transferred_order(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.cancel_order(db_session, order, staff)

    def test_manager_cancels_transferred_order(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        order, _ = order_lifecycle.cancel_order(db_session, order, manager)
        assert order.status == OrderStatus.CANCELLED
        assert db_session.query(PendingOrder).filter_by(order_id=order.id).count() == 0

    def test_settled_order_cannot_be_cancelled(self, db_session, location, staff, manager, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)
        order_lifecycle.settle_order(db_session, order, manager)

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.cancel_order(db_session, order, manager)

    def test_cancelled_order_cannot_be_cancelled_again(self, db_session, location, staff, tables, items):
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.cancel_order(db_session, order, staff, reason="walked out")
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.cancel_order(db_session, order, staff, reason="again")


class TestCoupons:
    def _coupon(self, db_session, location, manager, **fields):
        coupon = Coupon(location_id=location.id, created_by_id=manager.id, is_active=True, **fields)
        db_session.add(coupon)
        db_session.commit()
        return coupon

    def test_percentage_coupon_capped(self, db_session, location, staff, manager, tables, items):
        """Subtotal 300, 10% capped at 20: total is 300 + 15 tax - 20."""
        coupon = self._coupon(db_session, location, manager, name="TEN", type=CouponType.PERCENTAGE,
                              value=10, max_discount_amount=20)
        order = dine_in(db_session, location, staff, [tables[0]], items)

        order_lifecycle.apply_coupons(db_session, order, staff, regular_coupon=coupon)
        db_session.commit()

        assert order.coupon_discount == 20
        assert order.original_total == 315
        assert order.total_amount == 295

    def test_taxes_use_pre_discount_subtotal(self, db_session, location, staff, manager, tables, items):
        coupon = self._coupon(db_session, location, manager, name="FLAT100", type=CouponType.FIXED, value=100)
        order = dine_in(db_session, location, staff, [tables[0]], items)

        order_lifecycle.apply_coupons(db_session, order, staff, regular_coupon=coupon)
        assert order.cgst_amount == 7.5
        assert order.total_amount == 215

    def test_dish_coupon_follows_item_changes(self, db_session, location, staff, manager, tables):
        from services.coupons import create_dish_coupons

        dish = create_dish_coupons(db_session, location.id, "Chilli Chicken", [8], manager.id).created[0]
        order = dine_in(db_session, location, staff, [tables[0]], [{"name": "Chilli Chicken", "price": 169, "quantity": 1}])
        order_lifecycle.apply_coupons(db_session, order, staff, dish_coupons=[dish])
        assert order.coupon_discount == 13

        order_lifecycle.update_order_items(
            db_session, order,
            [{"name": "Chilli Chicken", "price": 169, "quantity": 1}, {"name": "Chilli Chicken", "price": 250, "quantity": 1}],
            staff,
        )
        assert order.coupon_discount == 13 + 20
        assert order.applied_coupons[0].discount_amount == 33

    def test_coupon_from_other_location_refused(self, db_session, location, other_location, staff, manager, tables, items):
        coupon = self._coupon(db_session, other_location, manager, name="AWAY", type=CouponType.FIXED, value=10)
        order = dine_in(db_session, location, staff, [tables[0]], items)

        with pytest.raises(CouponValidationError):
            order_lifecycle.apply_coupons(db_session, order, staff, regular_coupon=coupon)

    def test_remove_coupons(self, db_session, location, staff, manager, tables, items):
        coupon = self._coupon(db_session, location, manager, name="FLAT50", type=CouponType.FIXED, value=50)
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.apply_coupons(db_session, order, staff, regular_coupon=coupon)

        order_lifecycle.remove_coupons(db_session, order, staff)
        assert order.applied_coupons == []
        assert order.total_amount == 315

    def test_staff_cannot_change_coupons_on_transferred_order(self, db_session, location, staff, manager, tables, items):
        coupon = self._coupon(db_session, location, manager, name="FLAT50", type=CouponType.FIXED, value=50)
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        with pytest.raises(InvalidTransitionError):
            order_lifecycle.apply_coupons(db_session, order, staff, regular_coupon=coupon)
        with pytest.raises(InvalidTransitionError):
            order_lifecycle.remove_coupons(db_session, order, staff)
        assert order.applied_coupons == []

    def test_manager_changes_coupons_on_transferred_order(self, db_session, location, staff, manager, tables, items):
        coupon = self._coupon(db_session, location, manager, name="FLAT50", type=CouponType.FIXED, value=50)
        order = dine_in(db_session, location, staff, [tables[0]], items)
        order_lifecycle.transfer_order(db_session, order, staff)

        order_lifecycle.apply_coupons(db_session, order, manager, regular_coupon=coupon)
        assert order.total_amount == 265
        order_lifecycle.remove_coupons(db_session, order, manager)
        assert order.total_amount == 315
