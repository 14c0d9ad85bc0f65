"""
Order lifecycle state machine.

    temporary -> ongoing -> transferred -> settled | completed
        \\           \\            \\
         +-----------+------------+-> cancelled

Staff own an order while it is temporary or ongoing; a transfer hands it
to the manager billing queue and makes it read-only to staff. Every
transition that ends an order's occupancy releases its tables. Functions
flush but never commit.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from models.coupon import AppliedCoupon, AppliedCouponKind, CouponType
from models.customer_data import CollectionSource
from models.location import Location
from models.order_management import (
    Order, OrderItem, OrderHistory, OrderStatus, OrderType, PaymentMethod, PendingOrder, PendingStatus
)
from models.table_management import Table, TableStatus
from models.user import User
from services import coupon_engine
from services.customer_data import upsert_customer_data
from services.errors import CouponValidationError, InvalidTransitionError, TableStateError
from services.table_occupancy import BatchResult, merge_group_members, occupy_table, release_tables

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    OrderStatus.TEMPORARY: [OrderStatus.ONGOING, OrderStatus.CANCELLED],
    OrderStatus.ONGOING: [OrderStatus.TEMPORARY, OrderStatus.TRANSFERRED, OrderStatus.CANCELLED],
    OrderStatus.TRANSFERRED: [OrderStatus.SETTLED, OrderStatus.COMPLETED, OrderStatus.CANCELLED],
    OrderStatus.SETTLED: [],
    OrderStatus.COMPLETED: [],
    OrderStatus.CANCELLED: [],
}

STAFF_EDITABLE_STATUSES = (OrderStatus.TEMPORARY, OrderStatus.ONGOING)
TERMINAL_STATUSES = (OrderStatus.SETTLED, OrderStatus.COMPLETED, OrderStatus.CANCELLED)


def validate_status_transition(current_status, new_status):
    current_status = OrderStatus(current_status)
    new_status = OrderStatus(new_status)
    if new_status not in VALID_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            f"Invalid status transition from {current_status.value} to {new_status.value}"
        )


def _set_status(order: Order, new_status: OrderStatus):
    validate_status_transition(order.status, new_status)
    order.status = new_status


def generate_order_number(db: Session, location_id: int, now: Optional[datetime] = None) -> str:
    """Sequential per location and day: ORD-YYMMDD-NNN."""
    now = now or datetime.utcnow()
    prefix = f"ORD-{now.strftime('%y%m%d')}-"
    numbers = db.query(Order.order_number).filter(
        Order.location_id == location_id,
        Order.order_number.like(f"{prefix}%")
    ).all()

    sequence = 0
    for (order_number,) in numbers:
        try:
            sequence = max(sequence, int(order_number.split('-')[-1]))
        except (IndexError, ValueError):
            logger.error(f"Invalid order number format: {order_number} for location {location_id}")
    return f"{prefix}{sequence + 1:03d}"


def record_history(db: Session, order: Order, action: str, performed_by_id: int, changes: Optional[dict] = None):
    entry = OrderHistory(
        order_id=order.id,
        location_id=order.location_id,
        action=action,
        performed_by_id=performed_by_id,
        changes=changes or {},
        timestamp=datetime.utcnow(),
    )
    db.add(entry)
    return entry


def _item_fields(item) -> dict:
    if hasattr(item, "model_dump"):
        return item.model_dump()
    return dict(item)


def build_items(items: Iterable) -> List[OrderItem]:
    built = []
    for item in items:
        data = _item_fields(item)
        if not data.get("name") or not str(data["name"]).strip():
            raise ValueError("Item name is required")
        if data.get("price") is None or data["price"] < 0:
            raise ValueError(f"Invalid price for {data['name']}")
        if not data.get("quantity") or data["quantity"] < 1:
            raise ValueError(f"Quantity for {data['name']} must be at least 1")
        built.append(OrderItem(
            menu_item_id=data.get("menu_item_id"),
            name=data["name"].strip(),
            price=data["price"],
            quantity=data["quantity"],
            portion_size=data.get("portion_size"),
            modifications=data.get("modifications") or None,
            notes=data.get("notes"),
            added_at=datetime.utcnow(),
        ))
    return built


def recalculate_totals(order: Order, location: Optional[Location] = None) -> Order:
    """Recompute subtotal, taxes, coupon discount and total from the current items.

    total = subtotal + cgst + sgst + service charge - discount, never negative,
    with the discount capped at the subtotal.
    """
    location = location or order.location
    subtotal = round(sum(item.price * item.quantity for item in order.items), 2)
    cgst = round(subtotal * (location.cgst_rate or 0) / 100, 2)
    sgst = round(subtotal * (location.sgst_rate or 0) / 100, 2)
    service_charge = round(subtotal * (location.service_charge_rate or 0) / 100, 2)

    order_coupons = coupon_engine.OrderCoupons.from_applied(order.applied_coupons)
    breakdown = coupon_engine.calculate_total_discount(order_coupons, subtotal, order.items)
    for applied, (_, amount) in zip(order_coupons.dish_coupons, breakdown.dish_discounts):
        applied.discount_amount = amount

    order.subtotal = subtotal
    order.cgst_amount = cgst
    order.sgst_amount = sgst
    order.service_charge = service_charge
    order.coupon_discount = round(breakdown.total_discount, 2)
    order.original_total = round(subtotal + cgst + sgst + service_charge, 2)
    order.total_amount = round(max(order.original_total - order.coupon_discount, 0.0), 2)
    return order


def resolve_tables(db: Session, location_id: int, table_ids: Sequence[int]) -> List[Table]:
    """Load requested tables, expanding merged groups to all their members."""
    resolved = {}
    for table_id in table_ids:
        table = db.query(Table).filter(Table.id == table_id, Table.location_id == location_id).first()
        if table is None:
            raise TableStateError(f"Table {table_id} not found at location {location_id}")
        for member in merge_group_members(db, table):
            resolved[member.id] = member

    for table in resolved.values():
        if table.status not in (TableStatus.AVAILABLE, TableStatus.RESERVED):
            raise TableStateError(f"Table {table.name} is {TableStatus(table.status).value}")
    return [resolved[key] for key in sorted(resolved)]


def create_temporary_order(db: Session, location: Location, staff: User, order_type: OrderType,
                           table_ids: Sequence[int] = (), items: Iterable = (), **details) -> Order:
    """Open an order for a party; it starts temporary, or ongoing when items come with it."""
    order_type = OrderType(order_type)
    tables = resolve_tables(db, location.id, table_ids) if table_ids else []

    order = Order(
        order_number=generate_order_number(db, location.id),
        location_id=location.id,
        staff_id=staff.id,
        order_type=order_type,
        status=OrderStatus.TEMPORARY,
        customer_name=details.get("customer_name"),
        customer_phone=details.get("customer_phone"),
        delivery_address=details.get("delivery_address"),
        order_mode=details.get("order_mode"),
        notes=details.get("notes"),
        session_started_at=datetime.utcnow(),
        last_activity_at=datetime.utcnow(),
    )
    order.location = location
    order.tables = tables
    order.items = build_items(items)
    order.validate_tables()
    if order.items:
        order.status = OrderStatus.ONGOING
    recalculate_totals(order, location)

    db.add(order)
    db.flush()

    for table in tables:
        occupy_table(table, order.id)

    record_history(db, order, "created", staff.id, {
        "order_number": order.order_number,
        "table_ids": [t.id for t in tables],
        "order_type": order_type.value,
    })
    db.flush()
    logger.info(f"Order {order.id} ({order.order_number}) created by user {staff.id} at location {location.id}")
    return order


def create_manager_order(db: Session, location: Location, manager: User, order_type: OrderType,
                         table_ids: Sequence[int] = (), items: Iterable = (), **details) -> Order:
    """A manager takes an order directly; it goes straight to the billing queue."""
    order = create_temporary_order(db, location, manager, order_type, table_ids, items, **details)
    if not order.items:
        raise InvalidTransitionError("Manager orders need at least one item")
    return transfer_order(db, order, manager, notes=details.get("notes") or "Manager order")


def update_order_items(db: Session, order: Order, items: Iterable, staff: User) -> Order:
    if OrderStatus(order.status) not in STAFF_EDITABLE_STATUSES:
        raise InvalidTransitionError(f"Items cannot be changed on a {OrderStatus(order.status).value} order")

    order.items = build_items(items)
    new_status = OrderStatus.ONGOING if order.items else OrderStatus.TEMPORARY
    if OrderStatus(order.status) != new_status:
        _set_status(order, new_status)
    recalculate_totals(order)
    order.last_activity_at = datetime.utcnow()
    order.updated_by_id = staff.id

    record_history(db, order, "updated", staff.id, {
        "items_count": len(order.items),
        "total_amount": order.total_amount,
    })
    db.flush()
    return order


def manager_update_order(db: Session, order: Order, manager: User, items: Optional[Iterable] = None,
                         notes: Optional[str] = None, customer_name: Optional[str] = None,
                         payment_method: Optional[PaymentMethod] = None) -> Order:
    if OrderStatus(order.status) in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"A {OrderStatus(order.status).value} order cannot be edited")

    if items is not None:
        built = build_items(items)
        if not built:
            raise ValueError("An order must keep at least one item; cancel it instead")
        order.items = built
    if notes is not None:
        order.notes = notes
    if customer_name is not None:
        order.customer_name = customer_name
    if payment_method is not None:
        order.pending_payment_method = PaymentMethod(payment_method)

    recalculate_totals(order)
    order.updated_by_id = manager.id
    record_history(db, order, "updated", manager.id, {
        "items_count": len(order.items),
        "total_amount": order.total_amount,
        "notes": order.notes,
    })
    db.flush()
    return order


def transfer_order(db: Session, order: Order, staff: User, notes: Optional[str] = None,
                   customer: Optional[dict] = None, payment_method: Optional[PaymentMethod] = None) -> Order:
    """Hand an order to the manager billing queue ("Go for Bill")."""
    if OrderStatus(order.status) == OrderStatus.TEMPORARY:
        raise InvalidTransitionError("Cannot transfer an order without items")
    _set_status(order, OrderStatus.TRANSFERRED)

    now = datetime.utcnow()
    order.transferred_at = now
    order.transferred_by_id = staff.id
    if payment_method is not None:
        order.pending_payment_method = PaymentMethod(payment_method)

    db.add(PendingOrder(
        order_id=order.id,
        location_id=order.location_id,
        transferred_by_id=staff.id,
        status=PendingStatus.PENDING,
        notes=notes or "Staff transferred order for billing",
    ))

    if customer and any(customer.get(key) for key in ("name", "phone", "city")):
        upsert_customer_data(
            db, order,
            name=customer.get("name"),
            phone=customer.get("phone"),
            city=customer.get("city"),
            payment_method=payment_method,
            source=CollectionSource.MANAGER if staff.is_manager else CollectionSource.STAFF,
        )

    record_history(db, order, "transferred", staff.id, {
        "notes": notes,
        "has_customer_data": bool(customer),
    })
    db.flush()
    logger.info(f"Order {order.id} transferred to manager queue by user {staff.id}")
    return order


def accept_pending_order(db: Session, order: Order, manager: User) -> PendingOrder:
    if OrderStatus(order.status) != OrderStatus.TRANSFERRED:
        raise InvalidTransitionError("Only transferred orders can be accepted")
    entry = db.query(PendingOrder).filter(PendingOrder.order_id == order.id).first()
    if entry is None:
        raise InvalidTransitionError(f"Order {order.id} is not in the manager queue")

    entry.status = PendingStatus.ASSIGNED
    entry.assigned_to_id = manager.id
    entry.assigned_at = datetime.utcnow()
    record_history(db, order, "accepted", manager.id)
    db.flush()
    return entry


def release_order_tables(db: Session, order: Order) -> BatchResult:
    result = release_tables(db, order.table_ids, order_id=order.id)
    if not result.ok:
        logger.warning(f"Order {order.id} left {len(result.failed)} table(s) unreleased: {result.failed}")
    return result


def _clear_pending_entries(db: Session, order: Order):
    db.query(PendingOrder).filter(PendingOrder.order_id == order.id).delete(synchronize_session="fetch")


def settle_order(db: Session, order: Order, manager: User, payment_method: Optional[PaymentMethod] = None,
                 amount: Optional[float] = None) -> Tuple[Order, BatchResult]:
    _set_status(order, OrderStatus.SETTLED)

    recalculate_totals(order)
    method = PaymentMethod(payment_method or order.pending_payment_method or PaymentMethod.CASH)
    now = datetime.utcnow()
    order.payment_method = method
    order.pending_payment_method = None
    order.amount_paid = amount if amount is not None else order.total_amount
    order.settled_at = now
    order.completed_at = now
    order.settled_by_id = manager.id

    _clear_pending_entries(db, order)
    release_result = release_order_tables(db, order)

    upsert_customer_data(db, order, payment_method=method, source=CollectionSource.MANAGER, create=False)

    record_history(db, order, "settled", manager.id, {
        "payment_method": method.value,
        "amount": order.amount_paid,
        "unreleased_tables": release_result.failed,
    })
    db.flush()
    logger.info(f"Order {order.id} settled by manager {manager.id} via {method.value}")
    return order, release_result


def complete_order(db: Session, order: Order, manager: User) -> Tuple[Order, BatchResult]:
    _set_status(order, OrderStatus.COMPLETED)
    recalculate_totals(order)
    order.completed_at = datetime.utcnow()
    order.settled_by_id = manager.id

    _clear_pending_entries(db, order)
    release_result = release_order_tables(db, order)
    record_history(db, order, "completed", manager.id, {"unreleased_tables": release_result.failed})
    db.flush()
    logger.info(f"Order {order.id} completed by manager {manager.id}")
    return order, release_result


def cancel_order(db: Session, order: Order, actor: User, reason: Optional[str] = None) -> Tuple[Order, BatchResult]:
    if OrderStatus(order.status) == OrderStatus.TRANSFERRED and not actor.is_manager:
        raise InvalidTransitionError("Transferred orders can only be cancelled by a manager")
    _set_status(order, OrderStatus.CANCELLED)

    order.cancelled_at = datetime.utcnow()
    order.cancelled_by_id = actor.id
    _clear_pending_entries(db, order)
    release_result = release_order_tables(db, order)

    record_history(db, order, "cancelled", actor.id, {
        "reason": reason,
        "table_ids": order.table_ids,
        "order_type": OrderType(order.order_type).value,
        "unreleased_tables": release_result.failed,
    })
    db.flush()
    logger.info(f"Order {order.id} cancelled by user {actor.id}")
    return order, release_result


def _check_coupons_editable(order: Order, actor: User):
    status = OrderStatus(order.status)
    if status in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Coupons cannot be changed on a {status.value} order")
    if status == OrderStatus.TRANSFERRED and not actor.is_manager:
        raise InvalidTransitionError("Coupons on a transferred order can only be changed by a manager")


def apply_coupons(db: Session, order: Order, actor: User, regular_coupon=None, dish_coupons: Sequence = ()) -> Order:
    """Replace the coupons on an order after validating the combination."""
    _check_coupons_editable(order, actor)
    for coupon in [regular_coupon, *dish_coupons]:
        if coupon is not None and coupon.location_id != order.location_id:
            raise CouponValidationError("Coupon belongs to a different location")

    subtotal = sum(item.price * item.quantity for item in order.items)
    is_valid, error = coupon_engine.validate_coupon_combination(regular_coupon, dish_coupons, subtotal, order.items)
    if not is_valid:
        raise CouponValidationError(error)

    applied = []
    if regular_coupon is not None:
        applied.append(AppliedCoupon(
            kind=AppliedCouponKind.REGULAR,
            coupon_id=regular_coupon.id,
            name=regular_coupon.name,
            coupon_type=CouponType(regular_coupon.type),
            discount_amount=coupon_engine.calculate_coupon_discount(regular_coupon, subtotal),
            applied_at=datetime.utcnow(),
        ))
    for dish_coupon in dish_coupons:
        applied.append(AppliedCoupon(
            kind=AppliedCouponKind.DISH,
            coupon_id=dish_coupon.id,
            name=dish_coupon.coupon_code,
            coupon_type=CouponType.PERCENTAGE,
            dish_name=dish_coupon.dish_name,
            discount_percentage=dish_coupon.discount_percentage,
            discount_amount=coupon_engine.calculate_dish_coupon_discount(dish_coupon, order.items),
            applied_at=datetime.utcnow(),
        ))

    order.applied_coupons = applied
    recalculate_totals(order)
    record_history(db, order, "coupons_applied", actor.id, {
        "coupons": [coupon.name for coupon in applied],
        "discount": order.coupon_discount,
    })
    db.flush()
    return order


def remove_coupons(db: Session, order: Order, actor: User) -> Order:
    _check_coupons_editable(order, actor)
    order.applied_coupons = []
    recalculate_totals(order)
    record_history(db, order, "coupons_removed", actor.id)
    db.flush()
    return order
