from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
import logging
from typing import List, Optional
from datetime import date, datetime, time

from utils.database import get_db
from models.coupon import Coupon, DishCoupon
from models.location import Location
from models.order_management import Order, OrderHistory, OrderStatus, OrderType, PendingOrder
from models.user import User
from schemas.coupon import CouponValidationResponse
from schemas.order_management import (
    OrderCreate,
    OrderResponse,
    OrderItemsUpdate,
    ManagerOrderUpdate,
    OrderTransfer,
    OrderSettle,
    OrderCancel,
    OrderCloseResponse,
    CouponSelection,
    PendingOrderResponse,
    OrderHistoryResponse,
)
from services import coupon_engine, order_lifecycle
from services.order_cache import order_cache
from routes.notifications import notify_order_event
from utils.auth import get_current_manager, get_current_staff, get_authorized_location_ids, ensure_location_access
from utils.pdf_generator import generate_receipt_pdf
from utils.validators import service_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


def get_authorized_order(db: Session, current_user: User, order_id: int, expected_version: Optional[int] = None) -> Order:
    order = db.query(Order).filter(
        Order.id == order_id,
        Order.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found or unauthorized")
    if expected_version is not None and order.version_id != expected_version:
        logger.warning(f"Stale version {expected_version} for order {order_id}, current {order.version_id}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The order was changed by another user, reload and try again"
        )
    return order


def _close_response(order: Order, release_result) -> dict:
    return {
        "order": order,
        "released_table_ids": release_result.succeeded,
        "failed_tables": release_result.failed,
    }


# Order Endpoints
@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    logger.debug(f"Parsed OrderCreate: {order.model_dump()}")
    ensure_location_access(current_user, db, order.location_id)
    location = db.query(Location).filter(Location.id == order.location_id).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    try:
        db_order = order_lifecycle.create_temporary_order(
            db, location, current_user, order.order_type, order.table_ids, order.items,
            **order.model_dump(include={"customer_name", "customer_phone", "delivery_address", "order_mode", "notes"})
        )
        db.commit()
        db.refresh(db_order)
    except Exception as e:
        raise service_error(db, e, f"creating order for location {order.location_id}")

    logger.info(f"Order {db_order.id} created by user {current_user.id} for location {order.location_id}")
    await notify_order_event("created", db_order)
    return db_order


@router.post("/manager", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_manager_order(
    order: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    ensure_location_access(current_user, db, order.location_id)
    location = db.query(Location).filter(Location.id == order.location_id).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    try:
        db_order = order_lifecycle.create_manager_order(
            db, location, current_user, order.order_type, order.table_ids, order.items,
            **order.model_dump(include={"customer_name", "customer_phone", "delivery_address", "order_mode", "notes"})
        )
        db.commit()
        db.refresh(db_order)
    except Exception as e:
        raise service_error(db, e, f"creating manager order for location {order.location_id}")

    await notify_order_event("transferred", db_order)
    return db_order


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    location_id: Optional[int] = None,
    order_status: Optional[OrderStatus] = None,
    order_type: Optional[OrderType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    location_ids = get_authorized_location_ids(current_user, db)
    if location_id is not None:
        if location_id not in location_ids:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"No permission for location ID {location_id}")
        location_ids = [location_id]

    query = db.query(Order).filter(Order.location_id.in_(location_ids))
    if order_status is not None:
        query = query.filter(Order.status == order_status)
    if order_type is not None:
        query = query.filter(Order.order_type == order_type)
    if start_date is not None:
        query = query.filter(Order.created_at >= datetime.combine(start_date, time.min))
    if end_date is not None:
        query = query.filter(Order.created_at <= datetime.combine(end_date, time.max))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


@router.get("/pending", response_model=List[PendingOrderResponse])
async def list_pending_orders(
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    """Manager billing queue, oldest transfer first."""
    location_ids = get_authorized_location_ids(current_user, db)
    if location_id is not None:
        if location_id not in location_ids:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"No permission for location ID {location_id}")
        location_ids = [location_id]

    return db.query(PendingOrder).filter(
        PendingOrder.location_id.in_(location_ids)
    ).order_by(PendingOrder.created_at, PendingOrder.id).all()


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    snapshot = order_cache.get(db, order_id)
    if snapshot is None or snapshot["location_id"] not in get_authorized_location_ids(current_user, db):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found or unauthorized")
    return snapshot


@router.put("/{order_id}/items", response_model=OrderResponse)
async def update_order_items(
    order_id: int,
    update: OrderItemsUpdate,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order_lifecycle.update_order_items(db, order, update.items, current_user)
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"updating items of order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("updated", order)
    return order


@router.put("/{order_id}", response_model=OrderResponse)
async def manager_update_order(
    order_id: int,
    update: ManagerOrderUpdate,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order_lifecycle.manager_update_order(
            db, order, current_user,
            items=update.items,
            notes=update.notes,
            customer_name=update.customer_name,
            payment_method=update.payment_method,
        )
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"updating order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("updated", order)
    return order


@router.post("/{order_id}/transfer", response_model=OrderResponse)
async def transfer_order(
    order_id: int,
    transfer: OrderTransfer,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order_lifecycle.transfer_order(
            db, order, current_user,
            notes=transfer.notes,
            customer=transfer.customer.model_dump() if transfer.customer else None,
            payment_method=transfer.payment_method,
        )
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"transferring order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("transferred", order)
    return order


@router.post("/{order_id}/accept", response_model=PendingOrderResponse)
async def accept_pending_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    order = get_authorized_order(db, current_user, order_id)
    try:
        entry = order_lifecycle.accept_pending_order(db, order, current_user)
        db.commit()
        db.refresh(entry)
    except Exception as e:
        raise service_error(db, e, f"accepting order {order_id}")

    await notify_order_event("accepted", order)
    return entry


@router.post("/{order_id}/settle", response_model=OrderCloseResponse)
async def settle_order(
    order_id: int,
    settle: OrderSettle,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order, release_result = order_lifecycle.settle_order(
            db, order, current_user, payment_method=settle.payment_method, amount=settle.amount
        )
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"settling order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("settled", order)
    return _close_response(order, release_result)


@router.post("/{order_id}/complete", response_model=OrderCloseResponse)
async def complete_order(
    order_id: int,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order, release_result = order_lifecycle.complete_order(db, order, current_user)
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"completing order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("completed", order)
    return _close_response(order, release_result)


@router.post("/{order_id}/cancel", response_model=OrderCloseResponse)
async def cancel_order(
    order_id: int,
    cancel: OrderCancel,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order, release_result = order_lifecycle.cancel_order(db, order, current_user, reason=cancel.reason)
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"cancelling order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("cancelled", order)
    return _close_response(order, release_result)


@router.delete("/{order_id}", response_model=OrderCloseResponse)
async def delete_order(
    order_id: int,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Deleting an order cancels it; the record stays for history."""
    return await cancel_order(order_id, OrderCancel(reason="Deleted"), version, db, current_user)


@router.get("/{order_id}/history", response_model=List[OrderHistoryResponse])
async def get_order_history(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id)
    return db.query(OrderHistory).filter(OrderHistory.order_id == order.id).order_by(OrderHistory.id).all()


@router.get("/{order_id}/receipt")
async def download_receipt(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id)
    try:
        pdf_buffer = generate_receipt_pdf(order)
    except Exception as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to generate receipt PDF: {str(e)}")

    headers = {
        'Content-Disposition': f'attachment; filename="receipt_{order.order_number}.pdf"'
    }
    return StreamingResponse(pdf_buffer, media_type='application/pdf', headers=headers)


def _selected_coupons(db: Session, order: Order, selection: CouponSelection):
    regular = None
    if selection.coupon_id is not None:
        regular = db.query(Coupon).filter(
            Coupon.id == selection.coupon_id,
            Coupon.location_id == order.location_id
        ).first()
        if not regular:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Coupon {selection.coupon_id} not found")

    dish_coupons = []
    for dish_coupon_id in selection.dish_coupon_ids:
        dish_coupon = db.query(DishCoupon).filter(
            DishCoupon.id == dish_coupon_id,
            DishCoupon.location_id == order.location_id
        ).first()
        if not dish_coupon:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Dish coupon {dish_coupon_id} not found")
        dish_coupons.append(dish_coupon)
    return regular, dish_coupons


@router.post("/{order_id}/coupons/validate", response_model=CouponValidationResponse)
async def validate_coupons(
    order_id: int,
    selection: CouponSelection,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id)
    regular, dish_coupons = _selected_coupons(db, order, selection)
    subtotal = sum(item.line_total for item in order.items)

    is_valid, error = coupon_engine.validate_coupon_combination(regular, dish_coupons, subtotal, order.items)
    if not is_valid:
        return {"is_valid": False, "error": error}

    regular_discount = coupon_engine.calculate_coupon_discount(regular, subtotal) if regular else 0.0
    dish_discounts = [
        {"dish_name": coupon.dish_name, "coupon_code": coupon.coupon_code,
         "discount": coupon_engine.calculate_dish_coupon_discount(coupon, order.items)}
        for coupon in dish_coupons
    ]
    return {
        "is_valid": True,
        "regular_discount": regular_discount,
        "dish_discounts": dish_discounts,
        "total_discount": min(regular_discount + sum(d["discount"] for d in dish_discounts), subtotal),
    }


@router.post("/{order_id}/coupons", response_model=OrderResponse)
async def apply_coupons(
    order_id: int,
    selection: CouponSelection,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id, version)
    regular, dish_coupons = _selected_coupons(db, order, selection)
    try:
        order_lifecycle.apply_coupons(db, order, current_user, regular_coupon=regular, dish_coupons=dish_coupons)
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"applying coupons to order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("updated", order)
    return order


@router.delete("/{order_id}/coupons", response_model=OrderResponse)
async def remove_coupons(
    order_id: int,
    version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = get_authorized_order(db, current_user, order_id, version)
    try:
        order_lifecycle.remove_coupons(db, order, current_user)
        db.commit()
        db.refresh(order)
    except Exception as e:
        raise service_error(db, e, f"removing coupons from order {order_id}")

    order_cache.invalidate(order.id)
    await notify_order_event("updated", order)
    return order
