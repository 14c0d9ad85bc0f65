from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from utils.database import get_db
from models.coupon import Coupon, DishCoupon
from models.order_management import Order
from models.user import User
from schemas.coupon import (
    CouponCreate, CouponUpdate, CouponResponse,
    DishCouponCreate, DishCouponUpdate, DishCouponResponse, DishCouponBulkResponse
)
from services import coupon_engine
from services.coupons import active_dish_coupons_for, create_dish_coupons, search_dish_coupons
from services.errors import DuplicateCouponError
from utils.auth import get_current_manager, get_current_staff, get_authorized_location_ids, ensure_location_access
from utils.validators import service_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/coupons", tags=["coupons"])


def _location_scope(db: Session, current_user: User, location_id: Optional[int]) -> List[int]:
    location_ids = get_authorized_location_ids(current_user, db)
    if location_id is None:
        return location_ids
    if location_id not in location_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"No permission for location ID {location_id}")
    return [location_id]


def get_authorized_dish_coupon(db: Session, current_user: User, coupon_id: int) -> DishCoupon:
    coupon = db.query(DishCoupon).filter(
        DishCoupon.id == coupon_id,
        DishCoupon.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not coupon:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dish coupon not found or unauthorized")
    return coupon


def get_authorized_coupon(db: Session, current_user: User, coupon_id: int) -> Coupon:
    coupon = db.query(Coupon).filter(
        Coupon.id == coupon_id,
        Coupon.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not coupon:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found or unauthorized")
    return coupon


# Dish coupon endpoints
@router.post("/dish", response_model=DishCouponBulkResponse, status_code=status.HTTP_201_CREATED)
async def create_dish_coupon_batch(
    request: DishCouponCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    ensure_location_access(current_user, db, request.location_id)
    try:
        result = create_dish_coupons(db, request.location_id, request.dish_name, request.percentages, current_user.id)
        db.commit()
        for coupon in result.created:
            db.refresh(coupon)
    except Exception as e:
        raise service_error(db, e, f"creating dish coupons for {request.dish_name}")

    return {
        "created": result.created,
        "created_ids": result.created_ids,
        "skipped_percentages": result.skipped_percentages,
        "skipped_count": len(result.skipped_percentages),
    }


@router.get("/dish", response_model=List[DishCouponResponse])
async def list_dish_coupons(
    location_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    location_ids = _location_scope(db, current_user, location_id)
    if search:
        coupons = []
        for target in location_ids:
            coupons.extend(search_dish_coupons(db, target, search))
        return coupons
    return db.query(DishCoupon).filter(
        DishCoupon.location_id.in_(location_ids),
        DishCoupon.is_active.is_(True)
    ).order_by(DishCoupon.created_at.desc(), DishCoupon.id.desc()).all()


@router.get("/dish/applicable/{order_id}", response_model=List[DishCouponResponse])
async def list_applicable_dish_coupons(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = db.query(Order).filter(
        Order.id == order_id,
        Order.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found or unauthorized")

    coupons = db.query(DishCoupon).filter(
        DishCoupon.location_id == order.location_id,
        DishCoupon.is_active.is_(True)
    ).order_by(DishCoupon.created_at.desc(), DishCoupon.id.desc()).all()
    selected = coupon_engine.OrderCoupons.from_applied(order.applied_coupons).dish_coupons
    return coupon_engine.get_applicable_dish_coupons(
        [coupon for coupon in coupons if coupon_engine.can_apply_dish_coupon(coupon, selected)],
        order.items,
    )


@router.put("/dish/{coupon_id}", response_model=DishCouponResponse)
async def update_dish_coupon(
    coupon_id: int,
    coupon_update: DishCouponUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    coupon = get_authorized_dish_coupon(db, current_user, coupon_id)
    try:
        update_data = coupon_update.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(coupon, field, value.strip() if isinstance(value, str) else value)

        if coupon.is_active and ({"dish_name", "discount_percentage", "is_active"} & update_data.keys()):
            clashes = [
                other.discount_percentage
                for other in active_dish_coupons_for(db, coupon.location_id, coupon.dish_name)
                if other.id != coupon.id and other.discount_percentage == coupon.discount_percentage
            ]
            if clashes:
                raise DuplicateCouponError(coupon.dish_name, clashes)
        coupon.coupon_code = coupon_engine.generate_coupon_code(coupon.dish_name, coupon.discount_percentage)

        db.commit()
        db.refresh(coupon)
        logger.info(f"Dish coupon {coupon_id} updated by user {current_user.id}")
        return coupon
    except Exception as e:
        raise service_error(db, e, f"updating dish coupon {coupon_id}")


@router.delete("/dish/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dish_coupon(
    coupon_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    coupon = get_authorized_dish_coupon(db, current_user, coupon_id)
    try:
        db.delete(coupon)
        db.commit()
        logger.info(f"Dish coupon {coupon_id} deleted by user {current_user.id}")
    except Exception as e:
        raise service_error(db, e, f"deleting dish coupon {coupon_id}")


# Regular coupon endpoints
@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    coupon: CouponCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    ensure_location_access(current_user, db, coupon.location_id)
    try:
        coupon_engine.validate_coupon_definition(
            coupon.type, coupon.value, coupon.max_discount_amount, coupon.min_order_amount
        )
        db_coupon = Coupon(**coupon.model_dump(), is_active=True, created_by_id=current_user.id)
        db.add(db_coupon)
        db.commit()
        db.refresh(db_coupon)
        logger.info(f"Coupon {db_coupon.id} created by user {current_user.id}")
        return db_coupon
    except Exception as e:
        raise service_error(db, e, "creating coupon")


@router.get("", response_model=List[CouponResponse])
async def list_coupons(
    location_id: Optional[int] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    query = db.query(Coupon).filter(Coupon.location_id.in_(_location_scope(db, current_user, location_id)))
    if not include_inactive:
        query = query.filter(Coupon.is_active.is_(True))
    return query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


@router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(
    coupon_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    return get_authorized_coupon(db, current_user, coupon_id)


@router.put("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: int,
    coupon_update: CouponUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    coupon = get_authorized_coupon(db, current_user, coupon_id)
    try:
        update_data = coupon_update.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(coupon, field, value)
        coupon_engine.validate_coupon_definition(
            coupon.type, coupon.value, coupon.max_discount_amount, coupon.min_order_amount
        )
        db.commit()
        db.refresh(coupon)
        logger.info(f"Coupon {coupon_id} updated by user {current_user.id}")
        return coupon
    except Exception as e:
        raise service_error(db, e, f"updating coupon {coupon_id}")


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_coupon(
    coupon_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    coupon = get_authorized_coupon(db, current_user, coupon_id)
    try:
        coupon.is_active = False
        db.commit()
        logger.info(f"Coupon {coupon_id} deactivated by user {current_user.id}")
    except Exception as e:
        raise service_error(db, e, f"deactivating coupon {coupon_id}")
