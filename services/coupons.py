"""Persistence side of coupons: dish coupon creation with its duplicate guard, and lookups."""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models.coupon import DishCoupon
from services.coupon_engine import generate_coupon_code, normalize_dish_name, validate_dish_percentage
from services.errors import CouponValidationError, DuplicateCouponError

logger = logging.getLogger(__name__)


@dataclass
class DishCouponCreation:
    created: List[DishCoupon] = field(default_factory=list)
    skipped_percentages: List[float] = field(default_factory=list)

    @property
    def created_ids(self) -> List[int]:
        return [coupon.id for coupon in self.created]


def active_dish_coupons_for(db: Session, location_id: int, dish_name: str) -> List[DishCoupon]:
    return db.query(DishCoupon).filter(
        DishCoupon.location_id == location_id,
        DishCoupon.is_active.is_(True),
        func.lower(func.trim(DishCoupon.dish_name)) == normalize_dish_name(dish_name),
    ).all()


def create_dish_coupons(db: Session, location_id: int, dish_name: str, percentages: Iterable[float],
                        created_by_id: int) -> DishCouponCreation:
    """Create one coupon per requested percentage, skipping those already active for the dish.

    Raises DuplicateCouponError when every requested percentage exists.
    """
    dish_name = (dish_name or "").strip()
    if not dish_name:
        raise CouponValidationError("Dish name is required")

    requested = []
    for percentage in percentages:
        if not validate_dish_percentage(percentage):
            raise CouponValidationError(f"Invalid discount percentage: {percentage}")
        if percentage not in requested:
            requested.append(percentage)
    if not requested:
        raise CouponValidationError("At least one discount percentage is required")

    existing = {coupon.discount_percentage for coupon in active_dish_coupons_for(db, location_id, dish_name)}
    result = DishCouponCreation()
    for percentage in requested:
        if percentage in existing:
            result.skipped_percentages.append(percentage)
            continue
        coupon = DishCoupon(
            coupon_code=generate_coupon_code(dish_name, percentage),
            dish_name=dish_name,
            discount_percentage=percentage,
            is_active=True,
            location_id=location_id,
            created_by_id=created_by_id,
        )
        db.add(coupon)
        result.created.append(coupon)

    if not result.created:
        raise DuplicateCouponError(dish_name, existing & set(requested))

    db.flush()
    if result.skipped_percentages:
        logger.info(f"Skipped {len(result.skipped_percentages)} duplicate coupon(s) for {dish_name} at location {location_id}")
    logger.info(f"Created dish coupons {result.created_ids} for {dish_name} at location {location_id}")
    return result


def search_dish_coupons(db: Session, location_id: int, term: str) -> List[DishCoupon]:
    pattern = f"%{term.strip().lower()}%"
    return db.query(DishCoupon).filter(
        DishCoupon.location_id == location_id,
        DishCoupon.is_active.is_(True),
        or_(func.lower(DishCoupon.dish_name).like(pattern), func.lower(DishCoupon.coupon_code).like(pattern)),
    ).order_by(DishCoupon.created_at.desc(), DishCoupon.id.desc()).all()
