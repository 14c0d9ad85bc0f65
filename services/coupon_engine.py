"""
Coupon discount calculations.

Everything here is pure: functions read coupon and order item attributes
and return numbers, leaving persistence to the callers. Coupons and items
may be ORM rows or pydantic models, anything exposing the same attribute
names works.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from models.coupon import CouponType, AppliedCouponKind
from services.errors import CouponValidationError


@dataclass
class CouponBreakdown:
    regular_discount: float = 0.0
    dish_discounts: List[Tuple[str, float]] = field(default_factory=list)  # (dish name, amount)
    total_discount: float = 0.0


@dataclass
class OrderCoupons:
    """Coupons attached to one order: at most one regular coupon plus dish coupons."""
    regular_coupon: Optional[object] = None  # exposes discount_amount
    dish_coupons: List[object] = field(default_factory=list)  # expose dish_name, discount_percentage

    @classmethod
    def from_applied(cls, applied_coupons: Iterable) -> "OrderCoupons":
        regular = None
        dishes = []
        for applied in applied_coupons:
            if AppliedCouponKind(applied.kind) == AppliedCouponKind.REGULAR:
                regular = applied
            else:
                dishes.append(applied)
        return cls(regular_coupon=regular, dish_coupons=dishes)


def _type_of(coupon) -> CouponType:
    return CouponType(coupon.type)


def normalize_dish_name(name: str) -> str:
    return (name or "").strip().lower()


def generate_coupon_code(dish_name: str, percentage: float) -> str:
    """Display code for a dish coupon: CHILLI CHICKEN at 8% -> CHILLICHICKEN8.

    Codes are not unique by construction; (location, dish name, percentage)
    is the uniqueness key.
    """
    base_name = re.sub(r"\s+", "", dish_name.strip()).upper()
    return f"{base_name}{percentage:g}"


def validate_coupon_definition(coupon_type, value, max_discount_amount=None, min_order_amount=None):
    """Reject coupon definitions the discount rules cannot honour."""
    coupon_type = CouponType(coupon_type)
    if value is None or value <= 0:
        raise CouponValidationError("Coupon value must be greater than zero")
    if coupon_type == CouponType.PERCENTAGE:
        if value > 100:
            raise CouponValidationError("Percentage coupons cannot exceed 100%")
        if max_discount_amount is None or max_discount_amount <= 0:
            raise CouponValidationError("Percentage coupons require a maximum discount amount")
    elif max_discount_amount is not None:
        raise CouponValidationError("Maximum discount amount only applies to percentage coupons")
    if min_order_amount is not None and min_order_amount < 0:
        raise CouponValidationError("Minimum order amount cannot be negative")


def validate_dish_percentage(percentage) -> bool:
    return percentage is not None and 0 < percentage <= 100


def calculate_coupon_discount(coupon, subtotal: float) -> float:
    """Discount granted by an order-level coupon, never more than the subtotal."""
    if subtotal <= 0:
        return 0.0

    if coupon.min_order_amount and subtotal < coupon.min_order_amount:
        return 0.0

    discount = 0.0
    coupon_type = _type_of(coupon)
    if coupon_type == CouponType.FIXED:
        discount = coupon.value
    elif coupon_type == CouponType.PERCENTAGE:
        discount = subtotal * (coupon.value / 100)
        if coupon.max_discount_amount and discount > coupon.max_discount_amount:
            discount = coupon.max_discount_amount

    return max(0.0, min(discount, subtotal))


def matching_items(dish_coupon, order_items: Iterable) -> list:
    target = normalize_dish_name(dish_coupon.dish_name)
    return [item for item in order_items if normalize_dish_name(item.name) == target]


def is_dish_coupon_applicable(dish_coupon, order_items: Iterable) -> Tuple[bool, list]:
    matches = matching_items(dish_coupon, order_items)
    return bool(matches), matches


def calculate_dish_coupon_discount(dish_coupon, order_items: Iterable) -> int:
    """Discount one unit of every item line matching the coupon's dish.

    The percentage applies to a single unit's price regardless of the
    ordered quantity, floored to a whole amount per line.
    """
    applicable, matches = is_dish_coupon_applicable(dish_coupon, order_items)
    if not applicable:
        return 0

    return sum(
        math.floor((item.price or 0) * dish_coupon.discount_percentage / 100)
        for item in matches
    )


def can_apply_dish_coupon(dish_coupon, applied_dish_coupons: Iterable) -> bool:
    """One dish coupon per dish name within an order."""
    target = normalize_dish_name(dish_coupon.dish_name)
    return not any(
        normalize_dish_name(applied.dish_name) == target
        for applied in applied_dish_coupons
    )


def get_applicable_dish_coupons(dish_coupons: Iterable, order_items: Sequence, selected: Iterable = ()) -> list:
    """Dish coupons that match an item and are not blocked by the one-per-dish rule."""
    selected = list(selected)
    selected_ids = {coupon.id for coupon in selected}
    applicable = []
    for coupon in dish_coupons:
        if coupon.id in selected_ids:
            applicable.append(coupon)
            continue
        if not matching_items(coupon, order_items):
            continue
        if can_apply_dish_coupon(coupon, selected):
            applicable.append(coupon)
    return applicable


def calculate_total_discount(order_coupons: OrderCoupons, subtotal: float, order_items: Sequence) -> CouponBreakdown:
    """Combine the stored regular discount with dish discounts recomputed from current items.

    The total is capped at the subtotal.
    """
    regular = order_coupons.regular_coupon
    breakdown = CouponBreakdown(regular_discount=float(regular.discount_amount or 0.0) if regular else 0.0)
    for dish_coupon in order_coupons.dish_coupons:
        amount = calculate_dish_coupon_discount(dish_coupon, order_items)
        breakdown.dish_discounts.append((dish_coupon.dish_name, float(amount)))

    total = breakdown.regular_discount + sum(amount for _, amount in breakdown.dish_discounts)
    breakdown.total_discount = max(0.0, min(total, max(subtotal, 0.0)))
    return breakdown


def validate_coupon_combination(regular_coupon, dish_coupons: Sequence, subtotal: float,
                                order_items: Sequence) -> Tuple[bool, Optional[str]]:
    """Check a coupon selection before it is applied to an order."""
    regular_discount = 0.0
    if regular_coupon is not None:
        if not regular_coupon.is_active:
            return False, f"Coupon {regular_coupon.name} is no longer active"
        regular_discount = calculate_coupon_discount(regular_coupon, subtotal)
        if regular_discount <= 0:
            if regular_coupon.min_order_amount and subtotal < regular_coupon.min_order_amount:
                return False, f"Coupon {regular_coupon.name} requires a minimum order of {regular_coupon.min_order_amount:g}"
            return False, f"Coupon {regular_coupon.name} does not apply to this order"

    accepted = []
    for dish_coupon in dish_coupons:
        if not dish_coupon.is_active:
            return False, f"Coupon {dish_coupon.coupon_code} is no longer active"
        if not can_apply_dish_coupon(dish_coupon, accepted):
            return False, f"Only one coupon per dish is allowed. {dish_coupon.dish_name} already has a coupon selected."
        if not matching_items(dish_coupon, order_items):
            return False, f"{dish_coupon.dish_name} is not part of this order"
        accepted.append(dish_coupon)

    dish_total = sum(calculate_dish_coupon_discount(coupon, order_items) for coupon in accepted)
    if regular_discount + dish_total > subtotal:
        return False, "Total discount cannot exceed the order subtotal"

    return True, None
