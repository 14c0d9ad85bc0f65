"""Domain errors raised by the service layer.

All of them are ``ValueError`` subclasses, so routes can treat any rule
violation as a client error and roll the transaction back before writing.
"""


class InvalidTransitionError(ValueError):
    """The order cannot move from its current status to the requested one."""


class TableStateError(ValueError):
    """A table is not in the state an operation requires."""


class CouponValidationError(ValueError):
    """A coupon definition or coupon selection breaks a coupon rule."""


class DuplicateCouponError(CouponValidationError):
    """Every requested dish coupon already exists."""

    def __init__(self, dish_name, existing_percentages):
        self.dish_name = dish_name
        self.existing_percentages = sorted(existing_percentages)
        listed = ", ".join(f"{p:g}%" for p in self.existing_percentages)
        super().__init__(f"Active coupons already exist for {dish_name}: {listed}")
