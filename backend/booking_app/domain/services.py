from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from ..models import DiscountType, PromoCode
from .errors import BookingValidationError, InsufficientCapacityError

CENT = Decimal("0.01")
ZERO = Decimal("0")


class PromoStatus(StrEnum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INACTIVE = "inactive"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class PromoSnapshot:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: datetime
    valid_until: datetime
    max_uses: int | None
    current_uses: int
    is_active: bool

    @classmethod
    def from_model(cls, promo: PromoCode) -> "PromoSnapshot":
        return cls(
            code=promo.code,
            discount_type=DiscountType(promo.discount_type),
            discount_value=Decimal(promo.discount_value),
            valid_from=promo.valid_from,
            valid_until=promo.valid_until,
            max_uses=promo.max_uses,
            current_uses=promo.current_uses or 0,
            is_active=bool(promo.is_active),
        )


@dataclass(frozen=True)
class PromoCheck:
    status: PromoStatus
    promo: PromoSnapshot | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == PromoStatus.VALID


@dataclass(frozen=True)
class PriceQuote:
    base: Decimal
    discount: Decimal
    total: Decimal


def check_promo(
    promo: PromoSnapshot | None,
    *,
    now: datetime,
    enforce_valid_from: bool = True,
) -> PromoCheck:
    """
    Pure promo validation against a snapshot. Never mutates usage counters.
    `now` must be in the same clock as the stored window (naive UTC).
    """
    if promo is None:
        return PromoCheck(PromoStatus.NOT_FOUND)
    if not promo.is_active:
        return PromoCheck(PromoStatus.INACTIVE, promo)
    if now > promo.valid_until:
        return PromoCheck(PromoStatus.EXPIRED, promo)
    if enforce_valid_from and now < promo.valid_from:
        return PromoCheck(PromoStatus.UPCOMING, promo)
    if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
        return PromoCheck(PromoStatus.EXHAUSTED, promo)
    return PromoCheck(PromoStatus.VALID, promo)


def calculate_price(
    price_per_person: Decimal,
    guest_count: int,
    promo: PromoSnapshot | None = None,
) -> PriceQuote:
    """
    base = price * guests; discount is a percentage of base or a fixed amount;
    total = max(0, base - discount).

    Rounding to cents happens once, on the returned quote. The reported
    discount is what was actually taken off, so base - discount == total.
    """
    price = Decimal(price_per_person)
    if price < ZERO:
        raise BookingValidationError("price must not be negative", {"price": "must be >= 0"})
    if guest_count < 1:
        raise BookingValidationError("guest count must be at least 1", {"guests": "must be >= 1"})

    base = price * guest_count
    discount = ZERO
    if promo is not None:
        value = Decimal(promo.discount_value)
        if value <= ZERO:
            raise BookingValidationError(
                "discount value must be positive", {"discount_value": "must be > 0"}
            )
        if promo.discount_type == DiscountType.PERCENTAGE:
            if value > 100:
                raise BookingValidationError(
                    "percentage discount must be within 0-100", {"discount_value": "must be within 0-100"}
                )
            discount = base * value / 100
        else:
            discount = value

    total = max(ZERO, base - discount)
    base_q = base.quantize(CENT, rounding=ROUND_HALF_UP)
    total_q = total.quantize(CENT, rounding=ROUND_HALF_UP)
    return PriceQuote(base=base_q, discount=base_q - total_q, total=total_q)


def ensure_capacity(available_spots: int, *, guests: int) -> int:
    """Return spots left after seating `guests`; raise if they do not fit."""
    if guests > available_spots:
        raise InsufficientCapacityError(
            f"only {available_spots} spots available",
            requested=guests,
            available=available_spots,
        )
    return available_spots - guests


class CustomerDetails(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    name: str = Field(min_length=2, max_length=100)
    email: EmailStr = Field(max_length=255)
    phone: str = Field(min_length=10, max_length=20)
    guests: int = Field(ge=1)


def validate_customer(
    *,
    name: str,
    email: str,
    phone: str,
    guests: int,
    max_guests: int = 20,
) -> CustomerDetails:
    try:
        details = CustomerDetails(name=name, email=email, phone=phone, guests=guests)
    except ValidationError as exc:
        fields = {
            ".".join(str(part) for part in err["loc"]) or "__root__": err["msg"]
            for err in exc.errors()
        }
        raise BookingValidationError("invalid booking request", fields) from exc
    if details.guests > max_guests:
        raise BookingValidationError(
            "too many guests", {"guests": f"Maximum {max_guests} guests"}
        )
    return details
