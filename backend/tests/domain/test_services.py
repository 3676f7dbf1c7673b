from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from booking_app.domain.errors import BookingValidationError, InsufficientCapacityError
from booking_app.domain.services import (
    PromoSnapshot,
    PromoStatus,
    calculate_price,
    check_promo,
    ensure_capacity,
    validate_customer,
)
from booking_app.models import DiscountType

NOW = datetime(2026, 10, 19, 12, 0, 0)


def _promo(
    *,
    discount_type: DiscountType = DiscountType.PERCENTAGE,
    discount_value: str = "10",
    valid_from: datetime = NOW - timedelta(days=30),
    valid_until: datetime = NOW + timedelta(days=30),
    max_uses: int | None = None,
    current_uses: int = 0,
    is_active: bool = True,
) -> PromoSnapshot:
    return PromoSnapshot(
        code="SAVE10",
        discount_type=discount_type,
        discount_value=Decimal(discount_value),
        valid_from=valid_from,
        valid_until=valid_until,
        max_uses=max_uses,
        current_uses=current_uses,
        is_active=is_active,
    )


@pytest.mark.parametrize(
    ("price", "guests", "expected"),
    [
        ("0", 1, "0.00"),
        ("19.99", 1, "19.99"),
        ("19.99", 3, "59.97"),
        ("125.50", 20, "2510.00"),
    ],
)
def test_total_without_promo_is_price_times_guests(price: str, guests: int, expected: str) -> None:
    quote = calculate_price(Decimal(price), guests)
    assert quote.base == Decimal(expected)
    assert quote.discount == Decimal("0.00")
    assert quote.total == Decimal(expected)


def test_percentage_promo_scenario() -> None:
    quote = calculate_price(Decimal("50.00"), 3, _promo(discount_value="10"))
    assert quote.base == Decimal("150.00")
    assert quote.discount == Decimal("15.00")
    assert quote.total == Decimal("135.00")


def test_fixed_discount_larger_than_base_clamps_to_zero() -> None:
    quote = calculate_price(
        Decimal("20.00"),
        2,
        _promo(discount_type=DiscountType.FIXED, discount_value="100.00"),
    )
    assert quote.base == Decimal("40.00")
    assert quote.discount == Decimal("40.00")
    assert quote.total == Decimal("0.00")


def test_fixed_discount_below_base_is_subtracted() -> None:
    quote = calculate_price(
        Decimal("30.00"),
        2,
        _promo(discount_type=DiscountType.FIXED, discount_value="12.50"),
    )
    assert quote.discount == Decimal("12.50")
    assert quote.total == Decimal("47.50")


def test_rounding_happens_once_on_the_quote() -> None:
    # 33.33 * 3 = 99.99; 15% = 14.9985 -> total 84.9915 -> 84.99
    quote = calculate_price(Decimal("33.33"), 3, _promo(discount_value="15"))
    assert quote.total == Decimal("84.99")
    assert quote.base - quote.discount == quote.total


def test_full_percentage_discount_is_free() -> None:
    quote = calculate_price(Decimal("80.00"), 2, _promo(discount_value="100"))
    assert quote.total == Decimal("0.00")


@pytest.mark.parametrize("value", ["100.01", "150", "-5"])
def test_percentage_outside_range_is_rejected(value: str) -> None:
    with pytest.raises(BookingValidationError) as excinfo:
        calculate_price(Decimal("10.00"), 1, _promo(discount_value=value))
    assert "discount_value" in excinfo.value.fields


@pytest.mark.parametrize("discount_type", [DiscountType.FIXED, DiscountType.PERCENTAGE])
def test_zero_discount_value_is_rejected(discount_type: DiscountType) -> None:
    with pytest.raises(BookingValidationError) as excinfo:
        calculate_price(Decimal("10.00"), 1, _promo(discount_type=discount_type, discount_value="0"))
    assert "discount_value" in excinfo.value.fields


def test_half_cent_tie_rounds_the_total_not_the_discount() -> None:
    # 15% of 12.30 is 1.845; the total 10.455 rounds up, so 1.84 is taken off.
    quote = calculate_price(Decimal("12.30"), 1, _promo(discount_value="15"))
    assert quote.total == Decimal("10.46")
    assert quote.discount == Decimal("1.84")
    assert quote.base - quote.discount == quote.total


def test_rejects_negative_price_and_zero_guests() -> None:
    with pytest.raises(BookingValidationError):
        calculate_price(Decimal("-1.00"), 1)
    with pytest.raises(BookingValidationError):
        calculate_price(Decimal("10.00"), 0)


def test_check_promo_valid() -> None:
    check = check_promo(_promo(), now=NOW)
    assert check.status == PromoStatus.VALID
    assert check.is_valid


def test_check_promo_not_found() -> None:
    check = check_promo(None, now=NOW)
    assert check.status == PromoStatus.NOT_FOUND
    assert check.promo is None


def test_check_promo_expired() -> None:
    check = check_promo(_promo(valid_until=NOW - timedelta(seconds=1)), now=NOW)
    assert check.status == PromoStatus.EXPIRED


def test_check_promo_valid_until_is_inclusive() -> None:
    check = check_promo(_promo(valid_until=NOW), now=NOW)
    assert check.status == PromoStatus.VALID


def test_check_promo_inactive() -> None:
    check = check_promo(_promo(is_active=False), now=NOW)
    assert check.status == PromoStatus.INACTIVE


def test_check_promo_exhausted_at_ceiling() -> None:
    check = check_promo(_promo(max_uses=5, current_uses=5), now=NOW)
    assert check.status == PromoStatus.EXHAUSTED


def test_check_promo_unlimited_uses() -> None:
    check = check_promo(_promo(max_uses=None, current_uses=10_000), now=NOW)
    assert check.is_valid


def test_check_promo_upcoming_depends_on_policy() -> None:
    upcoming = _promo(valid_from=NOW + timedelta(days=1))
    assert check_promo(upcoming, now=NOW).status == PromoStatus.UPCOMING
    assert check_promo(upcoming, now=NOW, enforce_valid_from=False).status == PromoStatus.VALID


def test_ensure_capacity_returns_remaining() -> None:
    assert ensure_capacity(4, guests=3) == 1
    assert ensure_capacity(3, guests=3) == 0


def test_ensure_capacity_rejects_overbooking() -> None:
    with pytest.raises(InsufficientCapacityError) as excinfo:
        ensure_capacity(2, guests=3)
    assert excinfo.value.available == 2
    assert excinfo.value.requested == 3


def test_validate_customer_strips_and_accepts() -> None:
    details = validate_customer(name="  Ada Lovelace ", email="ada@analytical.io", phone="+1 234 567 8900", guests=2)
    assert details.name == "Ada Lovelace"
    assert details.guests == 2


def test_validate_customer_reports_each_bad_field() -> None:
    with pytest.raises(BookingValidationError) as excinfo:
        validate_customer(name="A", email="not-an-email", phone="123", guests=0)
    assert set(excinfo.value.fields) == {"name", "email", "phone", "guests"}


def test_validate_customer_enforces_guest_ceiling() -> None:
    with pytest.raises(BookingValidationError) as excinfo:
        validate_customer(name="Ada", email="ada@analytical.io", phone="1234567890", guests=21, max_guests=20)
    assert "guests" in excinfo.value.fields
