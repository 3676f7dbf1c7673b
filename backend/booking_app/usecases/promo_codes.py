from datetime import datetime

from ..domain.errors import BookingValidationError, PromoRejectedError
from ..domain.repositories import ExperienceRepository, PromoCodeRepository
from ..domain.services import PriceQuote, PromoCheck, PromoSnapshot, calculate_price, check_promo
from ..utils.time import utc_now_naive
from .catalog import get_experience


def normalize_code(code: str | None) -> str | None:
    value = (code or "").strip().upper()
    return value or None


async def validate_promo_code(
    promo_repo: PromoCodeRepository,
    *,
    code: str,
    now: datetime | None = None,
    enforce_valid_from: bool = True,
) -> PromoCheck:
    """Read-only lookup and check; applying a code never touches current_uses."""
    normalized = normalize_code(code)
    if normalized is None:
        raise BookingValidationError("promo code is required", {"code": "Please enter a promo code"})
    promo = await promo_repo.get_by_code(normalized)
    snapshot = PromoSnapshot.from_model(promo) if promo is not None else None
    return check_promo(snapshot, now=now or utc_now_naive(), enforce_valid_from=enforce_valid_from)


async def quote_price(
    experience_repo: ExperienceRepository,
    promo_repo: PromoCodeRepository,
    *,
    experience_id: int,
    guests: int,
    promo_code: str | None = None,
    now: datetime | None = None,
    enforce_valid_from: bool = True,
    max_guests: int = 20,
) -> tuple[PriceQuote, PromoCheck | None]:
    if guests > max_guests:
        raise BookingValidationError("too many guests", {"guests": f"Maximum {max_guests} guests"})
    experience = await get_experience(experience_repo, experience_id=experience_id)
    check: PromoCheck | None = None
    normalized = normalize_code(promo_code)
    if normalized is not None:
        check = await validate_promo_code(
            promo_repo,
            code=normalized,
            now=now,
            enforce_valid_from=enforce_valid_from,
        )
        if not check.is_valid:
            raise PromoRejectedError(check.status.value, normalized)
    quote = calculate_price(experience.price, guests, check.promo if check else None)
    return quote, check
