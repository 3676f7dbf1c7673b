from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..domain.errors import (
    BookingValidationError,
    InsufficientCapacityError,
    NotFoundError,
    PromoExhaustedAtCommitError,
    PromoRejectedError,
)
from ..domain.repositories import UnitOfWork
from ..domain.services import (
    PromoSnapshot,
    PromoStatus,
    calculate_price,
    check_promo,
    ensure_capacity,
    validate_customer,
)
from ..models import Booking, BookingStatus, Experience, PromoCode, Slot
from ..utils.time import utc_now_naive
from .promo_codes import normalize_code


@dataclass(frozen=True)
class BookingRequest:
    slot_id: int
    experience_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    guests: int
    promo_code: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class BookingOutcome:
    booking: Booking
    slot: Slot
    experience: Experience
    replayed: bool = False
    promo_redeemed: bool = False
    spots_remaining: int | None = None


async def commit_booking(
    uow: UnitOfWork,
    request: BookingRequest,
    *,
    now: datetime | None = None,
    enforce_valid_from: bool = True,
    max_guests: int = 20,
    on_confirmed: Optional[Callable[[BookingOutcome], None]] = None,
    on_commit_failed: Optional[Callable[[BookingOutcome], None]] = None,
) -> BookingOutcome:
    """
    Reserve capacity, persist a confirmed booking and redeem the promo in one
    unit of work. Price and promo are recomputed here from fresh rows; nothing
    the caller computed is trusted. Any failure rolls the whole unit back,
    including one raised by `on_confirmed`, which runs before the commit.

    `on_commit_failed` receives the outcome already passed to `on_confirmed`
    when the commit itself fails afterwards; the original error is re-raised.
    """
    details = validate_customer(
        name=request.customer_name,
        email=request.customer_email,
        phone=request.customer_phone,
        guests=request.guests,
        max_guests=max_guests,
    )
    code = normalize_code(request.promo_code)
    now = now or utc_now_naive()

    confirmed: BookingOutcome | None = None
    try:
        async with uow:
            if request.idempotency_key:
                existing = await uow.bookings.get_by_idempotency_key(request.idempotency_key)
                if existing is not None:
                    _ensure_same_request(existing, request, guests=details.guests)
                    return await _replay(uow, existing)

            slot = await uow.slots.get_for_update(request.slot_id)
            if slot is None or slot.experience_id != request.experience_id:
                raise NotFoundError("slot not found")
            experience = await uow.experiences.get(slot.experience_id)
            if experience is None:
                raise NotFoundError("experience not found")

            # Re-check against the locked row, not the availability shown at selection time.
            remaining = ensure_capacity(slot.available_spots, guests=details.guests)

            promo: PromoCode | None = None
            snapshot: PromoSnapshot | None = None
            if code is not None:
                promo = await uow.promo_codes.get_by_code_for_update(code)
                check = check_promo(
                    PromoSnapshot.from_model(promo) if promo is not None else None,
                    now=now,
                    enforce_valid_from=enforce_valid_from,
                )
                if check.status == PromoStatus.EXHAUSTED:
                    raise PromoExhaustedAtCommitError(code)
                if not check.is_valid:
                    raise PromoRejectedError(check.status.value, code)
                snapshot = check.promo

            quote = calculate_price(experience.price, details.guests, snapshot)

            booking = await uow.bookings.create(
                slot_id=slot.id,
                experience_id=experience.id,
                customer_name=details.name,
                customer_email=str(details.email),
                customer_phone=details.phone,
                number_of_guests=details.guests,
                total_price=quote.total,
                promo_code=promo.code if promo is not None else None,
                discount_amount=quote.discount,
                status=BookingStatus.CONFIRMED,
                idempotency_key=request.idempotency_key,
            )

            if not await uow.slots.reserve_spots(slot.id, details.guests):
                raise InsufficientCapacityError("slot sold out during commit", requested=details.guests)
            if promo is not None and not await uow.promo_codes.redeem(promo.id):
                raise PromoExhaustedAtCommitError(promo.code)

            outcome = BookingOutcome(
                booking=booking,
                slot=slot,
                experience=experience,
                promo_redeemed=promo is not None,
                spots_remaining=remaining,
            )
            if on_confirmed is not None:
                on_confirmed(outcome)
            confirmed = outcome
    except Exception:
        # Only the commit in __aexit__ can fail once `confirmed` is set.
        if confirmed is not None and on_commit_failed is not None:
            on_commit_failed(confirmed)
        raise

    return outcome


def _ensure_same_request(booking: Booking, request: BookingRequest, *, guests: int) -> None:
    mismatched = {
        name: "does not match the booking already made with this idempotency key"
        for name, stored, sent in (
            ("slot_id", booking.slot_id, request.slot_id),
            ("experience_id", booking.experience_id, request.experience_id),
            ("guests", booking.number_of_guests, guests),
        )
        if stored != sent
    }
    if mismatched:
        raise BookingValidationError("idempotency key reused for a different booking", mismatched)


async def _replay(uow: UnitOfWork, booking: Booking) -> BookingOutcome:
    slot = await uow.slots.get(booking.slot_id)
    experience = await uow.experiences.get(booking.experience_id)
    if slot is None or experience is None:
        raise NotFoundError("booking references a missing slot or experience")
    return BookingOutcome(booking=booking, slot=slot, experience=experience, replayed=True)
