from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import TracebackType
from typing import Protocol

from ..models import Booking, BookingStatus, Experience, PromoCode, Slot


class ExperienceRepository(Protocol):
    async def get(self, experience_id: int) -> Experience | None: ...

    async def search(self, term: str | None = None) -> list[Experience]: ...


class SlotRepository(Protocol):
    async def get(self, slot_id: int) -> Slot | None: ...

    async def get_for_update(self, slot_id: int) -> Slot | None: ...

    async def list_for_date(self, experience_id: int, on_date: date) -> list[Slot]: ...

    async def reserve_spots(self, slot_id: int, guests: int) -> bool:
        """Decrement available_spots by `guests` only if enough remain. False when no row matched."""
        ...


class PromoCodeRepository(Protocol):
    async def get_by_code(self, code: str) -> PromoCode | None: ...

    async def get_by_code_for_update(self, code: str) -> PromoCode | None: ...

    async def redeem(self, promo_id: int) -> bool:
        """Increment current_uses only while below max_uses (or unlimited). False when no row matched."""
        ...


class BookingRepository(Protocol):
    async def create(
        self,
        *,
        slot_id: int,
        experience_id: int,
        customer_name: str,
        customer_email: str,
        customer_phone: str,
        number_of_guests: int,
        total_price: Decimal,
        promo_code: str | None,
        discount_amount: Decimal,
        status: BookingStatus,
        idempotency_key: str | None = None,
    ) -> Booking: ...

    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_by_idempotency_key(self, key: str) -> Booking | None: ...

    async def get_with_details(self, booking_id: int) -> tuple[Booking, Slot, Experience] | None: ...


class UnitOfWork(Protocol):
    """One atomic storage transaction; leaving the block with an exception rolls everything back."""

    experiences: ExperienceRepository
    slots: SlotRepository
    promo_codes: PromoCodeRepository
    bookings: BookingRepository

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None: ...
