from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from types import TracebackType
from typing import Iterator, Optional, Tuple, cast

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from ..domain.errors import StorageUnavailableError
from ..domain.repositories import (
    BookingRepository,
    ExperienceRepository,
    PromoCodeRepository,
    SlotRepository,
    UnitOfWork,
)
from ..models import Booking, BookingStatus, Experience, PromoCode, Slot
from ..utils.time import utc_now_naive

_TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except _TRANSIENT_ERRORS as exc:
        raise StorageUnavailableError("storage temporarily unavailable") from exc


class SqlAlchemyExperienceRepository(ExperienceRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, experience_id: int) -> Experience | None:
        with _storage_errors():
            return await self.session.get(Experience, experience_id)

    async def search(self, term: str | None = None) -> list[Experience]:
        stmt = select(Experience).order_by(Experience.created_at.desc(), Experience.id.desc())
        needle = (term or "").strip().lower()
        if needle:
            stmt = stmt.where(
                or_(
                    func.lower(Experience.title).contains(needle, autoescape=True),
                    func.lower(Experience.location).contains(needle, autoescape=True),
                    func.lower(Experience.category).contains(needle, autoescape=True),
                )
            )
        with _storage_errors():
            rows = await self.session.scalars(stmt)
            return list(rows.all())


class SqlAlchemySlotRepository(SlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, slot_id: int) -> Slot | None:
        with _storage_errors():
            return await self.session.get(Slot, slot_id)

    async def get_for_update(self, slot_id: int) -> Slot | None:
        with _storage_errors():
            result = await self.session.scalar(select(Slot).where(Slot.id == slot_id).with_for_update())
        return result if isinstance(result, Slot) else None

    async def list_for_date(self, experience_id: int, on_date: date) -> list[Slot]:
        stmt = (
            select(Slot)
            .where(Slot.experience_id == experience_id, Slot.date == on_date)
            .order_by(Slot.time.asc(), Slot.id.asc())
        )
        with _storage_errors():
            rows = await self.session.scalars(stmt)
            return list(rows.all())

    async def reserve_spots(self, slot_id: int, guests: int) -> bool:
        stmt = (
            update(Slot)
            .where(Slot.id == slot_id, Slot.available_spots >= guests)
            .values(
                available_spots=Slot.available_spots - guests,
                updated_at=utc_now_naive(),
            )
        )
        with _storage_errors():
            result = await self.session.execute(stmt)
        return result.rowcount == 1


class SqlAlchemyPromoCodeRepository(PromoCodeRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _by_code(self, code: str) -> Select[Tuple[PromoCode]]:
        return select(PromoCode).where(func.upper(PromoCode.code) == code.strip().upper())

    async def get_by_code(self, code: str) -> PromoCode | None:
        with _storage_errors():
            result = await self.session.scalar(self._by_code(code))
        return result if isinstance(result, PromoCode) else None

    async def get_by_code_for_update(self, code: str) -> PromoCode | None:
        with _storage_errors():
            result = await self.session.scalar(self._by_code(code).with_for_update())
        return result if isinstance(result, PromoCode) else None

    async def redeem(self, promo_id: int) -> bool:
        stmt = (
            update(PromoCode)
            .where(
                PromoCode.id == promo_id,
                or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
            )
            .values(current_uses=PromoCode.current_uses + 1)
        )
        with _storage_errors():
            result = await self.session.execute(stmt)
        return result.rowcount == 1


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> Booking:
        now = utc_now_naive()
        booking = Booking(
            slot_id=slot_id,
            experience_id=experience_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            number_of_guests=number_of_guests,
            total_price=total_price,
            promo_code=promo_code,
            discount_amount=discount_amount,
            booking_status=status,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        try:
            with _storage_errors():
                await self.session.flush()
        except IntegrityError as exc:
            if idempotency_key is None:
                raise
            # A concurrent request with the same key won; a retry returns its booking.
            raise StorageUnavailableError("concurrent commit with the same idempotency key") from exc
        return booking

    async def get(self, booking_id: int) -> Booking | None:
        with _storage_errors():
            return await self.session.get(Booking, booking_id)

    async def get_by_idempotency_key(self, key: str) -> Booking | None:
        with _storage_errors():
            result = await self.session.scalar(select(Booking).where(Booking.idempotency_key == key))
        return result if isinstance(result, Booking) else None

    async def get_with_details(self, booking_id: int) -> Optional[Tuple[Booking, Slot, Experience]]:
        stmt: Select[Tuple[Booking, Slot, Experience]] = (
            select(Booking, Slot, Experience)
            .join(Slot, Booking.slot_id == Slot.id)
            .join(Experience, Booking.experience_id == Experience.id)
            .where(Booking.id == booking_id)
        )
        with _storage_errors():
            row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Booking, Slot, Experience]], row)


class SqlAlchemyUnitOfWork(UnitOfWork):
    """
    Wraps one AsyncSession transaction.

    Usage:
        async with SqlAlchemyUnitOfWork(session) as uow:
            await uow.slots.reserve_spots(slot_id, 2)
            ...
        # committed here, or rolled back if the block raised
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.experiences = SqlAlchemyExperienceRepository(session)
        self.slots = SqlAlchemySlotRepository(session)
        self.promo_codes = SqlAlchemyPromoCodeRepository(session)
        self.bookings = SqlAlchemyBookingRepository(session)
        self._transaction: AsyncSessionTransaction | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        with _storage_errors():
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        transaction, self._transaction = self._transaction, None
        if transaction is None:
            return False
        with _storage_errors():
            if exc_type is None:
                await transaction.commit()
            else:
                await transaction.rollback()
        return False
