"""In-memory stand-ins for the storage layer used by the use case tests.

The fakes mirror the SQL repositories: counter updates are conditional and
happen without yielding to the event loop between check and write, and the
unit of work undoes its own writes when the block raises.
"""
import asyncio
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from types import TracebackType
from typing import Callable, Optional

import pytest
from booking_app.domain.errors import StorageUnavailableError
from booking_app.models import Booking, BookingStatus, DiscountType, Experience, PromoCode, Slot

NOW = datetime(2026, 10, 19, 12, 0, 0)
Journal = Optional[list[Callable[[], None]]]


class InMemoryStore:
    def __init__(self) -> None:
        self.experiences: dict[int, Experience] = {}
        self.slots: dict[int, Slot] = {}
        self.promo_codes: dict[int, PromoCode] = {}
        self.bookings: dict[int, Booking] = {}
        self._next_booking_id = 1

    def add_experience(self, experience_id: int = 1, **overrides: object) -> Experience:
        fields: dict[str, object] = dict(
            id=experience_id,
            title="Sunset Kayak Tour",
            short_description="Paddle the bay at golden hour",
            description="Two hours on the water with a local guide.",
            location="Lisbon, Portugal",
            image_url="https://img.invalid/kayak.jpg",
            duration=2.0,
            price=Decimal("50.00"),
            rating=4.8,
            total_reviews=120,
            category="Adventure",
            highlights=["Guided", "Snacks included"],
            what_to_bring=["Swimwear"],
            created_at=NOW - timedelta(days=experience_id),
            updated_at=NOW,
        )
        fields.update(overrides)
        experience = Experience(**fields)
        self.experiences[experience.id] = experience
        return experience

    def add_slot(
        self,
        slot_id: int = 1,
        *,
        experience_id: int = 1,
        on_date: date = date(2026, 11, 1),
        at: time = time(9, 0),
        total_spots: int = 10,
        available_spots: Optional[int] = None,
    ) -> Slot:
        slot = Slot(
            id=slot_id,
            experience_id=experience_id,
            date=on_date,
            time=at,
            total_spots=total_spots,
            available_spots=total_spots if available_spots is None else available_spots,
            created_at=NOW,
            updated_at=NOW,
        )
        self.slots[slot.id] = slot
        return slot

    def add_promo(
        self,
        code: str = "SAVE10",
        *,
        promo_id: int = 1,
        discount_type: DiscountType = DiscountType.PERCENTAGE,
        discount_value: str = "10",
        valid_from: datetime = NOW - timedelta(days=30),
        valid_until: datetime = NOW + timedelta(days=30),
        max_uses: Optional[int] = None,
        current_uses: int = 0,
        is_active: bool = True,
    ) -> PromoCode:
        promo = PromoCode(
            id=promo_id,
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            valid_from=valid_from,
            valid_until=valid_until,
            max_uses=max_uses,
            current_uses=current_uses,
            is_active=is_active,
            created_at=NOW,
        )
        self.promo_codes[promo.id] = promo
        return promo

    def next_booking_id(self) -> int:
        value = self._next_booking_id
        self._next_booking_id += 1
        return value


class FakeExperienceRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, experience_id: int) -> Experience | None:
        await asyncio.sleep(0)
        return self.store.experiences.get(experience_id)

    async def search(self, term: str | None = None) -> list[Experience]:
        await asyncio.sleep(0)
        needle = (term or "").strip().lower()
        rows = [
            e
            for e in self.store.experiences.values()
            if not needle
            or needle in e.title.lower()
            or needle in e.location.lower()
            or needle in e.category.lower()
        ]
        return sorted(rows, key=lambda e: (e.created_at, e.id), reverse=True)


class FakeSlotRepo:
    def __init__(self, store: InMemoryStore, journal: Journal = None) -> None:
        self.store = store
        self.journal = journal

    async def get(self, slot_id: int) -> Slot | None:
        await asyncio.sleep(0)
        return self.store.slots.get(slot_id)

    async def get_for_update(self, slot_id: int) -> Slot | None:
        return await self.get(slot_id)

    async def list_for_date(self, experience_id: int, on_date: date) -> list[Slot]:
        await asyncio.sleep(0)
        return [s for s in self.store.slots.values() if s.experience_id == experience_id and s.date == on_date]

    async def reserve_spots(self, slot_id: int, guests: int) -> bool:
        await asyncio.sleep(0)
        slot = self.store.slots.get(slot_id)
        if slot is None or slot.available_spots < guests:
            return False
        slot.available_spots -= guests
        if self.journal is not None:
            self.journal.append(lambda: setattr(slot, "available_spots", slot.available_spots + guests))
        return True


class FakePromoCodeRepo:
    def __init__(self, store: InMemoryStore, journal: Journal = None) -> None:
        self.store = store
        self.journal = journal
        self.lookups = 0

    async def get_by_code(self, code: str) -> PromoCode | None:
        await asyncio.sleep(0)
        self.lookups += 1
        wanted = code.strip().upper()
        for promo in self.store.promo_codes.values():
            if promo.code.upper() == wanted:
                return promo
        return None

    async def get_by_code_for_update(self, code: str) -> PromoCode | None:
        return await self.get_by_code(code)

    async def redeem(self, promo_id: int) -> bool:
        await asyncio.sleep(0)
        promo = self.store.promo_codes.get(promo_id)
        if promo is None:
            return False
        if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
            return False
        promo.current_uses += 1
        if self.journal is not None:
            self.journal.append(lambda: setattr(promo, "current_uses", promo.current_uses - 1))
        return True


class FakeBookingRepo:
    def __init__(self, store: InMemoryStore, journal: Journal = None) -> None:
        self.store = store
        self.journal = journal

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
        await asyncio.sleep(0)
        booking = Booking(
            id=self.store.next_booking_id(),
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
            created_at=NOW,
            updated_at=NOW,
        )
        self.store.bookings[booking.id] = booking
        if self.journal is not None:
            self.journal.append(lambda: self.store.bookings.pop(booking.id, None))
        return booking

    async def get(self, booking_id: int) -> Booking | None:
        await asyncio.sleep(0)
        return self.store.bookings.get(booking_id)

    async def get_by_idempotency_key(self, key: str) -> Booking | None:
        await asyncio.sleep(0)
        for booking in self.store.bookings.values():
            if booking.idempotency_key == key:
                return booking
        return None

    async def get_with_details(self, booking_id: int) -> tuple[Booking, Slot, Experience] | None:
        booking = await self.get(booking_id)
        if booking is None:
            return None
        return booking, self.store.slots[booking.slot_id], self.store.experiences[booking.experience_id]


class FakeUnitOfWork:
    def __init__(self, store: InMemoryStore, *, fail_commit: bool = False) -> None:
        self.store = store
        self.fail_commit = fail_commit
        self._journal: list[Callable[[], None]] = []
        self.experiences = FakeExperienceRepo(store)
        self.slots = FakeSlotRepo(store, self._journal)
        self.promo_codes = FakePromoCodeRepo(store, self._journal)
        self.bookings = FakeBookingRepo(store, self._journal)
        self.entered = False
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> "FakeUnitOfWork":
        self.entered = True
        self._journal.clear()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc_type is None and not self.fail_commit:
            self.committed = True
            self._journal.clear()
            return False
        for undo in reversed(self._journal):
            undo()
        self.rolled_back = True
        self._journal.clear()
        if exc_type is None:
            raise StorageUnavailableError("connection lost during commit")
        return False


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_uow(store: InMemoryStore) -> Callable[..., FakeUnitOfWork]:
    return lambda **kwargs: FakeUnitOfWork(store, **kwargs)


@pytest.fixture
def experience_repo(store: InMemoryStore) -> FakeExperienceRepo:
    return FakeExperienceRepo(store)


@pytest.fixture
def slot_repo(store: InMemoryStore) -> FakeSlotRepo:
    return FakeSlotRepo(store)


@pytest.fixture
def promo_repo(store: InMemoryStore) -> FakePromoCodeRepo:
    return FakePromoCodeRepo(store)


@pytest.fixture
def booking_repo(store: InMemoryStore) -> FakeBookingRepo:
    return FakeBookingRepo(store)
