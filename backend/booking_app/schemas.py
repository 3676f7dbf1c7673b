from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from .domain.services import PriceQuote, PromoCheck, PromoStatus
from .models import Booking, BookingStatus, DiscountType, Experience, Slot


class ExperienceRead(BaseModel):
    experience_id: int
    title: str
    short_description: str
    description: str
    location: str
    image_url: str
    duration: float
    price: Decimal
    rating: Optional[float]
    total_reviews: int
    category: str
    highlights: list[str]
    what_to_bring: list[str]

    @classmethod
    def from_db(cls, *, experience: Experience) -> "ExperienceRead":
        return cls(
            experience_id=experience.id,
            title=experience.title,
            short_description=experience.short_description,
            description=experience.description,
            location=experience.location,
            image_url=experience.image_url,
            duration=experience.duration,
            price=experience.price,
            rating=experience.rating,
            total_reviews=experience.total_reviews or 0,
            category=experience.category,
            highlights=list(experience.highlights or []),
            what_to_bring=list(experience.what_to_bring or []),
        )


class SlotRead(BaseModel):
    slot_id: int
    experience_id: int
    date: date
    time: time
    total_spots: int
    available_spots: int
    sold_out: bool

    @classmethod
    def from_db(cls, *, slot: Slot) -> "SlotRead":
        return cls(
            slot_id=slot.id,
            experience_id=slot.experience_id,
            date=slot.date,
            time=slot.time,
            total_spots=slot.total_spots,
            available_spots=slot.available_spots,
            sold_out=slot.available_spots <= 0,
        )


class ExperienceSlotsRead(BaseModel):
    experience: ExperienceRead
    date: date
    slots: list[SlotRead]


class QuoteRequest(BaseModel):
    guests: int = Field(ge=1)
    promo_code: Optional[str] = None


class QuoteRead(BaseModel):
    base_price: Decimal
    discount_amount: Decimal
    total_price: Decimal
    promo_code: Optional[str] = None

    @classmethod
    def from_quote(cls, *, quote: PriceQuote, check: PromoCheck | None) -> "QuoteRead":
        return cls(
            base_price=quote.base,
            discount_amount=quote.discount,
            total_price=quote.total,
            promo_code=check.promo.code if check is not None and check.promo is not None else None,
        )


class PromoValidateRequest(BaseModel):
    code: str


class PromoValidationRead(BaseModel):
    code: str
    status: PromoStatus
    valid: bool
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None

    @classmethod
    def from_check(cls, *, code: str, check: PromoCheck) -> "PromoValidationRead":
        promo = check.promo if check.is_valid else None
        return cls(
            code=promo.code if promo is not None else code.strip().upper(),
            status=check.status,
            valid=check.is_valid,
            discount_type=promo.discount_type if promo is not None else None,
            discount_value=promo.discount_value if promo is not None else None,
        )


class BookingCreate(BaseModel):
    slot_id: int
    experience_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    number_of_guests: int
    promo_code: Optional[str] = None


class BookingRead(BaseModel):
    booking_id: int
    slot_id: int
    experience_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    number_of_guests: int
    total_price: Decimal
    promo_code: Optional[str]
    discount_amount: Decimal
    booking_status: BookingStatus
    created_at: datetime
    slot_date: date
    slot_time: time
    experience_title: str
    experience_location: str
    experience_category: str

    @classmethod
    def from_db(cls, *, booking: Booking, slot: Slot, experience: Experience) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            slot_id=booking.slot_id,
            experience_id=booking.experience_id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
            number_of_guests=booking.number_of_guests,
            total_price=booking.total_price,
            promo_code=booking.promo_code,
            discount_amount=booking.discount_amount,
            booking_status=booking.booking_status,
            created_at=booking.created_at,
            slot_date=slot.date,
            slot_time=slot.time,
            experience_title=experience.title,
            experience_location=experience.location,
            experience_category=experience.category,
        )
