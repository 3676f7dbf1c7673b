from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Float, Integer, Numeric, String, Text, Time


class Base(DeclarativeBase):
    pass


class DiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class Experience(Base):
    __tablename__ = "experiences"
    __table_args__ = (
        CheckConstraint("price >= 0", name="chk_experiences_price"),
        Index("idx_experiences_category", "category"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    short_description: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    image_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    duration: Mapped[float] = mapped_column(Float, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_reviews: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    highlights: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    what_to_bring: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slots: Mapped[list["Slot"]] = relationship(back_populates="experience")


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("total_spots >= 1", name="chk_slots_total_spots"),
        CheckConstraint(
            "available_spots >= 0 AND available_spots <= total_spots",
            name="chk_slots_available_spots",
        ),
        UniqueConstraint("experience_id", "date", "time", name="uq_slots"),
        Index("idx_slots_experience_date", "experience_id", "date"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    experience_id: Mapped[int] = mapped_column(ForeignKey("experiences.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    total_spots: Mapped[int] = mapped_column(Integer, nullable=False)
    available_spots: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    experience: Mapped["Experience"] = relationship(back_populates="slots")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="slot")


class PromoCode(Base):
    __tablename__ = "promo_codes"
    __table_args__ = (
        UniqueConstraint("code", name="uq_promo_codes_code"),
        CheckConstraint("discount_value > 0", name="chk_promo_discount_value"),
        CheckConstraint("current_uses >= 0", name="chk_promo_current_uses"),
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="chk_promo_usage_ceiling",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    # Stored upper-case; lookups upper-case the input.
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    discount_type: Mapped[DiscountType] = mapped_column(_str_enum(DiscountType), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("number_of_guests >= 1", name="chk_bookings_guests"),
        CheckConstraint("total_price >= 0", name="chk_bookings_total_price"),
        CheckConstraint("discount_amount >= 0", name="chk_bookings_discount"),
        UniqueConstraint("idempotency_key", name="uq_bookings_idempotency_key"),
        Index("idx_bookings_slot", "slot_id"),
        Index("idx_bookings_experience", "experience_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("slots.id"), nullable=False)
    experience_id: Mapped[int] = mapped_column(ForeignKey("experiences.id"), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    number_of_guests: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    # Plain copy of the redeemed code, not a foreign key.
    promo_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    booking_status: Mapped[BookingStatus] = mapped_column(
        _str_enum(BookingStatus),
        nullable=False,
        default=BookingStatus.CONFIRMED,
    )
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slot: Mapped["Slot"] = relationship(back_populates="bookings")
    experience: Mapped["Experience"] = relationship()
