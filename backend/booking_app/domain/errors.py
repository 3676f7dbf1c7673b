from __future__ import annotations

from typing import Mapping


class BookingError(Exception):
    """Base class for failures the booking core reports to its callers."""


class NotFoundError(BookingError):
    pass


class BookingValidationError(BookingError):
    def __init__(self, message: str, fields: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.fields: dict[str, str] = dict(fields or {})


class InsufficientCapacityError(BookingError):
    def __init__(self, message: str, *, requested: int, available: int | None = None) -> None:
        super().__init__(message)
        self.requested = requested
        self.available = available


class PromoRejectedError(BookingError):
    """Promo code unusable; `reason` is a PromoStatus value other than valid."""

    def __init__(self, reason: str, code: str) -> None:
        super().__init__(f"promo code {code!r} rejected: {reason}")
        self.reason = reason
        self.code = code


class PromoExhaustedAtCommitError(BookingError):
    def __init__(self, code: str) -> None:
        super().__init__(f"promo code {code!r} reached its usage limit")
        self.code = code


class StorageUnavailableError(BookingError):
    """Transient storage failure. The whole operation is safe to retry."""
