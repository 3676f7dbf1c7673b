import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_idempotency_key, get_session
from ..domain.errors import (
    BookingValidationError,
    InsufficientCapacityError,
    NotFoundError,
    PromoExhaustedAtCommitError,
    PromoRejectedError,
    StorageUnavailableError,
)
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemyUnitOfWork
from ..schemas import BookingCreate, BookingRead
from ..usecases import bookings as booking_usecase
from ..usecases import catalog as catalog_usecase
from ..utils.audit_log import emit_audit_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _audit_confirmed(outcome: booking_usecase.BookingOutcome) -> None:
    booking = outcome.booking
    emit_audit_log(
        action="booking.confirmed",
        initiator="customer",
        booking_id=booking.id,
        slot_id=booking.slot_id,
        experience_id=booking.experience_id,
        guests=booking.number_of_guests,
        total_price=booking.total_price,
        discount_amount=booking.discount_amount,
        promo_code=booking.promo_code,
        status=booking.booking_status,
        extra={"available_spots_after": outcome.spots_remaining},
    )


def _audit_commit_failed(outcome: booking_usecase.BookingOutcome) -> None:
    booking = outcome.booking
    try:
        emit_audit_log(
            action="booking.commit_failed",
            initiator="system",
            booking_id=booking.id,
            slot_id=booking.slot_id,
            experience_id=booking.experience_id,
            guests=booking.number_of_guests,
            message="commit failed after confirmation was logged; booking rolled back",
        )
    except RuntimeError:
        logger.exception("failed to record rollback of booking %s", booking.id)


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    idempotency_key: str | None = Depends(get_idempotency_key),
) -> BookingRead:
    uow = SqlAlchemyUnitOfWork(session)
    request = booking_usecase.BookingRequest(
        slot_id=payload.slot_id,
        experience_id=payload.experience_id,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        guests=payload.number_of_guests,
        promo_code=payload.promo_code,
        idempotency_key=idempotency_key,
    )
    try:
        outcome = await booking_usecase.commit_booking(
            uow,
            request,
            enforce_valid_from=settings.promo_enforce_valid_from,
            max_guests=settings.max_guests_per_booking,
            on_confirmed=_audit_confirmed,
            on_commit_failed=_audit_commit_failed,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "fields": exc.fields},
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="slot not available")
    except InsufficientCapacityError as exc:
        logger.info("booking rejected for slot %s: %s", payload.slot_id, exc)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "insufficient_capacity", "message": str(exc), "available": exc.available},
        )
    except PromoExhaustedAtCommitError as exc:
        logger.info("booking rejected for slot %s: %s", payload.slot_id, exc)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "promo_exhausted_at_commit", "code": exc.code},
        )
    except PromoRejectedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "promo_rejected", "reason": exc.reason, "code": exc.code},
        )
    except StorageUnavailableError:
        logger.warning("booking commit for slot %s aborted by storage failure", payload.slot_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="storage temporarily unavailable, retry",
        )
    except RuntimeError:
        # Audit failure inside the unit of work; the booking was rolled back.
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to record booking")

    if outcome.replayed:
        try:
            emit_audit_log(
                action="booking.replayed",
                initiator="customer",
                booking_id=outcome.booking.id,
                slot_id=outcome.booking.slot_id,
                experience_id=outcome.booking.experience_id,
                guests=outcome.booking.number_of_guests,
                extra={"idempotency_key": idempotency_key},
            )
        except RuntimeError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to emit audit log")
    return BookingRead.from_db(booking=outcome.booking, slot=outcome.slot, experience=outcome.experience)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking, slot, experience = await catalog_usecase.get_booking_details(booking_repo, booking_id=booking_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking not found")
    except StorageUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="storage temporarily unavailable, retry",
        )
    return BookingRead.from_db(booking=booking, slot=slot, experience=experience)
