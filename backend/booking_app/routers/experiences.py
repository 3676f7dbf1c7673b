from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_session
from ..domain.errors import BookingValidationError, NotFoundError, PromoRejectedError, StorageUnavailableError
from ..infrastructure.repositories import (
    SqlAlchemyExperienceRepository,
    SqlAlchemyPromoCodeRepository,
    SqlAlchemySlotRepository,
)
from ..schemas import ExperienceRead, ExperienceSlotsRead, QuoteRead, QuoteRequest, SlotRead
from ..usecases import catalog as catalog_usecase
from ..usecases import promo_codes as promo_usecase

router = APIRouter(prefix="/experiences", tags=["experiences"])

STORAGE_UNAVAILABLE = "storage temporarily unavailable, retry"


@router.get("", response_model=List[ExperienceRead])
async def list_experiences(
    q: Optional[str] = Query(default=None, max_length=100, description="Matches title, location or category"),
    session: AsyncSession = Depends(get_session),
) -> list[ExperienceRead]:
    experience_repo = SqlAlchemyExperienceRepository(session)
    try:
        rows = await catalog_usecase.search_experiences(experience_repo, term=q)
    except StorageUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)
    return [ExperienceRead.from_db(experience=experience) for experience in rows]


@router.get("/{experience_id}", response_model=ExperienceRead)
async def get_experience(
    experience_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ExperienceRead:
    experience_repo = SqlAlchemyExperienceRepository(session)
    try:
        experience = await catalog_usecase.get_experience(experience_repo, experience_id=experience_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="experience not found")
    except StorageUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)
    return ExperienceRead.from_db(experience=experience)


@router.get("/{experience_id}/slots", response_model=ExperienceSlotsRead)
async def list_slots(
    experience_id: int = Path(..., ge=1),
    on_date: date = Query(..., alias="date", description="Slot date (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
) -> ExperienceSlotsRead:
    experience_repo = SqlAlchemyExperienceRepository(session)
    slot_repo = SqlAlchemySlotRepository(session)
    try:
        experience, slots = await catalog_usecase.list_slots_for_date(
            experience_repo,
            slot_repo,
            experience_id=experience_id,
            on_date=on_date,
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="experience not found")
    except StorageUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)
    return ExperienceSlotsRead(
        experience=ExperienceRead.from_db(experience=experience),
        date=on_date,
        slots=[SlotRead.from_db(slot=slot) for slot in slots],
    )


@router.post("/{experience_id}/quote", response_model=QuoteRead)
async def quote(
    payload: QuoteRequest,
    experience_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> QuoteRead:
    experience_repo = SqlAlchemyExperienceRepository(session)
    promo_repo = SqlAlchemyPromoCodeRepository(session)
    try:
        price_quote, check = await promo_usecase.quote_price(
            experience_repo,
            promo_repo,
            experience_id=experience_id,
            guests=payload.guests,
            promo_code=payload.promo_code,
            enforce_valid_from=settings.promo_enforce_valid_from,
            max_guests=settings.max_guests_per_booking,
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="experience not found")
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "fields": exc.fields},
        )
    except PromoRejectedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "promo_rejected", "reason": exc.reason, "code": exc.code},
        )
    except StorageUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)
    return QuoteRead.from_quote(quote=price_quote, check=check)
