from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_session
from ..domain.errors import BookingValidationError, StorageUnavailableError
from ..infrastructure.repositories import SqlAlchemyPromoCodeRepository
from ..schemas import PromoValidateRequest, PromoValidationRead
from ..usecases import promo_codes as promo_usecase

router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])


@router.post("/validate", response_model=PromoValidationRead)
async def validate_promo_code(
    payload: PromoValidateRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> PromoValidationRead:
    """Check a code without redeeming it; rejections come back as a status, not an error."""
    promo_repo = SqlAlchemyPromoCodeRepository(session)
    try:
        check = await promo_usecase.validate_promo_code(
            promo_repo,
            code=payload.code,
            enforce_valid_from=settings.promo_enforce_valid_from,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "fields": exc.fields},
        )
    except StorageUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="storage temporarily unavailable, retry",
        )
    return PromoValidationRead.from_check(code=payload.code, check=check)
