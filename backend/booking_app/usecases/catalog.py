from datetime import date

from ..domain.errors import NotFoundError
from ..domain.repositories import BookingRepository, ExperienceRepository, SlotRepository
from ..models import Booking, Experience, Slot


async def search_experiences(
    experience_repo: ExperienceRepository,
    *,
    term: str | None = None,
) -> list[Experience]:
    return await experience_repo.search(term)


async def get_experience(
    experience_repo: ExperienceRepository,
    *,
    experience_id: int,
) -> Experience:
    experience = await experience_repo.get(experience_id)
    if experience is None:
        raise NotFoundError("experience not found")
    return experience


async def list_slots_for_date(
    experience_repo: ExperienceRepository,
    slot_repo: SlotRepository,
    *,
    experience_id: int,
    on_date: date,
) -> tuple[Experience, list[Slot]]:
    """
    Experience plus its slots on `on_date`, earliest first.
    Sold-out slots are included; callers decide how to render them.
    """
    experience = await get_experience(experience_repo, experience_id=experience_id)
    slots = await slot_repo.list_for_date(experience.id, on_date)
    return experience, sorted(slots, key=lambda slot: (slot.time, slot.id))


async def get_booking_details(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
) -> tuple[Booking, Slot, Experience]:
    row = await booking_repo.get_with_details(booking_id)
    if row is None:
        raise NotFoundError("booking not found")
    return row
