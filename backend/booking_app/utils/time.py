from datetime import datetime, timezone


def utc_now_naive() -> datetime:
    """Current UTC time without tzinfo, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
