from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "booking.confirmed",
    "booking.replayed",
    "booking.commit_failed",
]
AuditInitiator = Literal["customer", "system"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _to_json_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value"):
        return str(value.value)
    return value


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    booking_id: Optional[int],
    slot_id: Optional[int],
    experience_id: Optional[int],
    guests: Optional[int],
    total_price: Optional[Decimal] = None,
    discount_amount: Optional[Decimal] = None,
    promo_code: Optional[str] = None,
    status: Optional[str] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "booking_id": booking_id,
        "slot_id": slot_id,
        "experience_id": experience_id,
        "guests": guests,
        "total_price": _to_json_value(total_price),
        "discount_amount": _to_json_value(discount_amount),
        "promo_code": promo_code,
        "status": _to_json_value(status),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update({k: _to_json_value(v) for k, v in extra.items()})

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
