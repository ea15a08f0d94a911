"""crossaudit detector rules."""

from .api_contract import detect_api_contract_violation
from .idempotency import detect_idempotency_violation
from .payload_access import detect_unsafe_payload_access
from .webhook_handler import is_webhook_handler

__all__ = [
    "detect_api_contract_violation",
    "detect_idempotency_violation",
    "detect_unsafe_payload_access",
    "is_webhook_handler",
]
