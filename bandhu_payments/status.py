import logging
from typing import Optional

from bandhu_payments.models import TERMINAL_STATUSES, PaymentStatus

logger = logging.getLogger(__name__)

COMPLETED = PaymentStatus.COMPLETED
FAILED = PaymentStatus.FAILED
PENDING = PaymentStatus.PENDING
CANCELLED = PaymentStatus.CANCELLED

# Tokens shared by every gateway.
COMMON_TOKENS = {
    "success": COMPLETED,
    "completed": COMPLETED,
    "failure": FAILED,
    "failed": FAILED,
    "pending": PENDING,
    "cancelled": CANCELLED,
}

GATEWAY_TOKENS = {
    "payu": {
        "in progress": PENDING,
        "initiated": PENDING,
        "usercancelled": CANCELLED,
        "bounced": FAILED,
        "dropped": FAILED,
    },
    "razorpay": {
        "authorized": COMPLETED,
        "captured": COMPLETED,
        "created": PENDING,
    },
    "phonepe": {
        "payment_success": COMPLETED,
        "payment_error": FAILED,
        "payment_declined": FAILED,
        "timed_out": FAILED,
        "payment_pending": PENDING,
        "payment_cancelled": CANCELLED,
    },
    "paytm": {
        "txn_success": COMPLETED,
        "txn_failure": FAILED,
    },
}


def resolve(token: Optional[str], gateway: Optional[str] = None) -> PaymentStatus:
    """Map a gateway status token onto the canonical status.

    Unknown tokens come back as ``pending``: an unrecognised value must never
    settle a payment either way.
    """
    key = (token or "").strip().lower()
    if gateway in GATEWAY_TOKENS and key in GATEWAY_TOKENS[gateway]:
        return GATEWAY_TOKENS[gateway][key]
    if key in COMMON_TOKENS:
        return COMMON_TOKENS[key]

    logger.warning(
        "Unknown %s status token %r, treating as pending", gateway or "gateway", token
    )
    return PENDING


def is_terminal(status) -> bool:
    return PaymentStatus(status) in TERMINAL_STATUSES
