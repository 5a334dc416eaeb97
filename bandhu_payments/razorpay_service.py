from decimal import Decimal

import razorpay
from razorpay.errors import SignatureVerificationError

from bandhu_payments.config import RazorpayConfig
from bandhu_payments.exceptions import ConfigurationError


def get_client(config: RazorpayConfig) -> razorpay.Client:
    if not (config.key_id and config.key_secret):
        raise ConfigurationError("Razorpay key id/secret not configured")
    return razorpay.Client(auth=(config.key_id, config.key_secret))


def to_paise(amount: str) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def create_razorpay_order(config: RazorpayConfig, amount: str, receipt: str, notes: dict):
    client = get_client(config)
    return client.order.create(data={
        "amount": to_paise(amount),
        "currency": "INR",
        "receipt": receipt,
        "notes": notes,
        "payment_capture": 1,
    })


def verify_signature(config: RazorpayConfig, razorpay_order_id: str, razorpay_payment_id: str, signature: str) -> bool:
    """Check the checkout handler's signature with the SDK; False on mismatch."""
    client = get_client(config)
    try:
        client.utility.verify_payment_signature({
            "razorpay_order_id": razorpay_order_id,
            "razorpay_payment_id": razorpay_payment_id,
            "razorpay_signature": signature,
        })
    except SignatureVerificationError:
        return False
    return True
