import logging
from typing import Any, Dict
from urllib.parse import urlencode

from bandhu_payments.config import Settings
from bandhu_payments.hashing import compute_request_hash, generate_transaction_id
from bandhu_payments.exceptions import OrderAlreadyPaidError
from bandhu_payments.models import Order, PaymentStatus, PaymentTransaction
from bandhu_payments.razorpay_service import create_razorpay_order, to_paise
from bandhu_payments.repository import PaymentRepository
from bandhu_payments.schemas import PaymentRequest

logger = logging.getLogger(__name__)

CALLBACK_PATHS = {
    "payu_success": "/payment/callback/payu/success",
    "payu_failure": "/payment/callback/payu/failure",
    "payu_cancel": "/payment/callback/payu/cancel",
    "phonepe": "/payment/callback/phonepe",
    "paytm": "/payment/callback/paytm",
}


def _callback_url(settings: Settings, name: str, **query: str) -> str:
    url = settings.service_url + CALLBACK_PATHS[name]
    if query:
        url += "?" + urlencode(query)
    return url


def payu_form(payment: PaymentTransaction, order: Order, request: PaymentRequest, settings: Settings) -> Dict[str, Any]:
    fields = {
        "key": settings.payu.merchant_key or "",
        "txnid": payment.transaction_id,
        "amount": payment.amount,
        "productinfo": f"Order #{order.id[:8]}",
        "firstname": request.firstname or order.customer_name or "Customer",
        "email": request.email or order.customer_email or "",
        "phone": request.phone or "",
        "udf1": order.id,
        "surl": _callback_url(settings, "payu_success"),
        "furl": _callback_url(settings, "payu_failure"),
        "curl": _callback_url(settings, "payu_cancel"),
    }
    fields["hash"] = compute_request_hash(fields, settings.payu.merchant_salt)
    return {"form_url": settings.payu.base_url, "form_data": fields}


def gateway_payload(payment: PaymentTransaction, order: Order, request: PaymentRequest, settings: Settings) -> Dict[str, Any]:
    if payment.gateway == "payu":
        return payu_form(payment, order, request, settings)
    if payment.gateway == "razorpay":
        return {
            "key_id": settings.razorpay.key_id,
            "razorpay_order_id": payment.gateway_order_id,
            "amount": to_paise(payment.amount),
            "currency": "INR",
        }
    query = {"paymentId": payment.transaction_id, "orderId": order.id}
    if payment.gateway == "phonepe":
        return {
            "merchant_id": settings.phonepe.merchant_id,
            "merchant_transaction_id": payment.transaction_id,
            "amount": to_paise(payment.amount),
            "callback_url": _callback_url(settings, "phonepe", **query),
        }
    return {
        "mid": settings.paytm.merchant_id,
        "order_id": payment.transaction_id,
        "amount": payment.amount,
        "callback_url": _callback_url(settings, "paytm", **query),
    }


def initiate_payment(repository: PaymentRepository, order: Order, request: PaymentRequest, settings: Settings) -> Dict[str, Any]:
    """Start (or resume) a payment attempt for ``order`` on the requested gateway."""
    settings.require(request.gateway)
    if order.payment_status == PaymentStatus.COMPLETED.value:
        raise OrderAlreadyPaidError(order.id)
    payment = repository.get_pending_payment(order.id, request.gateway)
    if payment is None:
        transaction_id = generate_transaction_id()
        gateway_order_id = None
        if request.gateway == "razorpay":
            razorpay_order = create_razorpay_order(
                settings.razorpay,
                order.total_amount,
                receipt=transaction_id,
                notes={"order_id": order.id, "payment_id": transaction_id},
            )
            gateway_order_id = razorpay_order["id"]
        payment = repository.create_payment(
            transaction_id=transaction_id,
            gateway=request.gateway,
            order_id=order.id,
            amount=order.total_amount,
            gateway_order_id=gateway_order_id,
        )
        logger.info("Started %s payment %s for order %s", request.gateway, transaction_id, order.id)

    return {
        "transaction_id": payment.transaction_id,
        "order_id": order.id,
        "gateway": payment.gateway,
        "status": payment.status,
        "checkout": gateway_payload(payment, order, request, settings),
    }
