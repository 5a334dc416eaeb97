import logging

from fastapi import APIRouter, Depends, HTTPException
from razorpay.errors import BadRequestError, GatewayError, ServerError
from sqlalchemy.orm import Session

from bandhu_payments.auth import verify_token
from bandhu_payments.cache import TTLCache, get_status_cache
from bandhu_payments.checkout import initiate_payment
from bandhu_payments.config import Settings, get_settings
from bandhu_payments.database import get_db
from bandhu_payments.exceptions import ConfigurationError, OrderAlreadyPaidError, PersistenceError
from bandhu_payments.repository import PaymentRepository
from bandhu_payments.schemas import PaymentRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _persistence_failure(exc: PersistenceError) -> HTTPException:
    return HTTPException(status_code=503 if exc.retryable else 500, detail=str(exc))


@router.post("/payments")
def create_payment_api(
    request: PaymentRequest,
    auth=Depends(verify_token),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_status_cache),
):
    repository = PaymentRepository(db)
    try:
        order = repository.get_order(request.order_id)
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found")
        result = initiate_payment(repository, order, request, settings)
    except OrderAlreadyPaidError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ConfigurationError as exc:
        logger.error("Cannot start %s payment: %s", request.gateway, exc)
        raise HTTPException(status_code=500, detail="Payment gateway configuration error")
    except (BadRequestError, GatewayError, ServerError) as exc:
        logger.error("Razorpay rejected order creation for %s: %s", request.order_id, exc)
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")
    except PersistenceError as exc:
        raise _persistence_failure(exc)

    cache.invalidate(request.order_id)
    return result


@router.get("/payments/{order_id}/status")
def payment_status(
    order_id: str,
    auth=Depends(verify_token),
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_status_cache),
):
    cached = cache.get(order_id)
    if cached is not None:
        return cached

    repository = PaymentRepository(db)
    try:
        order = repository.get_order(order_id)
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found")
        payment = repository.get_latest_payment_for_order(order_id)
    except PersistenceError as exc:
        raise _persistence_failure(exc)

    body = {
        "orderId": order.id,
        "status": order.payment_status,
        "paymentId": payment.transaction_id if payment else None,
        "gateway": order.payment_gateway,
        "gatewayReference": order.gateway_reference,
    }
    cache.set(order_id, body)
    return body


@router.get("/health")
def health():
    return {"status": "ok"}
