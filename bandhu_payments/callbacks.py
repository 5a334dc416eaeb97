"""Gateway return and webhook endpoints.

Every call runs parse -> verify -> resolve -> settle and always ends in a
well-formed response: browser returns land on an app page via redirect,
server-to-server calls get JSON with an explicit ``success`` flag.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from bandhu_payments.cache import TTLCache, get_status_cache
from bandhu_payments.config import Settings, get_settings
from bandhu_payments.database import get_db
from bandhu_payments.exceptions import (
    ConfigurationError,
    MalformedRequestError,
    OrderMismatchError,
    OrderNotFoundError,
    PaymentNotFoundError,
    PersistenceError,
)
from bandhu_payments.models import PaymentStatus
from bandhu_payments.repository import PaymentRepository
from bandhu_payments.schemas import GatewayCallback, parse_callback
from bandhu_payments.settlement import SettlementRequest, SettlementResult, apply_settlement
from bandhu_payments.status import resolve
from bandhu_payments.verification import VerificationResult, verify

logger = logging.getLogger(__name__)

router = APIRouter()

APPLICATION_FIELDS = ("paymentId", "orderId")

ERROR_CODES = {
    OrderNotFoundError: ("order_not_found", 404),
    PaymentNotFoundError: ("unknown_transaction", 404),
    OrderMismatchError: ("order_mismatch", 409),
}


@dataclass
class CallbackResult:
    verification: VerificationResult
    settlement: Optional[SettlementResult] = None


def settle_callback(record: GatewayCallback, settings: Settings, db: Session, cache: TTLCache) -> CallbackResult:
    settings.require(record.gateway)

    verification = verify(record, settings)
    if not verification.ok:
        return CallbackResult(verification=verification)

    settlement = apply_settlement(
        PaymentRepository(db),
        SettlementRequest(
            transaction_id=record.transaction_id,
            gateway=record.gateway,
            order_id=record.order_id,
            status=resolve(record.status_token, record.gateway),
            gateway_reference=record.gateway_reference,
            gateway_order_id=record.gateway_order_id,
            raw_response=record.raw_response,
        ),
    )
    cache.invalidate(settlement.order_id)
    return CallbackResult(verification=verification, settlement=settlement)


def _audit(db: Session, record: GatewayCallback, outcome: str, status: Optional[str] = None) -> None:
    try:
        PaymentRepository(db).log_event(
            record.gateway,
            outcome,
            transaction_id=record.transaction_id,
            status=status,
            payload=record.raw_response,
        )
    except PersistenceError:
        logger.exception("Could not record audit event for %s transaction %s", record.gateway, record.transaction_id)


def _error_code(exc: PersistenceError):
    for error_type, code in ERROR_CODES.items():
        if isinstance(exc, error_type):
            return code
    if exc.retryable:
        return "temporarily_unavailable", 503
    return "payment_error", 500


def _json(status_code: int, **body: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


class JsonResponder:
    def settled(self, record: GatewayCallback, settlement: SettlementResult):
        return _json(
            200,
            success=True,
            status=settlement.effective_status.value,
            orderId=settlement.order_id,
            transactionId=settlement.transaction_id,
        )

    def rejected(self, record: GatewayCallback, verification: VerificationResult):
        return _json(400, success=False, error="Security verification failed")

    def persistence_error(self, record: GatewayCallback, exc: PersistenceError):
        code, status_code = _error_code(exc)
        return _json(status_code, success=False, error=code, retryable=exc.retryable)

    def internal_error(self, record: GatewayCallback):
        return _json(500, success=False, error="Internal server error")


class BrowserResponder:
    def __init__(self, settings: Settings):
        self.settings = settings

    def _redirect(self, path: str, record: GatewayCallback, status: str, error: Optional[str] = None):
        query = {"orderId": record.order_id, "txnId": record.transaction_id, "status": status}
        if error:
            query["error"] = error
        url = f"{self.settings.app_url}{path}?{urlencode(query)}"
        return RedirectResponse(url, status_code=303)

    def _failure(self, record: GatewayCallback, error: str):
        return self._redirect(self.settings.failure_path, record, PaymentStatus.FAILED.value, error)

    def settled(self, record: GatewayCallback, settlement: SettlementResult):
        status = settlement.effective_status
        if status is PaymentStatus.COMPLETED:
            path = self.settings.success_path
        elif status is PaymentStatus.PENDING:
            path = self.settings.pending_path
        else:
            path = self.settings.failure_path
        return self._redirect(path, record, status.value)

    def rejected(self, record: GatewayCallback, verification: VerificationResult):
        return self._failure(record, "verification_failed")

    def persistence_error(self, record: GatewayCallback, exc: PersistenceError):
        code, _ = _error_code(exc)
        return self._failure(record, code)

    def internal_error(self, record: GatewayCallback):
        return self._failure(record, "internal_error")


async def read_form(request: Request) -> Dict[str, Any]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


async def read_json(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise MalformedRequestError("Body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedRequestError("JSON body must be an object")
    return payload


async def read_form_or_json(request: Request) -> Dict[str, Any]:
    if request.headers.get("content-type", "").startswith("application/json"):
        return await read_json(request)
    return await read_form(request)


def application_fields(request: Request) -> Dict[str, str]:
    return {name: request.query_params[name] for name in APPLICATION_FIELDS if request.query_params.get(name)}


async def run_callback(
    request: Request,
    gateway: str,
    reader,
    responder,
    settings: Settings,
    db: Session,
    cache: TTLCache,
    context: Optional[Dict[str, Any]] = None,
):
    try:
        record = parse_callback(gateway, await reader(request), **(context or {}))
    except MalformedRequestError as exc:
        logger.warning("Malformed %s callback: %s", gateway, exc)
        return _json(400, success=False, error=str(exc))

    try:
        result = settle_callback(record, settings, db, cache)
    except ConfigurationError as exc:
        logger.error("Cannot process %s callback %s: %s", gateway, record.transaction_id, exc)
        _audit(db, record, "configuration_error")
        return _json(500, success=False, error="Payment gateway configuration error")
    except PersistenceError as exc:
        logger.warning("Settlement failed for %s transaction %s: %s", gateway, record.transaction_id, exc)
        _audit(db, record, "retryable_error" if exc.retryable else "rejected_input")
        return responder.persistence_error(record, exc)
    except Exception:
        logger.exception("Unhandled error in %s callback %s", gateway, record.transaction_id)
        db.rollback()
        return responder.internal_error(record)

    if result.settlement is None:
        _audit(db, record, "rejected")
        return responder.rejected(record, result.verification)

    settlement = result.settlement
    _audit(db, record, settlement.outcome.value, settlement.effective_status.value)
    return responder.settled(record, settlement)


@router.post("/payment/callback/payu/success")
@router.post("/payment/callback/payu/failure")
@router.post("/payment/callback/payu/cancel")
async def payu_return(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_status_cache),
):
    return await run_callback(request, "payu", read_form, BrowserResponder(settings), settings, db, cache)


@router.post("/payments/payu/webhook")
async def payu_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_status_cache),
):
    return await run_callback(request, "payu", read_form_or_json, JsonResponder(), settings, db, cache)


@router.post("/payment/callback/razorpay")
async def razorpay_callback(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_status_cache),
):
    return await run_callback(request, "razorpay", read_json, JsonResponder(), settings, db, cache)


@router.post("/payment/callback/phonepe")
async def phonepe_callback(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_status_cache),
):
    context = {**application_fields(request), "x_verify": request.headers.get("X-VERIFY", "")}
    return await run_callback(request, "phonepe", read_json, JsonResponder(), settings, db, cache, context)


@router.post("/payment/callback/paytm")
async def paytm_callback(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_status_cache),
):
    return await run_callback(
        request, "paytm", read_form, BrowserResponder(settings), settings, db, cache,
        application_fields(request),
    )
