import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from bandhu_payments.exceptions import OrderMismatchError, OrderNotFoundError, PaymentNotFoundError
from bandhu_payments.models import PaymentStatus
from bandhu_payments.repository import PaymentRepository

logger = logging.getLogger(__name__)


class SettlementOutcome(str, enum.Enum):
    APPLIED = "applied"         # first terminal transition
    DUPLICATE = "duplicate"     # same status delivered again
    IGNORED = "ignored"         # pending after a terminal status
    CONFLICT = "conflict"       # different terminal status after a terminal one


@dataclass
class SettlementRequest:
    transaction_id: str
    gateway: str
    order_id: str
    status: PaymentStatus
    gateway_reference: Optional[str] = None
    gateway_order_id: Optional[str] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SettlementResult:
    outcome: SettlementOutcome
    effective_status: PaymentStatus
    transaction_id: str
    order_id: str

    @property
    def changed(self) -> bool:
        return self.outcome is SettlementOutcome.APPLIED


def apply_settlement(repository: PaymentRepository, request: SettlementRequest) -> SettlementResult:
    """Apply a verified gateway outcome to the stored payment and its order.

    A payment leaves ``pending`` at most once. Replays of the recorded outcome,
    late ``pending`` notices and attempts to flip a terminal status are all
    no-ops, reported through ``outcome``.
    """
    order = repository.get_order(request.order_id)
    if order is None:
        raise OrderNotFoundError(request.order_id)

    payment = repository.get_payment(request.transaction_id, request.gateway)
    if payment is None:
        raise PaymentNotFoundError(request.transaction_id, request.gateway)
    if payment.order_id != order.id:
        raise OrderMismatchError(request.transaction_id, request.order_id)
    if payment.gateway_order_id and request.gateway_order_id != payment.gateway_order_id:
        raise OrderMismatchError(request.transaction_id, request.order_id)
    order_id = order.id

    def result(outcome: SettlementOutcome, status) -> SettlementResult:
        return SettlementResult(
            outcome=outcome,
            effective_status=PaymentStatus(status),
            transaction_id=request.transaction_id,
            order_id=order_id,
        )

    if request.status is PaymentStatus.PENDING:
        if payment.status == PaymentStatus.PENDING.value:
            return result(SettlementOutcome.DUPLICATE, payment.status)
        logger.info(
            "Ignoring pending notice for %s transaction %s already %s",
            request.gateway, request.transaction_id, payment.status,
        )
        return result(SettlementOutcome.IGNORED, payment.status)

    changed = repository.update_payment_status(
        request.transaction_id,
        request.gateway,
        request.status,
        {"gateway_reference": request.gateway_reference, "raw_response": request.raw_response},
    )
    if changed:
        repository.update_order_payment(order_id, request.status, request.gateway_reference)
        repository.commit()
        logger.info(
            "Settled %s transaction %s for order %s as %s",
            request.gateway, request.transaction_id, order_id, request.status.value,
        )
        return result(SettlementOutcome.APPLIED, request.status)

    # Another delivery got there first; report what is stored.
    repository.rollback()
    current = repository.get_payment(request.transaction_id, request.gateway)
    if current.status == request.status.value:
        return result(SettlementOutcome.DUPLICATE, current.status)

    logger.warning(
        "Refusing to move %s transaction %s from %s to %s",
        request.gateway, request.transaction_id, current.status, request.status.value,
    )
    return result(SettlementOutcome.CONFLICT, current.status)
