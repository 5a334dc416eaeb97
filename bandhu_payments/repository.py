import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from bandhu_payments.exceptions import PersistenceError
from bandhu_payments.models import (
    Order,
    PaymentEvent,
    PaymentStatus,
    PaymentTransaction,
    utcnow,
)

logger = logging.getLogger(__name__)


class PaymentRepository:
    """Persistence operations the settlement flow relies on."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except (OperationalError, PoolTimeoutError) as exc:
            self.db.rollback()
            logger.error("Database unavailable while trying to %s: %s", action, exc)
            raise PersistenceError(f"Database unavailable: {action}", retryable=True) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Database error while trying to %s: %s", action, exc)
            raise PersistenceError(f"Database error: {action}", retryable=False) from exc

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._guard("load order"):
            return self.db.get(Order, order_id, populate_existing=True)

    def get_payment(self, transaction_id: str, gateway: Optional[str] = None) -> Optional[PaymentTransaction]:
        stmt = select(PaymentTransaction).where(PaymentTransaction.transaction_id == transaction_id)
        if gateway:
            stmt = stmt.where(PaymentTransaction.gateway == gateway)
        with self._guard("load payment"):
            return self.db.execute(stmt.execution_options(populate_existing=True)).scalars().first()

    def get_latest_payment_for_order(self, order_id: str) -> Optional[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.order_id == order_id)
            .order_by(PaymentTransaction.id.desc())
        )
        with self._guard("load order payment"):
            return self.db.execute(stmt).scalars().first()

    def get_pending_payment(self, order_id: str, gateway: str) -> Optional[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(
                PaymentTransaction.order_id == order_id,
                PaymentTransaction.gateway == gateway,
                PaymentTransaction.status == PaymentStatus.PENDING.value,
            )
            .order_by(PaymentTransaction.id.desc())
        )
        with self._guard("load pending payment"):
            return self.db.execute(stmt).scalars().first()

    def create_payment(
        self,
        transaction_id: str,
        gateway: str,
        order_id: str,
        amount: str,
        gateway_order_id: Optional[str] = None,
    ) -> PaymentTransaction:
        payment = PaymentTransaction(
            transaction_id=transaction_id,
            gateway=gateway,
            order_id=order_id,
            amount=amount,
            status=PaymentStatus.PENDING.value,
            gateway_order_id=gateway_order_id,
        )
        with self._guard("create payment"):
            self.db.add(payment)
            self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.payment_status != PaymentStatus.COMPLETED.value)
                .values(
                    payment_gateway=gateway,
                    payment_status=PaymentStatus.PENDING.value,
                    updated_at=utcnow(),
                )
            )
            self.db.commit()
            self.db.refresh(payment)
        return payment

    def update_payment_status(
        self,
        transaction_id: str,
        gateway: str,
        new_status: PaymentStatus,
        metadata: Dict[str, Any],
    ) -> int:
        """Move a pending payment to ``new_status``; returns the rows changed.

        The status guard sits in the UPDATE itself, so two concurrent deliveries
        cannot both win. Not committed here.
        """
        stmt = (
            update(PaymentTransaction)
            .where(
                PaymentTransaction.transaction_id == transaction_id,
                PaymentTransaction.gateway == gateway,
                PaymentTransaction.status == PaymentStatus.PENDING.value,
            )
            .values(
                status=new_status.value,
                gateway_reference=metadata.get("gateway_reference") or None,
                raw_response=metadata.get("raw_response"),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._guard("update payment status"):
            return self.db.execute(stmt).rowcount

    def update_order_payment(self, order_id: str, status: PaymentStatus, gateway_reference: Optional[str]) -> None:
        """Point the order at a settled payment. A paid order is never moved."""
        with self._guard("update order"):
            self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.payment_status != PaymentStatus.COMPLETED.value)
                .values(
                    payment_status=status.value,
                    gateway_reference=gateway_reference or None,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

    def commit(self) -> None:
        with self._guard("commit"):
            self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def log_event(
        self,
        gateway: str,
        outcome: str,
        transaction_id: Optional[str] = None,
        status: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._guard("write audit event"):
            self.db.add(
                PaymentEvent(
                    transaction_id=transaction_id,
                    gateway=gateway,
                    outcome=outcome,
                    status=status,
                    payload=payload,
                )
            )
            self.db.commit()
