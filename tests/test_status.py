import logging

import pytest

from bandhu_payments.models import PaymentStatus
from bandhu_payments.status import is_terminal, resolve


@pytest.mark.parametrize("token,gateway,expected", [
    ("success", "payu", PaymentStatus.COMPLETED),
    ("SUCCESS", "payu", PaymentStatus.COMPLETED),
    ("failure", "payu", PaymentStatus.FAILED),
    ("pending", "payu", PaymentStatus.PENDING),
    ("in progress", "payu", PaymentStatus.PENDING),
    ("userCancelled", "payu", PaymentStatus.CANCELLED),
    ("authorized", "razorpay", PaymentStatus.COMPLETED),
    ("captured", "razorpay", PaymentStatus.COMPLETED),
    ("PAYMENT_SUCCESS", "phonepe", PaymentStatus.COMPLETED),
    ("PAYMENT_ERROR", "phonepe", PaymentStatus.FAILED),
    ("PAYMENT_PENDING", "phonepe", PaymentStatus.PENDING),
    ("TXN_SUCCESS", "paytm", PaymentStatus.COMPLETED),
    ("TXN_FAILURE", "paytm", PaymentStatus.FAILED),
    ("cancelled", None, PaymentStatus.CANCELLED),
])
def test_known_tokens(token, gateway, expected):
    assert resolve(token, gateway) == expected


def test_gateway_specific_token_needs_its_gateway(caplog):
    assert resolve("TXN_SUCCESS", "payu") == PaymentStatus.PENDING
    assert "Unknown payu status token 'TXN_SUCCESS'" in caplog.text


@pytest.mark.parametrize("token", ["weird_token", "", None])
def test_unknown_token_is_pending_with_warning(token, caplog):
    assert resolve(token, "payu") == PaymentStatus.PENDING
    assert [r.levelno for r in caplog.records] == [logging.WARNING]
    assert "treating as pending" in caplog.text


def test_known_token_does_not_warn(caplog):
    assert resolve("success", "payu") == PaymentStatus.COMPLETED
    assert caplog.records == []


def test_terminal_statuses():
    assert not is_terminal("pending")
    assert is_terminal("completed")
    assert is_terminal(PaymentStatus.FAILED)
    assert is_terminal("cancelled")
