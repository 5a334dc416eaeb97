import base64
import json
import os

os.environ["DATABASE_URL"] = "sqlite:///./test_payments.db"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from paytmchecksum import PaytmChecksum
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bandhu_payments.config import (
    PaytmConfig,
    PayUConfig,
    PhonePeConfig,
    RazorpayConfig,
    Settings,
    get_settings,
)
from bandhu_payments.database import Base, get_db
from bandhu_payments.hashing import compute_response_hash, hmac_sha256_hex
from bandhu_payments.main import app as fastapi_app
from bandhu_payments.models import Order, PaymentTransaction
from bandhu_payments.verification import phonepe_checksum

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_payments.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

JWT_SECRET = "test-jwt-secret"


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        app_url="https://shop.example.com",
        service_url="https://pay.example.com",
        jwt_secret=JWT_SECRET,
        payu=PayUConfig(merchant_key="K1", merchant_salt="S1"),
        razorpay=RazorpayConfig(key_id="rzp_test_key", key_secret="rzp_secret"),
        phonepe=PhonePeConfig(merchant_id="PHONEPEMID", salt_key="phonepe-salt", salt_index="1"),
        paytm=PaytmConfig(merchant_id="PAYTMMID", merchant_key="PAYTMKEY12345678"),
    )


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


def override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(settings):
    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_settings] = lambda: settings
    fastapi_app.state.status_cache.clear()
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = jwt.encode({"sub": "retailer-1"}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_order():
    def _make(order_id="order-42", total_amount="100.00", **fields):
        session = TestingSessionLocal()
        session.add(Order(id=order_id, total_amount=total_amount, **fields))
        session.commit()
        session.close()
        return order_id
    return _make


@pytest.fixture
def make_payment():
    def _make(transaction_id="TXN_abc_123", gateway="payu", order_id="order-42",
              amount="100.00", status="pending", gateway_order_id=None):
        session = TestingSessionLocal()
        session.add(PaymentTransaction(
            transaction_id=transaction_id,
            gateway=gateway,
            order_id=order_id,
            amount=amount,
            status=status,
            gateway_order_id=gateway_order_id,
        ))
        session.commit()
        session.close()
        return transaction_id
    return _make


@pytest.fixture
def fetch():
    def _fetch(model, **filters):
        session = TestingSessionLocal()
        row = session.query(model).filter_by(**filters).first()
        session.close()
        return row
    return _fetch


@pytest.fixture
def signed_payu(settings):
    """Build a PayU callback form signed with the test salt."""
    def _sign(status="success", txnid="TXN_abc_123", order_id="order-42",
              amount="100.00", **fields):
        form = {
            "key": settings.payu.merchant_key,
            "txnid": txnid,
            "amount": amount,
            "productinfo": "Order order-42",
            "firstname": "Test",
            "email": "t@example.com",
            "udf1": order_id,
            "status": status,
            "mihpayid": "403993715531077182",
        }
        form.update(fields)
        form["hash"] = compute_response_hash(form, settings.payu.merchant_salt)
        return form
    return _sign


@pytest.fixture
def signed_razorpay(settings):
    def _sign(razorpay_order_id="order_Rzp123", razorpay_payment_id="pay_Rzp456",
              payment_id="TXN_rzp_1", order_id="order-42"):
        signature = hmac_sha256_hex(
            f"{razorpay_order_id}|{razorpay_payment_id}", settings.razorpay.key_secret
        )
        return {
            "razorpay_order_id": razorpay_order_id,
            "razorpay_payment_id": razorpay_payment_id,
            "razorpay_signature": signature,
            "paymentId": payment_id,
            "orderId": order_id,
        }
    return _sign


@pytest.fixture
def signed_phonepe(settings):
    """Return a (body, headers) pair for a PhonePe server callback."""
    def _sign(code="PAYMENT_SUCCESS", merchant_transaction_id="TXN_pp_1",
              order_id="order-42", merchant_id=None):
        merchant_id = merchant_id or settings.phonepe.merchant_id
        decoded = {
            "success": code == "PAYMENT_SUCCESS",
            "code": code,
            "data": {
                "merchantId": merchant_id,
                "merchantTransactionId": merchant_transaction_id,
                "transactionId": "T2310121234567890",
                "amount": 10000,
            },
        }
        response = base64.b64encode(json.dumps(decoded).encode()).decode()
        body = {
            "merchantId": merchant_id,
            "merchantTransactionId": merchant_transaction_id,
            "response": response,
            "orderId": order_id,
        }
        headers = {"X-VERIFY": phonepe_checksum(
            response, settings.phonepe.salt_key, settings.phonepe.salt_index)}
        return body, headers
    return _sign


@pytest.fixture
def signed_paytm(settings):
    def _sign(status="TXN_SUCCESS", paytm_order_id="TXN_ptm_1", resp_code="01"):
        form = {
            "MID": settings.paytm.merchant_id,
            "ORDERID": paytm_order_id,
            "TXNID": "20231012111212800110168",
            "TXNAMOUNT": "100.00",
            "STATUS": status,
            "RESPCODE": resp_code,
            "RESPMSG": "Txn Success",
        }
        form["CHECKSUMHASH"] = PaytmChecksum.generateSignature(form, settings.paytm.merchant_key)
        return form
    return _sign
