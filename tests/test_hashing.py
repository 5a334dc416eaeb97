import hashlib
import hmac
import re

import pytest

from bandhu_payments.exceptions import ConfigurationError
from bandhu_payments.hashing import (
    compute_request_hash,
    compute_response_hash,
    generate_transaction_id,
    hmac_sha256_hex,
    request_hash_string,
    response_hash_string,
)

FIELDS = {
    "key": "K1",
    "txnid": "TXN_abc_123",
    "amount": "100.00",
    "productinfo": "Order #1",
    "firstname": "Test",
    "email": "t@example.com",
    "udf1": "order-42",
    "status": "success",
}


def test_request_hash_string_layout():
    assert request_hash_string(FIELDS, "S1") == (
        "K1|TXN_abc_123|100.00|Order #1|Test|t@example.com|order-42||||||||||S1"
    )


def test_response_hash_string_is_reversed():
    assert response_hash_string(FIELDS, "S1") == (
        "S1|success||||||||||order-42|t@example.com|Test|Order #1|100.00|TXN_abc_123|K1"
    )


def test_request_hash_matches_sha512_of_sequence():
    expected = hashlib.sha512(
        "K1|TXN_abc_123|100.00|Order #1|Test|t@example.com|order-42||||||||||S1".encode()
    ).hexdigest()
    assert compute_request_hash(FIELDS, "S1") == expected
    assert len(expected) == 128


def test_hashes_are_deterministic():
    assert compute_request_hash(FIELDS, "S1") == compute_request_hash(dict(FIELDS), "S1")
    assert compute_response_hash(FIELDS, "S1") == compute_response_hash(dict(FIELDS), "S1")


def test_missing_and_none_fields_hash_as_empty():
    with_none = dict(FIELDS, udf2=None, udf3=None)
    with_empty = dict(FIELDS, udf2="", udf3="")
    assert compute_response_hash(with_none, "S1") == compute_response_hash(with_empty, "S1")
    assert compute_response_hash(with_none, "S1") == compute_response_hash(FIELDS, "S1")


def test_secret_changes_digest():
    assert compute_response_hash(FIELDS, "S1") != compute_response_hash(FIELDS, "S2")


@pytest.mark.parametrize("secret", [None, ""])
def test_missing_secret_fails_closed(secret):
    with pytest.raises(ConfigurationError):
        compute_response_hash(FIELDS, secret)
    with pytest.raises(ConfigurationError):
        compute_request_hash(FIELDS, secret)
    with pytest.raises(ConfigurationError):
        hmac_sha256_hex("order|payment", secret)


def test_hmac_sha256_matches_stdlib_hmac():
    expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert hmac_sha256_hex("order_1|pay_1", "secret") == expected


def test_transaction_ids_are_unique_and_shaped():
    ids = {generate_transaction_id() for _ in range(50)}
    assert len(ids) == 50
    for txn_id in ids:
        assert re.fullmatch(r"TXN_\d{13}_[a-z0-9]{8}", txn_id)
