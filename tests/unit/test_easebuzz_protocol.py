# tests/unit/test_easebuzz_protocol.py

import hashlib
from decimal import Decimal

import httpx
import pytest

from ethree.domain.exceptions import GatewayRejectedError, GatewayUnavailableError
from ethree.infrastructure.gateway.easebuzz import (
    GatewayOrder,
    compute_callback_hash,
    compute_request_hash,
    format_amount,
    verify_callback,
)

SALT = "s3cr3t"


def _sha512(text: str) -> str:
    return hashlib.sha512(text.encode("utf-8")).hexdigest()


def _order(**overrides) -> GatewayOrder:
    fields = dict(
        txnid="E3-123456",
        amount=Decimal("300"),
        productinfo="Bumper Cars",
        firstname="Ravi",
        email="ravi@example.com",
        phone="9876543210",
        location="E3",
        user_id="user-1",
    )
    fields.update(overrides)
    return GatewayOrder(**fields)


@pytest.fixture
def callback():
    payload = {
        "key": "KEY",
        "txnid": "E3-123456",
        "amount": "300.00",
        "productinfo": "Bumper Cars",
        "firstname": "Ravi",
        "email": "ravi@example.com",
        "status": "success",
        "udf1": "E3",
        "udf2": "user-1",
        "easepayid": "EZ1",
    }
    payload["hash"] = compute_callback_hash(payload, SALT)
    return payload


# ---------------------
# HASH LAYOUT
# ---------------------

def test_request_hash_field_order():
    data = {
        "key": "KEY",
        "txnid": "E3-123456",
        "amount": "300.00",
        "productinfo": "Bumper Cars",
        "firstname": "Ravi",
        "email": "ravi@example.com",
        "udf1": "E3",
        "udf2": "user-1",
    }
    udfs = ["E3", "user-1"] + [""] * 8
    expected = _sha512(
        "|".join(["KEY", "E3-123456", "300.00", "Bumper Cars", "Ravi", "ravi@example.com", *udfs, SALT])
    )
    assert compute_request_hash(data, SALT) == expected


def test_callback_hash_runs_salt_first_and_udfs_reversed():
    data = {
        "key": "KEY",
        "txnid": "E3-123456",
        "amount": "300.00",
        "productinfo": "Bumper Cars",
        "firstname": "Ravi",
        "email": "ravi@example.com",
        "status": "success",
        "udf1": "E3",
        "udf2": "user-1",
    }
    reversed_udfs = [""] * 8 + ["user-1", "E3"]
    expected = _sha512(
        "|".join(
            [SALT, "success", *reversed_udfs, "ravi@example.com", "Ravi", "Bumper Cars", "300.00", "E3-123456", "KEY"]
        )
    )
    assert compute_callback_hash(data, SALT) == expected


def test_hash_is_lowercase_hex_sha512():
    digest = compute_request_hash({}, SALT)
    assert len(digest) == 128
    assert digest == digest.lower()


# ---------------------
# CALLBACK VERIFICATION
# ---------------------

def test_verify_accepts_untouched_payload(callback):
    assert verify_callback(callback, SALT)


@pytest.mark.parametrize(
    "field, value",
    [
        ("amount", "3.00"),
        ("status", "failure"),
        ("txnid", "E3-999999"),
        ("udf1", "E4"),
        ("email", "someone@else.com"),
    ],
)
def test_single_field_flip_breaks_verification(callback, field, value):
    callback[field] = value
    assert not verify_callback(callback, SALT)


def test_wrong_salt_fails(callback):
    assert not verify_callback(callback, "other-salt")


def test_missing_hash_is_false_not_an_error(callback):
    del callback["hash"]
    assert verify_callback(callback, SALT) is False


def test_non_string_hash_is_false(callback):
    callback["hash"] = None
    assert verify_callback(callback, SALT) is False


def test_forged_hash_is_false(callback):
    callback["hash"] = "0" * 128
    assert not verify_callback(callback, SALT)


# ---------------------
# INITIATION
# ---------------------

def test_amount_formatting():
    assert format_amount(Decimal("300")) == "300.00"
    assert format_amount(99.5) == "99.50"
    assert format_amount("12") == "12.00"


def test_build_request_signs_and_defaults(gateway_client):
    payload = gateway_client.build_request(
        _order(firstname="Ravi K. (VIP)", email=None, phone="+91 98765-43210")
    )

    assert payload["amount"] == "300.00"
    assert payload["firstname"] == "Ravi K VIP"
    assert payload["email"] == "user@example.com"
    assert payload["phone"] == "9198765432"
    assert payload["udf1"] == "E3"
    assert payload["udf2"] == "user-1"
    assert all(payload[f"udf{index}"] == "" for index in range(3, 11))
    assert payload["surl"] == "http://backend.test/api/payment/success"
    assert payload["furl"] == "http://backend.test/api/payment/failure"
    assert payload["hash"] == compute_request_hash(payload, gateway_client.settings.merchant_salt)


def test_build_request_falls_back_to_placeholders(gateway_client):
    payload = gateway_client.build_request(
        _order(productinfo="***", firstname=None, phone=None)
    )
    assert payload["productinfo"] == "Order"
    assert payload["firstname"] == "User"
    assert payload["phone"] == "9999999999"


def test_initiate_returns_payment_link(gateway_client, fake_gateway):
    initiation = gateway_client.initiate(_order())

    assert initiation.access_key == "acc_key_123"
    assert initiation.payment_url == "https://testpay.easebuzz.in/pay/acc_key_123"
    assert fake_gateway.last_request["amount"] == "300.00"
    assert fake_gateway.last_request["key"] == "TESTKEY01"


def test_initiate_rejection_carries_gateway_reason(gateway_client, fake_gateway):
    fake_gateway.response = httpx.Response(
        200,
        json={"status": 0, "error_desc": "Invalid merchant key"},
    )

    with pytest.raises(GatewayRejectedError) as excinfo:
        gateway_client.initiate(_order())
    assert str(excinfo.value) == "Invalid merchant key"


def test_initiate_transport_failure(gateway_client, fake_gateway):
    fake_gateway.error = httpx.ConnectError("connection refused")

    with pytest.raises(GatewayUnavailableError):
        gateway_client.initiate(_order())
    assert len(fake_gateway.requests) == 1


def test_initiate_unreadable_body(gateway_client, fake_gateway):
    fake_gateway.response = httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(GatewayUnavailableError):
        gateway_client.initiate(_order())


def test_initiate_server_error(gateway_client, fake_gateway):
    fake_gateway.response = httpx.Response(503, json={"status": 0})

    with pytest.raises(GatewayUnavailableError):
        gateway_client.initiate(_order())
