# ethree/infrastructure/gateway/easebuzz.py

"""
Easebuzz payment gateway protocol.

Both directions are authenticated with a SHA-512 digest over pipe-joined
fields and the merchant salt. The salt never leaves the process.

Request hash:
    key|txnid|amount|productinfo|firstname|email|udf1|...|udf10|salt

Callback hash (reverse order, salt first, key last):
    salt|status|udf10|...|udf1|email|firstname|productinfo|amount|txnid|key

The two layouts are fixed by the gateway and must match it exactly.
"""

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

import httpx

from ethree.config import Settings
from ethree.domain.exceptions import GatewayRejectedError, GatewayUnavailableError

logger = logging.getLogger(__name__)

UDF_FIELDS = tuple(f"udf{index}" for index in range(1, 11))

REQUEST_HASH_FIELDS = (
    "key",
    "txnid",
    "amount",
    "productinfo",
    "firstname",
    "email",
    *UDF_FIELDS,
)

CALLBACK_HASH_FIELDS = (
    "status",
    *reversed(UDF_FIELDS),
    "email",
    "firstname",
    "productinfo",
    "amount",
    "txnid",
    "key",
)

DEFAULT_PRODUCTINFO = "Order"
DEFAULT_FIRSTNAME = "User"
DEFAULT_EMAIL = "user@example.com"
DEFAULT_PHONE = "9999999999"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9 ]")
_NON_DIGIT = re.compile(r"[^0-9]")


def _field(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    return "" if value is None else str(value)


def _sha512(parts: list[str]) -> str:
    return hashlib.sha512("|".join(parts).encode("utf-8")).hexdigest()


def compute_request_hash(data: Mapping[str, Any], salt: str) -> str:
    return _sha512([_field(data, name) for name in REQUEST_HASH_FIELDS] + [salt])


def compute_callback_hash(data: Mapping[str, Any], salt: str) -> str:
    return _sha512([salt] + [_field(data, name) for name in CALLBACK_HASH_FIELDS])


def verify_callback(payload: Mapping[str, Any], salt: str) -> bool:
    """
    True iff the payload's own hash matches the digest recomputed from
    its fields. Never raises.
    """
    supplied = payload.get("hash")
    if not isinstance(supplied, str) or not supplied:
        return False
    expected = compute_callback_hash(payload, salt)
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def format_amount(amount: Decimal | float | int | str) -> str:
    return f"{Decimal(str(amount)):.2f}"


def _sanitize(value: str | None, limit: int, default: str) -> str:
    cleaned = _NON_ALNUM.sub("", value or "")[:limit].strip()
    return cleaned or default


def _sanitize_phone(value: str | None) -> str:
    digits = _NON_DIGIT.sub("", value or "")[:10]
    return digits or DEFAULT_PHONE


@dataclass(frozen=True)
class GatewayOrder:
    txnid: str
    amount: Decimal
    productinfo: str
    firstname: str | None
    email: str | None
    phone: str | None
    location: str
    user_id: str


@dataclass(frozen=True)
class GatewayInitiation:
    access_key: str
    payment_url: str


class EasebuzzClient:
    """
    Outbound initiation plus callback verification for one merchant.
    Does not retry; callers decide whether to resubmit.
    """

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None):
        self.settings = settings
        self._http = http_client or httpx.Client(timeout=settings.gateway_timeout)

    @property
    def base_url(self) -> str:
        return self.settings.gateway_base_url

    def build_request(self, order: GatewayOrder) -> dict[str, str]:
        payload = {
            "key": self.settings.merchant_key,
            "txnid": order.txnid,
            "amount": format_amount(order.amount),
            "productinfo": _sanitize(order.productinfo, 100, DEFAULT_PRODUCTINFO),
            "firstname": _sanitize(order.firstname, 20, DEFAULT_FIRSTNAME),
            "email": order.email or DEFAULT_EMAIL,
            "phone": _sanitize_phone(order.phone),
            "surl": f"{self.settings.backend_url}/api/payment/success",
            "furl": f"{self.settings.backend_url}/api/payment/failure",
        }
        payload.update({name: "" for name in UDF_FIELDS})
        payload["udf1"] = order.location
        payload["udf2"] = order.user_id

        payload["hash"] = compute_request_hash(payload, self.settings.merchant_salt)
        return payload

    def initiate(self, order: GatewayOrder) -> GatewayInitiation:
        payload = self.build_request(order)
        url = f"{self.base_url}/payment/initiateLink"

        try:
            response = self._http.post(
                url,
                data=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.exception("Gateway initiation transport failure. txnid=%s", order.txnid)
            raise GatewayUnavailableError(f"Gateway unreachable: {exc}") from exc

        if response.status_code >= 500:
            logger.error(
                "Gateway initiation returned HTTP %s. txnid=%s",
                response.status_code,
                order.txnid,
            )
            raise GatewayUnavailableError(f"Gateway returned HTTP {response.status_code}")

        try:
            result = response.json()
        except ValueError as exc:
            logger.error("Gateway initiation returned a non-JSON body. txnid=%s", order.txnid)
            raise GatewayUnavailableError("Gateway returned an unreadable response") from exc

        if not isinstance(result, dict):
            raise GatewayUnavailableError("Gateway returned an unreadable response")

        access_key = result.get("data")
        if str(result.get("status")) != "1" or not isinstance(access_key, str) or not access_key:
            reason = result.get("error_desc") or result.get("data") or "Payment initiation failed"
            logger.warning(
                "Gateway rejected initiation. txnid=%s reason=%s",
                order.txnid,
                reason,
            )
            raise GatewayRejectedError(str(reason))

        logger.info("Gateway initiation accepted. txnid=%s", order.txnid)
        return GatewayInitiation(
            access_key=access_key,
            payment_url=f"{self.base_url}/pay/{access_key}",
        )

    def verify_callback(self, payload: Mapping[str, Any]) -> bool:
        return verify_callback(payload, self.settings.merchant_salt)

    def close(self) -> None:
        self._http.close()
