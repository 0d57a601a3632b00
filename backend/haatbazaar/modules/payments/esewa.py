# haatbazaar/modules/payments/esewa.py
# eSewa ePay v2: HMAC-SHA256 form signing, callback verification and the status API.
import base64
import binascii
import hashlib
import hmac
import html
import json
from typing import Any, Dict, List, Mapping, Optional

import httpx

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.modules.payments.exceptions import (
    InvalidCallbackError, MissingCheckoutFieldError, ProviderUnavailableError, SignatureMismatchError,
)

INITIATION_SIGNED_FIELDS = ("total_amount", "transaction_uuid", "product_code")

CHECKOUT_FIELDS = (
    "amount",
    "tax_amount",
    "total_amount",
    "transaction_uuid",
    "product_code",
    "product_service_charge",
    "product_delivery_charge",
    "success_url",
    "failure_url",
    "signed_field_names",
    "signature",
)


def format_amount(value: float) -> str:
    return f"{value:.2f}"


def build_signed_message(fields: Mapping[str, Any], field_names: List[str]) -> str:
    """`name=value` pairs in the listed order, comma separated. Raises KeyError on a missing field."""
    return ",".join(f"{name}={fields[name]}" for name in field_names)


def sign(message: str, secret_key: Optional[str] = None) -> str:
    key = (secret_key or settings.ESEWA_SECRET_KEY).encode("utf-8")
    digest = hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_form_payload(
    transaction_uuid: str,
    total_amount: float,
    product_code: Optional[str] = None,
    secret_key: Optional[str] = None,
) -> Dict[str, str]:
    """The eleven fields posted to the eSewa form URL, signature included."""
    amount = format_amount(total_amount)
    payload = {
        "amount": amount,
        "tax_amount": format_amount(0),
        "total_amount": amount,
        "transaction_uuid": transaction_uuid,
        "product_code": product_code or settings.ESEWA_PRODUCT_CODE,
        "product_service_charge": format_amount(0),
        "product_delivery_charge": format_amount(0),
        "success_url": settings.ESEWA_SUCCESS_URL,
        "failure_url": settings.ESEWA_FAILURE_URL,
        "signed_field_names": ",".join(INITIATION_SIGNED_FIELDS),
    }
    payload["signature"] = sign(build_signed_message(payload, list(INITIATION_SIGNED_FIELDS)), secret_key)
    return payload


def decode_callback(data: str) -> Dict[str, Any]:
    """Decodes the base64 JSON `data` value eSewa appends to the success URL."""
    try:
        decoded = json.loads(base64.b64decode(data, validate=False).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidCallbackError("Invalid eSewa callback data") from e
    if not isinstance(decoded, dict):
        raise InvalidCallbackError("Invalid eSewa callback data")
    return decoded


def verify_callback(payload: Mapping[str, Any], secret_key: Optional[str] = None) -> Dict[str, Any]:
    """Checks the callback signature over exactly the fields it names in `signed_field_names`."""
    names_raw = payload.get("signed_field_names")
    signature = payload.get("signature")
    if not names_raw or not signature:
        raise InvalidCallbackError("Callback is missing signed_field_names or signature")
    field_names = [name.strip() for name in str(names_raw).split(",") if name.strip()]
    try:
        message = build_signed_message(payload, field_names)
    except KeyError as e:
        raise InvalidCallbackError(f"Callback is missing signed field {e.args[0]}") from e
    expected = sign(message, secret_key)
    if not hmac.compare_digest(expected, str(signature)):
        logger.bind(transaction_uuid=payload.get("transaction_uuid")).warning("eSewa callback signature mismatch.")
        raise SignatureMismatchError()
    return dict(payload)


def render_checkout_form(query: Mapping[str, Any], form_url: Optional[str] = None) -> str:
    """Auto-submitting HTML form relaying the signed fields to eSewa."""
    for name in CHECKOUT_FIELDS:
        if query.get(name) in (None, ""):
            raise MissingCheckoutFieldError(name)
    inputs = "\n".join(
        f'      <input type="hidden" name="{name}" value="{html.escape(str(query[name]), quote=True)}" />'
        for name in CHECKOUT_FIELDS
    )
    action = html.escape(form_url or settings.ESEWA_FORM_URL, quote=True)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "  <head><meta charset=\"utf-8\" /><title>Redirecting to eSewa</title></head>\n"
        "  <body onload=\"document.forms[0].submit()\">\n"
        "    <p>Redirecting to eSewa...</p>\n"
        f"    <form method=\"POST\" action=\"{action}\">\n"
        f"{inputs}\n"
        "      <noscript><button type=\"submit\">Continue to eSewa</button></noscript>\n"
        "    </form>\n"
        "  </body>\n"
        "</html>\n"
    )


class EsewaClient:
    """Queries the eSewa transaction status API. One attempt, fixed timeout."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, status_url: Optional[str] = None):
        self._client = client
        self.status_url = status_url or settings.ESEWA_STATUS_URL

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.ESEWA_STATUS_TIMEOUT_SECONDS)
        return self._client

    async def check_status(self, transaction_uuid: str, total_amount: float, product_code: Optional[str] = None) -> Dict[str, Any]:
        params = {
            "product_code": product_code or settings.ESEWA_PRODUCT_CODE,
            "total_amount": format_amount(total_amount),
            "transaction_uuid": transaction_uuid,
        }
        log = logger.bind(transaction_uuid=transaction_uuid)
        try:
            response = await self._get_client().get(self.status_url, params=params)
        except httpx.HTTPError as e:
            log.warning(f"eSewa status request failed: {e}")
            raise ProviderUnavailableError(str(e) or e.__class__.__name__) from e
        if response.status_code >= 500:
            raise ProviderUnavailableError(f"HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderUnavailableError("non-JSON response") from e
        if not isinstance(body, dict):
            raise ProviderUnavailableError("unexpected response shape")
        log.info(f"eSewa status: {body.get('status')}")
        return body

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
