import base64
import hashlib
import hmac
import logging

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from Utils.money import round_currency

logger = logging.getLogger("payments")

SUCCESS = "SUCCESS"
FAILURE_STATUSES = ("FAILED", "USER_DROPPED")


class CashfreeError(Exception):
    """Gateway rejected a request, or could not be reached."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


def gateway_retry():
    # Only transport-level failures are retried; 4xx/5xx answers are final.
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(httpx.TransportError),
    )


def sign_webhook(raw_body: bytes, timestamp, secret) -> str:
    """base64(HMAC-SHA256(secret, "<timestamp>.<body>"))."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + b"." + raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(raw_body: bytes, signature, timestamp, secret) -> bool:
    if not (signature and timestamp and secret):
        return False
    return hmac.compare_digest(sign_webhook(raw_body, timestamp, secret), signature)


def resolve_payment_attempts(payments):
    """Reduce a list of payment attempts to (status, attempt).

    Any successful attempt wins; otherwise the most recent attempt decides.
    """
    if not payments:
        return None, None
    for attempt in payments:
        if attempt.get("payment_status") == SUCCESS:
            return SUCCESS, attempt
    latest = max(
        enumerate(payments),
        key=lambda pair: (pair[1].get("payment_time") or "", pair[0]),
    )[1]
    return latest.get("payment_status"), latest


class CashfreeClient:
    """Thin client over the Cashfree PG REST API."""

    def __init__(self, config, transport: httpx.BaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "x-client-id": self.config.app_id,
            "x-client-secret": self.config.secret_key,
            "x-api-version": self.config.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @gateway_retry()
    def _send(self, method, path, payload=None) -> httpx.Response:
        with httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            return client.request(method, path, json=payload)

    def _request(self, method, path, payload=None):
        if not self.config.is_configured:
            raise CashfreeError("Cashfree credentials are not configured")

        logger.info(f"Cashfree {method} {path}")
        try:
            resp = self._send(method, path, payload)
        except httpx.TransportError as e:
            logger.error(f"Cashfree {method} {path} unreachable: {e!r}")
            raise CashfreeError(f"Payment gateway unreachable: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(f"Cashfree {method} {path} failed with {resp.status_code}: {message or resp.text[:200]}")
            raise CashfreeError(message or f"Gateway returned HTTP {resp.status_code}", resp.status_code, body)
        return body

    # =====================================
    #  ORDERS
    # =====================================
    def create_order(self, order_number, amount, customer: dict, return_url: str) -> dict:
        payload = {
            "order_id": order_number,
            "order_amount": float(round_currency(amount)),
            "order_currency": self.config.currency,
            "customer_details": customer,
            "order_meta": {"return_url": return_url},
        }
        return self._request("POST", "/pg/orders", payload)

    def get_order_payments(self, cf_order_id) -> list:
        body = self._request("GET", f"/pg/orders/{cf_order_id}/payments")
        return body if isinstance(body, list) else []

    # =====================================
    #  REFUNDS
    # =====================================
    def create_refund(self, cf_order_id, amount, refund_id, note="Order refunded") -> dict:
        payload = {
            "refund_amount": float(round_currency(amount)),
            "refund_id": refund_id,
            "refund_note": note,
        }
        return self._request("POST", f"/pg/orders/{cf_order_id}/refunds", payload)
