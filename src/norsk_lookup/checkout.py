"""Payment hand-off: Chargebee hosted checkout pages and webhook verification."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any

from requests import Session

from .config import CheckoutConfig
from .errors import CheckoutError, TransportError
from .transport import decode_json, send

CHARGEBEE_CHECKOUT_URL = "https://{site}.chargebee.com/api/v2/hosted_pages/checkout_new_for_items"
PAID_EVENT_TYPES = frozenset({"payment_succeeded", "hosted_page_payment_succeeded"})


class HostedCheckout:
    """Creates hosted checkout pages and returns the URL to redirect the customer to."""

    service = "Chargebee"

    def __init__(
        self,
        *,
        session: Session,
        config: CheckoutConfig,
        timeout: float,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._config = config
        self._timeout = timeout
        self._logger = logger

    def redirect_urls(self, order_id: str) -> tuple[str, str]:
        base = self._config.frontend_url.rstrip("/")
        return f"{base}/cb-success?order={order_id}", f"{base}/cancel"

    def create_hosted_page(self, order_id: str, customer: dict[str, str]) -> str:
        redirect_url, cancel_url = self.redirect_urls(order_id)
        form: dict[str, str] = {
            "subscription_items[item_price_id][0]": self._config.item_price_id,
            "subscription_items[quantity][0]": "1",
            "redirect_url": redirect_url,
            "cancel_url": cancel_url,
            "pass_thru_content": order_id,
        }
        for key in ("first_name", "last_name", "email", "phone"):
            if customer.get(key):
                form[f"customer[{key}]"] = customer[key]
        for key in ("first_name", "last_name", "line1", "city", "zip", "country"):
            if customer.get(key):
                form[f"billing_address[{key}]"] = customer[key]

        try:
            response = send(
                self._session,
                "POST",
                CHARGEBEE_CHECKOUT_URL.format(site=self._config.site),
                service=self.service,
                data=form,
                auth=(self._config.api_key, ""),
                timeout=self._timeout,
            )
            payload = decode_json(response, self.service)
        except TransportError as exc:
            self._logger.warning("Hosted page creation failed for order %s: %s", order_id, exc)
            raise CheckoutError(str(exc)) from exc

        hosted_page = payload.get("hosted_page") if isinstance(payload, dict) else None
        url = hosted_page.get("url") if isinstance(hosted_page, dict) else None
        if not isinstance(url, str) or not url:
            raise CheckoutError(f"{self.service} response did not contain a hosted page URL")
        self._logger.info("Hosted page created for order %s", order_id)
        return url


def verify_webhook_signature(raw: bytes, signature: str | None, secret: str) -> bool:
    """Compare the HMAC-SHA256 hex digest of the raw body with the event signature."""
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def parse_webhook(raw: bytes, signature: str | None, secret: str) -> dict[str, Any]:
    """Verify and decode a webhook body."""
    if not verify_webhook_signature(raw, signature, secret):
        raise CheckoutError("Invalid or missing webhook signature")
    try:
        event = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise CheckoutError("Webhook body is not valid JSON") from exc
    if not isinstance(event, dict):
        raise CheckoutError("Webhook body is not a JSON object")
    return event


def paid_order_id(event: dict[str, Any]) -> str | None:
    """Return the order reference of a successful payment event, else None."""
    if event.get("event_type") not in PAID_EVENT_TYPES:
        return None
    content = event.get("content")
    hosted_page = content.get("hosted_page") if isinstance(content, dict) else None
    if not isinstance(hosted_page, dict):
        return None
    for key in ("client_reference_id", "pass_thru_content"):
        value = hosted_page.get(key)
        if isinstance(value, str) and value:
            return value
    return None
