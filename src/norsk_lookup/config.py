"""Runtime configuration model."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .errors import ConfigError
from .models import (
    KIND_HOUSE_NUMBERS,
    KIND_MUNICIPALITY,
    KIND_PHONE,
    KIND_POSTAL_CODE,
    KIND_STREET,
)
from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = "norsk-lookup/1.0"
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_ADDRESS_DEBOUNCE = 0.3
DEFAULT_PHONE_DEBOUNCE = 0.5
DEFAULT_CLIENT_NAME = "norsk-skjema-app"
DEFAULT_BRING_CLIENT_URL = "example.com"

HOUR = 60 * 60.0
DEFAULT_CACHE_TTLS = {
    KIND_MUNICIPALITY: 24 * HOUR,
    KIND_STREET: HOUR,
    KIND_HOUSE_NUMBERS: 24 * HOUR,
    KIND_POSTAL_CODE: 24 * HOUR,
    # Keyed by personal input; never kept.
    KIND_PHONE: 0.0,
}


def _default_cache_ttls() -> dict[str, float]:
    return dict(DEFAULT_CACHE_TTLS)


@dataclass(frozen=True)
class LookupConfig:
    """Validated configuration shared by the engines and adapters."""

    api_1881_key: str | None = None
    et_client_name: str = DEFAULT_CLIENT_NAME
    bring_client_url: str = DEFAULT_BRING_CLIENT_URL
    address_debounce: float = DEFAULT_ADDRESS_DEBOUNCE
    phone_debounce: float = DEFAULT_PHONE_DEBOUNCE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    cache_ttls: dict[str, float] = field(default_factory=_default_cache_ttls)
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            address_debounce=self.address_debounce,
            phone_debounce=self.phone_debounce,
            request_timeout=self.request_timeout,
            cache_ttls=self.cache_ttls,
        )

    def debounce_for(self, kind: str) -> float:
        """Debounce window for a lookup kind; house numbers load on selection."""
        if kind == KIND_PHONE:
            return self.phone_debounce
        if kind == KIND_HOUSE_NUMBERS:
            return 0.0
        return self.address_debounce


@dataclass(frozen=True)
class CheckoutConfig:
    """Payment provider settings for the hosted checkout hand-off."""

    site: str
    api_key: str
    frontend_url: str
    item_price_id: str = "melatonin-1pk"
    webhook_secret: str | None = None

    def __post_init__(self) -> None:
        if not self.site or not self.api_key:
            raise ConfigError("Checkout needs both a site and an API key.")
        if not self.frontend_url.startswith(("http://", "https://")):
            raise ConfigError("FRONTEND_URL must be an absolute http(s) URL.")


def load_checkout_config(environ: Mapping[str, str] | None = None) -> CheckoutConfig:
    """Read checkout settings from CB_SITE, CB_API_KEY, FRONTEND_URL and friends."""
    env = os.environ if environ is None else environ
    options = {
        "site": env.get("CB_SITE", ""),
        "api_key": env.get("CB_API_KEY", ""),
        "frontend_url": env.get("FRONTEND_URL", ""),
        "webhook_secret": env.get("CB_WEBHOOK_SECRET") or None,
    }
    if env.get("CB_ITEM_PRICE_ID"):
        options["item_price_id"] = env["CB_ITEM_PRICE_ID"]
    return CheckoutConfig(**options)
