"""Builds concrete adapters, engines and the form from configuration."""

from __future__ import annotations

import logging
from typing import Any

from requests import Session

from .cache import SessionCache
from .checkout import HostedCheckout
from .config import CheckoutConfig, LookupConfig
from .engine import LookupEngine
from .form import CheckoutForm
from .geocoder import HouseNumberFetch, MunicipalitySearch, StreetSearch
from .models import (
    KIND_HOUSE_NUMBERS,
    KIND_MUNICIPALITY,
    KIND_PHONE,
    KIND_POSTAL_CODE,
    KIND_STREET,
    LookupAdapter,
)
from .phone_directory import PhoneDirectory
from .postal import PostalCodeLookup
from .transport import make_session

LOOKUP_KINDS = (KIND_MUNICIPALITY, KIND_STREET, KIND_HOUSE_NUMBERS, KIND_PHONE, KIND_POSTAL_CODE)


def build_cache(config: LookupConfig) -> SessionCache:
    """One cache per application lifetime, shared by every engine."""
    return SessionCache(config.cache_ttls)


def build_adapter(
    kind: str, config: LookupConfig, *, session: Session, logger: logging.Logger
) -> LookupAdapter[Any, Any]:
    timeout = config.request_timeout
    if kind == KIND_MUNICIPALITY:
        return MunicipalitySearch(
            session=session, client_name=config.et_client_name, timeout=timeout, logger=logger
        )
    if kind == KIND_STREET:
        return StreetSearch(
            session=session, client_name=config.et_client_name, timeout=timeout, logger=logger
        )
    if kind == KIND_HOUSE_NUMBERS:
        return HouseNumberFetch(
            session=session, client_name=config.et_client_name, timeout=timeout, logger=logger
        )
    if kind == KIND_PHONE:
        return PhoneDirectory(
            session=session, api_key=config.api_1881_key, timeout=timeout, logger=logger
        )
    if kind == KIND_POSTAL_CODE:
        return PostalCodeLookup(
            session=session, client_url=config.bring_client_url, timeout=timeout, logger=logger
        )
    raise ValueError(f"Unknown lookup kind: {kind}")


def build_engine(
    kind: str,
    config: LookupConfig,
    *,
    session: Session,
    cache: SessionCache,
    logger: logging.Logger,
) -> LookupEngine[Any, Any]:
    return LookupEngine(
        build_adapter(kind, config, session=session, logger=logger),
        cache=cache,
        debounce=config.debounce_for(kind),
        timeout=config.request_timeout,
        logger=logger,
    )


def build_form(
    config: LookupConfig,
    *,
    logger: logging.Logger,
    session: Session | None = None,
    cache: SessionCache | None = None,
) -> CheckoutForm:
    """Build a form with one engine per lookup field over a shared session and cache."""
    if session is None:
        session = make_session(config.user_agent)
    if cache is None:
        cache = build_cache(config)
    engines = {
        kind: build_engine(kind, config, session=session, cache=cache, logger=logger)
        for kind in LOOKUP_KINDS
    }
    return CheckoutForm(
        municipality=engines[KIND_MUNICIPALITY],
        street=engines[KIND_STREET],
        house_numbers=engines[KIND_HOUSE_NUMBERS],
        phone=engines[KIND_PHONE],
        postal=engines[KIND_POSTAL_CODE],
        logger=logger,
    )


def build_checkout(
    checkout_config: CheckoutConfig,
    config: LookupConfig,
    *,
    logger: logging.Logger,
    session: Session | None = None,
) -> HostedCheckout:
    if session is None:
        session = make_session(config.user_agent)
    return HostedCheckout(
        session=session,
        config=checkout_config,
        timeout=config.request_timeout,
        logger=logger,
    )
