"""Bring postal-code adapter."""

from __future__ import annotations

import logging

from requests import Session

from .errors import TransportError
from .models import KIND_POSTAL_CODE, PostalPlace
from .transport import get_json
from .validation import normalize_postal_code

BRING_POSTAL_CODE_URL = "https://api.bring.com/shippingguide/api/postalCode.json"


class PostalCodeLookup:
    """Resolves a 4-digit postal code to its postal area."""

    kind = KIND_POSTAL_CODE
    service = "Bring postal code"

    def __init__(
        self,
        *,
        session: Session,
        client_url: str,
        timeout: float,
        logger: logging.Logger,
        url: str = BRING_POSTAL_CODE_URL,
    ) -> None:
        self._session = session
        self._client_url = client_url
        self._timeout = timeout
        self._logger = logger
        self._url = url

    def prepare(self, raw: str) -> str | None:
        return normalize_postal_code(raw)

    def cache_key(self, query: str) -> str:
        return query

    def resolve(self, postal_code: str) -> PostalPlace | None:
        payload = get_json(
            self._session,
            self._url,
            service=self.service,
            timeout=self._timeout,
            params={"clientUrl": self._client_url, "pnr": postal_code},
        )
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise TransportError(f"{self.service} returned an unexpected payload")
        area = payload.get("result")
        if not payload.get("valid") or not isinstance(area, str) or not area.strip():
            self._logger.debug("Postal code %s not found", postal_code)
            return None
        return PostalPlace(postal_code=postal_code, postal_area=area.strip())

    def fetch(self, postal_code: str) -> list[PostalPlace]:
        place = self.resolve(postal_code)
        return [place] if place else []
