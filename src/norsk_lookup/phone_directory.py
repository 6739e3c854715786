"""1881 phone directory adapter."""

from __future__ import annotations

import logging
from typing import Any

from requests import Session

from .errors import ServiceUnavailable, TransportError, ValidationError
from .models import KIND_PHONE, PhoneOwner
from .transport import decode_json, send
from .validation import normalize_phone

API_1881_URL = "https://services.api1881.no/lookup/phonenumber/{number}"


def split_name(name: str) -> tuple[str, str]:
    """Split a listed full name into first and last name."""
    parts = name.split()
    if len(parts) < 2:
        return name.strip(), ""
    return " ".join(parts[:-1]), parts[-1]


def owner_from_payload(payload: dict[str, Any]) -> PhoneOwner | None:
    """Map the first listed contact of a 1881 payload to a PhoneOwner.

    A missing or empty ``contacts`` list (an unlisted number) maps to None.
    """
    contacts = payload.get("contacts")
    if not isinstance(contacts, list) or not contacts:
        return None
    contact = contacts[0]
    if not isinstance(contact, dict) or not contact.get("name"):
        return None
    name = str(contact["name"]).strip()
    first_name, last_name = split_name(name)
    address = contact.get("address")
    if not isinstance(address, dict):
        address = {}
    return PhoneOwner(
        name=name,
        street=str(address.get("street") or ""),
        postal_code=str(address.get("postCode") or ""),
        postal_area=str(address.get("postArea") or ""),
        first_name=first_name,
        last_name=last_name,
    )


class PhoneDirectory:
    """Looks up the listed owner of an 8-digit Norwegian number."""

    kind = KIND_PHONE
    service = "1881"

    def __init__(
        self,
        *,
        session: Session,
        api_key: str | None,
        timeout: float,
        logger: logging.Logger,
        url_template: str = API_1881_URL,
    ) -> None:
        self._session = session
        self._api_key = api_key
        self._timeout = timeout
        self._logger = logger
        self._url_template = url_template

    def prepare(self, raw: str) -> str | None:
        return normalize_phone(raw)

    def cache_key(self, query: str) -> str:
        return query

    def resolve(self, number: str) -> PhoneOwner | None:
        if normalize_phone(number) != number:
            raise ValidationError("Telefonnummer må være 8 siffer uten landskode")
        if not self._api_key:
            raise ServiceUnavailable("1881 API key is not configured.")

        response = send(
            self._session,
            "GET",
            self._url_template.format(number=number),
            service=self.service,
            headers={"Ocp-Apim-Subscription-Key": self._api_key},
            timeout=self._timeout,
        )
        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise ServiceUnavailable("1881 quota exceeded.")
        if response.status_code == 403:
            body = (response.text or "").lower()
            if "quota" in body or "exceeded" in body:
                raise ServiceUnavailable("1881 quota exceeded.")
            raise TransportError("1881 denied access; check the API key.")
        if response.status_code == 401:
            raise TransportError("1881 authentication failed; check the API key.")

        payload = decode_json(response, self.service)
        if payload is None:
            self._logger.debug("Empty 1881 response for a phone lookup")
            return None
        if not isinstance(payload, dict):
            raise TransportError("1881 returned an unexpected payload")
        return owner_from_payload(payload)

    def fetch(self, number: str) -> list[PhoneOwner]:
        owner = self.resolve(number)
        return [owner] if owner else []
