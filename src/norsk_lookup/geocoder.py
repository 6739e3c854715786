"""Entur geocoder adapters: municipality search, street search and house-number fetch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from requests import Session

from .errors import TransportError
from .models import (
    KIND_HOUSE_NUMBERS,
    KIND_MUNICIPALITY,
    KIND_STREET,
    HouseNumber,
    HouseNumberQuery,
    Municipality,
    Street,
    StreetQuery,
)
from .transport import get_json
from .validation import fold_text, fold_variants, natural_sort_key, normalize_search_text

ENTUR_BASE_URL = "https://api.entur.io/geocoder/v1"
MUNICIPALITY_RESULT_SIZE = 20

RecordT = TypeVar("RecordT")


def rank_matches(
    records: Iterable[RecordT],
    text: str,
    *,
    name_of: Callable[[RecordT], str],
    id_of: Callable[[RecordT], str],
) -> list[RecordT]:
    """Keep records whose folded name contains the folded text, prefix hits first.

    The geocoder matches loosely, so results are re-filtered client-side with
    case and diacritics ignored; ``barum`` and ``baerum`` both find ``Bærum``.
    """
    needles = fold_variants(text)
    prefix: list[RecordT] = []
    contains: list[RecordT] = []
    seen: set[str] = set()
    for record in records:
        record_id = id_of(record)
        if record_id in seen:
            continue
        haystacks = fold_variants(name_of(record))
        pairs = [(needle, haystack) for needle in needles for haystack in haystacks]
        if any(haystack.startswith(needle) for needle, haystack in pairs):
            prefix.append(record)
        elif any(needle in haystack for needle, haystack in pairs):
            contains.append(record)
        else:
            continue
        seen.add(record_id)
    return prefix + contains


class EnturClient:
    """Shared request and payload handling for the geocoder endpoints."""

    service = "Entur geocoder"

    def __init__(
        self,
        *,
        session: Session,
        client_name: str,
        timeout: float,
        logger: logging.Logger,
        base_url: str = ENTUR_BASE_URL,
    ) -> None:
        self._session = session
        self._client_name = client_name
        self._timeout = timeout
        self._logger = logger
        self._base_url = base_url.rstrip("/")

    def _properties(self, path: str, params: dict[str, str | int]) -> list[dict[str, Any]]:
        url = f"{self._base_url}{path}"
        payload = get_json(
            self._session,
            url,
            service=self.service,
            timeout=self._timeout,
            params=params,
            headers={"ET-Client-Name": self._client_name},
        )
        if payload is None:
            return []
        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list):
            raise TransportError(f"{self.service} returned an unexpected payload for {path}")
        output: list[dict[str, Any]] = []
        for feature in features:
            properties = feature.get("properties") if isinstance(feature, dict) else None
            if isinstance(properties, dict):
                output.append(properties)
        self._logger.debug("%s %s -> %d features", self.service, path, len(output))
        return output


class MunicipalitySearch(EnturClient):
    """Free-text municipality autocomplete."""

    kind = KIND_MUNICIPALITY

    def prepare(self, raw: str) -> str | None:
        return normalize_search_text(raw)

    def cache_key(self, query: str) -> str:
        return fold_text(query)

    def search(self, query: str) -> list[Municipality]:
        properties = self._properties(
            "/autocomplete",
            {"text": query, "layers": "municipality", "size": MUNICIPALITY_RESULT_SIZE},
        )
        records = [
            Municipality(id=str(item["id"]), name=str(item["name"]))
            for item in properties
            if item.get("id") and item.get("name")
        ]
        return rank_matches(records, query, name_of=lambda m: m.name, id_of=lambda m: m.id)

    fetch = search


class StreetSearch(EnturClient):
    """Street autocomplete within one municipality."""

    kind = KIND_STREET

    def prepare(self, raw: StreetQuery) -> StreetQuery | None:
        if not raw.municipality_id:
            return None
        text = normalize_search_text(raw.text)
        if text is None:
            return None
        return StreetQuery(municipality_id=raw.municipality_id, text=text)

    def cache_key(self, query: StreetQuery) -> str:
        return f"{query.municipality_id}|{fold_text(query.text)}"

    def search(self, query: StreetQuery) -> list[Street]:
        properties = self._properties(
            "/autocomplete",
            {"text": query.text, "layers": "street", "municipality": query.municipality_id},
        )
        records = [
            Street(id=str(item["id"]), name=str(item["name"]))
            for item in properties
            if item.get("id") and item.get("name")
        ]
        return rank_matches(records, query.text, name_of=lambda s: s.name, id_of=lambda s: s.id)

    fetch = search


class HouseNumberFetch(EnturClient):
    """All house numbers of a selected street, with their postal code and area."""

    kind = KIND_HOUSE_NUMBERS

    def prepare(self, raw: HouseNumberQuery) -> HouseNumberQuery | None:
        if not raw.municipality_id or not raw.street_id:
            return None
        return raw

    def cache_key(self, query: HouseNumberQuery) -> str:
        return f"{query.municipality_id}|{query.street_id}"

    def search(self, query: HouseNumberQuery) -> list[HouseNumber]:
        properties = self._properties(
            "/addresses",
            {"municipality": query.municipality_id, "street": query.street_id},
        )
        numbers: dict[str, HouseNumber] = {}
        for item in properties:
            label = str(item.get("streetNumber") or "").strip()
            if not label or label in numbers:
                continue
            numbers[label] = HouseNumber(
                label=label,
                postal_code=str(item.get("postCode") or ""),
                postal_area=str(item.get("postPlace") or ""),
            )
        return sorted(numbers.values(), key=lambda number: natural_sort_key(number.label))

    fetch = search
