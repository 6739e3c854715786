import json
import logging
from typing import Any

import pytest
import requests

from norsk_lookup.errors import ServiceUnavailable, TransportError, ValidationError
from norsk_lookup.models import PhoneOwner
from norsk_lookup.phone_directory import API_1881_URL, PhoneDirectory, owner_from_payload, split_name


class FakeResponse:
    def __init__(
        self, *, status_code: int = 200, payload: Any = None, text: str | None = None
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else json.dumps(payload))
        self.content = self.text.encode("utf-8")

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"http error {self.status_code}")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response: FakeResponse | Exception) -> None:
        self.response = response
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _directory(session: FakeSession, api_key: str | None = "secret") -> PhoneDirectory:
    return PhoneDirectory(
        session=session,  # type: ignore[arg-type]
        api_key=api_key,
        timeout=3.0,
        logger=logging.getLogger("test"),
    )


LISTED = {
    "contacts": [
        {
            "id": "c1",
            "name": "Kari Nordmann",
            "address": {"street": "Storgata 1", "postCode": "0155", "postArea": "OSLO"},
        }
    ]
}


def test_resolve_listed_number() -> None:
    session = FakeSession(FakeResponse(payload=LISTED))
    owner = _directory(session).resolve("91234567")
    assert owner == PhoneOwner(
        name="Kari Nordmann",
        street="Storgata 1",
        postal_code="0155",
        postal_area="OSLO",
        first_name="Kari",
        last_name="Nordmann",
    )
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == API_1881_URL.format(number="91234567")
    assert kwargs["headers"] == {"Ocp-Apim-Subscription-Key": "secret"}
    assert kwargs["timeout"] == 3.0


def test_unlisted_numbers_resolve_to_none() -> None:
    assert _directory(FakeSession(FakeResponse(payload={"contacts": []}))).resolve("12345678") is None
    assert _directory(FakeSession(FakeResponse(status_code=404))).resolve("12345678") is None
    assert _directory(FakeSession(FakeResponse(text=""))).resolve("12345678") is None
    assert _directory(FakeSession(FakeResponse(payload={"contacts": []}))).fetch("12345678") == []


def test_quota_and_missing_key_are_unavailable() -> None:
    with pytest.raises(ServiceUnavailable):
        _directory(FakeSession(FakeResponse(status_code=429))).resolve("91234567")
    with pytest.raises(ServiceUnavailable):
        _directory(FakeSession(FakeResponse(status_code=403, text="Out of call volume quota"))).resolve(
            "91234567"
        )

    session = FakeSession(FakeResponse(payload=LISTED))
    with pytest.raises(ServiceUnavailable):
        _directory(session, api_key=None).resolve("91234567")
    assert session.calls == []


def test_auth_and_server_failures_are_transport_errors() -> None:
    with pytest.raises(TransportError, match="denied"):
        _directory(FakeSession(FakeResponse(status_code=403, text="Forbidden"))).resolve("91234567")
    with pytest.raises(TransportError, match="authentication"):
        _directory(FakeSession(FakeResponse(status_code=401))).resolve("91234567")
    with pytest.raises(TransportError, match="HTTP 500"):
        _directory(FakeSession(FakeResponse(status_code=500))).resolve("91234567")
    with pytest.raises(TransportError):
        _directory(FakeSession(FakeResponse(payload=["unexpected"]))).resolve("91234567")
    with pytest.raises(TransportError, match="request failed"):
        _directory(FakeSession(requests.ConnectionError("reset"))).resolve("91234567")


def test_country_code_is_rejected_without_network() -> None:
    session = FakeSession(FakeResponse(payload=LISTED))
    directory = _directory(session)
    with pytest.raises(ValidationError):
        directory.resolve("+4791234567")
    with pytest.raises(ValidationError):
        directory.prepare("+47 912 34 567")
    assert session.calls == []
    assert directory.prepare("912 34 567") == "91234567"
    assert directory.prepare("912") is None


def test_owner_from_payload_uses_first_contact() -> None:
    owner = owner_from_payload(
        {
            "contacts": [
                {"name": "Ola Johan Nordmann"},
                {"name": "Kari Nordmann", "address": {"street": "Storgata 1"}},
            ]
        }
    )
    assert owner == PhoneOwner(name="Ola Johan Nordmann", first_name="Ola Johan", last_name="Nordmann")
    assert owner_from_payload({}) is None
    assert owner_from_payload({"contacts": None}) is None
    assert owner_from_payload({"contacts": [{"name": ""}]}) is None


def test_split_name() -> None:
    assert split_name("Kari Anne Nordmann") == ("Kari Anne", "Nordmann")
    assert split_name("Cher") == ("Cher", "")
