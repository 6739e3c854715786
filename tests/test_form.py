import asyncio
import logging
from collections.abc import Callable
from typing import Any

import pytest

from norsk_lookup.cache import SessionCache
from norsk_lookup.config import DEFAULT_CACHE_TTLS
from norsk_lookup.engine import LookupEngine
from norsk_lookup.errors import TransportError, ValidationError
from norsk_lookup.form import CheckoutForm
from norsk_lookup.models import (
    HouseNumber,
    HouseNumberQuery,
    LookupStatus,
    Municipality,
    PhoneOwner,
    PostalPlace,
    Street,
    StreetQuery,
)
from norsk_lookup.validation import normalize_phone, normalize_postal_code, normalize_search_text

OSLO = Municipality(id="0301", name="Oslo")
KARL_JOHAN = Street(id="s1", name="Karl Johans gate")


def _street_query(raw: StreetQuery) -> StreetQuery | None:
    text = normalize_search_text(raw.text)
    if not raw.municipality_id or text is None:
        return None
    return StreetQuery(municipality_id=raw.municipality_id, text=text)


def _house_number_query(raw: HouseNumberQuery) -> HouseNumberQuery | None:
    return raw if raw.municipality_id and raw.street_id else None


class TableAdapter:
    """Answers from a dict keyed by prepared query; exceptions are raised."""

    def __init__(self, kind: str, prepare: Callable[[Any], Any], table: dict[Any, Any]) -> None:
        self.kind = kind
        self._prepare = prepare
        self.table = table
        self.calls: list[Any] = []

    def prepare(self, raw: Any) -> Any:
        return self._prepare(raw)

    def cache_key(self, query: Any) -> str:
        return repr(query)

    def fetch(self, query: Any) -> list[Any]:
        self.calls.append(query)
        outcome = self.table.get(query, [])
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)


class FakeCheckout:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, str]]] = []

    def create_hosted_page(self, order_id: str, customer: dict[str, str]) -> str:
        self.calls.append((order_id, customer))
        return f"https://pay.example.test/{order_id}"


def _form(**tables: dict[Any, Any]) -> tuple[CheckoutForm, dict[str, TableAdapter]]:
    adapters = {
        "municipality": TableAdapter("municipality", normalize_search_text, tables.get("municipality", {})),
        "street": TableAdapter("street", _street_query, tables.get("street", {})),
        "house_numbers": TableAdapter("house_numbers", _house_number_query, tables.get("house_numbers", {})),
        "phone": TableAdapter("phone", normalize_phone, tables.get("phone", {})),
        "postal_code": TableAdapter("postal_code", normalize_postal_code, tables.get("postal_code", {})),
    }
    cache = SessionCache(DEFAULT_CACHE_TTLS)
    logger = logging.getLogger("test")
    engines = {
        kind: LookupEngine(adapter, cache=cache, debounce=0.0, timeout=2.0, logger=logger)
        for kind, adapter in adapters.items()
    }
    form = CheckoutForm(
        municipality=engines["municipality"],
        street=engines["street"],
        house_numbers=engines["house_numbers"],
        phone=engines["phone"],
        postal=engines["postal_code"],
        logger=logger,
    )
    return form, adapters


def _fill_valid(form: CheckoutForm) -> None:
    form.set_value("fornavn", "Kari")
    form.set_value("etternavn", "Nordmann")
    form.set_value("epost", "kari@example.no")
    form.values["telefon"] = "912 34 567"
    form.set_value("adresse", "Karl Johans gate 2A")
    form.values["postnummer"] = "0154"
    form.set_value("poststed", "OSLO")


def test_address_cascade_fills_postal_fields() -> None:
    async def scenario() -> None:
        form, adapters = _form(
            municipality={"Osl": [OSLO]},
            street={StreetQuery("0301", "Karl"): [KARL_JOHAN]},
            house_numbers={
                HouseNumberQuery("0301", "s1"): [
                    HouseNumber(label="2", postal_code="0154", postal_area="OSLO"),
                    HouseNumber(label="2A", postal_code="0154", postal_area="OSLO"),
                ]
            },
        )
        form.type_municipality("Osl")
        result = await form.municipality.settled()
        form.select_municipality(result.data[0])
        assert form.values["kommune_id"] == "0301"

        form.type_street("Karl")
        result = await form.street.settled()
        assert adapters["street"].calls == [StreetQuery("0301", "Karl")]
        form.select_street(result.data[0])

        await form.house_numbers.settled()
        assert [number.label for number in form.house_number_options] == ["2", "2A"]
        assert form.select_house_number("9") is None
        selected = form.select_house_number("2A")
        assert selected is not None
        assert form.values["husnummer"] == "2A"
        assert form.values["postnummer"] == "0154"
        assert form.values["poststed"] == "OSLO"
        assert form.values["adresse"] == "Karl Johans gate 2A"
        await form.close()

    asyncio.run(scenario())


def test_changing_municipality_clears_everything_below() -> None:
    async def scenario() -> None:
        form, _ = _form()
        form.select_municipality(OSLO)
        form.values.update(
            gate="Karl Johans gate",
            gate_id="s1",
            husnummer="2A",
            postnummer="0154",
            poststed="OSLO",
            adresse="Karl Johans gate 2A",
        )
        form.select_municipality(Municipality(id="4601", name="Bergen"))
        assert form.values["kommune"] == "Bergen"
        for field_name in ("gate", "gate_id", "husnummer", "postnummer", "poststed", "adresse"):
            assert form.values[field_name] == ""
        await form.close()

    asyncio.run(scenario())


def test_street_search_waits_for_a_municipality() -> None:
    async def scenario() -> None:
        form, adapters = _form()
        form.type_street("Karl")
        assert form.street.status is LookupStatus.IDLE
        await asyncio.sleep(0.05)
        assert adapters["street"].calls == []
        await form.close()

    asyncio.run(scenario())


def test_phone_lookup_fills_only_empty_fields() -> None:
    async def scenario() -> None:
        owner = PhoneOwner(
            name="Kari Nordmann",
            street="Storgata 1",
            postal_code="0155",
            postal_area="OSLO",
            first_name="Kari",
            last_name="Nordmann",
        )
        form, _ = _form(phone={"91234567": [owner]})
        form.set_value("fornavn", "Karianne")
        form.type_phone("91234567")
        assert form.values["telefon"] == "912 34 567"
        await form.phone.settled()
        assert form.values["fornavn"] == "Karianne"
        assert form.values["etternavn"] == "Nordmann"
        assert form.values["adresse"] == "Storgata 1"
        assert form.values["postnummer"] == "0155"
        assert form.values["poststed"] == "OSLO"
        await form.close()

    asyncio.run(scenario())


def test_phone_with_country_code_shows_inline_error() -> None:
    async def scenario() -> None:
        form, adapters = _form()
        form.type_phone("+4791234567")
        assert form.errors["telefon"] == "Telefonnummer må være 8 siffer uten landskode"
        assert adapters["phone"].calls == []
        form.type_phone("9123")
        assert "telefon" not in form.errors
        await form.close()

    asyncio.run(scenario())


def test_unlisted_phone_gets_neutral_notice() -> None:
    async def scenario() -> None:
        form, _ = _form()
        form.type_phone("12345678")
        await form.phone.settled()
        notices = {notice.field: notice for notice in form.notices()}
        assert notices["telefon"].message == "Fant ingen oppføring for nummeret."
        assert not notices["telefon"].blocking
        await form.close()

    asyncio.run(scenario())


def test_postal_code_resolves_postal_area() -> None:
    async def scenario() -> None:
        form, _ = _form(postal_code={"0150": [PostalPlace(postal_code="0150", postal_area="OSLO")]})
        form.type_postal_code("01 50")
        assert form.values["postnummer"] == "0150"
        await form.postal.settled()
        assert form.values["poststed"] == "OSLO"

        form.type_postal_code("015")
        assert form.values["poststed"] == ""

        form.type_postal_code("9999")
        await form.postal.settled()
        assert form.postal.status is LookupStatus.NOT_FOUND
        assert form.values["poststed"] == ""
        await form.close()

    asyncio.run(scenario())


def test_repeated_address_failures_escalate_until_dismissed() -> None:
    async def scenario() -> None:
        table: dict[Any, Any] = {"Oslo": TransportError("Entur geocoder responded with HTTP 503")}
        form, _ = _form(municipality=table)

        form.type_municipality("Oslo")
        await form.municipality.settled()
        [notice] = form.notices()
        assert notice.message == "Oppslaget feilet. Prøv igjen."
        assert not notice.blocking

        form.type_municipality("Oslo")
        await form.municipality.settled()
        [notice] = form.notices()
        assert notice.blocking and notice.manual_entry

        form.dismiss_notice("kommune")
        [notice] = form.notices()
        assert not notice.blocking

        table["Oslo"] = [OSLO]
        form.type_municipality("Oslo")
        await form.municipality.settled()
        assert form.notices() == []
        assert form.municipality.consecutive_failures == 0
        await form.close()

    asyncio.run(scenario())


def test_phone_failures_never_block() -> None:
    async def scenario() -> None:
        form, _ = _form(phone={"91234567": TransportError("1881 responded with HTTP 500")})
        for _ in range(3):
            form.type_phone("91234567")
            await form.phone.settled()
        [notice] = form.notices()
        assert notice.field == "telefon"
        assert not notice.blocking
        await form.close()

    asyncio.run(scenario())


def test_validate_reports_norwegian_messages() -> None:
    form, _ = _form()
    form.values["telefon"] = "123 45 678"
    form.values["postnummer"] = "015"
    form.set_value("epost", "not-an-email")
    errors = form.validate()
    assert errors["fornavn"] == "Fornavn er påkrevd"
    assert errors["etternavn"] == "Etternavn er påkrevd"
    assert errors["epost"] == "Ugyldig e-postadresse"
    assert errors["telefon"] == "Telefonnummer må være 8 siffer uten landskode"
    assert errors["adresse"] == "Adresse er påkrevd"
    assert errors["postnummer"] == "Postnummer må være 4 siffer"
    assert errors["poststed"] == "Poststed er påkrevd"
    assert form.errors == errors


def test_set_value_rejects_lookup_fields() -> None:
    form, _ = _form()
    with pytest.raises(KeyError):
        form.set_value("telefon", "91234567")


def test_submit_hands_customer_to_checkout() -> None:
    async def scenario() -> None:
        form, _ = _form()
        _fill_valid(form)
        checkout = FakeCheckout()
        url = await form.submit(checkout, "order-1")
        assert url == "https://pay.example.test/order-1"
        [(order_id, customer)] = checkout.calls
        assert order_id == "order-1"
        assert customer == {
            "first_name": "Kari",
            "last_name": "Nordmann",
            "email": "kari@example.no",
            "phone": "91234567",
            "line1": "Karl Johans gate 2A",
            "zip": "0154",
            "city": "OSLO",
            "country": "NO",
        }
        await form.close()

    asyncio.run(scenario())


def test_submit_refuses_invalid_form() -> None:
    async def scenario() -> None:
        form, _ = _form()
        checkout = FakeCheckout()
        with pytest.raises(ValidationError, match="fornavn"):
            await form.submit(checkout, "order-2")
        assert checkout.calls == []
        await form.close()

    asyncio.run(scenario())
