"""Checkout form state: wires one lookup engine per field and owns the cross-field cascade."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from .engine import LookupEngine
from .errors import ValidationError
from .models import (
    ADDRESS_KINDS,
    HouseNumber,
    HouseNumberQuery,
    LookupResult,
    LookupStatus,
    Municipality,
    PhoneOwner,
    PostalPlace,
    Street,
    StreetQuery,
)
from .validation import (
    POSTAL_CODE_DIGITS,
    digits_only,
    format_phone_number,
    is_valid_email,
    is_valid_norwegian,
    sanitize_postal_input,
)

FORM_FIELDS = (
    "fornavn",
    "etternavn",
    "epost",
    "telefon",
    "adresse",
    "kommune",
    "kommune_id",
    "gate",
    "gate_id",
    "husnummer",
    "postnummer",
    "poststed",
)
FREE_TEXT_FIELDS = frozenset({"fornavn", "etternavn", "epost", "adresse", "poststed"})

# Consecutive transport failures before an address field blocks with a manual-entry offer.
ESCALATION_THRESHOLD = 2


class CheckoutClient(Protocol):
    """Contract for the payment hand-off."""

    def create_hosted_page(self, order_id: str, customer: dict[str, str]) -> str:
        """Return the hosted payment page URL for an order."""


@dataclass(frozen=True)
class FieldNotice:
    """A message the UI shows next to (or over) one field."""

    field: str
    message: str
    blocking: bool = False
    manual_entry: bool = False


class CheckoutForm:
    """Form values plus the five enrichment engines that fill them."""

    def __init__(
        self,
        *,
        municipality: LookupEngine[str, Municipality],
        street: LookupEngine[StreetQuery, Street],
        house_numbers: LookupEngine[HouseNumberQuery, HouseNumber],
        phone: LookupEngine[str, PhoneOwner],
        postal: LookupEngine[str, PostalPlace],
        logger: logging.Logger,
    ) -> None:
        self.municipality = municipality
        self.street = street
        self.house_numbers = house_numbers
        self.phone = phone
        self.postal = postal
        self._logger = logger
        self.values: dict[str, str] = dict.fromkeys(FORM_FIELDS, "")
        self.errors: dict[str, str] = {}
        self._dismissed: set[str] = set()
        self._engines: dict[str, LookupEngine[Any, Any]] = {
            "kommune": municipality,
            "gate": street,
            "husnummer": house_numbers,
            "telefon": phone,
            "postnummer": postal,
        }
        for field_name, engine in self._engines.items():
            engine.subscribe(self._rearm_listener(field_name))
        phone.subscribe(self._on_phone_result)
        postal.subscribe(self._on_postal_result)

    # -- plain fields -------------------------------------------------------

    def set_value(self, field_name: str, value: str) -> None:
        """Update a field without a lookup behind it."""
        if field_name not in FREE_TEXT_FIELDS:
            raise KeyError(f"{field_name} is not a free-text field")
        self.values[field_name] = value
        self.errors.pop(field_name, None)

    # -- address cascade ----------------------------------------------------

    def type_municipality(self, text: str) -> None:
        self.values["kommune"] = text
        self.errors.pop("kommune", None)
        self.municipality.on_query_change(text)

    def select_municipality(self, record: Municipality) -> None:
        """Pick a municipality; everything chosen below it is cleared."""
        self.municipality.select_option(record)
        self.values["kommune"] = record.name
        self.values["kommune_id"] = record.id
        self._clear("gate", "gate_id", "husnummer", "postnummer", "poststed", "adresse")
        self.street.cancel()
        self.house_numbers.cancel()
        self.postal.cancel()
        self._logger.debug("Municipality %s selected", record.id)

    def type_street(self, text: str) -> None:
        self.values["gate"] = text
        self.errors.pop("gate", None)
        self.street.on_query_change(
            StreetQuery(municipality_id=self.values["kommune_id"], text=text)
        )

    def select_street(self, record: Street) -> None:
        """Pick a street and start loading its house numbers."""
        self.street.select_option(record)
        self.values["gate"] = record.name
        self.values["gate_id"] = record.id
        self._clear("husnummer", "postnummer", "poststed", "adresse")
        self.postal.cancel()
        self.house_numbers.on_query_change(
            HouseNumberQuery(municipality_id=self.values["kommune_id"], street_id=record.id)
        )

    @property
    def house_number_options(self) -> tuple[HouseNumber, ...]:
        return self.house_numbers.data

    def select_house_number(self, label: str) -> HouseNumber | None:
        """Fill house number, postal code, postal area and address line from a listed number."""
        selected = next((item for item in self.house_number_options if item.label == label), None)
        if selected is None:
            return None
        self.values["husnummer"] = selected.label
        self.values["postnummer"] = selected.postal_code
        self.values["poststed"] = selected.postal_area
        self.values["adresse"] = f"{self.values['gate']} {selected.label}"
        for field_name in ("husnummer", "postnummer", "poststed", "adresse"):
            self.errors.pop(field_name, None)
        return selected

    # -- phone and postal code ---------------------------------------------

    def type_phone(self, text: str) -> None:
        formatted = format_phone_number(text)
        self.values["telefon"] = formatted
        self.errors.pop("telefon", None)
        try:
            self.phone.on_query_change(formatted)
        except ValidationError as exc:
            self.errors["telefon"] = str(exc)

    def type_postal_code(self, text: str) -> None:
        postal_code = sanitize_postal_input(text)
        self.values["postnummer"] = postal_code
        self.errors.pop("postnummer", None)
        if len(postal_code) < POSTAL_CODE_DIGITS:
            self.values["poststed"] = ""
        try:
            self.postal.on_query_change(postal_code)
        except ValidationError as exc:
            self.errors["postnummer"] = str(exc)

    def _on_phone_result(self, result: LookupResult[Any]) -> None:
        if result.status is not LookupStatus.SUCCESS or not result.data:
            return
        owner: PhoneOwner = result.data[0]
        filled = self._fill_empty(
            fornavn=owner.first_name,
            etternavn=owner.last_name,
            adresse=owner.street,
            postnummer=owner.postal_code,
            poststed=owner.postal_area,
        )
        self._logger.info("Phone lookup filled %d field(s)", len(filled))

    def _on_postal_result(self, result: LookupResult[Any]) -> None:
        if result.status is LookupStatus.SUCCESS and result.data:
            place: PostalPlace = result.data[0]
            if place.postal_code == self.values["postnummer"]:
                self.values["poststed"] = place.postal_area
                self.errors.pop("poststed", None)
        elif result.status is LookupStatus.NOT_FOUND:
            self.values["poststed"] = ""

    def _fill_empty(self, **candidates: str) -> list[str]:
        filled: list[str] = []
        for field_name, value in candidates.items():
            if value and not self.values[field_name].strip():
                self.values[field_name] = value
                self.errors.pop(field_name, None)
                filled.append(field_name)
        return filled

    def _clear(self, *field_names: str) -> None:
        for field_name in field_names:
            self.values[field_name] = ""
            self.errors.pop(field_name, None)

    # -- notices ------------------------------------------------------------

    def _rearm_listener(self, field_name: str):
        def listener(result: LookupResult[Any]) -> None:
            if result.status in (LookupStatus.SUCCESS, LookupStatus.NOT_FOUND):
                self._dismissed.discard(field_name)

        return listener

    def dismiss_notice(self, field_name: str) -> None:
        """Hide a blocking notice until the field recovers and fails again."""
        self._dismissed.add(field_name)

    def notices(self) -> list[FieldNotice]:
        """Lookup status messages per field, derived from engine state."""
        output: list[FieldNotice] = []
        for field_name, engine in self._engines.items():
            notice = self._notice_for(field_name, engine)
            if notice is not None:
                output.append(notice)
        return output

    def _notice_for(self, field_name: str, engine: LookupEngine[Any, Any]) -> FieldNotice | None:
        status = engine.status
        address_field = engine.kind in ADDRESS_KINDS
        if (
            address_field
            and engine.consecutive_failures >= ESCALATION_THRESHOLD
            and field_name not in self._dismissed
        ):
            return FieldNotice(
                field=field_name,
                message="Adresseoppslaget svarer ikke. Du kan fylle inn adressen manuelt.",
                blocking=True,
                manual_entry=True,
            )
        if status is LookupStatus.NOT_FOUND:
            if field_name == "telefon":
                return FieldNotice(field=field_name, message="Fant ingen oppføring for nummeret.")
            return FieldNotice(field=field_name, message="Fant ingen treff.")
        if status is LookupStatus.UNAVAILABLE:
            if field_name == "telefon":
                return FieldNotice(
                    field=field_name,
                    message="Telefonoppslag er ikke tilgjengelig akkurat nå.",
                )
            return FieldNotice(
                field=field_name,
                message="Oppslaget er ikke tilgjengelig. Fyll inn manuelt.",
                manual_entry=True,
            )
        if status is LookupStatus.ERROR:
            return FieldNotice(field=field_name, message="Oppslaget feilet. Prøv igjen.")
        return None

    # -- validation and hand-off -------------------------------------------

    def validate(self) -> dict[str, str]:
        """Validate required fields; returns (and stores) Norwegian error messages."""
        values = self.values
        errors: dict[str, str] = {}
        if not values["fornavn"].strip():
            errors["fornavn"] = "Fornavn er påkrevd"
        if not values["etternavn"].strip():
            errors["etternavn"] = "Etternavn er påkrevd"
        if values["epost"].strip() and not is_valid_email(values["epost"]):
            errors["epost"] = "Ugyldig e-postadresse"
        phone = digits_only(values["telefon"])
        if not values["telefon"].strip():
            errors["telefon"] = "Telefonnummer er påkrevd"
        elif not is_valid_norwegian(phone):
            errors["telefon"] = "Telefonnummer må være 8 siffer uten landskode"
        if not values["adresse"].strip():
            errors["adresse"] = "Adresse er påkrevd"
        postal_code = values["postnummer"].strip()
        if not postal_code:
            errors["postnummer"] = "Postnummer er påkrevd"
        elif len(postal_code) != POSTAL_CODE_DIGITS or not postal_code.isdigit():
            errors["postnummer"] = "Postnummer må være 4 siffer"
        if not values["poststed"].strip():
            errors["poststed"] = "Poststed er påkrevd"
        self.errors = errors
        return errors

    def customer(self) -> dict[str, str]:
        """Customer details in the shape the payment hand-off expects."""
        values = self.values
        return {
            "first_name": values["fornavn"].strip(),
            "last_name": values["etternavn"].strip(),
            "email": values["epost"].strip(),
            "phone": digits_only(values["telefon"]),
            "line1": values["adresse"].strip(),
            "zip": values["postnummer"].strip(),
            "city": values["poststed"].strip(),
            "country": "NO",
        }

    async def submit(self, checkout: CheckoutClient, order_id: str) -> str:
        """Validate and return the hosted payment page URL for this order."""
        errors = self.validate()
        if errors:
            raise ValidationError("; ".join(f"{name}: {message}" for name, message in errors.items()))
        url = await asyncio.to_thread(checkout.create_hosted_page, order_id, self.customer())
        self._logger.info("Hosted checkout page created for order %s", order_id)
        return url

    async def close(self) -> None:
        """Cancel every field and wait for outstanding workers."""
        for engine in self._engines.values():
            engine.cancel()
        for engine in self._engines.values():
            await engine.join()
