"""Protocols and lightweight model types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Generic, Hashable, Protocol, TypeVar, runtime_checkable

KIND_MUNICIPALITY = "municipality"
KIND_STREET = "street"
KIND_HOUSE_NUMBERS = "house_numbers"
KIND_PHONE = "phone"
KIND_POSTAL_CODE = "postal_code"

ADDRESS_KINDS = frozenset({KIND_MUNICIPALITY, KIND_STREET, KIND_HOUSE_NUMBERS, KIND_POSTAL_CODE})

RecordT = TypeVar("RecordT")
QueryT = TypeVar("QueryT", bound=Hashable)


class LookupStatus(str, Enum):
    """Status a field reports to the UI."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    NOT_FOUND = "not-found"
    ERROR = "error"
    UNAVAILABLE = "unavailable"


class FieldState(str, Enum):
    """Internal lifecycle of one engine."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in-flight"
    SETTLED = "settled"


@dataclass(frozen=True)
class StreetQuery:
    """Street text search scoped to a selected municipality."""

    municipality_id: str
    text: str


@dataclass(frozen=True)
class HouseNumberQuery:
    """House numbers for a selected street."""

    municipality_id: str
    street_id: str


@dataclass(frozen=True)
class LookupRequest(Generic[QueryT]):
    id: int
    query: QueryT
    issued_at: float


@dataclass(frozen=True)
class LookupResult(Generic[RecordT]):
    """The one current result of a field; replaced, never mutated."""

    status: LookupStatus = LookupStatus.IDLE
    data: tuple[RecordT, ...] = field(default_factory=tuple)
    error_detail: str | None = None


@dataclass(frozen=True)
class Municipality:
    id: str
    name: str

    def to_display(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class Street:
    id: str
    name: str

    def to_display(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class HouseNumber:
    label: str
    postal_code: str
    postal_area: str

    def to_display(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class PhoneOwner:
    """A directory listing for one phone number."""

    name: str
    street: str = ""
    postal_code: str = ""
    postal_area: str = ""
    first_name: str = ""
    last_name: str = ""

    def to_display(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class PostalPlace:
    postal_code: str
    postal_area: str

    def to_display(self) -> dict[str, str]:
        return asdict(self)


class LookupAdapter(Protocol[QueryT, RecordT]):
    """Contract between the engine and one backend.

    ``prepare`` turns raw field input into a query, returning None while the
    input is below the search gate and raising ValidationError when it can
    never be valid. ``fetch`` may block; it must return an empty list for
    "no results" and raise TransportError or ServiceUnavailable otherwise.
    """

    kind: str

    def prepare(self, raw: Any) -> Any:
        """Return a query, None when too short, or raise ValidationError."""

    def cache_key(self, query: QueryT) -> str:
        """Serialize a query for the session cache."""

    def fetch(self, query: QueryT) -> list[RecordT]:
        """Return normalized records for a query."""


@runtime_checkable
class SearchAdapter(Protocol[QueryT, RecordT]):
    """Text-search backends (municipality, street, house numbers)."""

    def search(self, query: QueryT) -> list[RecordT]:
        """Return matching records, possibly empty."""


@runtime_checkable
class ResolveAdapter(Protocol[QueryT, RecordT]):
    """Exact-key backends (phone owner, postal code)."""

    def resolve(self, key: QueryT) -> RecordT | None:
        """Return the record for a key or None."""
