"""Local input rules, text folding and runtime guardrails."""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path

from .errors import ConfigError, ValidationError

PHONE_DIGITS = 8
POSTAL_CODE_DIGITS = 4
MIN_SEARCH_LENGTH = 2

NORWEGIAN_NUMBER_REGEX = re.compile(r"^[2345679]\d{7}$")
PHONE_SEPARATORS_REGEX = re.compile(r"[\s\-().]")
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")

# Letters NFKD leaves intact.
_FOLD_TABLE = str.maketrans({"æ": "ae", "ø": "o", "å": "a", "ð": "d", "þ": "th", "ß": "ss"})
# Users type "barum" as often as "baerum" for "Bærum".
_SHORT_AE_TABLE = str.maketrans({"æ": "a"})


def digits_only(value: str) -> str:
    """Strip everything but ASCII digits."""
    return re.sub(r"\D", "", value or "")


def normalize_phone(raw: str) -> str | None:
    """Return an 8-digit national number, None while incomplete, or raise ValidationError.

    Country-code prefixes are rejected rather than stripped so the user is told
    to enter the national number.
    """
    value = (raw or "").strip()
    if not value:
        return None
    if value.startswith("+"):
        raise ValidationError("Telefonnummer må være 8 siffer uten landskode")
    compact = PHONE_SEPARATORS_REGEX.sub("", value)
    if not compact.isdigit():
        raise ValidationError("Telefonnummer kan bare inneholde siffer")
    if compact.startswith("00"):
        raise ValidationError("Telefonnummer må være 8 siffer uten landskode")
    if len(compact) > PHONE_DIGITS:
        if compact.startswith("47") and len(compact) == PHONE_DIGITS + 2:
            raise ValidationError("Telefonnummer må være 8 siffer uten landskode")
        raise ValidationError("Telefonnummer må være 8 siffer")
    if len(compact) < PHONE_DIGITS:
        return None
    return compact


def is_valid_norwegian(number: str) -> bool:
    """Mobile 4xxxxxxx/9xxxxxxx, landline 2, 3, 5, 6, 7xxxxxxx."""
    return bool(NORWEGIAN_NUMBER_REGEX.match(number or ""))


def format_phone_number(value: str) -> str:
    """Format as ``123 45 678`` while typing; longer input is left alone."""
    if not value:
        return ""
    digits = digits_only(value)
    if len(digits) > PHONE_DIGITS:
        return value
    if len(digits) <= 3:
        return digits
    if len(digits) <= 5:
        return f"{digits[:3]} {digits[3:]}"
    return f"{digits[:3]} {digits[3:5]} {digits[5:]}"


def sanitize_postal_input(raw: str) -> str:
    """Keep at most four digits, as the postal code field does while typing."""
    return digits_only(raw)[:POSTAL_CODE_DIGITS]


def normalize_postal_code(raw: str) -> str | None:
    """Return a 4-digit postal code, None while incomplete, or raise ValidationError."""
    value = (raw or "").strip()
    if not value:
        return None
    if not value.isdigit():
        raise ValidationError("Postnummer kan bare inneholde siffer")
    if len(value) > POSTAL_CODE_DIGITS:
        raise ValidationError("Postnummer må være 4 siffer")
    if len(value) < POSTAL_CODE_DIGITS:
        return None
    return value


def normalize_search_text(raw: str) -> str | None:
    """Collapse whitespace; None when shorter than the search gate."""
    value = " ".join((raw or "").split())
    if len(value) < MIN_SEARCH_LENGTH:
        return None
    return value


def fold_text(value: str) -> str:
    """Case-fold and strip diacritics for client-side matching (``Bærum`` -> ``baerum``)."""
    lowered = (value or "").casefold().translate(_FOLD_TABLE)
    decomposed = unicodedata.normalize("NFKD", lowered)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def fold_variants(value: str) -> tuple[str, ...]:
    """Folded spellings of a text; ``æ`` folds both to ``ae`` and to ``a``."""
    folded = fold_text(value)
    short = fold_text((value or "").casefold().translate(_SHORT_AE_TABLE))
    return (folded,) if short == folded else (folded, short)


def natural_sort_key(label: str) -> tuple[int, str]:
    """Sort house numbers as 2, 2A, 10 rather than 10, 2, 2A."""
    match = re.match(r"^(\d+)\s*(.*)$", label or "")
    if not match:
        return (10**9, fold_text(label))
    return (int(match.group(1)), fold_text(match.group(2)))


def is_valid_email(value: str) -> bool:
    """Loose syntactic e-mail check."""
    return bool(EMAIL_REGEX.match((value or "").strip()))


def load_lines_from_file(path: str) -> list[str]:
    """Load non-empty lines from a UTF-8 text file."""
    content = Path(path).read_text(encoding="utf-8")
    return [line.strip() for line in content.splitlines() if line.strip()]


def validate_runtime_constraints(
    *,
    address_debounce: float,
    phone_debounce: float,
    request_timeout: float,
    cache_ttls: dict[str, float],
) -> None:
    """Validate runtime configuration and raise ConfigError on invalid values."""
    if address_debounce < 0 or phone_debounce < 0:
        raise ConfigError("Debounce windows must be >= 0.")
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    for kind, ttl in cache_ttls.items():
        if ttl < 0:
            raise ConfigError(f"Cache TTL for {kind} must be >= 0.")
