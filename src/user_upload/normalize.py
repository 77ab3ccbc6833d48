"""Normalization and validation rules for user CSV rows.

All string helpers accept str | None.  ``validate_row`` is the single
entry point used by the row stream: it maps one decoded CSV record to a
``NormalizedRow`` or a ``ValidationFailure``.
"""

from __future__ import annotations

import enum
import ipaddress
import re
from dataclasses import dataclass
from typing import Sequence

MAX_LOCAL_PART = 64
MAX_EMAIL_LENGTH = 254
MAX_LABEL = 63

_ATOM = r"[a-z0-9!#$%&'*+\-/=?^_`{|}~]+"
_LOCAL_RE = re.compile(rf"^{_ATOM}(?:\.{_ATOM})*$")
_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class FailureKind(enum.Enum):
    TOO_FEW_COLUMNS = "too_few_columns"
    EMPTY_FIELD = "empty_field"
    INVALID_EMAIL = "invalid_email"


@dataclass(frozen=True)
class ValidationFailure:
    kind: FailureKind
    detail: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"


@dataclass(frozen=True)
class NormalizedRow:
    name: str
    surname: str
    email: str
    extra: tuple[str, ...] = ()

    def as_params(self) -> dict[str, str]:
        """Values bound to the insert statement; ``extra`` is never persisted."""
        return {"name": self.name, "surname": self.surname, "email": self.email}


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: capitalize_name
# ---------------------------------------------------------------------------

def capitalize_name(value: str | None) -> str | None:
    """Lowercase everything, then uppercase only the first character.

    "JOHN" -> "John", "o'brien" -> "O'brien", "mary-jane" -> "Mary-jane".
    """
    v = trim(value)
    if v is None:
        return None
    v = v.lower()
    # Characters whose uppercase form is longer ("ß" -> "SS") stay as they are.
    first = v[0].upper()
    return (first if len(first) == 1 else v[0]) + v[1:]


# ---------------------------------------------------------------------------
# Rule 3: normalize_email
# ---------------------------------------------------------------------------

def normalize_email(value: str | None) -> str | None:
    """Lowercase and trim an email address."""
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 4: is_valid_email
# ---------------------------------------------------------------------------

def _is_valid_domain(domain: str) -> bool:
    if domain.startswith("[") and domain.endswith("]"):
        try:
            ipaddress.IPv4Address(domain[1:-1])
        except ValueError:
            return False
        return True

    labels = domain.split(".")
    if len(labels) < 2:
        return False
    for label in labels:
        if len(label) > MAX_LABEL or not _LABEL_RE.match(label):
            return False
    return labels[-1][0].isalpha()


def is_valid_email(email: str | None) -> bool:
    """Syntax check for an already-normalized (lowercase) address.

    Only unquoted dot-atom local parts are accepted.
    """
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    local, sep, domain = email.rpartition("@")
    if not sep or not local or not domain:
        return False
    if len(local) > MAX_LOCAL_PART or not _LOCAL_RE.match(local):
        return False
    return _is_valid_domain(domain)


# ---------------------------------------------------------------------------
# Row validation
# ---------------------------------------------------------------------------

def validate_row(fields: Sequence[str]) -> NormalizedRow | ValidationFailure:
    """Normalize a decoded CSV record of ``name, surname, email[, ...]``."""
    if len(fields) < 3:
        return ValidationFailure(
            FailureKind.TOO_FEW_COLUMNS,
            f"expected at least 3 columns, got {len(fields)}",
        )

    name = capitalize_name(fields[0])
    if name is None:
        return ValidationFailure(FailureKind.EMPTY_FIELD, "name is empty")

    surname = capitalize_name(fields[1])
    if surname is None:
        return ValidationFailure(FailureKind.EMPTY_FIELD, "surname is empty")

    email = normalize_email(fields[2])
    if email is None or not is_valid_email(email):
        return ValidationFailure(
            FailureKind.INVALID_EMAIL,
            f"email validation failed: {fields[2]!r}",
        )

    return NormalizedRow(name, surname, email, tuple(fields[3:]))
