"""Validation and quoting of raw schema identifiers before they reach generated SQL."""

from __future__ import annotations

import re

from .errors import IdentifierTooLongError, InvalidIdentifierError

MAX_IDENTIFIER_LENGTH = 63  # PostgreSQL NAMEDATALEN - 1

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

RESERVED_KEYWORDS: frozenset[str] = frozenset(
    {
        "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "asymmetric",
        "both", "case", "cast", "check", "collate", "column", "constraint", "create",
        "current_catalog", "current_date", "current_role", "current_time",
        "current_timestamp", "current_user", "default", "deferrable", "desc",
        "distinct", "do", "else", "end", "except", "false", "fetch", "for",
        "foreign", "from", "grant", "group", "having", "in", "initially", "intersect",
        "into", "lateral", "leading", "limit", "localtime", "localtimestamp", "not",
        "null", "offset", "on", "only", "or", "order", "placing", "primary",
        "references", "returning", "select", "session_user", "some", "symmetric",
        "table", "then", "to", "trailing", "true", "union", "unique", "user",
        "using", "variadic", "when", "where", "window", "with",
    }
)


def is_valid_identifier(identifier: str) -> bool:
    return IDENTIFIER_PATTERN.fullmatch(identifier) is not None


def is_reserved(identifier: str) -> bool:
    """Return True when the identifier would need quoting even if it were lower-case."""

    return identifier.lower() in RESERVED_KEYWORDS


def sanitize(identifier: str) -> str:
    """Validate ``identifier`` and return it wrapped in double quotes.

    Every identifier is quoted, not only reserved words or mixed-case names, so
    the generated statement always refers to the exact name that was validated.
    """

    if not isinstance(identifier, str) or not is_valid_identifier(identifier):
        raise InvalidIdentifierError(
            f'Invalid identifier: "{identifier}". Must start with a letter or underscore '
            "and contain only alphanumeric characters and underscores."
        )
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise IdentifierTooLongError(
            f'Identifier "{identifier}" exceeds the maximum length of '
            f"{MAX_IDENTIFIER_LENGTH} characters."
        )
    return f'"{identifier}"'


__all__ = [
    "IDENTIFIER_PATTERN",
    "MAX_IDENTIFIER_LENGTH",
    "RESERVED_KEYWORDS",
    "is_reserved",
    "is_valid_identifier",
    "sanitize",
]
