"""Column→path mappings: request models, static validation and row folding."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .errors import MappingInvalidError, PathCollisionError
from .identifiers import is_valid_identifier

MAX_PREVIEW_ROWS = 100
DEFAULT_PREVIEW_LIMIT = 5

ParsedPath = tuple[str, ...]
OutputDocument = dict[str, Any]

_MISSING = object()


class MappingEntry(BaseModel):
    """One source column copied to one dot-delimited target path."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_column: str = Field(alias="sourceColumn")
    target_path: str = Field(alias="targetPath")

    @property
    def normalized_path(self) -> str:
        return self.target_path.strip()


class PreviewRequest(BaseModel):
    """Payload accepted by the preview operation."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(min_length=1)
    limit: int = Field(default=DEFAULT_PREVIEW_LIMIT, ge=1, le=MAX_PREVIEW_ROWS)
    mapping: list[MappingEntry] = Field(min_length=1)


def parse_path(target_path: str) -> ParsedPath:
    """Split a target path into segments, rejecting anything that is not an identifier."""

    segments = tuple(target_path.strip().split("."))
    for segment in segments:
        if not is_valid_identifier(segment):
            raise ValueError(f'"{target_path.strip()}" contains invalid segment "{segment}"')
    return segments


def validate_mapping(mapping: Sequence[MappingEntry]) -> None:
    """Check every mapping invariant and raise one error listing all violations.

    Prefix collisions are found by sorting the distinct paths segment-wise: a
    path that is a strict prefix of another sorts immediately before the first
    of its extensions, so only adjacent pairs need comparing.
    """

    errors: list[str] = []
    for row, entry in enumerate(mapping, start=1):
        if not entry.source_column:
            errors.append(f"Row {row}: source column is required")
        path = entry.normalized_path
        if not path:
            errors.append(f"Row {row}: target path is required")
            continue
        try:
            parse_path(path)
        except ValueError as exc:
            errors.append(f"Row {row}: {exc}. Use alphanumeric/underscore only")

    seen: set[str] = set()
    for entry in mapping:
        path = entry.normalized_path
        if not path:
            continue
        if path in seen:
            errors.append(f'Duplicate target path: "{path}"')
        seen.add(path)

    ordered = sorted(seen, key=lambda p: p.split("."))
    for current, following in zip(ordered, ordered[1:]):
        if following.startswith(current + "."):
            errors.append(
                f'Path collision: "{current}" conflicts with "{following}". '
                "A path cannot be both a value and a parent object"
            )

    if errors:
        raise MappingInvalidError("Invalid mapping", errors)


def source_columns(mapping: Iterable[MappingEntry]) -> list[str]:
    """Distinct source columns in first-seen order."""

    return list(dict.fromkeys(entry.source_column for entry in mapping))


def set_nested_value(document: OutputDocument, dotted_path: str, value: Any) -> None:
    """Assign ``value`` at ``dotted_path``, creating intermediate objects as needed."""

    segments = dotted_path.split(".")
    current = document
    for depth, key in enumerate(segments[:-1], start=1):
        existing = current.get(key, _MISSING)
        if existing is _MISSING:
            existing = current[key] = {}
        elif not isinstance(existing, dict):
            raise PathCollisionError(
                f'Path collision at "{".".join(segments[:depth])}": cannot create nested path '
                "because a scalar value already exists at this location."
            )
        current = existing

    leaf = segments[-1]
    if leaf in current:
        raise PathCollisionError(
            f'Path collision at "{dotted_path}": a value already exists at this location.'
        )
    current[leaf] = value


def fold_row(row: Mapping[str, Any], mapping: Sequence[MappingEntry]) -> OutputDocument:
    """Build one output document from a row; absent columns become ``None``."""

    document: OutputDocument = {}
    for entry in mapping:
        set_nested_value(document, entry.normalized_path, row.get(entry.source_column))
    return document


__all__ = [
    "DEFAULT_PREVIEW_LIMIT",
    "MAX_PREVIEW_ROWS",
    "MappingEntry",
    "OutputDocument",
    "ParsedPath",
    "PreviewRequest",
    "fold_row",
    "parse_path",
    "set_nested_value",
    "source_columns",
    "validate_mapping",
]
