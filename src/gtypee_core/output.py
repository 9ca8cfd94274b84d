from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

RESULT_FIELD = "result"

FieldPath = tuple[str, ...]

_MISSING = object()


class OutputMode(StrEnum):
    """How command results are rendered."""

    HUMAN = "human"
    JSON = "json"
    PLAIN = "plain"


def output_mode_from_flags(json: bool, plain: bool) -> OutputMode:
    """Map the ``--json`` / ``--plain`` flags onto one output mode."""
    if json and plain:
        raise ValueError("cannot combine --json and --plain")
    if json:
        return OutputMode.JSON
    if plain:
        return OutputMode.PLAIN
    return OutputMode.HUMAN


def parse_field_path(raw: str) -> FieldPath:
    """Split a dot-separated field path into its segments.

    Raises:
        ValueError: When the path is blank or has an empty segment.
    """
    stripped = raw.strip()
    if stripped == "":
        raise ValueError("field path must be non-empty")
    segments = tuple(segment.strip() for segment in stripped.split("."))
    if any(segment == "" for segment in segments):
        raise ValueError(f"field path has an empty segment: {raw!r}")
    return segments


@dataclass(frozen=True)
class ProjectionSpec:
    """Output reshaping requested for one command.

    Attributes:
        results_only: Unwrap the ``result`` field of a response object.
        select: Field paths to keep, in output key order.
    """

    results_only: bool = False
    select: tuple[FieldPath, ...] = ()

    @classmethod
    def from_paths(
        cls,
        paths: Iterable[str],
        *,
        results_only: bool = False,
    ) -> ProjectionSpec:
        return cls(
            results_only=results_only,
            select=tuple(parse_field_path(path) for path in paths),
        )


def _child(cursor: object, segment: str) -> object:
    if isinstance(cursor, Mapping):
        return cursor.get(segment, _MISSING)
    if isinstance(cursor, Sequence) and not isinstance(cursor, (str, bytes)):
        if segment.isascii() and segment.isdigit() and int(segment) < len(cursor):
            return cursor[int(segment)]
    return _MISSING


def _get_at_path(value: object, path: FieldPath) -> object:
    cursor = value
    for segment in path:
        cursor = _child(cursor, segment)
        if cursor is _MISSING:
            return _MISSING
    return cursor


def _set_at_path(target: dict[str, object], path: FieldPath, value: object) -> None:
    cursor = target
    for segment in path[:-1]:
        next_cursor = cursor.get(segment)
        if not isinstance(next_cursor, dict):
            next_cursor = {}
            cursor[segment] = next_cursor
        cursor = next_cursor
    cursor[path[-1]] = value


def project(value: object, spec: ProjectionSpec) -> object:
    """Reshape a response value for output.

    Unwraps ``result`` when ``spec.results_only`` is set, then keeps only the
    selected paths. Paths that do not resolve are skipped without error.
    Selected values are copied so the output never aliases the input.
    """
    current = value
    if spec.results_only and isinstance(current, Mapping) and RESULT_FIELD in current:
        current = current[RESULT_FIELD]

    if not spec.select:
        return current

    projected: dict[str, object] = {}
    for path in spec.select:
        resolved = _get_at_path(current, path)
        if resolved is _MISSING:
            continue
        _set_at_path(projected, path, copy.deepcopy(resolved))
    return projected
