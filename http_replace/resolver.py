"""Resolver - Turns a rule's serialized headers/params into working mappings.

A malformed headers or params field degrades to an empty mapping; it never
aborts the invocation. The subject text is always injected last under
TEXT_PARAM_KEY so it cannot be dropped or shadowed by a declared parameter.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from http_replace.models import ReplaceRule

TEXT_PARAM_KEY = "text"


class DeserializationError(Exception):
    """Raised when a serialized mapping cannot be parsed into a JSON object."""


@dataclass
class Resolution:
    """Headers and params resolved for one invocation.

    problems lists the fields that fell back to an empty mapping, so the
    caller can log them.
    """

    headers: dict[str, str]
    params: dict[str, Any]
    problems: list[str] = field(default_factory=list)


def parse_mapping(raw: str | Mapping[str, Any] | None, field_name: str) -> dict[str, Any]:
    """Parse a serialized JSON object (or pass a mapping through) into a new dict.

    Args:
        raw: JSON object text, an already-parsed mapping, or None.
        field_name: Field name used in error messages.

    Returns:
        New dict; empty when raw is None or blank.

    Raises:
        DeserializationError: If raw is not valid JSON or not a JSON object.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return _to_json_values(raw, field_name)
    if not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DeserializationError(f"Invalid JSON in {field_name}: {e}") from e

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise DeserializationError(
            f"{field_name} must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


def _to_json_values(raw: Mapping[str, Any], field_name: str) -> dict[str, Any]:
    """Copy a mapping, turning YAML scalars such as dates into JSON values.

    Values JSON has no type for (dates, timestamps) become their str() form.
    """
    try:
        return json.loads(json.dumps({str(k): v for k, v in raw.items()}, default=str))
    except (TypeError, ValueError) as e:
        raise DeserializationError(f"{field_name} is not representable as JSON: {e}") from e


def _header_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def resolve(rule: ReplaceRule, text: str) -> Resolution:
    """Build the header and parameter mappings for one invocation."""
    problems: list[str] = []

    try:
        raw_headers = parse_mapping(rule.headers, "headers")
    except DeserializationError as e:
        problems.append(str(e))
        raw_headers = {}

    try:
        params = parse_mapping(rule.params, "params")
    except DeserializationError as e:
        problems.append(str(e))
        params = {}

    headers = {key: _header_value(value) for key, value in raw_headers.items()}
    params[TEXT_PARAM_KEY] = text

    return Resolution(headers=headers, params=params, problems=problems)
