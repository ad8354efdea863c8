"""Extractor - Pulls a value out of a JSON response body with JSONPath.

Extraction is best-effort: extract() returns the body unchanged whenever the
body is not JSON, the path does not compile, or nothing matches.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.jsonpath import JSONPath


class ExtractionError(Exception):
    """Raised when a JSONPath cannot be evaluated against a body."""


@dataclass(frozen=True)
class Extraction:
    """Outcome of an extraction attempt.

    Attributes:
        value: Extracted text, or the raw body on fallback.
        matched: True if value came from the JSONPath.
        reason: Why extraction fell back (None when matched or skipped).
    """

    value: str
    matched: bool
    reason: str | None = None


@lru_cache(maxsize=256)
def _compile(path: str) -> JSONPath:
    try:
        return jsonpath_parse(path)
    except JSONPathError as e:
        raise ExtractionError(f"Invalid JSONPath '{path}': {e}") from e


def value_to_text(value: Any) -> str:
    """Render a matched JSON value as text (strings verbatim, others as JSON)."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def query_json_path(body: str, path: str) -> str:
    """Evaluate path against body parsed as JSON.

    A single match is rendered as text; several matches are rendered as a
    JSON array of their values.

    Raises:
        ExtractionError: If body is not JSON, path is invalid, or nothing matches.
    """
    compiled = _compile(path)

    try:
        document = json.loads(body)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Body is not valid JSON: {e}") from e

    try:
        matches = compiled.find(document)
    except (AttributeError, TypeError, ValueError, KeyError, IndexError) as e:
        raise ExtractionError(f"JSONPath '{path}' failed to evaluate: {e}") from e

    if not matches:
        raise ExtractionError(f"JSONPath '{path}' matched nothing")
    if len(matches) == 1:
        return value_to_text(matches[0].value)
    return json.dumps([match.value for match in matches], ensure_ascii=False)


def extract_with_outcome(body: str, path: str | None) -> Extraction:
    """Apply path to body, recording whether the raw body was used instead."""
    if path is None or not path.strip():
        return Extraction(value=body, matched=False)

    try:
        return Extraction(value=query_json_path(body, path.strip()), matched=True)
    except ExtractionError as e:
        return Extraction(value=body, matched=False, reason=str(e))


def extract(body: str, path: str | None) -> str:
    """Return the value at path, or body unchanged when extraction is not possible."""
    return extract_with_outcome(body, path).value
