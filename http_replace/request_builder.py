"""Request Builder - Produces transport-ready requests from resolved mappings.

GET carries every parameter in the query string. POST carries the full
parameter mapping in the body, as JSON by default or as a URL-encoded form
when the rule asks for it. A Content-Type is only added when the caller did
not declare one; the caller's value always wins.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlencode

from http_replace.models import HttpMethod, PostEncoding, PreparedRequest

JSON_MEDIA_TYPE = "application/json; charset=utf-8"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


class ConfigurationError(Exception):
    """A rule cannot be turned into a request (blank URL, bad method)."""


class UnsupportedMethodError(ConfigurationError):
    """Raised when the method is neither GET nor POST."""


def param_to_text(value: Any) -> str:
    """Render a parameter value as text.

    Strings pass through; other JSON values (numbers, booleans, null, nested
    objects) use their compact JSON form so "true" is not rendered as "True".
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def has_header(headers: dict[str, str], name: str) -> bool:
    """True if headers contains name, compared case-insensitively."""
    name_lower = name.lower()
    return any(key.lower() == name_lower for key in headers)


def _coerce_method(method: HttpMethod | str) -> HttpMethod:
    if isinstance(method, HttpMethod):
        return method
    try:
        return HttpMethod(str(method).strip().upper())
    except ValueError as e:
        raise UnsupportedMethodError(
            f"Unsupported method '{method}'. Expected GET or POST."
        ) from e


def build_request(
    method: HttpMethod | str,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any],
    post_encoding: PostEncoding = PostEncoding.JSON,
) -> PreparedRequest:
    """Build a request for the given method.

    Args:
        method: GET or POST (case-insensitive when given as text).
        url: Target URL.
        headers: Resolved headers, attached verbatim.
        params: Resolved parameters (including the subject text).
        post_encoding: Body encoding used for POST.

    Returns:
        PreparedRequest ready for a Transport.

    Raises:
        UnsupportedMethodError: If method is neither GET nor POST.
    """
    http_method = _coerce_method(method)
    request_headers = dict(headers)

    if http_method == HttpMethod.GET:
        return PreparedRequest(
            method=http_method,
            url=url,
            headers=request_headers,
            query={key: param_to_text(value) for key, value in params.items()},
        )

    if post_encoding == PostEncoding.FORM:
        media_type = FORM_MEDIA_TYPE
        content = urlencode(
            [(key, param_to_text(value)) for key, value in params.items()]
        ).encode("utf-8")
    else:
        media_type = JSON_MEDIA_TYPE
        content = json.dumps(
            params, ensure_ascii=False, separators=(",", ":")
        ).encode("utf-8")

    if not has_header(request_headers, "Content-Type"):
        request_headers["Content-Type"] = media_type

    return PreparedRequest(
        method=http_method,
        url=url,
        headers=request_headers,
        content=content,
        media_type=media_type,
    )
