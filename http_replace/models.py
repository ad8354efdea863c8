"""Internal data models for http-replace.

All models use Pydantic v2. A rule is parsed once per invocation; every other
model lives only for the duration of a single call.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Rule Models
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP methods a replace rule may use."""

    GET = "GET"
    POST = "POST"

    @classmethod
    def parse(cls, value: Any) -> HttpMethod:
        """Case-insensitive lookup. Absent or unrecognized values become POST."""
        if isinstance(value, HttpMethod):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.POST


class PostEncoding(str, Enum):
    """How POST parameters are encoded in the request body."""

    JSON = "json"  # application/json; charset=utf-8 (default)
    FORM = "form"  # application/x-www-form-urlencoded


class ReplaceRule(BaseModel):
    """A user-defined rule describing how to transform text via one HTTP call.

    headers and params arrive as serialized JSON object text (the form the
    rule editor stores). A mapping is also accepted so YAML config can declare
    them inline; the resolver parses either form.
    Other fields of a stored rule (id, name, pattern, ...) are ignored.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    url: str = Field(
        default="",
        validation_alias=AliasChoices("url", "httpUrl"),
        description="Target URL; blank means no request is attempted",
    )
    method: HttpMethod = Field(
        default=HttpMethod.POST,
        validation_alias=AliasChoices("method", "httpMethod"),
        description="GET or POST (case-insensitive, defaults to POST)",
    )
    headers: str | dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("headers", "httpHeaders"),
        description="Serialized JSON object of request headers",
    )
    params: str | dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("params", "httpParams"),
        description="Serialized JSON object of extra request parameters",
    )
    json_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("json_path", "jsonPath", "httpJsonPath"),
        description="JSONPath applied to the response body; blank = no extraction",
    )
    post_encoding: PostEncoding = Field(
        default=PostEncoding.JSON, description="Body encoding for POST requests"
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, value: Any) -> Any:
        """None becomes blank; surrounding whitespace is dropped."""
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, value: Any) -> HttpMethod:
        return HttpMethod.parse(value)

    @property
    def has_url(self) -> bool:
        return bool(self.url)

    @property
    def extraction_path(self) -> str | None:
        """The JSONPath to apply, or None when blank."""
        if self.json_path and self.json_path.strip():
            return self.json_path.strip()
        return None


# =============================================================================
# Core HTTP Models
# =============================================================================


class PreparedRequest(BaseModel):
    """A transport-ready request.

    query is only populated for GET; content and media_type only for POST.
    """

    model_config = ConfigDict(extra="forbid")

    method: HttpMethod = Field(description="HTTP method")
    url: str = Field(description="Target URL")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    query: dict[str, str] = Field(default_factory=dict, description="Query parameters")
    content: bytes | None = Field(default=None, description="Encoded request body")
    media_type: str | None = Field(default=None, description="Media type of content")

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        name_lower = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name_lower:
                return value
        return None


class ReplaceResponse(BaseModel):
    """One HTTP response received for a rule.

    body is None when the server sent no content at all, which is distinct
    from an empty string body.
    """

    model_config = ConfigDict(extra="forbid")

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Response headers (lowercase keys)"
    )
    body: str | None = Field(default=None, description="Decoded response body")


# =============================================================================
# Probe Models
# =============================================================================


class ProbeReport(BaseModel):
    """Everything one invocation saw, for display on a testing surface."""

    model_config = ConfigDict(extra="forbid")

    trace_id: str = Field(description="Correlates this report with diagnostic entries")
    rule: ReplaceRule = Field(description="The rule that was executed")
    request: PreparedRequest | None = Field(default=None, description="Request sent, if built")
    response: ReplaceResponse | None = Field(default=None, description="Response, if received")
    result: str | None = Field(default=None, description="Extracted value or raw body")
    extracted: bool = Field(default=False, description="True if the JSONPath matched")
    error: str | None = Field(default=None, description="Why the invocation produced no result")

    @property
    def ok(self) -> bool:
        return self.result is not None

    def render(self) -> str:
        """Render the report as human-readable text."""
        lines = [
            f"trace: {self.trace_id}",
            f"url: {self.rule.url}",
            f"method: {self.rule.method.value}",
        ]
        if self.request is not None:
            lines.append(f"headers: {self.request.headers}")
        if self.response is not None:
            lines.append(f"code: {self.response.status_code}")
            lines.append(f"response headers: {self.response.headers}")
            lines.append(f"data: {self.response.body if self.response.body is not None else ''}")
        if self.rule.extraction_path is not None and self.result is not None:
            label = "jsonPath" if self.extracted else "jsonPath (no match, raw body)"
            lines.append(f"{label}: {self.result}")
        if self.error is not None:
            lines.append(f"error: {self.error}")
        return "\n".join(lines)
