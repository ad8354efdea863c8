"""Transport - Sends prepared requests and captures responses.

The Transport protocol is the only seam between the rule executor and the
network. HttpxTransport is the default implementation; a single instance
holds one httpx.Client and may be shared by concurrent invocations.
"""

from __future__ import annotations

import ssl
from typing import Any, Protocol

import httpx

from http_replace.models import PreparedRequest, ReplaceResponse

# Responses that by definition carry no content
_NO_CONTENT_STATUSES = frozenset({204, 205, 304})


class TransportError(Exception):
    """Raised when a request fails (DNS, connection, TLS, timeout, I/O)."""


class Transport(Protocol):
    """Performs one HTTP request and returns the response, or raises TransportError."""

    def send(self, request: PreparedRequest) -> ReplaceResponse:
        ...


class HttpxTransport:
    """Transport backed by httpx.Client.

    Usage:
        with HttpxTransport(timeout=10.0) as transport:
            response = transport.send(prepared_request)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        ca_bundle: str | None = None,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = True,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout: Request timeout in seconds.
            verify_ssl: Verify server certificates.
            ca_bundle: Path to a CA bundle used for verification.
            headers: Headers sent with every request (rule headers override).
            follow_redirects: Follow 3xx redirects.
            client: Pre-built client; the transport takes ownership of it.
        """
        if client is None:
            client = httpx.Client(
                **self._build_client_kwargs(
                    timeout, verify_ssl, ca_bundle, headers, follow_redirects
                )
            )
        self._client = client

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @staticmethod
    def _build_client_kwargs(
        timeout: float,
        verify_ssl: bool,
        ca_bundle: str | None,
        headers: dict[str, str] | None,
        follow_redirects: bool,
    ) -> dict[str, Any]:
        """Build kwargs for httpx.Client."""
        kwargs: dict[str, Any] = {
            "timeout": timeout,
            "follow_redirects": follow_redirects,
        }
        if headers:
            kwargs["headers"] = headers

        if ca_bundle:
            kwargs["verify"] = ssl.create_default_context(cafile=ca_bundle)
        elif not verify_ssl:
            kwargs["verify"] = False
        # else: use httpx default (True)

        return kwargs

    def send(self, request: PreparedRequest) -> ReplaceResponse:
        """Send a request and read its body once.

        Raises:
            TransportError: If the request could not be completed.
        """
        try:
            # Query params are merged into any query the rule URL already has
            url = httpx.URL(request.url)
            if request.query:
                url = url.copy_merge_params(request.query)
            http_response = self._client.request(
                method=request.method.value,
                url=url,
                headers=request.headers if request.headers else None,
                content=request.content,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {e}") from e
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL '{request.url}': {e}") from e
        except UnicodeEncodeError as e:
            # httpx requires ASCII in header keys and values
            raise TransportError(
                f"Encoding error: non-ASCII character {e.object[e.start:e.end]!r} "
                f"in request headers. HTTP requires ASCII for these fields."
            ) from e

        return self._convert_response(http_response)

    @staticmethod
    def _convert_response(response: httpx.Response) -> ReplaceResponse:
        """Convert an httpx Response to a ReplaceResponse.

        Repeated headers are joined with ", ". Decoding falls back to httpx's
        charset detection when the server declares none.
        """
        headers: dict[str, str] = {}
        for key, value in response.headers.multi_items():
            key_lower = key.lower()
            if key_lower in headers:
                headers[key_lower] = f"{headers[key_lower]}, {value}"
            else:
                headers[key_lower] = value

        body: str | None
        if not response.content and response.status_code in _NO_CONTENT_STATUSES:
            body = None
        else:
            body = response.text

        return ReplaceResponse(
            status_code=response.status_code,
            headers=headers,
            body=body,
        )
