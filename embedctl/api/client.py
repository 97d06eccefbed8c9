"""Authenticated HTTP gateway to the Embeddable API."""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import typing as typ
from urllib.parse import quote

import httpx
import msgspec

from embedctl.logging import get_logger, log_debug

from .errors import GENERIC_API_MESSAGE, APIError, APIResponseShapeError
from .models import (
    Connection,
    ConnectionConfigInput,
    ConnectionTestResult,
    Embeddable,
    Environment,
    SecurityToken,
    decode_connection,
    decode_embeddable,
    decode_environment,
    decode_security_token,
    unwrap_collection,
)

if typ.TYPE_CHECKING:
    from embedctl.config.models import Region

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_TOKEN_EXPIRY_S = 3600
DEFAULT_TOKEN_USER_ID = "cli-user"

_HTTP_NO_CONTENT = 204
_ERROR_MESSAGE_KEYS = ("message", "errorMessage", "underlyingErrorMessage", "error")
_TEST_ERROR_MESSAGE_KEYS = (
    "underlyingErrorMessage",
    "errorMessage",
    "message",
    "error",
)
_TEST_FAILED_MESSAGE = "Connection test failed"
_TEST_PASSED_MESSAGE = "Connection test successful"

ConnectionTestTarget = str | Connection | ConnectionConfigInput


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def _segment(value: str) -> str:
    """Percent-encode a resource name for use as a single path segment."""
    return quote(value, safe="")


def extract_error_message(
    data: object, keys: tuple[str, ...] = _ERROR_MESSAGE_KEYS
) -> str | None:
    """Return the first non-empty message found in an API error body.

    Parameters
    ----------
    data
        Decoded response body: a mapping, a bare string, or ``None``.
    keys
        Candidate fields, checked in order.

    Returns
    -------
    str | None
        The message, or ``None`` when the body carries nothing usable.

    """
    if isinstance(data, str):
        return data.strip() or None
    if not isinstance(data, cabc.Mapping):
        return None
    body = typ.cast("cabc.Mapping[str, object]", data)
    for key in keys:
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


class EmbeddableAPIClient:
    """Blocking client for the Embeddable connections/environments API.

    Every method except :meth:`test_connection` and :meth:`validate_api_key`
    raises :class:`~embedctl.api.errors.APIError` on failure.

    Parameters
    ----------
    api_key
        Bearer credential attached to every request.
    region
        Region whose base URL every endpoint is resolved against.
    timeout_s
        Per-request timeout applied to the owned HTTP client.
    http_client
        Optional ``httpx.Client`` for testing. If not provided, the instance
        creates and owns its own client.
    clock
        Source of "now" used to compute token expiry.

    Examples
    --------
    >>> from embedctl.api import EmbeddableAPIClient
    >>> from embedctl.config import Region
    >>> with EmbeddableAPIClient("emb_live_0123456789", Region.EU) as api:
    ...     ok = api.validate_api_key()  # doctest: +SKIP

    """

    def __init__(
        self,
        api_key: str,
        region: Region,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        http_client: httpx.Client | None = None,
        clock: cabc.Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        """Initialise the client for a credential and region."""
        self._base_url = region.base_url
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_s)
        self._clock = clock

    @property
    def base_url(self) -> str:
        """Return the resolved regional base URL."""
        return self._base_url

    def close(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> typ.Self:
        """Return the client for use in a ``with`` block."""
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Close owned resources on block exit."""
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: object | None = None,
    ) -> object | None:
        """Send one request and return the decoded JSON body.

        Parameters
        ----------
        endpoint
            Path below the regional base URL, starting with ``/``.
        method
            HTTP method.
        body
            JSON-serialisable request body, if any.

        Returns
        -------
        object | None
            Decoded body, or ``None`` for 204, empty, or undecodable 2xx bodies.

        Raises
        ------
        APIError
            On non-2xx responses, timeouts and transport failures.

        """
        response = self._send(method, endpoint, body)
        data = self._decode_body(response)
        if not response.is_success:
            log_debug(
                logger,
                "API Error Response (%d): %s",
                response.status_code,
                response.text,
            )
            detail = extract_error_message(data)
            if detail is None and data is not None:
                detail = GENERIC_API_MESSAGE
            raise APIError.http_error(response.status_code, detail)
        log_debug(logger, "API Response (%d)", response.status_code)
        return data

    def _send(self, method: str, endpoint: str, body: object | None) -> httpx.Response:
        url = f"{self._base_url}{endpoint}"
        log_debug(logger, "API Request: %s %s", method, url)
        try:
            return self._client.request(
                method,
                url,
                content=None if body is None else msgspec.json.encode(body),
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise APIError.timeout() from exc
        except httpx.RequestError as exc:
            raise APIError.network_error(str(exc)) from exc

    def _decode_body(self, response: httpx.Response) -> object | None:
        if response.status_code == _HTTP_NO_CONTENT or not response.content:
            return None
        try:
            return msgspec.json.decode(response.content)
        except msgspec.DecodeError:
            log_debug(logger, "API Response: empty or non-JSON body")
            return None

    @staticmethod
    def _require(data: object | None, resource: str) -> object:
        if data is None:
            raise APIResponseShapeError.invalid(resource, "empty response body")
        return data

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def create_connection(self, config: ConnectionConfigInput) -> Connection:
        """Create a connection from a validated description."""
        data = self.request("/connections", "POST", config.to_payload())
        if data is None:
            return Connection(name=config.name, type=config.type)
        return decode_connection(data)

    def list_connections(self) -> list[Connection]:
        """List connections, resolving name-only listings to full objects.

        A name whose details cannot be fetched degrades to a minimal
        connection of type ``unknown`` rather than failing the listing.
        """
        data = self.request("/connections")
        items = unwrap_collection(data, "connections")
        return [self._resolve_connection(item) for item in items]

    def _resolve_connection(self, item: object) -> Connection:
        if not isinstance(item, str):
            return decode_connection(item)
        try:
            return self.get_connection(item)
        except APIError as exc:
            log_debug(logger, "Could not fetch connection %s: %s", item, exc)
            return Connection(name=item)

    def get_connection(self, name: str) -> Connection:
        """Fetch one connection by name or identifier."""
        data = self.request(f"/connections/{_segment(name)}")
        return decode_connection(self._require(data, "connection"))

    def update_connection(
        self,
        name: str,
        changes: ConnectionConfigInput | cabc.Mapping[str, object],
    ) -> Connection:
        """Replace fields of an existing connection."""
        body = (
            changes.to_payload()
            if isinstance(changes, ConnectionConfigInput)
            else dict(changes)
        )
        data = self.request(f"/connections/{_segment(name)}", "PUT", body)
        if data is None:
            return Connection(name=name)
        return decode_connection(data)

    def delete_connection(self, name: str) -> None:
        """Delete a connection."""
        self.request(f"/connections/{_segment(name)}", "DELETE")

    def test_connection(self, target: ConnectionTestTarget) -> ConnectionTestResult:
        """Test a saved connection or an unsaved draft without raising.

        Parameters
        ----------
        target
            A connection identifier, a saved :class:`Connection`, or a
            :class:`ConnectionConfigInput` draft that has not been created.

        Returns
        -------
        ConnectionTestResult
            ``success=False`` with the server's (or transport's) message when
            the test fails; failed tests are routine and never raise.

        """
        if isinstance(target, ConnectionConfigInput):
            endpoint = "/connections/test"
            body: object | None = target.to_payload()
        else:
            identifier = target if isinstance(target, str) else target.identifier
            endpoint = f"/connections/{_segment(identifier)}/test"
            body = None

        try:
            response = self._send("POST", endpoint, body)
        except APIError as exc:
            log_debug(logger, "Connection test failed with error: %s", exc.detail)
            return ConnectionTestResult(
                success=False, error=exc.detail, message=exc.detail
            )

        data = self._decode_body(response)
        if not response.is_success:
            message = (
                extract_error_message(data, _TEST_ERROR_MESSAGE_KEYS)
                or _TEST_FAILED_MESSAGE
            )
            log_debug(
                logger, "Connection test returned %d: %s", response.status_code, message
            )
            return ConnectionTestResult(success=False, error=message, message=message)

        message = extract_error_message(data, ("message",)) or _TEST_PASSED_MESSAGE
        return ConnectionTestResult(success=True, message=message)

    # ------------------------------------------------------------------
    # Environments
    # ------------------------------------------------------------------

    def create_environment(
        self, name: str, datasource_mappings: cabc.Mapping[str, str]
    ) -> Environment:
        """Create an environment mapping datasource names to connections."""
        mappings = dict(datasource_mappings)
        data = self.request(
            "/environments",
            "POST",
            {"name": name, "datasourceMappings": mappings},
        )
        if data is None:
            return Environment(id=name, name=name, datasources=mappings)
        return decode_environment(data)

    def list_environments(self) -> list[Environment]:
        """List every environment visible to the credential."""
        data = self.request("/environments")
        items = unwrap_collection(data, "environments")
        return [decode_environment(item) for item in items]

    def get_environment(self, name: str) -> Environment:
        """Fetch one environment by name or identifier."""
        data = self.request(f"/environments/{_segment(name)}")
        return decode_environment(self._require(data, "environment"))

    def update_environment(
        self,
        name: str,
        *,
        new_name: str | None = None,
        datasource_mappings: cabc.Mapping[str, str] | None = None,
    ) -> Environment:
        """Rename an environment and/or replace its datasource mapping."""
        body: dict[str, object] = {}
        if new_name is not None:
            body["name"] = new_name
        if datasource_mappings is not None:
            body["datasourceMappings"] = dict(datasource_mappings)
        data = self.request(f"/environments/{_segment(name)}", "PUT", body)
        if data is None:
            return self.get_environment(new_name or name)
        return decode_environment(data)

    def delete_environment(self, name: str) -> None:
        """Delete an environment."""
        self.request(f"/environments/{_segment(name)}", "DELETE")

    # ------------------------------------------------------------------
    # Embeddables and tokens
    # ------------------------------------------------------------------

    def list_embeddables(self) -> list[Embeddable]:
        """List embeddables available for token generation."""
        data = self.request("/embeddables")
        items = unwrap_collection(data, "embeddables")
        return [decode_embeddable(item) for item in items]

    def generate_security_token(
        self,
        embeddable_id: str,
        *,
        expiry_in_seconds: int = DEFAULT_TOKEN_EXPIRY_S,
        security_context: cabc.Mapping[str, object] | None = None,
        user: cabc.Mapping[str, object] | None = None,
        environment: str | None = None,
    ) -> SecurityToken:
        """Request a security token for one embeddable.

        The returned ``expires_at`` is computed from the local clock, not
        from anything the server reports.
        """
        payload: dict[str, object] = {
            "embeddableId": embeddable_id,
            "expiryInSeconds": expiry_in_seconds,
            "securityContext": dict(security_context or {}),
            "user": dict(user or {"id": DEFAULT_TOKEN_USER_ID}),
        }
        if environment is not None:
            payload["environment"] = environment

        data = self.request("/security-token", "POST", payload)
        expires_at = self._clock() + dt.timedelta(seconds=expiry_in_seconds)
        return decode_security_token(
            self._require(data, "security token"), expires_at=expires_at
        )

    def validate_api_key(self) -> bool:
        """Return True when an authenticated listing call succeeds."""
        try:
            self.list_embeddables()
        except APIError as exc:
            log_debug(logger, "API key validation failed: %s", exc)
            return False
        return True


__all__ = [
    "DEFAULT_TIMEOUT_S",
    "DEFAULT_TOKEN_EXPIRY_S",
    "DEFAULT_TOKEN_USER_ID",
    "ConnectionTestTarget",
    "EmbeddableAPIClient",
    "extract_error_message",
]
