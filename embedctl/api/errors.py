"""Errors raised by the Embeddable API client."""

from __future__ import annotations

from embedctl.errors import EmbedError

GENERIC_API_MESSAGE = "An error occurred while communicating with the API"


class APIError(EmbedError):
    """Raised when the API returns a non-2xx response or cannot be reached.

    Attributes
    ----------
    status_code
        HTTP status code from the API response, if one was received.
    detail
        Message extracted from the response body, without the status prefix.

    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        """Initialise the error with message and optional status code."""
        self.status_code = status_code
        self.detail = detail if detail is not None else message
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, detail: str | None = None) -> APIError:
        """Create error for non-2xx responses.

        Parameters
        ----------
        status_code
            HTTP status code from the response.
        detail
            Best-effort message extracted from the response body.

        Returns
        -------
        APIError
            Error with status code context.

        """
        text = detail or f"HTTP {status_code} error"
        return cls(
            f"API Error ({status_code}): {text}",
            status_code=status_code,
            detail=text,
        )

    @classmethod
    def timeout(cls) -> APIError:
        """Create error for request timeouts."""
        return cls("API request timed out")

    @classmethod
    def network_error(cls, detail: str) -> APIError:
        """Create error for transport failures (DNS, refused socket, TLS)."""
        return cls(f"API network error: {detail}", detail=detail)


class APIResponseShapeError(APIError):
    """Raised when a successful response is missing expected fields."""

    @classmethod
    def invalid(cls, resource: str, detail: object) -> APIResponseShapeError:
        """Return an error for a payload that does not decode as ``resource``."""
        return cls(f"Unexpected {resource} payload from API: {detail}")
