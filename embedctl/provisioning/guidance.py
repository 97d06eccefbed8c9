"""Classify failed connection tests and map them to troubleshooting advice."""

from __future__ import annotations

import dataclasses
import enum


class FailureCategory(enum.StrEnum):
    """Coarse cause of a failed connection test."""

    REFUSED = "refused"
    AUTHENTICATION = "authentication"
    DATABASE = "database"
    TIMEOUT = "timeout"
    GENERIC = "generic"


@dataclasses.dataclass(frozen=True, slots=True)
class Guidance:
    """Troubleshooting advice shown after a failed connection test."""

    category: FailureCategory
    title: str
    summary: str
    checks: tuple[str, ...]

    @property
    def lines(self) -> list[str]:
        """Return the summary followed by one bullet line per check."""
        bullets = [f"• {check}" for check in self.checks]
        return [self.summary, "Please check:", *bullets]


# Checked in order; the first matching rule wins.
_RULES: tuple[tuple[FailureCategory, tuple[str, ...]], ...] = (
    (FailureCategory.REFUSED, ("econnrefused", "connection refused")),
    (FailureCategory.AUTHENTICATION, ("authentication", "password", "user")),
    (FailureCategory.DATABASE, ("database",)),
    (FailureCategory.TIMEOUT, ("timeout", "timed out")),
)

_GUIDANCE: dict[FailureCategory, Guidance] = {
    FailureCategory.REFUSED: Guidance(
        FailureCategory.REFUSED,
        "💡 Connection refused",
        "Could not connect to the database server.",
        (
            "The host and port are correct",
            "The database server is running",
            "Firewall rules allow the connection",
        ),
    ),
    FailureCategory.AUTHENTICATION: Guidance(
        FailureCategory.AUTHENTICATION,
        "🔐 Authentication error",
        "Authentication failed.",
        (
            "Username is correct",
            "Password is correct",
            "User has permission to connect",
        ),
    ),
    FailureCategory.DATABASE: Guidance(
        FailureCategory.DATABASE,
        "🗄️ Database error",
        "Database error.",
        (
            "Database name is correct",
            "Database exists",
            "User has access to this database",
        ),
    ),
    FailureCategory.TIMEOUT: Guidance(
        FailureCategory.TIMEOUT,
        "⏱️ Timeout error",
        "Connection timed out.",
        (
            "Network connectivity to the host",
            "Firewall rules",
            "Database server is accepting connections",
        ),
    ),
    FailureCategory.GENERIC: Guidance(
        FailureCategory.GENERIC,
        "💡 Troubleshooting",
        "The connection test did not succeed.",
        (
            "Host and port are correct",
            "Database name is correct",
            "Username and password are valid",
            "Network allows the connection",
        ),
    ),
}


def classify_test_failure(detail: str | None) -> FailureCategory:
    """Return the failure category for a connection-test error message.

    Matching is a case-insensitive substring search over a fixed, ordered
    rule table, so ``"password authentication failed for user"`` is an
    authentication failure and anything unrecognised is generic.

    Examples
    --------
    >>> classify_test_failure("connect ECONNREFUSED 127.0.0.1:5432")
    <FailureCategory.REFUSED: 'refused'>

    """
    text = (detail or "").lower()
    for category, needles in _RULES:
        if any(needle in text for needle in needles):
            return category
    return FailureCategory.GENERIC


def guidance_for(detail: str | None) -> Guidance:
    """Return the troubleshooting advice for a connection-test error message."""
    return _GUIDANCE[classify_test_failure(detail)]


__all__ = ["FailureCategory", "Guidance", "classify_test_failure", "guidance_for"]
