"""Errors raised by the provisioning flows."""

from __future__ import annotations

from embedctl.errors import EmbedError


class ProvisioningCancelled(Exception):  # noqa: N818
    """Raised when the user backs out of an interactive step.

    Cancellation is not a failure: the command boundary reports the message
    and exits with status 0, so it does not derive from
    :class:`EmbedError`.
    """

    @classmethod
    def by_user(cls, message: str = "Operation cancelled") -> ProvisioningCancelled:
        """Return a cancellation carrying the message shown on exit."""
        return cls(message)


class ProvisioningError(EmbedError):
    """Base class for fatal failures inside a provisioning flow."""


class AuthenticationError(ProvisioningError):
    """Raised when the remote API rejects the supplied credential."""

    @classmethod
    def invalid_api_key(cls) -> AuthenticationError:
        """Return an error for a key the API refused."""
        return cls("Invalid API key. Please check your key and try again.")


class MissingEnvironmentError(ProvisioningError):
    """Raised when a token request cannot be tied to any environment."""

    @classmethod
    def none_available(cls) -> MissingEnvironmentError:
        """Return an error when the account has no environments at all."""
        return cls(
            'No environments found. Create one with "embed env create" first.'
        )


class NoEmbeddablesError(ProvisioningError):
    """Raised when there is no embeddable to issue a token for."""

    @classmethod
    def none_available(cls) -> NoEmbeddablesError:
        """Return an error when the embeddable listing is empty."""
        return cls("No embeddables found. Create an embeddable first.")


class NoConnectionsError(ProvisioningError):
    """Raised when an environment is requested before any connection exists."""

    @classmethod
    def none_available(cls) -> NoConnectionsError:
        """Return an error when the connection listing is empty."""
        return cls(
            "No database connections found. "
            'Create one with "embed database connect" first.'
        )


class DuplicateEnvironmentError(ProvisioningError):
    """Raised when the API reports that an environment name is taken."""

    @classmethod
    def named(cls, name: str) -> DuplicateEnvironmentError:
        """Return an error naming the colliding environment."""
        return cls(f'An environment named "{name}" already exists.')


__all__ = [
    "AuthenticationError",
    "DuplicateEnvironmentError",
    "MissingEnvironmentError",
    "NoConnectionsError",
    "NoEmbeddablesError",
    "ProvisioningCancelled",
    "ProvisioningError",
]
