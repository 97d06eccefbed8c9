"""Errors raised while reading or writing local configuration."""

from __future__ import annotations

from embedctl.errors import EmbedError


class ConfigError(EmbedError):
    """Raised when local configuration is missing or cannot be persisted."""

    @classmethod
    def not_authenticated(cls) -> ConfigError:
        """Return an error when no configuration has been saved yet."""
        return cls(
            'No configuration found. Run "embed init" or "embed auth login" first.'
        )

    @classmethod
    def save_failed(cls, path: object, detail: object) -> ConfigError:
        """Return an error when the configuration file cannot be written."""
        return cls(f"Failed to save configuration to {path}: {detail}")

    @classmethod
    def delete_failed(cls, path: object, detail: object) -> ConfigError:
        """Return an error when the configuration file cannot be removed."""
        return cls(f"Failed to delete configuration at {path}: {detail}")


class SettingsError(EmbedError):
    """Raised when an ``EMBED_*`` environment variable holds an invalid value."""

    @classmethod
    def invalid_parameter(
        cls, variable: str, value: str, constraint: str
    ) -> SettingsError:
        """Create error for an invalid environment value.

        Parameters
        ----------
        variable
            Name of the environment variable that failed validation.
        value
            The invalid value that was provided.
        constraint
            A description of the valid value requirements.

        Returns
        -------
        SettingsError
            Error with formatted message describing the invalid value.

        """
        return cls(f"Invalid {variable} '{value}'. {constraint}")

    @classmethod
    def invalid_timeout(cls, value: str) -> SettingsError:
        """Create error for a non-positive or non-numeric API timeout."""
        return cls.invalid_parameter(
            "EMBED_API_TIMEOUT", value, "Must be a positive number of seconds"
        )
