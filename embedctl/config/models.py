"""Typed local configuration record and region table."""

from __future__ import annotations

import enum

import msgspec


class Region(enum.StrEnum):
    """Deployment partition of the remote API."""

    US = "US"
    EU = "EU"
    DEV = "Dev"

    @property
    def base_url(self) -> str:
        """Return the fixed API base URL for this region."""
        return _BASE_URLS[self]

    @property
    def display(self) -> str:
        """Return a short human-readable label for this region."""
        return _DISPLAY_LABELS[self]

    @property
    def label(self) -> str:
        """Return the long name shown when choosing a region."""
        return _LONG_NAMES[self]


_BASE_URLS: dict[Region, str] = {
    Region.US: "https://api.us.embeddable.com/api/v1",
    Region.EU: "https://api.eu.embeddable.com/api/v1",
    Region.DEV: "https://api.dev.embeddable.com/api/v1",
}

_DISPLAY_LABELS: dict[Region, str] = {
    Region.US: "🇺🇸 US",
    Region.EU: "🇪🇺 EU",
    Region.DEV: "🛠️  Dev",
}

_LONG_NAMES: dict[Region, str] = {
    Region.US: "United States",
    Region.EU: "Europe",
    Region.DEV: "Development",
}

_MASK_VISIBLE_CHARS = 4


class Config(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """Stored credential and preferences for the local installation.

    Attributes
    ----------
    api_key : str
        Bearer credential for the remote API.
    region : Region
        Region whose base URL every request targets.
    default_environment : str, optional
        Environment identifier used when a command does not name one.

    """

    api_key: str
    region: Region
    default_environment: str | None = None

    @property
    def masked_api_key(self) -> str:
        """Return the API key with all but the last four characters hidden."""
        hidden = max(len(self.api_key) - _MASK_VISIBLE_CHARS, 0)
        return "*" * hidden + self.api_key[hidden:]
