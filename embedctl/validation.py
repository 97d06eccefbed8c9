"""Structural validation of user-supplied resource descriptions.

Every validator is pure and synchronous. Failures raise
:class:`ValidationError` with a message suitable for showing to the user
unchanged; nothing here touches the network or the filesystem.
"""

from __future__ import annotations

import collections.abc as cabc
import re
import typing as typ

import msgspec

from embedctl.api.models import ConnectionConfigInput, ConnectionType
from embedctl.errors import EmbedError

MIN_API_KEY_LENGTH = 10
ENVIRONMENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

_NETWORK_FIELDS = ("host", "database", "username", "password")
_NETWORK_TYPES = frozenset(
    {
        ConnectionType.POSTGRES,
        ConnectionType.MYSQL,
        ConnectionType.REDSHIFT,
        ConnectionType.SNOWFLAKE,
    }
)
_TYPE_DISPLAY_NAMES = {ConnectionType.SNOWFLAKE: "Snowflake"}


class ValidationError(EmbedError, ValueError):
    """Raised when user input fails local, pre-flight validation."""


def validate_api_key(api_key: str | None) -> str:
    """Check the API key has a plausible shape and return it.

    Raises
    ------
    ValidationError
        If the key is empty or shorter than ``MIN_API_KEY_LENGTH``.

    """
    if not api_key or not isinstance(api_key, str):
        msg = "API key is required"
        raise ValidationError(msg)
    if len(api_key) < MIN_API_KEY_LENGTH:
        msg = "Invalid API key format"
        raise ValidationError(msg)
    return api_key


def _as_mapping(
    config: ConnectionConfigInput | cabc.Mapping[str, object],
) -> cabc.Mapping[str, object]:
    if isinstance(config, ConnectionConfigInput):
        return typ.cast("cabc.Mapping[str, object]", msgspec.structs.asdict(config))
    if isinstance(config, cabc.Mapping):
        return config
    msg = "Connection configuration must be a JSON object"
    raise ValidationError(msg)


def _require_network_fields(
    kind: ConnectionType, raw: cabc.Mapping[str, object]
) -> None:
    if all(raw.get(field) for field in _NETWORK_FIELDS):
        return
    label = _TYPE_DISPLAY_NAMES.get(kind, kind.value)
    msg = f"{label} connections require: {', '.join(_NETWORK_FIELDS)}"
    raise ValidationError(msg)


def validate_connection_config(
    config: ConnectionConfigInput | cabc.Mapping[str, object],
) -> ConnectionConfigInput:
    """Validate a connection description and return it in typed form.

    Parameters
    ----------
    config
        Either a :class:`ConnectionConfigInput` or the raw mapping parsed
        from ``--json``, ``--file`` or interactive input.

    Returns
    -------
    ConnectionConfigInput
        The description with numeric strings such as ``"5432"`` coerced.

    Raises
    ------
    ValidationError
        If the name is missing, the type is unsupported, or the fields the
        type requires are incomplete.

    """
    raw = _as_mapping(config)

    name = raw.get("name")
    if not name or not isinstance(name, str):
        msg = "Connection name is required and must be a string"
        raise ValidationError(msg)

    raw_type = raw.get("type")
    valid_types = [kind.value for kind in ConnectionType]
    if not isinstance(raw_type, str) or raw_type not in valid_types:
        msg = f"Connection type must be one of: {', '.join(valid_types)}"
        raise ValidationError(msg)

    kind = ConnectionType(raw_type)
    if kind in _NETWORK_TYPES:
        _require_network_fields(kind, raw)
    elif not isinstance(raw.get("config"), cabc.Mapping):
        msg = "BigQuery connections require service account JSON in config field"
        raise ValidationError(msg)

    if isinstance(config, ConnectionConfigInput):
        return config

    try:
        return msgspec.convert(dict(raw), type=ConnectionConfigInput, strict=False)
    except msgspec.ValidationError as exc:
        msg = f"Invalid connection configuration: {exc}"
        raise ValidationError(msg) from exc


def validate_environment_name(name: str | None) -> str:
    """Check an environment name uses only letters, digits, ``-`` and ``_``.

    Raises
    ------
    ValidationError
        If the name is empty or contains other characters.

    """
    if not name or not isinstance(name, str):
        msg = "Environment name is required"
        raise ValidationError(msg)
    if ENVIRONMENT_NAME_PATTERN.fullmatch(name) is None:
        msg = (
            "Environment name can only contain letters, numbers, "
            "hyphens, and underscores"
        )
        raise ValidationError(msg)
    return name


def validate_datasource_name(name: str | None) -> str:
    """Return the stripped datasource name, rejecting blank input."""
    stripped = (name or "").strip()
    if not stripped:
        msg = "Data source name is required"
        raise ValidationError(msg)
    return stripped


__all__ = [
    "ENVIRONMENT_NAME_PATTERN",
    "MIN_API_KEY_LENGTH",
    "ValidationError",
    "validate_api_key",
    "validate_connection_config",
    "validate_datasource_name",
    "validate_environment_name",
]
