"""Typed remote entities and normalisation of heterogeneous API payloads.

The Embeddable API is not consistent about response shapes: connection
listings may be bare names or full objects, connections may lack an ``id``,
and environments carry their datasource mapping under one of several keys,
either as a mapping or as a list of pair objects. Every payload is decoded
into the canonical structs below as soon as it leaves the transport so that
callers never branch on shape.
"""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import enum
import typing as typ

import msgspec

from .errors import APIResponseShapeError


class ConnectionType(enum.StrEnum):
    """Database engines the API can connect to."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    BIGQUERY = "bigquery"
    SNOWFLAKE = "snowflake"
    REDSHIFT = "redshift"

    @property
    def label(self) -> str:
        """Return the product name shown in prompts."""
        return _TYPE_LABELS[self]

    @property
    def default_port(self) -> int | None:
        """Return the engine's customary port, when it has one."""
        return _DEFAULT_PORTS.get(self)


_TYPE_LABELS: dict[ConnectionType, str] = {
    ConnectionType.POSTGRES: "PostgreSQL",
    ConnectionType.MYSQL: "MySQL",
    ConnectionType.BIGQUERY: "BigQuery",
    ConnectionType.SNOWFLAKE: "Snowflake",
    ConnectionType.REDSHIFT: "Redshift",
}

_DEFAULT_PORTS: dict[ConnectionType, int] = {
    ConnectionType.POSTGRES: 5432,
    ConnectionType.MYSQL: 3306,
    ConnectionType.REDSHIFT: 5439,
}


class ConnectionConfigInput(msgspec.Struct, kw_only=True, omit_defaults=True):
    """User-supplied description of a connection that does not exist yet.

    Attributes
    ----------
    name : str
        Connection name, also its identity when the API returns no ``id``.
    type : str
        One of the :class:`ConnectionType` values.
    host, port, database, username, password
        Network credentials for every engine except BigQuery.
    config : dict, optional
        Service-account object, required for BigQuery only.

    """

    name: str
    type: str
    host: str | None = None
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = None
    config: dict[str, typ.Any] | None = None

    def to_payload(self) -> dict[str, object]:
        """Return the ``{name, type, credentials}`` body the API expects.

        ``username`` is sent as ``user``; unset credential fields are dropped.
        """
        if self.type == ConnectionType.BIGQUERY:
            credentials: object = self.config
        else:
            raw = {
                "host": self.host,
                "port": self.port,
                "database": self.database,
                "user": self.username,
                "password": self.password,
            }
            credentials = {
                key: value for key, value in raw.items() if value is not None
            }
        return {"name": self.name, "type": self.type, "credentials": credentials}


class Connection(msgspec.Struct, kw_only=True, frozen=True):
    """Connection as stored by the API."""

    name: str
    type: str = "unknown"
    id: str | None = None
    credentials: dict[str, typ.Any] | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def identifier(self) -> str:
        """Return ``id`` when the API supplied one, otherwise ``name``."""
        return self.id or self.name

    def credential(self, key: str) -> str | None:
        """Return a credential field as text, or ``None`` when absent."""
        if not self.credentials:
            return None
        value = self.credentials.get(key)
        return None if value is None else str(value)


class Environment(msgspec.Struct, kw_only=True, frozen=True):
    """Named mapping of datasource names to connection identifiers."""

    id: str
    name: str
    datasources: dict[str, str] = msgspec.field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None


class Embeddable(msgspec.Struct, kw_only=True, frozen=True):
    """Dashboard or report that can be rendered with a security token.

    ``last_published_at`` is passed through untouched; the API has been seen
    to send strings, objects and empty objects for it.
    """

    id: str
    name: str
    last_published_at: typ.Any = None


class SecurityToken(msgspec.Struct, kw_only=True, frozen=True):
    """Short-lived embedding credential returned by ``/security-token``."""

    token: str
    embed_url: str | None = None
    expires_at: dt.datetime | None = None


class ConnectionTestResult(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of a connection test; failure is data, not an exception."""

    success: bool
    message: str | None = None
    error: str | None = None

    @property
    def detail(self) -> str:
        """Return the most specific description available."""
        return self.error or self.message or "Unknown error"


# ---------------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------------

_Identifier = str | int | None
_MappingShape = dict[str, typ.Any] | list[typ.Any] | None


class _ConnectionPayload(msgspec.Struct, kw_only=True, rename="camel"):
    name: str
    type: str = "unknown"
    id: _Identifier = None
    credentials: dict[str, typ.Any] | None = None
    created_at: str | None = None
    updated_at: str | None = None


class _EnvironmentPayload(msgspec.Struct, kw_only=True, rename="camel"):
    name: str
    id: _Identifier = None
    connections: _MappingShape = None
    datasources: _MappingShape = None
    datasource_mappings: _MappingShape = None
    created_at: str | None = None
    updated_at: str | None = None


class _EmbeddablePayload(msgspec.Struct, kw_only=True, rename="camel"):
    id: str | int
    name: str
    last_published_at: typ.Any = None


class _TokenPayload(msgspec.Struct, kw_only=True, rename="camel"):
    token: str
    embed_url: str | None = None


_DATASOURCE_KEYS = ("dataSource", "datasource", "datasourceName", "name")
_CONNECTION_KEYS = ("connectionId", "connection", "connectionName")


def _convert[T](raw: object, type_: type[T], resource: str) -> T:
    try:
        return msgspec.convert(raw, type=type_)
    except msgspec.ValidationError as exc:
        raise APIResponseShapeError.invalid(resource, exc) from exc


def _as_text(value: object) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str | int):
        return str(value)
    if isinstance(value, cabc.Mapping):
        mapping = typ.cast("cabc.Mapping[str, object]", value)
        return _as_text(mapping.get("id") or mapping.get("name"))
    return None


def _first_text(item: cabc.Mapping[str, object], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        text = _as_text(item.get(key))
        if text:
            return text
    return None


def normalize_datasource_mapping(shape: object) -> dict[str, str]:
    """Collapse any datasource-mapping shape into ``{datasource: connection}``.

    Parameters
    ----------
    shape
        Either a mapping of datasource name to connection (identifier or
        object), or a list of objects naming both sides.

    Returns
    -------
    dict[str, str]
        Canonical mapping; entries that name neither side are dropped.

    """
    mapping: dict[str, str] = {}
    if isinstance(shape, cabc.Mapping):
        pairs = typ.cast("cabc.Mapping[object, object]", shape)
        for datasource, connection in pairs.items():
            connection_id = _as_text(connection)
            if connection_id is not None:
                mapping[str(datasource)] = connection_id
    elif isinstance(shape, list):
        for item in typ.cast("list[object]", shape):
            if not isinstance(item, cabc.Mapping):
                continue
            entry = typ.cast("cabc.Mapping[str, object]", item)
            datasource = _first_text(entry, _DATASOURCE_KEYS)
            connection_id = _first_text(entry, _CONNECTION_KEYS)
            if datasource and connection_id:
                mapping[datasource] = connection_id
    return mapping


def decode_connection(raw: object) -> Connection:
    """Decode a connection object from the API."""
    payload = _convert(raw, _ConnectionPayload, "connection")
    return Connection(
        name=payload.name,
        type=payload.type,
        id=_as_text(payload.id),
        credentials=payload.credentials,
        created_at=payload.created_at,
        updated_at=payload.updated_at,
    )


def decode_environment(raw: object) -> Environment:
    """Decode an environment object from the API, whatever its mapping shape."""
    payload = _convert(raw, _EnvironmentPayload, "environment")
    shape = next(
        (
            candidate
            for candidate in (
                payload.connections,
                payload.datasources,
                payload.datasource_mappings,
            )
            if candidate is not None
        ),
        None,
    )
    return Environment(
        id=_as_text(payload.id) or payload.name,
        name=payload.name,
        datasources=normalize_datasource_mapping(shape),
        created_at=payload.created_at,
        updated_at=payload.updated_at,
    )


def decode_embeddable(raw: object) -> Embeddable:
    """Decode an embeddable object from the API."""
    payload = _convert(raw, _EmbeddablePayload, "embeddable")
    return Embeddable(
        id=str(payload.id),
        name=payload.name,
        last_published_at=payload.last_published_at,
    )


def decode_security_token(raw: object, *, expires_at: dt.datetime) -> SecurityToken:
    """Decode a token response and stamp the locally computed expiry."""
    payload = _convert(raw, _TokenPayload, "security token")
    return SecurityToken(
        token=payload.token,
        embed_url=payload.embed_url,
        expires_at=expires_at,
    )


def unwrap_collection(raw: object, key: str) -> list[object]:
    """Return the list stored under ``key``, or ``raw`` itself when it is a list.

    An empty (``None``) body is treated as an empty collection.

    Raises
    ------
    APIResponseShapeError
        If neither shape is present.

    """
    if raw is None:
        return []
    if isinstance(raw, list):
        return typ.cast("list[object]", raw)
    if isinstance(raw, cabc.Mapping):
        items = typ.cast("cabc.Mapping[str, object]", raw).get(key)
        if isinstance(items, list):
            return typ.cast("list[object]", items)
    raise APIResponseShapeError.invalid(key, f"expected a list under '{key}'")
