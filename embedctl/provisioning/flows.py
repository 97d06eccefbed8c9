"""Dependency-ordered provisioning steps.

Each step takes its collaborators explicitly: a :class:`ConfigStore` for
local state, an :class:`EmbeddableAPIClient` for remote changes and an
:class:`Interaction` for prompts. Local validation always runs before the
first mutating API call of a step. Steps commit independently; nothing
created remotely is rolled back when a later step fails or is cancelled.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import typing as typ

from embedctl.api.errors import APIError
from embedctl.api.models import ConnectionConfigInput, ConnectionType
from embedctl.config.models import Config, Region
from embedctl.inputs import json_error, parse_json_object, parse_json_or_file
from embedctl.logging import get_logger, log_debug, log_info
from embedctl.validation import (
    ValidationError,
    validate_api_key,
    validate_connection_config,
    validate_datasource_name,
    validate_environment_name,
)

from .errors import (
    AuthenticationError,
    DuplicateEnvironmentError,
    MissingEnvironmentError,
    NoConnectionsError,
    NoEmbeddablesError,
    ProvisioningCancelled,
)
from .expiry import DEFAULT_EXPIRY, normalize_expiry, parse_expiry
from .guidance import guidance_for
from .interaction import Choice, required

if typ.TYPE_CHECKING:
    from embedctl.api.client import EmbeddableAPIClient
    from embedctl.api.models import (
        Connection,
        ConnectionTestResult,
        Embeddable,
        Environment,
        SecurityToken,
    )
    from embedctl.config.store import ConfigStore

    from .interaction import Interaction, TextCheck

logger = get_logger(__name__)

ClientFactory = cabc.Callable[[Config], "EmbeddableAPIClient"]
"""Builds an API client bound to a (possibly not yet saved) credential."""

RawConnectionInput = ConnectionConfigInput | cabc.Mapping[str, object]

_JSON_ONLY_TYPES = frozenset({ConnectionType.SNOWFLAKE, ConnectionType.REDSHIFT})
_MAX_PORT = 65_535


@dataclasses.dataclass(frozen=True, slots=True)
class AuthResult:
    """Credential in force after :func:`authenticate`."""

    config: Config
    created: bool


@dataclasses.dataclass(frozen=True, slots=True)
class ConnectionOutcome:
    """Connection selected or created by :func:`provision_connection`."""

    identifier: str
    created: bool
    connection: Connection | None = None
    test_result: ConnectionTestResult | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class EnvironmentOutcome:
    """Environment selected or created by :func:`provision_environment`."""

    identifier: str
    created: bool
    is_default: bool = False
    environment: Environment | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class TokenRequest:
    """Caller-supplied token parameters; ``None`` fields are prompted for.

    With ``prompt_details`` false, missing lifetime, user and filters take
    their defaults instead of being asked.
    """

    embeddable_id: str | None = None
    environment_id: str | None = None
    expires_in: str | None = None
    user_id: str | None = None
    security_context: dict[str, typ.Any] | None = None
    prompt_details: bool = True


@dataclasses.dataclass(frozen=True, slots=True)
class TokenOutcome:
    """Token issued by :func:`issue_security_token` and what it was bound to."""

    token: SecurityToken
    embeddable_id: str
    environment_id: str
    expires_in: str
    filtered: bool


def _check_from(validator: cabc.Callable[[str], object]) -> TextCheck:
    """Adapt a raising validator into an inline prompt check."""

    def _check(value: str) -> str | None:
        try:
            validator(value.strip())
        except ValidationError as exc:
            return str(exc)
        return None

    return _check


# ---------------------------------------------------------------------------
# Step 1: credential
# ---------------------------------------------------------------------------


def authenticate(
    store: ConfigStore,
    ui: Interaction,
    client_factory: ClientFactory,
    *,
    api_key: str | None = None,
    region: Region | None = None,
    force: bool = False,
) -> AuthResult:
    """Ensure a validated credential is stored, asking for one when needed.

    Parameters
    ----------
    store
        Where the credential is read from and persisted to.
    ui
        Prompt implementation for the key and region.
    client_factory
        Builds the client used to check the key against the API.
    api_key, region
        Values to use instead of prompting.
    force
        Replace an existing credential instead of reusing it.

    Returns
    -------
    AuthResult
        The credential in force, with ``created`` set when it was just saved.

    Raises
    ------
    ValidationError
        If the key is malformed; no request is made.
    AuthenticationError
        If the API rejects the key; nothing is persisted.

    """
    if not force:
        existing = store.get()
        if existing is not None:
            return AuthResult(config=existing, created=False)

    key = api_key
    if key is None:
        key = ui.ask(
            "Enter your Embeddable API key:",
            secret=True,
            check=_check_from(validate_api_key),
        )
    key = validate_api_key(key.strip())

    chosen = region
    if chosen is None:
        chosen = ui.choose(
            "Select your region:",
            [Choice(item.label, item, hint=item.display) for item in Region],
        )

    candidate = Config(api_key=key, region=chosen)
    ui.info("Validating API key...")
    with client_factory(candidate) as api:
        valid = api.validate_api_key()
    if not valid:
        raise AuthenticationError.invalid_api_key()

    store.save(candidate)
    log_info(logger, "Saved credential for region %s to %s", chosen, store.path)
    ui.success("API key validated")
    return AuthResult(config=candidate, created=True)


def logout(store: ConfigStore, ui: Interaction, *, confirm: bool = True) -> bool:
    """Delete the stored credential after confirmation.

    Returns False when there was nothing to delete.
    """
    if not store.exists():
        ui.warn("No configuration found")
        return False
    if confirm and not ui.confirm("Are you sure you want to logout?", default=False):
        raise ProvisioningCancelled.by_user("Logout cancelled")
    store.delete()
    ui.success("Logged out successfully")
    return True


# ---------------------------------------------------------------------------
# Step 2: connection
# ---------------------------------------------------------------------------


def select_connection(
    ui: Interaction,
    connections: cabc.Sequence[Connection],
    message: str = "Select a connection:",
) -> str:
    """Prompt for one connection and return its identifier."""
    return ui.choose(
        message,
        [Choice(item.name, item.identifier, hint=item.type) for item in connections],
    )


def _port_error(value: str) -> str | None:
    text = value.strip()
    if not text:
        return None
    if not text.isdecimal() or not 0 < int(text) <= _MAX_PORT:
        return "Port must be a number between 1 and 65535"
    return None


def _collect_network_details(
    ui: Interaction, kind: ConnectionType
) -> ConnectionConfigInput:
    default_port = kind.default_port
    name = ui.ask(
        "Connection name:",
        placeholder=f"my-{kind.value}",
        check=required("Connection name"),
    )
    host = ui.ask(
        "Host:",
        placeholder="localhost",
        check=required("Host"),
    )
    port = ui.ask(
        "Port:",
        default=None if default_port is None else str(default_port),
        check=_port_error,
    )
    database = ui.ask(
        "Database name:",
        placeholder="my_database",
        check=required("Database name"),
    )
    username = ui.ask("Username:", placeholder="user", check=required("Username"))
    password = ui.ask("Password:", secret=True, check=required("Password"))
    return ConnectionConfigInput(
        name=name.strip(),
        type=kind.value,
        host=host.strip(),
        port=int(port) if port.strip() else None,
        database=database.strip(),
        username=username.strip(),
        password=password,
    )


def _collect_bigquery_details(ui: Interaction) -> ConnectionConfigInput:
    ui.note(
        "BigQuery",
        ["For BigQuery, you need to provide service account credentials as JSON"],
    )
    raw = ui.ask(
        "Paste your service account JSON (or path to JSON file):",
        check=required("Service account JSON"),
    )
    service_account = parse_json_or_file(raw, what="service account JSON")
    name = ui.ask(
        "Connection name:",
        placeholder="my-bigquery",
        check=required("Connection name"),
    )
    return ConnectionConfigInput(
        name=name.strip(),
        type=ConnectionType.BIGQUERY.value,
        config=service_account,
    )


def collect_connection_input(ui: Interaction) -> RawConnectionInput:
    """Interactively gather an unvalidated connection description.

    Snowflake and Redshift take a full JSON document; BigQuery takes a
    service-account document (pasted or as a file path); the remaining
    engines are asked field by field with the engine's default port.
    """
    kind = ui.choose(
        "Select database type:",
        [Choice(item.label, item) for item in ConnectionType],
    )
    if kind is ConnectionType.BIGQUERY:
        return _collect_bigquery_details(ui)
    if kind in _JSON_ONLY_TYPES:
        ui.note(
            "Advanced configuration",
            ["For advanced database configurations, use --json or --file options"],
        )
        text = ui.ask(
            "Enter the full connection configuration as JSON:",
            check=json_error,
        )
        raw = parse_json_object(text, what="connection configuration")
        raw.setdefault("type", kind.value)
        return raw
    return _collect_network_details(ui, kind)


def _offer_existing_connection(api: EmbeddableAPIClient, ui: Interaction) -> str | None:
    connections = api.list_connections()
    if not connections:
        return None
    ui.info(f"Found {len(connections)} existing connection(s).")
    action = ui.choose(
        "Would you like to:",
        [
            Choice("Use an existing connection", "existing"),
            Choice("Create a new connection", "new"),
        ],
    )
    if action != "existing":
        return None
    return select_connection(ui, connections)


def report_test_failure(ui: Interaction, result: ConnectionTestResult) -> None:
    """Show a failed test's detail followed by matching troubleshooting advice."""
    ui.warn(f"Connection test failed: {result.detail}")
    advice = guidance_for(result.detail)
    ui.note(advice.title, advice.lines)


def _test_before_create(
    api: EmbeddableAPIClient, ui: Interaction, draft: ConnectionConfigInput
) -> ConnectionTestResult:
    ui.info(f"Testing connection to {draft.name}...")
    result = api.test_connection(draft)
    if result.success:
        ui.success(result.message or "Connection test successful")
        return result

    log_debug(logger, "Connection test for %s failed: %s", draft.name, result.detail)
    report_test_failure(ui, result)
    if not ui.confirm("Do you want to save this connection anyway?", default=False):
        raise ProvisioningCancelled.by_user("Connection creation cancelled")
    return result


def provision_connection(
    api: EmbeddableAPIClient,
    ui: Interaction,
    *,
    config: RawConnectionInput | None = None,
    skip_test: bool = False,
    offer_existing: bool = True,
) -> ConnectionOutcome:
    """Reuse an existing connection or create a tested new one.

    Parameters
    ----------
    api
        Authenticated client.
    ui
        Prompt implementation.
    config
        Connection description from ``--json``/``--file``; when given, no
        existing connection is offered and nothing is prompted for.
    skip_test
        Create without testing first.
    offer_existing
        Offer to reuse an existing connection when no ``config`` is given.

    Returns
    -------
    ConnectionOutcome
        The identifier to reference the connection by.

    Raises
    ------
    ValidationError
        If the description is invalid; raised before any request for it.
    ProvisioningCancelled
        If the test failed and the user declined to save anyway.

    """
    if config is None and offer_existing:
        reused = _offer_existing_connection(api, ui)
        if reused is not None:
            return ConnectionOutcome(identifier=reused, created=False)

    draft = validate_connection_config(
        config if config is not None else collect_connection_input(ui)
    )

    result = None if skip_test else _test_before_create(api, ui, draft)

    connection = api.create_connection(draft)
    log_info(
        logger, "Created connection %s (%s)", connection.identifier, connection.type
    )
    ui.success(f'Connection "{connection.name}" created successfully')
    return ConnectionOutcome(
        identifier=connection.identifier,
        created=True,
        connection=connection,
        test_result=result,
    )


def _choose_from_listing(
    ui: Interaction,
    connections: cabc.Sequence[Connection],
    message: str,
) -> str | None:
    if not connections:
        ui.warn("No database connections found.")
        return None
    return select_connection(ui, connections, message)


def check_connection(
    api: EmbeddableAPIClient, ui: Interaction, identifier: str | None = None
) -> ConnectionTestResult | None:
    """Test a saved connection, prompting for it when not named.

    Returns None when there is no connection to test.
    """
    if identifier is None:
        identifier = _choose_from_listing(
            ui, api.list_connections(), "Select connection to test:"
        )
        if identifier is None:
            return None
    ui.info(f"Testing connection {identifier}...")
    result = api.test_connection(identifier)
    if result.success:
        ui.success("Connection test successful")
    else:
        report_test_failure(ui, result)
    return result


def remove_connection(
    api: EmbeddableAPIClient, ui: Interaction, identifier: str | None = None
) -> str | None:
    """Delete a connection after confirmation; returns the deleted identifier."""
    if identifier is None:
        identifier = _choose_from_listing(
            ui, api.list_connections(), "Select connection to remove:"
        )
        if identifier is None:
            return None
    if not ui.confirm(
        "Are you sure you want to remove this connection?", default=False
    ):
        raise ProvisioningCancelled.by_user("Removal cancelled")
    api.delete_connection(identifier)
    ui.success("Connection removed successfully")
    return identifier


# ---------------------------------------------------------------------------
# Step 3: environment
# ---------------------------------------------------------------------------


def find_duplicate_environment(
    name: str, environments: cabc.Iterable[Environment]
) -> Environment | None:
    """Return the environment whose name equals ``name`` ignoring case."""
    wanted = name.casefold()
    return next(
        (item for item in environments if item.name.casefold() == wanted),
        None,
    )


def choose_environment_name(
    ui: Interaction,
    environments: cabc.Sequence[Environment],
    name: str | None = None,
) -> str:
    """Return a valid environment name that no existing environment uses.

    A colliding name is never renamed or merged: the user either picks a
    different one or the step is cancelled. A ``name`` supplied by the caller
    is validated and checked the same way before any prompt.
    """
    candidate = name
    while True:
        if candidate is None:
            candidate = ui.ask(
                "Environment name:",
                placeholder="production",
                check=_check_from(validate_environment_name),
            )
        candidate = validate_environment_name(candidate.strip())

        if find_duplicate_environment(candidate, environments) is None:
            return candidate

        ui.warn(f'An environment named "{candidate}" already exists.')
        if not ui.confirm("Would you like to choose a different name?", default=True):
            raise ProvisioningCancelled.by_user("Environment creation cancelled")
        candidate = None


def collect_datasource_mappings(
    ui: Interaction,
    *,
    connection_id: str | None = None,
    connections: cabc.Sequence[Connection] = (),
) -> dict[str, str]:
    """Gather datasource-to-connection pairs until the user stops.

    With ``connection_id`` every datasource maps to that connection;
    otherwise a connection is selected from ``connections`` per datasource.
    """
    mappings: dict[str, str] = {}
    while True:
        datasource = validate_datasource_name(
            ui.ask(
                "Data source name:",
                placeholder="main_db",
                check=_check_from(validate_datasource_name),
            )
        )
        target = connection_id or select_connection(ui, connections)
        mappings[datasource] = target
        ui.info(f'Mapped "{datasource}" to connection "{target}"')
        if not ui.confirm("Add another data source mapping?", default=True):
            return mappings


def _select_existing_environment(
    ui: Interaction, environments: cabc.Sequence[Environment], message: str
) -> str:
    return ui.choose(message, [Choice(item.name, item.id) for item in environments])


def provision_environment(
    api: EmbeddableAPIClient,
    store: ConfigStore,
    ui: Interaction,
    *,
    connection_id: str | None = None,
    name: str | None = None,
    offer_existing: bool = True,
    make_default: bool | None = None,
) -> EnvironmentOutcome:
    """Select an existing environment or create a new, uniquely named one.

    Parameters
    ----------
    api
        Authenticated client.
    store
        Receives the default-environment pointer.
    ui
        Prompt implementation.
    connection_id
        Connection every datasource maps to. When omitted, connections are
        listed and one is chosen per datasource.
    name
        Name for the new environment instead of prompting.
    offer_existing
        Offer to use an existing environment instead of creating one.
    make_default
        Whether to store the new environment as the default. ``None`` makes
        the first environment the default and asks otherwise.

    Returns
    -------
    EnvironmentOutcome
        The environment identifier and whether it is now the default.

    Raises
    ------
    NoConnectionsError
        If no ``connection_id`` is given and no connection exists.
    DuplicateEnvironmentError
        If the API reports the name as taken despite the local check.
    ProvisioningCancelled
        If the user declines to pick a different name.

    """
    environments = api.list_environments()
    if environments and offer_existing and name is None:
        if not ui.confirm("Would you like to create a new environment?", default=True):
            chosen = _select_existing_environment(
                ui, environments, "Select an environment:"
            )
            return EnvironmentOutcome(identifier=chosen, created=False)

    env_name = choose_environment_name(ui, environments, name)

    connections: list[Connection] = []
    if connection_id is None:
        connections = api.list_connections()
        if not connections:
            raise NoConnectionsError.none_available()

    mappings = collect_datasource_mappings(
        ui, connection_id=connection_id, connections=connections
    )

    try:
        environment = api.create_environment(env_name, mappings)
    except APIError as exc:
        if "already exists" in str(exc).lower():
            raise DuplicateEnvironmentError.named(env_name) from exc
        raise
    log_info(logger, "Created environment %s (%s)", environment.name, environment.id)
    ui.success(f'Environment "{environment.name}" created successfully')

    if make_default is None:
        make_default = not environments or ui.confirm(
            "Set as default environment?", default=True
        )
    if make_default:
        store.update(default_environment=environment.id)
        ui.success("Default environment set")

    return EnvironmentOutcome(
        identifier=environment.id,
        created=True,
        is_default=make_default,
        environment=environment,
    )


def set_default_environment(
    api: EmbeddableAPIClient,
    store: ConfigStore,
    ui: Interaction,
    identifier: str | None = None,
) -> str | None:
    """Store an environment as the default, prompting for it when not named."""
    if identifier is None:
        environments = api.list_environments()
        if not environments:
            ui.warn("No environments found.")
            return None
        identifier = _select_existing_environment(
            ui, environments, "Select default environment:"
        )
    store.update(default_environment=identifier)
    ui.success("Default environment updated")
    return identifier


def remove_environment(
    api: EmbeddableAPIClient,
    store: ConfigStore,
    ui: Interaction,
    identifier: str | None = None,
) -> str | None:
    """Delete an environment after confirmation.

    A stored default pointing at the deleted environment is cleared.
    """
    if identifier is None:
        environments = api.list_environments()
        if not environments:
            ui.warn("No environments found.")
            return None
        identifier = _select_existing_environment(
            ui, environments, "Select environment to remove:"
        )
    if not ui.confirm(
        "Are you sure you want to remove this environment?", default=False
    ):
        raise ProvisioningCancelled.by_user("Removal cancelled")

    api.delete_environment(identifier)
    ui.success("Environment removed successfully")

    config = store.get()
    if config is not None and config.default_environment == identifier:
        store.update(default_environment=None)
        log_info(logger, "Cleared default environment %s", identifier)
    return identifier


# ---------------------------------------------------------------------------
# Step 4: security token
# ---------------------------------------------------------------------------


def resolve_environment(
    api: EmbeddableAPIClient,
    config: Config,
    ui: Interaction,
    explicit: str | None = None,
) -> str:
    """Resolve the token environment: explicit, then stored default, then asked.

    Raises
    ------
    MissingEnvironmentError
        If nothing is given, no default is stored and no environment exists.

    """
    if explicit:
        return explicit
    if config.default_environment:
        return config.default_environment
    environments = api.list_environments()
    if not environments:
        raise MissingEnvironmentError.none_available()
    return _select_existing_environment(ui, environments, "Select an environment:")


def select_embeddable(
    ui: Interaction, embeddables: cabc.Sequence[Embeddable]
) -> str:
    """Prompt for one embeddable and return its identifier.

    Raises
    ------
    NoEmbeddablesError
        If ``embeddables`` is empty.

    """
    if not embeddables:
        raise NoEmbeddablesError.none_available()
    return ui.choose(
        "Select an embeddable:",
        [Choice(item.name, item.id) for item in embeddables],
    )


def _filters_error(value: str) -> str | None:
    return None if not value.strip() else json_error(value)


def _complete_token_request(ui: Interaction, request: TokenRequest) -> TokenRequest:
    if not request.prompt_details:
        return request

    expires_in = request.expires_in
    if expires_in is None:
        expires_in = ui.ask(
            "Token expiration (e.g., 1h, 24h, 7d):",
            default=DEFAULT_EXPIRY,
        )

    user_id = request.user_id
    if user_id is None:
        user_id = ui.ask("User ID (optional):", placeholder="user123").strip() or None

    context = request.security_context
    if context is None and ui.confirm("Add row-level security filters?", default=False):
        text = ui.ask(
            "Enter filters as JSON:",
            placeholder='{"org_id": 123}',
            check=_filters_error,
        )
        if text.strip():
            context = parse_json_object(text, what="security filters")

    return dataclasses.replace(
        request,
        expires_in=expires_in.strip() or DEFAULT_EXPIRY,
        user_id=user_id,
        security_context=context,
    )


def issue_security_token(
    api: EmbeddableAPIClient,
    config: Config,
    ui: Interaction,
    request: TokenRequest | None = None,
) -> TokenOutcome:
    """Issue a security token for one embeddable within one environment.

    Parameters
    ----------
    api
        Authenticated client.
    config
        Stored credential; supplies the default environment.
    ui
        Prompt implementation.
    request
        Known token parameters. Missing ones are resolved or prompted for.

    Returns
    -------
    TokenOutcome
        The token with the embeddable, environment and lifetime it carries.

    Raises
    ------
    MissingEnvironmentError
        If no environment can be resolved.
    NoEmbeddablesError
        If an embeddable must be chosen and none exist.

    """
    request = request or TokenRequest()

    embeddable_id = request.embeddable_id
    if embeddable_id is None:
        embeddable_id = select_embeddable(ui, api.list_embeddables())

    environment_id = resolve_environment(api, config, ui, request.environment_id)
    request = _complete_token_request(ui, request)
    expires_in = normalize_expiry(request.expires_in)

    ui.info("Generating token...")
    token = api.generate_security_token(
        embeddable_id,
        expiry_in_seconds=parse_expiry(expires_in),
        user=None if request.user_id is None else {"id": request.user_id},
        security_context=request.security_context,
        environment=environment_id,
    )
    log_debug(
        logger,
        "Issued token for embeddable %s in environment %s",
        embeddable_id,
        environment_id,
    )
    ui.success("Token generated successfully")
    return TokenOutcome(
        token=token,
        embeddable_id=embeddable_id,
        environment_id=environment_id,
        expires_in=expires_in,
        filtered=bool(request.security_context),
    )


__all__ = [
    "AuthResult",
    "ClientFactory",
    "ConnectionOutcome",
    "EnvironmentOutcome",
    "TokenOutcome",
    "TokenRequest",
    "authenticate",
    "check_connection",
    "choose_environment_name",
    "collect_connection_input",
    "collect_datasource_mappings",
    "find_duplicate_environment",
    "issue_security_token",
    "logout",
    "provision_connection",
    "provision_environment",
    "remove_connection",
    "remove_environment",
    "report_test_failure",
    "resolve_environment",
    "select_connection",
    "select_embeddable",
    "set_default_environment",
]
