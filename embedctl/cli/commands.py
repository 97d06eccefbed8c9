"""The ``embed`` command tree.

Commands are thin: they build collaborators from the active
:class:`CommandContext`, call a provisioning flow or an API listing, and
render the outcome. Failures surface as :class:`EmbedError` and are turned
into exit codes by :func:`run_command`, which also reports any other
exception as unexpected; cancellation exits cleanly.
"""

from __future__ import annotations

import collections.abc as cabc
import contextvars
import dataclasses
import typing as typ
from pathlib import Path

from cyclopts import App, Parameter

from embedctl.config.errors import SettingsError
from embedctl.config.models import Region
from embedctl.errors import EmbedError
from embedctl.inputs import parse_json_object, read_json_file
from embedctl.logging import (
    configure_logging,
    get_logger,
    log_debug,
    log_exception,
    log_warning,
)
from embedctl.provisioning import (
    ProvisioningCancelled,
    TokenRequest,
    authenticate,
    check_connection,
    issue_security_token,
    logout,
    provision_connection,
    provision_environment,
    remove_connection,
    remove_environment,
    run_setup,
    set_default_environment,
)
from embedctl.update_check import (
    UpdateCheckError,
    fetch_latest_release,
    installed_version,
    parse_version,
    start_background_check,
)

from .console import RichConsole
from .context import CommandContext
from .render import (
    render_config,
    render_connections,
    render_embeddables,
    render_environments,
    render_setup_summary,
    render_token,
)

logger = get_logger(__name__)

app = App(
    name="embed",
    help=(
        "CLI tool for Embeddable API - manage database connections, "
        "environments, and dashboards"
    ),
    version=installed_version(),
)
auth_app = App(name="auth", help="Manage authentication")
database_app = App(name="database", help="Manage database connections")
env_app = App(name="env", help="Manage environments")
app.command(auth_app)
app.command(database_app)
app.command(env_app)

_CONTEXT: contextvars.ContextVar[CommandContext | None] = contextvars.ContextVar(
    "embed_command_context", default=None
)


@dataclasses.dataclass(frozen=True, slots=True)
class NoSubcommand:
    """Result of invoking ``embed`` without naming a command."""


def current_context() -> CommandContext:
    """Return the context of the running command, building one if needed."""
    context = _CONTEXT.get()
    if context is None:
        context = CommandContext.from_env()
        _CONTEXT.set(context)
    return context


@app.default
def _no_subcommand() -> NoSubcommand:
    return NoSubcommand()


# ---------------------------------------------------------------------------
# Top-level commands
# ---------------------------------------------------------------------------


@app.command
def init() -> None:
    """Initialize Embeddable CLI with your API key and region."""
    context = current_context()
    ui = context.console
    if context.store.exists() and not ui.confirm(
        "Configuration already exists. Do you want to overwrite it?", default=False
    ):
        raise ProvisioningCancelled.by_user("Initialization cancelled")

    ui.heading("Welcome to Embeddable CLI! 🎉")
    authenticate(context.store, ui, context.client_for, force=True)
    ui.success("Configuration saved!")
    ui.note(
        "You're all set! Here are some commands to get started:",
        [
            "embed setup            Guided connection, environment and token setup",
            "embed database connect Connect a database",
            "embed env create       Create an environment",
            "embed list             List embeddables",
            "embed token            Generate a security token",
        ],
    )


@app.command
def setup(*, skip_token: bool = False) -> None:
    """Run the guided setup: credential, connection, environment and token.

    Parameters
    ----------
    skip_token
        Do not offer to generate a security token at the end.

    """
    context = current_context()
    context.console.heading("🚀 Welcome to Embeddable CLI Setup!")
    summary = run_setup(
        context.store, context.console, context.client_for, skip_token=skip_token
    )
    render_setup_summary(context.console, summary)


@app.command(name="config")
def show_config() -> None:
    """Show current configuration."""
    context = current_context()
    config = context.store.get()
    if config is None:
        context.console.warn('No configuration found. Run "embed init" to get started.')
        return
    render_config(context.console, config, context.store.path)


@app.command(name="list")
def list_embeddables() -> None:
    """List all available embeddables."""
    context = current_context()
    _config, client = context.authenticated_client()
    with client as api:
        embeddables = api.list_embeddables()
    if not embeddables:
        context.console.info("No embeddables found.")
        return
    render_embeddables(context.console, embeddables)


@app.command
def token(
    embeddable_id: str | None = None,
    *,
    env: typ.Annotated[str | None, Parameter(name=["--env", "-e"])] = None,
    expires: str | None = None,
    user_id: str | None = None,
    filters: str | None = None,
) -> None:
    """Generate a security token for an embeddable.

    Parameters
    ----------
    embeddable_id
        Embeddable to issue the token for; chosen from a list when omitted.
    env
        Environment identifier; defaults to the stored default environment.
    expires
        Token lifetime such as ``30m``, ``24h`` or ``7d``.
    user_id
        User the token is issued for.
    filters
        Row-level security context as a JSON object.

    """
    context = current_context()
    config, client = context.authenticated_client()
    request = TokenRequest(
        embeddable_id=embeddable_id,
        environment_id=env,
        expires_in=expires,
        user_id=user_id,
        security_context=(
            None if filters is None else parse_json_object(filters, what="--filters")
        ),
    )
    with client as api:
        outcome = issue_security_token(api, config, context.console, request)
    render_token(context.console, outcome, show_embed_example=True)


@app.command
def version(
    *, check: typ.Annotated[bool, Parameter(name=["--check", "-c"])] = False
) -> None:
    """Show the installed version and, optionally, check for a newer release.

    Parameters
    ----------
    check
        Look up the latest published release.

    """
    context = current_context()
    ui = context.console
    current = installed_version()
    ui.info(f"Embeddable CLI v{current}")
    config = context.store.get()
    if config is not None:
        ui.line(f"Region: {config.region.display}")
    if not check:
        return

    ui.info("Checking for updates...")
    try:
        latest = fetch_latest_release().version
        newer = parse_version(latest) > parse_version(current)
        older = parse_version(latest) < parse_version(current)
    except UpdateCheckError as exc:
        log_debug(logger, "Update check error: %s", exc)
        ui.warn("Failed to check for updates")
        return

    if newer:
        ui.success(f"New version available: v{latest} (current: v{current})")
        ui.line("To update: pip install --upgrade embedctl")
    elif older:
        ui.info(
            f"You're on a newer version (v{current}) "
            f"than the latest release (v{latest})"
        )
    else:
        ui.success(f"You're on the latest version (v{current})")


# ---------------------------------------------------------------------------
# embed auth
# ---------------------------------------------------------------------------


@auth_app.command
def login(
    *,
    api_key: str | None = None,
    region: Region | None = None,
) -> None:
    """Authenticate with your Embeddable API key.

    Parameters
    ----------
    api_key
        API key to store instead of prompting for it.
    region
        Region the key belongs to (US, EU or Dev).

    """
    context = current_context()
    context.console.heading("🔐 Login to Embeddable")
    authenticate(
        context.store,
        context.console,
        context.client_for,
        api_key=api_key,
        region=region,
        force=True,
    )
    context.console.success("Configuration saved successfully!")


@auth_app.command(name="logout")
def logout_command(
    *, yes: typ.Annotated[bool, Parameter(name=["--yes", "-y"])] = False
) -> None:
    """Remove the stored API key.

    Parameters
    ----------
    yes
        Skip the confirmation prompt.

    """
    context = current_context()
    logout(context.store, context.console, confirm=not yes)


@auth_app.command
def status() -> None:
    """Show authentication status and check the stored key."""
    context = current_context()
    ui = context.console
    config = context.store.get()
    if config is None:
        ui.warn('Not authenticated. Run "embed auth login" to authenticate.')
        return
    ui.info("Authentication Status:")
    ui.line(f"  Region: {config.region.display}")
    ui.line(f"  API Key: {config.masked_api_key}")
    if config.default_environment:
        ui.line(f"  Default Environment: {config.default_environment}")
    with context.client_for(config) as api:
        valid = api.validate_api_key()
    if valid:
        ui.success("API connection successful")
    else:
        ui.warn("API connection failed - credentials may be invalid")


# ---------------------------------------------------------------------------
# embed database
# ---------------------------------------------------------------------------


def _load_connection_input(
    json_text: str | None, file: Path | None
) -> dict[str, typ.Any] | None:
    if json_text is not None:
        return parse_json_object(json_text, what="--json")
    if file is not None:
        return read_json_file(file, what="connection file")
    return None


@database_app.command
def connect(
    *,
    json_config: typ.Annotated[str | None, Parameter(name="--json")] = None,
    file: Path | None = None,
    skip_test: bool = False,
) -> None:
    """Connect a new database.

    Parameters
    ----------
    json_config
        Connection configuration as a JSON object.
    file
        Path to a JSON file with the connection configuration.
    skip_test
        Create the connection without testing it first.

    """
    context = current_context()
    config, client = context.authenticated_client()
    raw = _load_connection_input(json_config, file)
    if raw is None:
        context.console.heading(f"🔌 Connect to a database [{config.region.display}]")
    with client as api:
        provision_connection(
            api,
            context.console,
            config=raw,
            skip_test=skip_test,
            offer_existing=False,
        )
    context.console.success("Database connected!")


@database_app.command(name="list")
def list_connections() -> None:
    """List database connections."""
    context = current_context()
    _config, client = context.authenticated_client()
    with client as api:
        connections = api.list_connections()
    if not connections:
        context.console.info("No database connections found.")
        context.console.info('Run "embed database connect" to add a connection.')
        return
    render_connections(context.console, connections)


@database_app.command(name="test")
def test_connection(connection_id: str | None = None) -> int:
    """Test a database connection.

    Parameters
    ----------
    connection_id
        Connection to test; chosen from a list when omitted.

    """
    context = current_context()
    _config, client = context.authenticated_client()
    with client as api:
        result = check_connection(api, context.console, connection_id)
    return 0 if result is None or result.success else 1


@database_app.command(name="remove")
def remove_database(connection_id: str | None = None) -> None:
    """Remove a database connection.

    Parameters
    ----------
    connection_id
        Connection to remove; chosen from a list when omitted.

    """
    context = current_context()
    _config, client = context.authenticated_client()
    with client as api:
        remove_connection(api, context.console, connection_id)


# ---------------------------------------------------------------------------
# embed env
# ---------------------------------------------------------------------------


@env_app.command
def create(*, name: str | None = None, default: bool | None = None) -> None:
    """Create a new environment.

    Parameters
    ----------
    name
        Environment name; prompted for when omitted.
    default
        Store the new environment as the default without asking.

    """
    context = current_context()
    config, client = context.authenticated_client()
    context.console.heading(f"🌍 Create a new environment [{config.region.display}]")
    with client as api:
        provision_environment(
            api,
            context.store,
            context.console,
            name=name,
            offer_existing=False,
            make_default=default,
        )
    context.console.success("Environment created!")


@env_app.command(name="list")
def list_environments() -> None:
    """List environments."""
    context = current_context()
    config, client = context.authenticated_client()
    with client as api:
        environments = api.list_environments()
    if not environments:
        context.console.info("No environments found.")
        context.console.info('Run "embed env create" to create an environment.')
        return
    render_environments(context.console, environments, config.default_environment)


@env_app.command(name="set-default")
def set_default(environment_id: str | None = None) -> None:
    """Set the default environment used for token generation.

    Parameters
    ----------
    environment_id
        Environment to use; chosen from a list when omitted.

    """
    context = current_context()
    _config, client = context.authenticated_client()
    with client as api:
        set_default_environment(api, context.store, context.console, environment_id)


@env_app.command(name="remove")
def remove_env(environment_id: str | None = None) -> None:
    """Remove an environment.

    Parameters
    ----------
    environment_id
        Environment to remove; chosen from a list when omitted.

    """
    context = current_context()
    _config, client = context.authenticated_client()
    with client as api:
        remove_environment(api, context.store, context.console, environment_id)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def run_command(
    tokens: cabc.Sequence[str],
    *,
    context: CommandContext,
    debug: bool = False,
) -> int:
    """Dispatch ``tokens`` to a command and map its outcome to an exit code.

    Parameters
    ----------
    tokens
        Arguments after the program name.
    context
        Collaborators made available to the command.
    debug
        Log tracebacks for failures.

    Returns
    -------
    int
        0 on success, cancellation, or a bare ``embed``; 1 for any
        :class:`EmbedError` or unexpected exception; otherwise the
        command's own integer result.

    """
    command, bound, _ignored = app.parse_args(list(tokens))
    reset_token = _CONTEXT.set(context)
    try:
        result = command(*bound.args, **bound.kwargs)
    except ProvisioningCancelled as exc:
        context.console.cancelled(str(exc) or "Operation cancelled")
        return 0
    except EmbedError as exc:
        context.console.error(str(exc))
        if debug:
            log_exception(logger, f"{type(exc).__name__}: {exc}", exc)
        return 1
    except Exception as exc:  # noqa: BLE001
        context.console.error(f"An unexpected error occurred: {exc}")
        if debug:
            log_exception(logger, f"{type(exc).__name__}: {exc}", exc)
        return 1
    finally:
        _CONTEXT.reset(reset_token)

    if isinstance(result, NoSubcommand):
        app.help_print([])
        return 0
    return result if isinstance(result, int) else 0


@app.meta.default
def launcher(
    *tokens: typ.Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    debug: typ.Annotated[
        bool, Parameter(name=["--debug", "-d"], negative="", help="Enable debug output")
    ] = False,
) -> int:
    """Configure logging and the update check, then run the command."""
    try:
        context = CommandContext.from_env()
    except SettingsError as exc:
        RichConsole().error(str(exc))
        return 1

    requested = "DEBUG" if debug else context.settings.log_level
    level, invalid = configure_logging(requested)
    if invalid:
        log_warning(logger, "Invalid EMBED_LOG_LEVEL %r; using %s", requested, level)

    start_background_check(context.settings, context.console.update_notice)
    return run_command(tokens, context=context, debug=debug)


def main(argv: cabc.Sequence[str] | None = None) -> int:
    """Entry point for the ``embed`` console script."""
    return app.meta(None if argv is None else list(argv))

