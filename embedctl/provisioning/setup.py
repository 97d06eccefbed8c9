"""The ``embed setup`` wizard: every provisioning step in dependency order."""

from __future__ import annotations

import dataclasses
import typing as typ

from embedctl.logging import get_logger, log_info

from .errors import NoEmbeddablesError
from .flows import (
    TokenRequest,
    authenticate,
    issue_security_token,
    provision_connection,
    provision_environment,
)

if typ.TYPE_CHECKING:
    from embedctl.api.client import EmbeddableAPIClient
    from embedctl.config.models import Region
    from embedctl.config.store import ConfigStore

    from .flows import ClientFactory, TokenOutcome
    from .interaction import Interaction

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class SetupSummary:
    """What a completed wizard run configured."""

    region: Region
    connection_id: str
    connection_created: bool
    environment_id: str
    environment_created: bool
    default_environment: str | None
    token: TokenOutcome | None = None


def run_setup(
    store: ConfigStore,
    ui: Interaction,
    client_factory: ClientFactory,
    *,
    skip_token: bool = False,
) -> SetupSummary:
    """Walk the user from credential to (optionally) a first security token.

    Each step is skipped when its precondition already holds: a stored
    credential is reused, and existing connections and environments are
    offered before new ones are created. A cancelled prompt aborts the
    wizard; anything created by earlier steps remains.

    Parameters
    ----------
    store
        Credential and default-environment storage.
    ui
        Prompt implementation.
    client_factory
        Builds the API client once the credential is known.
    skip_token
        Do not offer to issue a security token at the end.

    Returns
    -------
    SetupSummary
        The resources the run selected or created.

    """
    ui.note("Step 1: Authentication", ["Checking for a stored API key."])
    auth = authenticate(store, ui, client_factory)
    if not auth.created:
        ui.success(f"Using existing credential for region {auth.config.region.display}")

    with client_factory(auth.config) as api:
        ui.note(
            "Step 2: Database Connection",
            ["Connect Embeddable to the database your models query."],
        )
        connection = provision_connection(api, ui)

        ui.note(
            "Step 3: Environment",
            [
                "Now we'll map data sources to your database connection.",
                "Data sources are logical names used in your Embeddable models.",
            ],
        )
        environment = provision_environment(
            api, store, ui, connection_id=connection.identifier
        )

        token: TokenOutcome | None = None
        if not skip_token:
            token = _offer_token(api, store, ui, environment.identifier)

    config = store.require()
    log_info(
        logger,
        "Setup finished: connection=%s environment=%s",
        connection.identifier,
        environment.identifier,
    )
    return SetupSummary(
        region=config.region,
        connection_id=connection.identifier,
        connection_created=connection.created,
        environment_id=environment.identifier,
        environment_created=environment.created,
        default_environment=config.default_environment,
        token=token,
    )


def _offer_token(
    api: EmbeddableAPIClient,
    store: ConfigStore,
    ui: Interaction,
    environment_id: str,
) -> TokenOutcome | None:
    ui.note(
        "Step 4: Security Token (Optional)",
        [
            "Security tokens enable secure dashboard embedding with:",
            "• Row-level security",
            "• User-specific data filtering",
            "• Time-limited access",
        ],
    )
    if not ui.confirm(
        "Would you like to generate a security token now?", default=False
    ):
        return None
    try:
        return issue_security_token(
            api,
            store.require(),
            ui,
            TokenRequest(environment_id=environment_id),
        )
    except NoEmbeddablesError:
        ui.warn("No embeddables found. Create one in the Embeddable platform first.")
        return None


__all__ = ["SetupSummary", "run_setup"]
