"""Per-invocation wiring of settings, store, console and API client."""

from __future__ import annotations

import dataclasses
import typing as typ

from embedctl.api.client import EmbeddableAPIClient
from embedctl.config.settings import CLISettings
from embedctl.config.store import ConfigStore

from .console import RichConsole

if typ.TYPE_CHECKING:
    import httpx

    from embedctl.config.models import Config


@dataclasses.dataclass(frozen=True, slots=True)
class CommandContext:
    """Collaborators every command receives explicitly.

    Attributes
    ----------
    settings
        Settings read from ``EMBED_*`` environment variables.
    store
        Store for the credential record.
    console
        Prompt and rendering front end.
    http_client
        Optional shared ``httpx.Client``; when ``None`` each API client owns
        its own.

    """

    settings: CLISettings
    store: ConfigStore
    console: RichConsole
    http_client: httpx.Client | None = None

    @classmethod
    def from_env(cls) -> CommandContext:
        """Build the context for a normal CLI run."""
        settings = CLISettings.from_env()
        return cls(
            settings=settings,
            store=ConfigStore.from_settings(settings),
            console=RichConsole(),
        )

    def client_for(self, config: Config) -> EmbeddableAPIClient:
        """Return an API client bound to ``config``'s credential and region."""
        return EmbeddableAPIClient(
            config.api_key,
            config.region,
            timeout_s=self.settings.api_timeout_s,
            http_client=self.http_client,
        )

    def authenticated_client(self) -> tuple[Config, EmbeddableAPIClient]:
        """Return the stored credential with a client bound to it.

        Raises
        ------
        ConfigError
            If no credential has been stored yet.

        """
        config = self.store.require()
        return config, self.client_for(config)


__all__ = ["CommandContext"]
