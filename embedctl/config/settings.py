"""Runtime settings sourced from ``EMBED_*`` environment variables."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from embedctl.config.errors import SettingsError
from embedctl.logging import DEFAULT_LOG_LEVEL

_DEFAULT_API_TIMEOUT_S = 30.0
_CONFIG_FILENAME = "config.json"
_UPDATE_CHECK_FILENAME = ".update-check"


def _default_config_dir() -> Path:
    return Path.home() / ".embeddable"


@dataclasses.dataclass(frozen=True, slots=True)
class CLISettings:
    """Process-wide settings for a single CLI invocation.

    Attributes
    ----------
    config_dir
        Directory holding the config file and the update-check state file.
    api_timeout_s
        Timeout applied to every remote API request.
    log_level
        Raw log level requested through the environment.
    update_check_enabled
        Whether the background release check may run.

    """

    config_dir: Path = dataclasses.field(default_factory=_default_config_dir)
    api_timeout_s: float = _DEFAULT_API_TIMEOUT_S
    log_level: str = DEFAULT_LOG_LEVEL
    update_check_enabled: bool = True

    @property
    def config_path(self) -> Path:
        """Return the location of the JSON config file."""
        return self.config_dir / _CONFIG_FILENAME

    @property
    def update_check_path(self) -> Path:
        """Return the location of the update-check state file."""
        return self.config_dir / _UPDATE_CHECK_FILENAME

    @staticmethod
    def _parse_timeout_from_env() -> float:
        """Parse and validate the API timeout from the environment.

        Raises
        ------
        SettingsError
            If the value is not a positive number.

        """
        raw_timeout = os.environ.get("EMBED_API_TIMEOUT")
        if raw_timeout is None:
            return _DEFAULT_API_TIMEOUT_S

        try:
            timeout = float(raw_timeout)
        except ValueError as exc:
            raise SettingsError.invalid_timeout(raw_timeout) from exc

        if timeout <= 0:
            raise SettingsError.invalid_timeout(raw_timeout)

        return timeout

    @classmethod
    def from_env(cls) -> CLISettings:
        """Build settings from environment variables.

        Reads the following environment variables:

        - ``EMBED_CONFIG_DIR``: Optional config directory override
        - ``EMBED_API_TIMEOUT``: Optional request timeout in seconds
        - ``EMBED_LOG_LEVEL``: Optional diagnostic log level
        - ``EMBED_NO_UPDATE_CHECK``: ``1`` disables the release check

        Returns
        -------
        CLISettings
            Settings instance with values from the environment.

        Raises
        ------
        SettingsError
            If the timeout value is invalid.

        """
        raw_dir = os.environ.get("EMBED_CONFIG_DIR", "").strip()
        config_dir = Path(raw_dir).expanduser() if raw_dir else _default_config_dir()

        return cls(
            config_dir=config_dir,
            api_timeout_s=cls._parse_timeout_from_env(),
            log_level=os.environ.get("EMBED_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            update_check_enabled=os.environ.get("EMBED_NO_UPDATE_CHECK") != "1",
        )
