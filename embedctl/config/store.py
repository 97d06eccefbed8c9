"""File-backed store for the single local configuration record."""

from __future__ import annotations

from pathlib import Path

import msgspec

from embedctl.config.errors import ConfigError
from embedctl.config.models import Config
from embedctl.config.settings import CLISettings
from embedctl.logging import get_logger, log_warning

logger = get_logger(__name__)


class ConfigStore:
    """Persist and retrieve the :class:`Config` record at an explicit path.

    The file is read and written without locking; two CLI invocations
    racing on an update may lose one of the writes.

    Parameters
    ----------
    path
        Location of the JSON config file. Its parent directory is created
        lazily by the first :meth:`save`.

    """

    def __init__(self, path: Path | str) -> None:
        """Bind the store to a config file location."""
        self._path = Path(path)

    @classmethod
    def from_settings(cls, settings: CLISettings) -> ConfigStore:
        """Build the store for the config path named by ``settings``."""
        return cls(settings.config_path)

    @classmethod
    def default(cls) -> ConfigStore:
        """Build the store for the location configured by ``EMBED_*`` settings."""
        return cls.from_settings(CLISettings.from_env())

    @property
    def path(self) -> Path:
        """Return the config file location."""
        return self._path

    def exists(self) -> bool:
        """Return True when a config file is present on disk."""
        return self._path.is_file()

    def get(self) -> Config | None:
        """Return the stored configuration, or ``None`` when unavailable.

        A missing file yields ``None`` silently. An unreadable or malformed
        file is logged and also yields ``None`` so that command execution
        continues as if the user had never authenticated.
        """
        if not self.exists():
            return None

        try:
            raw = self._path.read_bytes()
        except OSError as exc:
            log_warning(logger, "Error reading config file %s: %s", self._path, exc)
            return None

        try:
            return msgspec.json.decode(raw, type=Config)
        except msgspec.DecodeError as exc:
            # ValidationError subclasses DecodeError, so schema mismatches land here
            log_warning(logger, "Error reading config file %s: %s", self._path, exc)
            return None

    def save(self, config: Config) -> None:
        """Write ``config`` to disk, creating the directory when needed.

        Raises
        ------
        ConfigError
            If the directory or file cannot be written.

        """
        payload = msgspec.json.format(msgspec.json.encode(config), indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(payload)
        except OSError as exc:
            raise ConfigError.save_failed(self._path, exc) from exc

    def update(self, **changes: object) -> Config:
        """Shallow-merge ``changes`` over the stored record and save it.

        Each keyword replaces the field of the same name wholesale.

        Returns
        -------
        Config
            The merged configuration that was written.

        Raises
        ------
        ConfigError
            If no configuration exists yet.

        """
        current = self.get()
        if current is None:
            raise ConfigError.not_authenticated()

        merged = msgspec.structs.replace(current, **changes)
        self.save(merged)
        return merged

    def require(self) -> Config:
        """Return the stored configuration or fail with a login hint."""
        config = self.get()
        if config is None:
            raise ConfigError.not_authenticated()
        return config

    def delete(self) -> None:
        """Remove the config file; a missing file is not an error."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise ConfigError.delete_failed(self._path, exc) from exc
