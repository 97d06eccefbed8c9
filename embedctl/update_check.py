"""Background check for newer published releases.

The check is fire-and-forget: it runs on a daemon thread, at most once per
:data:`CHECK_INTERVAL`, and every failure is logged at DEBUG level and
recorded as a bare ``lastCheck`` so the next attempt is deferred. It never
blocks or fails the command that started it.

State lives beside the config file (``.update-check``) as
``{lastCheck, lastVersion?, available?}`` with ``lastCheck`` in epoch
milliseconds. The state file is only written when the config directory
already exists; the check never creates it.
"""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import re
import threading
import time
import typing as typ
from importlib import metadata

import httpx
import msgspec

from embedctl.errors import EmbedError
from embedctl.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    from pathlib import Path

    from embedctl.config.settings import CLISettings

logger = get_logger(__name__)

DISTRIBUTION_NAME = "embedctl"
RELEASES_URL = (
    "https://api.github.com/repos/embeddable-hq/embeddable-cli/releases/latest"
)
CHECK_INTERVAL = dt.timedelta(hours=24)
DEFAULT_FETCH_TIMEOUT_S = 5.0

_VERSION_PATTERN = re.compile(r"^v?(\d+(?:\.\d+)*)")

UpdateNotifier = cabc.Callable[[str, str], None]
"""Called with ``(latest, current)`` when a newer release is known."""


class UpdateCheckError(EmbedError):
    """Raised when the latest release cannot be determined."""

    @classmethod
    def request_failed(cls, detail: object) -> UpdateCheckError:
        """Return an error for a failed or non-2xx release lookup."""
        return cls(f"Failed to check for updates: {detail}")

    @classmethod
    def invalid_version(cls, value: str) -> UpdateCheckError:
        """Return an error for a tag that is not a dotted version."""
        return cls(f"Unrecognised release version '{value}'")


class UpdateCheckState(
    msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True
):
    """Persisted outcome of the most recent check."""

    last_check: int
    last_version: str | None = None
    available: bool | None = None


class Release(msgspec.Struct, kw_only=True):
    """Subset of the release-lookup payload the check reads."""

    tag_name: str
    body: str | None = None
    html_url: str | None = None

    @property
    def version(self) -> str:
        """Return the tag without its leading ``v``."""
        return self.tag_name.removeprefix("v")


def installed_version() -> str:
    """Return the installed distribution version, or ``0.0.0`` from a checkout."""
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0"


def parse_version(value: str) -> tuple[int, ...]:
    """Return the numeric release core of ``value`` as a comparable tuple.

    Pre-release and build suffixes are ignored, so ``v1.4.0-rc.1`` parses
    as ``(1, 4, 0)``.

    Raises
    ------
    UpdateCheckError
        If ``value`` does not start with a dotted number.

    """
    match = _VERSION_PATTERN.match(value.strip())
    if match is None:
        raise UpdateCheckError.invalid_version(value)
    parts = [int(part) for part in match.group(1).split(".")]
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def is_newer(candidate: str, current: str) -> bool:
    """Return True when ``candidate`` is a strictly later release than ``current``."""
    return parse_version(candidate) > parse_version(current)


def fetch_latest_release(
    *,
    http_client: httpx.Client | None = None,
    timeout_s: float = DEFAULT_FETCH_TIMEOUT_S,
) -> Release:
    """Fetch the latest published release.

    Raises
    ------
    UpdateCheckError
        On transport failures, non-2xx responses and undecodable payloads.

    """
    owns_client = http_client is None
    client = http_client or httpx.Client(timeout=timeout_s)
    try:
        response = client.get(
            RELEASES_URL,
            headers={"Accept": "application/vnd.github.v3+json"},
        )
    except httpx.HTTPError as exc:
        raise UpdateCheckError.request_failed(exc) from exc
    finally:
        if owns_client:
            client.close()

    if not response.is_success:
        raise UpdateCheckError.request_failed(f"HTTP {response.status_code}")
    try:
        return msgspec.json.decode(response.content, type=Release)
    except msgspec.DecodeError as exc:
        raise UpdateCheckError.request_failed(exc) from exc


def _now_ms() -> int:
    return int(time.time() * 1000)


class UpdateChecker:
    """Decide whether a check is due, run it and persist the outcome.

    Parameters
    ----------
    state_path
        Location of the ``.update-check`` state file.
    current_version
        Version of the running tool.
    notify
        Receives ``(latest, current)`` whenever a newer release is known,
        either freshly fetched or remembered from an earlier check.
    fetch
        Returns the latest release; defaults to :func:`fetch_latest_release`.
    clock
        Returns "now" in epoch milliseconds.

    """

    def __init__(
        self,
        state_path: Path,
        current_version: str,
        *,
        notify: UpdateNotifier,
        fetch: cabc.Callable[[], Release] | None = None,
        clock: cabc.Callable[[], int] = _now_ms,
    ) -> None:
        """Bind the checker to its state file and collaborators."""
        self._state_path = state_path
        self._current = current_version
        self._notify = notify
        self._fetch = fetch or fetch_latest_release
        self._clock = clock

    def load_state(self) -> UpdateCheckState | None:
        """Return the stored state, or ``None`` when absent or unreadable."""
        try:
            return msgspec.json.decode(
                self._state_path.read_bytes(), type=UpdateCheckState
            )
        except FileNotFoundError:
            return None
        except (OSError, msgspec.DecodeError) as exc:
            log_debug(
                logger, "Ignoring update-check state %s: %s", self._state_path, exc
            )
            return None

    def save_state(self, state: UpdateCheckState) -> bool:
        """Write ``state`` if the config directory exists; return whether it did."""
        if not self._state_path.parent.is_dir():
            return False
        try:
            self._state_path.write_bytes(
                msgspec.json.format(msgspec.json.encode(state), indent=2)
            )
        except OSError as exc:
            log_debug(logger, "Could not save update-check state: %s", exc)
            return False
        return True

    def is_due(self) -> bool:
        """Return True when no check has run within :data:`CHECK_INTERVAL`.

        While a recent check is still fresh, a remembered newer release is
        reported through ``notify`` instead.
        """
        state = self.load_state()
        if state is None:
            return True
        interval_ms = int(CHECK_INTERVAL.total_seconds() * 1000)
        if self._clock() - state.last_check >= interval_ms:
            return True
        if state.available and state.last_version:
            self._notify(state.last_version, self._current)
        return False

    def run(self) -> UpdateCheckState:
        """Fetch the latest release, record the outcome and notify if newer."""
        now = self._clock()
        try:
            latest = self._fetch().version
            available = is_newer(latest, self._current)
        except UpdateCheckError as exc:
            log_debug(logger, "Update check failed: %s", exc)
            state = UpdateCheckState(last_check=now)
        else:
            state = UpdateCheckState(
                last_check=now,
                last_version=latest if available else None,
                available=available,
            )
            if available:
                self._notify(latest, self._current)
        self.save_state(state)
        return state

    def run_if_due(self) -> UpdateCheckState | None:
        """Run :meth:`run` when a check is due; otherwise return ``None``."""
        if not self.is_due():
            return None
        return self.run()


def start_background_check(
    settings: CLISettings,
    notify: UpdateNotifier,
    *,
    current_version: str | None = None,
) -> threading.Thread | None:
    """Start the release check on a daemon thread unless it is disabled.

    Returns
    -------
    threading.Thread | None
        The started thread, or ``None`` when ``EMBED_NO_UPDATE_CHECK=1``.

    """
    if not settings.update_check_enabled:
        return None
    checker = UpdateChecker(
        settings.update_check_path,
        current_version or installed_version(),
        notify=notify,
    )
    thread = threading.Thread(
        target=checker.run_if_due, name="embed-update-check", daemon=True
    )
    thread.start()
    return thread


__all__ = [
    "CHECK_INTERVAL",
    "RELEASES_URL",
    "Release",
    "UpdateCheckError",
    "UpdateCheckState",
    "UpdateChecker",
    "fetch_latest_release",
    "installed_version",
    "is_newer",
    "parse_version",
    "start_background_check",
]
