"""Unit tests for the background release check."""

from __future__ import annotations

import typing as typ

import httpx
import msgspec
import pytest

from embedctl.config.settings import CLISettings
from embedctl.update_check import (
    CHECK_INTERVAL,
    RELEASES_URL,
    Release,
    UpdateChecker,
    UpdateCheckError,
    UpdateCheckState,
    fetch_latest_release,
    is_newer,
    parse_version,
    start_background_check,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

_NOW_MS = 1_800_000_000_000
_DAY_MS = int(CHECK_INTERVAL.total_seconds() * 1000)


class _Recorder:
    """Collects update notifications."""

    def __init__(self) -> None:
        self.notices: list[tuple[str, str]] = []

    def __call__(self, latest: str, current: str) -> None:
        self.notices.append((latest, current))


def _checker(
    state_path: Path,
    recorder: _Recorder,
    *,
    tag: str = "v1.2.0",
    current: str = "1.1.0",
) -> UpdateChecker:
    return UpdateChecker(
        state_path,
        current,
        notify=recorder,
        fetch=lambda: Release(tag_name=tag),
        clock=lambda: _NOW_MS,
    )


def _failing_fetch() -> Release:
    raise UpdateCheckError.request_failed("HTTP 503")


class TestVersions:
    """Dotted-version comparison."""

    @pytest.mark.parametrize(
        ("value", "parsed"),
        [
            ("1.4.0", (1, 4)),
            ("v2.0", (2,)),
            ("1.4.0-rc.1", (1, 4)),
            ("10.0.3", (10, 0, 3)),
        ],
    )
    def test_parse_version(self, value: str, parsed: tuple[int, ...]) -> None:
        """Prefixes, suffixes and trailing zeros do not affect ordering."""
        assert parse_version(value) == parsed

    def test_unparseable_version(self) -> None:
        """Tags without a number are rejected."""
        with pytest.raises(UpdateCheckError):
            parse_version("latest")

    @pytest.mark.parametrize(
        ("candidate", "current", "newer"),
        [
            ("1.10.0", "1.9.9", True),
            ("1.2", "1.2.0", False),
            ("1.2.0", "1.3.0", False),
        ],
    )
    def test_is_newer(self, candidate: str, current: str, newer: bool) -> None:
        """Comparison is numeric per component."""
        assert is_newer(candidate, current) is newer


class TestUpdateChecker:
    """Scheduling, persistence and notification."""

    def test_first_run_is_due_and_records_newer_release(self, tmp_path: Path) -> None:
        """A missing state file means a check is due."""
        recorder = _Recorder()
        checker = _checker(tmp_path / ".update-check", recorder)

        state = checker.run_if_due()

        assert state == UpdateCheckState(
            last_check=_NOW_MS, last_version="1.2.0", available=True
        )
        assert recorder.notices == [("1.2.0", "1.1.0")]
        stored = msgspec.json.decode((tmp_path / ".update-check").read_bytes())
        assert stored == {
            "lastCheck": _NOW_MS,
            "lastVersion": "1.2.0",
            "available": True,
        }

    def test_same_version_is_not_announced(self, tmp_path: Path) -> None:
        """An up-to-date install records no available release."""
        recorder = _Recorder()
        checker = _checker(tmp_path / ".update-check", recorder, tag="v1.1.0")

        state = checker.run()

        assert state.available is False
        assert state.last_version is None
        assert recorder.notices == []

    def test_recent_check_replays_cached_notice(self, tmp_path: Path) -> None:
        """Within the interval the remembered release is announced without fetching."""
        path = tmp_path / ".update-check"
        path.write_bytes(
            msgspec.json.encode(
                UpdateCheckState(
                    last_check=_NOW_MS - _DAY_MS + 1,
                    last_version="1.5.0",
                    available=True,
                )
            )
        )
        recorder = _Recorder()

        def fetch() -> Release:
            pytest.fail("fetch must not run while the last check is fresh")

        checker = UpdateChecker(
            path, "1.1.0", notify=recorder, fetch=fetch, clock=lambda: _NOW_MS
        )

        assert checker.run_if_due() is None
        assert recorder.notices == [("1.5.0", "1.1.0")]

    def test_stale_check_is_due(self, tmp_path: Path) -> None:
        """After the interval a new check runs."""
        path = tmp_path / ".update-check"
        stale = UpdateCheckState(last_check=_NOW_MS - _DAY_MS)
        path.write_bytes(msgspec.json.encode(stale))

        assert _checker(path, _Recorder()).is_due() is True

    def test_failure_records_bare_last_check(self, tmp_path: Path) -> None:
        """A failed lookup defers the next attempt without other state."""
        path = tmp_path / ".update-check"
        checker = UpdateChecker(
            path,
            "1.1.0",
            notify=_Recorder(),
            fetch=_failing_fetch,
            clock=lambda: _NOW_MS,
        )

        state = checker.run()

        assert state == UpdateCheckState(last_check=_NOW_MS)
        assert msgspec.json.decode(path.read_bytes()) == {"lastCheck": _NOW_MS}

    def test_state_not_written_without_config_dir(self, tmp_path: Path) -> None:
        """The check never creates the config directory."""
        path = tmp_path / "missing" / ".update-check"

        _checker(path, _Recorder()).run()

        assert not path.parent.exists()

    def test_corrupt_state_reads_as_missing(self, tmp_path: Path) -> None:
        """An unreadable state file makes a check due."""
        path = tmp_path / ".update-check"
        path.write_text("{", encoding="utf-8")

        assert _checker(path, _Recorder()).load_state() is None


class TestFetchLatestRelease:
    """Release lookup over HTTP."""

    def test_decodes_release(self) -> None:
        """The tag name is read from the release payload."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"tag_name": "v1.3.0", "html_url": "https://example.test/r"}
            )

        client = httpx.Client(transport=httpx.MockTransport(handler))

        release = fetch_latest_release(http_client=client)

        assert release.version == "1.3.0"
        assert str(seen[0].url) == RELEASES_URL

    def test_http_error_status(self) -> None:
        """A non-2xx status is a check error."""
        client = httpx.Client(
            transport=httpx.MockTransport(lambda _request: httpx.Response(403))
        )

        with pytest.raises(UpdateCheckError, match="HTTP 403"):
            fetch_latest_release(http_client=client)

    def test_transport_error(self) -> None:
        """Network failures are check errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            msg = "offline"
            raise httpx.ConnectError(msg, request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(UpdateCheckError, match="offline"):
            fetch_latest_release(http_client=client)


def test_background_check_disabled(tmp_path: Path) -> None:
    """Disabled settings start no thread."""
    settings = CLISettings(config_dir=tmp_path, update_check_enabled=False)

    assert start_background_check(settings, _Recorder()) is None


def test_background_check_runs_on_daemon_thread(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Enabled settings start a daemon thread that records state."""
    monkeypatch.setattr(
        "embedctl.update_check.fetch_latest_release",
        lambda: Release(tag_name="v0.0.1"),
    )
    settings = CLISettings(config_dir=tmp_path)

    thread = start_background_check(settings, _Recorder(), current_version="0.0.1")

    assert thread is not None
    assert thread.daemon is True
    thread.join(timeout=5)
    assert settings.update_check_path.exists()
