"""Command-level tests for the ``embed`` CLI."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import io
import typing as typ

import msgspec
import pytest
from rich.console import Console

from embedctl.cli import CommandContext, RichConsole, main, run_command
from embedctl.config.models import Config, Region
from embedctl.config.settings import CLISettings
from embedctl.logging import normalize_log_level
from embedctl.provisioning import ProvisioningCancelled
from embedctl.provisioning.interaction import Choice
from embedctl.update_check import Release
from tests.conftest import TEST_API_KEY
from tests.helpers.fake_logger import FakeLogger

if typ.TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from embedctl.config.store import ConfigStore
    from tests.helpers.fake_api import FakeEmbeddableTransport

_POSTGRES = {
    "name": "warehouse",
    "type": "postgres",
    "host": "db.internal",
    "database": "analytics",
    "username": "reader",
    "password": "secret",
}


@dataclasses.dataclass(frozen=True, slots=True)
class CLIResult:
    """Exit code and captured output of one command."""

    exit_code: int
    stdout: str
    stderr: str


RunCLI = cabc.Callable[..., CLIResult]


@pytest.fixture
def run_cli(config_store: ConfigStore, http_client: httpx.Client) -> RunCLI:
    """Return a runner that dispatches tokens against the in-memory API."""

    def _run(*tokens: str, debug: bool = False) -> CLIResult:
        out, err = io.StringIO(), io.StringIO()
        console = RichConsole(
            Console(file=out, width=200),
            err_console=Console(file=err, width=200),
        )
        context = CommandContext(
            settings=CLISettings(
                config_dir=config_store.path.parent, update_check_enabled=False
            ),
            store=config_store,
            console=console,
            http_client=http_client,
        )
        code = run_command(tokens, context=context, debug=debug)
        return CLIResult(code, out.getvalue(), err.getvalue())

    return _run


def _answer_prompts(
    monkeypatch: pytest.MonkeyPatch, *answers: str | BaseException
) -> None:
    """Feed ``answers`` to rich prompts in order."""
    queue = list(answers)

    def fake_input(*_args: object) -> str:
        answer = queue.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer

    monkeypatch.setattr("builtins.input", fake_input)


class TestAuthCommands:
    """embed auth login/logout/status."""

    def test_login_with_flags_saves_config(
        self, run_cli: RunCLI, config_store: ConfigStore
    ) -> None:
        """Non-interactive login validates and stores the key."""
        result = run_cli("auth", "login", "--api-key", TEST_API_KEY, "--region", "EU")

        assert result.exit_code == 0, result.stderr
        assert "Configuration saved successfully!" in result.stdout
        assert config_store.require() == Config(api_key=TEST_API_KEY, region=Region.EU)

    def test_login_with_malformed_key_fails(
        self,
        run_cli: RunCLI,
        config_store: ConfigStore,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """A short key is rejected locally with exit status 1."""
        result = run_cli("auth", "login", "--api-key", "short", "--region", "US")

        assert result.exit_code == 1
        assert "Invalid API key format" in result.stderr
        assert fake_api.calls == []
        assert config_store.exists() is False

    def test_login_with_rejected_key_fails(
        self,
        run_cli: RunCLI,
        config_store: ConfigStore,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """A key the API refuses is not stored."""
        fake_api.valid_key = False

        result = run_cli("auth", "login", "--api-key", TEST_API_KEY, "--region", "US")

        assert result.exit_code == 1
        assert "Invalid API key. Please check your key and try again." in result.stderr
        assert config_store.exists() is False

    def test_logout_yes(
        self, run_cli: RunCLI, config_store: ConfigStore, stored_config: Config
    ) -> None:
        """--yes removes the config without asking."""
        result = run_cli("auth", "logout", "--yes")

        assert result.exit_code == 0
        assert config_store.exists() is False

    def test_logout_cancelled_by_ctrl_c(
        self,
        run_cli: RunCLI,
        config_store: ConfigStore,
        stored_config: Config,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Interrupting the confirmation exits cleanly and keeps the config."""
        _answer_prompts(monkeypatch, KeyboardInterrupt())

        result = run_cli("auth", "logout")

        assert result.exit_code == 0
        assert "Operation cancelled" in result.stdout
        assert config_store.exists() is True

    def test_status_reports_valid_key(
        self, run_cli: RunCLI, stored_config: Config
    ) -> None:
        """Status shows the masked key and checks it against the API."""
        result = run_cli("auth", "status")

        assert result.exit_code == 0
        assert stored_config.masked_api_key in result.stdout
        assert TEST_API_KEY not in result.stdout
        assert "API connection successful" in result.stdout

    def test_status_without_config(self, run_cli: RunCLI) -> None:
        """Status without a config points at login."""
        result = run_cli("auth", "status")

        assert result.exit_code == 0
        assert "Not authenticated" in result.stdout


class TestTopLevelCommands:
    """embed config/list/token/version."""

    def test_config_shows_masked_key(
        self, run_cli: RunCLI, stored_config: Config
    ) -> None:
        """The stored config is shown with the key masked."""
        result = run_cli("config")

        assert result.exit_code == 0
        assert "Region: EU" in result.stdout
        assert stored_config.masked_api_key in result.stdout

    def test_config_without_file(self, run_cli: RunCLI) -> None:
        """A missing config is a hint, not an error."""
        result = run_cli("config")

        assert result.exit_code == 0
        assert "No configuration found" in result.stdout

    def test_list_requires_authentication(self, run_cli: RunCLI) -> None:
        """Commands that call the API need a stored credential."""
        result = run_cli("list")

        assert result.exit_code == 1
        assert "No configuration found" in result.stderr

    def test_list_renders_embeddables(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """Embeddables are listed with their publication state."""
        fake_api.embeddables.extend(
            [
                {
                    "id": "emb-1",
                    "name": "Sales",
                    "lastPublishedAt": "2026-05-04T10:30:00Z",
                },
                {"id": "emb-2", "name": "Ops", "lastPublishedAt": {}},
            ]
        )

        result = run_cli("list")

        assert result.exit_code == 0
        assert "2026-05-04 10:30" in result.stdout
        assert "Not published" in result.stdout
        assert "Found 2 embeddable(s)" in result.stdout

    def test_list_tolerates_out_of_range_timestamp(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """An epoch value beyond the calendar reads as not published."""
        fake_api.embeddables.append(
            {"id": "emb-1", "name": "Sales", "lastPublishedAt": 1e16}
        )

        result = run_cli("list")

        assert result.exit_code == 0, result.stderr
        assert "Not published" in result.stdout

    def test_token_with_all_options_does_not_prompt(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """A fully specified token request prints the token and an example."""
        result = run_cli(
            "token",
            "emb-1",
            "--env",
            "env-2",
            "--expires",
            "1h",
            "--user-id",
            "u-1",
            "--filters",
            '{"org_id": 1}',
        )

        assert result.exit_code == 0, result.stderr
        assert "tok_abc123" in result.stdout
        assert "<em-beddable" in result.stdout
        assert fake_api.last("POST", "/security-token").body == {
            "embeddableId": "emb-1",
            "expiryInSeconds": 3600,
            "securityContext": {"org_id": 1},
            "user": {"id": "u-1"},
            "environment": "env-2",
        }

    def test_token_with_invalid_filters(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """Malformed filters fail before any request."""
        result = run_cli("token", "emb-1", "--filters", "{org_id")

        assert result.exit_code == 1
        assert "Invalid JSON format in --filters" in result.stderr
        assert fake_api.calls == []

    def test_version(self, run_cli: RunCLI) -> None:
        """The installed version is printed."""
        result = run_cli("version")

        assert result.exit_code == 0
        assert "Embeddable CLI v" in result.stdout

    def test_version_check_reports_newer_release(
        self, run_cli: RunCLI, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """--check looks up the latest release."""
        monkeypatch.setattr(
            "embedctl.cli.commands.fetch_latest_release",
            lambda: Release(tag_name="v99.0.0"),
        )

        result = run_cli("version", "--check")

        assert result.exit_code == 0
        assert "New version available: v99.0.0" in result.stdout

    def test_bare_invocation_exits_cleanly(self, run_cli: RunCLI) -> None:
        """Running without a command prints help and succeeds."""
        assert run_cli().exit_code == 0


class TestDatabaseCommands:
    """embed database connect/list/test/remove."""

    def test_connect_from_json(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """--json input is tested and created without prompts."""
        config = msgspec.json.encode(_POSTGRES).decode()

        result = run_cli("database", "connect", "--json", config)

        assert result.exit_code == 0, result.stderr
        assert fake_api.calls == [
            ("POST", "/connections/test"),
            ("POST", "/connections"),
        ]
        assert "Database connected!" in result.stdout

    def test_connect_rejects_unsupported_type(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """Validation errors exit 1 before any request."""
        config = msgspec.json.encode({**_POSTGRES, "type": "oracle"}).decode()

        result = run_cli("database", "connect", "--json", config)

        assert result.exit_code == 1
        assert "Connection type must be one of" in result.stderr
        assert fake_api.calls == []

    def test_connect_from_file_skipping_test(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
        tmp_path: Path,
    ) -> None:
        """--file input with --skip-test creates directly."""
        path = tmp_path / "conn.json"
        path.write_bytes(msgspec.json.encode(_POSTGRES))

        result = run_cli("database", "connect", "--file", str(path), "--skip-test")

        assert result.exit_code == 0, result.stderr
        assert fake_api.calls == [("POST", "/connections")]

    def test_list_connections(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """Connections are tabulated with host and database."""
        fake_api.connections.append(
            {
                "id": "conn-9",
                "name": "warehouse",
                "type": "postgres",
                "credentials": {"host": "db.internal", "database": "analytics"},
            }
        )

        result = run_cli("database", "list")

        assert result.exit_code == 0
        assert "db.internal" in result.stdout
        assert "Found 1 connection(s)" in result.stdout

    def test_failed_test_exits_non_zero(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """A failing connection test prints guidance and exits 1."""
        fake_api.connection_test = (400, {"message": "connect ECONNREFUSED"})

        result = run_cli("database", "test", "conn-9")

        assert result.exit_code == 1
        assert "Connection test failed: connect ECONNREFUSED" in result.stdout
        assert "Connection refused" in result.stdout

    def test_remove_after_confirmation(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Answering yes deletes the connection."""
        fake_api.connections.append({"id": "conn-9", "name": "warehouse"})
        _answer_prompts(monkeypatch, "y")

        result = run_cli("database", "remove", "conn-9")

        assert result.exit_code == 0
        assert fake_api.connections == []


class TestEnvCommands:
    """embed env list/set-default/remove."""

    def test_list_marks_default(
        self,
        run_cli: RunCLI,
        config_store: ConfigStore,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
    ) -> None:
        """The stored default is marked in the listing."""
        fake_api.environments.append(
            {
                "id": "env-4",
                "name": "staging",
                "datasourceMappings": [
                    {"dataSource": "main_db", "connectionId": "conn-9"}
                ],
            }
        )
        config_store.update(default_environment="env-4")

        result = run_cli("env", "list")

        assert result.exit_code == 0
        assert "main_db → conn-9" in result.stdout
        assert "✓" in result.stdout

    def test_set_default(
        self, run_cli: RunCLI, config_store: ConfigStore, stored_config: Config
    ) -> None:
        """A named environment becomes the default."""
        result = run_cli("env", "set-default", "env-4")

        assert result.exit_code == 0
        assert config_store.require().default_environment == "env-4"

    def test_remove_declined(
        self,
        run_cli: RunCLI,
        stored_config: Config,
        fake_api: FakeEmbeddableTransport,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Declining removal is a clean cancellation."""
        _answer_prompts(monkeypatch, "n")

        result = run_cli("env", "remove", "env-4")

        assert result.exit_code == 0
        assert "Removal cancelled" in result.stdout
        assert fake_api.calls == []


@pytest.fixture
def command_logger(monkeypatch: pytest.MonkeyPatch) -> FakeLogger:
    """Route the command module's diagnostics to a recording logger."""
    fake = FakeLogger()
    monkeypatch.setattr("embedctl.cli.commands.logger", fake)
    return fake


def _fail_with_runtime_error() -> str:
    msg = "boom"
    raise RuntimeError(msg)


class TestCommandBoundary:
    """Exit codes for failures that are not EmbedError."""

    def test_unexpected_error_is_reported_without_traceback(
        self,
        run_cli: RunCLI,
        monkeypatch: pytest.MonkeyPatch,
        command_logger: FakeLogger,
    ) -> None:
        """Any exception becomes a one-line message and exit status 1."""
        monkeypatch.setattr(
            "embedctl.cli.commands.installed_version", _fail_with_runtime_error
        )

        result = run_cli("version")

        assert result.exit_code == 1
        assert "An unexpected error occurred: boom" in result.stderr
        assert "Traceback" not in result.stdout + result.stderr
        assert command_logger.messages("ERROR") == []

    def test_debug_logs_unexpected_error(
        self,
        run_cli: RunCLI,
        monkeypatch: pytest.MonkeyPatch,
        command_logger: FakeLogger,
    ) -> None:
        """With debug enabled the exception is logged with its traceback."""
        monkeypatch.setattr(
            "embedctl.cli.commands.installed_version", _fail_with_runtime_error
        )

        result = run_cli("version", debug=True)

        assert result.exit_code == 1
        [(level, message, exc_info, _)] = command_logger.calls
        assert (level, message) == ("ERROR", "RuntimeError: boom")
        assert isinstance(exc_info, RuntimeError)


def _invoke(argv: list[str]) -> int:
    """Run the console entry point and return its exit status."""
    try:
        return main(argv)
    except SystemExit as exc:
        return typ.cast("int", exc.code)


@pytest.fixture
def requested_levels(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Record the log levels the launcher asks for."""
    requested: list[str] = []

    def fake_configure(level: str, *, force: bool = False) -> tuple[str, bool]:
        requested.append(level)
        return normalize_log_level(level)

    monkeypatch.setattr("embedctl.cli.commands.configure_logging", fake_configure)
    return requested


class TestEntryPoint:
    """The ``embed`` console script: settings, logging and --debug."""

    def test_log_level_from_environment(
        self,
        monkeypatch: pytest.MonkeyPatch,
        requested_levels: list[str],
        command_logger: FakeLogger,
    ) -> None:
        """EMBED_LOG_LEVEL selects the diagnostic level."""
        monkeypatch.setenv("EMBED_LOG_LEVEL", "INFO")

        assert _invoke(["version"]) == 0
        assert requested_levels == ["INFO"]
        assert command_logger.messages("WARNING") == []

    def test_debug_flag_forces_debug_level(
        self,
        monkeypatch: pytest.MonkeyPatch,
        requested_levels: list[str],
    ) -> None:
        """--debug overrides EMBED_LOG_LEVEL."""
        monkeypatch.setenv("EMBED_LOG_LEVEL", "ERROR")

        assert _invoke(["--debug", "version"]) == 0
        assert requested_levels == ["DEBUG"]

    def test_invalid_log_level_is_replaced(
        self,
        monkeypatch: pytest.MonkeyPatch,
        requested_levels: list[str],
        command_logger: FakeLogger,
    ) -> None:
        """An unknown level is warned about and WARNING is used instead."""
        monkeypatch.setenv("EMBED_LOG_LEVEL", "chatty")

        assert _invoke(["version"]) == 0
        assert command_logger.messages("WARNING") == [
            "Invalid EMBED_LOG_LEVEL 'chatty'; using WARNING"
        ]

    def test_invalid_timeout_exits_non_zero(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
        requested_levels: list[str],
    ) -> None:
        """A bad EMBED_API_TIMEOUT is reported on stderr before any command runs."""
        monkeypatch.setenv("EMBED_API_TIMEOUT", "soon")

        assert _invoke(["version"]) == 1
        captured = capsys.readouterr()
        assert "Invalid EMBED_API_TIMEOUT 'soon'" in captured.err
        assert "Embeddable CLI v" not in captured.out
        assert requested_levels == []

    @pytest.mark.parametrize(
        ("argv", "logged"),
        [(["list"], False), (["--debug", "list"], True)],
    )
    def test_traceback_only_with_debug(
        self,
        capsys: pytest.CaptureFixture[str],
        requested_levels: list[str],
        command_logger: FakeLogger,
        argv: list[str],
        logged: bool,
    ) -> None:
        """Failures print a message; the traceback is logged only with --debug."""
        assert _invoke(argv) == 1
        assert "No configuration found" in capsys.readouterr().err
        errors = [call for call in command_logger.calls if call[0] == "ERROR"]
        assert bool(errors) is logged
        if logged:
            assert errors[0][2] is not None


class TestRichConsolePrompts:
    """The rich-backed prompt implementation."""

    @staticmethod
    def _console() -> tuple[RichConsole, io.StringIO]:
        out = io.StringIO()
        return RichConsole(Console(file=out, width=200)), out

    def test_ask_repeats_until_check_passes(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Rejected input shows the problem and asks again."""
        ui, out = self._console()
        _answer_prompts(monkeypatch, "", "prod")

        answer = ui.ask(
            "Environment name:",
            check=lambda value: None if value else "Name is required",
        )

        assert answer == "prod"
        assert "Name is required" in out.getvalue()

    def test_choose_returns_value_of_numbered_entry(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Choices are picked by their menu number."""
        ui, out = self._console()
        _answer_prompts(monkeypatch, "2")

        picked = ui.choose(
            "Select your region:",
            [Choice("United States", Region.US), Choice("Europe", Region.EU)],
        )

        assert picked is Region.EU
        assert "2. Europe" in out.getvalue()

    def test_end_of_input_cancels(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """EOF at a prompt is a cancellation."""
        ui, _out = self._console()
        _answer_prompts(monkeypatch, EOFError())

        with pytest.raises(ProvisioningCancelled):
            ui.confirm("Continue?")
