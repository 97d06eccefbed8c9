"""Tables and summaries printed by the ``embed`` commands."""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path

    from embedctl.api.models import Connection, Embeddable, Environment
    from embedctl.config.models import Config
    from embedctl.provisioning.flows import TokenOutcome
    from embedctl.provisioning.setup import SetupSummary

    from .console import RichConsole

_NOT_PUBLISHED = "Not published"
_RULE_WIDTH = 60


def _parse_timestamp(value: object) -> dt.datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            return dt.datetime.fromtimestamp(value / 1000, tz=dt.UTC)
        except (ValueError, OverflowError, OSError):
            return None
    if isinstance(value, str):
        try:
            return dt.datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def format_published(value: object) -> str:
    """Render an embeddable's opaque ``lastPublishedAt`` for display.

    Accepts an ISO string, an epoch-milliseconds number, or an object with
    ``date`` or ``timestamp``; anything else reads as not published.
    """
    if isinstance(value, cabc.Mapping):
        mapping = typ.cast("cabc.Mapping[str, object]", value)
        value = mapping.get("date") or mapping.get("timestamp")
    if not value:
        return _NOT_PUBLISHED
    moment = _parse_timestamp(value)
    if moment is None:
        return str(value) if isinstance(value, str) else _NOT_PUBLISHED
    return moment.strftime("%Y-%m-%d %H:%M")


def render_config(console: RichConsole, config: Config, path: Path) -> None:
    """Print the stored configuration with the API key masked."""
    console.info("Current Configuration:")
    console.line(f"  Config Path: {path}")
    console.line(f"  Region: {config.region.value} ({config.region.display})")
    console.line(f"  API Key: {config.masked_api_key}")
    if config.default_environment:
        console.line(f"  Default Environment: {config.default_environment}")


def render_connections(
    console: RichConsole, connections: cabc.Sequence[Connection]
) -> None:
    """Print connections as an ID/Name/Type/Host/Database table."""
    console.table(
        ["ID", "Name", "Type", "Host", "Database"],
        (
            [
                item.identifier,
                item.name,
                item.type,
                item.credential("host") or "-",
                item.credential("database") or "-",
            ]
            for item in connections
        ),
    )
    console.line(f"\nFound {len(connections)} connection(s)")


def render_environments(
    console: RichConsole,
    environments: cabc.Sequence[Environment],
    default_environment: str | None,
) -> None:
    """Print environments with their datasource mappings and default marker."""
    console.table(
        ["ID", "Name", "Data Sources", "Default"],
        (
            [
                item.id,
                item.name,
                "\n".join(
                    f"{source} → {target}"
                    for source, target in item.datasources.items()
                )
                or "-",
                "✓" if item.id == default_environment else "",
            ]
            for item in environments
        ),
    )
    console.line(f"\nFound {len(environments)} environment(s)")


def render_embeddables(
    console: RichConsole, embeddables: cabc.Sequence[Embeddable]
) -> None:
    """Print embeddables as an ID/Name/Last Published table."""
    console.table(
        ["ID", "Name", "Last Published"],
        (
            [item.id, item.name, format_published(item.last_published_at)]
            for item in embeddables
        ),
    )
    console.line(f"\nFound {len(embeddables)} embeddable(s)")


def render_token(
    console: RichConsole,
    outcome: TokenOutcome,
    *,
    show_embed_example: bool = False,
) -> None:
    """Print an issued token, its embed URL and usage hints."""
    token = outcome.token
    console.heading("Security Token:")
    console.line("=" * _RULE_WIDTH)
    console.line(token.token)
    console.line("=" * _RULE_WIDTH)
    if token.embed_url:
        console.heading("Embed URL:")
        console.line(token.embed_url)
    if token.expires_at is not None:
        console.line(f"\nExpires at: {token.expires_at.isoformat(timespec='seconds')}")

    if show_embed_example:
        console.heading("HTML Embedding Example:")
        console.line("=" * _RULE_WIDTH)
        console.line(f'<em-beddable\n  token="{token.token}"\n/>')
        console.line("=" * _RULE_WIDTH)
        return

    steps = [
        "1. Pass it to your embed component",
        "2. Include it in the Authorization header",
        f"3. The token will expire in {outcome.expires_in}",
    ]
    if outcome.filtered:
        steps.append("4. Data will be filtered based on your security context")
    console.note("How to use this token", steps)


def render_setup_summary(console: RichConsole, summary: SetupSummary) -> None:
    """Print what the setup wizard configured and where to go next."""
    if summary.token is not None:
        render_token(console, summary.token)

    lines = [
        f"• API Region: {summary.region.display}",
        f"• Database Connection: {summary.connection_id}"
        + (" (new)" if summary.connection_created else ""),
        f"• Environment: {summary.environment_id}"
        + (" (new)" if summary.environment_created else ""),
    ]
    if summary.default_environment:
        lines.append(f"• Default Environment: {summary.default_environment} ✓")
    console.note("✅ Setup Complete!", lines)
    console.note(
        "📚 Next Steps",
        [
            "1. List your embeddables: embed list",
            "2. Generate tokens: embed token",
            "3. View all commands: embed --help",
            "4. Read the docs: https://docs.embeddable.com",
        ],
    )
    console.success("Happy embedding! 🎉")


__all__ = [
    "format_published",
    "render_config",
    "render_connections",
    "render_embeddables",
    "render_environments",
    "render_setup_summary",
    "render_token",
]
