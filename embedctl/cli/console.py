"""Rich-backed terminal rendering and the interactive prompt implementation."""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from embedctl.provisioning.errors import ProvisioningCancelled

if typ.TYPE_CHECKING:
    from embedctl.provisioning.interaction import Choice, TextCheck


class RichConsole:
    """Terminal front end implementing the provisioning ``Interaction`` protocol.

    Regular output goes to ``console``; errors and update notices go to
    ``err_console`` so they do not mix with tokens printed for piping.
    Ctrl-C and end of input at any prompt raise
    :class:`ProvisioningCancelled`.
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        err_console: Console | None = None,
    ) -> None:
        """Wrap the given consoles, creating stdout/stderr ones by default."""
        self._console = console or Console()
        self._err_console = err_console or Console(stderr=True)

    @property
    def console(self) -> Console:
        """Return the console used for regular output."""
        return self._console

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def ask(
        self,
        message: str,
        *,
        default: str | None = None,
        placeholder: str | None = None,
        secret: bool = False,
        check: TextCheck | None = None,
    ) -> str:
        """Prompt for free text, re-asking until ``check`` accepts it."""
        prompt = escape(message)
        if placeholder:
            prompt = f"{prompt} [dim](e.g. {escape(placeholder)})[/dim]"
        while True:
            try:
                if default is None:
                    value = Prompt.ask(prompt, console=self._console, password=secret)
                else:
                    value = Prompt.ask(
                        prompt,
                        console=self._console,
                        password=secret,
                        default=default,
                    )
            except (KeyboardInterrupt, EOFError) as exc:
                raise ProvisioningCancelled.by_user() from exc
            problem = check(value) if check is not None else None
            if problem is None:
                return value
            self._console.print(f"[red]{escape(problem)}[/red]")

    def choose[T](self, message: str, choices: cabc.Sequence[Choice[T]]) -> T:
        """Show a numbered menu and return the value of the picked entry."""
        self._console.print(f"[bold]{escape(message)}[/bold]")
        for index, choice in enumerate(choices, start=1):
            hint = f" [dim]({escape(choice.hint)})[/dim]" if choice.hint else ""
            self._console.print(f"  {index}. {escape(choice.label)}{hint}")
        try:
            picked = IntPrompt.ask(
                "Enter a number",
                console=self._console,
                choices=[str(index) for index in range(1, len(choices) + 1)],
                show_choices=False,
            )
        except (KeyboardInterrupt, EOFError) as exc:
            raise ProvisioningCancelled.by_user() from exc
        return choices[picked - 1].value

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """Ask a yes/no question."""
        try:
            return Confirm.ask(escape(message), console=self._console, default=default)
        except (KeyboardInterrupt, EOFError) as exc:
            raise ProvisioningCancelled.by_user() from exc

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def info(self, message: str) -> None:
        """Print a neutral progress line."""
        self._console.print(f"[cyan]{escape(message)}[/cyan]")

    def success(self, message: str) -> None:
        """Print a completed-step line."""
        self._console.print(f"[green]✓ {escape(message)}[/green]")

    def warn(self, message: str) -> None:
        """Print a recoverable problem."""
        self._console.print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        """Print a fatal problem to stderr."""
        self._err_console.print(f"[red]✗ {escape(message)}[/red]")

    def cancelled(self, message: str) -> None:
        """Print the reason a flow was abandoned."""
        self._console.print(f"[yellow]{escape(message)}[/yellow]")

    def note(self, title: str, lines: cabc.Sequence[str]) -> None:
        """Render a titled panel."""
        self._console.print(
            Panel(
                "\n".join(escape(line) for line in lines),
                title=escape(title),
                expand=False,
            )
        )

    def heading(self, text: str) -> None:
        """Print a bold section heading."""
        self._console.print(f"\n[bold]{escape(text)}[/bold]")

    def line(self, text: str = "") -> None:
        """Print text verbatim, without markup processing."""
        self._console.print(text, markup=False, highlight=False)

    def table(
        self,
        headers: cabc.Sequence[str],
        rows: cabc.Iterable[cabc.Sequence[str]],
    ) -> None:
        """Render rows under ``headers`` as a table."""
        table = Table(*headers)
        for row in rows:
            table.add_row(*(escape(cell) for cell in row))
        self._console.print(table)

    def update_notice(self, latest: str, current: str) -> None:
        """Announce a newer release on stderr."""
        self._err_console.print(
            f"\n📦 Update available: v{escape(latest)} (current: v{escape(current)})"
        )
        self._err_console.print("Run 'embed version --check' for details\n")


__all__ = ["RichConsole"]
