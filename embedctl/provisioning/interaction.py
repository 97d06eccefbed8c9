"""Protocol through which provisioning flows talk to the user.

Flows never read stdin or print directly. They receive an object
implementing :class:`Interaction`; the CLI supplies a ``rich``-backed
console and tests supply a scripted double. Any prompt may raise
:class:`~embedctl.provisioning.errors.ProvisioningCancelled` when the user
backs out (Ctrl-C, end of input).
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import typing as typ

TextCheck = cabc.Callable[[str], str | None]
"""Inline validator for free-text prompts: returns an error message or None."""


@dataclasses.dataclass(frozen=True, slots=True)
class Choice[T]:
    """One option offered by :meth:`Interaction.choose`."""

    label: str
    value: T
    hint: str | None = None


class Interaction(typ.Protocol):
    """Prompts and progress output consumed by the provisioning flows."""

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
        ...

    def choose[T](self, message: str, choices: cabc.Sequence[Choice[T]]) -> T:
        """Prompt for one of ``choices`` and return its value."""
        ...

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """Ask a yes/no question."""
        ...

    def info(self, message: str) -> None:
        """Report neutral progress."""
        ...

    def success(self, message: str) -> None:
        """Report a completed step."""
        ...

    def warn(self, message: str) -> None:
        """Report a recoverable problem."""
        ...

    def note(self, title: str, lines: cabc.Sequence[str]) -> None:
        """Show a titled block of guidance or summary text."""
        ...


def required(label: str) -> TextCheck:
    """Return a check that rejects blank input for the named field."""

    def _check(value: str) -> str | None:
        return None if value.strip() else f"{label} is required"

    return _check


__all__ = ["Choice", "Interaction", "TextCheck", "required"]
