"""Base exception shared by every error the CLI reports to the user."""

from __future__ import annotations


class EmbedError(Exception):
    """Base class for embedctl errors.

    Anything deriving from this class is reported at the command boundary
    as a one-line message and turns into a non-zero exit code.
    """
