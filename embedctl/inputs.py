"""Parse JSON objects typed or pasted by the user, inline or from a file."""

from __future__ import annotations

import typing as typ
from pathlib import Path

import msgspec

from embedctl.validation import ValidationError


def parse_json_object(text: str, *, what: str = "JSON input") -> dict[str, typ.Any]:
    """Decode ``text`` as a JSON object.

    Raises
    ------
    ValidationError
        If ``text`` is blank, is not valid JSON, or is not an object.

    """
    if not text or not text.strip():
        msg = f"{what} is required"
        raise ValidationError(msg)
    try:
        data = msgspec.json.decode(text.strip().encode())
    except msgspec.DecodeError as exc:
        msg = f"Invalid JSON format in {what}: {exc}"
        raise ValidationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{what} must be a JSON object"
        raise ValidationError(msg)
    return typ.cast("dict[str, typ.Any]", data)


def read_json_file(path: Path | str, *, what: str = "JSON file") -> dict[str, typ.Any]:
    """Read ``path`` and decode its content as a JSON object.

    Raises
    ------
    ValidationError
        If the file cannot be read or does not hold a JSON object.

    """
    location = Path(path).expanduser()
    try:
        content = location.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Failed to read {what} {location}: {exc.strerror or exc}"
        raise ValidationError(msg) from exc
    return parse_json_object(content, what=f"{what} {location}")


def json_error(text: str) -> str | None:
    """Return a prompt-friendly error for ``text``, or None when it parses."""
    try:
        parse_json_object(text)
    except ValidationError:
        return "Invalid JSON format"
    return None


def parse_json_or_file(text: str, *, what: str) -> dict[str, typ.Any]:
    """Decode pasted JSON, falling back to treating ``text`` as a file path."""
    try:
        return parse_json_object(text, what=what)
    except ValidationError:
        if not Path(text.strip()).expanduser().is_file():
            raise
    return read_json_file(text.strip(), what=what)


__all__ = ["json_error", "parse_json_object", "parse_json_or_file", "read_json_file"]
