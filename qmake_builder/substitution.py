"""Environment variable substitution for configuration strings."""
from __future__ import annotations

from typing import Mapping
import re


# ${NAME} | $NAME | %NAME%, recognized on every host platform.
_REFERENCE_PATTERN = re.compile(
    r"\$\{(?P<braced>[A-Za-z0-9_.]+)\}"
    r"|\$(?P<plain>[A-Za-z_][A-Za-z0-9_]*)"
    r"|%(?P<windows>[A-Za-z_][A-Za-z0-9_]*)%"
)


def expand(text: str | None, environment: Mapping[str, str]) -> str:
    """Replace variable references in *text* with values from *environment*.

    References whose name is not present are kept verbatim. Substituted values
    are never scanned again.
    """

    if not text:
        return ""

    def _replace(match: re.Match[str]) -> str:
        name = match.group("braced") or match.group("plain") or match.group("windows")
        value = environment.get(name)
        if value is None:
            return match.group(0)
        return str(value)

    return _REFERENCE_PATTERN.sub(_replace, text)


def references(text: str | None) -> list[str]:
    """Return the variable names referenced by *text* in order of appearance."""

    if not text:
        return []
    return [
        match.group("braced") or match.group("plain") or match.group("windows")
        for match in _REFERENCE_PATTERN.finditer(text)
    ]


__all__ = ["expand", "references"]
