"""qmake binary resolution."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping
import ntpath
import posixpath

from .errors import ToolResolutionError


QMAKE_DEFAULT = "qmake"
QTDIR_VARIABLE = "QTDIR"

PathExists = Callable[[str], bool]


def local_path_exists(path: str) -> bool:
    return Path(path).exists()


def qtdir_candidate(qtdir: str, *, is_windows: bool) -> str:
    """Return the qmake path inside a Qt installation for the target platform."""

    if is_windows:
        return ntpath.join(qtdir, "bin", "qmake.exe")
    return posixpath.join(qtdir, "bin", "qmake")


def resolve_qmake_binary(
    environment: Mapping[str, str],
    override_path: str | None,
    is_windows: bool,
    *,
    exists: PathExists = local_path_exists,
) -> str:
    """Pick the qmake executable to invoke.

    An existing administrator override wins over an existing ``$QTDIR``
    installation, which wins over the bare ``qmake`` name looked up on
    ``PATH`` at launch time.
    """

    if override_path:
        if _probe(exists, override_path, configured=override_path):
            return override_path

    qtdir = environment.get(QTDIR_VARIABLE)
    if qtdir:
        candidate = qtdir_candidate(qtdir, is_windows=is_windows)
        if _probe(exists, candidate, configured=override_path):
            return candidate

    return QMAKE_DEFAULT


def _probe(exists: PathExists, path: str, *, configured: str | None) -> bool:
    try:
        return bool(exists(path))
    except (OSError, ValueError) as exc:
        raise ToolResolutionError(configured, f"Unable to check qmake location '{path}': {exc}") from exc


__all__ = [
    "PathExists",
    "QMAKE_DEFAULT",
    "QTDIR_VARIABLE",
    "local_path_exists",
    "qtdir_candidate",
    "resolve_qmake_binary",
]
