"""Working directory derivation for qmake builds."""
from __future__ import annotations

from pathlib import Path

from .errors import BuildDirectoryError


def resolve_build_directory(source_dir: Path, shadow_dir_name: str | None, use_shadow_build: bool) -> Path:
    """Return the directory the build commands run in.

    ``shadow_dir_name`` is joined onto ``source_dir``; an absolute name replaces
    it and an empty one means ``source_dir`` itself. The directory is created,
    including missing parents, only for shadow builds.
    """

    build_dir = source_dir / shadow_dir_name if shadow_dir_name else source_dir
    if use_shadow_build:
        try:
            build_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BuildDirectoryError(build_dir, exc.strerror or str(exc)) from exc
    return build_dir


__all__ = ["resolve_build_directory"]
