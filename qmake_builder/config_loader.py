"""Configuration loading and persistence for qmake jobs and tool settings."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence
import json
import tomllib

import yaml

from .command_runner import tokenize
from .errors import ConfigurationError


ConfigLoader = Callable[[Any], Mapping[str, Any]]


_FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".yml": lambda stream: yaml.safe_load(stream),
}

TOOLS_CONFIG_STEM = "tools"
DEFAULT_TOOLS_FILENAME = "tools.yaml"


def _load_config_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    loader = _FILE_LOADERS.get(suffix)
    if loader is None:
        raise ValueError(f"Unsupported configuration file extension: {suffix}")
    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"
    with path.open(mode, **kwargs) as handle:
        data = loader(handle)
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def _collect_config_files(directory: Path) -> Dict[str, Path]:
    files: Dict[str, Path] = {}
    for path in directory.iterdir():
        if not path.is_file():
            continue
        suffix = path.suffix.lower()
        if suffix not in _FILE_LOADERS:
            continue
        stem = path.stem
        if stem in files:
            other = files[stem]
            raise ValueError(
                f"Multiple configuration files found for '{stem}': '{other.name}' and '{path.name}'. "
                "Only one format per configuration entry is allowed."
            )
        files[stem] = path
    return files


def _normalize_targets(value: Any, *, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)):
        return tokenize(str(value))
    if isinstance(value, Sequence):
        result: List[str] = []
        for item in value:
            if isinstance(item, (str, bytes)):
                text = str(item).strip()
                if text:
                    result.append(text)
            else:
                raise TypeError(f"{field_name} entries must be strings")
        return result
    raise TypeError(f"{field_name} must be a string or sequence of strings")


def _optional_str(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True, slots=True)
class ToolConfiguration:
    """Administrator-level tool settings shared by every build."""

    qmake_path: str = ""
    make_cmd_unix: str = "make"
    make_cmd_windows: str = "nmake"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ToolConfiguration":
        section = data.get("tools", data) if isinstance(data, Mapping) else {}
        if not isinstance(section, Mapping):
            raise TypeError("[tools] section must be a mapping")
        allowed_keys = {"qmake_path", "make_cmd_unix", "make_cmd_windows"}
        unknown = {str(key) for key in section.keys() if str(key) not in allowed_keys}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"Tool configuration contains unknown keys: {joined}")
        defaults = cls()
        return cls(
            qmake_path=_optional_str(section.get("qmake_path")),
            make_cmd_unix=str(section.get("make_cmd_unix", defaults.make_cmd_unix)),
            make_cmd_windows=str(section.get("make_cmd_windows", defaults.make_cmd_windows)),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "tools": {
                "qmake_path": self.qmake_path,
                "make_cmd_unix": self.make_cmd_unix,
                "make_cmd_windows": self.make_cmd_windows,
            }
        }

    def make_command(self, *, is_windows: bool) -> str:
        return self.make_cmd_windows if is_windows else self.make_cmd_unix


@dataclass(frozen=True, slots=True)
class BuildConfiguration:
    """Per-job qmake settings."""

    project_file: str
    extra_arguments: str = ""
    extra_targets: tuple[str, ...] = ()
    shadow_build_dir: str = ""
    use_shadow_build: bool = False
    name: str | None = None

    def __post_init__(self) -> None:
        if not self.project_file or not self.project_file.strip():
            raise ConfigurationError("A project file is required")
        # Lists passed by callers are frozen into tuples.
        if not isinstance(self.extra_targets, tuple):
            object.__setattr__(self, "extra_targets", tuple(self.extra_targets))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, name: str | None = None) -> "BuildConfiguration":
        job_section = data.get("job")
        if not isinstance(job_section, Mapping):
            raise ValueError("[job] section is required in job configuration")
        project_file = job_section.get("project_file")
        if not project_file:
            raise ValueError("job.project_file is required")
        use_shadow_build = job_section.get("use_shadow_build", False)
        if not isinstance(use_shadow_build, bool):
            raise TypeError("job.use_shadow_build must be a boolean if specified")
        raw_name = job_section.get("name") or name
        return cls(
            project_file=str(project_file),
            extra_arguments=_optional_str(job_section.get("extra_arguments")),
            extra_targets=tuple(
                _normalize_targets(job_section.get("extra_targets"), field_name="job.extra_targets")
            ),
            shadow_build_dir=_optional_str(job_section.get("shadow_build_dir")),
            use_shadow_build=use_shadow_build,
            name=str(raw_name) if raw_name else None,
        )

    def with_overrides(self, **changes: Any) -> "BuildConfiguration":
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied) if applied else self


def save_tool_configuration(path: Path, config: ToolConfiguration) -> Path:
    """Persist *config* to *path* in the format implied by its suffix."""

    suffix = path.suffix.lower()
    data = config.to_mapping()
    if suffix == ".json":
        text = json.dumps(data, indent=2) + "\n"
    elif suffix in {".yaml", ".yml"}:
        text = yaml.safe_dump(data, sort_keys=False)
    elif suffix == ".toml":
        raise ValueError(
            f"Cannot write TOML configuration '{path}'; convert it to {DEFAULT_TOOLS_FILENAME} to update tool settings"
        )
    else:
        raise ValueError(f"Unsupported configuration file extension: {suffix}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@dataclass(slots=True)
class ConfigurationStore:
    root: Path
    tools: ToolConfiguration
    jobs: Dict[str, BuildConfiguration] = field(default_factory=dict)
    tools_path: Path | None = None

    @property
    def config_dir(self) -> Path:
        return self.root / "config"

    @classmethod
    def from_directory(cls, root: Path) -> "ConfigurationStore":
        config_dir = root / "config"
        if not config_dir.exists():
            return cls(root=root, tools=ToolConfiguration())

        top_level_files = _collect_config_files(config_dir)
        tools_path = top_level_files.get(TOOLS_CONFIG_STEM)
        tools = ToolConfiguration()
        if tools_path is not None:
            tools = ToolConfiguration.from_mapping(_load_config_file(tools_path))

        jobs: Dict[str, BuildConfiguration] = {}
        jobs_dir = config_dir / "jobs"
        if jobs_dir.is_dir():
            for stem, path in sorted(_collect_config_files(jobs_dir).items()):
                job = BuildConfiguration.from_mapping(_load_config_file(path), name=stem)
                key = job.name or stem
                if key in jobs:
                    raise ValueError(f"Duplicate job name '{key}' in {path}")
                jobs[key] = job

        return cls(root=root, tools=tools, jobs=jobs, tools_path=tools_path)

    def list_jobs(self) -> Iterable[str]:
        return self.jobs.keys()

    def get_job(self, name: str) -> BuildConfiguration:
        if name not in self.jobs:
            available = ", ".join(sorted(self.jobs)) or "<none>"
            raise KeyError(f"Job '{name}' not found. Available jobs: {available}")
        return self.jobs[name]

    def update_tools(self, **changes: Any) -> ToolConfiguration:
        """Apply an administrative change to the tool settings and persist it."""

        applied = {key: value for key, value in changes.items() if value is not None}
        updated = replace(self.tools, **applied)
        target = self.tools_path or (self.config_dir / DEFAULT_TOOLS_FILENAME)
        save_tool_configuration(target, updated)
        self.tools = updated
        self.tools_path = target
        return updated


__all__ = [
    "BuildConfiguration",
    "ConfigurationStore",
    "ToolConfiguration",
    "save_tool_configuration",
]
