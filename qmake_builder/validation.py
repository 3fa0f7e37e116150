"""Validation helpers for job configuration fields."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Mapping

from .config_loader import BuildConfiguration
from .substitution import references


PROJECT_EXTENSION = ".pro"
PROJECT_INCLUDE_EXTENSION = ".pri"


class Severity(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    severity: Severity
    message: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(Severity.OK)

    @classmethod
    def warning(cls, message: str) -> "ValidationResult":
        return cls(Severity.WARNING, message)

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls(Severity.ERROR, message)


def check_project_file(value: str, *, workspace: Path | None = None) -> ValidationResult:
    """Check the project file field the way the job form does."""

    if not value:
        return ValidationResult.error("Please set a project file")

    path = Path(value)
    if workspace is not None and not path.is_absolute():
        path = workspace / path
    if path.is_dir():
        return ValidationResult.error("Project file is a directory")

    if path.name.endswith(PROJECT_INCLUDE_EXTENSION):
        return ValidationResult.error("Project includes cannot be used to build a project")

    if not path.name.endswith(PROJECT_EXTENSION):
        return ValidationResult.warning(f"Project file does not have the {PROJECT_EXTENSION} extension")

    return ValidationResult.ok()


@dataclass(slots=True)
class JobReport:
    project_file: ValidationResult
    notes: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.project_file.is_error


def validate_job(
    job: BuildConfiguration,
    *,
    workspace: Path | None = None,
    environment: Mapping[str, str] | None = None,
) -> JobReport:
    report = JobReport(project_file=check_project_file(job.project_file.strip(), workspace=workspace))
    if environment is not None:
        fields = {
            "project_file": job.project_file,
            "extra_arguments": job.extra_arguments,
            "shadow_build_dir": job.shadow_build_dir,
        }
        for field_name, value in fields.items():
            missing = [name for name in references(value) if name not in environment]
            for name in missing:
                report.notes.append(f"{field_name}: variable '{name}' is not set and will be kept verbatim")
    return report


__all__ = [
    "JobReport",
    "Severity",
    "ValidationResult",
    "check_project_file",
    "validate_job",
]
