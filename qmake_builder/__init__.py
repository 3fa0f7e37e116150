"""Run qmake and make builds for Qt projects on behalf of an automation host."""
from __future__ import annotations

from .build import BuildEngine, BuildOutcome, BuildStatus, ResolvedPlan
from .config_loader import BuildConfiguration, ConfigurationStore, ToolConfiguration

__all__ = [
    "BuildConfiguration",
    "BuildEngine",
    "BuildOutcome",
    "BuildStatus",
    "ConfigurationStore",
    "ResolvedPlan",
    "ToolConfiguration",
]
