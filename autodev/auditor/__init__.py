"""AutoDev Auditor — deterministic dependency checks fed to the research phase."""

from autodev.auditor.dependencies import (
    DependencyReport,
    DependencyScanner,
    OutdatedPackage,
    Vulnerability,
)

__all__ = ["DependencyReport", "DependencyScanner", "OutdatedPackage", "Vulnerability"]
