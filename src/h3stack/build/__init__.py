"""
Build data model: dependency specs, build context and result records.

These modules are dependency-free so that the CLI and tests can import them
without touching the filesystem or spawning processes.
"""

from .cancellation import CancellationToken
from .context import BuildContext
from .results import (
    CapabilityCheck,
    PipelineOutcome,
    PipelineResult,
    StageOutcome,
    StageResult,
    StageStep,
    VerificationReport,
)
from .specs import (
    CURL,
    NGHTTP3,
    OPENSSL,
    BuildKind,
    DependencySpec,
    StageProbe,
    VersionSpec,
    default_dependency_specs,
)

__all__ = [
    "BuildContext",
    "BuildKind",
    "CancellationToken",
    "CapabilityCheck",
    "DependencySpec",
    "PipelineOutcome",
    "PipelineResult",
    "StageOutcome",
    "StageProbe",
    "StageResult",
    "StageStep",
    "VerificationReport",
    "VersionSpec",
    "default_dependency_specs",
    "CURL",
    "NGHTTP3",
    "OPENSSL",
]
