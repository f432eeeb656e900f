"""Result records produced by stages, the verifier and the pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from h3stack.core.exceptions import H3StackError, StageError


class StageStep(Enum):
    """Commit points of one stage, in execution order."""
    FETCH = "fetch"
    CONFIGURE = "configure"
    COMPILE = "compile"
    INSTALL = "install"
    VERIFY = "verify"


class StageOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StageResult:
    """Outcome of one StageRunner invocation."""
    dependency: str
    outcome: StageOutcome
    diagnostic_log: List[str] = field(default_factory=list)
    duration_s: float = 0.0
    error: Optional[StageError] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is StageOutcome.SUCCESS

    @property
    def failure_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None


@dataclass
class CapabilityCheck:
    """Result of one verification check."""
    capability: str
    present: bool
    detail: str = ""


@dataclass
class VerificationReport:
    """
    Capability name -> present, in check order.

    A complete report always contains ``http3`` and ``websocket``.
    """
    checks: List[CapabilityCheck] = field(default_factory=list)
    openssl_version: Optional[str] = None
    curl_version: Optional[str] = None
    curl_output: str = ""
    openssl_output: str = ""

    @property
    def capabilities(self) -> Dict[str, bool]:
        return {c.capability: c.present for c in self.checks}

    @property
    def missing(self) -> List[str]:
        return [c.capability for c in self.checks if not c.present]

    @property
    def passed(self) -> bool:
        return bool(self.checks) and not self.missing

    def is_present(self, capability: str) -> bool:
        return self.capabilities.get(capability, False)

    def tool_output(self) -> List[str]:
        """Raw self-report lines of the checked tools, openssl first."""
        lines = []
        for text in (self.openssl_output, self.curl_output):
            lines.extend(line for line in text.strip().splitlines() if line.strip())
        return lines


class PipelineOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DECLINED = "declined"
    PLANNED = "planned"


@dataclass
class PipelineResult:
    """Everything a caller needs to report on one pipeline run."""
    outcome: PipelineOutcome
    stage_results: List[StageResult] = field(default_factory=list)
    verification: Optional[VerificationReport] = None
    env_script: Optional[Path] = None
    env_script_error: Optional[H3StackError] = None
    error: Optional[H3StackError] = None
    duration_s: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is PipelineOutcome.SUCCESS

    @property
    def diagnostic_log(self) -> List[str]:
        """Accumulated tool output across all executed stages."""
        lines: List[str] = []
        for result in self.stage_results:
            lines.extend(result.diagnostic_log)
        return lines

    def stage(self, name: str) -> Optional[StageResult]:
        for result in self.stage_results:
            if result.dependency == name:
                return result
        return None
