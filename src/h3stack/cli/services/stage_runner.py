"""
Stage runner for one dependency of the HTTP/3 toolchain.

Handles source checkout into a freshly removed working directory, the
native configure step, the parallel compile, installation into the shared
prefix and the stage-local probe. Each step is a commit point: the first
non-zero exit ends the stage with the matching StageError and the tool's
own output attached.
"""

import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type

from h3stack.build.context import BuildContext
from h3stack.build.results import StageOutcome, StageResult, StageStep
from h3stack.build.specs import DependencySpec
from h3stack.core.exceptions import (
    CompileFailure,
    ConfigurationFailure,
    InstallFailure,
    SourceFetchFailure,
    StageError,
    StageVerificationFailure,
)

from ..console import Console
from .base import BaseService
from .command_runner import CommandResult, CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

STEP_ERRORS: Dict[StageStep, Type[StageError]] = {
    StageStep.FETCH: SourceFetchFailure,
    StageStep.CONFIGURE: ConfigurationFailure,
    StageStep.COMPILE: CompileFailure,
    StageStep.INSTALL: InstallFailure,
    StageStep.VERIFY: StageVerificationFailure,
}

# Lines of tool output attached to a StageError
DIAGNOSTIC_TAIL = 40


@dataclass(frozen=True)
class PlannedCommand:
    """
    One tool invocation of a stage.

    Attributes:
        step: Stage step the command belongs to
        args: argv with placeholders already expanded
        cwd: Working directory
        env: Extra environment on top of the BuildContext
        output_file: File name inside ``cwd`` that receives the output
    """
    step: StageStep
    args: Tuple[str, ...]
    cwd: Path
    env: Tuple[Tuple[str, str], ...] = ()
    output_file: Optional[str] = None

    def display(self) -> str:
        prefix = " ".join(f"{k}={v}" for k, v in self.env)
        command = " ".join(self.args)
        return f"{prefix} {command}" if prefix else command


@dataclass
class ProbeResult:
    passed: bool
    lines: List[str]
    detail: str = ""


class StageRunner(BaseService):
    """
    Build exactly one DependencySpec against a BuildContext.

    The runner never raises for tool failures; it returns a Failed
    StageResult whose ``error`` names the dependency and failing step.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        console: Optional[Console] = None,
        write_logs: bool = True,
    ):
        super().__init__(console=console)
        self.runner = runner or SubprocessRunner()
        self.write_logs = write_logs

    # ── Planning ──────────────────────────────────────────────────────

    @staticmethod
    def stage_prefix(spec: DependencySpec, context: BuildContext) -> Path:
        if spec.install_prefix_relative:
            return context.install_prefix / spec.install_prefix_relative
        return context.install_prefix

    def plan(self, spec: DependencySpec, context: BuildContext) -> List[PlannedCommand]:
        """
        Return the ordered commands of a stage without running anything.

        The working-directory removal and the probe are not commands and
        are therefore not part of the plan.
        """
        build_dir = context.build_dir
        source = context.source_dir(spec.name)
        commands = [
            PlannedCommand(
                StageStep.FETCH,
                ("git", "clone", spec.source_url, spec.name),
                build_dir,
            ),
            PlannedCommand(StageStep.FETCH, ("git", "checkout", spec.revision), source),
        ]
        if spec.submodules:
            commands.append(
                PlannedCommand(StageStep.FETCH, ("git", "submodule", "update", "--init"), source)
            )

        if spec.needs_bootstrap:
            commands.append(PlannedCommand(StageStep.CONFIGURE, ("autoreconf", "-fi"), source))

        configure_args = [spec.configure_script]
        configure_args.append(f"--prefix={self.stage_prefix(spec, context)}")
        configure_args.extend(context.expand(flag) for flag in spec.configure_flags)
        configure_env = tuple((k, context.expand(v)) for k, v in spec.configure_env)
        commands.append(
            PlannedCommand(
                StageStep.CONFIGURE,
                tuple(configure_args),
                source,
                env=configure_env,
                output_file=spec.configure_log,
            )
        )

        commands.append(PlannedCommand(StageStep.COMPILE, ("make", f"-j{context.jobs}"), source))
        commands.append(
            PlannedCommand(StageStep.INSTALL, ("make",) + tuple(spec.install_targets), source)
        )
        return commands

    # ── Execution ─────────────────────────────────────────────────────

    def run(self, spec: DependencySpec, context: BuildContext) -> StageResult:
        """
        Execute fetch, configure, compile, install and verify for one dependency.

        Args:
            spec: Dependency to build
            context: Build location and environment

        Returns:
            StageResult with the accumulated diagnostic log
        """
        start = time.monotonic()
        log: List[str] = []
        error: Optional[StageError] = None
        logger.info(f"Building {spec.name} {spec.revision} ({spec.build_kind.value})")

        try:
            self._reset_source_dir(spec, context, log)
            for command in self.plan(spec, context):
                self._execute(spec, context, command, log)
            self._verify(spec, context, log)
        except StageError as e:
            error = e
            logger.error(str(e))

        duration = time.monotonic() - start
        result = StageResult(
            dependency=spec.name,
            outcome=StageOutcome.FAILED if error else StageOutcome.SUCCESS,
            diagnostic_log=log,
            duration_s=duration,
            error=error,
        )
        self._write_stage_log(spec, context, log)
        if error is None:
            self._console.success(f"{spec.name} {spec.revision} installed ({duration:.0f}s)")
        else:
            self._console.error(str(error))
        return result

    def _reset_source_dir(self, spec: DependencySpec, context: BuildContext, log: List[str]) -> None:
        """Remove any working directory left by a previous attempt."""
        source = context.source_dir(spec.name)
        try:
            context.build_dir.mkdir(parents=True, exist_ok=True)
            if source.exists():
                self._console.indent(f"Removing existing {spec.name} directory...")
                shutil.rmtree(source)
        except OSError as e:
            raise SourceFetchFailure(
                spec.name, f"could not reset working directory {source}: {e}", [str(e)]
            ) from e

    def _execute(
        self,
        spec: DependencySpec,
        context: BuildContext,
        command: PlannedCommand,
        log: List[str],
    ) -> CommandResult:
        self._console.indent(f"[dim]{command.step.value}:[/dim] {' '.join(command.args)}")
        log.append(f"$ {command.display()}")
        env = context.with_overrides(**dict(command.env)) if command.env else context.env

        result = self.runner.run(list(command.args), cwd=command.cwd, env=env)
        output = result.output_lines()
        log.extend(output)

        if command.output_file:
            self._save_output(command.cwd / command.output_file, result)

        if not result.ok:
            error_cls = STEP_ERRORS[command.step]
            raise error_cls(
                spec.name,
                f"`{' '.join(command.args)}` exited with status {result.returncode}",
                output[-DIAGNOSTIC_TAIL:],
            )
        return result

    @staticmethod
    def _save_output(path: Path, result: CommandResult) -> None:
        try:
            path.write_text(result.output, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not save output to {path}: {e}")

    # ── Probes ────────────────────────────────────────────────────────

    def probe(self, spec: DependencySpec, context: BuildContext) -> ProbeResult:
        """
        Run the stage-local sanity probe against the installed products.

        Used after install and, by the pipeline, to confirm that a
        predecessor is still in place before rebuilding a single stage.
        """
        check = spec.probe
        lines: List[str] = []
        prefix = self.stage_prefix(spec, context)

        if check.any_files:
            candidates = [prefix / rel for rel in check.any_files]
            found = [p for p in candidates if p.exists()]
            lines.extend(f"{'found' if p in found else 'missing'}: {p}" for p in candidates)
            if not found:
                return ProbeResult(False, lines, f"none of {', '.join(check.any_files)} exist")

        if check.command:
            args = [context.expand(a) for a in check.command]
            lines.append(f"$ {' '.join(args)}")
            result = self.runner.run(args, env=context.env)
            lines.extend(result.output_lines())
            if not result.ok:
                return ProbeResult(
                    False, lines, f"`{' '.join(args)}` exited with status {result.returncode}"
                )
            for pattern in check.patterns:
                if not re.search(pattern, result.output, re.MULTILINE):
                    return ProbeResult(False, lines, f"output does not match /{pattern}/")

        return ProbeResult(True, lines, check.description)

    def _verify(self, spec: DependencySpec, context: BuildContext, log: List[str]) -> None:
        self._console.indent(f"[dim]verify:[/dim] {spec.probe.description or spec.name}")
        outcome = self.probe(spec, context)
        log.extend(outcome.lines)
        if not outcome.passed:
            raise StageVerificationFailure(
                spec.name, outcome.detail, outcome.lines[-DIAGNOSTIC_TAIL:]
            )
        logger.debug(f"{spec.name} probe passed: {outcome.detail}")

    # ── Logs ──────────────────────────────────────────────────────────

    def _write_stage_log(self, spec: DependencySpec, context: BuildContext, log: List[str]) -> None:
        if not self.write_logs:
            return
        log_path = context.build_dir / "logs" / f"{spec.name}.log"
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.write_text("\n".join(log) + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write stage log {log_path}: {e}")
