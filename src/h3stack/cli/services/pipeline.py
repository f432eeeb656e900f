"""
Pipeline orchestration for the HTTP/3 toolchain build.

Coordinates the execution sequence: prerequisite gate, confirmation, prefix
lock, one StageRunner invocation per dependency in topological order,
final installation verification and the activation script. Nothing touches
the filesystem or network before the prerequisite gate has passed and the
user has confirmed.
"""

import logging
import os
import time
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from h3stack.build.cancellation import CancellationToken
from h3stack.build.context import BuildContext
from h3stack.build.results import (
    PipelineOutcome,
    PipelineResult,
    StageOutcome,
    StageResult,
)
from h3stack.build.specs import DependencySpec, default_dependency_specs
from h3stack.core.config import StackConfig
from h3stack.core.exceptions import (
    ConfigurationError,
    EnvironmentArtifactWriteFailure,
    FinalCapabilityMissing,
    PipelineCancelled,
    StageVerificationFailure,
)
from h3stack.core.logging_manager import LoggingManager

from ..console import Console
from .base import BaseService
from .command_runner import CommandRunner, SubprocessRunner
from .confirmation import ConfirmationStrategy, confirmation_for
from .environment_emitter import EnvironmentEmitter
from .installation_verifier import CapabilityRuleTable, InstallationVerifier
from .prefix_lock import PrefixLock
from .prerequisites import PrerequisiteChecker, PrerequisiteReport
from .stage_runner import PlannedCommand, StageRunner

logger = logging.getLogger(__name__)

PREFIX_SUBDIRS = ("bin", "lib", "include")


def order_dependencies(specs: Sequence[DependencySpec]) -> List[DependencySpec]:
    """
    Topologically order specs by ``requires``, keeping declaration order
    among independent specs.

    Raises:
        ConfigurationError: On duplicate names, unknown requirements or cycles
    """
    by_name: Dict[str, DependencySpec] = {}
    for spec in specs:
        if spec.name in by_name:
            raise ConfigurationError(f"Dependency '{spec.name}' is declared twice")
        by_name[spec.name] = spec

    for spec in specs:
        unknown = [r for r in spec.requires if r not in by_name]
        if unknown:
            raise ConfigurationError(
                f"Dependency '{spec.name}' requires unknown dependencies: {', '.join(unknown)}"
            )

    ordered: List[DependencySpec] = []
    placed: Set[str] = set()
    remaining = list(specs)
    while remaining:
        ready = [s for s in remaining if all(r in placed for r in s.requires)]
        if not ready:
            names = ", ".join(s.name for s in remaining)
            raise ConfigurationError(f"Dependency cycle between: {names}")
        for spec in ready:
            ordered.append(spec)
            placed.add(spec.name)
        remaining = [s for s in remaining if s.name not in placed]
    return ordered


def transitive_requirements(name: str, specs: Sequence[DependencySpec]) -> List[str]:
    """All direct and indirect requirements of ``name``, in build order."""
    by_name = {s.name: s for s in specs}
    needed: Set[str] = set()
    stack = list(by_name[name].requires)
    while stack:
        current = stack.pop()
        if current not in needed:
            needed.add(current)
            stack.extend(by_name[current].requires)
    return [s.name for s in order_dependencies(specs) if s.name in needed]


class Pipeline(BaseService):
    """
    Build OpenSSL, nghttp3 and curl into one prefix and verify the result.

    Args:
        config: Run configuration
        runner: Executes every external command
        console: User-facing output
        confirmation: Asked once before any mutation
        token: Checked between stages
        logging_manager: Receives the run log file once mutation is allowed
        specs: Dependency table; defaults to the table for ``config``
        base_env: Environment the BuildContext extends (``os.environ``)
    """

    def __init__(
        self,
        config: StackConfig,
        runner: Optional[CommandRunner] = None,
        console: Optional[Console] = None,
        confirmation: Optional[ConfirmationStrategy] = None,
        token: Optional[CancellationToken] = None,
        logging_manager: Optional[LoggingManager] = None,
        specs: Optional[Sequence[DependencySpec]] = None,
        base_env: Optional[Mapping[str, str]] = None,
        checker: Optional[PrerequisiteChecker] = None,
    ):
        super().__init__(console=console)
        self.config = config
        self.runner = runner or SubprocessRunner()
        self.confirmation = confirmation or confirmation_for(config.interactive, self._console)
        self.token = token or CancellationToken()
        self.logging_manager = logging_manager
        self.base_env = base_env
        self.specs = order_dependencies(
            specs if specs is not None
            else default_dependency_specs(config.version_spec(), config.repositories())
        )
        self.checker = checker or PrerequisiteChecker(
            runner=self.runner, skip_package_check=config.skip_package_check
        )
        self.stage_runner = StageRunner(runner=self.runner, console=self._console)
        rules = CapabilityRuleTable.load(config.extra_capability_patterns)
        self.verifier = InstallationVerifier(
            runner=self.runner,
            console=self._console,
            rules=rules,
            openssl_major=config.version_spec().openssl_major,
        )
        self.emitter = EnvironmentEmitter(console=self._console, rules=rules)

    # ── Building blocks ───────────────────────────────────────────────

    def spec(self, name: str) -> DependencySpec:
        for spec in self.specs:
            if spec.name == name:
                return spec
        known = ", ".join(s.name for s in self.specs)
        raise ConfigurationError(f"Unknown dependency '{name}' (known: {known})")

    def initial_context(self) -> BuildContext:
        return BuildContext.create(
            install_prefix=self.config.install_prefix,
            build_dir=self.config.build_dir,
            jobs=self.config.jobs,
            base_env=self.base_env if self.base_env is not None else os.environ,
        )

    def check_prerequisites(self) -> PrerequisiteReport:
        """Run the read-only gate. Raises MissingPrerequisiteError on any miss."""
        self._console.info("Checking prerequisites...")
        report = self.checker.check(
            self.config.required_commands, self.config.required_packages
        )
        for status in report.statuses:
            if status.found:
                logger.debug(f"{status.kind} {status.name}: {status.path or 'present'}")
            else:
                self._console.error(f"Missing {status.kind}: {status.name}")
        report.raise_for_missing()
        self._console.success("All prerequisites found")
        return report

    def plan(self, names: Optional[Iterable[str]] = None) -> Dict[str, List[PlannedCommand]]:
        """Commands each stage would run, keyed by dependency name."""
        context = self.initial_context()
        selected = set(names) if names is not None else None
        return {
            spec.name: self.stage_runner.plan(spec, context)
            for spec in self.specs
            if selected is None or spec.name in selected
        }

    def _prepare_filesystem(self, context: BuildContext) -> None:
        for sub in PREFIX_SUBDIRS:
            (context.install_prefix / sub).mkdir(parents=True, exist_ok=True)
        context.build_dir.mkdir(parents=True, exist_ok=True)
        if self.logging_manager is not None and self.config.log_to_file:
            self.logging_manager.enable_file_logging(self.config.log_dir)

    def _confirm(self) -> bool:
        self._console.indent(f"Installation prefix: {self.config.install_prefix}")
        self._console.indent(f"Build directory: {self.config.build_dir}")
        return self.confirmation.confirm("Continue?")

    # ── Runs ──────────────────────────────────────────────────────────

    def run(self, dry_run: bool = False) -> PipelineResult:
        """
        Run the full build.

        Returns:
            PipelineResult; ``error`` is set on every non-success outcome
            except a declined confirmation

        Raises:
            MissingPrerequisiteError: Gate failed; nothing was touched
            PrefixLockError: Another run holds the prefix
        """
        return self._execute(self.specs, preflight=(), dry_run=dry_run)

    def run_stage(self, name: str, dry_run: bool = False) -> PipelineResult:
        """
        Rebuild a single dependency.

        Its requirements are not rebuilt; their stage probes must pass
        against the current prefix first.
        """
        spec = self.spec(name)
        preflight = [self.spec(r) for r in transitive_requirements(name, self.specs)]
        return self._execute([spec], preflight=preflight, dry_run=dry_run, final_checks=False)

    def _execute(
        self,
        to_build: Sequence[DependencySpec],
        preflight: Sequence[DependencySpec],
        dry_run: bool,
        final_checks: bool = True,
    ) -> PipelineResult:
        start = time.monotonic()

        if dry_run:
            report = self.checker.check(
                self.config.required_commands, self.config.required_packages
            )
            if report.missing:
                self._console.warning(
                    "Missing prerequisites: "
                    + ", ".join(name for _, name in sorted(report.missing))
                )
            self._print_plan([s.name for s in to_build])
            return PipelineResult(PipelineOutcome.PLANNED, duration_s=time.monotonic() - start)

        self.check_prerequisites()

        if not self._confirm():
            self._console.info("Build cancelled")
            return PipelineResult(PipelineOutcome.DECLINED, duration_s=time.monotonic() - start)

        context = self.initial_context()
        with PrefixLock(context.install_prefix):
            self._prepare_filesystem(context)
            result = self._build(to_build, preflight, context)
            if result.outcome is PipelineOutcome.SUCCESS and final_checks:
                self._finish(result, context)
        result.duration_s = time.monotonic() - start
        logger.info(f"Pipeline finished: {result.outcome.value} in {result.duration_s:.1f}s")
        return result

    def _build(
        self,
        to_build: Sequence[DependencySpec],
        preflight: Sequence[DependencySpec],
        context: BuildContext,
    ) -> PipelineResult:
        result = PipelineResult(PipelineOutcome.SUCCESS)
        ready: Set[str] = set()

        for spec in preflight:
            probe = self.stage_runner.probe(spec, context)
            if not probe.passed:
                result.outcome = PipelineOutcome.FAILED
                result.error = StageVerificationFailure(
                    spec.name,
                    f"not installed in {context.install_prefix} ({probe.detail}); build it first",
                    probe.lines,
                )
                self._console.error(str(result.error))
                return result
            ready.add(spec.name)

        total = len(to_build)
        for idx, spec in enumerate(to_build, 1):
            if self.token.cancelled:
                self._console.warning(f"Cancelled before {spec.name}")
                result.outcome = PipelineOutcome.CANCELLED
                result.error = PipelineCancelled(
                    f"Cancelled before {spec.name}: {self.token.reason}"
                )
                result.stage_results.append(StageResult(spec.name, StageOutcome.CANCELLED))
                return result

            missing = [r for r in spec.requires if r not in ready]
            if missing:
                raise ConfigurationError(
                    f"{spec.name} cannot start before {', '.join(missing)} succeeded"
                )

            if self.logging_manager is not None:
                self.logging_manager.log_step_header(
                    idx, total, spec.name, f"{spec.name} {spec.revision} from {spec.source_url}"
                )
            self._console.newline()
            self._console.rule(f"[{idx}/{total}] {spec.name} {spec.revision}")

            stage = self.stage_runner.run(spec, context)
            result.stage_results.append(stage)
            if not stage.succeeded:
                result.outcome = PipelineOutcome.FAILED
                result.error = stage.error
                return result

            ready.add(spec.name)
            context = context.with_search_root(self.stage_runner.stage_prefix(spec, context))

        return result

    def _finish(self, result: PipelineResult, context: BuildContext) -> None:
        if self.token.cancelled:
            result.outcome = PipelineOutcome.CANCELLED
            result.error = PipelineCancelled(f"Cancelled before verification: {self.token.reason}")
            return

        self._console.newline()
        self._console.rule("Verifying installation")
        report = self.verifier.verify(context)
        result.verification = report
        try:
            self.verifier.raise_for_missing(report)
        except FinalCapabilityMissing as e:
            self._console.error(str(e))
            result.outcome = PipelineOutcome.FAILED
            result.error = e
            return

        if self.config.emit_env_script:
            try:
                result.env_script = self.emitter.emit(context.install_prefix)
            except EnvironmentArtifactWriteFailure as e:
                self._console.warning(f"{e} (build is still valid)")
                result.env_script_error = e

    def _print_plan(self, names: Sequence[str]) -> None:
        self._console.info("[DRY RUN] No actual build will occur")
        self._console.indent(f"Installation prefix: {self.config.install_prefix}")
        self._console.indent(f"Build directory: {self.config.build_dir}")
        for name, commands in self.plan(names).items():
            spec = self.spec(name)
            self._console.newline()
            self._console.info(f"[bold]{name}[/bold] {spec.revision}")
            self._console.indent(f"Would remove: {self.config.build_dir / name}", level=2)
            for command in commands:
                self._console.plain(
                    f"{Console.INDENT * 2}{command.step.value}: {command.display()}"
                )
            if spec.probe.description:
                self._console.indent(f"verify: {spec.probe.description}", level=2)
