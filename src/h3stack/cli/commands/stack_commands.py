"""
Build command handlers for the h3stack CLI.

This module implements handlers for building the full stack, rebuilding a
single stage, verifying an existing prefix and (re)writing setup-env.sh.
"""

from argparse import Namespace

from h3stack.build.context import BuildContext
from h3stack.build.results import PipelineOutcome, PipelineResult
from h3stack.core.config import StackConfig

from ..exit_codes import ExitCode
from ..services.confirmation import AutoConfirmation
from ..services.environment_emitter import EnvironmentEmitter
from ..services.installation_verifier import (
    CapabilityRuleTable,
    InstallationVerifier,
    format_capability_summary,
)
from ..services.pipeline import Pipeline
from .base import BaseCommand, cli_exception_handler

TEST_COMMAND = "curl --http3 https://cloudflare-quic.com"

DESCRIPTIONS = {
    "openssl": "native QUIC",
    "nghttp3": "HTTP/3 framing",
    "curl": "HTTP/3 + WebSocket",
}


class StackCommands(BaseCommand):
    """Handlers for build, stage, verify and env."""

    @staticmethod
    def _pipeline(config: StackConfig, logging_manager) -> Pipeline:
        return Pipeline(
            config,
            runner=BaseCommand.get_runner(),
            console=BaseCommand._console,
            confirmation=None if config.interactive else AutoConfirmation(),
            token=BaseCommand._token,
            logging_manager=logging_manager,
        )

    @staticmethod
    def _print_stage_table(result: PipelineResult) -> None:
        if not result.stage_results:
            return
        rows = [
            (
                stage.dependency,
                stage.outcome.value,
                f"{stage.duration_s:.0f}s",
                stage.failure_kind or "",
            )
            for stage in result.stage_results
        ]
        BaseCommand._console.table(["Dependency", "Outcome", "Duration", "Failure"], rows)

    @staticmethod
    def _finish(result: PipelineResult) -> int:
        """Map a non-success result to an exit code via the raised error."""
        if result.outcome in (PipelineOutcome.PLANNED, PipelineOutcome.DECLINED):
            return ExitCode.SUCCESS
        StackCommands._print_stage_table(result)
        if result.error is not None:
            raise result.error
        return ExitCode.GENERAL_ERROR

    @staticmethod
    def print_summary(config: StackConfig, result: PipelineResult) -> None:
        console = BaseCommand._console
        versions = config.version_spec()

        console.newline()
        console.panel("HTTP/3 Stack Successfully Built!\n(OpenSSL native QUIC)", style="green")
        console.newline()
        console.info(f"Installation directory: {config.install_prefix}")
        if result.env_script is not None:
            console.info("To use this stack:")
            console.plain(f"  source {result.env_script}")
        console.info("Test HTTP/3:")
        console.plain(f"  {TEST_COMMAND}")
        console.info("What was built:")
        for name, description in DESCRIPTIONS.items():
            console.indent(f"- {name} {versions.revision_for(name)} ({description})")
        if result.verification is not None:
            console.newline()
            console.success(format_capability_summary(result.verification))

    @staticmethod
    @cli_exception_handler
    def build(args: Namespace) -> int:
        """
        Execute: h3stack build

        Args:
            args: Parsed arguments namespace

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        config = BaseCommand.load_config(args)
        manager = BaseCommand.setup_logging(args, config)
        try:
            BaseCommand._console.panel("HTTP/3 Stack Build (OpenSSL native QUIC)", style="blue")
            pipeline = StackCommands._pipeline(config, manager)
            result = pipeline.run(dry_run=BaseCommand.get_arg(args, 'dry_run', False))
            if not result.succeeded:
                return StackCommands._finish(result)
            StackCommands._print_stage_table(result)
            StackCommands.print_summary(config, result)
            return ExitCode.SUCCESS
        finally:
            manager.close()

    @staticmethod
    @cli_exception_handler
    def stage(args: Namespace) -> int:
        """
        Execute: h3stack stage NAME

        Rebuilds one dependency into an existing prefix. The dependencies it
        links against must already be installed.
        """
        config = BaseCommand.load_config(args)
        manager = BaseCommand.setup_logging(args, config)
        try:
            pipeline = StackCommands._pipeline(config, manager)
            result = pipeline.run_stage(
                args.name, dry_run=BaseCommand.get_arg(args, 'dry_run', False)
            )
            if not result.succeeded:
                return StackCommands._finish(result)
            BaseCommand._console.success(f"Rebuilt {args.name}")
            BaseCommand._console.indent("Run `h3stack verify` to re-check the installed capabilities")
            return ExitCode.SUCCESS
        finally:
            manager.close()

    @staticmethod
    @cli_exception_handler
    def verify(args: Namespace) -> int:
        """
        Execute: h3stack verify

        Runs only the final capability checks against an installed prefix.
        """
        config = BaseCommand.load_config(args)
        manager = BaseCommand.setup_logging(args, config)
        try:
            context = BuildContext.create(config.install_prefix, config.build_dir, config.jobs)
            verifier = InstallationVerifier(
                runner=BaseCommand.get_runner(),
                console=BaseCommand._console,
                rules=CapabilityRuleTable.load(config.extra_capability_patterns),
                openssl_major=config.version_spec().openssl_major,
            )
            BaseCommand._console.info(f"Verifying {config.install_prefix}")
            report = verifier.verify_or_raise(context)
            BaseCommand._console.success(format_capability_summary(report))
            return ExitCode.SUCCESS
        finally:
            manager.close()

    @staticmethod
    @cli_exception_handler
    def env(args: Namespace) -> int:
        """
        Execute: h3stack env

        Writes ``<prefix>/setup-env.sh`` for an existing installation.
        """
        config = BaseCommand.load_config(args)
        emitter = EnvironmentEmitter(
            console=BaseCommand._console,
            rules=CapabilityRuleTable.load(config.extra_capability_patterns),
        )
        path = emitter.emit(config.install_prefix)
        BaseCommand._console.plain(f"  source {path}")
        return ExitCode.SUCCESS
