"""
Top-level doctor command handler for the h3stack CLI.

Reports every host prerequisite without building anything.
"""

from argparse import Namespace

from ..exit_codes import ExitCode
from ..services.prerequisites import PrerequisiteChecker
from .base import BaseCommand, cli_exception_handler


class DoctorCommands(BaseCommand):
    """Handlers for the top-level doctor command."""

    @staticmethod
    @cli_exception_handler
    def doctor(args: Namespace) -> int:
        """
        Execute: h3stack doctor

        Args:
            args: Parsed arguments namespace

        Returns:
            Exit code (0 if every prerequisite is present)
        """
        console = BaseCommand._console
        config = BaseCommand.load_config(args)

        checker = PrerequisiteChecker(
            runner=BaseCommand.get_runner(),
            skip_package_check=config.skip_package_check,
        )
        console.info("Running h3stack prerequisite diagnostics...")
        console.indent(f"Package manager: {checker.platform.value}")

        report = checker.check(config.required_commands, config.required_packages)
        rows = []
        for status in report.statuses:
            if status.skipped:
                state = "[yellow]SKIPPED[/yellow]"
            elif status.found:
                state = "[green]OK[/green]"
            else:
                state = "[red]MISSING[/red]"
            rows.append((status.name, status.kind, state, status.path or ""))
        console.table(["Name", "Kind", "Status", "Location"], rows, title="Prerequisites")

        if report.ok:
            console.success("All prerequisites found")
            return ExitCode.SUCCESS

        console.error(f"{len(report.missing)} prerequisite(s) missing")
        hint = report.install_hint()
        if hint:
            console.info("Install them with:")
            console.plain(f"  {hint}")
        return ExitCode.DEPENDENCY_ERROR
