"""
h3stack CLI Argument Parser.

Provides the command-line interface parser. Each command maps to one
handler through ``set_defaults(func=...)``.

Commands:
    - build: Build OpenSSL, nghttp3 and curl into one prefix and verify it
    - stage: Rebuild a single dependency
    - verify: Run the final capability checks only
    - doctor: Report host prerequisites
    - env: (Re)write setup-env.sh
"""

import argparse
from typing import List, Optional

from h3stack.build.specs import CURL, NGHTTP3, OPENSSL

try:
    from h3stack.h3stack_version import __version__
except ImportError:
    __version__ = "0+unknown"

DEPENDENCIES = [OPENSSL, NGHTTP3, CURL]


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


class CLIParser:
    """
    Main CLI parser.

    Attributes:
        common_parser: Parent parser with global options (--config, --debug)
        location_parser: Parent parser with prefix/build-dir options
        build_parser: Parent parser with build options
        parser: Main argument parser with all subcommands registered
    """

    def __init__(self):
        """Initialize the CLI parser with common options and all subcommands."""
        self.common_parser = self._create_common_parser()
        self.location_parser = self._create_location_parser()
        self.build_parser = self._create_build_parser()
        self.parser = self._create_parser()

    def _create_common_parser(self) -> argparse.ArgumentParser:
        """Create a parent parser with common arguments."""
        # Use SUPPRESS to avoid overwriting global flags with subcommand defaults
        parser = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
        parser.add_argument('--config', type=str,
                          help='Path to a YAML configuration file (default: $H3STACK_CONFIG)')
        parser.add_argument('--debug', action='store_true',
                          help='Enable debug output')
        return parser

    def _create_location_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
        parser.add_argument('--prefix', type=str,
                          help='Installation prefix (default: ~/http3-stack-simple)')
        parser.add_argument('--build-dir', type=str, dest='build_dir',
                          help='Directory for source checkouts (default: ~/http3-build-simple)')
        return parser

    def _create_build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
        parser.add_argument('--jobs', '-j', type=positive_int,
                          help='Parallel compile jobs (default: number of CPUs)')
        parser.add_argument('--openssl-version', type=str, dest='openssl_version',
                          help='OpenSSL tag or branch (default: openssl-3.5.4)')
        parser.add_argument('--nghttp3-version', type=str, dest='nghttp3_version',
                          help='nghttp3 tag or branch (default: v1.1.0)')
        parser.add_argument('--curl-version', type=str, dest='curl_version',
                          help='curl tag or branch (default: curl-8_11_0)')
        parser.add_argument('--yes', '-y', action='store_true',
                          help='Do not ask for confirmation')
        parser.add_argument('--dry-run', action='store_true', dest='dry_run',
                          help='Show what would be executed without running')
        return parser

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the main parser with global options and subparsers."""
        parser = argparse.ArgumentParser(
            prog='h3stack',
            description='h3stack - build curl with HTTP/3 and WebSocket support',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            parents=[self.common_parser],
            epilog="""
Examples:
  h3stack doctor
  h3stack build --prefix ~/http3-stack --jobs 8
  h3stack build --curl-version curl-8_12_0 --yes
  h3stack stage curl
  h3stack verify
  h3stack env

For more help on a specific command:
  h3stack <command> --help
"""
        )

        parser.add_argument('--version', action='version',
                          version=f'h3stack {__version__}')

        subparsers = parser.add_subparsers(
            dest='command',
            required=True,
            help='Command',
            metavar='<command>'
        )

        self._register_build_commands(subparsers)
        self._register_doctor_commands(subparsers)

        return parser

    def _register_build_commands(self, subparsers):
        """Register build, stage, verify and env."""
        from .commands import StackCommands

        build_parser = subparsers.add_parser(
            'build',
            help='Build and verify the full stack',
            description='Check prerequisites, build OpenSSL, nghttp3 and curl, '
                        'verify HTTP/3 and WebSocket support and write setup-env.sh',
            parents=[self.common_parser, self.location_parser, self.build_parser]
        )
        build_parser.set_defaults(func=StackCommands.build)

        stage_parser = subparsers.add_parser(
            'stage',
            help='Rebuild a single dependency',
            description='Rebuild one dependency into an existing prefix; the '
                        'dependencies it links against must already be installed',
            parents=[self.common_parser, self.location_parser, self.build_parser]
        )
        stage_parser.add_argument('name', choices=DEPENDENCIES, metavar='NAME',
                                help=f'Dependency to rebuild. Choices: {", ".join(DEPENDENCIES)}')
        stage_parser.set_defaults(func=StackCommands.stage)

        verify_parser = subparsers.add_parser(
            'verify',
            help='Verify an installed prefix',
            description='Check the installed OpenSSL and curl for the required capabilities',
            parents=[self.common_parser, self.location_parser]
        )
        verify_parser.set_defaults(func=StackCommands.verify)

        env_parser = subparsers.add_parser(
            'env',
            help='Write setup-env.sh',
            description='(Re)write the activation script for an installed prefix',
            parents=[self.common_parser, self.location_parser]
        )
        env_parser.set_defaults(func=StackCommands.env)

    def _register_doctor_commands(self, subparsers):
        """Register top-level doctor command."""
        from .commands import DoctorCommands

        doctor_parser = subparsers.add_parser(
            'doctor',
            help='Check host prerequisites',
            description='Report required build tools and packages without building',
            parents=[self.common_parser]
        )
        doctor_parser.set_defaults(func=DoctorCommands.doctor)

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Args:
            args: List of argument strings (for testing). If None, uses sys.argv.

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)
