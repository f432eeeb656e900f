"""
Base command class for h3stack CLI commands.

This module provides the base class that all command handlers inherit from,
plus the ``cli_exception_handler`` decorator that turns the error taxonomy
into exit codes and readable diagnostics.
"""

import functools
import logging
import traceback
from abc import ABC
from argparse import Namespace
from typing import Any, Callable, ClassVar, Dict, List, Optional

from h3stack.build.cancellation import CancellationToken
from h3stack.core.config import StackConfig
from h3stack.core.exceptions import (
    ConfigurationError,
    EnvironmentArtifactWriteFailure,
    FinalCapabilityMissing,
    H3StackError,
    MissingPrerequisiteError,
    PipelineCancelled,
    PrefixLockError,
    StageError,
)
from h3stack.core.logging_manager import LoggingManager

from ..console import Console, console as global_console
from ..exit_codes import ExitCode
from ..services.command_runner import CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

# Lines of tool output shown on failure; the full log is on disk
DIAGNOSTIC_LINES = 25

# CLI option -> StackConfig field
OPTION_FIELDS = {
    'prefix': 'install_prefix',
    'build_dir': 'build_dir',
    'jobs': 'jobs',
    'openssl_version': 'openssl_version',
    'nghttp3_version': 'nghttp3_version',
    'curl_version': 'curl_version',
}


class BaseCommand(ABC):
    """
    Base class for all CLI command handlers.

    Provides common functionality for loading configuration, setting up
    logging and sharing the command runner and cancellation token.

    Attributes:
        _console: Shared console instance for all commands
        _runner: Command runner override (tests); None means subprocess
        _token: Cancellation token set by the SIGINT handler
    """

    _console: ClassVar[Console] = global_console
    _runner: ClassVar[Optional[CommandRunner]] = None
    _token: ClassVar[CancellationToken] = CancellationToken()

    @classmethod
    def set_console(cls, console: Console) -> None:
        """
        Set the console instance for all commands.

        Useful for testing or configuring output behavior.
        """
        BaseCommand._console = console

    @classmethod
    def set_runner(cls, runner: Optional[CommandRunner]) -> None:
        BaseCommand._runner = runner

    @classmethod
    def set_cancellation_token(cls, token: CancellationToken) -> None:
        BaseCommand._token = token

    @staticmethod
    def get_runner() -> CommandRunner:
        return BaseCommand._runner or SubprocessRunner()

    @staticmethod
    def get_arg(args: Namespace, name: str, default: Any = None) -> Any:
        """Read an option that may be absent because of ``argparse.SUPPRESS``."""
        return getattr(args, name, default)

    @staticmethod
    def config_overrides(args: Namespace) -> Dict[str, Any]:
        """Translate CLI options into StackConfig overrides. Unset options map to None."""
        overrides = {
            field: BaseCommand.get_arg(args, option)
            for option, field in OPTION_FIELDS.items()
        }
        if BaseCommand.get_arg(args, 'yes', False):
            overrides['interactive'] = False
        if BaseCommand.get_arg(args, 'debug', False):
            overrides['log_level'] = 'DEBUG'
        return overrides

    @staticmethod
    def load_config(args: Namespace) -> StackConfig:
        """
        Resolve configuration from ``--config``, ``$H3STACK_CONFIG`` or defaults.

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        return StackConfig.load(
            BaseCommand.get_arg(args, 'config'),
            overrides=BaseCommand.config_overrides(args),
        )

    @staticmethod
    def setup_logging(args: Namespace, config: StackConfig) -> LoggingManager:
        debug = BaseCommand.get_arg(args, 'debug', False)
        BaseCommand._console.debug_enabled = debug
        return LoggingManager(level=config.log_level, debug=debug)

    @staticmethod
    def print_diagnostics(lines: List[str], limit: int = DIAGNOSTIC_LINES) -> None:
        if not lines:
            return
        BaseCommand._console.indent("=== Tool Output ===", level=1)
        BaseCommand._console.tail(lines, limit=limit)


def cli_exception_handler(func: Callable[[Namespace], int]) -> Callable[[Namespace], int]:
    """
    Decorator mapping h3stack errors raised by a handler to exit codes.

    Every message names the failing dependency, step or capability and
    shows the tail of the tool's own output when one is attached.
    """

    @functools.wraps(func)
    def wrapper(args: Namespace) -> int:
        console = BaseCommand._console
        try:
            return int(func(args))
        except KeyboardInterrupt:
            console.newline()
            console.warning("Interrupted by user")
            return ExitCode.USER_INTERRUPT
        except MissingPrerequisiteError as e:
            console.error(str(e))
            for kind, name in sorted(e.missing):
                console.indent(f"- {name} ({kind})")
            if e.hint:
                console.info("Install them with:")
                console.plain(f"  {e.hint}")
            return ExitCode.DEPENDENCY_ERROR
        except ConfigurationError as e:
            console.error(f"Configuration error: {e}")
            return ExitCode.CONFIG_ERROR
        except PrefixLockError as e:
            console.error(str(e))
            return ExitCode.RESOURCE_BUSY
        except StageError as e:
            console.error(f"Build failed: {e}")
            BaseCommand.print_diagnostics(e.diagnostics)
            return ExitCode.BUILD_ERROR
        except FinalCapabilityMissing as e:
            console.error(f"Verification failed: {e}")
            BaseCommand.print_diagnostics(e.diagnostics)
            return ExitCode.VALIDATION_ERROR
        except PipelineCancelled as e:
            console.warning(str(e))
            return ExitCode.USER_INTERRUPT
        except EnvironmentArtifactWriteFailure as e:
            console.error(str(e))
            return ExitCode.GENERAL_ERROR
        except H3StackError as e:
            console.error(str(e))
            return ExitCode.GENERAL_ERROR
        except Exception as e:  # noqa: BLE001 - top-level fallback
            console.error(f"Unexpected error: {e}")
            if BaseCommand.get_arg(args, 'debug', False):
                traceback.print_exc()
            logger.debug("Unhandled exception", exc_info=True)
            return ExitCode.GENERAL_ERROR

    return wrapper
