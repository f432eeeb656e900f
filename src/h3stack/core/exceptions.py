"""
Custom exception hierarchy for h3stack.

This module defines the error taxonomy used by the build pipeline. Every
failure names the dependency, stage step or capability that failed and,
where a tool was involved, carries that tool's own diagnostic output.
"""

import logging
from contextlib import contextmanager
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple


class H3StackError(Exception):
    """
    Base exception for all h3stack-specific errors.

    All custom exceptions in h3stack inherit from this class, so a single
    except clause can catch every pipeline failure.
    """
    pass


class ConfigurationError(H3StackError):
    """
    Configuration-related errors.

    Raised when:
    - The configuration file cannot be loaded or parsed
    - Configuration values fail validation
    - The dependency table is inconsistent (unknown or cyclic requirements)
    """
    pass


class MissingPrerequisiteError(H3StackError):
    """
    One or more host prerequisites are missing.

    Raised by the pipeline gate before any filesystem or network mutation.
    ``missing`` holds every missing ``(kind, name)`` pair, not just the first.
    """

    def __init__(self, missing: Iterable[Tuple[str, str]], hint: Optional[str] = None):
        self.missing: FrozenSet[Tuple[str, str]] = frozenset(missing)
        self.hint = hint
        names = ", ".join(f"{name} ({kind})" for kind, name in sorted(self.missing))
        super().__init__(f"Missing prerequisites: {names}")


class PrefixLockError(H3StackError):
    """Another run already holds the exclusive lock on the install prefix."""
    pass


class StageError(H3StackError):
    """
    Failure inside one dependency's build stage.

    Subclasses identify which step failed. ``kind`` is the subclass name,
    which is also what users see in diagnostics.

    Attributes:
        dependency: Name of the dependency being built
        step: Step name (fetch, configure, compile, install, verify)
        diagnostics: Captured tool output lines
    """

    step = "stage"

    def __init__(
        self,
        dependency: str,
        message: str,
        diagnostics: Optional[Sequence[str]] = None,
    ):
        self.dependency = dependency
        self.message = message
        self.diagnostics: List[str] = list(diagnostics or [])
        super().__init__(f"{dependency}: {self.kind} during {self.step}: {message}")

    @property
    def kind(self) -> str:
        return type(self).__name__


class SourceFetchFailure(StageError):
    """Cloning or checking out the source revision failed."""
    step = "fetch"


class ConfigurationFailure(StageError):
    """The dependency's native configure step failed."""
    step = "configure"


class CompileFailure(StageError):
    """The parallel compile step failed."""
    step = "compile"


class InstallFailure(StageError):
    """Installing build products into the prefix failed."""
    step = "install"


class StageVerificationFailure(StageError):
    """The stage-local sanity probe did not match after install."""
    step = "verify"


class FinalCapabilityMissing(H3StackError):
    """
    A required capability is absent from the finished artifact set.

    ``capability`` names the first failing capability; ``capabilities``
    lists all of them in check order.
    """

    def __init__(self, capabilities: Sequence[str], details: Optional[Sequence[str]] = None):
        self.capabilities: List[str] = list(capabilities)
        self.capability = self.capabilities[0] if self.capabilities else "unknown"
        self.diagnostics: List[str] = list(details or [])
        super().__init__(
            f"FinalCapabilityMissing: {', '.join(self.capabilities) or 'unknown'}"
        )


class EnvironmentArtifactWriteFailure(H3StackError):
    """
    The activation script could not be written.

    Reported but never fatal: the script is convenience tooling outside the
    verified capability set.
    """
    pass


class PipelineCancelled(H3StackError):
    """The run was cancelled at a stage boundary."""
    pass


# =============================================================================
# Helpers
# =============================================================================

@contextmanager
def h3stack_error_handler(
    operation: str,
    logger: Optional[logging.Logger] = None,
    reraise: bool = True,
    error_type: type = H3StackError,
):
    """
    Context manager for standardized error handling.

    Taxonomy errors pass through unchanged and are logged at debug level
    only, since the caller reports them. Anything else is logged as an error
    and converted to ``error_type`` so callers only have to handle the
    h3stack hierarchy.

    Args:
        operation: Description of the operation being performed (for logging)
        logger: Logger instance for error messages. If None, errors are not logged.
        reraise: Whether to re-raise the exception after handling (default: True)
        error_type: h3stack exception type to convert generic exceptions to

    Example:
        >>> with h3stack_error_handler("writing setup-env.sh", logger,
        ...                            error_type=EnvironmentArtifactWriteFailure):
        ...     path.write_text(script)
    """
    try:
        yield
    except H3StackError as e:
        if logger:
            logger.debug(f"Error during {operation}: {e}", exc_info=True)
        if reraise:
            raise
    except Exception as e:
        if logger:
            logger.error(f"Error during {operation}: {e}", exc_info=True)
        if reraise:
            raise error_type(f"Failed during {operation}: {e}") from e


__all__ = [
    'H3StackError',
    'ConfigurationError',
    'MissingPrerequisiteError',
    'PrefixLockError',
    'StageError',
    'SourceFetchFailure',
    'ConfigurationFailure',
    'CompileFailure',
    'InstallFailure',
    'StageVerificationFailure',
    'FinalCapabilityMissing',
    'EnvironmentArtifactWriteFailure',
    'PipelineCancelled',
    'h3stack_error_handler',
]
