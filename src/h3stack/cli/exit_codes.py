"""Process exit codes returned by CLI command handlers."""

from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    CONFIG_ERROR = 3
    DEPENDENCY_ERROR = 4
    BUILD_ERROR = 5
    VALIDATION_ERROR = 6
    RESOURCE_BUSY = 7
    USER_INTERRUPT = 130
