"""
Command handlers for the h3stack CLI.

Each command class groups the handlers of one area; handlers are static
methods taking the parsed Namespace and returning an exit code.
"""

from .base import BaseCommand, cli_exception_handler
from .doctor_commands import DoctorCommands
from .stack_commands import StackCommands

__all__ = [
    'BaseCommand',
    'cli_exception_handler',
    'DoctorCommands',
    'StackCommands',
]
