"""
Confirmation strategies asked before the pipeline mutates anything.

The interactive strategy prompts on the terminal; the automatic one is used
for ``--yes``, non-interactive configs and containers.
"""

from typing import Optional, Protocol

from rich.prompt import Confirm

from ..console import Console, console as global_console


class ConfirmationStrategy(Protocol):
    def confirm(self, message: str) -> bool:
        ...


class InteractiveConfirmation:
    """Ask the user with a y/N prompt. Anything but yes declines."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or global_console

    def confirm(self, message: str) -> bool:
        try:
            return Confirm.ask(message, default=False, console=self._console.rich)
        except EOFError:
            # stdin closed: nobody can answer
            return False


class AutoConfirmation:
    """Always proceed."""

    def confirm(self, message: str) -> bool:
        return True


def confirmation_for(interactive: bool, console: Optional[Console] = None) -> ConfirmationStrategy:
    if interactive:
        return InteractiveConfirmation(console)
    return AutoConfirmation()
