"""Base class for CLI services."""

from typing import Optional

from ..console import Console, console as global_console


class BaseService:
    """
    Common plumbing for services that report progress to the user.

    Attributes:
        _console: Console used for all output of this service
    """

    def __init__(self, console: Optional[Console] = None):
        self._console = console or global_console
