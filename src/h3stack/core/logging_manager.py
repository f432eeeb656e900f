"""
Logging configuration for h3stack runs.

Console output for humans goes through the rich-backed Console; this module
wires the standard ``logging`` tree used by the services. Warnings and
errors reach the terminal through a RichHandler. A detailed run log file is
attached only once the pipeline is allowed to touch the filesystem.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

ROOT_LOGGER_NAME = "h3stack"

DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class LoggingManager:
    """
    Owns the handlers of the ``h3stack`` logger for one CLI invocation.

    Attributes:
        logger: The package root logger
        log_file: Path of the run log, once file logging is enabled
    """

    def __init__(self, level: str = "INFO", debug: bool = False):
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
        self.log_file: Optional[Path] = None
        self._file_handler: Optional[logging.FileHandler] = None

        self._remove_handlers()
        console_handler = RichHandler(
            level=logging.DEBUG if debug else logging.WARNING,
            show_path=debug,
            markup=False,
            rich_tracebacks=debug,
        )
        self.logger.addHandler(console_handler)

    def _remove_handlers(self) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    def enable_file_logging(self, log_dir: Path) -> Path:
        """
        Start writing the detailed run log under ``log_dir``.

        Creates the directory, so callers must only invoke this after the
        prerequisite gate has passed.
        """
        if self._file_handler is not None and self.log_file is not None:
            return self.log_file
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = log_dir / f"h3stack_{timestamp}.log"
        handler = logging.FileHandler(self.log_file, encoding="utf-8")
        handler.setLevel(self.level)
        handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        self.logger.addHandler(handler)
        self._file_handler = handler
        self.logger.info(f"Run log: {self.log_file}")
        return self.log_file

    def log_step_header(self, idx: int, total: int, name: str, description: str) -> None:
        self.logger.info("=" * 60)
        self.logger.info(f"Stage {idx}/{total}: {name}")
        self.logger.info(description)
        self.logger.info("=" * 60)

    def close(self) -> None:
        self._remove_handlers()
        self._file_handler = None
        self.logger.propagate = True
