"""
Activation script for an installed HTTP/3 prefix.

Writes ``<prefix>/setup-env.sh``. Sourcing it exports the same search paths
the pipeline used internally (extending, never replacing, the caller's
values) and prints a short capability summary by re-running the installed
tools with the verifier's own rule table.
"""

import logging
import os
import shlex
import stat
from contextlib import suppress
from pathlib import Path
from typing import List, Optional

from h3stack.build.context import (
    LIBRARY_PATH_VAR,
    PATH_VAR,
    PKG_CONFIG_PATH_VAR,
    search_entries,
)
from h3stack.core.exceptions import EnvironmentArtifactWriteFailure, h3stack_error_handler

from ..console import Console
from .base import BaseService
from .installation_verifier import HTTP3, WEBSOCKET, CapabilityRuleTable

logger = logging.getLogger(__name__)

ENV_SCRIPT_NAME = "setup-env.sh"
PREFIX_VAR = "HTTP3_PREFIX"

SUMMARY_LABELS = {HTTP3: "HTTP/3", WEBSOCKET: "WebSocket"}

# Exports reference the prefix variable so its value is never re-expanded.
PREFIX_REF = Path(f"${{{PREFIX_VAR}}}")


def _export(var: str, entries: List[str]) -> str:
    joined = os.pathsep.join(entries)
    return f'export {var}="{joined}${{{var}:+{os.pathsep}${var}}}"'


class EnvironmentEmitter(BaseService):
    """Render and write the shell activation script."""

    def __init__(
        self,
        console: Optional[Console] = None,
        rules: Optional[CapabilityRuleTable] = None,
    ):
        super().__init__(console=console)
        self.rules = rules or CapabilityRuleTable.load()

    def _capability_line(self, capability: str) -> str:
        label = SUMMARY_LABELS.get(capability, capability)
        rule = self.rules.rules[capability]
        expressions = " ".join(f"-e {shlex.quote(p)}" for p in rule.patterns)
        return (
            f'echo "  {label}: $(curl --version | grep -qE {expressions} '
            f'&& echo ENABLED || echo \'NOT FOUND\')"'
        )

    def render(self, install_prefix: Path) -> str:
        """Return the script text for ``install_prefix``."""
        bins, libs, pkgs = search_entries(PREFIX_REF)
        lines = [
            "#!/bin/bash",
            "# HTTP/3 stack environment (OpenSSL native QUIC, nghttp3, curl)",
            "# Generated by h3stack; source this file, do not execute it.",
            "",
            f"export {PREFIX_VAR}={shlex.quote(str(install_prefix))}",
            _export(PATH_VAR, bins),
            _export(LIBRARY_PATH_VAR, libs),
            _export(PKG_CONFIG_PATH_VAR, pkgs),
            "",
            'echo "HTTP/3 stack environment configured (OpenSSL native QUIC):"',
            'echo "  OpenSSL: $(openssl version)"',
            'echo "  curl: $(curl --version | head -1)"',
        ]
        lines.extend(self._capability_line(c) for c in (HTTP3, WEBSOCKET))
        return "\n".join(lines) + "\n"

    def emit(self, install_prefix: Path) -> Path:
        """
        Write the activation script.

        Args:
            install_prefix: Installed prefix; the script lands at its root

        Returns:
            Path of the written script

        Raises:
            EnvironmentArtifactWriteFailure: If the script cannot be written
        """
        path = Path(install_prefix) / ENV_SCRIPT_NAME
        tmp_path = path.with_name(f".{ENV_SCRIPT_NAME}.tmp")
        with h3stack_error_handler(
            f"writing {path}", logger, error_type=EnvironmentArtifactWriteFailure
        ):
            try:
                tmp_path.write_text(self.render(Path(install_prefix)), encoding="utf-8")
                mode = tmp_path.stat().st_mode
                tmp_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                tmp_path.replace(path)
            except OSError as e:
                with suppress(OSError):
                    tmp_path.unlink(missing_ok=True)
                raise EnvironmentArtifactWriteFailure(f"Could not write {path}: {e}") from e
        self._console.success(f"Created {path}")
        return path
