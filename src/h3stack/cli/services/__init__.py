# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2025-2026 h3stack contributors

"""
CLI Services for h3stack.

This package provides the services behind the CLI commands:

Build:
- Pipeline: Gate, confirmation, lock, ordered stages, verification
- StageRunner: fetch, configure, compile, install, verify for one dependency
- CommandRunner / SubprocessRunner: External command execution

Checks:
- PrerequisiteChecker: Host commands and packages
- InstallationVerifier: Capability rule table over the installed tools

Artifacts:
- EnvironmentEmitter: setup-env.sh activation script
- PrefixLock: Exclusive lock on the install prefix
"""

from .base import BaseService
from .command_runner import CommandResult, CommandRunner, SubprocessRunner
from .confirmation import AutoConfirmation, InteractiveConfirmation, confirmation_for
from .environment_emitter import EnvironmentEmitter
from .installation_verifier import (
    CapabilityRule,
    CapabilityRuleTable,
    InstallationVerifier,
    format_capability_summary,
)
from .pipeline import Pipeline, order_dependencies
from .prefix_lock import PrefixLock
from .prerequisites import Platform, PrerequisiteChecker, PrerequisiteReport
from .stage_runner import PlannedCommand, StageRunner

__all__ = [
    # Base
    'BaseService',
    # Build
    'Pipeline',
    'order_dependencies',
    'StageRunner',
    'PlannedCommand',
    'CommandResult',
    'CommandRunner',
    'SubprocessRunner',
    # Checks
    'Platform',
    'PrerequisiteChecker',
    'PrerequisiteReport',
    'CapabilityRule',
    'CapabilityRuleTable',
    'InstallationVerifier',
    'format_capability_summary',
    # Artifacts
    'EnvironmentEmitter',
    'PrefixLock',
    # Confirmation
    'AutoConfirmation',
    'InteractiveConfirmation',
    'confirmation_for',
]
