"""
Host prerequisite registry and checker.

Loads the prerequisite definitions from system_deps.yml and provides
platform-aware detection and install-command generation. The checker is
read-only: it resolves commands on PATH and queries the package database,
and never touches the filesystem or network.
"""

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from importlib.resources import files
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import yaml

from h3stack.core.exceptions import MissingPrerequisiteError

from .command_runner import CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

COMMAND = "command"
PACKAGE = "package"


class Platform(Enum):
    """Detected package-manager platform."""
    APT = "apt"
    DNF = "dnf"
    BREW = "brew"
    UNKNOWN = "unknown"


# argv prefix that exits 0 when a package is installed
PACKAGE_PROBES: Dict[Platform, Tuple[str, ...]] = {
    Platform.APT: ("dpkg", "-s"),
    Platform.DNF: ("rpm", "-q"),
    Platform.BREW: ("brew", "list", "--versions"),
}


@lru_cache(maxsize=1)
def load_registry() -> Dict[str, Any]:
    """Load the bundled system_deps.yml."""
    text = (files("h3stack.resources") / "system_deps.yml").read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def detect_platform(which: Optional[Callable[[str], Optional[str]]] = None) -> Platform:
    """Detect the package manager. Priority: apt -> dnf -> brew -> unknown."""
    which = which or shutil.which
    if which("apt-get"):
        return Platform.APT
    if which("dnf"):
        return Platform.DNF
    if which("brew"):
        return Platform.BREW
    return Platform.UNKNOWN


@dataclass
class PrerequisiteStatus:
    """Result of checking a single prerequisite."""
    kind: str
    name: str
    display_name: str
    found: bool
    path: Optional[str] = None
    skipped: bool = False
    package: Optional[str] = None


@dataclass
class PrerequisiteReport:
    """
    All prerequisite statuses from one check.

    ``missing`` is the full set of ``(kind, name)`` pairs that failed, so
    an operator can fix everything in one pass.
    """
    statuses: List[PrerequisiteStatus] = field(default_factory=list)
    platform: Platform = Platform.UNKNOWN

    @property
    def missing(self) -> FrozenSet[Tuple[str, str]]:
        return frozenset((s.kind, s.name) for s in self.statuses if not s.found)

    @property
    def ok(self) -> bool:
        return not self.missing

    def install_hint(self) -> Optional[str]:
        """
        Render one install command covering every missing item.

        Returns None when nothing is missing or the platform is unknown.
        """
        packages = sorted({
            s.package for s in self.statuses if not s.found and s.package
        })
        if not packages:
            return None
        joined = " ".join(packages)
        if self.platform == Platform.APT:
            return f"sudo apt-get update && sudo apt-get install -y {joined}"
        elif self.platform == Platform.DNF:
            return f"sudo dnf install -y {joined}"
        elif self.platform == Platform.BREW:
            return f"brew install {joined}"
        return None

    def raise_for_missing(self) -> None:
        if self.missing:
            raise MissingPrerequisiteError(self.missing, hint=self.install_hint())


class PrerequisiteChecker:
    """
    Check host commands and packages against the registry.

    Usage::

        checker = PrerequisiteChecker()
        report = checker.check(["git", "make"], ["libpsl-dev"])
        report.raise_for_missing()

    Args:
        runner: Runs package-database probes
        which: PATH resolver, ``shutil.which`` by default
        platform: Package-manager platform; detected when omitted
        skip_package_check: Treat packages as present without probing
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        which: Optional[Callable[[str], Optional[str]]] = None,
        platform: Optional[Platform] = None,
        skip_package_check: bool = False,
        registry: Optional[Dict[str, Any]] = None,
    ):
        self.runner = runner or SubprocessRunner()
        self.which = which or shutil.which
        self.platform = platform if platform is not None else detect_platform(self.which)
        self.skip_package_check = skip_package_check
        self._registry = registry if registry is not None else load_registry()

    def _definition(self, name: str) -> Dict[str, Any]:
        return self._registry.get("dependencies", {}).get(name) or {}

    def _package_name(self, name: str) -> str:
        """Platform-specific package name for a registry entry."""
        packages = self._definition(name).get("packages", {})
        return packages.get(self.platform.value) or name

    # ── Probes ────────────────────────────────────────────────────────

    def check_command(self, name: str) -> PrerequisiteStatus:
        info = self._definition(name)
        check = info.get("check", {})
        candidates = [check.get("command") or name]
        candidates.extend(check.get("alternatives", []))

        location = None
        for candidate in candidates:
            location = self.which(candidate)
            if location:
                break

        packages = info.get("packages", {})
        return PrerequisiteStatus(
            kind=COMMAND,
            name=name,
            display_name=info.get("display_name", name),
            found=bool(location),
            path=location,
            package=packages.get(self.platform.value),
        )

    def check_package(self, name: str) -> PrerequisiteStatus:
        info = self._definition(name)
        display_name = info.get("display_name", name)
        package = self._package_name(name)

        if self.skip_package_check:
            return PrerequisiteStatus(
                kind=PACKAGE, name=name, display_name=display_name,
                found=True, skipped=True, package=package,
            )

        probe = PACKAGE_PROBES.get(self.platform)
        if probe is None:
            logger.warning(f"Cannot probe package {name} on an unknown platform")
            return PrerequisiteStatus(
                kind=PACKAGE, name=name, display_name=display_name, found=False,
            )

        result = self.runner.run(list(probe) + [package])
        logger.debug(f"Package probe {name}: exit {result.returncode}")
        return PrerequisiteStatus(
            kind=PACKAGE,
            name=name,
            display_name=display_name,
            found=result.ok,
            path=f"({probe[0]}: {package})" if result.ok else None,
            package=package,
        )

    def check(
        self,
        commands: Iterable[str],
        packages: Sequence[str] = (),
    ) -> PrerequisiteReport:
        """
        Check every command and package. Never stops at the first miss.

        Args:
            commands: Command names that must resolve on PATH
            packages: Package names that must be in the package database

        Returns:
            PrerequisiteReport listing each status
        """
        statuses = [self.check_command(name) for name in commands]
        statuses.extend(self.check_package(name) for name in packages)
        report = PrerequisiteReport(statuses=statuses, platform=self.platform)
        if report.missing:
            logger.info(f"Missing prerequisites: {sorted(report.missing)}")
        return report

    def require(
        self,
        commands: Iterable[str],
        packages: Sequence[str] = (),
    ) -> PrerequisiteReport:
        """Like ``check`` but raise MissingPrerequisiteError when anything is missing."""
        report = self.check(commands, packages)
        report.raise_for_missing()
        return report
