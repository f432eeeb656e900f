"""
Build context shared by every stage of one pipeline run.

The context replaces process-wide environment mutation: the search paths a
stage needs are computed once from the caller's environment and passed
explicitly. ``with_search_root`` returns a new context rather than changing
the existing one.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

# Variables inherited from a parent make that trigger spurious sub-makes
MAKE_VARIABLES = ("MAKEFLAGS", "MAKELEVEL", "MAKE", "MFLAGS", "MAKEOVERRIDES")

PATH_VAR = "PATH"
LIBRARY_PATH_VAR = "LD_LIBRARY_PATH"
PKG_CONFIG_PATH_VAR = "PKG_CONFIG_PATH"


def _prepend_paths(existing: Optional[str], entries: Iterable[str]) -> str:
    """Prepend entries to a path list, keeping the existing tail and dropping duplicates."""
    current = [p for p in (existing or "").split(os.pathsep) if p]
    new = [e for e in entries if e not in current]
    return os.pathsep.join(new + current)


def search_entries(root: Path) -> Tuple[List[str], List[str], List[str]]:
    """Return (bin, library, pkg-config) directories under an install root."""
    bins = [str(root / "bin")]
    libs = [str(root / "lib"), str(root / "lib64")]
    pkgs = [str(root / "lib" / "pkgconfig"), str(root / "lib64" / "pkgconfig")]
    return bins, libs, pkgs


@dataclass(frozen=True)
class BuildContext:
    """
    Read-only view of the build location and environment.

    Attributes:
        install_prefix: Absolute path of the shared install prefix
        build_dir: Absolute path holding per-dependency working directories
        jobs: Parallel compile workers passed to ``make -j``
        env: Environment for every tool invocation
        search_roots: Install roots already threaded into ``env``
    """
    install_prefix: Path
    build_dir: Path
    jobs: int
    env: Mapping[str, str] = field(default_factory=dict)
    search_roots: Tuple[Path, ...] = ()

    def __post_init__(self):
        if not self.install_prefix.is_absolute():
            raise ValueError(f"install_prefix must be absolute, got {self.install_prefix}")
        if not self.build_dir.is_absolute():
            raise ValueError(f"build_dir must be absolute, got {self.build_dir}")
        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {self.jobs}")
        if not isinstance(self.env, MappingProxyType):
            object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @classmethod
    def create(
        cls,
        install_prefix: Path,
        build_dir: Path,
        jobs: int,
        base_env: Optional[Mapping[str, str]] = None,
    ) -> "BuildContext":
        """
        Create the initial context for a run.

        The caller's PATH, LD_LIBRARY_PATH and PKG_CONFIG_PATH are extended
        with the prefix directories, never replaced. Make-related variables
        are dropped.

        Args:
            install_prefix: Shared install prefix
            build_dir: Directory for source checkouts
            jobs: Parallel compile workers
            base_env: Environment to extend (defaults to ``os.environ``)
        """
        env = dict(os.environ if base_env is None else base_env)
        for var in MAKE_VARIABLES:
            env.pop(var, None)
        context = cls(
            install_prefix=Path(install_prefix),
            build_dir=Path(build_dir),
            jobs=jobs,
            env=env,
        )
        return context.with_search_root(context.install_prefix)

    def with_search_root(self, root: Path) -> "BuildContext":
        """Return a context whose search paths also cover ``root``."""
        root = Path(root)
        if root in self.search_roots:
            return self
        bins, libs, pkgs = search_entries(root)
        env = dict(self.env)
        env[PATH_VAR] = _prepend_paths(env.get(PATH_VAR), bins)
        env[LIBRARY_PATH_VAR] = _prepend_paths(env.get(LIBRARY_PATH_VAR), libs)
        env[PKG_CONFIG_PATH_VAR] = _prepend_paths(env.get(PKG_CONFIG_PATH_VAR), pkgs)
        return replace(self, env=env, search_roots=self.search_roots + (root,))

    def source_dir(self, name: str) -> Path:
        """Working directory for one dependency's checkout."""
        return self.build_dir / name

    def expand(self, value: str) -> str:
        """Expand ``{prefix}`` placeholders in a flag or argument."""
        return value.replace("{prefix}", str(self.install_prefix))

    def with_overrides(self, **env: str) -> Mapping[str, str]:
        """Environment for a single invocation with extra variables set."""
        merged = dict(self.env)
        merged.update(env)
        return merged
