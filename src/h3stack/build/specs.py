"""
Dependency table for the HTTP/3 toolchain.

Each dependency is described once by an immutable ``DependencySpec``. The
pipeline, the stage runner and the dry-run planner all consume the same
table; nothing else encodes per-dependency build knowledge.

Configure flags and probe arguments may contain a ``{prefix}`` placeholder
that is expanded against the BuildContext at run time, so specs stay
independent of where the stack is installed.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class BuildKind(Enum):
    """Native build system used by a dependency."""
    AUTOTOOLS = "autotools"
    OPENSSL_CONFIG = "openssl-config"


OPENSSL = "openssl"
NGHTTP3 = "nghttp3"
CURL = "curl"

DEFAULT_REVISIONS: Dict[str, str] = {
    OPENSSL: "openssl-3.5.4",
    NGHTTP3: "v1.1.0",
    CURL: "curl-8_11_0",
}

DEFAULT_REPOSITORIES: Dict[str, str] = {
    OPENSSL: "https://github.com/openssl/openssl.git",
    NGHTTP3: "https://github.com/ngtcp2/nghttp3.git",
    CURL: "https://github.com/curl/curl.git",
}


@dataclass(frozen=True)
class VersionSpec:
    """Exact source revision (tag or branch) per dependency."""
    openssl: str = DEFAULT_REVISIONS[OPENSSL]
    nghttp3: str = DEFAULT_REVISIONS[NGHTTP3]
    curl: str = DEFAULT_REVISIONS[CURL]

    def revision_for(self, name: str) -> str:
        return getattr(self, name)

    @property
    def openssl_major(self) -> str:
        """Major version line requested for OpenSSL (``"3"`` for ``openssl-3.5.4``)."""
        return major_version_of(self.openssl)


def major_version_of(revision: str) -> str:
    """
    Extract the major version number from a tag such as ``openssl-3.5.4``,
    ``v1.1.0`` or ``curl-8_11_0``.

    Returns an empty string when the revision carries no digits (a branch
    name like ``master``).
    """
    match = re.search(r"(\d+)[._]\d+", revision) or re.search(r"(\d+)", revision)
    return match.group(1) if match else ""


@dataclass(frozen=True)
class StageProbe:
    """
    Cheap post-install sanity check for one dependency.

    Either runs ``command`` and requires every regex in ``patterns`` to
    match its combined output, or requires any path in ``any_files``
    (relative to the prefix) to exist. Both may be set.
    """
    command: Tuple[str, ...] = ()
    patterns: Tuple[str, ...] = ()
    any_files: Tuple[str, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class DependencySpec:
    """
    Immutable build description of one dependency.

    Attributes:
        name: Short dependency name, also the working-directory name
        source_url: Git repository to clone
        revision: Tag or branch to check out
        build_kind: Native build system
        configure_flags: Ordered configure arguments (``{prefix}`` expanded)
        install_prefix_relative: Sub-path of the shared prefix this
            dependency installs into ("" for the prefix itself)
        requires: Names of dependencies that must be built first
        install_targets: make targets used for the install step
        submodules: Whether ``git submodule update --init`` is needed
        configure_env: Extra environment for configure (``{prefix}`` expanded)
        configure_log: File name inside the source tree that receives the
            configure output, or None
        probe: Stage-local verification
    """
    name: str
    source_url: str
    revision: str
    build_kind: BuildKind
    configure_flags: Tuple[str, ...] = ()
    install_prefix_relative: str = ""
    requires: Tuple[str, ...] = ()
    install_targets: Tuple[str, ...] = ("install",)
    submodules: bool = False
    configure_env: Tuple[Tuple[str, str], ...] = ()
    configure_log: Optional[str] = None
    probe: StageProbe = field(default_factory=StageProbe)

    @property
    def configure_script(self) -> str:
        return "./config" if self.build_kind is BuildKind.OPENSSL_CONFIG else "./configure"

    @property
    def needs_bootstrap(self) -> bool:
        """Autotools checkouts from git ship no configure script yet."""
        return self.build_kind is BuildKind.AUTOTOOLS


def default_dependency_specs(
    versions: Optional[VersionSpec] = None,
    repositories: Optional[Dict[str, str]] = None,
) -> Tuple[DependencySpec, ...]:
    """
    Build the dependency table for OpenSSL, nghttp3 and curl.

    Args:
        versions: Revisions to build. Defaults to the pinned known-good tags.
        repositories: Optional per-dependency repository URL overrides.

    Returns:
        Specs in declaration order (already a valid topological order).
    """
    versions = versions or VersionSpec()
    repos = dict(DEFAULT_REPOSITORIES)
    repos.update(repositories or {})

    major = versions.openssl_major
    openssl_pattern = rf"OpenSSL {re.escape(major)}\." if major else r"OpenSSL \d+\."

    openssl = DependencySpec(
        name=OPENSSL,
        source_url=repos[OPENSSL],
        revision=versions.openssl,
        build_kind=BuildKind.OPENSSL_CONFIG,
        configure_flags=(
            "enable-tls1_3",
            "--openssldir={prefix}/ssl",
            "--libdir=lib",
        ),
        install_targets=("install_sw", "install_ssldirs"),
        probe=StageProbe(
            command=("{prefix}/bin/openssl", "version"),
            patterns=(openssl_pattern,),
            description=f"openssl version reports the {major or 'requested'}.x line",
        ),
    )

    nghttp3 = DependencySpec(
        name=NGHTTP3,
        source_url=repos[NGHTTP3],
        revision=versions.nghttp3,
        build_kind=BuildKind.AUTOTOOLS,
        configure_flags=("--enable-lib-only",),
        requires=(OPENSSL,),
        submodules=True,
        probe=StageProbe(
            any_files=(
                "lib/pkgconfig/libnghttp3.pc",
                "lib64/pkgconfig/libnghttp3.pc",
            ),
            description="libnghttp3.pc installed",
        ),
    )

    curl = DependencySpec(
        name=CURL,
        source_url=repos[CURL],
        revision=versions.curl,
        build_kind=BuildKind.AUTOTOOLS,
        configure_flags=(
            "--with-openssl={prefix}",
            "--with-openssl-quic",
            "--with-nghttp3={prefix}",
            "--enable-websockets",
            "--without-libpsl",
            "--disable-ldap",
            "--disable-ldaps",
        ),
        requires=(OPENSSL, NGHTTP3),
        configure_env=(("LDFLAGS", "-Wl,-rpath,{prefix}/lib"),),
        configure_log="configure.log",
        probe=StageProbe(
            command=("{prefix}/bin/curl", "--version"),
            patterns=(r"^curl \d+\.\d+",),
            description="curl --version reports a version",
        ),
    )

    return (openssl, nghttp3, curl)
