# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2025-2026 h3stack contributors

"""
Typed configuration for an h3stack run.

StackConfig holds every knob of a build: where to install, how many compile
workers, which revisions to build and which host prerequisites to demand.
YAML files use the upper-case aliases; Python code may use field names.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from h3stack.build.specs import DEFAULT_REPOSITORIES, DEFAULT_REVISIONS, VersionSpec
from h3stack.core.exceptions import ConfigurationError

# Standard ConfigDict for all config models
FROZEN_CONFIG = ConfigDict(
    extra='forbid', populate_by_name=True, frozen=True, validate_default=True
)

CONFIG_ENV_VAR = "H3STACK_CONFIG"

DEFAULT_REQUIRED_COMMANDS = [
    "git", "gcc", "g++", "make", "cmake", "autoconf", "automake",
    "libtool", "pkg-config", "perl",
]
DEFAULT_REQUIRED_PACKAGES = ["libpsl-dev"]


def _default_jobs() -> int:
    return os.cpu_count() or 4


class StackConfig(BaseModel):
    """Configuration for building the HTTP/3 stack"""
    model_config = FROZEN_CONFIG

    # Locations
    install_prefix: Path = Field(
        default=Path("~/http3-stack-simple"), alias='INSTALL_PREFIX'
    )
    build_dir: Path = Field(default=Path("~/http3-build-simple"), alias='BUILD_DIR')
    jobs: int = Field(default_factory=_default_jobs, alias='JOBS')

    # Revisions
    openssl_version: str = Field(default=DEFAULT_REVISIONS["openssl"], alias='OPENSSL_VERSION')
    nghttp3_version: str = Field(default=DEFAULT_REVISIONS["nghttp3"], alias='NGHTTP3_VERSION')
    curl_version: str = Field(default=DEFAULT_REVISIONS["curl"], alias='CURL_VERSION')

    # Sources
    openssl_repository: str = Field(
        default=DEFAULT_REPOSITORIES["openssl"], alias='OPENSSL_REPOSITORY'
    )
    nghttp3_repository: str = Field(
        default=DEFAULT_REPOSITORIES["nghttp3"], alias='NGHTTP3_REPOSITORY'
    )
    curl_repository: str = Field(default=DEFAULT_REPOSITORIES["curl"], alias='CURL_REPOSITORY')

    # Behaviour
    interactive: bool = Field(default=True, alias='INTERACTIVE')
    emit_env_script: bool = Field(default=True, alias='EMIT_ENV_SCRIPT')

    # Prerequisites
    required_commands: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REQUIRED_COMMANDS), alias='REQUIRED_COMMANDS'
    )
    required_packages: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REQUIRED_PACKAGES), alias='REQUIRED_PACKAGES'
    )
    skip_package_check: bool = Field(default=False, alias='SKIP_PACKAGE_CHECK')

    # Verification
    extra_capability_patterns: Dict[str, List[str]] = Field(
        default_factory=dict, alias='EXTRA_CAPABILITY_PATTERNS'
    )

    # Logging
    log_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='INFO', alias='LOG_LEVEL'
    )
    log_to_file: bool = Field(default=True, alias='LOG_TO_FILE')

    @field_validator('install_prefix', 'build_dir')
    @classmethod
    def validate_paths(cls, v):
        """Expand ``~`` and make paths absolute."""
        return Path(v).expanduser().absolute()

    @field_validator('jobs')
    @classmethod
    def validate_jobs(cls, v):
        if v < 1:
            raise ValueError(f"jobs must be at least 1, got {v}")
        return v

    @field_validator('openssl_version', 'nghttp3_version', 'curl_version')
    @classmethod
    def validate_revision(cls, v, info):
        if not str(v).strip():
            raise ValueError(f"{info.field_name} must not be empty")
        return str(v).strip()

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        return str(v).upper() if v is not None else v

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def version_spec(self) -> VersionSpec:
        return VersionSpec(
            openssl=self.openssl_version,
            nghttp3=self.nghttp3_version,
            curl=self.curl_version,
        )

    def repositories(self) -> Dict[str, str]:
        return {
            "openssl": self.openssl_repository,
            "nghttp3": self.nghttp3_repository,
            "curl": self.curl_repository,
        }

    @property
    def env_script_path(self) -> Path:
        return self.install_prefix / "setup-env.sh"

    @property
    def log_dir(self) -> Path:
        return self.build_dir / "logs"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None
    ) -> "StackConfig":
        """
        Build a config from a mapping plus CLI-style overrides.

        Overrides whose value is None are ignored, so unset CLI options never
        mask values from the file.
        """
        merged = dict(data or {})
        for key, value in (overrides or {}).items():
            if value is None:
                continue
            field = cls.model_fields.get(key)
            merged[field.alias if field is not None and field.alias else key] = value
        try:
            return cls(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(
        cls, path: Union[str, Path], overrides: Optional[Dict[str, Any]] = None
    ) -> "StackConfig":
        """Load a YAML configuration file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping at the top level")
        return cls.from_dict(data, overrides)

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "StackConfig":
        """
        Resolve configuration from an explicit file, ``$H3STACK_CONFIG`` or defaults.

        Args:
            config_path: Explicit YAML file. Takes precedence over the env var.
            overrides: Field-name or alias keyed overrides (e.g. from the CLI)
        """
        path = config_path or os.environ.get(CONFIG_ENV_VAR)
        if path:
            return cls.from_file(path, overrides)
        return cls.from_dict({}, overrides)
