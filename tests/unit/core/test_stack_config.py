"""Unit tests for StackConfig loading and validation."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from h3stack.build.specs import VersionSpec
from h3stack.core.config import CONFIG_ENV_VAR, StackConfig
from h3stack.core.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit, pytest.mark.quick]


class TestDefaults:
    """Test default values."""

    def test_default_locations_are_absolute(self):
        config = StackConfig()
        assert config.install_prefix == Path("~/http3-stack-simple").expanduser().absolute()
        assert config.build_dir == Path("~/http3-build-simple").expanduser().absolute()

    def test_default_revisions(self):
        config = StackConfig()
        assert config.version_spec() == VersionSpec("openssl-3.5.4", "v1.1.0", "curl-8_11_0")

    def test_default_prerequisites(self):
        config = StackConfig()
        assert config.required_commands == [
            "git", "gcc", "g++", "make", "cmake", "autoconf", "automake",
            "libtool", "pkg-config", "perl",
        ]
        assert config.required_packages == ["libpsl-dev"]

    def test_default_jobs_follows_cpu_count(self):
        with patch("os.cpu_count", return_value=12):
            assert StackConfig().jobs == 12

    def test_default_jobs_fallback(self):
        with patch("os.cpu_count", return_value=None):
            assert StackConfig().jobs == 4

    def test_derived_paths(self, tmp_path):
        config = StackConfig(install_prefix=tmp_path / "p", build_dir=tmp_path / "b")
        assert config.env_script_path == tmp_path / "p" / "setup-env.sh"
        assert config.log_dir == tmp_path / "b" / "logs"


class TestValidation:
    """Test field validators."""

    def test_aliases_accepted(self, tmp_path):
        config = StackConfig.from_dict({
            "INSTALL_PREFIX": str(tmp_path / "stack"),
            "JOBS": 2,
            "CURL_VERSION": "curl-8_12_0",
        })
        assert config.install_prefix == tmp_path / "stack"
        assert config.jobs == 2
        assert config.curl_version == "curl-8_12_0"

    def test_zero_jobs_rejected(self):
        with pytest.raises(ConfigurationError, match="jobs"):
            StackConfig.from_dict({"JOBS": 0})

    def test_empty_revision_rejected(self):
        with pytest.raises(ConfigurationError):
            StackConfig.from_dict({"OPENSSL_VERSION": "  "})

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError):
            StackConfig.from_dict({"NOT_A_SETTING": True})

    def test_log_level_normalized(self):
        assert StackConfig.from_dict({"LOG_LEVEL": "debug"}).log_level == "DEBUG"

    def test_relative_prefix_made_absolute(self):
        config = StackConfig.from_dict({"INSTALL_PREFIX": "relative/stack"})
        assert config.install_prefix.is_absolute()

    def test_config_is_frozen(self):
        config = StackConfig()
        with pytest.raises(Exception):
            config.jobs = 3


class TestOverrides:
    """CLI overrides are merged over file values."""

    def test_none_overrides_ignored(self):
        config = StackConfig.from_dict({"JOBS": 3}, overrides={"jobs": None})
        assert config.jobs == 3

    def test_overrides_win(self):
        config = StackConfig.from_dict({"JOBS": 3}, overrides={"jobs": 8})
        assert config.jobs == 8


class TestLoading:
    """Test YAML loading and resolution order."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "h3stack.yaml"
        path.write_text(
            f"INSTALL_PREFIX: {tmp_path / 'stack'}\n"
            "NGHTTP3_VERSION: v1.2.0\n"
            "EXTRA_CAPABILITY_PATTERNS:\n"
            "  websocket: ['^Protocols:.*\\bwss\\b']\n"
        )
        config = StackConfig.from_file(path)
        assert config.nghttp3_version == "v1.2.0"
        assert config.extra_capability_patterns == {"websocket": [r"^Protocols:.*\bwss\b"]}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            StackConfig.from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("JOBS: [1, 2\n")
        with pytest.raises(ConfigurationError, match="Could not parse"):
            StackConfig.from_file(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            StackConfig.from_file(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert StackConfig.from_file(path).curl_version == "curl-8_11_0"

    def test_load_uses_env_var(self, tmp_path):
        path = tmp_path / "env.yaml"
        path.write_text("JOBS: 5\n")
        with patch.dict(os.environ, {CONFIG_ENV_VAR: str(path)}):
            assert StackConfig.load().jobs == 5

    def test_explicit_path_beats_env_var(self, tmp_path):
        env_path = tmp_path / "env.yaml"
        env_path.write_text("JOBS: 5\n")
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("JOBS: 6\n")
        with patch.dict(os.environ, {CONFIG_ENV_VAR: str(env_path)}):
            assert StackConfig.load(explicit).jobs == 6

    def test_load_without_file(self):
        with patch.dict(os.environ, {}, clear=True):
            config = StackConfig.load(overrides={"jobs": 7})
        assert config.jobs == 7
