"""
End-to-end build scenarios through the ``h3stack`` entry point.

The toolchain is simulated by the scripted runner: git, autotools and make
succeed (or fail where a test says so) and the installed binaries answer
with canned version output. Everything else (config loading, the gate,
the lock, stage ordering, verification, setup-env.sh and exit codes) is
the real code path.
"""

from unittest.mock import patch

import pytest

from fakes import (
    CURL_FEATURES_FORM,
    CURL_NO_HTTP3,
    ScriptedRunner,
    all_tools_present,
    console_text,
    step_is,
)

from h3stack.cli.commands import BaseCommand
from h3stack.cli.exit_codes import ExitCode
from h3stack.main_cli import main

pytestmark = [pytest.mark.integration, pytest.mark.cli]


@pytest.fixture
def config_file(tmp_path, install_prefix, build_dir, monkeypatch):
    monkeypatch.delenv("H3STACK_CONFIG", raising=False)
    path = tmp_path / "h3stack.yaml"
    path.write_text(
        f"INSTALL_PREFIX: {install_prefix}\n"
        f"BUILD_DIR: {build_dir}\n"
        "JOBS: 4\n"
        "LOG_TO_FILE: true\n"
    )
    return path


def run_build(runner, console, config_file, *extra):
    BaseCommand.set_console(console)
    BaseCommand.set_runner(runner)
    with patch("shutil.which", side_effect=all_tools_present):
        code = main(["build", "--config", str(config_file), "--yes", *extra])
    return code, console_text(console)


class TestSuccessfulBuild:
    """All three stages succeed and curl reports both capabilities."""

    def test_exit_zero_and_summary(self, scripted_runner, recording_console, config_file, install_prefix):
        code, output = run_build(scripted_runner, recording_console, config_file)

        assert code == ExitCode.SUCCESS
        assert "HTTP/3 Stack Successfully Built!" in output
        assert "HTTP/3: ENABLED | WebSocket: ENABLED" in output
        assert "openssl openssl-3.5.4 (native QUIC)" in output
        assert (install_prefix / "setup-env.sh").exists()

    def test_setup_env_script(self, scripted_runner, recording_console, config_file, install_prefix):
        run_build(scripted_runner, recording_console, config_file)
        script = (install_prefix / "setup-env.sh").read_text()
        assert f"export HTTP3_PREFIX={install_prefix}" in script
        assert 'export PATH="${HTTP3_PREFIX}/bin${PATH:+:$PATH}"' in script

    def test_package_probe_runs_through_runner(self, scripted_runner, recording_console, config_file):
        run_build(scripted_runner, recording_console, config_file)
        assert scripted_runner.commands[0] == ("dpkg", "-s", "libpsl-dev")

    def test_logs_written(self, scripted_runner, recording_console, config_file, build_dir):
        run_build(scripted_runner, recording_console, config_file)
        logs = build_dir / "logs"
        assert {p.name for p in logs.glob("*.log") if not p.name.startswith("h3stack_")} == {
            "openssl.log", "nghttp3.log", "curl.log",
        }
        assert len(list(logs.glob("h3stack_*.log"))) == 1

    def test_websockets_feature_form(self, recording_console, config_file, install_prefix):
        runner = ScriptedRunner(install_prefix, curl_output=CURL_FEATURES_FORM)
        code, output = run_build(runner, recording_console, config_file)
        assert code == ExitCode.SUCCESS
        assert "WebSocket: ENABLED" in output

    def test_cli_versions_reach_checkout(self, scripted_runner, recording_console, config_file):
        run_build(scripted_runner, recording_console, config_file, "--curl-version", "curl-8_12_0")
        assert ("git", "checkout", "curl-8_12_0") in scripted_runner.commands
        assert "curl curl-8_12_0 (HTTP/3 + WebSocket)" in console_text(recording_console)


class TestRepeatedBuild:
    """Re-running over a previous build gives the same commands and script."""

    def test_second_run_matches_first(self, recording_console, config_file, install_prefix, build_dir):
        first = ScriptedRunner(install_prefix)
        assert run_build(first, recording_console, config_file)[0] == ExitCode.SUCCESS
        script = (install_prefix / "setup-env.sh").read_text()
        (build_dir / "curl" / "stale.o").write_text("junk")

        second = ScriptedRunner(install_prefix)
        assert run_build(second, recording_console, config_file)[0] == ExitCode.SUCCESS

        assert second.commands == first.commands
        assert (install_prefix / "setup-env.sh").read_text() == script
        assert not (build_dir / "curl" / "stale.o").exists()


class TestCompileFailure:
    """nghttp3 fails to compile: curl is never attempted."""

    def test_nghttp3_compile_failure(self, scripted_runner, recording_console, config_file, install_prefix):
        scripted_runner.fail_when(
            step_is("make", "-j4", directory="nghttp3"),
            stderr="lib/nghttp3_qpack.c:42: error: expected ';'\n",
        )
        code, output = run_build(scripted_runner, recording_console, config_file)

        assert code == ExitCode.BUILD_ERROR
        assert "nghttp3: CompileFailure during compile" in output
        assert "lib/nghttp3_qpack.c:42: error" in output
        assert scripted_runner.calls_in("curl") == []
        assert scripted_runner.index_of(step_is("git", "clone", "https://github.com/curl/curl.git")) == -1
        assert not (install_prefix / "setup-env.sh").exists()


class TestMissingCapability:
    """curl builds but does not report HTTP3."""

    def test_http3_missing(self, recording_console, config_file, install_prefix):
        runner = ScriptedRunner(install_prefix, curl_output=CURL_NO_HTTP3)
        code, output = run_build(runner, recording_console, config_file)

        assert code == ExitCode.VALIDATION_ERROR
        assert "FinalCapabilityMissing: http3" in output
        assert not (install_prefix / "setup-env.sh").exists()

    def test_curl_self_report_shown(self, recording_console, config_file, install_prefix):
        runner = ScriptedRunner(install_prefix, curl_output=CURL_NO_HTTP3)
        code, output = run_build(runner, recording_console, config_file)

        assert code == ExitCode.VALIDATION_ERROR
        assert "=== Tool Output ===" in output
        assert "Features: alt-svc AsynchDNS HSTS HTTP2" in output
        assert "Protocols: dict file ftp" in output
        assert "OpenSSL 3.5.4" in output
