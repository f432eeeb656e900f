"""Unit tests for command handlers, exit codes and interrupt handling."""

import signal
from unittest.mock import patch

import pytest

from fakes import (
    CURL_NO_WEBSOCKET,
    ScriptedRunner,
    all_tools_present,
    console_text,
    no_tools,
)

from h3stack.build.cancellation import CancellationToken
from h3stack.cli.commands import BaseCommand, cli_exception_handler
from h3stack.cli.exit_codes import ExitCode
from h3stack.cli.services.prefix_lock import PrefixLock
from h3stack.core.exceptions import (
    CompileFailure,
    ConfigurationError,
    EnvironmentArtifactWriteFailure,
    FinalCapabilityMissing,
    MissingPrerequisiteError,
    PipelineCancelled,
    PrefixLockError,
)
from h3stack.main_cli import install_interrupt_handler, main

pytestmark = [pytest.mark.unit, pytest.mark.cli, pytest.mark.quick]


@pytest.fixture
def cli(recording_console, scripted_runner, install_prefix, build_dir, tmp_path, monkeypatch):
    """Run ``main`` against the scripted toolchain; returns (exit code, output)."""
    monkeypatch.delenv("H3STACK_CONFIG", raising=False)
    config_file = tmp_path / "h3stack.yaml"
    config_file.write_text("SKIP_PACKAGE_CHECK: true\nLOG_TO_FILE: false\n")
    BaseCommand.set_console(recording_console)
    BaseCommand.set_runner(scripted_runner)

    def run(*argv, which=all_tools_present):
        full = list(argv) + [
            "--config", str(config_file),
        ]
        if argv[0] != "doctor":
            full += ["--prefix", str(install_prefix), "--build-dir", str(build_dir)]
        with patch("shutil.which", side_effect=which):
            code = main(full)
        return code, console_text(recording_console)

    return run


class TestExceptionHandler:
    """Each error class maps to its exit code."""

    @pytest.mark.parametrize("error,code", [
        (MissingPrerequisiteError([("command", "cmake")]), ExitCode.DEPENDENCY_ERROR),
        (ConfigurationError("bad"), ExitCode.CONFIG_ERROR),
        (PrefixLockError("busy"), ExitCode.RESOURCE_BUSY),
        (CompileFailure("curl", "make failed"), ExitCode.BUILD_ERROR),
        (FinalCapabilityMissing(["http3"]), ExitCode.VALIDATION_ERROR),
        (PipelineCancelled("stop"), ExitCode.USER_INTERRUPT),
        (EnvironmentArtifactWriteFailure("ro"), ExitCode.GENERAL_ERROR),
        (RuntimeError("surprise"), ExitCode.GENERAL_ERROR),
        (KeyboardInterrupt(), ExitCode.USER_INTERRUPT),
    ])
    def test_exit_codes(self, recording_console, error, code):
        BaseCommand.set_console(recording_console)

        @cli_exception_handler
        def handler(args):
            raise error

        assert handler(None) == code

    def test_stage_error_shows_tool_output(self, recording_console):
        BaseCommand.set_console(recording_console)

        @cli_exception_handler
        def handler(args):
            raise CompileFailure("nghttp3", "`make -j4` exited with status 2", ["cc: fatal error"])

        handler(None)
        text = console_text(recording_console)
        assert "nghttp3: CompileFailure during compile" in text
        assert "cc: fatal error" in text

    def test_missing_prerequisites_listed_with_hint(self, recording_console):
        BaseCommand.set_console(recording_console)

        @cli_exception_handler
        def handler(args):
            raise MissingPrerequisiteError(
                [("command", "cmake"), ("command", "perl")],
                hint="sudo apt-get update && sudo apt-get install -y cmake perl",
            )

        handler(None)
        text = console_text(recording_console)
        assert "- cmake (command)" in text
        assert "- perl (command)" in text
        assert "apt-get install -y cmake perl" in text


class TestBuildCommand:

    def test_success(self, cli, install_prefix):
        code, output = cli("build", "--yes")
        assert code == ExitCode.SUCCESS
        assert "HTTP/3: ENABLED | WebSocket: ENABLED" in output
        assert f"source {install_prefix / 'setup-env.sh'}" in output
        assert "curl --http3 https://cloudflare-quic.com" in output

    def test_dry_run(self, cli, install_prefix, build_dir, scripted_runner):
        code, output = cli("build", "--dry-run")
        assert code == ExitCode.SUCCESS
        assert "[DRY RUN]" in output
        assert scripted_runner.calls == []
        assert not install_prefix.exists()
        assert not build_dir.exists()

    def test_declined_exits_zero(self, cli, install_prefix, build_dir):
        with patch("h3stack.cli.services.confirmation.Confirm.ask", return_value=False):
            code, output = cli("build")
        assert code == ExitCode.SUCCESS
        assert "Build cancelled" in output
        assert not install_prefix.exists()
        assert not build_dir.exists()

    def test_missing_prerequisites(self, cli, install_prefix, build_dir):
        code, output = cli("build", "--yes", which=no_tools)
        assert code == ExitCode.DEPENDENCY_ERROR
        assert "Missing prerequisites" in output
        assert not install_prefix.exists()
        assert not build_dir.exists()

    def test_prefix_busy(self, cli, install_prefix):
        with PrefixLock(install_prefix):
            code, _ = cli("build", "--yes")
        assert code == ExitCode.RESOURCE_BUSY

    def test_invalid_config(self, cli, tmp_path):
        (tmp_path / "h3stack.yaml").write_text("JOBS: zero\n")
        code, output = cli("build", "--yes")
        assert code == ExitCode.CONFIG_ERROR
        assert "Configuration error" in output

    def test_cancelled_build(self, cli):
        token = CancellationToken()
        token.cancel()
        with patch("h3stack.main_cli.CancellationToken", return_value=token):
            code, output = cli("build", "--yes")
        assert code == ExitCode.USER_INTERRUPT
        assert "Cancelled before openssl" in output


class TestStageCommand:

    def test_requires_predecessors(self, cli):
        code, output = cli("stage", "curl", "--yes")
        assert code == ExitCode.BUILD_ERROR
        assert "StageVerificationFailure" in output

    def test_rebuild_after_full_build(self, cli):
        assert cli("build", "--yes")[0] == ExitCode.SUCCESS
        code, output = cli("stage", "curl", "--yes")
        assert code == ExitCode.SUCCESS
        assert "Rebuilt curl" in output


class TestVerifyCommand:

    def test_verify_installed_prefix(self, cli):
        code, output = cli("verify")
        assert code == ExitCode.SUCCESS
        assert "HTTP/3: ENABLED | WebSocket: ENABLED" in output

    def test_verify_missing_websocket(self, cli, scripted_runner):
        scripted_runner.curl_output = CURL_NO_WEBSOCKET
        code, output = cli("verify")
        assert code == ExitCode.VALIDATION_ERROR
        assert "FinalCapabilityMissing: websocket" in output


class TestEnvCommand:

    def test_writes_script(self, cli, install_prefix):
        install_prefix.mkdir()
        code, _ = cli("env")
        assert code == ExitCode.SUCCESS
        assert (install_prefix / "setup-env.sh").exists()

    def test_missing_prefix(self, cli):
        code, _ = cli("env")
        assert code == ExitCode.GENERAL_ERROR


class TestDoctorCommand:

    def test_all_present(self, cli):
        code, output = cli("doctor")
        assert code == ExitCode.SUCCESS
        assert "All prerequisites found" in output
        assert "SKIPPED" in output

    def test_missing(self, cli):
        code, output = cli("doctor", which=lambda name: "/usr/bin/dnf" if name == "dnf" else None)
        assert code == ExitCode.DEPENDENCY_ERROR
        assert "Package manager: dnf" in output
        assert "sudo dnf install -y" in output


class TestInterruptHandler:

    def test_first_interrupt_cancels_second_aborts(self):
        previous = signal.getsignal(signal.SIGINT)
        token = CancellationToken()
        try:
            install_interrupt_handler(token)
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
            assert token.cancelled
            assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
        finally:
            signal.signal(signal.SIGINT, previous)

    def test_handler_raises_once_cancelled(self):
        previous = signal.getsignal(signal.SIGINT)
        token = CancellationToken()
        try:
            install_interrupt_handler(token)
            handler = signal.getsignal(signal.SIGINT)
            token.cancel()
            with pytest.raises(KeyboardInterrupt):
                handler(signal.SIGINT, None)
        finally:
            signal.signal(signal.SIGINT, previous)


def test_scripted_runner_is_shared_by_handlers(scripted_runner):
    BaseCommand.set_runner(scripted_runner)
    assert BaseCommand.get_runner() is scripted_runner
    BaseCommand.set_runner(None)
    assert not isinstance(BaseCommand.get_runner(), ScriptedRunner)
