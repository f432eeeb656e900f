"""Unit tests for EnvironmentEmitter."""

import shutil
import stat
import subprocess
from unittest.mock import patch

import pytest

from h3stack.cli.services.environment_emitter import ENV_SCRIPT_NAME, EnvironmentEmitter
from h3stack.core.exceptions import EnvironmentArtifactWriteFailure

pytestmark = [pytest.mark.unit, pytest.mark.cli, pytest.mark.quick]


@pytest.fixture
def emitter(recording_console):
    return EnvironmentEmitter(console=recording_console)


class TestRender:

    def test_exports_extend_existing_values(self, emitter, tmp_path):
        script = emitter.render(tmp_path / "stack")
        assert 'export PATH="${HTTP3_PREFIX}/bin${PATH:+:$PATH}"' in script
        assert (
            'export LD_LIBRARY_PATH="${HTTP3_PREFIX}/lib:${HTTP3_PREFIX}/lib64'
            '${LD_LIBRARY_PATH:+:$LD_LIBRARY_PATH}"'
            in script
        )
        assert "${HTTP3_PREFIX}/lib/pkgconfig:${HTTP3_PREFIX}/lib64/pkgconfig" in script

    def test_prefix_written_once(self, emitter, tmp_path):
        prefix = tmp_path / "st$ack"
        script = emitter.render(prefix)
        assert script.count(str(prefix)) == 1
        assert f"export HTTP3_PREFIX='{prefix}'" in script

    def test_prefix_variable(self, emitter, tmp_path):
        script = emitter.render(tmp_path / "stack")
        assert f"export HTTP3_PREFIX={tmp_path / 'stack'}" in script

    def test_prefix_with_spaces_is_quoted(self, emitter, tmp_path):
        script = emitter.render(tmp_path / "my stack")
        assert f"export HTTP3_PREFIX='{tmp_path / 'my stack'}'" in script

    def test_capability_summary_lines(self, emitter, tmp_path):
        script = emitter.render(tmp_path / "stack")
        assert script.startswith("#!/bin/bash\n")
        assert 'echo "  OpenSSL: $(openssl version)"' in script
        assert "HTTP/3: $(curl --version | grep -qE" in script
        assert "WebSocket: $(curl --version | grep -qE" in script
        assert r"'^Features:.*\bWebSockets\b'" in script

    def test_render_is_deterministic(self, emitter, tmp_path):
        assert emitter.render(tmp_path) == emitter.render(tmp_path)


class TestEmit:

    def test_writes_executable_script(self, emitter, tmp_path):
        path = emitter.emit(tmp_path)
        assert path == tmp_path / ENV_SCRIPT_NAME
        assert path.read_text() == emitter.render(tmp_path)
        assert path.stat().st_mode & stat.S_IXUSR
        assert not (tmp_path / f".{ENV_SCRIPT_NAME}.tmp").exists()

    def test_overwrites_previous_script(self, emitter, tmp_path):
        (tmp_path / ENV_SCRIPT_NAME).write_text("stale\n")
        emitter.emit(tmp_path)
        assert "stale" not in (tmp_path / ENV_SCRIPT_NAME).read_text()

    def test_missing_prefix_raises(self, emitter, tmp_path):
        with pytest.raises(EnvironmentArtifactWriteFailure):
            emitter.emit(tmp_path / "does-not-exist")

    def test_write_error_raises(self, emitter, tmp_path):
        with patch("pathlib.Path.write_text", side_effect=PermissionError("read-only")):
            with pytest.raises(EnvironmentArtifactWriteFailure, match="read-only"):
                emitter.emit(tmp_path)

    def test_failed_replace_removes_temp_file(self, emitter, tmp_path):
        with patch("pathlib.Path.replace", side_effect=OSError("cross-device link")):
            with pytest.raises(EnvironmentArtifactWriteFailure, match="cross-device link"):
                emitter.emit(tmp_path)
        assert not (tmp_path / f".{ENV_SCRIPT_NAME}.tmp").exists()
        assert not (tmp_path / ENV_SCRIPT_NAME).exists()


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
class TestSourcedScript:
    """Source the written script in a real bash and inspect the exports."""

    def source(self, script):
        result = subprocess.run(
            ["bash", "-c", 'source "$1" >/dev/null 2>&1; printf "%s\\n%s\\n%s" '
             '"$HTTP3_PREFIX" "$PATH" "$LD_LIBRARY_PATH"', "bash", str(script)],
            env={"PATH": "/usr/bin:/bin"}, capture_output=True, text=True, check=True,
        )
        return result.stdout.split("\n")

    @pytest.mark.parametrize("name", ["stack", "st$ack", "my stack", "st`ack", 'st"ack'])
    def test_exports_use_literal_prefix(self, emitter, tmp_path, name):
        prefix = tmp_path / name
        prefix.mkdir()
        prefix_var, path, library_path = self.source(emitter.emit(prefix))

        assert prefix_var == str(prefix)
        assert path == f"{prefix}/bin:/usr/bin:/bin"
        assert library_path == f"{prefix}/lib:{prefix}/lib64"
