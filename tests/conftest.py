"""
Root conftest.py - fixtures shared across all tests.

Sets up the import path for the test doubles in fakes.py and provides
configs, consoles and scripted runners rooted in tmp_path.
"""

import io
import sys
from pathlib import Path

import pytest
from rich.console import Console as RichConsole

TESTS_DIR = Path(__file__).parent.resolve()
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from fakes import ScriptedRunner  # noqa: E402

from h3stack.cli.console import Console  # noqa: E402
from h3stack.core.config import StackConfig  # noqa: E402


@pytest.fixture
def install_prefix(tmp_path) -> Path:
    return tmp_path / "stack"


@pytest.fixture
def build_dir(tmp_path) -> Path:
    return tmp_path / "build"


@pytest.fixture
def scripted_runner(install_prefix) -> ScriptedRunner:
    return ScriptedRunner(install_prefix)


@pytest.fixture
def stack_config(install_prefix, build_dir) -> StackConfig:
    """Non-interactive config rooted in tmp_path with package probes skipped."""
    return StackConfig(
        install_prefix=install_prefix,
        build_dir=build_dir,
        jobs=4,
        interactive=False,
        skip_package_check=True,
        log_to_file=False,
    )


@pytest.fixture
def recording_console() -> Console:
    """Console that records output; read it with ``console.rich.export_text()``."""
    rich_console = RichConsole(
        file=io.StringIO(), record=True, width=200, color_system=None, force_terminal=False
    )
    return Console(rich_console=rich_console)


@pytest.fixture
def base_env() -> dict:
    return {
        "PATH": "/usr/local/bin:/usr/bin:/bin",
        "HOME": "/home/builder",
        "MAKEFLAGS": "-j99",
    }


@pytest.fixture(autouse=True)
def reset_command_state():
    """Restore the class-level console, runner and token shared by CLI handlers."""
    from h3stack.cli.commands import BaseCommand

    console, runner, token = BaseCommand._console, BaseCommand._runner, BaseCommand._token
    yield
    BaseCommand._console, BaseCommand._runner, BaseCommand._token = console, runner, token