"""Shared pytest fixtures for engine and CLI checks."""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from refmt.lib.domain import Context
from refmt.lib.formatters.spec import CommandFormatter
from refmt.lib.hosts.memory import InMemoryHost
from refmt.lib.types import TargetId

if TYPE_CHECKING:
    from collections.abc import Callable

    from refmt.lib.config.layering import FormatOptions

PACKAGE_ROOT = Path(__file__).resolve().parents[1]

SPACING_SCRIPT = """
import re
import sys

sys.stdout.write(re.sub(r"[ \\t]*=[ \\t]*", " = ", sys.stdin.read()))
"""

UPPER_SCRIPT = """
import sys

sys.stdout.write(sys.stdin.read().upper())
"""

FAIL_SCRIPT = """
import sys

sys.stdin.read()
sys.stderr.write("boom: bad input\\nsecond line\\n")
sys.exit(3)
"""

SLEEP_SCRIPT = """
import sys
import time

data = sys.stdin.read()
time.sleep(float(sys.argv[1]))
sys.stdout.write(data.upper())
"""

RECORD_SCRIPT = """
import sys
from pathlib import Path

data = sys.stdin.read()
with Path(sys.argv[1]).open("a", encoding="utf-8") as handle:
    handle.write("called\\n")
sys.stdout.write(data)
"""


@dataclass(frozen=True, slots=True)
class CliResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


@dataclass(slots=True)
class ScriptFactory:
    root: Path

    def path(self, name: str, body: str) -> Path:
        script = self.root / f"{name}.py"
        script.write_text(textwrap.dedent(body).lstrip(), encoding="utf-8")
        return script

    def formatter(self, name: str, body: str, *args: str, **kwargs: Any) -> CommandFormatter:
        """Build a command formatter running ``body`` with the current interpreter."""

        script = self.path(name, body)
        return CommandFormatter(command=sys.executable, args=[str(script), *args], **kwargs)


class FakeExternal:
    """External formatter double that upper-cases the target through the host."""

    def __init__(
        self,
        host: InMemoryHost,
        *,
        available: bool = True,
        calls: list[str] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.host = host
        self.available = available
        self.calls = calls if calls is not None else []
        self.error = error
        self.delay = delay
        self.seen_options: list[FormatOptions] = []

    @property
    def name(self) -> str:
        return "external"

    def is_available(self, context: Context, options: FormatOptions) -> bool:
        _ = (context, options)
        return self.available

    async def format(self, context: Context, options: FormatOptions) -> bool:
        self.calls.append("external")
        self.seen_options.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        text = self.host.get_text(context.target)
        new_text = text.upper()
        if new_text == text:
            return False
        if not options.dry_run:
            self.host.set_text(context.target, new_text)
        return True


@pytest.fixture
def package_root() -> Path:
    return PACKAGE_ROOT


@pytest.fixture
def scripts(tmp_path: Path) -> ScriptFactory:
    root = tmp_path / "scripts"
    root.mkdir()
    return ScriptFactory(root=root)


@pytest.fixture
def host() -> InMemoryHost:
    return InMemoryHost()


@pytest.fixture
def make_target(host: InMemoryHost, tmp_path: Path) -> Callable[..., TargetId]:
    def _make(text: str, name: str = "sample.py") -> TargetId:
        return host.add(name, text, path=(tmp_path / name).as_posix())

    return _make


@pytest.fixture
def context(tmp_path: Path) -> Context:
    return Context(
        target=TargetId("sample"),
        filename=(tmp_path / "sample.py").as_posix(),
        dirname=tmp_path.as_posix(),
    )


@pytest.fixture
def cli_env(package_root: Path) -> dict[str, str]:
    env = os.environ.copy()
    existing = env.get("PYTHONPATH", "")
    root = str(package_root / "src")
    env["PYTHONPATH"] = root if not existing else f"{root}{os.pathsep}{existing}"
    return env


@pytest.fixture
def run_refmt(package_root: Path, cli_env: dict[str, str]) -> Callable[..., CliResult]:
    def _run(args: list[str], timeout: float = 30.0) -> CliResult:
        completed = subprocess.run(
            [sys.executable, "-m", "refmt", *args],
            cwd=package_root,
            env=cli_env,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
        return CliResult(
            args=tuple(args),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

    return _run
