"""
Pytest configuration and shared fixtures for zpod-builder tests.

Nothing here touches real block devices: ``subprocess.run`` is replaced by a
recorder that answers each command from a small rule table.
"""

import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest

from zpod_builder.build_config import BuildConfig
from zpod_builder.build_ctx import BuildCtx


class FakeRun:
    """Stand-in for subprocess.run that records every argv."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.rules: List[Tuple[List[str], int, str]] = []

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "") -> None:
        self.rules.append((list(prefix), returncode, stdout))

    def __call__(self, argv, **kwargs: Any) -> subprocess.CompletedProcess:
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        text = bool(kwargs.get("text"))

        # curl -o <file>: leave a file behind like a real download would
        if argv[0] == "curl" and "-o" in argv:
            Path(argv[argv.index("-o") + 1]).write_bytes(b"payload")

        for prefix, rc, out in reversed(self.rules):
            if argv[: len(prefix)] == prefix:
                err = "boom" if rc else ""
                return subprocess.CompletedProcess(argv, rc, out if text else b"", err if text else err.encode())
        return subprocess.CompletedProcess(argv, 0, "" if text else b"", "" if text else b"")

    def find(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]

    def index(self, *prefix: str) -> int:
        for i, c in enumerate(self.calls):
            if c[: len(prefix)] == list(prefix):
                return i
        raise AssertionError(f"command {prefix} was not run; ran {self.calls}")


@pytest.fixture
def fake_run():
    """Patch subprocess.run as seen by the command runner."""
    fake = FakeRun()
    with patch("zpod_builder.lib.command.subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def all_tools_present():
    with patch("zpod_builder.lib.command.shutil.which", side_effect=lambda t: f"/usr/bin/{t}"):
        yield


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Undo configure_logging() between tests."""
    root = logging.getLogger()
    before = list(root.handlers)
    yield
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
            h.close()


@pytest.fixture
def raw_config(tmp_path: Path) -> Dict[str, Any]:
    installer = tmp_path / "install"
    installer.mkdir()
    (installer / "init").write_text("#!/bin/sh\nexec /sbin/init_install\n")
    (installer / "init_functions").write_text("log() { :; }\n")
    (installer / "init_install").write_text("#!/bin/sh\n")
    (installer / "mdev").mkdir()
    return {
        "paths": {
            "cache_dir": str(tmp_path / "cache"),
            "work_dir": str(tmp_path / "work"),
            "output_dir": str(tmp_path / "dist"),
            "installer_dir": str(installer),
            "alpine_work_dir": str(tmp_path / "alpine"),
            "alpine_output": str(tmp_path / "alpine-part-rootfs.tar.gz"),
        },
        "alpine": {"version_file": str(tmp_path / "alpine_version")},
    }


@pytest.fixture
def build_cfg(raw_config: Dict[str, Any]) -> BuildConfig:
    return BuildConfig(raw=raw_config)


@pytest.fixture
def make_ctx(build_cfg: BuildConfig):
    def _make(target: str = "all", dry_run: bool = False, cfg: Optional[BuildConfig] = None) -> BuildCtx:
        return BuildCtx(
            cfg=cfg or build_cfg,
            abi="v3",
            kernel_url="https://example.invalid/kernel.deb",
            target=target,
            dry_run=dry_run,
        )

    return _make
