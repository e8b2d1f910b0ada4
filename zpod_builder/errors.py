from __future__ import annotations

from typing import Sequence


class ZpodError(RuntimeError):
    """Base class for every checked build failure (CLI exit code 1)."""


class ConfigError(ZpodError):
    pass


class HostError(ZpodError):
    pass


class MissingToolError(ZpodError):
    def __init__(self, tools: Sequence[str], hint: str | None = None) -> None:
        self.tools = list(tools)
        self.hint = hint
        msg = "Required tool(s) not installed: " + ", ".join(self.tools)
        if hint:
            msg += f"\n{hint}"
        super().__init__(msg)


class CommandError(ZpodError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed ({returncode}): {' '.join(self.argv)}\n{stderr}".rstrip())


class DownloadError(ZpodError):
    pass


class BootloaderError(ZpodError):
    pass


class StepError(ZpodError):
    def __init__(self, step_id: str, message: str) -> None:
        self.step_id = step_id
        super().__init__(f"[{step_id}] {message}")
