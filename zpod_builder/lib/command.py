from __future__ import annotations

import contextlib
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, List, Mapping, Sequence, Tuple

from ..errors import CommandError, MissingToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    stdout_path: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr unless stdout_path is given, in which case
      stdout is streamed into that file (``cmd > file``).
    - dry_run logs but does not execute.
    """

    argv_list = [str(a) for a in argv]
    if stdout_path:
        logger.info("CMD %s > %s", _fmt_argv(argv_list), stdout_path)
    else:
        logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    run_env = dict(os.environ, **(env or {}))
    if stdout_path:
        with open(stdout_path, "wb") as out:
            p = subprocess.run(
                argv_list,
                stdout=out,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=run_env,
            )
        stdout = ""
        stderr = (p.stderr or b"").decode("utf-8", errors="replace")
    else:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=run_env,
        )
        stdout = p.stdout or ""
        stderr = p.stderr or ""

    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=stdout, stderr=stderr)


def run_piped(
    commands: Sequence[Sequence[str]],
    *,
    stdout_path: str,
    cwd: str | None = None,
    dry_run: bool = False,
) -> None:
    """Run ``cmd1 | cmd2 | ... > stdout_path`` with pipefail semantics.

    Each stage writes stderr to its own temporary file, so a noisy stage
    can never stall on a full pipe.
    """

    argvs: List[List[str]] = [[str(a) for a in c] for c in commands]
    logger.info("CMD %s > %s", " | ".join(_fmt_argv(a) for a in argvs), stdout_path)

    if dry_run:
        return

    with contextlib.ExitStack() as stack:
        out = stack.enter_context(open(stdout_path, "wb"))
        procs: List[Tuple[subprocess.Popen, IO[bytes]]] = []
        prev = None
        for i, argv in enumerate(argvs):
            last = i == len(argvs) - 1
            err = stack.enter_context(tempfile.TemporaryFile())
            p = subprocess.Popen(
                argv,
                stdin=prev,
                stdout=out if last else subprocess.PIPE,
                stderr=err,
                cwd=cwd,
            )
            if prev is not None:
                # Let upstream see SIGPIPE if downstream exits early.
                prev.close()
            prev = p.stdout
            procs.append((p, err))

        results = []
        for p, err in procs:
            rc = p.wait()
            err.seek(0)
            results.append((p.args, rc, err.read().decode("utf-8", errors="replace")))

    for args, rc, err_text in results:
        if err_text:
            logger.debug("STDERR %s", err_text.strip())
        if rc != 0:
            raise CommandError(args, rc, err_text)


def missing_tools(tools: Iterable[str]) -> list[str]:
    return [t for t in tools if shutil.which(t) is None]


def require_tools(tools: Iterable[str], *, hint: str | None = None) -> None:
    """Raise MissingToolError listing every tool not found on PATH."""

    missing = missing_tools(tools)
    for t in missing:
        logger.error("Required tool '%s' is not installed.", t)
    if missing:
        raise MissingToolError(missing, hint=hint)


def is_mountpoint(path: str | Path) -> bool:
    """Return True if path is currently a mountpoint (``mountpoint -q``)."""

    p = Path(path)
    if not p.exists():
        return False
    return os.path.ismount(p)
