from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator, Sequence

from .block import mount, umount, umount_if_mounted
from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

# Mount order; released in reverse.
CHROOT_BINDS = ("/proc", "/sys", "/dev")


def chroot_cmd(target_root: str | Path, argv: Sequence[str], *, dry_run: bool = False) -> CmdResult:
    """Run a command inside target root."""

    return run_cmd(["chroot", str(target_root), *argv], dry_run=dry_run)


def chroot_shell(target_root: str | Path, script: str, *, dry_run: bool = False) -> CmdResult:
    """Run a /bin/sh -c script inside target root (one shell session)."""

    return chroot_cmd(target_root, ["/bin/sh", "-c", script], dry_run=dry_run)


@contextlib.contextmanager
def chroot_binds(target_root: str | Path, *, dry_run: bool = False) -> Iterator[Path]:
    """Bind-mount /proc, /sys and /dev into target root for the with-block.

    Whatever was mounted is unmounted in reverse order on every exit path,
    including a failure half way through the mounts.
    """

    root = Path(target_root)
    with contextlib.ExitStack() as stack:
        for src in CHROOT_BINDS:
            dst = root / src.lstrip("/")
            mount(src, dst, options=["--bind"], dry_run=dry_run)
            stack.callback(umount, dst, dry_run=dry_run)
        yield root


def umount_chroot_binds(target_root: str | Path, *, dry_run: bool = False) -> None:
    """Unmount any bind still mounted under target root (cleanup path)."""

    root = Path(target_root)
    for src in reversed(CHROOT_BINDS):
        if umount_if_mounted(root / src.lstrip("/"), dry_run=dry_run):
            logger.info("Unmounted leftover %s", str(root / src.lstrip("/")))
