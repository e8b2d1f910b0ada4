from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator, List

from ..errors import ZpodError
from .command import is_mountpoint, run_cmd

logger = logging.getLogger(__name__)


def partition_device(disk: str, n: int) -> str:
    # loop/nvme/mmcblk devices use p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def attach_loop(image: str | Path, *, dry_run: bool = False) -> str:
    """Attach image to the first free loop device with partition scanning."""

    r = run_cmd(["losetup", "-f", "--show", "-P", str(image)], dry_run=dry_run)
    dev = (r.stdout or "").strip()
    if dry_run and not dev:
        dev = "/dev/loop0"
    if not dev:
        raise ZpodError(f"losetup returned no device for {image}")
    logger.info("Attached %s -> %s", str(image), dev)
    return dev


def detach_loop(dev: str, *, dry_run: bool = False) -> None:
    run_cmd(["losetup", "-d", dev], dry_run=dry_run)
    logger.info("Detached loop device %s", dev)


def loops_for(image: str | Path, *, dry_run: bool = False) -> List[str]:
    """Loop devices whose backing file is image (``losetup -j``)."""

    if dry_run:
        return []
    r = run_cmd(["losetup", "-j", str(image)], check=False)
    devs = []
    for line in (r.stdout or "").splitlines():
        dev = line.split(":", 1)[0].strip()
        if dev:
            devs.append(dev)
    return devs


def detach_loops_for(image: str | Path, *, dry_run: bool = False) -> List[str]:
    devs = loops_for(image, dry_run=dry_run)
    for dev in devs:
        logger.info("Detaching leftover loop device %s...", dev)
        run_cmd(["losetup", "-d", dev], check=False, dry_run=dry_run)
    return devs


@contextlib.contextmanager
def loop_device(image: str | Path, *, dry_run: bool = False) -> Iterator[str]:
    """Attach image to a loop device; always detach on exit."""

    dev = attach_loop(image, dry_run=dry_run)
    try:
        yield dev
    finally:
        detach_loop(dev, dry_run=dry_run)


def mount(source: str, target: str | Path, *, options: List[str] | None = None, dry_run: bool = False) -> None:
    t = Path(target)
    if not dry_run:
        t.mkdir(parents=True, exist_ok=True)
    run_cmd(["mount", *(options or []), source, str(t)], dry_run=dry_run)


def umount(target: str | Path, *, lazy: bool = False, dry_run: bool = False) -> None:
    argv = ["umount"]
    if lazy:
        argv.append("-lf")
    run_cmd([*argv, str(target)], dry_run=dry_run)


def umount_if_mounted(target: str | Path, *, dry_run: bool = False) -> bool:
    if not is_mountpoint(target):
        return False
    run_cmd(["umount", str(target)], check=False, dry_run=dry_run)
    return True


@contextlib.contextmanager
def mounted(
    source: str,
    target: str | Path,
    *,
    options: List[str] | None = None,
    dry_run: bool = False,
) -> Iterator[Path]:
    """Mount source on target; always unmount on exit."""

    mount(source, target, options=options, dry_run=dry_run)
    try:
        yield Path(target)
    finally:
        umount(target, dry_run=dry_run)
