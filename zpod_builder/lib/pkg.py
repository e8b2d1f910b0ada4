from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .chroot import chroot_shell
from .command import run_cmd

logger = logging.getLogger(__name__)


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], dry_run=dry_run)


def apt_install(packages: Sequence[str], *, dry_run: bool = False) -> None:
    """Install packages on the build host."""

    if not packages:
        return
    run_cmd(["apt-get", "install", "-y", *packages], env={"DEBIAN_FRONTEND": "noninteractive"}, dry_run=dry_run)


def dpkg_install(deb: str | Path, *, dry_run: bool = False) -> None:
    run_cmd(["dpkg", "-i", str(deb)], dry_run=dry_run)


def extract_deb(deb: str | Path, dest: str | Path, *, dry_run: bool = False) -> None:
    """Unpack a .deb including its control files (``dpkg-deb -R``)."""

    run_cmd(["dpkg-deb", "-R", str(deb), str(dest)], dry_run=dry_run)


def apk_script(
    packages: Sequence[str],
    *,
    services: Sequence[str] = (),
    no_check_certificate: bool = True,
) -> str:
    """Shell script that upgrades an Alpine root and installs packages.

    Runs as one chroot session; the apk cache is removed at the end.
    """

    flag = " --no-check-certificate" if no_check_certificate else ""
    cmds = [
        "date",
        "ln -sf /etc/ssl /usr/lib/ssl",
        f"apk{flag} update",
        f"apk{flag} upgrade",
    ]
    if packages:
        cmds.append(f"apk add -v{flag} " + " ".join(packages))
    cmds += [f"rc-update add {s}" for s in services]
    cmds.append("rm -rf /var/cache/apk/*")
    return " && \\\n    ".join(cmds)


def apk_customize(
    target_root: str | Path,
    packages: Sequence[str],
    *,
    services: Sequence[str] = (),
    dry_run: bool = False,
) -> None:
    chroot_shell(target_root, apk_script(packages, services=services), dry_run=dry_run)
    logger.info("Installed %d Alpine package(s) in %s", len(packages), str(target_root))


def find_kernel_image(extract_dir: str | Path) -> Optional[Path]:
    """Newest boot/vmlinuz-* in an unpacked kernel package, if any."""

    candidates = sorted(Path(extract_dir).glob("boot/vmlinuz-*"))
    return candidates[-1] if candidates else None
