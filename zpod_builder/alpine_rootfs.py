"""Customized Alpine minirootfs for the installer initrd.

Finds the latest stable minirootfs, upgrades it and installs the extra
packages inside a chroot, then packs it as a tarball with no leading path
components (the form the build's ``50_prepare_initrd_rootfs`` step extracts).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from .build_config import BuildConfig
from .errors import DownloadError, HostError
from .lib.archive import create_tar_gz, extract_tar
from .lib.assets import remove_path
from .lib.chroot import chroot_binds, umount_chroot_binds
from .lib.command import require_tools
from .lib.files import patch_lines, write_atomic
from .lib.net import fetch, fetch_text
from .lib.pkg import apk_customize

logger = logging.getLogger(__name__)

ALPINE_TOOLS = ["curl", "tar", "chroot", "mount", "umount"]
MINIROOTFS_PREFIX = "alpine-minirootfs"


def pick_minirootfs(releases: Any) -> str:
    """Return the first minirootfs file name listed in latest-releases.yaml."""

    if isinstance(releases, list):
        for entry in releases:
            if not isinstance(entry, dict):
                continue
            name = str(entry.get("file") or "")
            if name.startswith(MINIROOTFS_PREFIX):
                return name
    raise DownloadError("Could not parse the minirootfs filename from the releases YAML.")


def latest_minirootfs(releases_url: str, *, dry_run: bool = False) -> str:
    text = fetch_text(f"{releases_url.rstrip('/')}/latest-releases.yaml", dry_run=dry_run)
    if dry_run and not text:
        return f"{MINIROOTFS_PREFIX}-latest-x86_64.tar.gz"
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DownloadError(f"invalid releases YAML: {e}") from e
    return pick_minirootfs(doc)


def run_alpine_build(cfg: BuildConfig, *, output: Optional[str] = None, dry_run: bool = False) -> Path:
    if os.geteuid() != 0:
        raise HostError("This command must be run as root to use chroot and mount.")
    require_tools(ALPINE_TOOLS)

    work = Path(cfg.alpine_work_dir)
    out = Path(output or cfg.alpine_output)
    rootfs = work / "rootfs"

    try:
        logger.info("Step 1: Finding the latest Alpine minirootfs...")
        name = latest_minirootfs(cfg.alpine_releases_url, dry_run=dry_run)
        logger.info("Found: %s", name)
        write_atomic(cfg.alpine_version_file, name + "\n", dry_run=dry_run)

        logger.info("Step 2: Downloading the base rootfs...")
        tarball = work / "minirootfs.tar.gz"
        fetch(f"{cfg.alpine_releases_url.rstrip('/')}/{name}", tarball, dry_run=dry_run)

        logger.info("Step 3: Setting up the chroot environment...")
        extract_tar(tarball, rootfs, dry_run=dry_run)

        resolv = rootfs / "etc/resolv.conf"
        with chroot_binds(rootfs, dry_run=dry_run):
            patch_lines(resolv, append=[f"nameserver {cfg.alpine_nameserver}"], dry_run=dry_run)

            logger.info("Step 4: Updating packages and installing tools inside chroot...")
            apk_customize(rootfs, cfg.alpine_packages, services=cfg.alpine_services, dry_run=dry_run)

            logger.info("Step 5: Cleaning up the chroot environment...")
            remove_path(resolv, dry_run=dry_run)

        logger.info("Step 6: Packaging the new custom rootfs...")
        create_tar_gz(out, base_dir=rootfs, dry_run=dry_run)
        if not dry_run:
            os.chmod(out, 0o666)
    finally:
        logger.info("Cleaning up...")
        umount_chroot_binds(rootfs, dry_run=dry_run)
        remove_path(work, dry_run=dry_run)

    logger.info("Custom Alpine rootfs created successfully: %s", str(out))
    return out
