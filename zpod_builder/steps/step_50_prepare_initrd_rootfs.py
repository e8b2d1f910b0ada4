from __future__ import annotations

import base64
import binascii
import logging
import re
import shutil
from pathlib import Path
from typing import List, Sequence

from ..build_ctx import BuildCtx
from ..errors import ConfigError, ZpodError
from ..lib.archive import extract_tar
from ..lib.assets import install_file, make_executable
from ..lib.files import read_lines, write_atomic
from ..lib.net import fetch
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)

# Inside an initramfs pivot_root is unavailable, so podman must not use it.
ENGINE_HEADER = "[engine]"
NO_PIVOT_ROOT = "no_pivot_root = true"

_ENGINE_HEADER_RE = re.compile(r"^\s*\[engine\]\s*(#.*)?$")
_NO_PIVOT_ROOT_RE = re.compile(r"^\s*no_pivot_root\s*=")


def engine_no_pivot_root(lines: Sequence[str]) -> List[str]:
    """Set ``no_pivot_root = true`` in the ``[engine]`` table of containers.conf.

    Other tables and keys stay where they are. The key goes right under an
    existing ``[engine]`` header; a missing table is appended.
    """

    out = [ln for ln in lines if not _NO_PIVOT_ROOT_RE.match(ln)]
    for i, ln in enumerate(out):
        if _ENGINE_HEADER_RE.match(ln):
            out.insert(i + 1, NO_PIVOT_ROOT)
            return out
    return out + [ENGINE_HEADER, NO_PIVOT_ROOT]


def write_containers_conf(initrd: Path, *, dry_run: bool = False) -> Path:
    conf = initrd / "etc/containers/containers.conf"
    lines = engine_no_pivot_root(read_lines(conf))
    write_atomic(conf, "\n".join(lines) + "\n", dry_run=dry_run)
    return conf


def write_dropbear_key(initrd: Path, key_b64: str, *, dry_run: bool = False) -> Path:
    try:
        key = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"initrd.dropbear_host_key is not valid base64: {e}") from e

    path = initrd / "etc/dropbear/dropbear_ecdsa_host_key"
    write_atomic(path, key, mode=0o600, dry_run=dry_run)
    return path


def install_mdev(installer: Path, initrd: Path) -> None:
    src = installer / "mdev"
    if not src.is_dir():
        raise ZpodError(f"Installer mdev directory '{src}' not found.")

    dest = initrd / "lib/mdev"
    dest.mkdir(parents=True, exist_ok=True)
    for f in sorted(src.iterdir()):
        if f.is_file():
            install_file(f, dest / f.name)

    conf = dest / "mdev.conf"
    if conf.exists():
        (initrd / "etc").mkdir(parents=True, exist_ok=True)
        shutil.move(str(conf), str(initrd / "etc/mdev.conf"))
    for f in dest.iterdir():
        make_executable(f)


# installer file -> location inside the initrd
INSTALLER_SCRIPTS = (
    ("init_functions", "bin/init_functions"),
    ("init_install", "sbin/init_install"),
    ("init", "init"),
)


def installer_inputs(installer: Path) -> List[Path]:
    return [installer / name for name, _ in INSTALLER_SCRIPTS] + [installer / "mdev"]


def missing_installer_inputs(installer: Path) -> List[Path]:
    return [p for p in installer_inputs(installer) if not p.exists()]


class PrepareInitrdRootfsStep(BaseStep):
    step_id = "50_prepare_initrd_rootfs"

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir, *installer_inputs(ctx.installer_dir)]

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [
            ctx.initrd_dir / "etc/containers/containers.conf",
            *(ctx.initrd_dir / dest for _, dest in INSTALLER_SCRIPTS),
        ]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Preparing initrd with Alpine minirootfs...")
        initrd = ctx.initrd_dir
        installer = ctx.installer_dir

        fetch(ctx.cfg.alpine_initrd_rootfs_url, ctx.alpine_rootfs_path, dry_run=ctx.dry_run)
        extract_tar(ctx.alpine_rootfs_path, initrd, dry_run=ctx.dry_run)

        write_containers_conf(initrd, dry_run=ctx.dry_run)

        key = ctx.cfg.dropbear_host_key
        if key:
            write_dropbear_key(initrd, key, dry_run=ctx.dry_run)
        else:
            logger.info("No dropbear host key configured; dropbear will generate one at boot")

        if ctx.dry_run:
            logger.info("Would copy installer scripts from %s", str(installer))
            return

        logger.info("Copying installer scripts...")
        install_mdev(installer, initrd)
        for name, dest in INSTALLER_SCRIPTS:
            src = installer / name
            if not src.is_file():
                raise ZpodError(f"Installer file '{src}' not found.")
            install_file(src, initrd / dest, mode=0o755)
