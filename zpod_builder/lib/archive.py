from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Sequence

from .command import run_cmd, run_piped

logger = logging.getLogger(__name__)


def extract_tar(
    archive: str | Path,
    dest: str | Path,
    *,
    strip_components: int = 0,
    dry_run: bool = False,
) -> None:
    d = Path(dest)
    if not dry_run:
        d.mkdir(parents=True, exist_ok=True)
    argv = ["tar", "-xzf", str(archive), "-C", str(d)]
    if strip_components:
        argv.append(f"--strip-components={strip_components}")
    run_cmd(argv, dry_run=dry_run)


def create_tar_gz(
    output: str | Path,
    *,
    base_dir: str | Path,
    members: Sequence[str] = (".",),
    dry_run: bool = False,
) -> None:
    """tar -czf output -C base_dir members... (no leading path components)."""

    if not dry_run:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
    run_cmd(["tar", "-czf", str(output), "-C", str(base_dir), *members], dry_run=dry_run)


def xz_compress(source: str | Path, output: str | Path, *, level: int = 9, dry_run: bool = False) -> None:
    """xz -<level> -c source > output (source is kept).

    Compresses into ``<output>.part`` and renames on success, so a failed or
    interrupted run never leaves a truncated file at a cache path.
    """

    out = Path(output)
    part = out.with_name(out.name + ".part")
    if not dry_run:
        out.parent.mkdir(parents=True, exist_ok=True)
    try:
        run_cmd(["xz", f"-{level}", "-c", str(source)], stdout_path=str(part), dry_run=dry_run)
    except BaseException:
        if part.exists():
            part.unlink()
        raise
    if not dry_run:
        os.replace(part, out)


def pack_cpio_xz(root: str | Path, output: str | Path, *, dry_run: bool = False) -> None:
    """Pack a directory as an xz-compressed newc cpio archive (initramfs format).

    The kernel's xz decompressor only understands CRC32 checks.
    """

    if not dry_run:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
    run_piped(
        [
            ["find", "."],
            ["cpio", "-o", "-H", "newc"],
            ["xz", "-9", "--check=crc32"],
        ],
        stdout_path=str(output),
        cwd=str(root),
        dry_run=dry_run,
    )
