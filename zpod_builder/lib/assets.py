from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def copy_tree(src: str, dst: str, *, dry_run: bool = False) -> None:
    """Merge src into dst (``cp -rf src/* dst/``), preserving symlinks."""

    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(src)

    if dry_run:
        logger.info("Would copy tree %s -> %s", str(s), str(d))
        return

    d.mkdir(parents=True, exist_ok=True)
    for item in sorted(s.rglob("*")):
        rel = item.relative_to(s)
        out = d / rel
        if item.is_symlink():
            out.parent.mkdir(parents=True, exist_ok=True)
            if out.is_symlink() or out.is_file():
                out.unlink()
            os.symlink(os.readlink(item), out)
        elif item.is_dir():
            out.mkdir(parents=True, exist_ok=True)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, out)


def install_file(src: str | Path, dst: str | Path, *, mode: Optional[int] = None, dry_run: bool = False) -> None:
    """Copy one file into place (``cp -f`` + ``chmod``)."""

    s = Path(src)
    d = Path(dst)
    if not s.is_file():
        raise FileNotFoundError(str(s))
    if dry_run:
        logger.info("Would install %s -> %s", str(s), str(d))
        return
    d.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(s, d)
    if mode is not None:
        os.chmod(d, mode)


def make_executable(path: str | Path) -> None:
    p = Path(path)
    os.chmod(p, p.stat().st_mode | 0o111)


def remove_path(path: str | Path, *, dry_run: bool = False) -> bool:
    """rm -rf path; returns whether anything was removed."""

    p = Path(path)
    if not (p.exists() or p.is_symlink()):
        return False
    if dry_run:
        logger.info("Would remove %s", str(p))
        return True
    if p.is_dir() and not p.is_symlink():
        shutil.rmtree(p)
    else:
        p.unlink()
    return True
