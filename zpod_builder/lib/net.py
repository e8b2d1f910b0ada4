from __future__ import annotations

import logging
import os
from pathlib import Path

from ..errors import CommandError, DownloadError
from .command import run_cmd

logger = logging.getLogger(__name__)


def fetch(url: str, dest: str | Path, *, dry_run: bool = False) -> bool:
    """Download url to dest unless dest already exists.

    The transfer goes to ``<dest>.part`` and is renamed on success, so an
    interrupted download never poisons the cache path.

    Returns True if a download happened, False on a cache hit.
    """

    d = Path(dest)
    if d.exists():
        logger.info("Using cached %s", str(d))
        return False

    if not dry_run:
        d.parent.mkdir(parents=True, exist_ok=True)

    part = d.with_name(d.name + ".part")
    try:
        run_cmd(["curl", "-L", "--fail", "-o", str(part), url], dry_run=dry_run)
    except CommandError as e:
        if part.exists():
            part.unlink()
        raise DownloadError(f"Failed to download {url}: {e.stderr.strip() or e}") from e

    if not dry_run:
        os.replace(part, d)
    logger.info("Downloaded %s -> %s", url, str(d))
    return True


def fetch_text(url: str, *, dry_run: bool = False) -> str:
    """Fetch a small text document (``curl -s``)."""

    try:
        r = run_cmd(["curl", "-sL", "--fail", url], dry_run=dry_run)
    except CommandError as e:
        raise DownloadError(f"Failed to fetch {url}: {e.stderr.strip() or e}") from e
    return r.stdout
