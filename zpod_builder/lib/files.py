from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Sequence

logger = logging.getLogger(__name__)


def write_atomic(
    path: str | Path,
    contents: str | bytes,
    *,
    mode: Optional[int] = None,
    dry_run: bool = False,
) -> None:
    """Write a file via temp-file + rename so readers never see a partial file.

    The existing file mode is preserved unless ``mode`` is given.
    """

    p = Path(path)
    if dry_run:
        logger.info("Would write %s", str(p))
        return

    p.parent.mkdir(parents=True, exist_ok=True)
    data = contents.encode("utf-8", errors="surrogateescape") if isinstance(contents, str) else contents

    if mode is None and p.exists():
        mode = p.stat().st_mode & 0o7777

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, p)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

    logger.debug("Wrote %s (%d bytes)", str(p), len(data))


def read_lines(path: str | Path) -> list[str]:
    """Lines of path, or [] if it is missing. Bytes that are not UTF-8 survive a write back."""

    p = Path(path)
    if not p.exists():
        return []
    return p.read_text(encoding="utf-8", errors="surrogateescape").splitlines()


def patch_lines(
    path: str | Path,
    *,
    drop: Sequence[str] = (),
    append: Iterable[str] = (),
    create: bool = True,
    dry_run: bool = False,
) -> bool:
    """Delete every line matching one of the ``drop`` regexes, then append lines.

    Re-running with the same arguments leaves the file unchanged, as long as
    each appended line is matched by one of the ``drop`` patterns.

    Returns False when the file is missing and ``create`` is False.
    """

    p = Path(path)
    if not p.exists() and not create:
        logger.info("Skip patch of missing %s", str(p))
        return False

    patterns = [re.compile(d) for d in drop]
    kept = [ln for ln in read_lines(p) if not any(rx.search(ln) for rx in patterns)]
    lines = kept + list(append)
    write_atomic(p, "\n".join(lines) + ("\n" if lines else ""), dry_run=dry_run)
    return True


def replace_in_file(
    path: str | Path,
    pattern: str,
    replacement: str,
    *,
    dry_run: bool = False,
) -> int:
    """Regex substitution over a whole file (``sed -i s/../../g``). Returns match count."""

    p = Path(path)
    if not p.exists():
        logger.info("Skip substitution in missing %s", str(p))
        return 0
    text = p.read_text(encoding="utf-8", errors="surrogateescape")
    new, n = re.subn(pattern, lambda _m: replacement, text)
    if n:
        write_atomic(p, new, dry_run=dry_run)
    return n
