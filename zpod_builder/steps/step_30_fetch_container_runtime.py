from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from ..build_ctx import BuildCtx
from ..lib.archive import extract_tar
from ..lib.assets import copy_tree, make_executable, remove_path
from ..lib.command import run_cmd
from ..lib.net import fetch
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)


def prepare_runtime_cache(ctx: BuildCtx) -> bool:
    """Extract (and shrink) the runtime bundle once; returns False on a cache hit."""

    cache = ctx.runtime_cache_dir
    if cache.is_dir():
        logger.info("Using cached runtime tree %s", str(cache))
        return False

    cfg = ctx.cfg
    extract_tar(ctx.runtime_tarball_path, cache, strip_components=1, dry_run=ctx.dry_run)

    if cfg.runtime_compress:
        for rel in cfg.runtime_strip:
            run_cmd(["strip", str(cache / rel)], dry_run=ctx.dry_run)
        for rel in cfg.runtime_upx:
            run_cmd(["upx", "-q", "--best", "--lzma", str(cache / rel)], dry_run=ctx.dry_run)
    return True


class FetchContainerRuntimeStep(BaseStep):
    """Static podman bundle, merged into the initrd root."""

    step_id = "30_fetch_container_runtime"

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir]

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.runtime_cache_dir, ctx.initrd_dir / "usr/local/bin"]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Downloading container runtime...")
        fetch(ctx.cfg.runtime_url, ctx.runtime_tarball_path, dry_run=ctx.dry_run)
        prepare_runtime_cache(ctx)

        if ctx.dry_run:
            logger.info("Would merge %s into %s", str(ctx.runtime_cache_dir), str(ctx.initrd_dir))
            return

        initrd = ctx.initrd_dir
        copy_tree(str(ctx.runtime_cache_dir), str(initrd))

        bin_dir = initrd / "usr/local/bin"
        if bin_dir.is_dir():
            for p in bin_dir.iterdir():
                if p.is_file():
                    make_executable(p)

        for rel in ctx.cfg.runtime_remove:
            remove_path(initrd / rel)

        lic = bin_dir / "LICENSE"
        if lic.is_file():
            (initrd / "licenses").mkdir(parents=True, exist_ok=True)
            shutil.move(str(lic), str(initrd / "licenses/LICENSE"))

        logger.info("Container runtime installed in %s", str(initrd))
