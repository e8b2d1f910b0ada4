from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from ..build_ctx import BuildCtx
from ..errors import ZpodError
from ..lib.assets import copy_tree
from ..lib.net import fetch
from ..lib.pkg import extract_deb, find_kernel_image
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)


class FetchKernelStep(BaseStep):
    """Download the kernel .deb and lift vmlinuz + modules out of it."""

    step_id = "20_fetch_kernel"

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir]

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.vmlinuz_path, ctx.initrd_dir / "lib/modules"]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Downloading and extracting kernel...")
        fetch(ctx.kernel_url, ctx.kernel_deb_path, dry_run=ctx.dry_run)
        extract_deb(ctx.kernel_deb_path, ctx.kernel_extract_dir, dry_run=ctx.dry_run)

        if ctx.dry_run:
            logger.info("Would copy vmlinuz -> %s and lib/modules into the initrd", str(ctx.vmlinuz_path))
            return

        vmlinuz = find_kernel_image(ctx.kernel_extract_dir)
        modules = ctx.kernel_extract_dir / "lib/modules"
        if vmlinuz is None or not modules.is_dir():
            raise ZpodError("Could not find vmlinuz or modules in the downloaded deb package.")

        shutil.copy2(vmlinuz, ctx.vmlinuz_path)
        copy_tree(str(modules), str(ctx.initrd_dir / "lib/modules"))

        logger.info("Kernel extracted successfully (%s).", vmlinuz.name)
