from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from ..build_ctx import BuildCtx
from ..lib.archive import pack_cpio_xz
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)


class PackInitrdStep(BaseStep):
    step_id = "70_pack_initrd"

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir / "init"]

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_path]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Packing installer initrd...")
        pack_cpio_xz(ctx.initrd_dir, ctx.initrd_path, dry_run=ctx.dry_run)
