from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from ..build_ctx import INITRD_DIRS, BuildCtx
from ..lib.assets import remove_path
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)


class SetupEnvironmentStep(BaseStep):
    step_id = "10_setup_environment"

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir, ctx.iso_dir / "boot/grub", ctx.output_dir]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Setting up build environment in %s", str(ctx.work_dir))

        # Fresh work/output trees every run; only the download cache survives.
        remove_path(ctx.work_dir, dry_run=ctx.dry_run)
        remove_path(ctx.output_dir, dry_run=ctx.dry_run)

        if ctx.dry_run:
            return

        for d in INITRD_DIRS:
            (ctx.initrd_dir / d).mkdir(parents=True, exist_ok=True)
        (ctx.iso_dir / "boot/grub").mkdir(parents=True, exist_ok=True)
        (ctx.work_dir / "os").mkdir(parents=True, exist_ok=True)
        ctx.output_dir.mkdir(parents=True, exist_ok=True)
        ctx.cache_dir.mkdir(parents=True, exist_ok=True)
