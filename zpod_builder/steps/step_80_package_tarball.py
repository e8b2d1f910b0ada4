from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from ..build_ctx import BuildCtx
from ..lib.archive import create_tar_gz
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)


def artifact_members(ctx: BuildCtx) -> List[Path]:
    return [ctx.vmlinuz_path, ctx.initrd_path, ctx.disk_image_path]


class PackageTarballStep(BaseStep):
    step_id = "80_package_tarball"

    def enabled(self, ctx: BuildCtx) -> bool:
        return ctx.wants_tarball

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return artifact_members(ctx)

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.tarball_path]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Creating %s...", str(ctx.tarball_path))
        create_tar_gz(
            ctx.tarball_path,
            base_dir=ctx.work_dir,
            members=[p.name for p in artifact_members(ctx)],
            dry_run=ctx.dry_run,
        )
