from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from ..build_ctx import BuildCtx
from ..lib.bootloader import make_rescue_iso, render_iso_grub_cfg, write_iso_grub_cfg
from ..pipeline import BaseStep
from .step_80_package_tarball import artifact_members

logger = logging.getLogger(__name__)


class PackageIsoStep(BaseStep):
    """Hybrid BIOS/EFI installer ISO."""

    step_id = "90_package_iso"

    def enabled(self, ctx: BuildCtx) -> bool:
        return ctx.wants_iso

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return artifact_members(ctx)

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.iso_dir / "boot/grub/grub.cfg", ctx.iso_path]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Creating %s...", str(ctx.iso_path))
        boot = ctx.iso_dir / "boot"
        cfg = ctx.cfg

        for src in artifact_members(ctx):
            if ctx.dry_run:
                logger.info("Would copy %s -> %s", str(src), str(boot))
            else:
                boot.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, boot / src.name)

        grub_cfg = render_iso_grub_cfg(
            title=cfg.iso_menu_title,
            kernel=f"/boot/{ctx.vmlinuz_path.name}",
            initrd=f"/boot/{ctx.initrd_path.name}",
            cmdline=cfg.iso_kernel_cmdline,
            timeout=cfg.iso_timeout,
        )
        write_iso_grub_cfg(ctx.iso_dir, grub_cfg, dry_run=ctx.dry_run)

        make_rescue_iso(iso_root=ctx.iso_dir, output=ctx.iso_path, volume_id=cfg.iso_volume_id, dry_run=ctx.dry_run)
        logger.info("All artifacts built successfully in %s.", str(ctx.output_dir))
