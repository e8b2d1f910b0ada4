from __future__ import annotations

import contextlib
import logging
import shutil
from pathlib import Path
from typing import Sequence

from ..build_ctx import BuildCtx
from ..lib.archive import xz_compress
from ..lib.assets import remove_path
from ..lib.block import loop_device, mounted, partition_device
from ..lib.bootloader import install_grub_bios, install_grub_efi
from ..lib.storage import PartitionPlan, create_image, format_partitions, zerofree_partitions
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)


def plan_from_ctx(ctx: BuildCtx) -> PartitionPlan:
    return PartitionPlan.from_config(ctx.cfg.disk_partitions, image_size_mib=ctx.cfg.disk_image_size_mib)


def build_disk_image(ctx: BuildCtx, plan: PartitionPlan) -> None:
    """Create, format and make the raw image bootable, then compress it into the cache.

    The loop device and both mounts are scoped; they are released in reverse
    order whether GRUB succeeds or not.
    """

    raw = ctx.raw_disk_image_path
    mnt = ctx.image_mount_dir

    create_image(plan, raw, dry_run=ctx.dry_run)

    with loop_device(raw, dry_run=ctx.dry_run) as dev:
        format_partitions(plan, dev, dry_run=ctx.dry_run)

        with contextlib.ExitStack() as stack:
            stack.enter_context(mounted(partition_device(dev, plan.boot_index), mnt, dry_run=ctx.dry_run))
            stack.enter_context(
                mounted(partition_device(dev, plan.esp_index), mnt / "boot/efi", dry_run=ctx.dry_run)
            )
            logger.info("Installing GRUB for both EFI and BIOS...")
            install_grub_efi(mount_dir=mnt, dry_run=ctx.dry_run)
            install_grub_bios(mount_dir=mnt, disk=dev, modules=ctx.cfg.grub_bios_modules, dry_run=ctx.dry_run)

        # unmounted before zerofree
        zerofree_partitions(plan, dev, dry_run=ctx.dry_run)

    remove_path(mnt, dry_run=ctx.dry_run)

    logger.info("Compressing disk.img...")
    xz_compress(raw, ctx.disk_image_cache_path, dry_run=ctx.dry_run)
    remove_path(raw, dry_run=ctx.dry_run)


class BuildDiskImageStep(BaseStep):
    """Empty GPT disk image with GRUB (EFI + BIOS) for the installer to write out."""

    step_id = "40_build_disk_image"

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.work_dir]

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.disk_image_cache_path, ctx.disk_image_path]

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Building disk.img template...")
        plan = plan_from_ctx(ctx)

        if ctx.disk_image_cache_path.exists():
            logger.info("Using cached %s", str(ctx.disk_image_cache_path))
        else:
            build_disk_image(ctx, plan)

        if ctx.dry_run:
            logger.info("Would copy %s -> %s", str(ctx.disk_image_cache_path), str(ctx.disk_image_path))
            return
        shutil.copy2(ctx.disk_image_cache_path, ctx.disk_image_path)
        logger.info("disk.img.xz created in %s", str(ctx.work_dir))
