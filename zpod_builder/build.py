from __future__ import annotations

import logging
from typing import List, Optional

from .build_ctx import BuildCtx
from .lib.block import detach_loops_for, umount_if_mounted
from .lib.command import missing_tools
from .pipeline import PipelineResult, Step, run_pipeline
from .steps import (
    BuildDiskImageStep,
    CheckDependenciesStep,
    FetchContainerRuntimeStep,
    FetchKernelStep,
    OptimizeRootfsStep,
    PackageIsoStep,
    PackageTarballStep,
    PackInitrdStep,
    PrepareInitrdRootfsStep,
    SetupEnvironmentStep,
)

logger = logging.getLogger(__name__)


def build_steps() -> List[Step]:
    return [
        CheckDependenciesStep(),
        SetupEnvironmentStep(),
        FetchKernelStep(),
        FetchContainerRuntimeStep(),
        BuildDiskImageStep(),
        PrepareInitrdRootfsStep(),
        OptimizeRootfsStep(),
        PackInitrdStep(),
        PackageTarballStep(),
        PackageIsoStep(),
    ]


def release_build_resources(ctx: BuildCtx) -> None:
    """Unmount the image mount points and detach loop devices left by a failed run.

    Scoped mounts already release themselves; this covers a process killed
    between acquire and release, or a previous run that died. A host that
    lacks umount or losetup cannot have used them, so that part is skipped.
    """

    logger.info("Cleaning up...")
    absent = set(missing_tools(["umount", "losetup"]))
    mnt = ctx.image_mount_dir
    if "umount" not in absent:
        umount_if_mounted(mnt / "boot/efi", dry_run=ctx.dry_run)
        umount_if_mounted(mnt, dry_run=ctx.dry_run)
    if "losetup" not in absent:
        for dev in detach_loops_for(ctx.raw_disk_image_path, dry_run=ctx.dry_run):
            logger.info("Detached loop device %s", dev)
    logger.info("Cleanup finished.")


def run_build(ctx: BuildCtx, *, stop_after: Optional[str] = None) -> PipelineResult:
    logger.info("=== ZPod build: abi=%s target=%s ===", ctx.abi, ctx.target)
    logger.info("Kernel: %s", ctx.kernel_url)
    try:
        result = run_pipeline(ctx=ctx, steps=build_steps(), stop_after=stop_after)
    finally:
        # the work dir is kept for inspection
        release_build_resources(ctx)
    logger.info("Build finished (%d steps ran, %d skipped).", len(result.ran_steps), len(result.skipped_steps))
    return result
