from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Sequence

from ..build_ctx import BuildCtx
from ..lib.files import write_atomic
from ..optimize import OptimizeSettings, apply_optimizations
from ..pipeline import BaseStep

logger = logging.getLogger(__name__)

# busybox reboot can hang on some hardware; sysrq is the fallback.
REBOOT_SCRIPT = (
    "#!/bin/sh\n"
    "sync; echo '[*] Zpod will reboot after 6s'; sleep 2; sync; /bin/busybox reboot; sleep 4; "
    "echo 'b' > /proc/sysrq-trigger\n"
)


class OptimizeRootfsStep(BaseStep):
    step_id = "60_optimize_rootfs"

    def requires(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir]

    def produces(self, ctx: BuildCtx) -> Sequence[Path]:
        return [ctx.initrd_dir / "sbin/reboot", ctx.initrd_dir / "zpod_build_info"]

    def run(self, ctx: BuildCtx) -> None:
        initrd = ctx.initrd_dir

        # sbin/reboot is a busybox symlink in the rootfs; replace it, don't write through it
        reboot = initrd / "sbin/reboot"
        if not ctx.dry_run and reboot.is_symlink():
            reboot.unlink()
        write_atomic(reboot, REBOOT_SCRIPT, mode=0o755, dry_run=ctx.dry_run)

        settings = OptimizeSettings.from_config(ctx.cfg.optimize)
        if ctx.dry_run and not initrd.is_dir():
            logger.info("Would optimize %s", str(initrd))
        else:
            apply_optimizations(initrd, settings, dry_run=ctx.dry_run)

        write_atomic(initrd / "zpod_build_info", time.strftime("%a %b %d %H:%M:%S %Z %Y") + "\n", dry_run=ctx.dry_run)
