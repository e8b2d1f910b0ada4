from __future__ import annotations

import logging

from ..build_config import TOOLS_HINT
from ..build_ctx import BuildCtx
from ..errors import ZpodError
from ..lib.command import require_tools
from ..pipeline import BaseStep
from .step_50_prepare_initrd_rootfs import missing_installer_inputs

logger = logging.getLogger(__name__)


class CheckDependenciesStep(BaseStep):
    """Verify host tools and installer inputs before anything is touched."""

    step_id = "00_check_dependencies"

    def run(self, ctx: BuildCtx) -> None:
        logger.info("Checking for required build tools...")
        require_tools(ctx.cfg.required_tools, hint=TOOLS_HINT)

        missing = missing_installer_inputs(ctx.installer_dir)
        for p in missing:
            logger.error("Installer input '%s' not found.", str(p))
        if missing:
            raise ZpodError(
                "Installer input(s) not found: " + ", ".join(str(p) for p in missing) + ". Please create them."
            )

        logger.info("All %d required tools present", len(ctx.cfg.required_tools))
