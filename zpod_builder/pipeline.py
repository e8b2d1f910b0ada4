from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence

from .errors import StepError, ZpodError

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single named build step.

    ``requires`` lists paths that must exist before ``run``; ``produces``
    lists paths that must exist after it. ``enabled`` lets a step opt out
    for the current context (e.g. the ISO step for a tar.gz-only build).
    """

    step_id: str

    def enabled(self, ctx: Any) -> bool:
        ...

    def requires(self, ctx: Any) -> Sequence[Path]:
        ...

    def produces(self, ctx: Any) -> Sequence[Path]:
        ...

    def run(self, ctx: Any) -> None:
        ...


class BaseStep:
    """Defaults for steps that have no gating or path contracts."""

    step_id = ""

    def enabled(self, ctx: Any) -> bool:
        return True

    def requires(self, ctx: Any) -> Sequence[Path]:
        return []

    def produces(self, ctx: Any) -> Sequence[Path]:
        return []

    def run(self, ctx: Any) -> None:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass
class PipelineResult:
    ran_steps: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)


def _check_paths(step_id: str, paths: Sequence[Path], *, what: str) -> None:
    missing = [str(p) for p in paths if not Path(p).exists()]
    if missing:
        raise StepError(step_id, f"{what} not met, missing: {', '.join(missing)}")


def run_pipeline(
    *,
    ctx: Any,
    steps: Sequence[Step],
    stop_after: Optional[str] = None,
) -> PipelineResult:
    """Run steps in order, checking each step's pre/postconditions.

    Any failure is re-raised as StepError naming the step that failed, so
    the log shows exactly where the build stopped.
    """

    ids = [s.step_id for s in steps]
    if stop_after is not None and stop_after not in ids:
        raise StepError(stop_after, f"unknown step (known: {', '.join(ids)})")

    dry_run = bool(getattr(ctx, "dry_run", False))
    result = PipelineResult()

    for step in steps:
        if not step.enabled(ctx):
            logger.info("Skipping step %s (not enabled for this build)", step.step_id)
            result.skipped_steps.append(step.step_id)
        else:
            if not dry_run:
                _check_paths(step.step_id, step.requires(ctx), what="precondition")

            logger.info("Running step %s", step.step_id)
            try:
                step.run(ctx)
            except StepError:
                raise
            except (ZpodError, OSError) as e:
                raise StepError(step.step_id, str(e)) from e

            if not dry_run:
                _check_paths(step.step_id, step.produces(ctx), what="postcondition")
            result.ran_steps.append(step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    return result
