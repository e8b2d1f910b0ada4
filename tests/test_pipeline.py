"""
Tests for zpod_builder.pipeline (ordered steps with path contracts).
"""

from types import SimpleNamespace

import pytest

from zpod_builder.errors import CommandError, StepError
from zpod_builder.pipeline import BaseStep, run_pipeline


class RecordingStep(BaseStep):
    def __init__(self, step_id, log, *, enabled=True, requires=(), produces=(), create=(), error=None):
        self.step_id = step_id
        self._log = log
        self._enabled = enabled
        self._requires = list(requires)
        self._produces = list(produces)
        self._create = list(create)
        self._error = error

    def enabled(self, ctx):
        return self._enabled

    def requires(self, ctx):
        return self._requires

    def produces(self, ctx):
        return self._produces

    def run(self, ctx):
        self._log.append(self.step_id)
        if self._error is not None:
            raise self._error
        for p in self._create:
            p.write_text("x")


@pytest.fixture
def ctx():
    return SimpleNamespace(dry_run=False)


class TestRunPipeline:
    """Tests for run_pipeline()."""

    def test_runs_in_order(self, ctx):
        log = []
        steps = [RecordingStep("00_a", log), RecordingStep("10_b", log), RecordingStep("20_c", log)]

        result = run_pipeline(ctx=ctx, steps=steps)

        assert log == ["00_a", "10_b", "20_c"]
        assert result.ran_steps == ["00_a", "10_b", "20_c"]
        assert result.skipped_steps == []

    def test_disabled_step_skipped(self, ctx):
        log = []
        steps = [RecordingStep("00_a", log), RecordingStep("10_b", log, enabled=False)]

        result = run_pipeline(ctx=ctx, steps=steps)

        assert log == ["00_a"]
        assert result.skipped_steps == ["10_b"]

    def test_missing_precondition_names_step(self, ctx, tmp_path):
        log = []
        steps = [RecordingStep("50_x", log, requires=[tmp_path / "installer/init"])]

        with pytest.raises(StepError, match=r"\[50_x\] precondition not met") as exc:
            run_pipeline(ctx=ctx, steps=steps)

        assert exc.value.step_id == "50_x"
        assert log == []

    def test_missing_postcondition(self, ctx, tmp_path):
        steps = [RecordingStep("70_pack", [], produces=[tmp_path / "zpod-initrd"])]

        with pytest.raises(StepError, match="postcondition"):
            run_pipeline(ctx=ctx, steps=steps)

    def test_postcondition_met(self, ctx, tmp_path):
        out = tmp_path / "zpod-initrd"
        steps = [RecordingStep("70_pack", [], produces=[out], create=[out])]

        assert run_pipeline(ctx=ctx, steps=steps).ran_steps == ["70_pack"]

    def test_dry_run_skips_path_checks(self, tmp_path):
        steps = [RecordingStep("70_pack", [], requires=[tmp_path / "a"], produces=[tmp_path / "b"])]
        result = run_pipeline(ctx=SimpleNamespace(dry_run=True), steps=steps)
        assert result.ran_steps == ["70_pack"]

    def test_step_failure_wrapped_and_stops(self, ctx):
        log = []
        err = CommandError(["grub-install"], 1, "no space")
        steps = [RecordingStep("40_disk", log, error=err), RecordingStep("50_next", log)]

        with pytest.raises(StepError) as exc:
            run_pipeline(ctx=ctx, steps=steps)

        assert exc.value.step_id == "40_disk"
        assert exc.value.__cause__ is err
        assert log == ["40_disk"]

    def test_os_error_wrapped(self, ctx):
        steps = [RecordingStep("10_setup", [], error=PermissionError("read-only"))]
        with pytest.raises(StepError, match=r"\[10_setup\] read-only"):
            run_pipeline(ctx=ctx, steps=steps)

    def test_stop_after(self, ctx):
        log = []
        steps = [RecordingStep("00_a", log), RecordingStep("10_b", log), RecordingStep("20_c", log)]

        result = run_pipeline(ctx=ctx, steps=steps, stop_after="10_b")

        assert log == ["00_a", "10_b"]
        assert result.ran_steps == ["00_a", "10_b"]

    def test_unknown_stop_after(self, ctx):
        with pytest.raises(StepError, match="unknown step"):
            run_pipeline(ctx=ctx, steps=[RecordingStep("00_a", [])], stop_after="99_nope")
