# tests/unit/pipeline/test_unit_state.py — v1
"""Tests for pipeline/state.py — allowed transitions and terminal states."""

from __future__ import annotations

import pytest

from insurag.pipeline.state import InvalidTransitionError, PipelineRun, PipelineStage

MISS_PATH = [
    PipelineStage.CACHE_LOOKUP,
    PipelineStage.EMBEDDING,
    PipelineStage.RETRIEVING,
    PipelineStage.GENERATING,
    PipelineStage.CACHE_WRITE,
    PipelineStage.DONE,
]


class TestPipelineStage:
    def test_terminal(self):
        assert PipelineStage.DONE.terminal
        assert PipelineStage.FAILED.terminal
        assert not PipelineStage.GENERATING.terminal


class TestPipelineRun:
    def test_initial_state(self):
        run = PipelineRun()
        assert run.stage is PipelineStage.NORMALIZING
        assert run.history == [PipelineStage.NORMALIZING]
        assert len(run.request_id) == 32

    def test_request_ids_unique(self):
        assert PipelineRun().request_id != PipelineRun().request_id

    def test_miss_path(self):
        run = PipelineRun()
        for stage in MISS_PATH:
            run.transition(stage)
        assert run.done
        assert run.history == [PipelineStage.NORMALIZING, *MISS_PATH]

    def test_hit_path(self):
        run = PipelineRun()
        run.transition(PipelineStage.CACHE_LOOKUP)
        run.transition(PipelineStage.DONE)
        assert run.done

    def test_generating_may_skip_cache_write(self):
        run = PipelineRun(stage=PipelineStage.GENERATING)
        run.transition(PipelineStage.DONE)
        assert run.done

    def test_skipping_stage_rejected(self):
        run = PipelineRun()
        with pytest.raises(InvalidTransitionError):
            run.transition(PipelineStage.EMBEDDING)

    def test_failed_from_any_non_terminal(self):
        for stage in PipelineStage:
            if stage.terminal:
                continue
            run = PipelineRun(stage=stage)
            run.transition(PipelineStage.FAILED)
            assert run.failed_stage is stage

    def test_terminal_states_are_final(self):
        run = PipelineRun(stage=PipelineStage.DONE)
        with pytest.raises(InvalidTransitionError):
            run.transition(PipelineStage.FAILED)
        run = PipelineRun(stage=PipelineStage.FAILED)
        with pytest.raises(InvalidTransitionError):
            run.transition(PipelineStage.CACHE_LOOKUP)
