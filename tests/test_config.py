"""Tests for benchmark plan configuration."""

import json

import pytest

from healthsim.benchmarks.config import (
    DEFAULT_BATCH_SIZES,
    BenchmarkPlan,
    WorkerPolicy,
    default_benchmark_plan,
    load_plan,
    parse_batch_sizes,
)


class TestBenchmarkPlan:
    def test_defaults(self):
        plan = default_benchmark_plan()
        assert plan.batch_sizes == (1000, 5000, 10000, 15000, 25000)
        assert plan.actor_count == 20
        assert plan.deadline_seconds == 1800
        assert plan.worker_policy == WorkerPolicy(pause_every=100, pause_seconds=0.01)
        assert list(plan) == list(DEFAULT_BATCH_SIZES)
        assert plan.validate() is plan

    @pytest.mark.parametrize(
        "overrides",
        [
            {"batch_sizes": ()},
            {"batch_sizes": (10, 0)},
            {"batch_sizes": (100, 50)},
            {"batch_sizes": (10, 10)},
            {"actor_count": 0},
            {"deadline_seconds": -1},
            {"pause_every": 0},
            {"pause_seconds": -0.5},
        ],
    )
    def test_validation(self, overrides):
        with pytest.raises(ValueError):
            BenchmarkPlan().with_overrides(**overrides).validate()

    def test_zero_deadline_is_valid(self):
        assert BenchmarkPlan(deadline_seconds=0).validate().deadline_seconds == 0

    def test_overrides_skip_none(self):
        plan = BenchmarkPlan().with_overrides(actor_count=None, seed=7, pause_every=50)
        assert plan.actor_count == 20
        assert plan.seed == 7
        assert plan.worker_policy.pause_every == 50
        assert plan.worker_policy.pause_seconds == 0.01


class TestParsing:
    def test_parse_batch_sizes(self):
        assert parse_batch_sizes("10, 20,30") == (10, 20, 30)
        assert parse_batch_sizes([1, "2"]) == (1, 2)

    def test_parse_batch_sizes_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_batch_sizes("10,abc")

    def test_load_plan_without_path(self):
        assert load_plan(None) == default_benchmark_plan()

    def test_load_plan_from_json(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(
            json.dumps(
                {
                    "batch_sizes": [20, 40],
                    "actor_count": 5,
                    "deadline_seconds": 60,
                    "seed": 3,
                    "pause_seconds": 0,
                }
            )
        )
        plan = load_plan(path)
        assert plan.batch_sizes == (20, 40)
        assert plan.actor_count == 5
        assert plan.deadline_seconds == 60
        assert plan.seed == 3
        assert plan.worker_policy.pause_seconds == 0

    def test_load_plan_rejects_unknown_keys(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"batches": [1]}))
        with pytest.raises(ValueError, match="batches"):
            load_plan(path)

    def test_load_plan_rejects_non_object(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_plan(path)
