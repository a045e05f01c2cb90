from datetime import datetime, timedelta, timezone

import pytest

from synthesis.errors import NoApplicableStrategy
from synthesis.predicates import And, Eq, In, Or, Range
from synthesis.random_source import RandomSource
from synthesis.strategies import (StrategyContext, StrategyDispatcher, categorical_set_cover,
                                  conjunctive_refinement, fallback_range, greedy_cover,
                                  range_by_percentile, timestamp_window)
from synthesis.structures import USER_SCHEMA, DistributionSnapshot, EntitySchema, NumericStats

JOIN_START = datetime(2020, 1, 1, tzinfo=timezone.utc)

SNAPSHOT = DistributionSnapshot(
    total_count=1000,
    numeric_stats={
        "age": NumericStats(18, 80, 49.0),
        "salary": NumericStats(30_000, 150_000, 90_000.0),
    },
    categorical_counts={
        "status": {"active": 400, "inactive": 300, "pending": 200, "banned": 100},
    },
    boolean_true_counts={"isManager": 200},
    timestamp_range=(JOIN_START, JOIN_START + timedelta(days=1000)),
)

STATUS_ONLY = EntitySchema(categorical_fields=("status",))


def context(target, schema=USER_SCHEMA, snapshot=SNAPSHOT, seed=3, sampler=None):
    return StrategyContext(snapshot, target, snapshot.total_count, RandomSource(seed), schema, sampler)


def test_greedy_cover_takes_values_by_descending_frequency() -> None:
    counts = {"a": 50, "b": 30, "c": 15, "d": 5}
    assert greedy_cover(counts, 45, 50) == (["a"], 50)
    assert greedy_cover(counts, 60, 66) == (["a", "c"], 65)
    assert greedy_cover(counts, 100, 100) == (["a", "b", "c", "d"], 100)


def test_greedy_cover_overshoots_when_nothing_fits() -> None:
    assert greedy_cover({"a": 50, "b": 50}, 60, 66) == (["a", "b"], 100)


def test_set_cover_returns_equality_for_single_value() -> None:
    assert categorical_set_cover(context(300, STATUS_ONLY)) == Eq("status", "inactive")


def test_set_cover_returns_membership_for_several_values() -> None:
    predicate = categorical_set_cover(context(600, STATUS_ONLY))
    assert isinstance(predicate, In)
    assert sum(SNAPSHOT.categorical_counts["status"][v] for v in predicate.values) >= 600


def test_set_cover_inapplicable_below_smallest_value() -> None:
    assert categorical_set_cover(context(50, STATUS_ONLY)) is None


def test_conjunctive_refinement_only_for_small_fractions() -> None:
    assert conjunctive_refinement(context(250)) is None
    for seed in range(10):
        predicate = conjunctive_refinement(context(50, seed=seed))
        assert predicate is not None
        assert predicate.depth() <= 2
        if isinstance(predicate, And):
            assert 2 <= len(predicate.children) <= 3
            predicate = predicate.children[0]
        assert isinstance(predicate, Range)
        assert predicate.field in ("age", "salary")


def test_fallback_range_is_deterministic_and_uses_finest_field() -> None:
    first = fallback_range(context(100, seed=1))
    assert first == fallback_range(context(100, seed=2))
    assert first == Range("salary", gte=30_000, lte=41_999)


def test_timestamp_window_stays_inside_profiled_range() -> None:
    for seed in range(5):
        predicate = timestamp_window(context(100, seed=seed))
        first, last = SNAPSHOT.timestamp_range
        assert first <= predicate.gte <= predicate.lte <= last
        assert predicate.lte - predicate.gte == timedelta(days=100)


def test_range_by_percentile_uses_a_sample_window() -> None:
    def sampler(fields, size):
        return [{field: value for field in fields} for value in range(1, 101)]

    schema = EntitySchema(numeric_fields=("age",))
    snapshot = DistributionSnapshot(total_count=1000, numeric_stats={"age": NumericStats(1, 100, 50.5)})
    predicate = range_by_percentile(context(100, schema, snapshot, sampler=sampler))
    assert predicate.field == "age"
    assert predicate.lte - predicate.gte == 9
    assert range_by_percentile(context(100, schema, snapshot)) is None


def test_dispatcher_falls_through_and_reports_inapplicable() -> None:
    def never(ctx):
        return None

    def always(ctx):
        return Eq("status", "active")

    dispatcher = StrategyDispatcher(RandomSource(0), weights={"never": 1.0, "always": 1.0},
                                    strategies={"never": never, "always": always})
    for _ in range(5):
        name, predicate, _ = dispatcher.propose(context(10))
        assert name == "always"
        assert predicate == Eq("status", "active")

    blocked = StrategyDispatcher(RandomSource(0), weights={"never": 1.0}, strategies={"never": never})
    with pytest.raises(NoApplicableStrategy) as info:
        blocked.propose(context(10))
    assert info.value.tried == ("never",)


def test_dispatcher_rejects_candidates_nested_past_the_cap() -> None:
    def nested(ctx):
        return And(Eq("status", "active"), Or(Eq("isManager", True), And(Range("age", gte=30), Eq("location", "Tokyo"))))

    dispatcher = StrategyDispatcher(RandomSource(0), weights={"nested": 1.0}, strategies={"nested": nested})
    with pytest.raises(ValueError):
        dispatcher.propose(context(10))


def test_dispatcher_calibrates_size_driven_strategies() -> None:
    dispatcher = StrategyDispatcher(RandomSource(0))
    dispatcher.observe("fallback_range", 105, 105, 210)
    assert dispatcher.calibration["fallback_range"] == pytest.approx(0.5)
    dispatcher.observe("categorical_set_cover", 105, 105, 400)
    assert dispatcher.calibration["categorical_set_cover"] == 1.0
