import matplotlib
import pytest

matplotlib.use("Agg")

from benchmark import (AGGREGATION_JOIN, FIND_WITH_IN, KEYSET_PAGINATION, BenchmarkMismatch,
                       QueryTimingBenchmark)
from seeding import seed_database
from synthesis.filter_set import FilterSetEntry, generate_filter_set
from synthesis.predicates import MATCH_ALL, In, Range
from synthesis.synthesizer import PredicateSynthesizer

from conftest import make_store

USERS = 400
DOCS_PER_USER = 3


@pytest.fixture(scope="module")
def seeded_store():
    seeded = make_store()
    seed_database(seeded, USERS, DOCS_PER_USER, seed=21)
    return seeded


def test_seeding_links_documents_to_users(seeded_store) -> None:
    assert seeded_store.count("users", MATCH_ALL) == USERS
    assert seeded_store.count("documents", MATCH_ALL) == USERS * DOCS_PER_USER
    user_ids = [user["_id"] for user in seeded_store.find("users", MATCH_ALL, fields=["_id"])]
    assert seeded_store.count("documents", In("user", user_ids[:10])) == 10 * DOCS_PER_USER


def test_strategies_agree_and_results_are_summarised(seeded_store, tmp_path) -> None:
    synthesizer = PredicateSynthesizer(seeded_store, seed=8)
    filter_set = generate_filter_set(synthesizer, [5, 40, USERS])
    benchmark = QueryTimingBenchmark(seeded_store, page_size=7)
    results = benchmark.run_benchmark(filter_set)

    assert len(results) == 3 * len(filter_set)
    for row in results:
        assert row["documents"] == row["actual_count"] * DOCS_PER_USER

    analysis = benchmark.analyze_results()
    assert set(analysis) == {FIND_WITH_IN, AGGREGATION_JOIN, KEYSET_PAGINATION}
    expected_documents = sum(entry.count for entry in filter_set) * DOCS_PER_USER
    for metrics in analysis.values():
        assert metrics["total_documents"] == expected_documents
        assert 0 <= metrics["median_time"] <= metrics["max_time"]
        assert metrics["95th_percentile"] <= metrics["max_time"]

    by_target = benchmark.analyze_by_target()
    assert list(by_target.index) == [5, 40, USERS]

    output = tmp_path / "timings.png"
    benchmark.plot_timings(str(output))
    assert output.exists()


def test_disagreeing_strategy_is_reported(seeded_store) -> None:
    benchmark = QueryTimingBenchmark(seeded_store)
    benchmark.strategies[AGGREGATION_JOIN] = lambda predicate: []
    entry = FilterSetEntry(Range("age", gte=18), USERS, USERS, 40)
    with pytest.raises(BenchmarkMismatch):
        benchmark.run_benchmark([entry])


def test_analysis_without_results() -> None:
    benchmark = QueryTimingBenchmark(make_store())
    assert benchmark.analyze_results() is None
    assert benchmark.analyze_by_target() is None
