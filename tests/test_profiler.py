import pytest

from seeding import EMAIL_DOMAINS
from synthesis.errors import EmptyCollection
from synthesis.predicates import Eq
from synthesis.profiler import DistributionProfiler
from synthesis.structures import USER_SCHEMA

from conftest import SEEDED_USERS, CountingStore


def test_snapshot_summarises_the_collection(users_store) -> None:
    snapshot = DistributionProfiler(users_store, "users", USER_SCHEMA).profile()

    assert snapshot.total_count == SEEDED_USERS
    age = snapshot.numeric_stats["age"]
    assert 18 <= age.min <= age.max <= 80
    assert age.min <= age.avg <= age.max
    assert age.integral
    assert 30_000 <= snapshot.numeric_stats["salary"].min

    for field in USER_SCHEMA.grouped_fields():
        assert sum(snapshot.categorical_counts[field].values()) == SEEDED_USERS
    assert set(snapshot.categorical_counts["emailDomain"]) <= set(EMAIL_DOMAINS)
    assert set(snapshot.categorical_counts["status"]) == {"active", "inactive", "pending", "banned"}

    assert snapshot.boolean_true_counts["isManager"] == users_store.count("users", Eq("isManager", True))
    first, last = snapshot.timestamp_range
    assert first <= last


def test_profile_is_memoized(users_store) -> None:
    counting = CountingStore(users_store)
    profiler = DistributionProfiler(counting, "users", USER_SCHEMA)

    first = profiler.profile()
    assert counting.calls["numeric_summary"] == 1
    assert counting.calls["group_counts"] == len(USER_SCHEMA.grouped_fields())

    second = profiler.profile()
    assert second == first
    assert counting.calls["numeric_summary"] == 1
    assert counting.calls["group_counts"] == len(USER_SCHEMA.grouped_fields())

    profiler.invalidate()
    assert profiler.profile() == first
    assert counting.calls["numeric_summary"] == 2


def test_empty_collection_is_rejected(store) -> None:
    with pytest.raises(EmptyCollection):
        DistributionProfiler(store, "users", USER_SCHEMA).profile()

    store.insert_many("users", [])
    with pytest.raises(EmptyCollection):
        DistributionProfiler(store, "users", USER_SCHEMA).profile()
