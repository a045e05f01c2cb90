from datetime import datetime, timedelta, timezone

import pytest

from benchmark import QueryTimingBenchmark
from seeding import seed_database
from stores.DocumentStore import COLLECTION_SCAN, QueryPlan, index_name
from stores.MongoDocumentStore import find_index_name, has_stage
from synthesis.predicates import MATCH_ALL, In, Range

from conftest import make_store

USER_DATE_INDEX = [("user", 1), ("createdAt", -1), ("_id", -1)]


@pytest.fixture
def events(store):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store.insert_many("events", [
        {"_id": f"e{i:02d}", "user": f"u{i % 3}", "createdAt": start + timedelta(hours=i)}
        for i in range(30)
    ])
    return store


def test_caller_supplied_falsy_ids_are_kept(store) -> None:
    assert store.insert_many("items", [{"_id": 0, "n": 1}, {"_id": "", "n": 2}, {"n": 3}])[:2] == ["0", ""]
    ids = {doc["_id"] for doc in store.find("items", MATCH_ALL)}
    assert {"0", ""} <= ids
    assert len(ids) == 3


def test_index_names_follow_mongo_defaults() -> None:
    assert index_name(["user", "_id"]) == "user_1__id_1"
    assert index_name(USER_DATE_INDEX) == "user_1_createdAt_-1__id_-1"


def test_list_indexes_reads_back_created_keys(events) -> None:
    assert events.list_indexes("events") == {"_id_": [("_id", 1)]}
    events.ensure_index("events", ["user", "_id"])
    events.ensure_index("events", USER_DATE_INDEX)
    assert events.list_indexes("events") == {
        "_id_": [("_id", 1)],
        "user_1__id_1": [("user", 1), ("_id", 1)],
        "user_1_createdAt_-1__id_-1": USER_DATE_INDEX,
    }
    assert events.list_indexes("missing") == {}


def test_unindexed_sort_is_reported(events) -> None:
    plan = events.explain("events", In("user", ["u1"]), sort=[("createdAt", -1)])
    assert plan.index_used == COLLECTION_SCAN
    assert plan.has_sort_stage
    assert plan.docs_returned == 10
    assert plan.docs_examined is None
    assert plan.efficiency_ratio is None


def test_hinted_read_uses_the_index(events) -> None:
    events.ensure_index("events", USER_DATE_INDEX)
    predicate = In("user", ["u0", "u2"])
    sort = [("createdAt", -1), ("_id", -1)]
    plan = events.explain("events", predicate, sort=sort, limit=5, hint=USER_DATE_INDEX)
    assert plan.index_used == "user_1_createdAt_-1__id_-1"
    assert plan.docs_returned == 5
    assert [doc["_id"] for doc in events.find("events", predicate, sort=sort, limit=5)] == \
        ["e29", "e27", "e26", "e24", "e23"]


def test_efficiency_ratio() -> None:
    assert QueryPlan(1.0, 25, docs_examined=100).efficiency_ratio == 25.0
    assert QueryPlan(1.0, 0, docs_examined=0).efficiency_ratio == 0.0


def test_mongo_explain_tree_helpers() -> None:
    stages = {
        "stage": "LIMIT",
        "inputStage": {
            "stage": "SORT",
            "inputStage": {
                "stage": "FETCH",
                "inputStage": {
                    "stage": "OR",
                    "inputStages": [
                        {"stage": "COLLSCAN"},
                        {"stage": "IXSCAN", "indexName": "user_1__id_1"},
                    ],
                },
            },
        },
    }
    assert find_index_name(stages) == "user_1__id_1"
    assert find_index_name({"stage": "COLLSCAN"}) is None
    assert has_stage(stages, "SORT")
    assert not has_stage(stages["inputStage"]["inputStage"], "SORT")


def test_strategy_explain_and_index_recommendations() -> None:
    seeded = make_store()
    seed_database(seeded, 60, 4, seed=5)
    benchmark = QueryTimingBenchmark(seeded)

    assert benchmark.check_indexes() == {"user + _id": True, "user + createdAt + _id": False}
    analyses = benchmark.explain_strategies(Range("age", gte=18), user_limit=20, small_user_count=5)
    names = [analysis["name"] for analysis in analyses]
    assert names == ["cursor by id", "cursor by date desc", "cursor by id (with hint)",
                     "cursor with $or (next page)", "cursor by date desc (5 users)"]
    by_name = {analysis["name"]: analysis for analysis in analyses}
    assert by_name["cursor by id"]["docs_returned"] == 20 * 4
    assert by_name["cursor by id (with hint)"]["index_used"] == "user_1__id_1"
    assert by_name["cursor with $or (next page)"]["docs_returned"] == 20 * 4 - 1
    assert by_name["cursor by date desc (5 users)"]["docs_returned"] == 5 * 4

    seeded.ensure_index("documents", USER_DATE_INDEX)
    assert benchmark.check_indexes() == {"user + _id": True, "user + createdAt + _id": True}
    hinted = benchmark.explain_strategies(Range("age", gte=18), user_limit=20, small_user_count=5)
    by_name = {analysis["name"]: analysis for analysis in hinted}
    assert by_name["cursor by date desc (with hint)"]["index_used"] == "user_1_createdAt_-1__id_-1"
    assert by_name["cursor with $or (with hint)"]["docs_returned"] == 20 * 4 - 1
