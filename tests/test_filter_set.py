import json

from synthesis.filter_set import (FilterSetEntry, generate_filter_set, load_filter_set,
                                  load_or_generate, save_filter_set)
from synthesis.predicates import And, Eq, In, Range
from synthesis.structures import SynthesisResult
from synthesis.synthesizer import PredicateSynthesizer


class ScriptedSynthesizer:
    """Returns canned results and records the targets it was asked for."""

    def __init__(self):
        self.targets = []

    def synthesize(self, target_count):
        self.targets.append(target_count)
        return SynthesisResult(Range("age", gte=20, lte=20 + target_count), target_count + 1,
                               target_count, 5)


def test_save_and_load_round_trip(tmp_path) -> None:
    entries = [
        FilterSetEntry(And(Eq("status", "active"), Range("salary", gte=50_000)), 100, 104, 10),
        FilterSetEntry(In("department", ["hr", "sales"]), 1000, 1200, 100),
    ]
    path = tmp_path / "nested" / "filters.json"
    save_filter_set(entries, str(path))

    records = json.loads(path.read_text())
    assert records[0]["targetCount"] == 100
    assert records[0]["withinMargin"] is True
    assert records[1]["withinMargin"] is False

    loaded = load_filter_set(str(path))
    assert [(e.predicate, e.target_count, e.count, e.margin) for e in loaded] == \
        [(e.predicate, e.target_count, e.count, e.margin) for e in entries]


def test_load_or_generate_reuses_existing_file(tmp_path) -> None:
    path = str(tmp_path / "filters.json")
    synthesizer = ScriptedSynthesizer()

    first = load_or_generate(path, synthesizer, [10, 50])
    assert synthesizer.targets == [10, 50]
    assert [entry.count for entry in first] == [11, 51]

    second = load_or_generate(path, synthesizer, [10, 50])
    assert synthesizer.targets == [10, 50]
    assert [entry.predicate for entry in second] == [entry.predicate for entry in first]


def test_generated_filters_hit_live_counts(users_store) -> None:
    entries = generate_filter_set(PredicateSynthesizer(users_store, seed=3), [0, 200, 5000])
    assert [entry.target_count for entry in entries] == [0, 200, 5000]
    for entry in entries:
        assert users_store.count("users", entry.predicate) == entry.count
    assert entries[0].within_margin
    assert entries[2].count == 5000
