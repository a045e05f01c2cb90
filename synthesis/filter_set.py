# filter_set.py
"""Batch synthesis and the filter-set file that lets later runs skip it."""

import json
import os

from .predicates import predicate_from_dict
from .structures import SynthesisResult, within_margin


class FilterSetEntry:
    """One persisted filter: the predicate and how well it hit its target."""

    def __init__(self, predicate, target_count, count, margin):
        self.predicate = predicate
        self.target_count = target_count
        self.count = count
        self.margin = margin

    @property
    def within_margin(self):
        return within_margin(self.count, self.target_count, self.margin)

    @classmethod
    def from_result(cls, result: SynthesisResult):
        return cls(result.predicate, result.target_count, result.count, result.margin)

    def to_dict(self):
        return {
            'targetCount': self.target_count,
            'count': self.count,
            'margin': self.margin,
            'withinMargin': self.within_margin,
            'predicate': self.predicate.to_dict(),
        }

    @classmethod
    def from_dict(cls, record):
        return cls(predicate_from_dict(record['predicate']), record['targetCount'],
                   record['count'], record['margin'])

    def __repr__(self):
        return (f"FilterSetEntry(target={self.target_count}, count={self.count}, "
                f"margin={self.margin}, within={self.within_margin})")


def generate_filter_set(synthesizer, target_counts):
    """Synthesizes one filter per target count, in order."""
    entries = []
    print(f"\n[FilterSet] Generating {len(target_counts)} test filters...")
    for i, target_count in enumerate(target_counts):
        print(f"\n[FilterSet] Testing filter for {target_count} entities:")
        entry = FilterSetEntry.from_result(synthesizer.synthesize(target_count))
        entries.append(entry)
        mark = "(within range)" if entry.within_margin else "(outside range)"
        print(f"[FilterSet] Filter {i + 1}: {entry.count} entities {mark}")
    return entries


def save_filter_set(entries, path):
    dir_path = os.path.dirname(path)
    if dir_path and not os.path.exists(dir_path):
        os.makedirs(dir_path)
    with open(path, 'w') as f:
        json.dump([entry.to_dict() for entry in entries], f, indent=2)
    print(f"[FilterSet] Saved {len(entries)} filters to {path}.")


def load_filter_set(path):
    with open(path, 'r') as f:
        records = json.load(f)
    print(f"[FilterSet] Loaded {len(records)} filters from {path}.")
    return [FilterSetEntry.from_dict(record) for record in records]


def load_or_generate(path, synthesizer, target_counts):
    """Reuses the filter-set file when present, otherwise synthesizes and saves it."""
    if os.path.exists(path):
        return load_filter_set(path)
    entries = generate_filter_set(synthesizer, target_counts)
    save_filter_set(entries, path)
    return entries
