import pytest

from synthesis.errors import NoApplicableStrategy
from synthesis.search import bounded_search


def scripted(values):
    """Generator that replays `values`; exceptions in the list are raised."""
    calls = []

    def generate(attempt, best):
        calls.append(attempt)
        value = values[attempt]
        if isinstance(value, Exception):
            raise value
        return value

    return generate, calls


def test_stops_at_first_accepted_candidate() -> None:
    generate, calls = scripted([7, 3, 0, 5])
    outcome = bounded_search(generate, abs, budget=4)
    assert outcome.best == 0
    assert outcome.accepted
    assert outcome.attempts == 3
    assert calls == [0, 1, 2]


def test_keeps_lowest_score_and_first_seen_on_ties() -> None:
    generate, _ = scripted([("a", 4), ("b", 2), ("c", 2), ("d", 9)])
    outcome = bounded_search(generate, lambda candidate: candidate[1], budget=4)
    assert outcome.best == ("b", 2)
    assert outcome.attempts == 4
    assert not outcome.accepted
    assert [score for _, score in outcome.history] == [4, 2, 2, 9]


def test_inapplicable_attempts_use_up_budget() -> None:
    generate, calls = scripted([NoApplicableStrategy(10), 6, NoApplicableStrategy(10)])
    outcome = bounded_search(generate, abs, budget=3)
    assert calls == [0, 1, 2]
    assert outcome.attempts == 3
    assert outcome.best == 6
    assert len(outcome.history) == 1


def test_all_attempts_inapplicable() -> None:
    generate, _ = scripted([NoApplicableStrategy(10)] * 2)
    outcome = bounded_search(generate, abs, budget=2)
    assert outcome.best is None
    assert not outcome.accepted


def test_budget_must_be_positive() -> None:
    with pytest.raises(ValueError):
        bounded_search(lambda attempt, best: 0, abs, budget=0)
