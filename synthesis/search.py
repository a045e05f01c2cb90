# search.py
"""Bounded best-of-N local search."""

from .errors import NoApplicableStrategy


class SearchOutcome:
    """Best candidate of a bounded search plus its bookkeeping."""

    def __init__(self, best, best_score, attempts, history):
        self.best = best
        self.best_score = best_score
        self.attempts = attempts
        self.history = history

    @property
    def accepted(self):
        return self.best is not None and self.best_score is not None and self.best_score <= 0

    def __repr__(self):
        return f"SearchOutcome(best={self.best!r}, score={self.best_score}, attempts={self.attempts})"


def bounded_search(generate, score, budget, accept=0):
    """Runs at most `budget` generate-and-score rounds, keeping the lowest score.

    Args:
        generate: callable(attempt_index, best_so_far) -> candidate. May raise
            `NoApplicableStrategy`, which uses up the attempt without a candidate.
        score: callable(candidate) -> number, lower is better.
        budget: Maximum number of attempts.
        accept: Stop as soon as a candidate scores at or below this value.

    Returns:
        SearchOutcome; ties keep the candidate seen first.
    """
    if budget < 1:
        raise ValueError(f"Search budget must be positive, got {budget}")
    best, best_score = None, None
    history = []
    attempts = 0
    for attempt in range(budget):
        attempts += 1
        try:
            candidate = generate(attempt, best)
        except NoApplicableStrategy as e:
            print(f"[Search] Attempt {attempt + 1}: {e}")
            continue
        value = score(candidate)
        history.append((candidate, value))
        if best_score is None or value < best_score:
            best, best_score = candidate, value
        if value <= accept:
            break
    return SearchOutcome(best, best_score, attempts, history)
