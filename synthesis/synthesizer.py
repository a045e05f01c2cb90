# synthesizer.py
"""Convergence controller: searches for a predicate matching a target count."""

import json

from . import config
from .predicates import MATCH_ALL, In
from .profiler import DistributionProfiler
from .random_source import RandomSource
from .search import bounded_search
from .strategies import StrategyContext, StrategyDispatcher
from .structures import (Candidate, SynthesisResult, USER_SCHEMA, distance_from_range,
                         margin_of_error)


class PredicateSynthesizer:
    """Facade tying the profiler, the strategy library and the bounded search together."""

    def __init__(self, store, collection=config.USERS_COLLECTION, schema=USER_SCHEMA, profiler=None,
                 seed=None, max_attempts=config.MAX_ATTEMPTS, margin_ratio=config.MARGIN_RATIO,
                 weights=None):
        self.store = store
        self.collection = collection
        self.schema = schema
        # Share one profiler between synthesizers to profile the collection once
        self.profiler = profiler or DistributionProfiler(store, collection, schema)
        self.seed = seed
        self.max_attempts = max_attempts
        self.margin_ratio = margin_ratio
        self.weights = weights

    def _random_source(self, target_count):
        if self.seed is None:
            return RandomSource()
        return RandomSource([self.seed, target_count])

    def _sampler(self, random_source):
        def sample(fields, size):
            return self.store.sample(self.collection, size, fields, seed=random_source.sample_seed())
        return sample

    def synthesize(self, target_count, random_source=None):
        """Returns a predicate whose live count is as close as the attempt budget allows to
        [target_count, target_count + margin].

        Raises:
            EmptyCollection: The collection holds no entities.
            ValueError: Negative target.
        """
        if target_count < 0:
            raise ValueError(f"Target count must be non-negative, got {target_count}")
        profile = self.profiler.profile()
        total = profile.total_count
        margin = margin_of_error(target_count, self.margin_ratio)

        if target_count >= total:
            print(f"[Synth] Target {target_count} >= {total} entities; matching everything.")
            return SynthesisResult(MATCH_ALL, total, target_count, margin, 0, 'match_all')
        if target_count == 0:
            return SynthesisResult(In(self.schema.id_field, []), 0, 0, 0, 0, 'match_none')

        low, high = target_count, target_count + margin
        # Aim for the middle of the acceptable range
        aim = int(round(target_count + margin / 2))
        random_source = random_source or self._random_source(target_count)
        dispatcher = StrategyDispatcher(random_source, self.weights)
        ctx = StrategyContext(profile, aim, total, random_source, self.schema,
                              sampler=self._sampler(random_source), upper=high)

        def generate(attempt, best):
            name, predicate, requested = dispatcher.propose(ctx)
            count = self.store.count(self.collection, predicate)
            dispatcher.observe(name, requested, aim, count)
            return Candidate(predicate, count, name, distance_from_range(count, low, high))

        outcome = bounded_search(generate, lambda candidate: candidate.distance, self.max_attempts)
        history = tuple(candidate for candidate, _ in outcome.history)

        if outcome.best is None:
            print(f"[Synth] No strategy produced a candidate for target {target_count}; matching everything.")
            return SynthesisResult(MATCH_ALL, total, target_count, margin, outcome.attempts, 'match_all', history)

        best = outcome.best
        result = SynthesisResult(best.predicate, best.count, target_count, margin,
                                 outcome.attempts, best.strategy, history)
        print(f"[Synth] Filter: {json.dumps(best.predicate.to_dict())}")
        status = "within range" if result.within_margin else "outside range"
        print(f"[Synth] Target: {target_count}, Actual: {best.count} ({status}, "
              f"strategy: {best.strategy}, attempts: {outcome.attempts})")
        return result
