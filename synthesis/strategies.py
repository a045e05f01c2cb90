# strategies.py
"""Candidate predicate strategies and their weighted dispatch.

Every strategy is a function `(StrategyContext) -> Predicate | None`. None
means the strategy does not apply to this target; the dispatcher then falls
through to the next variant in the attempt's order.
"""
import math
from collections import Counter

import numpy as np

from . import config
from .errors import NoApplicableStrategy
from .predicates import And, Eq, In, Or, Range


class StrategyContext:
    """Everything a strategy may consult: the profile, the target and explicit sampling."""

    def __init__(self, profile, target_count, total_count, random_source, schema, sampler=None, upper=None):
        self.profile = profile
        self.target_count = target_count
        self._upper = upper
        self.total_count = total_count
        self.random = random_source
        self.schema = schema
        self.sampler = sampler

    @property
    def fraction(self):
        if self.total_count <= 0:
            return 0.0
        return min(1.0, self.target_count / self.total_count)

    @property
    def upper(self):
        """Largest count still inside the margin for the requested target."""
        if self._upper is not None:
            return self._upper
        return self.target_count + math.ceil(self.target_count * config.MARGIN_RATIO)

    def scaled(self, factor):
        """Same context with the requested count multiplied by `factor`."""
        target = min(self.total_count, max(1, int(round(self.target_count * factor))))
        return StrategyContext(self.profile, target, self.total_count, self.random, self.schema, self.sampler)


# --- Helpers ---

def _numeric_fields(ctx):
    return [f for f in ctx.schema.numeric_fields if f in ctx.profile.numeric_stats]


def _boolean_fields(ctx):
    return [f for f in ctx.schema.boolean_fields if f in ctx.profile.boolean_true_counts]


def _range(field, low, high, stats):
    if stats.integral:
        return Range(field, gte=int(round(low)), lte=int(round(high)))
    return Range(field, gte=float(low), lte=float(high))


def _window(ctx, field, width, at_low_end=False):
    """Range covering `width` (0..1) of a numeric field's profiled span, assuming uniform spread."""
    stats = ctx.profile.numeric_stats[field]
    width = min(1.0, max(0.0, width))
    if stats.integral:
        slots = stats.span + 1
        size = min(slots, max(1, int(round(width * slots))))
        low = stats.min if at_low_end else ctx.random.integer(stats.min, stats.max - size + 1)
        return Range(field, gte=low, lte=low + size - 1)
    length = width * stats.span
    low = stats.min if at_low_end else ctx.random.uniform(stats.min, stats.max - length)
    return Range(field, gte=float(low), lte=float(low + length))


def _categorical_options(ctx, include_booleans=True):
    """{field: {value: count}} for every field usable in a membership predicate."""
    options = {}
    for field in ctx.schema.categorical_fields:
        counts = ctx.profile.categorical_counts.get(field)
        if counts and len(counts) >= 2:
            options[field] = counts
    for derived in ctx.schema.derived_fields:
        counts = ctx.profile.categorical_counts.get(derived.name)
        # Only a leading part can be matched, as a prefix range on the source field
        if derived.index == 0 and counts and len(counts) >= 2:
            options[derived.name] = counts
    if include_booleans:
        for field in _boolean_fields(ctx):
            true_count = ctx.profile.boolean_true_counts[field]
            false_count = ctx.total_count - true_count
            if true_count > 0 and false_count > 0:
                options[field] = {True: true_count, False: false_count}
    return options


def greedy_cover(counts, target, upper=None):
    """Greedy set cover of `target` entities from value frequencies.

    Values are taken in descending frequency, skipping any that would push the
    total past `upper`; if that stops short of `target`, the smallest remaining
    values are added until it is reached (overshooting).

    Returns:
        (chosen values, covered count)
    """
    upper = target if upper is None else upper
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
    chosen, covered = [], 0
    for value, count in ranked:
        if covered >= target:
            break
        if covered + count <= upper:
            chosen.append(value)
            covered += count
    if covered < target:
        for value, count in reversed(ranked):
            if value in chosen:
                continue
            chosen.append(value)
            covered += count
            if covered >= target:
                break
    return chosen, covered


def _membership(ctx, field, values):
    derived = ctx.schema.derived(field)
    if derived is not None:
        ranges = [Range(derived.source, gte=f"{v}{derived.separator}", lt=f"{v}{derived.separator}\U0010ffff")
                  for v in values]
        return ranges[0] if len(ranges) == 1 else Or(*ranges)
    if len(values) == 1:
        return Eq(field, values[0])
    return In(field, values)


# --- Strategies ---

def range_by_percentile(ctx):
    """Range spanning a random contiguous window of a sorted sample."""
    fields = _numeric_fields(ctx)
    if not fields or ctx.sampler is None:
        return None
    field = ctx.random.choice(fields)
    sampled = [doc.get(field) for doc in ctx.sampler([field], config.SAMPLE_SIZE)]
    values = np.sort(np.array([v for v in sampled
                               if isinstance(v, (int, float)) and not isinstance(v, bool)], dtype=float))
    n = len(values)
    if n == 0:
        return None
    window = min(n, max(1, int(round(ctx.fraction * n))))
    start = ctx.random.integer(0, n - window)
    return _range(field, values[start], values[start + window - 1], ctx.profile.numeric_stats[field])


def categorical_set_cover(ctx):
    """Equality / membership over the most frequent values of one categorical field."""
    options = {
        field: counts for field, counts in _categorical_options(ctx).items()
        if min(counts.values()) <= ctx.target_count
    }
    if not options:
        return None
    field = ctx.random.choice(sorted(options))
    chosen, covered = greedy_cover(options[field], ctx.target_count, ctx.upper)
    if len(chosen) == len(options[field]):
        return None
    return _membership(ctx, field, chosen)


def conjunctive_refinement(ctx):
    """AND of a narrowed numeric range with optional categorical and boolean constraints."""
    p = ctx.fraction
    if p <= 0 or p >= config.CONJUNCTIVE_MAX_FRACTION:
        return None
    fields = _numeric_fields(ctx)
    if not fields:
        return None
    field = ctx.random.choice(fields)
    extra = ctx.random.integer(0, 2)
    root = math.sqrt(p)
    parts = []
    selectivity = 1.0

    if extra >= 1:
        options = _categorical_options(ctx, include_booleans=False)
        if options:
            cat_field = ctx.random.choice(sorted(options))
            chosen, covered = greedy_cover(options[cat_field], root * ctx.total_count)
            if 0 < covered < ctx.total_count:
                parts.append(_membership(ctx, cat_field, chosen))
                selectivity *= covered / ctx.total_count

    booleans = _boolean_fields(ctx)
    if extra >= 2 and booleans:
        bool_field = ctx.random.choice(booleans)
        true_share = ctx.profile.boolean_true_counts[bool_field] / ctx.total_count
        # Keep the numeric range at least as wide as the target fraction
        eligible = [(value, share) for value, share in ((True, true_share), (False, 1.0 - true_share))
                    if share > 0 and selectivity * share >= p]
        if eligible:
            value, share = min(eligible, key=lambda vs: vs[1])
            parts.append(Eq(bool_field, value))
            selectivity *= share

    # Independent selectivities multiply; the range absorbs what is left
    numeric = _window(ctx, field, p / selectivity)
    if not parts:
        return numeric
    return And(numeric, *parts)


def timestamp_window(ctx):
    """Window over the profiled timestamp range at a random offset."""
    field = ctx.schema.timestamp_field
    bounds = ctx.profile.timestamp_range
    if field is None or bounds is None:
        return None
    first, last = bounds
    span = last - first
    if span.total_seconds() <= 0:
        return None
    length = span * ctx.fraction
    start = first + (span - length) * ctx.random.random()
    return Range(field, gte=start, lte=start + length)


def fallback_range(ctx):
    """Deterministic range from the low end of the finest-grained numeric field."""
    fields = _numeric_fields(ctx)
    if not fields:
        return None

    def resolution(field):
        stats = ctx.profile.numeric_stats[field]
        return (stats.span + 1) if stats.integral else float('inf')

    field = max(sorted(fields), key=resolution)
    return _window(ctx, field, ctx.fraction, at_low_end=True)


STRATEGIES = {
    'range_by_percentile': range_by_percentile,
    'categorical_set_cover': categorical_set_cover,
    'conjunctive_refinement': conjunctive_refinement,
    'timestamp_window': timestamp_window,
    'fallback_range': fallback_range,
}

# Strategies whose size comes from the uniform-spread assumption; their bias is
# corrected from the previous observed count.
CALIBRATED = {'conjunctive_refinement', 'timestamp_window', 'fallback_range'}


class StrategyDispatcher:
    """Orders the strategy variants per attempt and returns the first applicable proposal."""

    def __init__(self, random_source, weights=None, strategies=None):
        self.random = random_source
        self.strategies = dict(strategies or STRATEGIES)
        self.weights = {name: weight for name, weight in (weights or config.STRATEGY_WEIGHTS).items()
                        if name in self.strategies}
        self.uses = Counter()
        self.calibration = {name: 1.0 for name in self.strategies}

    def order(self):
        """Weighted order for one attempt; earlier uses in this run lower a strategy's weight."""
        decayed = {name: weight * (config.DIVERSITY_DECAY ** self.uses[name])
                   for name, weight in self.weights.items()}
        return self.random.weighted_order(decayed)

    def propose(self, ctx):
        """Returns (strategy name, predicate, requested count) for one attempt."""
        tried = []
        for name in self.order():
            tried.append(name)
            scoped = ctx.scaled(self.calibration[name]) if name in CALIBRATED else ctx
            predicate = self.strategies[name](scoped)
            if predicate is None:
                continue
            if predicate.depth() > config.MAX_NESTING_DEPTH:
                raise ValueError(f"Strategy {name} nested a predicate {predicate.depth()} levels deep")
            self.uses[name] += 1
            return name, predicate, scoped.target_count
        raise NoApplicableStrategy(ctx.target_count, tried)

    def observe(self, name, requested, aim, count):
        """Folds an observed count back into the calibration of a size-driven strategy."""
        if name not in CALIBRATED or count <= 0 or requested <= 0:
            return
        step = min(config.CALIBRATION_MAX, max(config.CALIBRATION_MIN, aim / count))
        self.calibration[name] *= step
