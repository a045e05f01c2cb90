# profiler.py
"""Distribution profiling: aggregate statistics that guide predicate generation."""

from concurrent.futures import ThreadPoolExecutor

from . import config
from .errors import EmptyCollection
from .structures import DistributionSnapshot, NumericStats


class DistributionProfiler:
    """Builds and caches the `DistributionSnapshot` of one collection.

    The snapshot is computed on the first `profile()` call and reused until
    `invalidate()`; writes to the collection in between are not picked up.
    """

    def __init__(self, store, collection, schema):
        self.store = store
        self.collection = collection
        self.schema = schema
        self._snapshot = None

    def profile(self):
        """Returns the cached snapshot, profiling the collection on first use."""
        if self._snapshot is None:
            # Two first callers may both compute; the snapshots are equivalent.
            self._snapshot = self._build_snapshot()
        return self._snapshot

    def invalidate(self):
        self._snapshot = None

    def _build_snapshot(self):
        print(f"[Profiler] Profiling collection '{self.collection}'...")
        schema = self.schema
        with ThreadPoolExecutor(max_workers=config.PROFILER_WORKERS) as pool:
            summary_job = pool.submit(
                self.store.numeric_summary, self.collection,
                schema.numeric_fields, schema.boolean_fields, schema.timestamp_field,
            )
            group_jobs = {
                field: pool.submit(self.store.group_counts, self.collection, field)
                for field in schema.categorical_fields
            }
            for derived in schema.derived_fields:
                group_jobs[derived.name] = pool.submit(
                    self.store.group_counts, self.collection, derived.source,
                    (derived.separator, derived.index),
                )
            summary = summary_job.result()
            categorical_counts = {field: job.result() for field, job in group_jobs.items()}

        total = summary['count']
        if total == 0:
            raise EmptyCollection(self.collection)

        numeric_stats = {
            field: NumericStats(low, high, float(avg))
            for field, (low, high, avg) in summary['numeric'].items()
        }
        snapshot = DistributionSnapshot(
            total_count=total,
            numeric_stats=numeric_stats,
            categorical_counts=categorical_counts,
            boolean_true_counts=dict(summary['booleans']),
            timestamp_range=summary['timestamp'],
        )
        print(f"[Profiler] {total} entities, {len(numeric_stats)} numeric and "
              f"{len(categorical_counts)} categorical fields profiled.")
        return snapshot
