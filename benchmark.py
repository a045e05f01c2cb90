import time
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from pagination.cursor import Cursor
from pagination.keyset_paginator import KeysetPaginator
from synthesis import config
from synthesis.predicates import In, conjoin

FIND_WITH_IN = "find_with_in"
AGGREGATION_JOIN = "aggregation_join"
KEYSET_PAGINATION = "keyset_pagination"

# Document indexes the three strategies rely on; alternatives accept either sort direction
RECOMMENDED_INDEXES = {
    "user + _id": [[("user", 1), ("_id", 1)]],
    "user + createdAt + _id": [[("user", 1), ("createdAt", -1), ("_id", -1)],
                               [("user", 1), ("createdAt", 1), ("_id", 1)]],
}
FAST_MS = 100
SLOW_MS = 1000


class BenchmarkMismatch(Exception):
    """Two query strategies returned different documents for the same filter."""


class QueryTimingBenchmark:
    """Times alternative ways of reading the documents of a filtered set of users"""

    def __init__(self, store, users_collection=config.USERS_COLLECTION,
                 documents_collection=config.DOCUMENTS_COLLECTION, page_size=1000):
        self.store = store
        self.users_collection = users_collection
        self.documents_collection = documents_collection
        self.page_size = page_size
        self.paginator = KeysetPaginator(store, documents_collection)
        self.strategies = {
            FIND_WITH_IN: self._find_with_in,
            AGGREGATION_JOIN: self._aggregation_join,
            KEYSET_PAGINATION: self._keyset_pagination,
        }
        self.results = []
        self.query_analyses = []

    def _user_ids(self, predicate):
        users = self.store.find(self.users_collection, predicate, fields=[config.ID_FIELD])
        return [user[config.ID_FIELD] for user in users]

    def _find_with_in(self, predicate):
        """Filter users first, then read their documents with $in"""
        user_ids = self._user_ids(predicate)
        return self.store.find(self.documents_collection, In("user", user_ids),
                               sort=[(config.ID_FIELD, 1)])

    def _aggregation_join(self, predicate):
        """Join documents to the filtered users inside the database"""
        return self.store.find_joined(self.documents_collection, "user", self.users_collection,
                                      predicate, sort=[(config.ID_FIELD, 1)])

    def _keyset_pagination(self, predicate):
        """Page through the users' documents, newest first"""
        user_ids = self._user_ids(predicate)
        documents = []
        for page in self.paginator.iterate_pages(In("user", user_ids), "createdAt", -1, self.page_size):
            documents.extend(page.items)
        return documents

    def _check_agreement(self, outputs):
        reference = outputs[FIND_WITH_IN]
        ref_ids = [doc[config.ID_FIELD] for doc in reference]
        for name, documents in outputs.items():
            ids = [doc[config.ID_FIELD] for doc in documents]
            # Only the paginated read uses a different order
            if name == KEYSET_PAGINATION:
                ids, expected = sorted(map(str, ids)), sorted(map(str, ref_ids))
            else:
                expected = ref_ids
            if ids != expected:
                raise BenchmarkMismatch(
                    f"{name} returned {len(ids)} documents, {FIND_WITH_IN} returned {len(ref_ids)}")

    def run_benchmark(self, filter_set):
        """Run every strategy for every filter-set entry"""
        for entry in filter_set:
            print(f"\n[Benchmark] Querying documents for filter targeting ~{entry.target_count} "
                  f"users (actual: {entry.count})...")
            outputs = {}
            for name, strategy in self.strategies.items():
                start_time = time.perf_counter()
                outputs[name] = strategy(entry.predicate)
                elapsed = time.perf_counter() - start_time
                print(f"[Benchmark] {name}: {elapsed * 1000:.1f} ms ({len(outputs[name])} documents)")
                self.results.append({
                    'target_count': entry.target_count,
                    'actual_count': entry.count,
                    'strategy': name,
                    'documents': len(outputs[name]),
                    'execution_time': elapsed,
                })
            self._check_agreement(outputs)
        return self.results

    def analyze_results(self):
        """Summarise execution times per strategy"""
        if not self.results:
            print("No results available. Run the benchmark first.")
            return None

        df = pd.DataFrame(self.results)
        analysis = {}
        for name, group in df.groupby('strategy'):
            times = group['execution_time'].to_numpy()
            analysis[name] = {
                'median_time': float(np.median(times)),
                'mean_time': float(np.mean(times)),
                'max_time': float(np.max(times)),
                '95th_percentile': float(np.percentile(times, 95)),
                'total_documents': int(group['documents'].sum()),
            }
        return analysis

    def analyze_by_target(self):
        """Mean execution time per (target count, strategy)"""
        if not self.results:
            print("No results available. Run the benchmark first.")
            return None
        df = pd.DataFrame(self.results)
        return df.pivot_table(index='target_count', columns='strategy',
                              values='execution_time', aggfunc='mean')

    def plot_timings(self, output_file=None):
        """Plot execution time against the number of matched users"""
        df = pd.DataFrame(self.results)

        plt.figure(figsize=(10, 6))
        sns.lineplot(x='actual_count', y='execution_time', hue='strategy', data=df, marker='o')
        plt.xscale('log')
        plt.yscale('log')
        plt.xlabel('Matched users')
        plt.ylabel('Execution time (s)')
        plt.title('Query strategy timings by filter size')
        plt.grid(True, alpha=0.3)

        if output_file:
            plt.savefig(output_file)
        else:
            plt.show()

    def _analyze_query(self, name, predicate, sort, hint=None):
        """Explain one read of the documents collection and record the figures"""
        print(f"\n[Explain] --- {name} ---")
        if hint is not None:
            print(f"[Explain] Using hint: {hint}")
        plan = self.store.explain(self.documents_collection, predicate, sort=sort,
                                  limit=self.page_size, hint=hint)
        analysis = {
            'name': name,
            'hint': hint,
            'execution_time_ms': plan.execution_time_ms,
            'docs_examined': plan.docs_examined,
            'docs_returned': plan.docs_returned,
            'efficiency_ratio': plan.efficiency_ratio,
            'index_used': plan.index_used,
            'has_sort_stage': plan.has_sort_stage,
        }
        print(f"[Explain] Execution time: {plan.execution_time_ms:.1f} ms")
        print(f"[Explain] Documents examined: {plan.docs_examined if plan.docs_examined is not None else 'n/a'}")
        print(f"[Explain] Documents returned: {plan.docs_returned}")
        if plan.efficiency_ratio is not None:
            print(f"[Explain] Efficiency ratio: {plan.efficiency_ratio:.2f}%")
        print(f"[Explain] Index used: {plan.index_used}")
        if plan.has_sort_stage:
            print("[Explain] WARNING: in-memory sort detected, the sort is not covered by an index")
        self.query_analyses.append(analysis)
        return analysis

    def check_indexes(self):
        """List the indexes of both collections and report which recommended ones exist"""
        documents_indexes = self.store.list_indexes(self.documents_collection)
        users_indexes = self.store.list_indexes(self.users_collection)
        for label, indexes in (("Documents", documents_indexes), ("Users", users_indexes)):
            print(f"\n[Indexes] {label} collection indexes:")
            for name, keys in indexes.items():
                print(f"[Indexes]   {name}: {keys}")

        present = {}
        for label, alternatives in RECOMMENDED_INDEXES.items():
            keys = list(documents_indexes.values())
            present[label] = any(alternative in keys for alternative in alternatives)
            if present[label]:
                print(f"[Indexes] Has {label} index")
            else:
                print(f"[Indexes] Missing: {label} index {alternatives[0]}")
        return present

    def explain_strategies(self, predicate, user_limit=1000, small_user_count=100):
        """Explain the document reads behind each strategy, with and without index hints.

        Hinted variants run only for recommended indexes that exist, since
        hinting a missing index fails on every backend.
        """
        users = self.store.find(self.users_collection, predicate, limit=user_limit,
                                fields=[config.ID_FIELD])
        user_ids = [user[config.ID_FIELD] for user in users]
        print(f"\n[Explain] Testing with {len(user_ids)} user ids")
        if not user_ids:
            print("[Explain] No users match the filter; nothing to explain.")
            return []

        present = self.check_indexes()
        by_id_hint = RECOMMENDED_INDEXES["user + _id"][0] if present["user + _id"] else None
        by_date_hint = None
        if present["user + createdAt + _id"]:
            indexes = list(self.store.list_indexes(self.documents_collection).values())
            by_date_hint = next(keys for keys in RECOMMENDED_INDEXES["user + createdAt + _id"] if keys in indexes)

        by_user = In("user", user_ids)
        by_id = [(config.ID_FIELD, 1)]
        by_date = self.paginator.sort_spec("createdAt", -1)
        analyses = [
            self._analyze_query("cursor by id", by_user, by_id),
            self._analyze_query("cursor by date desc", by_user, by_date),
        ]
        if by_id_hint:
            analyses.append(self._analyze_query("cursor by id (with hint)", by_user, by_id, by_id_hint))
        if by_date_hint:
            analyses.append(self._analyze_query("cursor by date desc (with hint)", by_user, by_date, by_date_hint))

        # Next-page query of a keyset scan
        first = self.store.find(self.documents_collection, by_user, sort=by_date, limit=1)
        if first and first[0].get("createdAt") is not None:
            cursor = Cursor(first[0]["createdAt"], str(first[0][config.ID_FIELD]))
            next_page = conjoin(by_user, self.paginator.keyset_predicate("createdAt", -1, cursor))
            analyses.append(self._analyze_query("cursor with $or (next page)", next_page, by_date))
            if by_date_hint:
                analyses.append(self._analyze_query("cursor with $or (with hint)", next_page, by_date, by_date_hint))
        else:
            print("[Explain] No documents with createdAt found for the next-page test")

        small = user_ids[:small_user_count]
        analyses.append(self._analyze_query(f"cursor by date desc ({len(small)} users)",
                                            In("user", small), by_date, by_date_hint))

        print("\n[Explain] Performance summary:")
        for analysis in analyses:
            time_ms = analysis['execution_time_ms']
            status = "FAST" if time_ms < FAST_MS else "SLOW" if time_ms < SLOW_MS else "VERY SLOW"
            print(f"[Explain] {analysis['name']}: {time_ms:.1f} ms {status}")
            if analysis['has_sort_stage']:
                print("[Explain]   in-memory sort detected")
            if analysis['efficiency_ratio'] is not None and analysis['efficiency_ratio'] < 10:
                print(f"[Explain]   low efficiency: {analysis['efficiency_ratio']:.1f}%")
        return analyses
