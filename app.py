import os
import sys

from benchmark import QueryTimingBenchmark
from seeding import seed_database
from stores.MongoDocumentStore import MongoDocumentStore, connect
from stores.SqliteDocumentStore import SqliteDocumentStore, open_connection
from synthesis import config
from synthesis.filter_set import generate_filter_set, load_or_generate, save_filter_set
from synthesis.predicates import Range
from synthesis.synthesizer import PredicateSynthesizer


def main():
    """Main function to run the benchmark"""
    print("Document Query Performance Testing")

    client = None
    if "--sqlite" in sys.argv:
        os.makedirs(config.DATA_DIR, exist_ok=True)
        conn = open_connection(config.SQLITE_FILE)
        store = SqliteDocumentStore(conn, timestamp_fields=["joinDate", "createdAt"])
    else:
        client, db = connect()
        store = MongoDocumentStore(db)

    if "--explain" in sys.argv:
        # Users in a broad age band, as most generated filters are
        QueryTimingBenchmark(store).explain_strategies(Range("age", gte=25, lte=65))
        if client is not None:
            client.close()
        return

    synthesizer = PredicateSynthesizer(store)

    if "--seed" in sys.argv:
        seed_database(store, 250_000, 100)
        # Filters synthesized against the old data no longer hold
        filter_set = generate_filter_set(synthesizer, config.DEFAULT_TARGET_COUNTS)
        save_filter_set(filter_set, config.FILTER_SET_FILE)
    else:
        filter_set = load_or_generate(config.FILTER_SET_FILE, synthesizer, config.DEFAULT_TARGET_COUNTS)

    missed = [entry for entry in filter_set if not entry.within_margin]
    if missed:
        print(f"\nWarning: {len(missed)} filters missed their margin: "
              f"{[entry.target_count for entry in missed]}")

    benchmark = QueryTimingBenchmark(store)
    benchmark.run_benchmark(filter_set)

    # Analyze the results
    analysis = benchmark.analyze_results()
    print("\nOverall Analysis:")
    for strategy, metrics in analysis.items():
        print(f"\n{strategy}:")
        for metric, value in metrics.items():
            print(f"  {metric}: {value}")

    print("\nMean execution time by target count:")
    print(benchmark.analyze_by_target())

    benchmark.plot_timings("query_timings.png")

    if client is not None:
        client.close()
    print("\nCompleted successfully!")


if __name__ == "__main__":
    main()
