"""Bulk generation of the users / documents collections the bench runs against."""
import time
from datetime import datetime, timedelta, timezone

import numpy as np

from synthesis import config

BATCH_SIZE = 10_000

STATUSES = ["active", "inactive", "pending", "banned"]
DEPARTMENTS = ["engineering", "marketing", "sales", "support", "hr"]
LOCATIONS = ["New York", "San Francisco", "London", "Tokyo", "Berlin"]
EMAIL_DOMAINS = ["gmail.com", "yahoo.com", "hotmail.com", "company.com", "test.org"]
DOCUMENT_TYPES = ["report", "invoice", "contract", "memo", "proposal"]
DOCUMENT_STATUSES = ["draft", "published", "archived", "pending"]
ALPHABET = np.array(list("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"))


def _random_string(rng, length=10):
    return "".join(rng.choice(ALPHABET, size=length))


def _random_property(rng):
    kind = rng.integers(1, 4, endpoint=True)
    if kind == 1:
        return _random_string(rng, int(rng.integers(5, 20, endpoint=True)))
    if kind == 2:
        return int(rng.integers(1, 10_000, endpoint=True))
    if kind == 3:
        return bool(rng.random() > 0.5)
    return [_random_string(rng, 5) for _ in range(int(rng.integers(1, 5, endpoint=True)))]


def generate_user(rng, now=None):
    """One user entity with the well-known filter attributes and 3-8 random extras."""
    now = now or datetime.now(timezone.utc)
    user = {
        "name": f"{_random_string(rng, 6)} {_random_string(rng, 8)}",
        "email": f"{_random_string(rng, 8)}@{rng.choice(EMAIL_DOMAINS)}",
        "age": int(rng.integers(18, 80, endpoint=True)),
        "status": str(rng.choice(STATUSES)),
        "department": str(rng.choice(DEPARTMENTS)),
        "salary": int(rng.integers(30_000, 150_000, endpoint=True)),
        "location": str(rng.choice(LOCATIONS)),
        "joinDate": now - timedelta(days=int(rng.integers(0, 365 * 5, endpoint=True)),
                                    seconds=int(rng.integers(0, 86_400))),
        "isManager": bool(rng.random() > 0.8),
    }
    for i in range(int(rng.integers(3, 8, endpoint=True))):
        user[f"prop_{i}"] = _random_property(rng)
    return user


def generate_document(rng, user_id, now=None):
    now = now or datetime.now(timezone.utc)
    return {
        "user": user_id,
        "title": f"Document {_random_string(rng, 8)}",
        "type": str(rng.choice(DOCUMENT_TYPES)),
        "status": str(rng.choice(DOCUMENT_STATUSES)),
        "createdAt": now - timedelta(days=int(rng.integers(0, 365, endpoint=True))),
        "size": int(rng.integers(1_000, 50_000, endpoint=True)),
    }


def seed_users(store, total_users=100_000, rng=None, collection=config.USERS_COLLECTION):
    """Replaces the users collection with `total_users` generated entities; returns their ids."""
    rng = rng or np.random.default_rng()
    print("[Seed] Starting to seed users...")
    store.drop(collection)
    now = datetime.now(timezone.utc)
    user_ids = []
    for start in range(0, total_users, BATCH_SIZE):
        size = min(BATCH_SIZE, total_users - start)
        user_ids.extend(store.insert_many(collection, [generate_user(rng, now) for _ in range(size)]))
        print(f"[Seed] Inserted {start + size} users")
    print(f"[Seed] Finished seeding {total_users} users")
    return user_ids


def seed_documents(store, user_ids, docs_per_user=10, rng=None, collection=config.DOCUMENTS_COLLECTION):
    """Replaces the documents collection with `docs_per_user` documents per user."""
    rng = rng or np.random.default_rng()
    print("[Seed] Starting to seed documents...")
    store.drop(collection)
    store.ensure_index(collection, ["user", config.ID_FIELD])
    now = datetime.now(timezone.utc)
    start_time = time.time()
    users_per_batch = max(1, BATCH_SIZE // max(1, docs_per_user))
    inserted = 0
    for start in range(0, len(user_ids), users_per_batch):
        chunk = user_ids[start:start + users_per_batch]
        batch = [generate_document(rng, user_id, now) for user_id in chunk for _ in range(docs_per_user)]
        if batch:
            store.insert_many(collection, batch)
            inserted += len(batch)
        progress = 100.0 * (start + len(chunk)) / len(user_ids)
        print(f"[Seed] Inserted {inserted} documents ({progress:.1f}% complete)")
    print(f"[Seed] Finished seeding {inserted} documents in {time.time() - start_time:.2f} seconds")


def seed_database(store, total_users=100_000, docs_per_user=10, seed=None):
    rng = np.random.default_rng(seed)
    start_time = time.time()
    user_ids = seed_users(store, total_users, rng)
    seed_documents(store, user_ids, docs_per_user, rng)
    print(f"\n[Seed] Seeding completed in {time.time() - start_time:.2f} seconds")
    print(f"[Seed] Total users: {len(user_ids)}")
    print(f"[Seed] Total documents: {len(user_ids) * docs_per_user}")
    return user_ids
