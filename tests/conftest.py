import threading
from collections import Counter

import numpy as np
import pytest

from seeding import seed_users
from stores.SqliteDocumentStore import SqliteDocumentStore, open_connection

TIMESTAMP_FIELDS = ["joinDate", "createdAt"]
SEEDED_USERS = 5000


class CountingStore:
    """Delegates to a real store and counts calls per method."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = Counter()
        self._lock = threading.Lock()

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        def wrapper(*args, **kwargs):
            with self._lock:
                self.calls[name] += 1
            return attr(*args, **kwargs)
        return wrapper


def make_store():
    return SqliteDocumentStore(open_connection(), timestamp_fields=TIMESTAMP_FIELDS)


@pytest.fixture
def store():
    return make_store()


@pytest.fixture(scope="module")
def users_store():
    """In-memory store holding a reproducible users collection."""
    seeded = make_store()
    seed_users(seeded, SEEDED_USERS, rng=np.random.default_rng(7))
    return seeded


@pytest.fixture
def counting_store(users_store):
    return CountingStore(users_store)
