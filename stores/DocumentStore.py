from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

COLLECTION_SCAN = "COLLECTION_SCAN"


def index_keys(fields):
    """Normalises index fields to (field, direction) pairs; bare names are ascending."""
    return [(f, 1) if isinstance(f, str) else (f[0], int(f[1])) for f in fields]


def index_name(fields):
    """Index name in MongoDB's default form, e.g. `user_1_createdAt_-1`."""
    return "_".join(f"{f}_{d}" for f, d in index_keys(fields))


@dataclass(frozen=True)
class QueryPlan:
    """What the backend reports about one executed read."""
    execution_time_ms: float
    docs_returned: int
    index_used: str = COLLECTION_SCAN
    has_sort_stage: bool = False
    docs_examined: Optional[int] = None
    details: Any = field(default=None, compare=False)

    @property
    def efficiency_ratio(self):
        """Percentage of examined documents that were returned; None when not reported."""
        if self.docs_examined is None:
            return None
        if self.docs_examined == 0:
            return 0.0
        return self.docs_returned / self.docs_examined * 100


class DocumentStore(ABC):
    """Abstract base class for the document databases the bench runs against."""

    def __init__(self, db_connection):
        if db_connection is None:
            raise ValueError("Database connection cannot be None")
        self.conn = db_connection
        # Extract the concrete class name automatically
        self.name = self.__class__.__name__
        print(f"Initialized Store: {self.name}")

    @abstractmethod
    def count(self, collection, predicate):
        """Exact number of documents in `collection` matching `predicate`."""
        pass

    @abstractmethod
    def find(self, collection, predicate, sort=None, limit=None, fields=None):
        """Reads matching documents.

        Args:
            collection: Collection name.
            predicate: A `synthesis.predicates.Predicate`.
            sort: List of (field, direction) pairs, direction 1 or -1.
            limit: Maximum number of documents, None for all.
            fields: Fields to keep besides the id, None for whole documents.

        Returns:
            List of documents as dicts.
        """
        pass

    @abstractmethod
    def sample(self, collection, size, fields=None, seed=None):
        """Draws up to `size` random documents; `seed` makes it repeatable where supported."""
        pass

    @abstractmethod
    def numeric_summary(self, collection, numeric_fields, boolean_fields=(), timestamp_field=None):
        """Single aggregate pass over a collection.

        Returns:
            dict with keys:
                'count': total number of documents
                'numeric': {field: (min, max, avg)}
                'booleans': {field: number of documents where the field is true}
                'timestamp': (min, max) of `timestamp_field`, or None
        """
        pass

    @abstractmethod
    def group_counts(self, collection, field, split=None):
        """Single grouping pass returning {value: count}.

        `split=(separator, index)` groups on one part of a compound string field.
        Documents without the field are left out.
        """
        pass

    @abstractmethod
    def find_joined(self, collection, local_field, from_collection, predicate, sort=None):
        """Documents of `collection` whose `local_field` references a matching entity of `from_collection`."""
        pass

    @abstractmethod
    def insert_many(self, collection, documents):
        """Bulk insert. Returns the ids of the inserted documents."""
        pass

    @abstractmethod
    def drop(self, collection):
        pass

    def ensure_index(self, collection, fields):
        """Creates a secondary index when the backend supports it.

        `fields` holds field names (ascending) or (field, direction) pairs.
        """
        pass

    @abstractmethod
    def list_indexes(self, collection):
        """Returns {index name: [(field, direction), ...]} for the collection."""
        pass

    @abstractmethod
    def explain(self, collection, predicate, sort=None, limit=None, hint=None):
        """Runs a read and reports how the backend executed it.

        Args:
            hint: Index fields (as for `ensure_index`) the backend must use.

        Returns:
            QueryPlan
        """
        pass
