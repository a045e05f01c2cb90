from .DocumentStore import COLLECTION_SCAN, DocumentStore, QueryPlan, index_keys
from synthesis import config
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient


def connect(uri=config.MONGODB_URI, db_name=config.DB_NAME):
    """Opens a tz-aware client and makes sure the documents index exists."""
    client = MongoClient(uri, tz_aware=True)
    db = client[db_name]
    db[config.DOCUMENTS_COLLECTION].create_index([("user", ASCENDING), ("_id", ASCENDING)])
    print(f"[Mongo] Connected to {uri}/{db_name}")
    return client, db


def find_index_name(stage):
    """Name of the first IXSCAN at or below an explain stage, depth first."""
    if not isinstance(stage, dict):
        return None
    if stage.get("stage") == "IXSCAN" and stage.get("indexName"):
        return stage["indexName"]
    children = [stage.get("inputStage"), stage.get("executionStages")] + list(stage.get("inputStages", []))
    for child in children:
        name = find_index_name(child)
        if name:
            return name
    return None


def has_stage(tree, stage_name):
    """True when any stage of an explain tree is `stage_name` (e.g. an in-memory SORT)."""
    if isinstance(tree, dict):
        if tree.get("stage") == stage_name:
            return True
        return any(has_stage(value, stage_name) for value in tree.values())
    if isinstance(tree, list):
        return any(has_stage(value, stage_name) for value in tree)
    return False


def _key(field):
    # $group output names cannot contain dots
    return field.replace('.', '_')


class MongoDocumentStore(DocumentStore):
    """Document store backed by a pymongo `Database`."""

    def __init__(self, db_connection, id_field="_id"):
        super().__init__(db_connection)
        self.id_field = id_field

    def _coerce_id(self, value):
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        return value

    def _coerce(self, tree):
        """Turns string ids back into ObjectIds anywhere under the id field."""
        if isinstance(tree, list):
            return [self._coerce(item) for item in tree]
        if not isinstance(tree, dict):
            return tree
        coerced = {}
        for key, value in tree.items():
            if key == self.id_field:
                if isinstance(value, dict):
                    value = {op: ([self._coerce_id(v) for v in operand] if isinstance(operand, list)
                                  else self._coerce_id(operand))
                             for op, operand in value.items()}
                else:
                    value = self._coerce_id(value)
                coerced[key] = value
            else:
                coerced[key] = self._coerce(value)
        return coerced

    def filter(self, predicate):
        return self._coerce(predicate.to_mongo())

    def _sort(self, sort):
        return [(field, DESCENDING if direction < 0 else ASCENDING) for field, direction in sort or []]

    def _projection(self, fields):
        if fields is None:
            return None
        return {field: 1 for field in fields}

    def count(self, collection, predicate):
        return self.conn[collection].count_documents(self.filter(predicate))

    def find(self, collection, predicate, sort=None, limit=None, fields=None):
        cursor = self.conn[collection].find(self.filter(predicate), self._projection(fields))
        if sort:
            cursor = cursor.sort(self._sort(sort))
        if limit is not None:
            cursor = cursor.limit(int(limit))
        return list(cursor)

    def sample(self, collection, size, fields=None, seed=None):
        # $sample cannot be seeded
        pipeline = [{"$sample": {"size": int(size)}}]
        if fields is not None:
            pipeline.append({"$project": self._projection(fields)})
        return list(self.conn[collection].aggregate(pipeline))

    def numeric_summary(self, collection, numeric_fields, boolean_fields=(), timestamp_field=None):
        group = {"_id": None, "count": {"$sum": 1}}
        for field in numeric_fields:
            group[f"{_key(field)}__min"] = {"$min": f"${field}"}
            group[f"{_key(field)}__max"] = {"$max": f"${field}"}
            group[f"{_key(field)}__avg"] = {"$avg": f"${field}"}
        for field in boolean_fields:
            group[f"{_key(field)}__true"] = {"$sum": {"$cond": [{"$eq": [f"${field}", True]}, 1, 0]}}
        if timestamp_field:
            group["ts__min"] = {"$min": f"${timestamp_field}"}
            group["ts__max"] = {"$max": f"${timestamp_field}"}

        summary = {'count': 0, 'numeric': {}, 'booleans': {}, 'timestamp': None}
        rows = list(self.conn[collection].aggregate([{"$group": group}]))
        if not rows:
            return summary
        row = rows[0]
        summary['count'] = row["count"]
        for field in numeric_fields:
            low = row.get(f"{_key(field)}__min")
            if low is not None:
                summary['numeric'][field] = (low, row[f"{_key(field)}__max"], row[f"{_key(field)}__avg"])
        for field in boolean_fields:
            summary['booleans'][field] = row.get(f"{_key(field)}__true", 0)
        if timestamp_field and row.get("ts__min") is not None:
            summary['timestamp'] = (row["ts__min"], row["ts__max"])
        return summary

    def group_counts(self, collection, field, split=None):
        if split is None:
            pipeline = [
                {"$match": {field: {"$exists": True, "$ne": None}}},
                {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            ]
        else:
            separator, index = split
            pipeline = [
                {"$match": {field: {"$type": "string"}}},
                {"$group": {
                    "_id": {"$arrayElemAt": [{"$split": [f"${field}", separator]}, index]},
                    "count": {"$sum": 1},
                }},
            ]
        return {row["_id"]: row["count"] for row in self.conn[collection].aggregate(pipeline)
                if row["_id"] is not None}

    def find_joined(self, collection, local_field, from_collection, predicate, sort=None):
        pipeline = [
            {"$lookup": {
                "from": from_collection,
                "as": "_joined",
                "let": {"ref": f"${local_field}"},
                "pipeline": [
                    {"$match": self.filter(predicate)},
                    {"$match": {"$expr": {"$eq": [f"${self.id_field}", "$$ref"]}}},
                    {"$limit": 1},
                ],
            }},
            {"$match": {"_joined.0": {"$exists": True}}},
            {"$project": {"_joined": 0}},
        ]
        if sort:
            pipeline.append({"$sort": dict(self._sort(sort))})
        return list(self.conn[collection].aggregate(pipeline))

    def insert_many(self, collection, documents):
        result = self.conn[collection].insert_many(list(documents))
        return list(result.inserted_ids)

    def drop(self, collection):
        self.conn[collection].drop()

    def ensure_index(self, collection, fields):
        self.conn[collection].create_index(index_keys(fields))

    def list_indexes(self, collection):
        return {name: [(field, int(direction)) for field, direction in info["key"]]
                for name, info in self.conn[collection].index_information().items()}

    def explain(self, collection, predicate, sort=None, limit=None, hint=None):
        find = {"find": collection, "filter": self.filter(predicate)}
        if sort:
            find["sort"] = dict(self._sort(sort))
        if limit is not None:
            find["limit"] = int(limit)
        if hint is not None:
            find["hint"] = dict(index_keys(hint))
        report = self.conn.command({"explain": find, "verbosity": "executionStats"})
        stats = report["executionStats"]
        winning = stats.get("executionStages") or report.get("queryPlanner", {}).get("winningPlan")
        return QueryPlan(
            execution_time_ms=stats.get("executionTimeMillis", 0),
            docs_returned=stats.get("nReturned", 0),
            index_used=find_index_name(winning) or COLLECTION_SCAN,
            has_sort_stage=has_stage(winning, "SORT"),
            docs_examined=stats.get("totalDocsExamined"),
            details=report,
        )
