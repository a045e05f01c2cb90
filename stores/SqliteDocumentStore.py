from .DocumentStore import COLLECTION_SCAN, DocumentStore, QueryPlan, index_keys, index_name
from synthesis.predicates import And, Eq, In, Or, Range
from collections import Counter
from datetime import datetime, timezone
import json
import re
import sqlite3
import threading
import time
import uuid

import numpy as np

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
SAMPLE_MODULUS = 2147483647  # prime; rowid * seed mod p permutes rowids
MAX_INLINE_VALUES = 500

_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$')
# One term of a stored CREATE INDEX column list
_INDEX_TERM_RE = re.compile(r"""(?:json_extract\(doc, '\$((?:\."[^"]+")+)'\)|\b(_id)\b)( DESC)?""")
_USING_INDEX_RE = re.compile(r'USING (?:COVERING )?INDEX ([^\s(]+)')
PRIMARY_INDEX = "_id_"


def open_connection(path=":memory:"):
    """Opens a connection usable from the profiler's worker threads."""
    return sqlite3.connect(path, check_same_thread=False)


def encode_timestamp(value):
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def decode_timestamp(text):
    return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _json_default(value):
    if isinstance(value, datetime):
        return encode_timestamp(value)
    if isinstance(value, np.generic):
        return value.item()
    return str(value)


def _param(value):
    if isinstance(value, datetime):
        return encode_timestamp(value)
    if isinstance(value, np.generic):
        return value.item()
    return value


class SqliteDocumentStore(DocumentStore):
    """Document store over SQLite: one (_id, doc JSON) table per collection."""

    def __init__(self, db_connection, timestamp_fields=(), id_field="_id"):
        super().__init__(db_connection)
        self.timestamp_fields = set(timestamp_fields)
        self.id_field = id_field
        self._lock = threading.Lock()

    # --- SQL building ---

    def _table(self, collection):
        if not _NAME_RE.match(collection) or '.' in collection:
            raise ValueError(f"Invalid collection name: {collection!r}")
        return f'"{collection}"'

    def _field(self, field):
        if field == self.id_field:
            return "_id"
        if not _NAME_RE.match(field):
            raise ValueError(f"Invalid field name: {field!r}")
        path = "$" + "".join(f'."{part}"' for part in field.split('.'))
        return f"json_extract(doc, '{path}')"

    def compile(self, predicate, params):
        """Compiles a predicate into a WHERE clause, appending bind values to `params`."""
        if isinstance(predicate, Eq):
            if predicate.value is None:
                return f"{self._field(predicate.field)} IS NULL"
            params.append(_param(predicate.value))
            return f"{self._field(predicate.field)} = ?"
        if isinstance(predicate, Range):
            ops = {'gte': '>=', 'gt': '>', 'lte': '<=', 'lt': '<'}
            expr = self._field(predicate.field)
            clauses = []
            for name, value in predicate.bounds():
                params.append(_param(value))
                clauses.append(f"{expr} {ops[name]} ?")
            return "(" + " AND ".join(clauses) + ")"
        if isinstance(predicate, In):
            if not predicate.values:
                return "0"
            if len(predicate.values) > MAX_INLINE_VALUES:
                # One JSON array parameter instead of thousands of bind variables
                params.append(json.dumps(list(predicate.values), default=_json_default))
                return f"{self._field(predicate.field)} IN (SELECT value FROM json_each(?))"
            params.extend(_param(v) for v in predicate.values)
            marks = ", ".join("?" for _ in predicate.values)
            return f"{self._field(predicate.field)} IN ({marks})"
        if isinstance(predicate, And):
            if not predicate.children:
                return "1"
            return "(" + " AND ".join(self.compile(c, params) for c in predicate.children) + ")"
        if isinstance(predicate, Or):
            return "(" + " OR ".join(self.compile(c, params) for c in predicate.children) + ")"
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def _order_by(self, sort):
        if not sort:
            return ""
        terms = [f"{self._field(field)} {'DESC' if direction < 0 else 'ASC'}" for field, direction in sort]
        return " ORDER BY " + ", ".join(terms)

    # --- Execution ---

    def _query(self, sql, params=()):
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(sql, params)
            return cursor.fetchall()

    def _ensure_table(self, collection):
        with self._lock:
            self.conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self._table(collection)} (_id TEXT PRIMARY KEY, doc TEXT NOT NULL)"
            )

    def _table_exists(self, collection):
        rows = self._query("SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (collection,))
        return bool(rows)

    def _decode(self, row, fields=None):
        doc_id, text = row
        document = json.loads(text)
        for field in self.timestamp_fields:
            value = document.get(field)
            if isinstance(value, str):
                document[field] = decode_timestamp(value)
        if fields is not None:
            document = {k: v for k, v in document.items() if k in fields}
        document[self.id_field] = doc_id
        return document

    def count(self, collection, predicate):
        if not self._table_exists(collection):
            return 0
        params = []
        where = self.compile(predicate, params)
        rows = self._query(f"SELECT COUNT(*) FROM {self._table(collection)} WHERE {where}", params)
        return rows[0][0]

    def find(self, collection, predicate, sort=None, limit=None, fields=None):
        if not self._table_exists(collection):
            return []
        params = []
        sql = f"SELECT _id, doc FROM {self._table(collection)} WHERE {self.compile(predicate, params)}"
        sql += self._order_by(sort)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [self._decode(row, fields) for row in self._query(sql, params)]

    def sample(self, collection, size, fields=None, seed=None):
        if not self._table_exists(collection):
            return []
        table = self._table(collection)
        if seed is None:
            rows = self._query(f"SELECT _id, doc FROM {table} ORDER BY RANDOM() LIMIT ?", (int(size),))
        else:
            multiplier = int(seed) % SAMPLE_MODULUS or 1
            rows = self._query(
                f"SELECT _id, doc FROM {table} ORDER BY ((rowid * ?) % {SAMPLE_MODULUS}), rowid LIMIT ?",
                (multiplier, int(size)),
            )
        return [self._decode(row, fields) for row in rows]

    def numeric_summary(self, collection, numeric_fields, boolean_fields=(), timestamp_field=None):
        columns = ["COUNT(*)"]
        for field in numeric_fields:
            expr = self._field(field)
            columns += [f"MIN({expr})", f"MAX({expr})", f"AVG({expr})"]
        for field in boolean_fields:
            columns.append(f"SUM(CASE WHEN {self._field(field)} = 1 THEN 1 ELSE 0 END)")
        if timestamp_field:
            expr = self._field(timestamp_field)
            columns += [f"MIN({expr})", f"MAX({expr})"]

        summary = {'count': 0, 'numeric': {}, 'booleans': {}, 'timestamp': None}
        if not self._table_exists(collection):
            return summary
        row = self._query(f"SELECT {', '.join(columns)} FROM {self._table(collection)}")[0]

        summary['count'] = row[0]
        pos = 1
        for field in numeric_fields:
            low, high, avg = row[pos:pos + 3]
            pos += 3
            if low is not None:
                summary['numeric'][field] = (low, high, avg)
        for field in boolean_fields:
            summary['booleans'][field] = row[pos] or 0
            pos += 1
        if timestamp_field and row[pos] is not None:
            summary['timestamp'] = (decode_timestamp(row[pos]), decode_timestamp(row[pos + 1]))
        return summary

    def group_counts(self, collection, field, split=None):
        if not self._table_exists(collection):
            return {}
        table = self._table(collection)
        expr = self._field(field)
        if split is None:
            rows = self._query(f"SELECT {expr}, COUNT(*) FROM {table} WHERE {expr} IS NOT NULL GROUP BY {expr}")
            return {value: count for value, count in rows}

        separator, index = split
        counts = Counter()
        for (value,) in self._query(f"SELECT {expr} FROM {table} WHERE {expr} IS NOT NULL"):
            if not isinstance(value, str):
                continue
            parts = value.split(separator)
            if -len(parts) <= index < len(parts):
                counts[parts[index]] += 1
        return dict(counts)

    def find_joined(self, collection, local_field, from_collection, predicate, sort=None):
        if not self._table_exists(collection) or not self._table_exists(from_collection):
            return []
        params = []
        inner = self.compile(predicate, params)
        sql = (
            f"SELECT _id, doc FROM {self._table(collection)} "
            f"WHERE {self._field(local_field)} IN "
            f"(SELECT _id FROM {self._table(from_collection)} WHERE {inner})"
        )
        sql += self._order_by(sort)
        return [self._decode(row) for row in self._query(sql, params)]

    def insert_many(self, collection, documents):
        self._ensure_table(collection)
        rows = []
        ids = []
        for document in documents:
            body = dict(document)
            doc_id = body.pop(self.id_field, None)
            doc_id = uuid.uuid4().hex if doc_id is None else str(doc_id)
            ids.append(doc_id)
            rows.append((doc_id, json.dumps(body, default=_json_default)))
        with self._lock:
            self.conn.executemany(f"INSERT INTO {self._table(collection)} (_id, doc) VALUES (?, ?)", rows)
            self.conn.commit()
        return ids

    def drop(self, collection):
        with self._lock:
            self.conn.execute(f"DROP TABLE IF EXISTS {self._table(collection)}")
            self.conn.commit()

    # --- Indexes and plans ---

    def _index_name(self, collection, fields):
        return f"{collection}.{index_name(fields)}"

    def ensure_index(self, collection, fields):
        self._ensure_table(collection)
        terms = ", ".join(f"{self._field(f)}{' DESC' if d < 0 else ''}" for f, d in index_keys(fields))
        with self._lock:
            self.conn.execute(
                f'CREATE INDEX IF NOT EXISTS "{self._index_name(collection, fields)}" '
                f'ON {self._table(collection)} ({terms})'
            )
            self.conn.commit()

    def list_indexes(self, collection):
        if not self._table_exists(collection):
            return {}
        indexes = {PRIMARY_INDEX: [(self.id_field, 1)]}
        rows = self._query(
            "SELECT name, sql FROM sqlite_master WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL",
            (collection,),
        )
        for name, sql in rows:
            terms = sql[sql.index('(') + 1:sql.rindex(')')]
            keys = []
            for path, id_column, desc in _INDEX_TERM_RE.findall(terms):
                field = self.id_field if id_column else ".".join(re.findall(r'"([^"]+)"', path))
                keys.append((field, -1 if desc else 1))
            indexes[name.split('.', 1)[-1]] = keys
        return indexes

    def explain(self, collection, predicate, sort=None, limit=None, hint=None):
        if not self._table_exists(collection):
            return QueryPlan(0.0, 0)
        params = []
        source = self._table(collection)
        if hint is not None:
            source += f' INDEXED BY "{self._index_name(collection, hint)}"'
        sql = f"SELECT _id, doc FROM {source} WHERE {self.compile(predicate, params)}"
        sql += self._order_by(sort)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        details = [row[-1] for row in self._query(f"EXPLAIN QUERY PLAN {sql}", params)]
        start_time = time.perf_counter()
        rows = self._query(sql, params)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        index_used = COLLECTION_SCAN
        for detail in details:
            match = _USING_INDEX_RE.search(detail)
            if match:
                name = match.group(1)
                index_used = PRIMARY_INDEX if name.startswith("sqlite_autoindex") else name.split('.', 1)[-1]
                break
        # SQLite does not report examined rows
        return QueryPlan(elapsed_ms, len(rows), index_used,
                         has_sort_stage=any("TEMP B-TREE" in d for d in details), details=details)
