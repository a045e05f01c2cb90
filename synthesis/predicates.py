# predicates.py
"""Structured filter predicates handed to the document stores.

The set of forms is closed: field equality, field range, field set-membership
and the AND / OR of those. A predicate renders to the MongoDB wire form
(`to_mongo`), to a JSON-safe tagged tree (`to_dict`) for persistence and can
be evaluated in-process against a plain document (`matches`).
"""
from datetime import datetime

import numpy as np

DATE_TAG = "$date"

_MISSING = object()


def encode_value(value):
    """Converts a native field value into a JSON-safe one."""
    if isinstance(value, datetime):
        return {DATE_TAG: value.isoformat()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


def decode_value(value):
    """Inverse of `encode_value`."""
    if isinstance(value, dict) and DATE_TAG in value:
        return datetime.fromisoformat(value[DATE_TAG])
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def lookup(document, field):
    """Reads a (possibly dotted) field from a document, `_MISSING` if absent."""
    current = document
    for part in field.split('.'):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _native(value):
    return value.item() if isinstance(value, np.generic) else value


class Predicate:
    """Base class of every predicate form."""

    op = None

    def to_mongo(self):
        raise NotImplementedError

    def to_dict(self):
        raise NotImplementedError

    def matches(self, document):
        raise NotImplementedError

    def depth(self):
        """Nesting depth: 0 for a leaf, 1 + deepest child for AND / OR."""
        return 0

    def _key(self):
        raise NotImplementedError

    def __eq__(self, other):
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self):
        return hash((type(self).__name__, self._key()))

    def __repr__(self):
        return f"{type(self).__name__}{self._key()!r}"


class Eq(Predicate):
    op = 'eq'

    def __init__(self, field, value):
        self.field = field
        self.value = _native(value)

    def to_mongo(self):
        return {self.field: self.value}

    def to_dict(self):
        return {'op': self.op, 'field': self.field, 'value': encode_value(self.value)}

    def matches(self, document):
        return lookup(document, self.field) == self.value

    def _key(self):
        return (self.field, self.value)


class Range(Predicate):
    """Bounded field range. `gte` / `lte` are inclusive, `gt` / `lt` exclusive.

    At most one lower and one upper bound; at least one bound overall.
    """
    op = 'range'

    def __init__(self, field, gte=None, lte=None, gt=None, lt=None):
        if gte is not None and gt is not None:
            raise ValueError(f"Range on '{field}' has two lower bounds")
        if lte is not None and lt is not None:
            raise ValueError(f"Range on '{field}' has two upper bounds")
        if gte is None and gt is None and lte is None and lt is None:
            raise ValueError(f"Range on '{field}' needs at least one bound")
        self.field = field
        self.gte, self.lte = _native(gte), _native(lte)
        self.gt, self.lt = _native(gt), _native(lt)
        low, high = self.lower, self.upper
        if low is not None and high is not None and low > high:
            raise ValueError(f"Empty range on '{field}': {low} > {high}")

    @property
    def lower(self):
        return self.gte if self.gte is not None else self.gt

    @property
    def upper(self):
        return self.lte if self.lte is not None else self.lt

    def bounds(self):
        """Yields (operator, value) for every bound that is set."""
        for name in ('gte', 'gt', 'lte', 'lt'):
            value = getattr(self, name)
            if value is not None:
                yield name, value

    def to_mongo(self):
        return {self.field: {f"${name}": value for name, value in self.bounds()}}

    def to_dict(self):
        tree = {'op': self.op, 'field': self.field}
        for name, value in self.bounds():
            tree[name] = encode_value(value)
        return tree

    def matches(self, document):
        value = lookup(document, self.field)
        if value is _MISSING or value is None:
            return False
        try:
            if self.gte is not None and not value >= self.gte:
                return False
            if self.gt is not None and not value > self.gt:
                return False
            if self.lte is not None and not value <= self.lte:
                return False
            if self.lt is not None and not value < self.lt:
                return False
        except TypeError:
            return False
        return True

    def _key(self):
        return (self.field, self.gte, self.lte, self.gt, self.lt)


class In(Predicate):
    op = 'in'

    def __init__(self, field, values):
        self.field = field
        self.values = tuple(_native(v) for v in values)

    def to_mongo(self):
        return {self.field: {'$in': list(self.values)}}

    def to_dict(self):
        return {'op': self.op, 'field': self.field, 'values': encode_value(self.values)}

    def matches(self, document):
        return lookup(document, self.field) in self.values

    def _key(self):
        return (self.field, self.values)


class _Compound(Predicate):
    mongo_op = None

    def __init__(self, *children):
        for child in children:
            if not isinstance(child, Predicate):
                raise TypeError(f"{type(self).__name__} expects predicates, got {child!r}")
        self.children = tuple(children)

    def to_mongo(self):
        return {self.mongo_op: [child.to_mongo() for child in self.children]}

    def to_dict(self):
        return {'op': self.op, 'args': [child.to_dict() for child in self.children]}

    def depth(self):
        return 1 + max((child.depth() for child in self.children), default=-1)

    def _key(self):
        return self.children


class And(_Compound):
    """Conjunction. With no children it is the match-all predicate."""
    op = 'and'
    mongo_op = '$and'

    def to_mongo(self):
        if not self.children:
            return {}
        return super().to_mongo()

    def matches(self, document):
        return all(child.matches(document) for child in self.children)


class Or(_Compound):
    op = 'or'
    mongo_op = '$or'

    def __init__(self, *children):
        if not children:
            raise ValueError("Or needs at least one child")
        super().__init__(*children)

    def matches(self, document):
        return any(child.matches(document) for child in self.children)


MATCH_ALL = And()


def conjoin(*predicates):
    """ANDs predicates together, dropping match-all parts and flattening nested ANDs."""
    parts = []
    for predicate in predicates:
        if isinstance(predicate, And):
            parts.extend(predicate.children)
        else:
            parts.append(predicate)
    if not parts:
        return MATCH_ALL
    if len(parts) == 1:
        return parts[0]
    return And(*parts)


def predicate_from_dict(tree):
    """Rebuilds a predicate from the tree produced by `Predicate.to_dict`."""
    op = tree.get('op')
    if op == 'eq':
        return Eq(tree['field'], decode_value(tree['value']))
    if op == 'range':
        bounds = {name: decode_value(tree[name]) for name in ('gte', 'lte', 'gt', 'lt') if name in tree}
        return Range(tree['field'], **bounds)
    if op == 'in':
        return In(tree['field'], decode_value(tree['values']))
    if op == 'and':
        return And(*(predicate_from_dict(arg) for arg in tree.get('args', [])))
    if op == 'or':
        return Or(*(predicate_from_dict(arg) for arg in tree['args']))
    raise ValueError(f"Unknown predicate op: {op!r}")
