# keyset_paginator.py
"""Keyset (cursor) pagination over a compound sort key with an id tie-break."""
from dataclasses import dataclass
from typing import List, Optional

from synthesis import config
from synthesis.predicates import And, Eq, Or, Range, conjoin

from .cursor import Cursor


@dataclass(frozen=True)
class Page:
    items: List[dict]
    next_cursor: Optional[Cursor]
    has_more: bool


def _direction(sort_direction):
    if sort_direction in (1, 'asc', 'ascending'):
        return 1
    if sort_direction in (-1, 'desc', 'descending'):
        return -1
    raise ValueError(f"Unknown sort direction: {sort_direction!r}")


class KeysetPaginator:
    """Returns ordered windows of a collection, resuming after the last row seen.

    The tie-break field must be unique and totally ordered; it is appended to
    every sort so pages stay stable when the primary sort field has duplicates.
    Every matching entity must carry the primary sort field.
    """

    def __init__(self, store, collection, tie_break_field=config.ID_FIELD):
        self.store = store
        self.collection = collection
        self.tie_break_field = tie_break_field

    def keyset_predicate(self, sort_field, direction, cursor):
        """Rows strictly after `cursor` in (sort_field, tie_break) order."""
        bound = 'gt' if direction > 0 else 'lt'
        if sort_field == self.tie_break_field:
            return Range(self.tie_break_field, **{bound: cursor.id})
        return Or(
            Range(sort_field, **{bound: cursor.value}),
            And(Eq(sort_field, cursor.value), Range(self.tie_break_field, **{bound: cursor.id})),
        )

    def sort_spec(self, sort_field, direction):
        if sort_field == self.tie_break_field:
            return [(sort_field, direction)]
        return [(sort_field, direction), (self.tie_break_field, direction)]

    def page(self, base_predicate, sort_field, sort_direction, limit, cursor=None):
        """Fetches one page.

        `has_more` is true whenever the page is full, so a scan ending exactly on
        a page boundary costs one extra, empty request.
        """
        if limit < 1:
            raise ValueError(f"Page limit must be positive, got {limit}")
        direction = _direction(sort_direction)
        predicate = base_predicate
        if cursor is not None:
            predicate = conjoin(base_predicate, self.keyset_predicate(sort_field, direction, cursor))

        items = self.store.find(self.collection, predicate, sort=self.sort_spec(sort_field, direction), limit=limit)

        next_cursor = None
        if items:
            last = items[-1]
            if last.get(sort_field) is None:
                raise ValueError(f"Cannot resume after a row without '{sort_field}'")
            next_cursor = Cursor(last[sort_field], str(last[self.tie_break_field]))
        return Page(items, next_cursor, len(items) == limit)

    def iterate_pages(self, base_predicate, sort_field, sort_direction, limit):
        """Yields pages chained through their cursors until one is not full."""
        cursor = None
        while True:
            page = self.page(base_predicate, sort_field, sort_direction, limit, cursor)
            yield page
            if not page.has_more:
                return
            cursor = page.next_cursor
