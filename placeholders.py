#!/usr/bin/env python3
"""Value tags carried by generated rows

A generated column value is one of:
- a plain value, inserted as-is
- a ColumnValueReference to a column of another (possibly not yet persisted) row
- a GeneratedAsPlaceholder, meaning the database fills the column in itself
"""
from collections import namedtuple

from seed_errors import MissingDependency

# One generated row for one table; row_index is the 0-based generation index
RowChunk = namedtuple("RowChunk", ["table", "row_index", "values"])

PLAIN = "plain"
REFERENCE = "reference"
PLACEHOLDER = "placeholder"


class _Absent(object):
    """Marker for a row the reference store has never seen"""

    def __repr__(self):
        return "ABSENT"

    def __bool__(self):
        return False


ABSENT = _Absent()


def identity(value):
    return value


class ColumnValueReference(object):
    """
    Forward pointer to a column value of a specific generated row.

    row_index is the generation index assigned by the row stream, not a
    database position. transform is applied to the stored value when the
    reference is resolved.
    """

    def __init__(self, table, row_index, column, transform=None):
        self.table = table
        self.row_index = int(row_index)
        self.column = column
        self.transform = transform or identity

    @property
    def target(self):
        return (self.table, self.row_index, self.column)

    def __repr__(self):
        return "ColumnValueReference({0}[{1}].{2})".format(self.table, self.row_index, self.column)


class GeneratedAsPlaceholder(object):
    """
    Column supplied by the database (auto-increment or generated column).

    identity=True marks the auto-increment column whose value the target
    reports back after insert.
    """

    def __init__(self, identity=True):
        self.identity = identity

    def __repr__(self):
        return "GeneratedAsPlaceholder(identity={0})".format(self.identity)


def is_reference(value):
    return isinstance(value, ColumnValueReference)


def is_placeholder(value):
    return isinstance(value, GeneratedAsPlaceholder)


def classify(value):
    if isinstance(value, ColumnValueReference):
        return REFERENCE
    if isinstance(value, GeneratedAsPlaceholder):
        return PLACEHOLDER
    return PLAIN


def extract_references(values):
    """Return the references in a chunk's values, in column order"""
    return [v for v in values.values() if isinstance(v, ColumnValueReference)]


def resolve_reference(ref, store):
    """
    Look up a reference in the store and apply its transform.

    Raises MissingDependency when the target row was never recorded.
    """
    raw = ABSENT if store is None else store.get(ref.table, ref.row_index, ref.column)
    if raw is ABSENT:
        raise MissingDependency(ref)
    return ref.transform(raw)


def resolve_values(values, store):
    """
    Build the insert payload for one chunk.

    References are substituted with their resolved values and placeholder
    columns are dropped.
    """
    resolved = {}
    for column, value in values.items():
        kind = classify(value)
        if kind == PLACEHOLDER:
            continue
        if kind == REFERENCE:
            resolved[column] = resolve_reference(value, store)
        else:
            resolved[column] = value
    return resolved
