#!/usr/bin/env python3
"""Scratch store answering "was row R of table T persisted, and what is its column C"

Backed by a SQLite file that is unique per run and removed on close. Only
columns declared referenceable are stored; values are pickled so dates,
Decimals, big integers, None and nested structures come back unchanged.
"""
import os
import pickle
import sqlite3
import tempfile
from collections import OrderedDict

from placeholders import ABSENT, is_placeholder
from seed_references_patterns import split_ref_target
from seed_references_utils import debug_print

ROW_INDEX_COLUMN = "_row_index"


def quote_identifier(name):
    return '"{0}"'.format(name.replace('"', '""'))


def parse_refs_config(refs):
    """
    Group declared reference targets by table.

    Args:
        refs: Iterable of "table.column" strings (table may carry a schema
              prefix), or a dict mapping table -> iterable of columns

    Returns:
        OrderedDict mapping table -> list of columns (declaration order)
    """
    grouped = OrderedDict()
    if not refs:
        return grouped
    if isinstance(refs, dict):
        pairs = [(t, c) for t, cols in refs.items() for c in cols]
    else:
        pairs = [split_ref_target(r) for r in refs]
    for table, column in pairs:
        columns = grouped.setdefault(table, [])
        if column not in columns:
            columns.append(column)
    return grouped


def encode_value(value):
    return sqlite3.Binary(pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL))


def decode_value(blob):
    return pickle.loads(bytes(blob))


class ReferenceStore(object):
    """
    Keyed store (table, row_index) -> snapshot of referenceable columns.

    An entry exists exactly when the row has been flushed to the target.
    Use as a context manager, or call close(), to release the scratch file.
    """

    def __init__(self, refs_config, directory=None):
        """
        Args:
            refs_config: OrderedDict table -> list of referenceable columns
            directory: Where to put the scratch file (default: system temp dir)
        """
        self.refs_config = refs_config
        self.conn = None
        fd, self.path = tempfile.mkstemp(prefix="seed-references-", suffix=".db", dir=directory)
        os.close(fd)
        try:
            self._create_schema()
        except Exception:
            self.close()
            raise
        debug_print("Reference store at {0} for {1} table(s)".format(self.path, len(refs_config)))

    def _create_schema(self):
        # scratch tables and columns are named by position (t0, c0, ...) so
        # that names which differ only by case, or clash with the key
        # column, still get their own slot
        self.conn = sqlite3.connect(self.path)
        self.conn.execute("PRAGMA journal_mode=OFF")
        self.conn.execute("PRAGMA synchronous=OFF")
        self._exists_sql = {}
        self._get_sql = {}
        self._insert_sql = {}
        for t, (table, columns) in enumerate(self.refs_config.items()):
            qtable = quote_identifier("t{0}".format(t))
            slots = [quote_identifier("c{0}".format(i)) for i in range(len(columns))]
            self.conn.execute("CREATE TABLE {0} ({1} INTEGER PRIMARY KEY{2})".format(
                qtable, ROW_INDEX_COLUMN, "".join(", {0} BLOB".format(s) for s in slots)))
            self._exists_sql[table] = "SELECT 1 FROM {0} WHERE {1} = ?".format(qtable, ROW_INDEX_COLUMN)
            self._get_sql[table] = dict(
                (column, "SELECT {0} FROM {1} WHERE {2} = ?".format(slot, qtable, ROW_INDEX_COLUMN))
                for column, slot in zip(columns, slots))
            self._insert_sql[table] = "INSERT INTO {0} ({1}{2}) VALUES (?{3})".format(
                qtable, ROW_INDEX_COLUMN, "".join(", " + s for s in slots), ", ?" * len(slots))
        self.conn.commit()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def is_referenceable(self, table, column):
        return column in self.refs_config.get(table, ())

    def exists(self, table, row_index):
        sql = self._exists_sql.get(table)
        if sql is None:
            return False
        return self.conn.execute(sql, (row_index,)).fetchone() is not None

    def get(self, table, row_index, column):
        """
        Return the stored value, or ABSENT if the row was never recorded.

        Raises KeyError for a column that is not referenceable.
        """
        sql = self._get_sql.get(table, {}).get(column)
        if sql is None:
            raise KeyError("{0}.{1} is not a referenceable column".format(table, column))
        row = self.conn.execute(sql, (row_index,)).fetchone()
        if row is None:
            return ABSENT
        return decode_value(row[0])

    def _snapshot(self, table, values, generated_key=None):
        snapshot = []
        for column in self.refs_config[table]:
            value = values.get(column)
            if is_placeholder(value):
                value = generated_key if value.identity else None
            snapshot.append(encode_value(value))
        return snapshot

    def record(self, table, row_index, values, generated_key=None):
        """Store the referenceable subset of one flushed row"""
        self.record_many(table, [(row_index, values, generated_key)])

    def record_many(self, table, entries):
        """
        Store the referenceable subset of flushed rows in one transaction.

        Args:
            table: Table identifier
            entries: Iterable of (row_index, values, generated_key)
        """
        if table not in self.refs_config:
            return 0
        params = [[row_index] + self._snapshot(table, values, generated_key)
                  for row_index, values, generated_key in entries]
        with self.conn:
            self.conn.executemany(self._insert_sql[table], params)
        return len(params)

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
