#!/usr/bin/env python3
"""Persistence targets: bulk INSERT into MySQL (PyMySQL) or SQLite"""
import sqlite3
from collections import namedtuple

import pymysql

from seed_errors import PersistenceFailure
from seed_references_patterns import unique_list
from seed_references_utils import debug_print

# MySQL prepared statements accept at most 65535 placeholders
MYSQL_MAX_PARAMETERS = 65535
# SQLITE_MAX_VARIABLE_NUMBER on older builds
SQLITE_MAX_PARAMETERS = 999

# generated_keys holds one identity value per inserted row, or None
InsertResult = namedtuple("InsertResult", ["row_count", "generated_keys"])


def batch_columns(rows):
    """Column list for a multi-row INSERT, in first-seen order"""
    return unique_list(c for row in rows for c in row)


def consecutive_keys(first_id, count, step=1):
    if not first_id:
        return None
    return list(range(first_id, first_id + step * count, step))


class PyMySQLTarget(object):
    """
    Inserts batches with one multi-row INSERT per call.

    Table identifiers are "schema.table" strings. The auto-increment values
    of a single multi-row INSERT start at LAST_INSERT_ID() and step by
    @@auto_increment_increment, which is read once per target.
    """

    max_params = MYSQL_MAX_PARAMETERS

    def __init__(self, conn):
        self.conn = conn
        self.id_step = None

    @staticmethod
    def read_id_step(cur):
        cur.execute("SELECT @@auto_increment_increment")
        row = cur.fetchone()
        return int(row[0]) if row and row[0] else 1

    @staticmethod
    def quote_table(table):
        return ".".join("`{0}`".format(part.replace("`", "``")) for part in table.split(".", 1))

    def insert(self, table, rows):
        if not rows:
            return InsertResult(0, [])
        columns = batch_columns(rows)
        cols = ",".join("`{0}`".format(c.replace("`", "``")) for c in columns)
        row_sql = "(" + ",".join(["%s"] * len(columns)) + ")"
        sql = "INSERT INTO {0} ({1}) VALUES {2}".format(
            self.quote_table(table), cols, ",".join([row_sql] * len(rows)))
        params = [row.get(c) for row in rows for c in columns]
        cur = self.conn.cursor()
        try:
            cur.execute(sql, params)
            self.conn.commit()
            first_id = cur.lastrowid
            if first_id and self.id_step is None:
                self.id_step = self.read_id_step(cur)
                debug_print("auto_increment_increment is {0}".format(self.id_step))
        except pymysql.MySQLError as e:
            raise PersistenceFailure(table, len(rows), e) from e
        finally:
            cur.close()
        debug_print("Inserted {0} rows into {1}".format(len(rows), table))
        return InsertResult(len(rows), consecutive_keys(first_id, len(rows), self.id_step or 1))

    def reset(self, tables):
        """Truncate tables with foreign key checks disabled"""
        cur = self.conn.cursor()
        try:
            cur.execute("SET FOREIGN_KEY_CHECKS = 0")
            for table in tables:
                cur.execute("TRUNCATE TABLE {0}".format(self.quote_table(table)))
            cur.execute("SET FOREIGN_KEY_CHECKS = 1")
            self.conn.commit()
        except pymysql.MySQLError as e:
            raise PersistenceFailure(", ".join(tables), 0, e) from e
        finally:
            cur.close()


class SqliteTarget(object):
    """
    Inserts batches into a sqlite3 connection.

    Generated keys are reported for tables whose identity column is the
    rowid (INTEGER PRIMARY KEY).
    """

    max_params = SQLITE_MAX_PARAMETERS

    def __init__(self, conn):
        self.conn = conn

    @staticmethod
    def quote_table(table):
        return ".".join('"{0}"'.format(part.replace('"', '""')) for part in table.split(".", 1))

    def insert(self, table, rows):
        if not rows:
            return InsertResult(0, [])
        columns = batch_columns(rows)
        qtable = self.quote_table(table)
        try:
            if not columns:
                cur = None
                for _ in rows:
                    cur = self.conn.execute("INSERT INTO {0} DEFAULT VALUES".format(qtable))
            else:
                cols = ",".join('"{0}"'.format(c.replace('"', '""')) for c in columns)
                row_sql = "(" + ",".join(["?"] * len(columns)) + ")"
                sql = "INSERT INTO {0} ({1}) VALUES {2}".format(qtable, cols, ",".join([row_sql] * len(rows)))
                cur = self.conn.execute(sql, [row.get(c) for row in rows for c in columns])
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceFailure(table, len(rows), e) from e
        last_id = cur.lastrowid
        keys = consecutive_keys(last_id - len(rows) + 1, len(rows)) if last_id else None
        debug_print("Inserted {0} rows into {1}".format(len(rows), table))
        return InsertResult(len(rows), keys)

    def reset(self, tables):
        try:
            self.conn.execute("PRAGMA foreign_keys = OFF")
            for table in tables:
                self.conn.execute("DELETE FROM {0}".format(self.quote_table(table)))
            self.conn.commit()
            self.conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise PersistenceFailure(", ".join(tables), 0, e) from e
