#!/usr/bin/env python3
"""Schema introspection module for loading database metadata"""
import pymysql

from seed_errors import MissingColumnConfig
from seed_references_utils import (
    debug_print, is_auto_increment, table_key, ColumnMeta, TableMeta, UniqueConstraint
)


def load_table_columns(conn, schema, table):
    """Load column metadata from information_schema"""
    cur = conn.cursor()
    cur.execute(
        "SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_TYPE, "
        "COLUMN_KEY, EXTRA, CHARACTER_MAXIMUM_LENGTH, NUMERIC_PRECISION, "
        "NUMERIC_SCALE, COLUMN_DEFAULT FROM information_schema.COLUMNS "
        "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s ORDER BY ORDINAL_POSITION",
        (schema, table)
    )
    return [ColumnMeta(*r) for r in cur.fetchall()]


def load_table_pk(conn, schema, table):
    """Load primary key column names"""
    cur = conn.cursor()
    cur.execute(
        "SELECT COLUMN_NAME FROM information_schema.KEY_COLUMN_USAGE "
        "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s AND CONSTRAINT_NAME='PRIMARY' "
        "ORDER BY ORDINAL_POSITION",
        (schema, table)
    )
    return [r[0] for r in cur.fetchall()]


def load_table_engine(conn, schema, table):
    """Load table engine, or None when information_schema.TABLES is unreadable"""
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT ENGINE FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s",
            (schema, table)
        )
        r = cur.fetchone()
        return r[0] if r else None
    except pymysql.MySQLError as e:
        debug_print("Could not read engine of {0}.{1}: {2}".format(schema, table, e))
        return None


def load_unique_constraints(conn, schema, table):
    """Load UNIQUE constraints from information_schema"""
    cur = conn.cursor()
    cur.execute(
        "SELECT INDEX_NAME, COLUMN_NAME, SEQ_IN_INDEX FROM information_schema.STATISTICS "
        "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s AND NON_UNIQUE=0 "
        "ORDER BY INDEX_NAME, SEQ_IN_INDEX",
        (schema, table)
    )
    constraints = {}
    for idx_name, col_name, seq in cur.fetchall():
        if idx_name != "PRIMARY":
            constraints.setdefault(idx_name, []).append(col_name)
    return [UniqueConstraint(n, tuple(cols)) for n, cols in constraints.items()]


class SchemaIntrospector(object):
    """
    Responsible for loading table metadata for every configured table.

    Handles:
    - Loading columns, primary keys and UNIQUE constraints
    - Detecting auto-increment tables
    - Checking that configured columns exist
    """

    def __init__(self, conn, config):
        """
        Initialize schema introspector.

        Args:
            conn: MySQL database connection
            config: List of table configuration dicts
        """
        self.conn = conn
        self.config = config

        # Table metadata indexed by "schema.table"
        self.metadata = {}

        # Unique constraints indexed by "schema.table"
        self.unique_constraints = {}

    def introspect_schemas(self, config_table_names):
        """
        Load metadata for all tables in config.

        Args:
            config_table_names: Iterable of "schema.table" strings to introspect

        Returns:
            Tuple of (metadata, unique_constraints) dicts

        Raises:
            MissingColumnConfig: a configured table does not exist
        """
        for key in config_table_names:
            schema, table = key.split(".", 1)

            cols = load_table_columns(self.conn, schema, table)
            if not cols:
                raise MissingColumnConfig(key)
            pkcols = load_table_pk(self.conn, schema, table)
            engine = load_table_engine(self.conn, schema, table)

            self.metadata[key] = TableMeta(
                schema, table, cols, pkcols,
                any(is_auto_increment(c) for c in cols), engine
            )
            self.unique_constraints[key] = load_unique_constraints(self.conn, schema, table)

            debug_print("{0}: {1} column(s), PK {2}, single-column UNIQUE {3}".format(
                key, len(cols), pkcols, sorted(self.single_unique_columns(key))))

        return self.metadata, self.unique_constraints

    def single_unique_columns(self, key):
        """Columns covered by a single-column UNIQUE constraint or a 1-column PK"""
        cols = set(uc.columns[0] for uc in self.unique_constraints.get(key, []) if len(uc.columns) == 1)
        tmeta = self.metadata.get(key)
        if tmeta and len(tmeta.pk_columns) == 1:
            cols.add(tmeta.pk_columns[0])
        return cols

    def validate_config_columns(self):
        """
        Check that every column named in the config exists.

        Raises:
            MissingColumnConfig: for the first unknown column
        """
        for table_cfg in self.config:
            key = table_key(table_cfg["schema"], table_cfg["table"])
            tmeta = self.metadata.get(key)
            if tmeta is None:
                raise MissingColumnConfig(key)
            known = set(c.name for c in tmeta.columns)
            named = list(table_cfg.get("column_order", []))
            for item in table_cfg.get("populate_columns", []):
                named.append(item if isinstance(item, str) else item.get("column"))
            named.extend(r.get("column") for r in table_cfg.get("refs", []))
            for column in named:
                if column and column not in known:
                    raise MissingColumnConfig(key, column)
