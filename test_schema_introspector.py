#!/usr/bin/env python3
"""Unit tests for SchemaIntrospector class"""
import unittest

import pymysql

from schema_introspector import SchemaIntrospector, load_table_engine
from seed_errors import MissingColumnConfig
from seed_references_utils import UniqueConstraint


COLUMN_ROWS = {
    ("shop", "books"): [
        ("id", "int", "NO", "int", "PRI", "auto_increment", None, 10, 0, None),
        ("isbn", "varchar", "NO", "varchar(13)", "UNI", "", 13, None, None, None),
        ("title", "varchar", "NO", "varchar(80)", "", "", 80, None, None, None),
    ],
    ("shop", "reviews"): [
        ("book_id", "int", "NO", "int", "PRI", "", None, 10, 0, None),
        ("user_id", "int", "NO", "int", "PRI", "", None, 10, 0, None),
        ("rating", "tinyint", "NO", "tinyint", "", "", None, 3, 0, None),
    ],
}

PK_ROWS = {
    ("shop", "books"): [("id",)],
    ("shop", "reviews"): [("book_id",), ("user_id",)],
}

STATISTICS_ROWS = {
    ("shop", "books"): [("PRIMARY", "id", 1), ("uq_isbn", "isbn", 1)],
    ("shop", "reviews"): [("PRIMARY", "book_id", 1), ("PRIMARY", "user_id", 2)],
}


class MockConnection:
    """Mock database connection answering information_schema queries"""

    def __init__(self, engine_error=False):
        self.engine_error = engine_error

    def cursor(self):
        return MockCursor(self)


class MockCursor:
    """Mock database cursor for testing"""

    def __init__(self, conn):
        self.conn = conn
        self.result = []

    def execute(self, query, params=None):
        if "information_schema.COLUMNS" in query:
            self.result = COLUMN_ROWS.get(params, [])
        elif "KEY_COLUMN_USAGE" in query:
            self.result = PK_ROWS.get(params, [])
        elif "information_schema.TABLES" in query:
            if self.conn.engine_error:
                raise pymysql.err.OperationalError(1142, "SELECT command denied")
            self.result = [("InnoDB",)]
        elif "STATISTICS" in query:
            self.result = STATISTICS_ROWS.get(params, [])
        else:
            self.result = []

    def fetchall(self):
        return self.result

    def fetchone(self):
        return self.result[0] if self.result else None


class TestSchemaIntrospector(unittest.TestCase):
    """Test cases for SchemaIntrospector functionality"""

    def setUp(self):
        self.config = [
            {"schema": "shop", "table": "books", "populate_columns": ["title"]},
            {"schema": "shop", "table": "reviews",
             "refs": [{"column": "book_id", "referenced_table": "books", "referenced_column": "id"}]},
        ]
        self.introspector = SchemaIntrospector(MockConnection(), self.config)

    def test_initialization(self):
        self.assertEqual(len(self.introspector.metadata), 0)
        self.assertEqual(len(self.introspector.unique_constraints), 0)

    def test_introspect_schemas(self):
        metadata, uniques = self.introspector.introspect_schemas(["shop.books", "shop.reviews"])

        books = metadata["shop.books"]
        self.assertEqual([c.name for c in books.columns], ["id", "isbn", "title"])
        self.assertEqual(books.pk_columns, ["id"])
        self.assertTrue(books.auto_increment)
        self.assertEqual(books.engine, "InnoDB")
        self.assertFalse(metadata["shop.reviews"].auto_increment)
        self.assertEqual(uniques["shop.books"], [UniqueConstraint("uq_isbn", ("isbn",))])
        self.assertEqual(uniques["shop.reviews"], [])

    def test_single_unique_columns(self):
        self.introspector.introspect_schemas(["shop.books", "shop.reviews"])
        self.assertEqual(self.introspector.single_unique_columns("shop.books"), {"id", "isbn"})
        # composite primary keys do not make either column unique on its own
        self.assertEqual(self.introspector.single_unique_columns("shop.reviews"), set())

    def test_missing_table(self):
        with self.assertRaises(MissingColumnConfig) as cm:
            self.introspector.introspect_schemas(["shop.authors"])
        self.assertEqual(cm.exception.table, "shop.authors")

    def test_engine_lookup_failure_is_tolerated(self):
        self.assertIsNone(load_table_engine(MockConnection(engine_error=True), "shop", "books"))

    def test_validate_config_columns(self):
        self.introspector.introspect_schemas(["shop.books", "shop.reviews"])
        self.introspector.validate_config_columns()

        self.config[0]["column_order"] = ["title", "subtitle"]
        with self.assertRaises(MissingColumnConfig) as cm:
            self.introspector.validate_config_columns()
        self.assertEqual((cm.exception.table, cm.exception.column), ("shop.books", "subtitle"))

    def test_validate_unknown_ref_column(self):
        self.config[1]["refs"][0]["column"] = "bookid"
        self.introspector.introspect_schemas(["shop.books", "shop.reviews"])
        with self.assertRaises(MissingColumnConfig) as cm:
            self.introspector.validate_config_columns()
        self.assertEqual(cm.exception.column, "bookid")


if __name__ == '__main__':
    unittest.main()
