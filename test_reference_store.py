#!/usr/bin/env python3
"""Unit tests for ReferenceStore and the reference model"""
import os
import shutil
import sqlite3
import tempfile
import unittest
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

from placeholders import (
    ABSENT, ColumnValueReference, GeneratedAsPlaceholder, PLACEHOLDER, PLAIN, REFERENCE,
    classify, extract_references, identity, resolve_reference, resolve_values
)
from reference_store import ReferenceStore, parse_refs_config, quote_identifier
from seed_errors import MissingDependency


class TestParseRefsConfig(unittest.TestCase):

    def test_groups_columns_by_table(self):
        grouped = parse_refs_config(["shop.books.id", "shop.books.title", "users.email", "shop.books.id"])
        self.assertEqual(list(grouped.items()),
                         [("shop.books", ["id", "title"]), ("users", ["email"])])

    def test_accepts_dict_and_empty(self):
        self.assertEqual(dict(parse_refs_config({"books": ["id"]})), {"books": ["id"]})
        self.assertEqual(len(parse_refs_config(None)), 0)

    def test_rejects_bare_table(self):
        with self.assertRaises(ValueError):
            parse_refs_config(["books"])

    def test_quote_identifier(self):
        self.assertEqual(quote_identifier('we"ird'), '"we""ird"')


class TestReferenceStore(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.store = ReferenceStore(parse_refs_config(["shop.books.id", "shop.books.meta"]), self.tmpdir)

    def tearDown(self):
        self.store.close()
        shutil.rmtree(self.tmpdir)

    def test_values_round_trip_with_types(self):
        samples = [
            7,
            2 ** 80,
            Decimal("12345.6789"),
            date(2024, 2, 29),
            datetime(2023, 5, 17, 8, 30, 1),
            None,
            {"tags": ["a", "b"], "pair": (1, 2), "when": date(2020, 1, 1)},
        ]
        for i, value in enumerate(samples):
            self.store.record("shop.books", i, {"id": value, "meta": value})

        for i, value in enumerate(samples):
            got = self.store.get("shop.books", i, "id")
            self.assertEqual(got, value)
            self.assertIs(type(got), type(value))
            ref = ColumnValueReference("shop.books", i, "meta", identity)
            self.assertEqual(resolve_reference(ref, self.store), value)

    def test_exists_only_after_record(self):
        self.assertFalse(self.store.exists("shop.books", 0))
        self.store.record("shop.books", 0, {"id": 1})
        self.assertTrue(self.store.exists("shop.books", 0))
        self.assertFalse(self.store.exists("shop.books", 1))
        self.assertFalse(self.store.exists("other", 0))

    def test_only_referenceable_columns_are_kept(self):
        self.store.record("shop.books", 0, {"id": 1, "title": "Dune"})
        self.assertTrue(self.store.is_referenceable("shop.books", "id"))
        self.assertFalse(self.store.is_referenceable("shop.books", "title"))
        with self.assertRaises(KeyError):
            self.store.get("shop.books", 0, "title")
        # columns missing from the row are stored as None
        self.assertIsNone(self.store.get("shop.books", 0, "meta"))

    def test_missing_row_is_absent(self):
        self.assertIs(self.store.get("shop.books", 3, "id"), ABSENT)
        with self.assertRaises(MissingDependency) as cm:
            resolve_reference(ColumnValueReference("shop.books", 3, "id"), self.store)
        self.assertEqual(cm.exception.reference.row_index, 3)

    def test_identity_placeholder_takes_generated_key(self):
        self.store.record_many("shop.books", [
            (0, {"id": GeneratedAsPlaceholder(), "meta": GeneratedAsPlaceholder(identity=False)}, 501),
            (1, {"id": GeneratedAsPlaceholder(), "meta": "x"}, 502),
        ])
        self.assertEqual(self.store.get("shop.books", 0, "id"), 501)
        self.assertIsNone(self.store.get("shop.books", 0, "meta"))
        self.assertEqual(self.store.get("shop.books", 1, "id"), 502)

    def test_record_for_unreferenced_table_is_ignored(self):
        self.assertEqual(self.store.record_many("shop.authors", [(0, {"id": 1}, None)]), 0)

    def test_large_number_of_rows(self):
        self.store.record_many("shop.books", [(i, {"id": i * 2}, None) for i in range(20000)])
        self.assertTrue(self.store.exists("shop.books", 19999))
        self.assertEqual(self.store.get("shop.books", 12345, "id"), 24690)


class TestStoreLifecycle(unittest.TestCase):

    def test_each_store_gets_its_own_file_and_close_removes_it(self):
        refs = parse_refs_config(["books.id"])
        with ReferenceStore(refs) as first, ReferenceStore(refs) as second:
            self.assertNotEqual(first.path, second.path)
            self.assertTrue(os.path.exists(first.path))
            path = first.path
        self.assertFalse(os.path.exists(path))

    def test_close_twice(self):
        store = ReferenceStore(parse_refs_config(["books.id"]))
        store.close()
        store.close()
        self.assertFalse(os.path.exists(store.path))

    def test_names_differing_only_by_case(self):
        tmpdir = tempfile.mkdtemp()
        try:
            refs = parse_refs_config(["Books.id", "books.id", "t._row_index"])
            with ReferenceStore(refs, tmpdir) as store:
                store.record("Books", 0, {"id": 7})
                store.record("books", 0, {"id": 8})
                store.record("t", 0, {"_row_index": "k"})
                self.assertEqual(store.get("Books", 0, "id"), 7)
                self.assertEqual(store.get("books", 0, "id"), 8)
                self.assertEqual(store.get("t", 0, "_row_index"), "k")
            self.assertEqual(os.listdir(tmpdir), [])
        finally:
            shutil.rmtree(tmpdir)

    def test_failed_setup_removes_scratch_file(self):
        tmpdir = tempfile.mkdtemp()
        try:
            with patch("reference_store.sqlite3.connect", side_effect=sqlite3.OperationalError("disk I/O error")):
                with self.assertRaises(sqlite3.OperationalError):
                    ReferenceStore(parse_refs_config(["books.id"]), tmpdir)
            self.assertEqual(os.listdir(tmpdir), [])
        finally:
            shutil.rmtree(tmpdir)


class TestReferenceModel(unittest.TestCase):

    def test_classify(self):
        self.assertEqual(classify(5), PLAIN)
        self.assertEqual(classify(None), PLAIN)
        self.assertEqual(classify({"_tag": "x"}), PLAIN)
        self.assertEqual(classify(ColumnValueReference("t", 0, "c")), REFERENCE)
        self.assertEqual(classify(GeneratedAsPlaceholder()), PLACEHOLDER)

    def test_extract_references_in_column_order(self):
        r1 = ColumnValueReference("a", 0, "id")
        r2 = ColumnValueReference("b", 3, "id")
        values = {"x": 1, "a_id": r1, "gen": GeneratedAsPlaceholder(), "b_id": r2}
        self.assertEqual(extract_references(values), [r1, r2])
        self.assertEqual(extract_references({"x": 1}), [])

    def test_resolve_values_without_store(self):
        values = {"id": GeneratedAsPlaceholder(), "name": "n"}
        self.assertEqual(resolve_values(values, None), {"name": "n"})
        with self.assertRaises(MissingDependency):
            resolve_values({"r": ColumnValueReference("a", 0, "id")}, None)

    def test_absent_is_falsy(self):
        self.assertFalse(ABSENT)
        self.assertEqual(repr(ABSENT), "ABSENT")
        self.assertEqual(repr(ColumnValueReference("a", 2, "id")), "ColumnValueReference(a[2].id)")


if __name__ == '__main__':
    unittest.main()
