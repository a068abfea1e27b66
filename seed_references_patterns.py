#!/usr/bin/env python3
"""Pre-compiled regex patterns and small ordering helpers

Patterns are compiled once at import time and shared by the row generator,
the schema introspector and the CLI config loader.
"""
import re


class CompiledPatterns:
    """
    Pre-compiled regex patterns to avoid repeated compilation.
    """

    # Column name detection patterns
    AGE_PATTERN = re.compile(r"age|years? ", re.I)

    # SQL parsing patterns for ENUM/SET extraction
    ENUM_PATTERN = re.compile(r"'((?:[^']|(?:''))*)'")

    # Declared reference target: "schema.table.column" or "table.column"
    REF_TARGET_PATTERN = re.compile(r"^(?P<table>[^\s]+)\.(?P<column>[^.\s]+)$")

    # MySQL EXTRA values marking columns the server fills in
    GENERATED_EXTRA_PATTERN = re.compile(r"\b(VIRTUAL|STORED) GENERATED\b", re.I)
    AUTO_INCREMENT_PATTERN = re.compile(r"\bauto_increment\b", re.I)


def unique_list(items):
    """
    Create a list of unique items preserving order.

    Args:
        items: Iterable of items

    Returns:
        List of unique items in order of first appearance
    """
    return list(dict.fromkeys(items))


def parse_literal_values(column_type):
    """
    Extract quoted literals from an ENUM(...) or SET(...) column type.

    Args:
        column_type: COLUMN_TYPE string, e.g. "enum('a','b')"

    Returns:
        List of literal values with doubled quotes unescaped
    """
    return [v.replace("''", "'") for v in CompiledPatterns.ENUM_PATTERN.findall(column_type or "")]


def split_ref_target(target):
    """
    Split a declared reference target into (table, column).

    The table part keeps any schema prefix, so "shop.books.id" gives
    ("shop.books", "id").
    """
    match = CompiledPatterns.REF_TARGET_PATTERN.match(target or "")
    if not match:
        raise ValueError("Invalid reference target {0!r}, expected 'table.column'".format(target))
    return match.group("table"), match.group("column")
