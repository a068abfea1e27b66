#!/usr/bin/env python3
"""Utility functions and data structures for reference-aware seeding"""
import re, sys
from collections import OrderedDict, namedtuple
from datetime import datetime, timedelta
from decimal import Decimal

from seed_references_patterns import CompiledPatterns, parse_literal_values

GLOBALS = {"debug": False}

INTEGER_TYPES = ("int", "integer", "bigint", "smallint", "tinyint", "mediumint")
DECIMAL_TYPES = ("decimal", "numeric")
FLOAT_TYPES = ("float", "double", "real")
DATE_TYPES = ("date", "datetime", "timestamp")
STRING_TYPES = ("varchar", "char", "text", "tinytext", "mediumtext", "longtext")
NUMERIC_TYPES = INTEGER_TYPES + DECIMAL_TYPES + FLOAT_TYPES

DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")

ALPHANUMERIC = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
FIRST_NAMES = ("Ada", "Bruno", "Chloe", "Dmitri", "Elena", "Farid", "Greta", "Hugo", "Ines", "Jonas")
LAST_NAMES = ("Novak", "Okafor", "Petrov", "Quinn", "Rossi", "Sato", "Tanaka", "Varga")
EMAIL_DOMAINS = ("example.com", "example.org", "example.net")


ColumnMeta = namedtuple("ColumnMeta", ["name","data_type","is_nullable","column_type","column_key","extra","char_max_length","numeric_precision","numeric_scale","column_default"])
TableMeta = namedtuple("TableMeta", ["schema","name","columns","pk_columns","auto_increment","engine"])
UniqueConstraint = namedtuple("UniqueConstraint", ["constraint_name","columns"])


def debug_print(*args, **kwargs):
    if GLOBALS["debug"]:
        print("[DEBUG]", *args, **kwargs)

def table_key(schema, table):
    return "{0}.{1}".format(schema, table) if schema else table

def is_auto_increment(col):
    return bool(CompiledPatterns.AUTO_INCREMENT_PATTERN.search(col.extra or ""))

def is_generated_column(col):
    return bool(CompiledPatterns.GENERATED_EXTRA_PATTERN.search(col.extra or ""))

def column_family(col):
    """Lower-cased data type of a ColumnMeta"""
    return (col.data_type or "").lower()


def parse_date(value):
    """
    Parse a config date: YYYY-MM-DD, YYYY-MM-DD HH:MM:SS or YYYY-MM-DDTHH:MM:SS.

    Returns a datetime, or None when nothing matches.
    """
    if not value:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            pass
    return None


def parse_populate_columns_config(table_cfg):
    """
    Normalise a table entry's populate_columns list.

    Entries are either a bare column name or an object carrying "column"
    plus "values" or "min"/"max". Objects without "column" are skipped with
    a warning.

    Returns: OrderedDict column name -> config dict
    """
    populate_cols = OrderedDict()
    for entry in table_cfg.get("populate_columns", []):
        if isinstance(entry, str):
            entry = {"column": entry}
        name = entry.get("column") if isinstance(entry, dict) else None
        if not name:
            print("WARNING: Ignoring populate_columns entry without a column name: {0}".format(entry),
                  file=sys.stderr)
            continue
        populate_cols[name] = entry
    return populate_cols


def populate_config_problem(col_meta, config):
    """
    Describe why a populate_columns entry cannot work for its column.

    Returns: error message, or None when the entry is usable
    """
    family = column_family(col_meta)
    if "values" in config:
        if not config["values"]:
            return "Column {0} has an empty 'values' list".format(col_meta.name)
        return None
    if "min" not in config or "max" not in config:
        return None
    low, high = config["min"], config["max"]
    if family in NUMERIC_TYPES and low >= high:
        return "Column {0} has min >= max ({1} >= {2})".format(col_meta.name, low, high)
    if family in DATE_TYPES:
        for label, raw in (("min", low), ("max", high)):
            if parse_date(str(raw)) is None:
                return "Column {0} has invalid {1} date format: {2}".format(col_meta.name, label, raw)
        if parse_date(str(low)) >= parse_date(str(high)):
            return "Column {0} has min date >= max date ({1} >= {2})".format(col_meta.name, low, high)
    return None


def validate_populate_column_config(col_meta, config):
    """
    Check a populate_columns entry against its column's type.

    Suspicious but usable settings only print a WARNING.

    Returns: False when the entry can not be used
    """
    if not config:
        return True
    if "values" in config and "min" in config:
        print("WARNING: Column {0}: 'values' overrides 'min'/'max'".format(col_meta.name), file=sys.stderr)
    elif column_family(col_meta) in INTEGER_TYPES and "min" in config and "max" in config:
        if not all(isinstance(config[k], int) for k in ("min", "max")):
            print("WARNING: Column {0}: integer column with non-integer min/max".format(col_meta.name),
                  file=sys.stderr)
    problem = populate_config_problem(col_meta, config)
    if problem:
        print("ERROR: {0}".format(problem), file=sys.stderr)
        return False
    return True


def rand_decimal(rng, precision, scale):
    integer_digits = max(0, precision - scale)
    unscaled = rng.randint(0, 10 ** (integer_digits + scale) - 1) if integer_digits + scale else 0
    return Decimal(unscaled).scaleb(-scale)

def rand_string(rng, length=12):
    return "".join(rng.choice(ALPHANUMERIC) for _ in range(length))

def rand_name(rng):
    return "{0} {1}".format(rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES))

def rand_email(rng, name=None):
    local = re.sub(r"[^a-z0-9]+", ".", name.lower()).strip(".")[:16] if name else rand_string(rng, 8).lower()
    return "{0}@{1}".format(local, rng.choice(EMAIL_DOMAINS))

def rand_phone(rng):
    return "{0}-{1}-{2:04d}".format(rng.randint(200, 999), rng.randint(200, 999), rng.randint(0, 9999))

def rand_datetime(rng, start_year=2010, end_year=2025):
    start = datetime(start_year, 1, 1)
    span = int((datetime(end_year + 1, 1, 1) - start).total_seconds()) - 1
    return start + timedelta(seconds=rng.randint(0, span))

def rand_between_dates(rng, low, high, family):
    """Random date (or datetime) between two parsed config bounds"""
    day = low + timedelta(days=rng.randint(0, max(0, (high - low).days)))
    if family == "date":
        return day.date()
    return day + timedelta(seconds=rng.randint(0, 86399))


def generate_value_with_config(rng, col, config=None):
    """
    Generate a random value for a column, optionally using extended configuration.

    Values keep their Python types (int, Decimal, float, date, datetime, str)
    so they survive the reference store unchanged.

    Args:
        rng: Random number generator
        col: ColumnMeta object
        config: Optional dict with 'min', 'max', or 'values' keys

    Returns: Generated value appropriate for the column type
    """
    config = config or {}
    family = column_family(col)

    if "values" in config:
        debug_print("Column {0}: choosing from {1}".format(col.name, config["values"]))
        return rng.choice(config["values"])

    low, high = config.get("min"), config.get("max")
    ranged = low is not None and high is not None

    if family in INTEGER_TYPES:
        if ranged:
            return rng.randint(int(low), int(high))
        if CompiledPatterns.AGE_PATTERN.search(col.name):
            return rng.randint(18, 80)
        if family == "tinyint":
            # tinyint(1) is MySQL's boolean
            return rng.randint(0, 1) if "(1)" in (col.column_type or "") else rng.randint(0, 127)
        return rng.randint(0, 10000)

    if family in DECIMAL_TYPES:
        scale = int(col.numeric_scale or 0)
        if ranged:
            return Decimal(str(rng.uniform(float(low), float(high)))).quantize(Decimal(1).scaleb(-scale))
        return rand_decimal(rng, int(col.numeric_precision or 10), scale)

    if family in FLOAT_TYPES:
        return round(rng.uniform(float(low), float(high)) if ranged else rng.uniform(0, 10000), 2)

    if family in DATE_TYPES:
        bounds = (parse_date(str(low)), parse_date(str(high))) if ranged else (None, None)
        if bounds[0] and bounds[1]:
            return rand_between_dates(rng, bounds[0], bounds[1], family)
        value = rand_datetime(rng)
        return value.date() if family == "date" else value

    if family in STRING_TYPES:
        maxlen = int(col.char_max_length) if col.char_max_length else 24
        lname = col.name.lower()
        if "email" in lname:
            value = rand_email(rng)
        elif "name" in lname:
            value = rand_name(rng)
        elif "phone" in lname:
            value = rand_phone(rng)
        else:
            value = rand_string(rng, min(maxlen, 24))
        return value[:maxlen]

    if family in ("enum", "set"):
        literals = parse_literal_values(col.column_type)
        if family == "enum":
            return rng.choice(literals) if literals else None
        picked = set(rng.sample(literals, rng.randint(0, len(literals))))
        # MySQL orders SET members by definition order
        return ",".join(v for v in literals if v in picked)

    if col.is_nullable == "NO":
        return rand_string(rng, 8)
    return None
