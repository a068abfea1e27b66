#!/usr/bin/env python3
"""Row generation: a chain of column handlers feeding a lazy RowChunk stream"""
import random
from collections import OrderedDict

from placeholders import ColumnValueReference, GeneratedAsPlaceholder, RowChunk, is_reference
from seed_errors import (
    GeneratorChainExhausted, MissingColumnConfig, UndeclaredReference, UniqueValueExhausted
)
from seed_references_patterns import split_ref_target, unique_list
from seed_references_utils import (
    debug_print, generate_value_with_config, is_auto_increment, is_generated_column, INTEGER_TYPES
)

DEFAULT_ROW_COUNT = 50
DEFAULT_MAX_TRIES = 5000

ROW_STRATEGIES = ("random", "index", "cycle", "previous")


class DuplicateChecker(object):
    """Tracks values already handed out for a UNIQUE column"""

    def __init__(self):
        self.seen = set()

    def add(self, value):
        if value in self.seen:
            return False
        self.seen.add(value)
        return True

    def __contains__(self, value):
        return value in self.seen

    def __len__(self):
        return len(self.seen)

    def clear(self):
        self.seen.clear()


class GeneratorContext(object):
    """Everything a column handler may look at while producing one value"""

    def __init__(self, table, column, index, count, rng, row, counts,
                 duplicate_checker=None, ref=None):
        self.table = table
        self.column = column
        self.index = index
        self.count = count
        self.rng = rng
        # values already generated for this row, in column order
        self.row = row
        self.counts = counts
        self.duplicate_checker = duplicate_checker
        self.ref = ref
        self.call_next = None

    @property
    def column_name(self):
        return self.column.name


class GeneratorChain(object):
    """
    Ordered column handlers, highest priority first.

    Each handler is called as handler(ctx, call_next); call_next() runs the
    rest of the chain. extend() returns a new chain with the handler on top.
    """

    def __init__(self, handlers):
        self.handlers = tuple(handlers)

    def extend(self, handler):
        return GeneratorChain((handler,) + self.handlers)

    def generate(self, ctx):
        return self._invoke(0, ctx)

    def _invoke(self, position, ctx):
        if position >= len(self.handlers):
            raise GeneratorChainExhausted(ctx.table, ctx.column_name)
        handler = self.handlers[position]
        return handler(ctx, lambda: self._invoke(position + 1, ctx))


def type_default_handler(ctx, call_next):
    """Fallback: a value from the column's data type"""
    col = ctx.column
    if col.column_key == "PRI" and (col.data_type or "").lower() in INTEGER_TYPES:
        return ctx.index + 1
    return generate_value_with_config(ctx.rng, col)


def make_config_aware_handler(populate_columns_config):
    """
    Handler applying populate_columns "values" / "min"+"max" settings.

    Args:
        populate_columns_config: Dict "schema.table" -> column -> config dict
    """
    def handler(ctx, call_next):
        cfg = populate_columns_config.get(ctx.table, {}).get(ctx.column_name)
        if cfg and ("values" in cfg or "min" in cfg):
            return generate_value_with_config(ctx.rng, ctx.column, cfg)
        return call_next()
    return handler


def make_unique_handler(max_tries=DEFAULT_MAX_TRIES):
    """Handler retrying the rest of the chain until a UNIQUE column gets a fresh value"""
    def handler(ctx, call_next):
        if ctx.duplicate_checker is None:
            return call_next()
        tries = 0
        while True:
            value = call_next()
            tries += 1
            if value is None:
                return value
            # references resolve later; the same target row means the same value
            key = value.target if is_reference(value) else value
            if ctx.duplicate_checker.add(key):
                return value
            if tries >= max_tries:
                raise UniqueValueExhausted(ctx.table, ctx.column_name, tries, ctx.index, ctx.count)
    return handler


def make_refined_handler(columns):
    """
    Handler for user overrides.

    Args:
        columns: Dict table -> column -> callable(ctx); the callable may
                 call ctx.call_next() to get the value the chain would give
    """
    def handler(ctx, call_next):
        override = columns.get(ctx.table, {}).get(ctx.column_name)
        if override is None:
            return call_next()
        ctx.call_next = call_next
        return override(ctx)
    return handler


def default_chain(populate_columns_config=None, max_tries=DEFAULT_MAX_TRIES):
    return GeneratorChain([
        make_unique_handler(max_tries),
        make_config_aware_handler(populate_columns_config or {}),
        type_default_handler,
    ])


def make_reference_column(referenced_table, referenced_column, row="random", fmt=None):
    """
    Build a column override that points at a row of another table.

    Args:
        referenced_table: Target table identifier
        referenced_column: Target column (must be declared in refs)
        row: "random", "index", "cycle", "previous" or a fixed row index
        fmt: Optional str.format template applied to the resolved value

    Returns:
        callable(ctx) producing a ColumnValueReference (or None for
        "previous" on the first row)
    """
    if not isinstance(row, int) and row not in ROW_STRATEGIES:
        raise ValueError("Unknown row strategy {0!r} for {1}.{2}".format(
            row, referenced_table, referenced_column))
    transform = (lambda value: fmt.format(value)) if fmt else None

    def generate(ctx):
        parent_count = ctx.counts.get(referenced_table, 0)
        if isinstance(row, int):
            target_row = row
        elif row == "index":
            target_row = ctx.index
        elif row == "previous":
            if ctx.index == 0:
                return None
            target_row = ctx.index - 1
        elif parent_count <= 0:
            # nothing generated for the parent; keep the reference so it is reported
            target_row = ctx.index
        elif row == "cycle":
            target_row = ctx.index % parent_count
        else:
            target_row = ctx.rng.randrange(parent_count)
        return ctx.ref(referenced_table, target_row, referenced_column, transform)
    return generate


class RowGenerator(object):
    """
    Lazily generates rows table by table.

    Iterating yields RowChunk(table, row_index, values) where each value is a
    plain value, a ColumnValueReference or a GeneratedAsPlaceholder. The
    iteration restarts from the seed each time.
    """

    def __init__(self, metadata, table_order, counts=None, seed=42, chain=None,
                 unique_columns=None, default_count=DEFAULT_ROW_COUNT):
        """
        Args:
            metadata: Dict "schema.table" -> TableMeta
            table_order: Tables in generation order
            counts: Dict table -> number of rows
            seed: Random seed
            chain: GeneratorChain (default: default_chain())
            unique_columns: Dict table -> columns needing a DuplicateChecker
            default_count: Rows for tables missing from counts
        """
        self.metadata = metadata
        self.table_order = unique_list(table_order)
        counts = counts or {}
        self.counts = dict((t, int(counts.get(t, default_count))) for t in self.table_order)
        self.seed = seed
        self.chain = chain or default_chain()
        self.unique_columns = unique_columns or {}
        self.refs = []
        self._declared = set()
        self.column_orders = {}

    def refine(self, columns=None, refs=None, column_order=None):
        """
        Layer overrides on top of the current chain.

        Args:
            columns: Dict table -> column -> callable(ctx)
            refs: Iterable of "table.column" targets that may be referenced
            column_order: Dict table -> columns to generate first

        Returns:
            self
        """
        for target in refs or []:
            self.declare_ref(target)
        if column_order:
            self.column_orders.update(column_order)
        if columns:
            self.chain = self.chain.extend(make_refined_handler(columns))
        return self

    def declare_ref(self, target):
        key = split_ref_target(target)
        if key not in self._declared:
            self._declared.add(key)
            self.refs.append(target)

    def ref(self, table, row_index, column, transform=None):
        reference = ColumnValueReference(table, row_index, column, transform)
        if (table, column) not in self._declared:
            raise UndeclaredReference(reference)
        return reference

    def column_order(self, table):
        """
        Explicitly ordered columns first, then the rest in schema order.

        Raises:
            MissingColumnConfig: an ordered column is not in the table
        """
        tmeta = self.metadata.get(table)
        if tmeta is None:
            raise MissingColumnConfig(table)
        known = [c.name for c in tmeta.columns]
        for name in self.column_orders.get(table, []):
            if name not in known:
                raise MissingColumnConfig(table, name)
        return unique_list(list(self.column_orders.get(table, [])) + known)

    def __iter__(self):
        rng = random.Random(self.seed)
        for table in self.table_order:
            order = self.column_order(table)
            columns = dict((c.name, c) for c in self.metadata[table].columns)
            count = self.counts[table]
            checkers = dict((name, DuplicateChecker()) for name in self.unique_columns.get(table, ()))
            debug_print("Generating {0} rows for {1}".format(count, table))

            for index in range(count):
                row = OrderedDict()
                for name in order:
                    col = columns[name]
                    if is_auto_increment(col):
                        row[name] = GeneratedAsPlaceholder(identity=True)
                        continue
                    if is_generated_column(col):
                        row[name] = GeneratedAsPlaceholder(identity=False)
                        continue
                    ctx = GeneratorContext(table, col, index, count, rng, row, self.counts,
                                           checkers.get(name), self.ref)
                    row[name] = self.chain.generate(ctx)
                yield RowChunk(table, index, row)
