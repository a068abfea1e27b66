#!/usr/bin/env python3
"""Deferred-reference resolution and batched insertion engine

Consumes a stream of RowChunks, inserts rows whose references are already
persisted, parks the others until their targets land, and drains the parked
rows to a fixpoint after every flush. Batches never exceed
floor(max_params / column_count) rows.
"""
from collections import OrderedDict, namedtuple
from concurrent.futures import ThreadPoolExecutor

from placeholders import extract_references, resolve_values
from reference_store import ReferenceStore, parse_refs_config
from seed_errors import (
    CircularOrUnsatisfiableReference, MissingColumnConfig, StuckChunk, UndeclaredReference
)
from seed_references_utils import debug_print

ACCEPTING = "accepting"
FLUSHING = "flushing"
DRAINING = "draining"

DeferredChunk = namedtuple("DeferredChunk", ["chunk", "row_index", "pending_refs"])


def batch_ceiling_for(max_params, column_count):
    return max(1, max_params // max(1, column_count))


class TableState(object):
    """Ready batch, deferred queue and counters for one table"""

    def __init__(self, table, column_count, batch_ceiling, columns=()):
        self.table = table
        self.column_count = column_count
        # every chunk of the table carries exactly these columns
        self.columns = frozenset(columns)
        self.batch_ceiling = batch_ceiling
        # (row_index, values) in stream order
        self.ready = []
        self.deferred = []
        self.flushed_count = 0
        self.flush_count = 0
        self.phase = ACCEPTING

    def is_full(self):
        return len(self.ready) >= self.batch_ceiling

    def __repr__(self):
        return "TableState({0}, ready={1}, deferred={2}, flushed={3})".format(
            self.table, len(self.ready), len(self.deferred), self.flushed_count)


class Seeder(object):
    """
    Runs a row stream into a persistence target.

    Responsible for:
    - Deciding per chunk whether it can be flushed now or must wait
    - Flushing size-bounded batches and recording referenceable columns
    - Draining deferred chunks to a fixpoint after every flush
    - Reporting every permanently blocked chunk at stream end
    """

    def __init__(self, target, rows, refs=None, max_params=None, metadata=None, store_dir=None):
        """
        Args:
            target: Object with insert(table, rows) -> InsertResult
            rows: Iterable of RowChunk (consumed once)
            refs: Declared reference targets ("table.column" strings or a
                  dict table -> columns); defaults to rows.refs when present
            max_params: Parameter ceiling per INSERT (default: target.max_params)
            metadata: Optional dict table -> TableMeta used to validate chunks
            store_dir: Directory for the reference store scratch file
        """
        self.target = target
        self.rows = rows
        if refs is None:
            refs = getattr(rows, "refs", None)
        self.refs_config = parse_refs_config(refs)
        if max_params is None:
            max_params = target.max_params
        if max_params < 1:
            raise ValueError("max_params must be at least 1, got {0}".format(max_params))
        self.max_params = max_params
        self.metadata = metadata
        self.store_dir = store_dir
        self.table_states = OrderedDict()

    def run(self):
        """Consume the whole stream; returns the per-table states"""
        store = None
        try:
            if self.refs_config:
                store = ReferenceStore(self.refs_config, self.store_dir)
            for chunk in self.rows:
                state = self._table_state(chunk)
                self._accept(state, chunk, store)
                if state.is_full():
                    self._flush_full(state, store)
                    self._settle(store)
            self._finalize(store)
        finally:
            if store is not None:
                store.close()
        return self.table_states

    def submit(self, executor=None):
        """Run on a worker thread and return the Future"""
        if executor is not None:
            return executor.submit(self.run)
        pool = ThreadPoolExecutor(max_workers=1)
        future = pool.submit(self.run)
        pool.shutdown(wait=False)
        return future

    def _table_state(self, chunk):
        state = self.table_states.get(chunk.table)
        if state is not None:
            return state
        if self.metadata is not None:
            tmeta = self.metadata.get(chunk.table)
            if tmeta is None:
                raise MissingColumnConfig(chunk.table)
            known = set(c.name for c in tmeta.columns)
            for column in chunk.values:
                if column not in known:
                    raise MissingColumnConfig(chunk.table, column)
        column_count = len(chunk.values)
        state = TableState(chunk.table, column_count, batch_ceiling_for(self.max_params, column_count),
                           chunk.values)
        self.table_states[chunk.table] = state
        debug_print("{0}: {1} column(s), batch ceiling {2}".format(
            chunk.table, column_count, state.batch_ceiling))
        return state

    def _pending(self, refs, store):
        return [r for r in refs if not store.exists(r.table, r.row_index)]

    def _check_columns(self, state, chunk):
        """Chunks must carry exactly the columns of the table's first chunk"""
        if len(chunk.values) == state.column_count and state.columns.issuperset(chunk.values):
            return
        for column in chunk.values:
            if column not in state.columns:
                raise MissingColumnConfig(state.table, column)
        missing = sorted(state.columns.difference(chunk.values))
        raise MissingColumnConfig(state.table, missing[0])

    def _accept(self, state, chunk, store):
        self._check_columns(state, chunk)
        refs = extract_references(chunk.values)
        for ref in refs:
            if store is None or not store.is_referenceable(ref.table, ref.column):
                raise UndeclaredReference(ref)
        pending = self._pending(refs, store) if refs else []
        if pending:
            state.deferred.append(DeferredChunk(chunk.values, chunk.row_index, pending))
        else:
            state.ready.append((chunk.row_index, chunk.values))

    def _flush(self, state, store, limit):
        """Insert up to limit ready rows as one batch and record them"""
        batch, state.ready = state.ready[:limit], state.ready[limit:]
        if not batch:
            return
        state.phase = FLUSHING
        payload = [resolve_values(values, store) for _, values in batch]
        result = self.target.insert(state.table, payload)
        if store is not None:
            keys = (result.generated_keys if result is not None else None) or [None] * len(batch)
            store.record_many(state.table, [
                (row_index, values, key) for (row_index, values), key in zip(batch, keys)
            ])
        state.flushed_count += len(batch)
        state.flush_count += 1
        state.phase = ACCEPTING
        debug_print("{0}: flushed {1} row(s), {2} total".format(
            state.table, len(batch), state.flushed_count))

    def _flush_full(self, state, store):
        while state.is_full():
            self._flush(state, store, state.batch_ceiling)

    def _flush_all(self, state, store):
        while state.ready:
            self._flush(state, store, state.batch_ceiling)

    def drain(self, store):
        """
        Move deferred chunks whose references have all landed into ready.

        Passes over every table repeat until a full pass moves nothing.
        Returns True if anything moved.
        """
        if store is None:
            return False
        any_progress = False
        progress = True
        while progress:
            progress = False
            for state in self.table_states.values():
                if not state.deferred:
                    continue
                state.phase = DRAINING
                still_deferred = []
                for entry in state.deferred:
                    pending = self._pending(entry.pending_refs, store)
                    if pending:
                        still_deferred.append(entry._replace(pending_refs=pending))
                    else:
                        state.ready.append((entry.row_index, entry.chunk))
                        progress = True
                state.deferred = still_deferred
                state.phase = ACCEPTING
            any_progress = any_progress or progress
        return any_progress

    def _settle(self, store):
        """flush -> drain -> flush cascade until no table is full"""
        while True:
            self.drain(store)
            full = [s for s in self.table_states.values() if s.is_full()]
            if not full:
                return
            for state in full:
                self._flush_full(state, store)

    def _finalize(self, store):
        for state in self.table_states.values():
            self._flush_all(state, store)
        passes = 0
        while self.drain(store):
            passes += 1
            for state in self.table_states.values():
                self._flush_all(state, store)
        debug_print("Finalizer: {0} drain pass(es) made progress".format(passes))
        stuck = []
        for state in self.table_states.values():
            for entry in state.deferred:
                stuck.append(StuckChunk(state.table, entry.row_index,
                                        [r.target for r in entry.pending_refs]))
        if stuck:
            raise CircularOrUnsatisfiableReference(stuck)


def seed(target, rows, refs=None, max_params=None, metadata=None, store_dir=None):
    """Run rows into target and return the per-table states"""
    return Seeder(target, rows, refs, max_params, metadata, store_dir).run()
