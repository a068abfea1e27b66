#!/usr/bin/env python3
"""Error taxonomy for the seeding engine and its collaborators"""
from collections import namedtuple

# One permanently blocked chunk: targets is a list of (table, row_index, column)
StuckChunk = namedtuple("StuckChunk", ["table", "row_index", "targets"])


class SeedError(Exception):
    """Base class for every error raised while seeding"""


class MissingColumnConfig(SeedError):
    """A generated column (or table) has no matching schema entry, or a
    later chunk of a table carries other columns than its first one"""

    def __init__(self, table, column=None):
        self.table = table
        self.column = column
        if column is None:
            msg = "No table config found for {0}".format(table)
        else:
            msg = "No column config found for {0}.{1}".format(table, column)
        super(MissingColumnConfig, self).__init__(msg)


class MissingDependency(SeedError):
    """Internal signal: the referenced row has not been persisted yet"""

    def __init__(self, reference):
        self.reference = reference
        super(MissingDependency, self).__init__(
            "Row {0}[{1}] is not persisted yet (wanted column {2})".format(
                reference.table, reference.row_index, reference.column))


class UndeclaredReference(SeedError):
    """A chunk references a column that was never declared referenceable"""

    def __init__(self, reference):
        self.reference = reference
        super(UndeclaredReference, self).__init__(
            "Reference to {0}.{1} is not declared in refs".format(
                reference.table, reference.column))


class CircularOrUnsatisfiableReference(SeedError):
    """
    Raised by the finalizer when deferred chunks can never be resolved.

    Carries every stuck chunk at once so a dependency cycle can be
    diagnosed in one pass.
    """

    def __init__(self, stuck):
        self.stuck = list(stuck)
        lines = []
        for item in self.stuck:
            for target_table, target_row, target_column in item.targets:
                lines.append("{0}[{1}] -> {2}[{3}].{4}".format(
                    item.table, item.row_index, target_table, target_row, target_column))
        super(CircularOrUnsatisfiableReference, self).__init__(
            "Failed to resolve refs (possible circular dependency):\n{0}".format("\n".join(lines)))

    @property
    def unresolved(self):
        """Flat list of (table, row_index, target_table, target_row, target_column)"""
        return [(item.table, item.row_index) + tuple(target)
                for item in self.stuck for target in item.targets]


class PersistenceFailure(SeedError):
    """The persistence target rejected a batch"""

    def __init__(self, table, row_count, cause):
        self.table = table
        self.row_count = row_count
        self.cause = cause
        super(PersistenceFailure, self).__init__(
            "Failed to insert {0} row(s) into {1}: {2}".format(row_count, table, cause))


class UniqueValueExhausted(SeedError):
    def __init__(self, table, column, tries, index, count):
        self.table = table
        self.column = column
        self.tries = tries
        super(UniqueValueExhausted, self).__init__(
            "Failed to generate unique value for {0}.{1} after {2} tries | it was {3} value of {4}".format(
                table, column, tries, index + 1, count))


class GeneratorChainExhausted(SeedError):
    def __init__(self, table, column):
        self.table = table
        self.column = column
        super(GeneratorChainExhausted, self).__init__(
            "End of generator chain for {0}.{1}".format(table, column))
