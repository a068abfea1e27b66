#!/usr/bin/env python3
"""Seed a MySQL database with synthetic rows that reference each other"""
import argparse, json, sys
from collections import defaultdict, deque
from getpass import getpass

try:
    import pymysql
except ImportError:
    print("Error: PyMySQL required.  Install: pip install PyMySQL", file=sys.stderr)
    sys.exit(1)

from row_generator import RowGenerator, default_chain, make_reference_column
from schema_introspector import SchemaIntrospector
from seed_errors import CircularOrUnsatisfiableReference, SeedError
from seed_references_utils import (
    GLOBALS, debug_print, parse_populate_columns_config, table_key, validate_populate_column_config
)
from seeder import Seeder
from targets import PyMySQLTarget


def ref_parent(table_cfg, ref_cfg):
    return table_key(ref_cfg.get("referenced_schema", table_cfg["schema"]), ref_cfg["referenced_table"])


def build_dependency_graph(config_tables):
    nodes = set(table_key(t['schema'], t['table']) for t in config_tables)
    edges = defaultdict(set)
    for table_cfg in config_tables:
        child = table_key(table_cfg['schema'], table_cfg['table'])
        for ref_cfg in table_cfg.get("refs", []):
            parent = ref_parent(table_cfg, ref_cfg)
            if parent in nodes and parent != child:
                edges[parent].add(child)
    return nodes, edges

def topo_sort(nodes, edges, preferred=None):
    """Kahn's algorithm; ties keep config order, cycle members are appended"""
    preferred = list(preferred or sorted(nodes))
    rank = dict((n, i) for i, n in enumerate(preferred))
    indeg = {n: 0 for n in nodes}
    for u in edges:
        for v in edges[u]:
            indeg[v] = indeg.get(v, 0) + 1
    q = deque(sorted([n for n, d in indeg.items() if d == 0], key=lambda n: rank.get(n, len(rank))))
    order = []
    while q:
        u = q.popleft()
        order.append(u)
        for v in sorted(edges.get(u, []), key=lambda n: rank.get(n, len(rank))):
            indeg[v] -= 1
            if indeg[v] == 0:
                q.append(v)
    if len(order) != len(nodes):
        remaining = [n for n in preferred if n in nodes and n not in order]
        print("WARNING: Reference cycle between {0}; rows may stay unresolved".format(
            ", ".join(remaining)), file=sys.stderr)
        order.extend(remaining)
    return order

def connect_mysql(args):
    pwd = args.password
    if args.ask_pass and not pwd:
        pwd = getpass("Password for {0}@{1}: ".format(args.user, args.host))
    try:
        return pymysql.connect(host=args.host, port=args.port, user=args.user, password=pwd, charset="utf8mb4", autocommit=True)
    except pymysql.MySQLError as e:
        print("Error: Failed to connect to MySQL: {0}".format(e), file=sys.stderr)
        sys.exit(1)

def validate_config(cfg):
    """Raise ValueError for a structurally invalid config"""
    if not isinstance(cfg, list):
        raise ValueError("Config must be an array")
    names = set()
    for entry in cfg:
        if "schema" not in entry or "table" not in entry:
            raise ValueError("Each entry must have 'schema' and 'table'")
        names.add(table_key(entry["schema"], entry["table"]))
    for entry in cfg:
        for ref_cfg in entry.get("refs", []):
            for field in ("column", "referenced_table", "referenced_column"):
                if field not in ref_cfg:
                    raise ValueError("refs entry of {0}.{1} is missing '{2}'".format(
                        entry["schema"], entry["table"], field))
            parent = ref_parent(entry, ref_cfg)
            if parent not in names:
                raise ValueError("refs entry of {0}.{1} points at unconfigured table {2}".format(
                    entry["schema"], entry["table"], parent))
    return cfg

def load_config(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
        return validate_config(cfg)
    except IOError:
        print("Error: Config file not found: {0}".format(path), file=sys.stderr)
        sys.exit(1)
    except (json.JSONDecodeError, ValueError) as e:
        print("Error: Invalid config: {0}".format(e), file=sys.stderr)
        sys.exit(1)

def rows_per_table(config, default_rows=100, scale=None):
    counts = {}
    for table_cfg in config:
        rows = table_cfg.get("rows", default_rows)
        if scale is not None and rows:
            rows = max(1, int(rows * scale))
        counts[table_key(table_cfg["schema"], table_cfg["table"])] = int(rows)
    return counts

def build_row_generator(config, metadata, unique_columns, counts, seed=42):
    """
    Turn the JSON config into a RowGenerator.

    populate_columns feed the config-aware handler; refs become column
    overrides producing references, and their targets are declared
    referenceable.
    """
    populate_config = {}
    overrides = {}
    refs = []
    column_order = {}
    for table_cfg in config:
        node = table_key(table_cfg["schema"], table_cfg["table"])
        populate_config[node] = parse_populate_columns_config(table_cfg)
        tmeta = metadata.get(node)
        if tmeta:
            by_name = dict((c.name, c) for c in tmeta.columns)
            for col_name, col_cfg in populate_config[node].items():
                if col_name in by_name and not validate_populate_column_config(by_name[col_name], col_cfg):
                    raise ValueError("Invalid populate_columns entry for {0}.{1}".format(node, col_name))
        if table_cfg.get("column_order"):
            column_order[node] = list(table_cfg["column_order"])
        for ref_cfg in table_cfg.get("refs", []):
            parent = ref_parent(table_cfg, ref_cfg)
            refs.append("{0}.{1}".format(parent, ref_cfg["referenced_column"]))
            overrides.setdefault(node, {})[ref_cfg["column"]] = make_reference_column(
                parent, ref_cfg["referenced_column"], ref_cfg.get("row", "random"), ref_cfg.get("format"))

    nodes, edges = build_dependency_graph(config)
    order = topo_sort(nodes, edges, [table_key(t["schema"], t["table"]) for t in config])
    debug_print("Table order: {0}".format(order))

    generator = RowGenerator(metadata, order, counts, seed, default_chain(populate_config), unique_columns)
    return generator.refine(columns=overrides, refs=refs, column_order=column_order)

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Seed MySQL tables with synthetic rows, resolving cross-row references")
    p.add_argument("--config", required=True, help="JSON config file path")
    p.add_argument("--host", required=True, help="MySQL host")
    p.add_argument("--user", required=True, help="MySQL user")
    p.add_argument("--port", type=int, default=3306, help="MySQL port (default: 3306)")
    p.add_argument("--password", default=None, help="MySQL password")
    p.add_argument("--ask-pass", action="store_true", help="Prompt for password")
    p.add_argument("--rows", type=int, default=None, help="Rows per table (default: 100)")
    p.add_argument("--scale", type=float, default=None, help="Scale rows by factor")
    p.add_argument("--seed", type=int, default=42, help="Random seed")
    p.add_argument("--max-params", type=int, default=None, help="Parameters per INSERT (default: 65535)")
    p.add_argument("--reset", action="store_true", help="Truncate configured tables before seeding")
    p.add_argument("--debug", action="store_true", help="Enable debug output")
    return p.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)
    GLOBALS["debug"] = args.debug
    cfg = load_config(args.config)
    conn = connect_mysql(args)
    try:
        introspector = SchemaIntrospector(conn, cfg)
        metadata, _ = introspector.introspect_schemas([table_key(t["schema"], t["table"]) for t in cfg])
        introspector.validate_config_columns()
        unique_columns = dict((k, introspector.single_unique_columns(k)) for k in metadata)
        counts = rows_per_table(cfg, args.rows if args.rows is not None else 100, args.scale)
        generator = build_row_generator(cfg, metadata, unique_columns, counts, args.seed)

        target = PyMySQLTarget(conn)
        if args.reset:
            target.reset(list(reversed(generator.table_order)))
            print(" Truncated {0} table(s)".format(len(generator.table_order)))

        states = Seeder(target, generator, max_params=args.max_params, metadata=metadata).run()
        for node, state in states.items():
            print(" Inserted {0} rows into {1} in {2} batch(es)".format(
                state.flushed_count, node, state.flush_count))
    except CircularOrUnsatisfiableReference as e:
        print("Error: {0}".format(e), file=sys.stderr)
        sys.exit(2)
    except (SeedError, ValueError) as e:
        print("Error: {0}".format(e), file=sys.stderr)
        if GLOBALS["debug"]:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    finally:
        conn.close()

if __name__ == "__main__":
    main()
