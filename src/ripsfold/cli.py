#!/usr/bin/env python3
"""CLI entry point for ripsfold package.

Usage:
    python -m ripsfold load <files or dir...> --catalog CUPS.xlsx [--db ripsfold.db]
    python -m ripsfold summary [--db ripsfold.db]
    python -m ripsfold goals [--db ripsfold.db] [--config ripsfold.toml] [--scale N]
    python -m ripsfold rankings [--by codes|patients] [--limit N]
    python -m ripsfold duplicates [--db ripsfold.db]
    python -m ripsfold dedupe (--id PATIENT|CODE|DATE | --all --yes)
    python -m ripsfold search <term>
    python -m ripsfold export --kind global|codes|patients|duplicates|organized|markdown
    python -m ripsfold init-config [--output ripsfold.toml]
    python -m ripsfold clear --yes
    python -m ripsfold serve-mcp [--db ripsfold.db]
"""

import argparse
import logging
import os
import sys
import time

from ripsfold.config import DEFAULT_CONFIG_PATH
from ripsfold.db import DEFAULT_DB

EXPORT_KINDS = ("global", "codes", "patients", "duplicates", "organized", "markdown")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="ripsfold",
        description="Ingest RIPS exports, audit them against CUPS goals, and report.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command")

    # --- load ---
    load_parser = sub.add_parser("load", help="Ingest RIPS text files against a CUPS catalog")
    load_parser.add_argument("inputs", nargs="+", help="RIPS .txt files or directories holding them")
    load_parser.add_argument("--catalog", required=True, help="CUPS catalog workbook (.xlsx)")
    load_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")

    # --- summary ---
    summary_parser = sub.add_parser("summary", help="Show stored session summary")
    summary_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")

    # --- goals ---
    goals_parser = sub.add_parser("goals", help="Show goals vs executed per service type")
    goals_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    goals_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to ripsfold.toml")
    goals_parser.add_argument("--scale", type=int, default=None, help="Override period scale in months")

    # --- rankings ---
    rank_parser = sub.add_parser("rankings", help="Show CUPS or patient rankings")
    rank_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    rank_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to ripsfold.toml")
    rank_parser.add_argument("--by", choices=["codes", "patients"], default="codes", help="Ranking to show")
    rank_parser.add_argument("--limit", type=int, default=None, help="Max rows (default: report.top_n)")

    # --- duplicates ---
    dup_parser = sub.add_parser("duplicates", help="List duplicate service groups")
    dup_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    dup_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to ripsfold.toml")

    # --- dedupe ---
    dedupe_parser = sub.add_parser("dedupe", help="Remove duplicate service records")
    dedupe_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    dedupe_group = dedupe_parser.add_mutually_exclusive_group(required=True)
    dedupe_group.add_argument("--id", dest="group_id", help="Group id as PATIENT|CODE|DATE")
    dedupe_group.add_argument("--all", action="store_true", help="Remove every duplicate")
    dedupe_parser.add_argument("--yes", action="store_true", help="Confirm an irreversible --all")

    # --- search ---
    search_parser = sub.add_parser("search", help="Search stored service records")
    search_parser.add_argument("term", help="Text matched against patient, code, name and type")
    search_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    search_parser.add_argument("--limit", type=int, default=50, help="Max rows to print")

    # --- export ---
    export_parser = sub.add_parser("export", help="Export reports as .xlsx or markdown")
    export_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    export_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to ripsfold.toml")
    export_parser.add_argument("--kind", choices=EXPORT_KINDS, default="global", help="Report to export")
    export_parser.add_argument("--output", default=".", help="Output directory (file path for markdown)")

    # --- init-config ---
    config_parser = sub.add_parser("init-config", help="Generate ripsfold.toml config from database")
    config_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    config_parser.add_argument("--output", default=DEFAULT_CONFIG_PATH, help="Config file output path")

    # --- clear ---
    clear_parser = sub.add_parser("clear", help="Delete the stored session")
    clear_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    # --- serve-mcp ---
    mcp_parser = sub.add_parser("serve-mcp", help="Start MCP server for LLM clients")
    mcp_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    mcp_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to ripsfold.toml")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    handlers = {
        "load": _handle_load,
        "summary": _handle_summary,
        "goals": _handle_goals,
        "rankings": _handle_rankings,
        "duplicates": _handle_duplicates,
        "dedupe": _handle_dedupe,
        "search": _handle_search,
        "export": _handle_export,
        "init-config": _handle_init_config,
        "clear": _handle_clear,
        "serve-mcp": _handle_serve_mcp,
    }
    handlers[args.command](args)


def _expand_inputs(inputs: list[str]) -> list[str]:
    from ripsfold.sources.base import discover_files

    paths = []
    for item in inputs:
        if os.path.isdir(item):
            paths.extend(discover_files(item))
        else:
            paths.append(item)
    return paths


def _open_session(db, config_path: str = DEFAULT_CONFIG_PATH, scale: int | None = None):
    """Build a RipsSession from config goals and the stored records."""
    from ripsfold.config import load_config
    from ripsfold.session import RipsSession

    config = load_config(config_path)
    session = RipsSession(goals=config["goals"], scale=scale or config["scale"])
    stored = db.load_session()
    if stored is not None:
        session.restore(*stored)
    return session, config


def _handle_load(args):
    from ripsfold.catalog import read_catalog_rows
    from ripsfold.db import RipsDB
    from ripsfold.session import RipsSession
    from ripsfold.sources.base import IngestError
    from ripsfold.sources.rips import iter_rips_paths

    paths = _expand_inputs(args.inputs)

    with RipsDB(args.db) as db:
        db.init_schema()
        session = RipsSession()
        stored = db.load_session()
        if stored is not None:
            session.restore(*stored)

        print(f"\n--- Loading {len(paths)} RIPS files with catalog {args.catalog} ---")
        start = time.monotonic()
        try:
            batch = session.ingest(iter_rips_paths(paths), read_catalog_rows(args.catalog))
        except IngestError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        duration = time.monotonic() - start

        if not db.save_session(session.records, session.roster.values()):
            print("Warning: the session could not be saved; results are not persisted.", file=sys.stderr)
        db.log_load(batch, duration)

        counts = batch.counts()
        print(f"  Files read:       {counts['files']:>6}")
        print(f"  Service records:  {counts['service_records']:>6}")
        print(f"  Patients:         {counts['patients']:>6}")
        _print_db_summary(db)


def _handle_summary(args):
    from ripsfold.db import RipsDB

    with RipsDB(args.db) as db:
        db.init_schema()
        _print_db_summary(db)


def _print_db_summary(db):
    counts = db.summary()
    sources = db.sources()

    print(f"\n{'='*50}")
    print("Database Summary")
    print(f"{'='*50}")
    for table, count in counts.items():
        print(f"  {table:<25} {count:>6}")
    print(f"{'='*50}")

    if sources:
        print("\nLoad History:")
        for s in sources:
            print(
                f"  {s['loaded_at'][:19]}  {s['files_count']:>3} files  "
                f"{s['service_records_count']:>6} records  {s['patients_count']:>5} patients"
            )


def _print_table(headers: list[str], rows: list[list], max_width: int = 40) -> None:
    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, v in enumerate(row):
            col_widths[i] = max(col_widths[i], min(len(str(v)), max_width))
    fmt = "  " + " | ".join(f"{{:<{w}}}" for w in col_widths)
    print(fmt.format(*headers))
    print("  " + "-+-".join("-" * w for w in col_widths))
    for row in rows:
        print(fmt.format(*(str(v).replace("\n", ", ")[:max_width] for v in row)))


def _handle_goals(args):
    from ripsfold.db import RipsDB

    with RipsDB(args.db) as db:
        db.init_schema()
        try:
            session, _ = _open_session(db, args.config, args.scale)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        dash = session.dashboard()

    print(f"\nGoals vs Executed (scale: {session.scale} month(s))\n")
    if not dash.chart:
        print("  No active service types.")
        return
    _print_table(
        ["Service Type", "Target", "Executed", "Compliance", "Status"],
        [[p.service_type, p.target, p.executed, f"{p.capped_percent}%", p.color] for p in dash.chart],
    )


def _handle_rankings(args):
    from ripsfold.db import RipsDB

    with RipsDB(args.db) as db:
        db.init_schema()
        session, config = _open_session(db, args.config)
        dash = session.dashboard()

    limit = args.limit if args.limit is not None else config["report"]["top_n"]
    if args.by == "codes":
        rows = dash.code_ranking[:limit]
        print(f"\nTop {limit} CUPS ({len(dash.code_ranking)} distinct)\n")
        _print_table(
            ["CUPS", "Name", "Type", "Count", "Top Patient", "Patient Count"],
            [[r.service_code, r.service_name, r.service_type, r.count,
              r.top_patient_id, r.top_patient_count] for r in rows],
        )
    else:
        rows = dash.patient_ranking[:limit]
        print(f"\nTop {limit} Patients ({len(dash.patient_ranking)} distinct)\n")
        _print_table(
            ["Patient", "Name", "Sex", "Age", "Age Group", "Services"],
            [[p.patient_id, p.full_name, p.sex, p.age, p.bracket, p.count] for p in rows],
        )


def _handle_duplicates(args):
    from ripsfold.analysis.data_quality import duplicate_group_id
    from ripsfold.db import RipsDB

    with RipsDB(args.db) as db:
        db.init_schema()
        session, _ = _open_session(db, args.config)
        dash = session.dashboard()

    if not dash.duplicates:
        print("No duplicate services found.")
        return
    print(f"\nDuplicate groups ({len(dash.duplicates)}):\n")
    _print_table(
        ["Id", "Name", "Copies"],
        [[duplicate_group_id(d.key), d.record.service_name, d.count] for d in dash.duplicates],
        max_width=60,
    )


def _handle_dedupe(args):
    from ripsfold.analysis.data_quality import duplicate_key_from_id
    from ripsfold.db import RipsDB
    from ripsfold.session import RipsSession

    if args.all and not args.yes:
        print("Removing every duplicate cannot be undone. Re-run with --yes to confirm.")
        sys.exit(1)

    with RipsDB(args.db) as db:
        db.init_schema()
        stored = db.load_session()
        if stored is None:
            print("No stored session. Run 'ripsfold load' first.")
            sys.exit(1)
        session = RipsSession()
        session.restore(*stored)

        if args.all:
            removed = session.remove_all_duplicates()
        else:
            try:
                key = duplicate_key_from_id(args.group_id)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                sys.exit(1)
            removed = session.remove_duplicate_group(key)

        if removed and not db.save_session(session.records, session.roster.values()):
            print("Error: the session could not be saved.", file=sys.stderr)
            sys.exit(1)
    print(f"Removed {removed} duplicate records ({len(session.records)} remaining).")


def _handle_search(args):
    from ripsfold.db import RipsDB
    from ripsfold.session import RipsSession

    with RipsDB(args.db) as db:
        db.init_schema()
        session = RipsSession()
        stored = db.load_session()
        if stored is not None:
            session.restore(*stored)

    matches = session.search(args.term)
    if not matches:
        print("(no results)")
        return
    _print_table(
        ["Patient", "CUPS", "Name", "Type", "Date"],
        [[r.patient_id, r.service_code, r.service_name, r.service_type, r.service_date]
         for r in matches[:args.limit]],
    )
    print(f"\n({len(matches)} rows)")


def _handle_export(args):
    from ripsfold import export
    from ripsfold.db import RipsDB

    with RipsDB(args.db) as db:
        db.init_schema()
        session, config = _open_session(db, args.config)

    dash = session.dashboard()
    if args.kind == "global":
        path = export.export_global(dash, args.output)
    elif args.kind == "codes":
        path = export.export_code_ranking(dash, args.output)
    elif args.kind == "patients":
        path = export.export_patient_ranking(dash, args.output)
    elif args.kind == "duplicates":
        path = export.export_duplicates(dash, session.roster, args.output)
    elif args.kind == "organized":
        path = export.export_organized(session.records, session.roster, args.output)
    else:
        output = args.output if args.output.endswith(".md") else os.path.join(args.output, "ripsfold_report.md")
        path = export.export_markdown(dash, output_path=output, top_n=config["report"]["top_n"])

    print(f"Exported to {path}")


def _handle_init_config(args):
    from ripsfold.config import generate_config
    from ripsfold.db import RipsDB

    with RipsDB(args.db) as db:
        db.init_schema()
        path = generate_config(db, config_path=args.output)
    print(f"Config generated at {path}")


def _handle_clear(args):
    from ripsfold.db import RipsDB

    if not args.yes:
        print("This deletes every stored record and patient. Re-run with --yes to confirm.")
        sys.exit(1)
    with RipsDB(args.db) as db:
        db.init_schema()
        if not db.clear_session():
            print("Error: the session could not be cleared.", file=sys.stderr)
            sys.exit(1)
    print("Session cleared.")


def _handle_serve_mcp(args):
    os.environ["RIPSFOLD_DB"] = args.db
    os.environ["RIPSFOLD_CONFIG"] = args.config

    from ripsfold.mcp.server import mcp

    mcp.run()


if __name__ == "__main__":
    main()
