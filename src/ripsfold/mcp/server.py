"""MCP server for ripsfold: LLM clients query the stored RIPS session.

Run with: python -m ripsfold.mcp.server
Configure env: RIPSFOLD_DB=/path/to/ripsfold.db RIPSFOLD_CONFIG=/path/to/ripsfold.toml
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict

from mcp.server.fastmcp import FastMCP

from ripsfold.analysis.data_quality import duplicate_group_id
from ripsfold.config import load_config
from ripsfold.db import RipsDB
from ripsfold.models import Dashboard
from ripsfold.session import RipsSession

DB_PATH = os.environ.get("RIPSFOLD_DB", "ripsfold.db")
CONFIG_PATH = os.environ.get("RIPSFOLD_CONFIG", "ripsfold.toml")

mcp = FastMCP(
    "ripsfold",
    instructions=(
        "RIPS audit server over a SQLite session of service records (one per billed "
        "CUPS service) and the patient roster.\n\n"
        "Key capabilities:\n"
        "- get_dashboard_stats: Totals plus the top CUPS code and top patient\n"
        "- get_goal_progress: Target vs executed per active service type\n"
        "- get_code_ranking / get_patient_ranking: Most frequent codes and patients\n"
        "- get_duplicates: Same patient, code and date recorded more than once\n"
        "- search_records_tool: Substring search across service records\n"
        "- run_sql / get_schema: Direct SQL access (read-only)\n"
        "- get_database_summary: Table counts and load history\n\n"
        "Start with get_dashboard_stats or get_database_summary."
    ),
)


def _get_db() -> RipsDB:
    db = RipsDB(DB_PATH)
    db.init_schema()
    return db


def _load_session() -> RipsSession:
    config = load_config(CONFIG_PATH)
    session = RipsSession(goals=config["goals"], scale=config["scale"])
    db = _get_db()
    try:
        stored = db.load_session()
    finally:
        db.close()
    if stored is not None:
        session.restore(*stored)
    return session


def _dashboard() -> Dashboard:
    return _load_session().dashboard()


@mcp.tool()
def get_dashboard_stats() -> dict:
    """Totals for the active service types: records, patients, top CUPS, top patient."""
    dash = _dashboard()
    result = asdict(dash.stats)
    result["duplicate_groups"] = len(dash.duplicates)
    return result


@mcp.tool()
def get_goal_progress(scale: int = 0) -> list[dict] | str:
    """Goals vs executed per active service type.

    Args:
        scale: Months the loaded files cover (1, 2, 3, 6 or 12). 0 uses the configured scale.
    """
    session = _load_session()
    if scale:
        try:
            session.set_goals(session.goals, scale)
        except ValueError as e:
            return f"Error: {e}"
    return [asdict(p) for p in session.dashboard().chart]


@mcp.tool()
def get_code_ranking(limit: int = 20) -> list[dict]:
    """CUPS codes ranked by count, each with its most frequent patient."""
    return [asdict(r) for r in _dashboard().code_ranking[:limit]]


@mcp.tool()
def get_patient_ranking(limit: int = 20) -> list[dict]:
    """Patients ranked by number of services, with codes and dates."""
    rows = []
    for p in _dashboard().patient_ranking[:limit]:
        row = asdict(p)
        row["codes"] = list(p.codes)
        row["dates"] = list(p.dates)
        rows.append(row)
    return rows


@mcp.tool()
def get_duplicates() -> list[dict]:
    """Duplicate groups: same patient, CUPS code and date more than once."""
    return [
        {
            "id": duplicate_group_id(d.key),
            "patient_id": d.patient_id,
            "service_code": d.service_code,
            "service_name": d.record.service_name,
            "service_date": d.service_date,
            "count": d.count,
        }
        for d in _dashboard().duplicates
    ]


@mcp.tool()
def search_records_tool(term: str, limit: int = 100) -> list[dict]:
    """Case-insensitive search over patient id, code, name and service type."""
    return [asdict(r) for r in _load_session().search(term)[:limit]]


@mcp.tool()
def run_sql(query: str) -> list[dict] | str:
    """Execute a read-only SQL query against the ripsfold database.

    Only SELECT statements are allowed. Returns results as a list of dicts.

    Key tables: service_records, patients, load_log.
    """
    cleaned = query.strip().upper()
    if (
        not cleaned.startswith("SELECT")
        and not cleaned.startswith("PRAGMA")
        and not cleaned.startswith("WITH")
    ):
        return "Error: Only SELECT/WITH/PRAGMA statements are allowed."

    dangerous = re.search(
        r"\b(INSERT|UPDATE|DELETE|DROP|ALTER|CREATE|ATTACH|DETACH)\b",
        cleaned,
    )
    if dangerous:
        return f"Error: {dangerous.group()} statements are not allowed."

    db = _get_db()
    try:
        return db.query(query)
    except Exception as e:
        return f"SQL Error: {e}"
    finally:
        db.close()


@mcp.tool()
def get_schema() -> str:
    """Get the database schema (CREATE TABLE statements) for query planning."""
    db = _get_db()
    try:
        rows = db.query(
            "SELECT sql FROM sqlite_master WHERE type='table' AND sql IS NOT NULL ORDER BY name"
        )
        return "\n\n".join(r["sql"] for r in rows)
    finally:
        db.close()


@mcp.tool()
def get_database_summary() -> dict:
    """Table row counts and load history."""
    db = _get_db()
    try:
        return {"tables": db.summary(), "load_history": db.sources()}
    finally:
        db.close()


def main():
    mcp.run()


if __name__ == "__main__":
    main()
