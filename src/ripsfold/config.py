"""Configuration management for ripsfold.

Handles loading and writing the TOML file that holds the monthly goal per
service type and the period scale the goals are multiplied by.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

from ripsfold.analysis.aggregate import VALID_SCALES
from ripsfold.analysis.records import DEFAULT_SERVICE_TYPES
from ripsfold.models import ServiceTypeGoal

if TYPE_CHECKING:
    from ripsfold.db import RipsDB

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "ripsfold.toml"

DEFAULT_CONFIG_TEMPLATE = """\
# ripsfold configuration
# Edit freely.
#
# [period]
#   scale = months covered by the loaded RIPS files (1, 2, 3, 6 or 12);
#           every monthly goal is multiplied by it.
#
# Each [[goals]] entry sets the target for one catalog service type ("Tipo Ser").
#   type         = service type, exactly as in the CUPS catalog
#   monthly_goal = target count per month
#   active       = false excludes the type from every count and ranking

[period]
scale = {scale}

{goal_stanzas}

[report]
# Rows shown by the rankings command
top_n = {top_n}
"""


def default_goals() -> list[ServiceTypeGoal]:
    """Default service types, no target, all active."""
    return [ServiceTypeGoal(service_type=t, monthly_goal=0, active=True) for t in DEFAULT_SERVICE_TYPES]


def _default_config() -> dict:
    """Return default configuration."""
    return {
        "goals": default_goals(),
        "scale": 1,
        "report": {
            "top_n": 20,
        },
    }


def _parse_goal(entry: dict) -> ServiceTypeGoal | None:
    service_type = str(entry.get("type", "")).strip()
    if not service_type:
        return None
    goal = entry.get("monthly_goal", 0)
    if isinstance(goal, bool) or not isinstance(goal, int) or goal < 0:
        logger.warning("Ignoring goal for %r: monthly_goal must be an integer >= 0", service_type)
        return None
    return ServiceTypeGoal(
        service_type=service_type,
        monthly_goal=goal,
        active=bool(entry.get("active", True)),
    )


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load configuration from a TOML file.

    Returns a dict with:
    - goals: list of ServiceTypeGoal instances
    - scale: period multiplier
    - report: dict with report settings

    Falls back to defaults if the config file doesn't exist or can't be parsed.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(
            "Config file '%s' not found, using defaults. "
            "Run 'ripsfold init-config' to generate one.",
            config_path,
        )
        return _default_config()

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.error("Could not read config %s, using defaults: %s", config_path, e)
        return _default_config()

    config = _default_config()

    if "goals" in raw:
        goals = [_parse_goal(entry) for entry in raw["goals"]]
        config["goals"] = [g for g in goals if g is not None]

    scale = raw.get("period", {}).get("scale", 1)
    if scale in VALID_SCALES:
        config["scale"] = scale
    else:
        logger.warning("Ignoring period scale %r; expected one of %s", scale, VALID_SCALES)

    if "report" in raw:
        config["report"].update(raw["report"])

    return config


def _format_goal_stanza(goal: ServiceTypeGoal) -> str:
    """Format a single [[goals]] TOML stanza."""
    active = "true" if goal.active else "false"
    return (
        f"[[goals]]\ntype = {json.dumps(goal.service_type, ensure_ascii=False)}\n"
        f"monthly_goal = {goal.monthly_goal}\nactive = {active}"
    )


def render_config(goals: list[ServiceTypeGoal], scale: int = 1, top_n: int = 20) -> str:
    stanzas = "\n\n".join(_format_goal_stanza(g) for g in goals)
    return DEFAULT_CONFIG_TEMPLATE.format(scale=scale, goal_stanzas=stanzas, top_n=top_n)


def save_config(
    goals: list[ServiceTypeGoal],
    scale: int = 1,
    config_path: str = DEFAULT_CONFIG_PATH,
    top_n: int = 20,
) -> bool:
    """Write goals and scale to the config file. Returns False if the write failed."""
    try:
        Path(config_path).write_text(render_config(goals, scale, top_n), encoding="utf-8")
    except OSError as e:
        logger.error("Could not save config to %s: %s", config_path, e)
        return False
    return True


def generate_config(db: RipsDB, config_path: str = DEFAULT_CONFIG_PATH) -> str:
    """Generate a config file from the stored session.

    Every service type seen in the stored records gets a goal stanza, most
    frequent first, followed by the default types not seen yet. Goals start
    at 0.

    Returns the path of the written config file.
    """
    rows = db.query(
        "SELECT service_type, COUNT(*) AS n FROM service_records "
        "WHERE service_type != '' GROUP BY service_type ORDER BY n DESC, service_type"
    )
    types = [r["service_type"] for r in rows]
    for t in DEFAULT_SERVICE_TYPES:
        if t not in types:
            types.append(t)

    goals = [ServiceTypeGoal(service_type=t) for t in types]
    Path(config_path).write_text(render_config(goals), encoding="utf-8")
    return config_path
