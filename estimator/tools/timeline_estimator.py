# estimator/tools/timeline_estimator.py

from __future__ import annotations

import logging
import math
from typing import Any, Dict

from estimator.tools.estimation_scale import TSHIRT_SCALE, Scale

logger = logging.getLogger(__name__)

# One sprint is always two calendar weeks.
WEEKS_PER_SPRINT = 2


def round_up_one_decimal(value: float) -> float:
    """Ceil to one decimal place (2.01 -> 2.1, 2.0 -> 2.0)."""
    if math.isinf(value):
        return value
    # round first so float noise such as 0.30000000000000004 does not bump
    # the result a full tenth
    return math.ceil(round(value * 10, 6)) / 10


def round_half_up(value: float) -> int:
    """Whole-hour rounding for display totals (0.5 -> 1, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def sprint_projection(adjusted_hours: float, team_velocity: float) -> Dict[str, float]:
    """
    Sprints and weeks for a total, both rounded up to one decimal.

    A non-positive velocity cannot produce a sprint count; it yields inf so
    callers can flag it instead of crashing on a division by zero.
    """
    if team_velocity <= 0:
        logger.warning(
            "Team velocity %r is not positive; sprint projection is unbounded",
            team_velocity,
        )
        return {"estimated_sprints": math.inf, "estimated_weeks": math.inf}

    sprints = adjusted_hours / team_velocity
    return {
        "estimated_sprints": round_up_one_decimal(sprints),
        "estimated_weeks": round_up_one_decimal(sprints * WEEKS_PER_SPRINT),
    }


def summarize_estimation(total_hours: float, team_velocity: float = 20) -> Dict[str, Any]:
    """
    Quick "what if the total were X" projection, usable without a tree.

    Returns:
        {"hours": 40, "sprints": 2.0, "weeks": 4.0, "team_velocity": 20}
    """
    projection = sprint_projection(total_hours, team_velocity)
    return {
        "hours": total_hours,
        "sprints": projection["estimated_sprints"],
        "weeks": projection["estimated_weeks"],
        "team_velocity": team_velocity,
    }


def estimate_timeline(
    modules_data: Dict[str, Any],
    scale: Scale = TSHIRT_SCALE,
    team_velocity: float = 20,
) -> Dict[str, Any]:
    """
    Side-by-side optimistic / realistic / pessimistic projection.

    Each scenario is rolled up on its own copy of the tree, so
    `modules_data` is not annotated.
    """
    from estimator.tools.rollup_calculator import rollup_modules
    from estimator.tools.scenario_adjuster import SCENARIOS

    weeks: Dict[str, float] = {}
    hours: Dict[str, float] = {}
    sprints: Dict[str, float] = {}

    for scenario in SCENARIOS:
        _, estimation = rollup_modules(
            modules_data,
            scenario=scenario,
            scale=scale,
            team_velocity=team_velocity,
        )
        totals = estimation["totals"]
        weeks[scenario] = totals["estimated_weeks"]
        hours[scenario] = totals["adjusted_hours"]
        sprints[scenario] = totals["estimated_sprints"]

    return {
        "timeline_weeks": weeks,
        "hours": hours,
        "sprints": sprints,
        "range_weeks": f"{weeks['optimistic']} - {weeks['pessimistic']} weeks",
        "assumptions": [
            f"Team velocity: {team_velocity} hours per sprint",
            f"Sprints are {WEEKS_PER_SPRINT} weeks long.",
            "Optimistic and pessimistic shift every sub-feature one "
            f"{scale.name} size down or up.",
        ],
    }
