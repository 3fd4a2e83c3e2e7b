# estimator/tools/scenario_adjuster.py

from __future__ import annotations

import math
from typing import Any, Dict, Optional

from estimator.config import DEFAULT_TEAM_VELOCITY
from estimator.exceptions import ValidationError
from estimator.tools.estimation_scale import (
    TSHIRT_SCALE,
    Scale,
    next_label,
    previous_label,
)

# shift: number of scale steps applied to every sub-feature label
SCENARIO_ADJUSTMENTS: Dict[str, Dict[str, Any]] = {
    "optimistic": {
        "description": "Best case scenario - ideal conditions, no blockers",
        "shift": -1,
    },
    "realistic": {
        "description": "Most likely scenario - normal development conditions",
        "shift": 0,
    },
    "pessimistic": {
        "description": "Worst case scenario - accounting for unknowns and challenges",
        "shift": 1,
    },
}

SCENARIOS = tuple(SCENARIO_ADJUSTMENTS)


def scenario_description(scenario: str) -> str:
    return SCENARIO_ADJUSTMENTS[scenario]["description"]


def adjust_label(label: Any, scale: Scale = TSHIRT_SCALE, scenario: str = "realistic") -> Any:
    """
    Shift `label` one step along `scale` for the given scenario.

    realistic   -> unchanged
    optimistic  -> one step smaller (clamped at the first label)
    pessimistic -> one step larger (clamped at the last label)
    """
    shift = SCENARIO_ADJUSTMENTS[scenario]["shift"]
    if shift == 0:
        return label
    if shift > 0:
        return next_label(label, scale)
    return previous_label(label, scale)


# -------------------------------------------------------------------
# Input validation (done by callers before the rollup runs)
# -------------------------------------------------------------------

def validate_scenario(value: Any) -> str:
    if not isinstance(value, str) or value not in SCENARIO_ADJUSTMENTS:
        raise ValidationError(
            "Invalid optimistic level. Must be 'optimistic', 'realistic', "
            "or 'pessimistic'",
            details={"value": value},
        )
    return value


def validate_team_velocity(value: Optional[Any], default: float = DEFAULT_TEAM_VELOCITY) -> float:
    """Absent -> default; otherwise a finite positive number or ValidationError."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError("Team velocity must be a positive number", details={"value": value})
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError as e:
            raise ValidationError(
                "Team velocity must be a positive number", details={"value": value}
            ) from e
    if not isinstance(value, (int, float)):
        raise ValidationError("Team velocity must be a positive number", details={"value": value})
    try:
        finite = math.isfinite(value)
    except OverflowError:
        # int too large for a float
        finite = False
    # inf would project zero sprints, nan compares False against everything
    if not finite or value <= 0:
        raise ValidationError("Team velocity must be a positive number", details={"value": value})
    return value
