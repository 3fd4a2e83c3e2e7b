# estimator/tools/rollup_calculator.py

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from estimator.tools.estimation_scale import TSHIRT_SCALE, Scale
from estimator.tools.scenario_adjuster import adjust_label, scenario_description
from estimator.tools.timeline_estimator import round_half_up, sprint_projection

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _node_key(node: Dict[str, Any], fallback: str) -> str:
    node_id = node.get("id")
    if node_id is None or node_id == "":
        return fallback
    return str(node_id)


def _estimate_sub_feature(
    sub_feature: Dict[str, Any],
    scenario: str,
    scale: Scale,
) -> Optional[Dict[str, Any]]:
    """
    Adjustment entry for one leaf, or None when it has nothing to count.

    Hours always come from the label; a stored `estimated_hours` is display
    data and is ignored here.
    """
    estimation = sub_feature.get("estimation")
    if not isinstance(estimation, dict):
        return None

    original_label = estimation.get(scale.estimation_key)
    if original_label is None or original_label == "":
        return None

    original_hours = scale.label_to_hours(original_label)
    canonical = scale.resolve(original_label)
    adjusted_label = adjust_label(canonical, scale, scenario)
    adjusted_hours = scale.label_to_hours(adjusted_label)

    return {
        "original_label": canonical,
        "adjusted_label": adjusted_label,
        "original_hours": original_hours,
        "adjusted_hours": adjusted_hours,
        "adjustment_reason": scenario_description(scenario),
    }


def calculate_module_estimation(
    modules_data: Any,
    scenario: str = "realistic",
    scale: Scale = TSHIRT_SCALE,
    team_velocity: float = 20,
) -> Dict[str, Any]:
    """
    Bottom-up rollup: sub-feature -> feature -> module -> project.

    Writes `calculated_hours = {"original", "adjusted"}` onto every feature
    and module of `modules_data` in place (use `rollup_modules` to keep the
    input untouched) and returns:

    {
      "scenario": "pessimistic",
      "scale": "tshirt",
      "team_velocity": 20,
      "adjustments": {"<sub_feature_id>": {...}},
      "totals": {
        "original_hours": 5,
        "adjusted_hours": 10,
        "estimated_sprints": 0.5,
        "estimated_weeks": 1.0
      }
    }

    Missing or malformed levels (no modules, no features, no sub_features,
    no estimation) count as zero. Only a label that is present but not on
    `scale` raises (UnknownLabel).
    """
    adjustments: Dict[str, Dict[str, Any]] = {}
    project_original = 0.0
    project_adjusted = 0.0

    modules = _as_list(modules_data.get("modules")) if isinstance(modules_data, dict) else []

    for m_idx, module in enumerate(modules):
        if not isinstance(module, dict):
            continue

        module_original = 0.0
        module_adjusted = 0.0

        for f_idx, feature in enumerate(_as_list(module.get("features"))):
            if not isinstance(feature, dict):
                continue

            feature_original = 0.0
            feature_adjusted = 0.0

            for s_idx, sub_feature in enumerate(_as_list(feature.get("sub_features"))):
                if not isinstance(sub_feature, dict):
                    continue

                entry = _estimate_sub_feature(sub_feature, scenario, scale)
                if entry is None:
                    continue

                key = _node_key(sub_feature, f"{m_idx}.{f_idx}.{s_idx}")
                if key in adjustments:
                    logger.warning("Duplicate sub-feature id %r in module tree", key)
                adjustments[key] = entry

                feature_original += entry["original_hours"]
                feature_adjusted += entry["adjusted_hours"]

            feature["calculated_hours"] = {
                "original": feature_original,
                "adjusted": round_half_up(feature_adjusted),
            }

            module_original += feature_original
            module_adjusted += feature_adjusted

        module["calculated_hours"] = {
            "original": module_original,
            "adjusted": round_half_up(module_adjusted),
        }

        project_original += module_original
        project_adjusted += module_adjusted

    totals: Dict[str, Any] = {
        "original_hours": project_original,
        "adjusted_hours": project_adjusted,
    }
    totals.update(sprint_projection(project_adjusted, team_velocity))

    return {
        "scenario": scenario,
        "scale": scale.name,
        "team_velocity": team_velocity,
        "adjustments": adjustments,
        "totals": totals,
    }


def rollup_modules(
    modules_data: Any,
    scenario: str = "realistic",
    scale: Scale = TSHIRT_SCALE,
    team_velocity: float = 20,
) -> Tuple[Any, Dict[str, Any]]:
    """
    Same rollup without touching the caller's tree.

    Returns (annotated_copy, estimation).
    """
    annotated = copy.deepcopy(modules_data)
    estimation = calculate_module_estimation(
        annotated,
        scenario=scenario,
        scale=scale,
        team_velocity=team_velocity,
    )
    return annotated, estimation
