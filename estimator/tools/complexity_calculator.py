# estimator/tools/complexity_calculator.py

from typing import Any, Dict, List

COMPLEXITY_LEVELS = ("low", "medium", "high")

_COMPLEXITY_ALIASES = {
    "simple": "low",
    "easy": "low",
    "low": "low",
    "moderate": "medium",
    "medium": "medium",
    "complex": "high",
    "hard": "high",
    "high": "high",
    "very high": "high",
    "very_complex": "high",
}

COMPLEXITY_MARKERS = {
    "High": "🔴",
    "Medium": "🟡",
    "Low": "🟢",
    "Unknown": "⚪",
}


def normalize_complexity(value: Any) -> str:
    """Map generator wording to low / medium / high ("medium" if unknown)."""
    if not isinstance(value, str):
        return "medium"
    return _COMPLEXITY_ALIASES.get(value.strip().lower(), "medium")


def module_complexity(features: List[Dict[str, Any]]) -> Dict[str, object]:
    """
    Module-level complexity from its features.

    Returns a dict of the form:
    {
        "level": "High",
        "marker": "🔴",
        "counts": {"low": 1, "medium": 0, "high": 2}
    }

    Any high feature makes the module High; otherwise any medium makes it
    Medium; a module without features is Unknown.
    """
    counts = {level: 0 for level in COMPLEXITY_LEVELS}
    for feature in features or []:
        if not isinstance(feature, dict) or not feature.get("complexity"):
            continue
        counts[normalize_complexity(feature["complexity"])] += 1

    if not any(counts.values()):
        level = "Unknown"
    elif counts["high"]:
        level = "High"
    elif counts["medium"]:
        level = "Medium"
    else:
        level = "Low"

    return {
        "level": level,
        "marker": COMPLEXITY_MARKERS[level],
        "counts": counts,
    }
