# estimator/tools/markdown_export.py

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from estimator.tools.complexity_calculator import module_complexity
from estimator.tools.estimation_scale import TSHIRT_SCALE, Scale

HOURS_PER_DAY = 8
HOURS_PER_WEEK = 40
WORK_DAYS_PER_MONTH = 20


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _fmt_hours(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value)}h"
    return f"{value:g}h"


def _cell(value: Any) -> str:
    """Keep table rows intact when the text contains pipes or newlines."""
    return str(value).replace("|", "\\|").replace("\n", " ")


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _display_hours(sub_features: List[Any]) -> float:
    return sum(
        _to_float((sub.get("estimation") or {}).get("estimated_hours"))
        for sub in sub_features
        if isinstance(sub, dict) and isinstance(sub.get("estimation") or {}, dict)
    )


def _feature_hours(feature: Dict[str, Any]) -> float:
    cached = feature.get("calculated_hours")
    if isinstance(cached, dict) and cached.get("adjusted"):
        return cached["adjusted"]
    return _display_hours(_as_list(feature.get("sub_features")))


def _module_hours(module: Dict[str, Any]) -> float:
    """Rolled-up total when present, else the sum of stored display hours."""
    cached = module.get("calculated_hours")
    if isinstance(cached, dict) and cached.get("adjusted"):
        return cached["adjusted"]
    return sum(
        _display_hours(_as_list(f.get("sub_features")))
        for f in _as_list(module.get("features"))
        if isinstance(f, dict)
    )


def convert_modules_to_markdown(
    modules_data: Dict[str, Any],
    project_name: Optional[str] = None,
    scale: Scale = TSHIRT_SCALE,
    generated_at: Optional[datetime] = None,
) -> str:
    """Render a module tree as a Markdown estimation report."""
    timestamp = (generated_at or datetime.now()).strftime("%d %B %Y %H:%M")
    modules = [m for m in _as_list((modules_data or {}).get("modules")) if isinstance(m, dict)]
    metadata = (modules_data or {}).get("metadata") or {}

    lines: List[str] = ["# 📋 Project Estimation Report", ""]
    if project_name:
        lines += [f"**Project:** {project_name}", ""]
    lines += [f"**Generated:** {timestamp}", ""]
    if metadata.get("total_modules") is not None:
        lines += [f"**Total Modules:** {metadata['total_modules']}", ""]
    lines += ["---", ""]

    # Overview
    lines += [
        "## 📊 Estimation Overview",
        "",
        "| No | Module | Features | Sub-Features | Total Hours | Complexity |",
        "|----|--------|----------|--------------|-------------|------------|",
    ]

    total_hours = 0.0
    total_features = 0
    total_sub_features = 0

    for index, module in enumerate(modules, start=1):
        features = [f for f in _as_list(module.get("features")) if isinstance(f, dict)]
        hours = _module_hours(module)
        sub_count = sum(len(_as_list(f.get("sub_features"))) for f in features)

        total_hours += hours
        total_features += len(features)
        total_sub_features += sub_count

        marker = module_complexity(features)["marker"]
        lines.append(
            f"| {index} | {_cell(module.get('name', 'Module'))} | {len(features)} | "
            f"{sub_count} | {_fmt_hours(hours)} | {marker} |"
        )

    lines.append(
        f"| **TOTAL** | **{len(modules)} Modules** | **{total_features}** | "
        f"**{total_sub_features}** | **{_fmt_hours(total_hours)}** | - |"
    )
    lines.append("")

    work_days = math.ceil(total_hours / HOURS_PER_DAY)
    work_weeks = math.ceil(total_hours / HOURS_PER_WEEK)

    lines += [
        "### 🎯 Project Summary",
        "",
        f"> **Total Estimated Hours:** {_fmt_hours(total_hours)}",
        f"> **Estimated Work Days:** {work_days} days ({HOURS_PER_DAY}h/day)",
        f"> **Estimated Work Weeks:** {work_weeks} weeks ({HOURS_PER_WEEK}h/week)",
        f"> **Total Modules:** {len(modules)}",
        f"> **Total Features:** {total_features}",
        f"> **Total Sub-features:** {total_sub_features}",
        "",
    ]

    # Detailed breakdown
    lines += ["## 🔍 Detailed Breakdown", ""]
    for m_idx, module in enumerate(modules, start=1):
        lines += [
            f"### {m_idx}. {module.get('name', 'Module')} ({_fmt_hours(_module_hours(module))})",
            "",
            f"**Description:** {module.get('description') or 'No description'}",
            "",
        ]

        for f_idx, feature in enumerate(_as_list(module.get("features")), start=1):
            if not isinstance(feature, dict):
                continue
            lines += [
                f"#### {m_idx}.{f_idx} {feature.get('name', 'Feature')} "
                f"({_fmt_hours(_feature_hours(feature))})",
                "",
                f"**Description:** {feature.get('description') or 'No description'}",
                "",
                f"**Complexity:** {feature.get('complexity') or 'unknown'}",
                "",
            ]

            dependencies = _as_list(feature.get("dependencies"))
            if dependencies:
                lines += [f"**Dependencies:** {', '.join(map(str, dependencies))}", ""]
            integrations = _as_list(feature.get("integrations"))
            if integrations:
                lines += [f"**Integrations:** {', '.join(map(str, integrations))}", ""]

            sub_features = [s for s in _as_list(feature.get("sub_features")) if isinstance(s, dict)]
            if sub_features:
                lines += [
                    "**Sub-features:**",
                    "",
                    "| No | Task | Description | Hours | Size | Reasoning |",
                    "|----|------|-------------|-------|------|-----------|",
                ]
                for s_idx, sub in enumerate(sub_features, start=1):
                    estimation = sub.get("estimation") if isinstance(sub.get("estimation"), dict) else {}
                    size = estimation.get(scale.estimation_key)
                    lines.append(
                        f"| {s_idx} | {_cell(sub.get('name', 'Task'))} | "
                        f"{_cell(sub.get('description') or 'No description')} | "
                        f"{_fmt_hours(_to_float(estimation.get('estimated_hours')))} | "
                        f"{size if size is not None else 'N/A'} | "
                        f"{_cell(estimation.get('reasoning') or 'No reasoning provided')} |"
                    )
                lines.append("")

            lines += ["---", ""]

    # Size guide from the scale in use
    lines += [
        f"## 📏 {scale.name.capitalize()} Size Estimation Guide",
        "",
        "| Size | Hours | Description |",
        "|------|-------|-------------|",
    ]
    for row in scale.as_table():
        lines.append(f"| {row['label']} | {_fmt_hours(row['hours'])} | {row['description']} |")
    lines.append("")

    lines += [
        "## 📅 Estimated Timeline",
        "",
        f"- **Work Days ({HOURS_PER_DAY}h/day):** {work_days} days",
        f"- **Work Weeks ({HOURS_PER_WEEK}h/week):** {work_weeks} weeks",
        f"- **Calendar Months (assuming {WORK_DAYS_PER_MONTH} work days/month):** "
        f"{math.ceil(work_days / WORK_DAYS_PER_MONTH)} months",
        "",
        "---",
        "",
        f"*Generated by Project Estimator on {timestamp}*",
        "",
    ]

    return "\n".join(lines)
