from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from dotenv import load_dotenv
from google import genai

from estimator.agents.analysis_agent import analysis_agent
from estimator.agents.module_generator_agent import module_generator_agent
from estimator.config import DEFAULT_MODEL
from estimator.exceptions import ConfigError, GenerationError
from estimator.tools.complexity_calculator import normalize_complexity
from estimator.tools.estimation_scale import TSHIRT_SCALE, Scale, hours_to_label

# Load .env once
load_dotenv()

logger = logging.getLogger(__name__)

# Gemini handles long prompts, but uploaded specs can be huge
MAX_DOCUMENT_CHARS = 60_000

REQUIREMENTS_CHECKLIST: Dict[str, List[str]] = {
    "functional": [
        "User roles and permissions",
        "Core features and functionality",
        "Integration requirements",
    ],
    "business": [
        "Target users and personas",
        "Business objectives and goals",
    ],
    "user_experience": [
        "User interface requirements",
        "Device requirements",
    ],
    "scope": [
        "Project timeline and phases",
        "Risk factors",
        "Dependencies and assumptions",
    ],
}

COVERAGE_FIELDS = (
    "functional_coverage",
    "business_coverage",
    "user_experience_coverage",
    "scope_coverage",
    "overall_clarity",
)


# -------------------------------------------------------------------
# Low-level helpers
# -------------------------------------------------------------------

def _get_genai_client(api_key: Optional[str] = None) -> genai.Client:
    api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GENAI_API_KEY")
    if not api_key:
        raise ConfigError(
            "Missing GOOGLE_API_KEY (or GENAI_API_KEY) in environment. "
            "Set it before generating modules or running an analysis."
        )
    return genai.Client(api_key=api_key)


def _safe_json_loads(text: str) -> Dict[str, Any]:
    """Best-effort JSON parsing with fallback."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        # models sometimes wrap the JSON in prose or code fences
        start, end = (text or "").find("{"), (text or "").rfind("}")
        if start == -1 or end <= start:
            return {"raw": text}
        try:
            data = json.loads(text[start:end + 1])
        except ValueError:
            return {"raw": text}
    return data if isinstance(data, dict) else {"raw": data}


def _call_llm_with_instruction(
    instruction: str,
    user_payload: Dict[str, Any],
    expect_json: bool = True,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Call Gemini using a plain text prompt (no system role),
    optionally expecting JSON.

    We use `config=` (not `generation_config=`) to match the google-genai
    client API. `api_key` and `model` fall back to the environment.
    """
    client = _get_genai_client(api_key)
    model = model or os.getenv("ESTIMATOR_MODEL") or DEFAULT_MODEL

    prompt = (
        instruction.strip()
        + "\n\nHere is the input JSON you must process:\n```json\n"
        + json.dumps(user_payload, indent=2, default=str)
        + "\n```"
    )

    if expect_json:
        response = client.models.generate_content(
            model=model,
            contents=[prompt],
            config={
                "response_mime_type": "application/json",
                "temperature": 0.0,
            },
        )
        return _safe_json_loads(response.text or "")

    response = client.models.generate_content(
        model=model,
        contents=[prompt],
    )
    return {"raw": response.text or ""}


def _truncate(text: str, limit: int = MAX_DOCUMENT_CHARS) -> str:
    if len(text) <= limit:
        return text
    logger.info("Document text truncated from %d to %d characters", len(text), limit)
    return text[:limit]


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


# -------------------------------------------------------------------
# Module tree normalisation
# -------------------------------------------------------------------

def _unique_id(candidate: Any, generated: str, seen: Set[str]) -> str:
    node_id = _text(candidate)
    if not node_id or node_id in seen:
        node_id = generated
    while node_id in seen:
        node_id += "-x"
    seen.add(node_id)
    return node_id


def _normalize_estimation(estimation: Any, scale: Scale, where: str) -> Optional[Dict[str, Any]]:
    """
    Canonical estimation dict for a sub-feature, or None when nothing usable
    is there. Labels outside the scale are replaced by the closest label for
    the stored hours, or dropped.
    """
    if not isinstance(estimation, dict):
        return None

    raw_label = estimation.get(scale.estimation_key)
    label = scale.resolve(raw_label)

    if label is None:
        try:
            stored_hours = float(estimation.get("estimated_hours"))
        except (TypeError, ValueError):
            stored_hours = None
        if stored_hours is not None and stored_hours > 0:
            label = hours_to_label(stored_hours, scale)
        if raw_label is not None:
            logger.warning(
                "%s: label %r is not on the %s scale; using %r",
                where, raw_label, scale.name, label,
            )

    normalized: Dict[str, Any] = {
        "estimated_hours": scale.label_to_hours(label) if label is not None else 0,
        "reasoning": _text(estimation.get("reasoning")),
    }
    if label is not None:
        normalized[scale.estimation_key] = label
    return normalized


def normalize_module_tree(
    raw: Any,
    scale: Scale = TSHIRT_SCALE,
    project_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Coerce generator output into a well-formed module tree.

    - non-list collections become empty lists, non-dict nodes are dropped
    - every node gets a unique string id
    - labels are mapped onto `scale` and `estimated_hours` filled from it
    - metadata {generated_at, total_modules, project_name} is (re)written
    """
    source = raw if isinstance(raw, dict) else {}
    seen: Set[str] = set()
    modules: List[Dict[str, Any]] = []

    for m_idx, module in enumerate(_as_list(source.get("modules")), start=1):
        if not isinstance(module, dict):
            continue

        features: List[Dict[str, Any]] = []
        for f_idx, feature in enumerate(_as_list(module.get("features")), start=1):
            if not isinstance(feature, dict):
                continue

            sub_features: List[Dict[str, Any]] = []
            for s_idx, sub in enumerate(_as_list(feature.get("sub_features")), start=1):
                if not isinstance(sub, dict):
                    continue
                node = {
                    "id": _unique_id(sub.get("id"), f"sub-{m_idx}-{f_idx}-{s_idx}", seen),
                    "name": _text(sub.get("name"), f"Task {s_idx}"),
                    "description": _text(sub.get("description")),
                }
                estimation = _normalize_estimation(
                    sub.get("estimation"), scale, f"sub-feature {node['id']}"
                )
                if estimation is not None:
                    node["estimation"] = estimation
                sub_features.append(node)

            features.append({
                "id": _unique_id(feature.get("id"), f"feature-{m_idx}-{f_idx}", seen),
                "name": _text(feature.get("name"), f"Feature {f_idx}"),
                "description": _text(feature.get("description")),
                "complexity": normalize_complexity(feature.get("complexity")),
                "dependencies": [_text(d) for d in _as_list(feature.get("dependencies")) if _text(d)],
                "integrations": [_text(i) for i in _as_list(feature.get("integrations")) if _text(i)],
                "sub_features": sub_features,
            })

        modules.append({
            "id": _unique_id(module.get("id"), f"module-{m_idx}", seen),
            "name": _text(module.get("name"), f"Module {m_idx}"),
            "description": _text(module.get("description")),
            "features": features,
        })

    metadata = dict(source.get("metadata") or {}) if isinstance(source.get("metadata"), dict) else {}
    metadata.update({
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "total_modules": len(modules),
        "project_name": project_name or metadata.get("project_name") or "",
    })

    return {"modules": modules, "metadata": metadata}


# -------------------------------------------------------------------
# Fallback tree (used when generation fails)
# -------------------------------------------------------------------

_FALLBACK_BLUEPRINT = [
    ("Project Foundation", "Setup, architecture and shared infrastructure", [
        ("Project Setup", "low", [
            ("Repository and CI pipeline", "Version control, build and test automation", 2),
            ("Environment configuration", "Local, staging and production settings", 1),
        ]),
        ("Architecture and Data Model", "medium", [
            ("Database schema", "Core entities and relationships", 4),
            ("Authentication", "Sign up, login and session handling", 4),
        ]),
    ]),
    ("Core Functionality", "Main features described in the project brief", [
        ("Requirements Breakdown", "medium", [
            ("Requirements review", "Walk through the documents and refine scope", 2),
            ("Core feature implementation", "Primary user-facing workflows", 8),
        ]),
        ("User Interface", "medium", [
            ("Main screens", "Layouts and navigation for the core workflows", 8),
            ("Forms and validation", "Input handling and error states", 2),
        ]),
    ]),
    ("Quality and Delivery", "Testing, release and handover", [
        ("Testing", "low", [
            ("Automated tests", "Unit and integration coverage for core flows", 4),
            ("User acceptance testing", "Support stakeholders through UAT", 2),
        ]),
        ("Deployment", "low", [
            ("Production release", "Deploy, smoke test and monitor", 2),
        ]),
    ]),
]


def fallback_module_tree(
    project_name: str,
    description: str = "",
    scale: Scale = TSHIRT_SCALE,
) -> Dict[str, Any]:
    """
    Generic, fully-estimated tree so the rollup always has something to
    work on when the generator is unavailable.
    """
    modules: List[Dict[str, Any]] = []
    for m_idx, (m_name, m_desc, features) in enumerate(_FALLBACK_BLUEPRINT, start=1):
        module_features = []
        for f_idx, (f_name, complexity, subs) in enumerate(features, start=1):
            sub_features = []
            for s_idx, (s_name, s_desc, hours) in enumerate(subs, start=1):
                label = hours_to_label(hours, scale)
                sub_features.append({
                    "id": f"sub-{m_idx}-{f_idx}-{s_idx}",
                    "name": s_name,
                    "description": s_desc,
                    "estimation": {
                        scale.estimation_key: label,
                        "estimated_hours": scale.label_to_hours(label),
                        "reasoning": "Default estimate; review after uploading more detail",
                    },
                })
            module_features.append({
                "id": f"feature-{m_idx}-{f_idx}",
                "name": f_name,
                "description": f"{f_name} for {project_name}",
                "complexity": complexity,
                "dependencies": [],
                "integrations": [],
                "sub_features": sub_features,
            })
        modules.append({
            "id": f"module-{m_idx}",
            "name": m_name,
            "description": m_desc if m_idx > 1 or not description else f"{m_desc}. {description}",
            "features": module_features,
        })

    tree = normalize_module_tree({"modules": modules}, scale, project_name)
    tree["metadata"]["fallback"] = True
    return tree


# -------------------------------------------------------------------
# Public entrypoints
# -------------------------------------------------------------------

def generate_module_tree(
    project_name: str,
    description: str,
    documents_text: str,
    scale: Scale = TSHIRT_SCALE,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Ask the module generator for a module → feature → sub-feature tree.

    Never raises: any failure (missing key, API error, malformed JSON, no
    modules) is logged and answered with `fallback_module_tree`.
    """
    payload = {
        "project_name": project_name,
        "project_description": description or "",
        "documents_text": _truncate(documents_text or ""),
        "scale": scale.name,
        "size_guide": [
            {"label": row["label"], "hours": row["hours"], "description": row["description"]}
            for row in scale.as_table()
        ],
    }

    try:
        raw = _call_llm_with_instruction(
            module_generator_agent.instruction,
            payload,
            expect_json=True,
            api_key=api_key,
            model=model,
        )
        if not isinstance(raw.get("modules"), list):
            raise GenerationError(
                "Module generator returned no 'modules' list",
                details={"keys": sorted(raw)},
            )
        tree = normalize_module_tree(raw, scale, project_name)
        if not tree["modules"]:
            raise GenerationError("Module generator returned an empty module list")
    except Exception as e:
        logger.warning("Module generation failed for %r, using fallback tree: %s", project_name, e)
        return fallback_module_tree(project_name, description, scale)

    logger.info(
        "Generated %d modules for %r (%s scale)",
        tree["metadata"]["total_modules"], project_name, scale.name,
    )
    return tree


def _coverage_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def analyze_project(
    project_name: str,
    description: str,
    documents_text: str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Coverage analysis of the project documents against
    REQUIREMENTS_CHECKLIST.

    Returns a dict of the form:
    {
        "functional_coverage": 80,
        "business_coverage": 60,
        "user_experience_coverage": 40,
        "scope_coverage": 50,
        "overall_clarity": 65,
        "missing_items": ["Device requirements"],
        "project_summary": "..."
    }

    On failure all scores are 0 and `project_summary` says why.
    """
    payload = {
        "project_name": project_name,
        "project_description": description or "",
        "documents_text": _truncate(documents_text or ""),
        "checklist": REQUIREMENTS_CHECKLIST,
    }

    try:
        data = _call_llm_with_instruction(
            analysis_agent.instruction,
            payload,
            expect_json=True,
            api_key=api_key,
            model=model,
        )
    except Exception as e:
        logger.warning("Project analysis failed for %r: %s", project_name, e)
        result: Dict[str, Any] = {name: 0 for name in COVERAGE_FIELDS}
        result["missing_items"] = []
        result["project_summary"] = f"Analysis unavailable: {e}"
        return result

    result = {name: _coverage_score(data.get(name)) for name in COVERAGE_FIELDS}
    result["missing_items"] = [_text(i) for i in _as_list(data.get("missing_items")) if _text(i)]
    result["project_summary"] = _text(data.get("project_summary"), "No summary available")
    return result
