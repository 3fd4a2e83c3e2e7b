# run_local.py

import argparse
import json
import math

from estimator.config import configure_logging, load_settings
from estimator.exceptions import ValidationError
from estimator.main_agent import generate_module_tree
from estimator.tools.estimation_scale import get_scale
from estimator.tools.scenario_adjuster import validate_team_velocity
from estimator.tools.timeline_estimator import estimate_timeline


def _json_safe(value):
    # json.dumps would emit Infinity, which is not valid JSON
    if isinstance(value, float) and math.isinf(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


def main() -> None:
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Generate modules and a scenario rollup from pasted text.")
    parser.add_argument("--name", default="Local Project", help="Project name")
    parser.add_argument("--scale", default=settings.default_scale, choices=["tshirt", "fibonacci"])
    parser.add_argument("--velocity", type=float, default=settings.default_team_velocity,
                        help="Team velocity in hours per sprint")
    args = parser.parse_args()
    try:
        velocity = validate_team_velocity(args.velocity)
    except ValidationError as e:
        parser.error(str(e))

    configure_logging(settings.log_level)

    print("=== Project Estimator (Local Run) ===")
    print("Paste your project description (requirements, notes, etc.).")
    print("Finish with an empty line.\n")

    lines = []
    while True:
        try:
            line = input()
        except EOFError:
            break
        if not line.strip():
            break
        lines.append(line)

    raw_text = "\n".join(lines)
    scale = get_scale(args.scale)

    tree = generate_module_tree(
        args.name, "", raw_text, scale,
        api_key=settings.genai_api_key,
        model=settings.genai_model,
    )
    timeline = estimate_timeline(tree, scale, velocity)

    print("\n=== MODULES (JSON) ===")
    print(json.dumps(tree, indent=2))
    print("\n=== SCENARIO ROLLUP (JSON) ===")
    print(json.dumps(_json_safe(timeline), indent=2))


if __name__ == "__main__":
    main()
