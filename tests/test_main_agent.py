"""Tests for module generation, normalisation and analysis (LLM patched out)."""

import json
from unittest.mock import MagicMock, patch

import pytest

from estimator import main_agent
from estimator.exceptions import ConfigError
from estimator.main_agent import (
    REQUIREMENTS_CHECKLIST,
    _safe_json_loads,
    analyze_project,
    fallback_module_tree,
    generate_module_tree,
    normalize_module_tree,
)
from estimator.tools.estimation_scale import FIBONACCI_SCALE, TSHIRT_SCALE
from estimator.tools.rollup_calculator import calculate_module_estimation

LLM = "estimator.main_agent._call_llm_with_instruction"


class TestSafeJsonLoads:

    def test_plain_json(self):
        assert _safe_json_loads('{"modules": []}') == {"modules": []}

    def test_json_wrapped_in_prose(self):
        text = 'Here you go:\n```json\n{"modules": [1]}\n```'
        assert _safe_json_loads(text) == {"modules": [1]}

    def test_garbage(self):
        assert _safe_json_loads("no json here") == {"raw": "no json here"}

    def test_non_object(self):
        assert _safe_json_loads("[1, 2]") == {"raw": [1, 2]}


class TestCallLlm:

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GENAI_API_KEY", raising=False)
        with pytest.raises(ConfigError):
            main_agent._call_llm_with_instruction("Do it", {})

    def test_json_request(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
        monkeypatch.setenv("ESTIMATOR_MODEL", "gemini-test")
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text='{"ok": true}')

        with patch.object(main_agent.genai, "Client", return_value=client):
            result = main_agent._call_llm_with_instruction("Do it", {"a": 1})

        assert result == {"ok": True}
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["config"]["response_mime_type"] == "application/json"
        assert '"a": 1' in kwargs["contents"][0]

    def test_explicit_key_and_model_win(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GENAI_API_KEY", raising=False)
        monkeypatch.setenv("ESTIMATOR_MODEL", "gemini-from-env")
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text="{}")

        with patch.object(main_agent.genai, "Client", return_value=client) as make_client:
            main_agent._call_llm_with_instruction("Do it", {}, api_key="settings-key", model="gemini-settings")

        make_client.assert_called_once_with(api_key="settings-key")
        assert client.models.generate_content.call_args.kwargs["model"] == "gemini-settings"

    def test_entrypoints_forward_key_and_model(self):
        with patch(LLM, return_value={"modules": [{"name": "A"}]}) as llm:
            generate_module_tree("Demo", "", "text", api_key="k", model="m")
        assert llm.call_args.kwargs["api_key"] == "k"
        assert llm.call_args.kwargs["model"] == "m"

        with patch(LLM, return_value={}) as llm:
            analyze_project("Demo", "", "text", api_key="k", model="m")
        assert llm.call_args.kwargs["api_key"] == "k"
        assert llm.call_args.kwargs["model"] == "m"


class TestNormalizeModuleTree:

    def test_fills_ids_names_and_hours(self):
        raw = {"modules": [{"features": [{"sub_features": [
            {"name": "Login", "estimation": {"tshirt_size": "m", "estimated_hours": 99, "reasoning": "form"}},
        ]}]}]}

        tree = normalize_module_tree(raw, TSHIRT_SCALE, "Demo")

        module = tree["modules"][0]
        feature = module["features"][0]
        sub = feature["sub_features"][0]
        assert (module["id"], module["name"]) == ("module-1", "Module 1")
        assert (feature["id"], feature["complexity"]) == ("feature-1-1", "medium")
        assert sub["id"] == "sub-1-1-1"
        assert sub["estimation"] == {"tshirt_size": "M", "estimated_hours": 2, "reasoning": "form"}
        assert tree["metadata"]["total_modules"] == 1
        assert tree["metadata"]["project_name"] == "Demo"
        assert "generated_at" in tree["metadata"]

    def test_drops_junk_nodes(self):
        raw = {"modules": [None, "x", {"name": "Real", "features": "nope"}]}
        tree = normalize_module_tree(raw)

        assert [m["name"] for m in tree["modules"]] == ["Real"]
        assert tree["modules"][0]["features"] == []

    def test_duplicate_ids_are_made_unique(self):
        raw = {"modules": [
            {"id": "same", "features": []},
            {"id": "same", "features": []},
        ]}
        ids = [m["id"] for m in normalize_module_tree(raw)["modules"]]
        assert ids[0] == "same"
        assert len(set(ids)) == 2

    def test_off_scale_label_uses_stored_hours(self):
        raw = {"modules": [{"features": [{"sub_features": [
            {"estimation": {"tshirt_size": "XXXL", "estimated_hours": 7}},
            {"estimation": {"tshirt_size": "huge"}},
            {"estimation": "L"},
        ]}]}]}

        subs = normalize_module_tree(raw)["modules"][0]["features"][0]["sub_features"]

        assert subs[0]["estimation"]["tshirt_size"] == "XL"
        assert subs[0]["estimation"]["estimated_hours"] == 8
        assert "tshirt_size" not in subs[1]["estimation"]
        assert subs[1]["estimation"]["estimated_hours"] == 0
        assert "estimation" not in subs[2]

    def test_normalized_tree_always_rolls_up(self):
        raw = {"modules": [{"features": [{"sub_features": [
            {"estimation": {"tshirt_size": "bogus"}},
            {"estimation": {"tshirt_size": "L"}},
        ]}]}]}

        result = calculate_module_estimation(normalize_module_tree(raw))
        assert result["totals"]["original_hours"] == 4

    def test_fibonacci_points_as_strings(self):
        raw = {"modules": [{"features": [{"sub_features": [
            {"estimation": {"fibonacci_points": "13"}},
        ]}]}]}
        sub = normalize_module_tree(raw, FIBONACCI_SCALE)["modules"][0]["features"][0]["sub_features"][0]
        assert sub["estimation"]["fibonacci_points"] == 13
        assert sub["estimation"]["estimated_hours"] == 34


class TestFallbackModuleTree:

    @pytest.mark.parametrize("scale", [TSHIRT_SCALE, FIBONACCI_SCALE], ids=["tshirt", "fibonacci"])
    def test_is_fully_estimated(self, scale):
        tree = fallback_module_tree("Demo", "A demo project", scale)

        assert tree["metadata"]["fallback"] is True
        assert tree["metadata"]["total_modules"] == len(tree["modules"]) == 3
        for module in tree["modules"]:
            for feature in module["features"]:
                for sub in feature["sub_features"]:
                    assert scale.is_valid_label(sub["estimation"][scale.estimation_key])

        result = calculate_module_estimation(tree, scale=scale)
        assert result["totals"]["original_hours"] > 0

    def test_description_is_used(self):
        tree = fallback_module_tree("Demo", "Clinic booking")
        assert "Clinic booking" in tree["modules"][0]["description"]


class TestGenerateModuleTree:

    def test_generated_tree_is_normalized(self):
        response = {"modules": [{"name": "Auth", "features": [{"name": "Login", "sub_features": [
            {"name": "Form", "estimation": {"tshirt_size": "s"}},
        ]}]}]}

        with patch(LLM, return_value=response) as llm:
            tree = generate_module_tree("Demo", "desc", "Users log in", TSHIRT_SCALE)

        payload = llm.call_args.args[1]
        assert payload["scale"] == "tshirt"
        assert payload["documents_text"] == "Users log in"
        assert [row["label"] for row in payload["size_guide"]] == TSHIRT_SCALE.labels
        assert tree["modules"][0]["features"][0]["sub_features"][0]["estimation"]["tshirt_size"] == "S"
        assert "fallback" not in tree["metadata"]

    def test_long_documents_are_truncated(self):
        with patch(LLM, return_value={"modules": [{"name": "A"}]}) as llm:
            generate_module_tree("Demo", "", "x" * (main_agent.MAX_DOCUMENT_CHARS + 500))
        assert len(llm.call_args.args[1]["documents_text"]) == main_agent.MAX_DOCUMENT_CHARS

    @pytest.mark.parametrize(
        "outcome",
        [
            {"raw": "not json"},
            {"modules": "later"},
            {"modules": []},
            {"modules": [None]},
        ],
    )
    def test_bad_responses_fall_back(self, outcome):
        with patch(LLM, return_value=outcome):
            tree = generate_module_tree("Demo", "", "text")
        assert tree["metadata"]["fallback"] is True

    def test_errors_fall_back(self, caplog):
        with patch(LLM, side_effect=ConfigError("Missing GOOGLE_API_KEY")):
            tree = generate_module_tree("Demo", "", "text", FIBONACCI_SCALE)

        assert tree["metadata"]["fallback"] is True
        assert "Missing GOOGLE_API_KEY" in caplog.text
        sub = tree["modules"][0]["features"][0]["sub_features"][0]
        assert "fibonacci_points" in sub["estimation"]


class TestAnalyzeProject:

    def test_scores_are_clamped_and_listed(self):
        response = {
            "functional_coverage": 85.4,
            "business_coverage": 140,
            "user_experience_coverage": -3,
            "scope_coverage": "50",
            "overall_clarity": None,
            "missing_items": ["Device requirements", "", None],
            "project_summary": "Clinic booking platform",
        }
        with patch(LLM, return_value=response) as llm:
            result = analyze_project("Demo", "desc", "docs")

        assert llm.call_args.args[1]["checklist"] == REQUIREMENTS_CHECKLIST
        assert result == {
            "functional_coverage": 85,
            "business_coverage": 100,
            "user_experience_coverage": 0,
            "scope_coverage": 50,
            "overall_clarity": 0,
            "missing_items": ["Device requirements"],
            "project_summary": "Clinic booking platform",
        }

    def test_missing_summary(self):
        with patch(LLM, return_value={}):
            assert analyze_project("Demo", "", "")["project_summary"] == "No summary available"

    def test_failure_returns_zeros(self):
        with patch(LLM, side_effect=RuntimeError("boom")):
            result = analyze_project("Demo", "", "docs")

        assert result["functional_coverage"] == 0
        assert result["overall_clarity"] == 0
        assert result["missing_items"] == []
        assert "boom" in result["project_summary"]

    def test_checklist_is_json_serialisable(self):
        assert json.loads(json.dumps(REQUIREMENTS_CHECKLIST)) == REQUIREMENTS_CHECKLIST
