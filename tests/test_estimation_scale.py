"""Tests for the scale table and navigation helpers."""

import pytest

from estimator.exceptions import ScaleError, UnknownLabel
from estimator.tools.estimation_scale import (
    FIBONACCI_SCALE,
    SCALES,
    TSHIRT_SCALE,
    Scale,
    ScaleStep,
    detect_scale,
    get_scale,
    hours_to_label,
    is_valid_label,
    label_to_hours,
    next_label,
    previous_label,
)


class TestScaleTable:
    """Label -> hours lookups."""

    def test_tshirt_hours(self):
        expected = {"XS": 0.5, "S": 1, "M": 2, "L": 4, "XL": 8, "XXL": 16}
        for label, hours in expected.items():
            assert label_to_hours(label) == hours

    def test_fibonacci_hours(self):
        expected = {1: 2, 2: 4, 3: 6, 5: 14, 8: 20, 13: 34, 21: 54, 34: 88, 55: 144}
        for points, hours in expected.items():
            assert label_to_hours(points, FIBONACCI_SCALE) == hours

    def test_labels_are_matched_loosely(self):
        """Lowercase sizes and stringified points resolve to the canonical label."""
        assert TSHIRT_SCALE.resolve("xl") == "XL"
        assert TSHIRT_SCALE.resolve(" m ") == "M"
        assert FIBONACCI_SCALE.resolve("13") == 13
        assert FIBONACCI_SCALE.resolve(5.0) == 5
        assert label_to_hours("5", FIBONACCI_SCALE) == 14

    def test_unknown_label_raises(self):
        with pytest.raises(UnknownLabel) as exc_info:
            label_to_hours("XXXL")
        assert exc_info.value.label == "XXXL"
        assert exc_info.value.scale_name == "tshirt"
        assert "XXXL" in str(exc_info.value)

    def test_unknown_label_is_a_key_error(self):
        with pytest.raises(KeyError):
            label_to_hours(4, FIBONACCI_SCALE)

    def test_is_valid_label(self):
        assert is_valid_label("L")
        assert not is_valid_label("XXXL")
        assert not is_valid_label(None)
        assert not is_valid_label(True)
        assert not is_valid_label(["M"])
        assert not is_valid_label("")
        assert is_valid_label(21, FIBONACCI_SCALE)
        assert not is_valid_label("M", FIBONACCI_SCALE)

    def test_scales_are_monotonic(self):
        for scale in SCALES.values():
            hours = [step.hours for step in scale.steps]
            assert hours == sorted(hours)

    def test_as_table(self):
        rows = TSHIRT_SCALE.as_table()
        assert [r["label"] for r in rows] == ["XS", "S", "M", "L", "XL", "XXL"]
        assert all(r["description"] for r in rows)


class TestScaleConstruction:
    """A Scale validates its own steps."""

    def test_rejects_decreasing_hours(self):
        with pytest.raises(ScaleError, match="not monotonic"):
            Scale("broken", "size", (ScaleStep("A", 4, ""), ScaleStep("B", 2, "")))

    def test_rejects_duplicate_labels(self):
        with pytest.raises(ScaleError, match="repeats"):
            Scale("dupes", "size", (ScaleStep("A", 1, ""), ScaleStep("A", 2, "")))

    def test_rejects_empty_scale(self):
        with pytest.raises(ScaleError):
            Scale("empty", "size", ())

    def test_plateau_is_allowed(self):
        scale = Scale("flat", "size", (ScaleStep("A", 1, ""), ScaleStep("B", 1, "")))
        assert len(scale) == 2


class TestScaleRegistry:

    def test_get_scale(self):
        assert get_scale("tshirt") is TSHIRT_SCALE
        assert get_scale("Fibonacci") is FIBONACCI_SCALE
        assert get_scale(None) is TSHIRT_SCALE

    def test_get_unknown_scale(self):
        with pytest.raises(ScaleError):
            get_scale("planning-poker")

    def test_hours_to_label_picks_closest(self):
        assert hours_to_label(7) == "XL"
        assert hours_to_label(0.1) == "XS"
        assert hours_to_label(100) == "XXL"
        assert hours_to_label(15, FIBONACCI_SCALE) == 5

    def test_hours_to_label_prefers_smaller_on_tie(self):
        assert hours_to_label(3) == "M"
        assert hours_to_label(10, FIBONACCI_SCALE) == 3

    def test_detect_scale(self, sample_tree, fibonacci_tree):
        assert detect_scale(sample_tree) is TSHIRT_SCALE
        assert detect_scale(fibonacci_tree) is FIBONACCI_SCALE
        assert detect_scale({"modules": "oops"}, FIBONACCI_SCALE) is FIBONACCI_SCALE
        assert detect_scale(None) is TSHIRT_SCALE


class TestNavigation:
    """next/previous are clamped and never raise."""

    @pytest.mark.parametrize("scale", list(SCALES.values()), ids=list(SCALES))
    def test_next_then_previous_round_trips(self, scale):
        for label in scale.labels:
            if label == scale.last:
                assert next_label(label, scale) == label
            else:
                assert previous_label(next_label(label, scale), scale) == label

    @pytest.mark.parametrize("scale", list(SCALES.values()), ids=list(SCALES))
    def test_previous_then_next_round_trips(self, scale):
        for label in scale.labels:
            if label == scale.first:
                assert previous_label(label, scale) == label
            else:
                assert next_label(previous_label(label, scale), scale) == label

    @pytest.mark.parametrize("scale", list(SCALES.values()), ids=list(SCALES))
    def test_next_never_reduces_hours(self, scale):
        for label in scale.labels:
            assert scale.label_to_hours(next_label(label, scale)) >= scale.label_to_hours(label)

    def test_clamped_at_both_ends(self):
        assert next_label("XXL") == "XXL"
        assert previous_label("XS") == "XS"
        assert next_label(55, FIBONACCI_SCALE) == 55
        assert previous_label(1, FIBONACCI_SCALE) == 1

    def test_unknown_label_is_returned_unchanged(self):
        assert next_label("XXXL") == "XXXL"
        assert previous_label(4, FIBONACCI_SCALE) == 4
        assert next_label(None) is None

    def test_loose_labels_navigate_from_canonical(self):
        assert next_label("m") == "L"
        assert previous_label("8", FIBONACCI_SCALE) == 5
