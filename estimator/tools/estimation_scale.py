# estimator/tools/estimation_scale.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from estimator.exceptions import ScaleError, UnknownLabel


@dataclass(frozen=True)
class ScaleStep:
    label: Hashable
    hours: float
    description: str


@dataclass(frozen=True)
class Scale:
    """
    An ordered set of size labels, smallest effort first.

    `estimation_key` is the key a sub-feature's `estimation` dict stores its
    label under ("tshirt_size" or "fibonacci_points").
    """
    name: str
    estimation_key: str
    steps: Tuple[ScaleStep, ...]
    _index: Dict[Hashable, int] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        if not self.steps:
            raise ScaleError(f"Scale '{self.name}' has no steps")

        index: Dict[Hashable, int] = {}
        previous_hours: Optional[float] = None
        for position, step in enumerate(self.steps):
            if step.label in index:
                raise ScaleError(
                    f"Scale '{self.name}' repeats label {step.label!r}"
                )
            if previous_hours is not None and step.hours < previous_hours:
                raise ScaleError(
                    f"Scale '{self.name}' is not monotonic: {step.label!r} "
                    f"({step.hours}h) is smaller than the step before it "
                    f"({previous_hours}h)"
                )
            index[step.label] = position
            previous_hours = step.hours

        # frozen dataclass: populate the lookup cache in place
        self._index.update(index)

    @property
    def labels(self) -> List[Hashable]:
        return [step.label for step in self.steps]

    @property
    def first(self) -> Hashable:
        return self.steps[0].label

    @property
    def last(self) -> Hashable:
        return self.steps[-1].label

    def __len__(self) -> int:
        return len(self.steps)

    def __contains__(self, label: Any) -> bool:
        return self.resolve(label) is not None

    def resolve(self, label: Any) -> Optional[Hashable]:
        """
        Map a raw label (as stored by the generator or a user) to the
        canonical label of this scale, or None when it does not belong.

        T-shirt labels match case-insensitively; numeric labels also match
        their string form ("5" -> 5). Booleans never match.
        """
        if label is None or isinstance(label, bool):
            return None
        try:
            if label in self._index:
                return self.steps[self._index[label]].label
        except TypeError:
            # unhashable (list, dict) coming from malformed data
            return None

        text = str(label).strip()
        if not text:
            return None
        for candidate in self._index:
            if str(candidate).upper() == text.upper():
                return candidate
        return None

    def position(self, label: Any) -> Optional[int]:
        canonical = self.resolve(label)
        if canonical is None:
            return None
        return self._index[canonical]

    def step(self, label: Any) -> ScaleStep:
        position = self.position(label)
        if position is None:
            raise UnknownLabel(label, self.name)
        return self.steps[position]

    def label_to_hours(self, label: Any) -> float:
        return self.step(label).hours

    def is_valid_label(self, label: Any) -> bool:
        return self.resolve(label) is not None

    def as_table(self) -> List[Dict[str, Any]]:
        """Rows for size-guide tables (UI and markdown export)."""
        return [
            {"label": s.label, "hours": s.hours, "description": s.description}
            for s in self.steps
        ]


def _build(
    name: str,
    estimation_key: str,
    rows: Iterable[Tuple[Hashable, float, str]],
) -> Scale:
    return Scale(
        name=name,
        estimation_key=estimation_key,
        steps=tuple(ScaleStep(label, hours, desc) for label, hours, desc in rows),
    )


TSHIRT_SCALE = _build(
    "tshirt",
    "tshirt_size",
    [
        ("XS", 0.5, "Very simple task (basic CRUD, simple UI)"),
        ("S", 1, "Simple task (form validation, basic API)"),
        ("M", 2, "Small task (authentication flow, data processing)"),
        ("L", 4, "Medium task (complex business logic, integrations)"),
        ("XL", 8, "Large task (full feature with multiple components)"),
        ("XXL", 16, "Very large task (complex system integration)"),
    ],
)

FIBONACCI_SCALE = _build(
    "fibonacci",
    "fibonacci_points",
    [
        (1, 2, "Very simple task"),
        (2, 4, "Simple task"),
        (3, 6, "Small task"),
        (5, 14, "Medium task"),
        (8, 20, "Large task"),
        (13, 34, "Very large task"),
        (21, 54, "Epic task"),
        (34, 88, "Should be broken down"),
        (55, 144, "Too large - must break down"),
    ],
)

SCALES: Dict[str, Scale] = {
    TSHIRT_SCALE.name: TSHIRT_SCALE,
    FIBONACCI_SCALE.name: FIBONACCI_SCALE,
}


# -------------------------------------------------------------------
# Table lookups
# -------------------------------------------------------------------

def get_scale(name: Optional[str]) -> Scale:
    """Return a registered scale by name ("tshirt" when name is empty)."""
    key = (name or TSHIRT_SCALE.name).strip().lower()
    scale = SCALES.get(key)
    if scale is None:
        raise ScaleError(
            f"Unknown scale {name!r}; expected one of {sorted(SCALES)}"
        )
    return scale


def label_to_hours(label: Any, scale: Scale = TSHIRT_SCALE) -> float:
    return scale.label_to_hours(label)


def is_valid_label(label: Any, scale: Scale = TSHIRT_SCALE) -> bool:
    return scale.is_valid_label(label)


def hours_to_label(hours: float, scale: Scale = TSHIRT_SCALE) -> Hashable:
    """Closest label for an hour figure; the smaller label wins ties."""
    closest = scale.first
    min_diff = abs(hours - scale.steps[0].hours)
    for step in scale.steps:
        diff = abs(hours - step.hours)
        if diff < min_diff:
            min_diff = diff
            closest = step.label
    return closest


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def detect_scale(modules_data: Any, default: Scale = TSHIRT_SCALE) -> Scale:
    """
    Guess which scale a tree was estimated with from the first sub-feature
    estimation that carries a known key.
    """
    if not isinstance(modules_data, dict):
        return default
    for module in _as_list(modules_data.get("modules")):
        if not isinstance(module, dict):
            continue
        for feature in _as_list(module.get("features")):
            if not isinstance(feature, dict):
                continue
            for sub in _as_list(feature.get("sub_features")):
                estimation = sub.get("estimation") if isinstance(sub, dict) else None
                if not isinstance(estimation, dict):
                    continue
                for scale in SCALES.values():
                    if estimation.get(scale.estimation_key) is not None:
                        return scale
    return default


# -------------------------------------------------------------------
# Navigation (clamped, never raises)
# -------------------------------------------------------------------

def next_label(label: Any, scale: Scale = TSHIRT_SCALE) -> Any:
    position = scale.position(label)
    if position is None or position == len(scale) - 1:
        return label
    return scale.steps[position + 1].label


def previous_label(label: Any, scale: Scale = TSHIRT_SCALE) -> Any:
    position = scale.position(label)
    if position is None or position == 0:
        return label
    return scale.steps[position - 1].label
