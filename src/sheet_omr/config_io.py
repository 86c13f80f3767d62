# src/sheet_omr/config_io.py
from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import json

import yaml

from .scoring_defaults import DEFAULTS, ScoringDefaults
from .tools.binarizer import DEFAULT_BINARIZE, BinarizeParams


@dataclass(frozen=True)
class ColumnSpec:
    """One test element's bubble block, as fractions of the canonical frame."""
    name: str
    start_x: float
    start_y: float
    width: float
    height: float

    def __post_init__(self):
        for attr in ("start_x", "start_y", "width", "height"):
            v = getattr(self, attr)
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"column '{self.name}': {attr}={v} is outside [0, 1]")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"column '{self.name}': width and height must be > 0")


@dataclass(frozen=True)
class SheetLayout:
    columns: Tuple[ColumnSpec, ...]
    questions_per_column: int = 25
    choices_per_question: int = 4
    choice_labels: str = "ABCD"
    canonical_size: Tuple[int, int] = (1200, 1600)  # (W, H)

    def __post_init__(self):
        if not self.columns:
            raise ValueError("layout needs at least one column")
        if self.questions_per_column < 1:
            raise ValueError("questions_per_column must be >= 1")
        if self.choices_per_question < 2:
            raise ValueError("choices_per_question must be >= 2")
        if len(self.choice_labels) < self.choices_per_question:
            raise ValueError(
                f"choice_labels '{self.choice_labels}' is shorter than "
                f"choices_per_question={self.choices_per_question}"
            )
        w, h = self.canonical_size
        if w < 16 or h < 16:
            raise ValueError(f"canonical_size too small: {self.canonical_size}")

    @property
    def total_questions(self) -> int:
        return len(self.columns) * self.questions_per_column

    def label_for(self, detected: int) -> str:
        """Choice letter for a detected index; '' for no mark, '*' for multiple."""
        if detected == -2:
            return "*"
        if 0 <= detected < self.choices_per_question:
            return self.choice_labels[detected]
        return ""


@dataclass(frozen=True)
class SheetConfig:
    layout: SheetLayout
    scoring: ScoringDefaults = DEFAULTS
    binarize: BinarizeParams = DEFAULT_BINARIZE


DEFAULT_LAYOUT = SheetLayout(
    columns=tuple(
        ColumnSpec(f"element_{i + 1}", x, 0.22, 0.19, 0.72)
        for i, x in enumerate((0.06, 0.29, 0.52, 0.75))
    ),
)


def load_config_any(path: str | Path) -> Dict[str, Any]:
    """
    Prefer YAML, but transparently accept JSON.
    - .yml/.yaml -> YAML
    - .json -> JSON
    - anything else: YAML (a superset of JSON for our purposes)
    """
    p = Path(path)
    data = p.read_text(encoding="utf-8")
    if p.suffix.lower() == ".json":
        cfg = json.loads(data)
    else:
        cfg = yaml.safe_load(data)

    if not isinstance(cfg, dict):
        raise ValueError("Config root must be a mapping/object.")
    return cfg


def _column_from_dict(d: Dict[str, Any], index: int) -> ColumnSpec:
    if not isinstance(d, dict):
        raise ValueError(f"columns[{index}] must be a mapping")
    try:
        return ColumnSpec(
            name=str(d.get("name", f"element_{index + 1}")),
            start_x=float(d.get("x", d.get("start_x"))),
            start_y=float(d.get("y", d.get("start_y"))),
            width=float(d["width"]),
            height=float(d["height"]),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"columns[{index}] needs x, y, width, height") from e


def _overrides(cls, base, raw: Optional[Dict[str, Any]], section: str):
    if not raw:
        return base
    if not isinstance(raw, dict):
        raise ValueError(f"'{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"unknown keys in '{section}': {', '.join(unknown)}")
    merged = {f.name: getattr(base, f.name) for f in fields(cls)}
    merged.update(raw)
    try:
        return cls(**merged)
    except TypeError as e:
        raise ValueError(f"invalid value in '{section}': {e}") from e


def layout_from_dict(cfg: Dict[str, Any]) -> SheetLayout:
    cols_raw = cfg.get("columns")
    if not cols_raw or not isinstance(cols_raw, list):
        raise ValueError("layout config needs a non-empty 'columns' list")
    columns = tuple(_column_from_dict(c, i) for i, c in enumerate(cols_raw))

    size = cfg.get("canonical_size", DEFAULT_LAYOUT.canonical_size)
    if not isinstance(size, (list, tuple)) or len(size) != 2:
        raise ValueError("canonical_size must be [width, height]")

    choices = int(cfg.get("choices_per_question", DEFAULT_LAYOUT.choices_per_question))
    labels = cfg.get("choice_labels")
    if labels is None:
        labels = "".join(chr(ord("A") + k) for k in range(choices))
    elif isinstance(labels, list) and all(isinstance(x, str) for x in labels):
        labels = "".join(labels)
    elif not isinstance(labels, str):
        raise ValueError("choice_labels must be a string like 'ABCD' or a list of letters")

    return SheetLayout(
        columns=columns,
        questions_per_column=int(cfg.get("questions_per_column", DEFAULT_LAYOUT.questions_per_column)),
        choices_per_question=choices,
        choice_labels=labels,
        canonical_size=(int(size[0]), int(size[1])),
    )


def sheet_config_from_dict(cfg: Dict[str, Any]) -> SheetConfig:
    return SheetConfig(
        layout=layout_from_dict(cfg),
        scoring=_overrides(ScoringDefaults, DEFAULTS, cfg.get("scoring"), "scoring"),
        binarize=_overrides(BinarizeParams, DEFAULT_BINARIZE, cfg.get("binarize"), "binarize"),
    )


def load_sheet_config(path: str | Path | None) -> SheetConfig:
    """Load a layout file (YAML/JSON); None gives the built-in 4 x 25 x 4 sheet."""
    if path is None:
        return SheetConfig(layout=DEFAULT_LAYOUT)
    return sheet_config_from_dict(load_config_any(path))


def layout_to_dict(layout: SheetLayout) -> Dict[str, Any]:
    columns: List[Dict[str, Any]] = [
        {"name": c.name, "x": c.start_x, "y": c.start_y, "width": c.width, "height": c.height}
        for c in layout.columns
    ]
    return {
        "canonical_size": list(layout.canonical_size),
        "questions_per_column": layout.questions_per_column,
        "choices_per_question": layout.choices_per_question,
        "choice_labels": layout.choice_labels,
        "columns": columns,
    }
