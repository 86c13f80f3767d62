# sheet_omr/scoring_defaults.py
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class ScoringDefaults:
    # Single source of truth for the per-question classification thresholds.
    # Both ratios need calibrating against real scans; these are starting points.
    min_fill_multiplier: float = 1.2   # best must reach mean(row) * this, else no mark
    dominance_ratio: float = 0.7       # second > best * this -> multiple marks
    min_abs: float = 0.05              # absolute floor on the best score (score range 0..2)
    cell_padding: float = 0.12         # fraction of a cell trimmed on each side before scoring

    def __post_init__(self):
        if self.min_fill_multiplier <= 0:
            raise ValueError("min_fill_multiplier must be > 0")
        if self.dominance_ratio <= 0:
            raise ValueError("dominance_ratio must be > 0")
        if self.min_abs < 0:
            raise ValueError("min_abs must be >= 0")
        if not 0.0 <= self.cell_padding < 0.5:
            raise ValueError("cell_padding must be in [0, 0.5)")


DEFAULTS = ScoringDefaults()


def apply_overrides(
    base: ScoringDefaults = DEFAULTS,
    min_fill_multiplier: float | None = None,
    dominance_ratio: float | None = None,
    min_abs: float | None = None,
    cell_padding: float | None = None,
) -> ScoringDefaults:
    # produce an overridden immutable config without mutating `base`
    changes = {
        k: v for k, v in (
            ("min_fill_multiplier", min_fill_multiplier),
            ("dominance_ratio", dominance_ratio),
            ("min_abs", min_abs),
            ("cell_padding", cell_padding),
        ) if v is not None
    }
    return replace(base, **changes) if changes else base
