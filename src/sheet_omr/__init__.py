"""sheet-omr: optical mark recognition for photographed answer sheets."""
from .analyze_core import analyze
from .config_io import DEFAULT_LAYOUT, ColumnSpec, SheetConfig, SheetLayout, load_sheet_config
from .results import MULTIPLE_MARKS, NO_MARK, AnalysisResult, DetectedAnswer, SheetMetadata
from .scoring_defaults import DEFAULTS, ScoringDefaults, apply_overrides

__all__ = [
    "analyze",
    "DEFAULT_LAYOUT",
    "ColumnSpec",
    "SheetConfig",
    "SheetLayout",
    "load_sheet_config",
    "MULTIPLE_MARKS",
    "NO_MARK",
    "AnalysisResult",
    "DetectedAnswer",
    "SheetMetadata",
    "DEFAULTS",
    "ScoringDefaults",
    "apply_overrides",
]

__version__ = "0.3.0"
