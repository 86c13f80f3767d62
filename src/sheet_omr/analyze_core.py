# src/sheet_omr/analyze_core.py
from __future__ import annotations
import logging
from typing import Optional

import numpy as np

from .config_io import DEFAULT_LAYOUT, SheetLayout
from .results import AnalysisResult, SheetMetadata
from .scoring_defaults import DEFAULTS, ScoringDefaults
from .tools.binarizer import DEFAULT_BINARIZE, BinarizeParams, binarize
from .tools.grid_scorer import score_grid
from .tools.image_io import DebugSink, is_usable_image, rotate_upright
from .tools.qr_metadata import decode_metadata
from .tools.sheet_locator import locate_and_rectify

logger = logging.getLogger(__name__)


def _emit(sink: Optional[DebugSink], name: str, image: Optional[np.ndarray]) -> None:
    """Hand an intermediate image to the debug sink; sink failures never affect results."""
    if sink is None or image is None:
        return
    try:
        sink(name, image)
    except Exception as e:
        logger.warning("debug sink failed for %s: %s", name, e)


def analyze(
    image: Optional[np.ndarray],
    layout: SheetLayout = DEFAULT_LAYOUT,
    *,
    rotation: int = 0,
    scoring: ScoringDefaults = DEFAULTS,
    binarize_params: BinarizeParams = DEFAULT_BINARIZE,
    decode_qr: bool = True,
    debug_sink: Optional[DebugSink] = None,
) -> AnalysisResult:
    """
    Run the full image -> answers pipeline on one photo or scan.

    Steps: rotate upright -> decode QR metadata (independent of the sheet
    outline) -> locate and rectify the sheet -> binarize -> score the grid.

    A missing sheet, a missing QR code and ambiguous rows are all ordinary
    results. An unusable input (None, empty, wrong dtype) returns an empty
    result. Anything else, e.g. MemoryError, propagates to the caller.
    """
    if not is_usable_image(image):
        logger.warning("analyze: unusable input image, skipping")
        return AnalysisResult(rotation=rotation)

    upright = rotate_upright(image, rotation)

    metadata: Optional[SheetMetadata] = decode_metadata(upright) if decode_qr else None

    warped = locate_and_rectify(upright, size=layout.canonical_size)
    if warped is None:
        logger.info("no sheet found")
        return AnalysisResult(metadata=metadata, answers=[], sheet_found=False, rotation=rotation)
    _emit(debug_sink, "01_warped", warped)

    mask = binarize(warped, binarize_params)
    _emit(debug_sink, "02_thresh", mask)

    answers, annotated = score_grid(mask, warped if debug_sink else None, layout, scoring)
    _emit(debug_sink, "03_detected_boxes", annotated)

    return AnalysisResult(metadata=metadata, answers=answers, sheet_found=True, rotation=rotation)
