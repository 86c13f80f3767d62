#!/usr/bin/env python3
"""
grid_scorer.py
--------------
Grid-based bubble scoring for a rectified answer sheet.

Each configured column (one test element) is cut into
questions_per_column rows x choices_per_question cells. Every cell is
scored on the binary mark mask:

  fill_ratio        = foreground px / padded cell area
  max_contour_ratio = pixels in the largest foreground blob / padded cell area
  score             = fill_ratio + max_contour_ratio

The blob term separates one solid mark from scattered paper-grain
pixels and from the thin printed outline of an empty bubble.

Per question the scores are ranked:
  - best < mean(scores) * min_fill_multiplier, or best < min_abs -> NO_MARK (-1)
  - second > best * dominance_ratio                              -> MULTIPLE_MARKS (-2)
  - otherwise the best choice index.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import cv2

from ..config_io import SheetLayout
from ..results import MULTIPLE_MARKS, NO_MARK, DetectedAnswer
from ..scoring_defaults import DEFAULTS, ScoringDefaults
from .geometry import Rect, cell_rects, fractional_region, rect_area

logger = logging.getLogger(__name__)

CELL_COLOR = (255, 0, 0)       # BGR blue
WINNER_COLOR = (0, 0, 255)     # BGR red
MULTI_COLOR = (0, 165, 255)    # BGR orange

# ------------------------------------------------------------------------------
# Scoring primitives
# ------------------------------------------------------------------------------


def cell_scores(mask: np.ndarray, rect: Rect) -> Tuple[float, float]:
    """Return (fill_ratio, max_contour_ratio) for one padded cell."""
    x0, y0, x1, y1 = rect
    area = float(rect_area(rect))
    if area <= 0:
        return 0.0, 0.0

    roi = mask[y0:y1, x0:x1]
    if roi.size == 0:
        return 0.0, 0.0

    fill = float(cv2.countNonZero(roi)) / area

    # solid pixel count of the biggest 8-connected blob; a printed ring counts only its ink
    n, _, stats, _ = cv2.connectedComponentsWithStats(roi, connectivity=8)
    largest = int(stats[1:, cv2.CC_STAT_AREA].max()) if n > 1 else 0
    return fill, min(1.0, float(largest) / area)


def cell_score(mask: np.ndarray, rect: Rect) -> float:
    fill, blob = cell_scores(mask, rect)
    return fill + blob


def classify_scores(scores: Sequence[float],
                    scoring: ScoringDefaults = DEFAULTS) -> int:
    """
    Resolve one question's choice scores to a choice index, NO_MARK or
    MULTIPLE_MARKS.
    """
    arr = np.asarray(scores, dtype=float)
    if arr.size == 0:
        return NO_MARK

    order = np.argsort(arr, kind="stable")[::-1]
    best_idx = int(order[0])
    best = float(arr[best_idx])
    second = float(arr[order[1]]) if arr.size > 1 else 0.0
    mean = float(arr.mean())

    # Blank rule: nothing stands out above the row's own noise floor
    if best < mean * scoring.min_fill_multiplier or best < scoring.min_abs:
        return NO_MARK

    # Separation rule
    if second > best * scoring.dominance_ratio:
        return MULTIPLE_MARKS

    return best_idx


# ------------------------------------------------------------------------------
# Grid decoding
# ------------------------------------------------------------------------------

def column_cells(layout: SheetLayout, frame_size: Tuple[int, int],
                 pad: float) -> List[List[List[Rect]]]:
    """Padded cell rects per column, indexed [column][question][choice]."""
    out = []
    for spec in layout.columns:
        region = fractional_region(frame_size, spec)
        out.append(cell_rects(region, layout.questions_per_column,
                              layout.choices_per_question, pad=pad))
    return out


def _annotate_row(vis: np.ndarray, rects: Sequence[Rect], detected: int) -> None:
    for i, (x0, y0, x1, y1) in enumerate(rects):
        if detected == MULTIPLE_MARKS:
            color, thickness = MULTI_COLOR, 2
        elif i == detected:
            color, thickness = WINNER_COLOR, 2
        else:
            color, thickness = CELL_COLOR, 1
        cv2.rectangle(vis, (x0, y0), (x1 - 1, y1 - 1), color, thickness)


def score_grid(
    mask: np.ndarray,
    frame: Optional[np.ndarray],
    layout: SheetLayout,
    scoring: ScoringDefaults = DEFAULTS,
) -> Tuple[List[DetectedAnswer], Optional[np.ndarray]]:
    """
    Classify every question of every column.

    `mask` is the binary mark mask; `frame` (same size, optional) is only
    used for the annotated debug copy, which is returned alongside the
    answers (None when no frame is given). Every (test_index, question)
    pair in the layout appears exactly once, in layout order.
    """
    if mask.ndim != 2:
        raise ValueError("mask must be a single-channel image")
    H, W = mask.shape[:2]

    vis: Optional[np.ndarray] = None
    if frame is not None:
        vis = frame.copy() if frame.ndim == 3 else cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)

    answers: List[DetectedAnswer] = []
    counts = {NO_MARK: 0, MULTIPLE_MARKS: 0}

    for test_index, grid in enumerate(column_cells(layout, (W, H), scoring.cell_padding)):
        for q, row in enumerate(grid):
            scores = [cell_score(mask, rect) for rect in row]
            detected = classify_scores(scores, scoring)
            if detected in counts:
                counts[detected] += 1
            answers.append(DetectedAnswer(test_index, q + 1, detected))
            if vis is not None:
                _annotate_row(vis, row, detected)

    logger.info("scored %d questions (%d blank, %d multiple)",
                len(answers), counts[NO_MARK], counts[MULTIPLE_MARKS])
    return answers, vis
