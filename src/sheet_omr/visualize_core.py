# src/sheet_omr/visualize_core.py

from __future__ import annotations
from pathlib import Path
from typing import Optional, Tuple

import cv2 as cv
import numpy as np

from .config_io import SheetLayout
from .tools.geometry import Rect, cell_rects, fractional_region
from .tools.image_io import load_images, save_image
from .tools.sheet_locator import find_sheet_quad, rectify

ZONE_COLOR = (0, 255, 0)
CELL_COLOR = (0, 200, 0)
LABEL_COLOR = (0, 255, 255)


def _draw_label(img_bgr: np.ndarray, text: str, x: int, y: int) -> None:
    # dark outline under the text so it reads on any background
    cv.putText(img_bgr, text, (x + 6, y + 22), cv.FONT_HERSHEY_SIMPLEX, 0.7, (0, 0, 0), 3, cv.LINE_AA)
    cv.putText(img_bgr, text, (x + 6, y + 22), cv.FONT_HERSHEY_SIMPLEX, 0.7, LABEL_COLOR, 2, cv.LINE_AA)


def draw_layout(img_bgr: np.ndarray, layout: SheetLayout, pad: float = 0.12,
                label_columns: bool = True) -> np.ndarray:
    """Return a copy of `img_bgr` with every column zone and padded cell drawn."""
    out = img_bgr.copy() if img_bgr.ndim == 3 else cv.cvtColor(img_bgr, cv.COLOR_GRAY2BGR)
    h, w = out.shape[:2]
    for spec in layout.columns:
        zone: Rect = fractional_region((w, h), spec)
        x0, y0, x1, y1 = zone
        cv.rectangle(out, (x0, y0), (x1 - 1, y1 - 1), ZONE_COLOR, 2)
        for row in cell_rects(zone, layout.questions_per_column, layout.choices_per_question, pad=pad):
            for (cx0, cy0, cx1, cy1) in row:
                cv.rectangle(out, (cx0, cy0), (cx1 - 1, cy1 - 1), CELL_COLOR, 1)
        if label_columns:
            _draw_label(out, spec.name, x0, y0)
    return out


def overlay_layout(
    input_path: str,
    layout: SheetLayout,
    out_image: str = "layout_overlay.png",
    rectify_sheet: bool = True,
    pad: float = 0.12,
    dpi: int = 200,
) -> Tuple[str, Optional[np.ndarray]]:
    """
    Draw the layout over the first page of `input_path` and write a PNG.

    With `rectify_sheet` the page is first warped to the canonical frame,
    which is what the grid scorer sees. Returns (output path, sheet corners
    or None). When no sheet is found the page is resized to the canonical
    size instead so the overlay is still useful for calibration.
    """
    img = load_images(input_path, dpi=dpi)[0]
    size = layout.canonical_size
    quad = None
    if rectify_sheet:
        quad = find_sheet_quad(img)
        if quad is not None:
            img = rectify(img, quad, size)
    if quad is None:
        img = cv.resize(img, size, interpolation=cv.INTER_AREA)

    vis = draw_layout(img, layout, pad=pad)
    return save_image(vis, Path(out_image)), quad
