# src/sheet_omr/tools/geometry.py
from __future__ import annotations
from typing import List, Sequence, Tuple

import numpy as np

Rect = Tuple[int, int, int, int]  # (x0, y0, x1, y1), x1/y1 exclusive


# ---------- quadrilateral ----------
def order_quadrilateral(points) -> np.ndarray:
    """
    Order four corner points as (top-left, top-right, bottom-right, bottom-left).

    Uses the sum/difference heuristic:
      TL = min(x+y), BR = max(x+y), TR = min(y-x), BL = max(y-x).
    Cheap and correct for roughly axis-aligned convex quads. For a sheet
    rotated close to 45 degrees two corners can tie and the order degrades;
    polygon_is_convex() rejects the resulting quad.
    """
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 2)
    if pts.shape[0] != 4:
        raise ValueError(f"expected 4 points, got {pts.shape[0]}")

    s = pts.sum(axis=1)
    d = pts[:, 1] - pts[:, 0]

    rect = np.zeros((4, 2), dtype=np.float32)
    rect[0] = pts[np.argmin(s)]  # top-left
    rect[1] = pts[np.argmin(d)]  # top-right
    rect[2] = pts[np.argmax(s)]  # bottom-right
    rect[3] = pts[np.argmax(d)]  # bottom-left
    return rect


# ---------- fractional zones -> pixel rects ----------
def clamp_rect(x0: int, y0: int, x1: int, y1: int, width: int, height: int) -> Rect:
    """Clamp to the frame and ensure at least 1px in each direction."""
    x0 = max(0, min(int(x0), width - 1))
    y0 = max(0, min(int(y0), height - 1))
    x1 = max(x0 + 1, min(int(x1), width))
    y1 = max(y0 + 1, min(int(y1), height))
    return x0, y0, x1, y1


def fractional_region(frame_size: Tuple[int, int], spec) -> Rect:
    """
    Convert a ColumnSpec's fractional bounds (start_x, start_y, width, height)
    into integer pixel bounds on a frame of size (W, H).

    The result is always non-empty and inside the frame.
    """
    W, H = int(frame_size[0]), int(frame_size[1])
    if W < 1 or H < 1:
        raise ValueError(f"frame size must be positive, got {frame_size}")
    x0 = int(round(spec.start_x * W))
    y0 = int(round(spec.start_y * H))
    x1 = int(round((spec.start_x + spec.width) * W))
    y1 = int(round((spec.start_y + spec.height) * H))
    return clamp_rect(x0, y0, x1, y1, W, H)


def cell_rects(region: Rect, rows: int, cols: int, pad: float = 0.12) -> List[List[Rect]]:
    """
    Split a pixel region into rows x cols equal cells, each shrunk by `pad`
    (fraction of the cell size, per side). Returns rects indexed [row][col].
    """
    if rows < 1 or cols < 1:
        raise ValueError("rows and cols must be >= 1")
    x0, y0, x1, y1 = region
    cw = (x1 - x0) / float(cols)
    ch = (y1 - y0) / float(rows)
    px = pad * cw
    py = pad * ch

    grid: List[List[Rect]] = []
    for r in range(rows):
        row: List[Rect] = []
        for c in range(cols):
            rx0 = int(round(x0 + c * cw + px))
            ry0 = int(round(y0 + r * ch + py))
            rx1 = int(round(x0 + (c + 1) * cw - px))
            ry1 = int(round(y0 + (r + 1) * ch - py))
            if rx1 <= rx0:
                rx1 = rx0 + 1
            if ry1 <= ry0:
                ry1 = ry0 + 1
            row.append((rx0, ry0, rx1, ry1))
        grid.append(row)
    return grid


def rect_area(rect: Rect) -> int:
    x0, y0, x1, y1 = rect
    return max(0, x1 - x0) * max(0, y1 - y0)


def destination_corners(width: int, height: int) -> np.ndarray:
    """Corners of a (width x height) canvas in TL, TR, BR, BL order."""
    return np.array(
        [[0, 0], [width - 1, 0], [width - 1, height - 1], [0, height - 1]],
        dtype=np.float32,
    )


def polygon_is_convex(points: Sequence[Sequence[float]]) -> bool:
    """True if the ordered polygon has distinct vertices and turns consistently one way."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    n = len(pts)
    if n < 3 or len(np.unique(pts, axis=0)) != n:
        return False
    sign = 0
    for i in range(n):
        a, b, c = pts[i], pts[(i + 1) % n], pts[(i + 2) % n]
        cross = (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])
        if cross == 0:
            continue
        s = 1 if cross > 0 else -1
        if sign == 0:
            sign = s
        elif s != sign:
            return False
    return sign != 0
