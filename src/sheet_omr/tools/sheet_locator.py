# src/sheet_omr/tools/sheet_locator.py
"""
Sheet localisation and perspective rectification.

Finds the answer sheet as the largest four-cornered contour in a photo and
warps it onto a fixed-size canonical canvas. "No sheet" is returned as
None: it is the common case while a camera is still framing or focusing.
"""
from __future__ import annotations
import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from .binarizer import to_gray
from .geometry import destination_corners, order_quadrilateral, polygon_is_convex

logger = logging.getLogger(__name__)

CANNY_LOW = 75
CANNY_HIGH = 200
APPROX_EPSILON = 0.02     # fraction of the contour perimeter
MIN_AREA_FRACTION = 0.05  # ignore contours smaller than 5% of the image


def edge_map(image: np.ndarray, blur_ksize: int = 5) -> np.ndarray:
    gray = to_gray(image)
    k = int(blur_ksize) | 1
    blur = cv2.GaussianBlur(gray, (k, k), 0)
    edges = cv2.Canny(blur, CANNY_LOW, CANNY_HIGH)
    # close one-pixel gaps in the sheet outline
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
    return cv2.dilate(edges, kernel, iterations=1)


def find_sheet_quad(image: np.ndarray) -> Optional[np.ndarray]:
    """Return the sheet corners ordered TL, TR, BR, BL, or None if not found."""
    edges = edge_map(image)
    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return None

    h, w = image.shape[:2]
    min_area = MIN_AREA_FRACTION * float(w * h)
    contours = sorted(contours, key=cv2.contourArea, reverse=True)

    for cnt in contours:
        if cv2.contourArea(cnt) < min_area:
            break
        peri = cv2.arcLength(cnt, True)
        approx = cv2.approxPolyDP(cnt, APPROX_EPSILON * peri, True)
        if len(approx) != 4:
            continue
        quad = order_quadrilateral(approx.reshape(4, 2))
        if not polygon_is_convex(quad):
            logger.debug("four-vertex candidate rejected: ordered corners not convex")
            continue
        return quad

    return None


def rectify(image: np.ndarray, quad: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Warp the region inside `quad` (TL, TR, BR, BL) onto a (W, H) canvas."""
    out_w, out_h = int(size[0]), int(size[1])
    M = cv2.getPerspectiveTransform(np.asarray(quad, dtype=np.float32),
                                    destination_corners(out_w, out_h))
    return cv2.warpPerspective(image, M, (out_w, out_h), flags=cv2.INTER_LINEAR)


def locate_and_rectify(image: np.ndarray,
                       size: Tuple[int, int] = (1200, 1600)) -> Optional[np.ndarray]:
    """
    Locate the sheet and return the rectified canonical frame, or None.

    The warp resamples the original image, not the edge map.
    """
    quad = find_sheet_quad(image)
    if quad is None:
        logger.debug("no four-cornered sheet outline found")
        return None
    logger.debug("sheet corners: %s", quad.round(1).tolist())
    return rectify(image, quad, size)
