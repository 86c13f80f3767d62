# src/sheet_omr/tools/binarizer.py
from __future__ import annotations
from dataclasses import dataclass
import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BinarizeParams:
    block_size: int = 31       # adaptive neighbourhood (odd, px at canonical resolution)
    offset: float = 7.0        # subtracted from the local Gaussian mean
    use_clahe: bool = True
    clahe_clip: float = 2.0
    clahe_tile: int = 8
    blur_ksize: int = 3        # 0 or 1 disables the pre-threshold blur

    def __post_init__(self):
        if self.block_size < 3 or self.block_size % 2 == 0:
            raise ValueError(f"block_size must be an odd integer >= 3, got {self.block_size}")
        if self.clahe_tile < 1:
            raise ValueError("clahe_tile must be >= 1")


DEFAULT_BINARIZE = BinarizeParams()


def to_gray(img: np.ndarray) -> np.ndarray:
    """Return a grayscale copy of a BGR/BGRA/gray image."""
    if img.ndim == 2:
        return img.copy()
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def enhance_contrast(gray: np.ndarray, clip: float = 2.0, tile: int = 8) -> np.ndarray:
    """CLAHE: per-tile histogram equalisation that flattens lighting gradients."""
    clahe = cv2.createCLAHE(clipLimit=float(clip), tileGridSize=(int(tile), int(tile)))
    return clahe.apply(gray)


def binarize(frame: np.ndarray, params: BinarizeParams = DEFAULT_BINARIZE) -> np.ndarray:
    """
    Turn a canonical frame into a mark mask (uint8, 255 = marked).

    Pixels darker than their Gaussian-weighted neighbourhood by more than
    `offset` become foreground, so pencil survives directional lighting
    that a single global threshold would not.
    """
    gray = to_gray(frame)
    if params.use_clahe:
        gray = enhance_contrast(gray, params.clahe_clip, params.clahe_tile)
    if params.blur_ksize and params.blur_ksize > 1:
        k = int(params.blur_ksize) | 1
        gray = cv2.GaussianBlur(gray, (k, k), 0)

    mask = cv2.adaptiveThreshold(
        gray,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY_INV,
        int(params.block_size),
        float(params.offset),
    )
    logger.debug("binarized %dx%d frame, %d foreground px",
                 mask.shape[1], mask.shape[0], int(cv2.countNonZero(mask)))
    return mask
