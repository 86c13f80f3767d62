# src/sheet_omr/tools/image_io.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable, List, Optional

import cv2
import numpy as np
import fitz  # PyMuPDF
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

DebugSink = Callable[[str, np.ndarray], None]

_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}

# -------------------------
# Conversions
# -------------------------


def pil_to_bgr(img: Image.Image) -> np.ndarray:
    return cv2.cvtColor(np.array(img.convert("RGB")), cv2.COLOR_RGB2BGR)


def rotate_upright(image: np.ndarray, rotation: int) -> np.ndarray:
    """Rotate clockwise by the acquisition rotation (0/90/180/270)."""
    rotation = int(rotation) % 360
    if rotation == 0:
        return image
    if rotation not in _ROTATIONS:
        raise ValueError(f"rotation must be 0, 90, 180 or 270, got {rotation}")
    return cv2.rotate(image, _ROTATIONS[rotation])


# -------------------------
# Loading
# -------------------------


def load_raster(path: str | Path) -> np.ndarray:
    """Read a raster image as BGR with its EXIF orientation applied."""
    p = Path(path)
    try:
        with Image.open(p) as im:
            im = ImageOps.exif_transpose(im)
            return pil_to_bgr(im)
    except (OSError, Image.DecompressionBombError) as e:
        raise FileNotFoundError(f"Could not read image: {p} ({e})") from e


def load_pdf_pages(path: str | Path, dpi: int = 200) -> List[np.ndarray]:
    """Rasterise every page of a PDF to BGR."""
    zoom = dpi / 72.0
    mat = fitz.Matrix(zoom, zoom)
    pages: List[np.ndarray] = []
    with fitz.open(str(path)) as doc:
        for page in doc:
            pix = page.get_pixmap(matrix=mat, alpha=False)
            rgb = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, 3)
            pages.append(cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
    if not pages:
        raise RuntimeError(f"No pages in PDF: {path}")
    return pages


def load_images(path: str | Path, dpi: int = 200) -> List[np.ndarray]:
    """Load one image, or every page of a PDF, as BGR arrays."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Could not read image: {p}")
    if p.suffix.lower() == ".pdf":
        return load_pdf_pages(p, dpi=dpi)
    return [load_raster(p)]


# -------------------------
# Debug output
# -------------------------


def directory_sink(out_dir: str | Path, prefix: str = "") -> DebugSink:
    """Debug sink that writes each stage image to `out_dir/<prefix><name>.png`."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    def _sink(name: str, image: np.ndarray) -> None:
        target = out / f"{prefix}{name}.png"
        if not cv2.imwrite(str(target), image):
            raise OSError(f"could not write {target}")
        logger.debug("wrote %s", target)

    return _sink


def save_image(image: np.ndarray, path: str | Path) -> str:
    out_path = Path(path).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(out_path), image):
        raise OSError(f"could not write {out_path}")
    return str(out_path)


def is_usable_image(image: Optional[np.ndarray]) -> bool:
    """True for a non-empty uint8 gray, BGR or BGRA array."""
    if image is None or not isinstance(image, np.ndarray):
        return False
    if image.size == 0 or image.dtype != np.uint8:
        return False
    if image.ndim == 2:
        return True
    return image.ndim == 3 and image.shape[2] in (3, 4)
