# src/sheet_omr/tools/qr_metadata.py
from __future__ import annotations
import logging
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from ..results import SheetMetadata
from .binarizer import enhance_contrast, to_gray

logger = logging.getLogger(__name__)

# payload keys -> SheetMetadata fields
_TEXT_KEYS = {"TYPE": "test_type"}
_INT_KEYS = {"SET": "set_number", "SEAT": "seat_number"}


# ---------- payload text ----------
def parse_metadata(payload: Optional[str]) -> Optional[SheetMetadata]:
    """
    Parse 'TYPE=C;SET=2;SEAT=17' into SheetMetadata.

    Unknown keys are ignored, pairs without '=' are skipped, and a SET/SEAT
    value that is not an integer leaves that field unset.
    """
    if not payload or not payload.strip():
        return None

    values: Dict[str, object] = {}
    for part in payload.split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip().upper()
        value = value.strip()
        if key in _TEXT_KEYS:
            if value:
                values[_TEXT_KEYS[key]] = value
        elif key in _INT_KEYS:
            try:
                values[_INT_KEYS[key]] = int(value)
            except ValueError:
                logger.debug("ignoring non-integer %s=%r", key, value)

    return SheetMetadata(raw=payload.strip(), **values)


def format_metadata(meta: SheetMetadata) -> str:
    """
    Inverse of parse_metadata for the recognised fields; unset fields are omitted.
    A test type containing the payload separators ';' or '=' raises ValueError.
    """
    parts = []
    if meta.test_type is not None:
        if any(ch in meta.test_type for ch in ";="):
            raise ValueError(f"test type may not contain ';' or '=': {meta.test_type!r}")
        parts.append(f"TYPE={meta.test_type}")
    if meta.set_number is not None:
        parts.append(f"SET={meta.set_number}")
    if meta.seat_number is not None:
        parts.append(f"SEAT={meta.seat_number}")
    return ";".join(parts)


# ---------- barcode detection ----------
def _try_decode(detector: cv2.QRCodeDetector, img: np.ndarray) -> Tuple[str, Optional[np.ndarray]]:
    try:
        data, points, _ = detector.detectAndDecode(img)
    except cv2.error as e:
        logger.debug("QR detector failed: %s", e)
        return "", None
    return (data or ""), points


def decode_payload(image: np.ndarray) -> Tuple[Optional[str], Optional[np.ndarray]]:
    """
    Find and decode a QR code in the source image.

    Tries the image as given, then a CLAHE-enhanced grayscale copy.
    Returns (payload, corner points) or (None, None).
    """
    detector = cv2.QRCodeDetector()

    data, points = _try_decode(detector, image)
    if data:
        return data, points

    enhanced = enhance_contrast(to_gray(image), clip=3.0, tile=8)
    data, points = _try_decode(detector, enhanced)
    if data:
        logger.debug("QR decoded after contrast enhancement")
        return data, points

    return None, None


def decode_metadata(image: np.ndarray) -> Optional[SheetMetadata]:
    """Decode sheet identity from an embedded QR code; None if there is none."""
    payload, _ = decode_payload(image)
    if payload is None:
        logger.debug("no QR code found")
        return None
    meta = parse_metadata(payload)
    logger.info("QR metadata: %s", payload)
    return meta


# ---------- generation ----------
def render_metadata_qr(meta: SheetMetadata, module_px: int = 8, border_modules: int = 4) -> np.ndarray:
    """
    Render the metadata payload as a printable grayscale QR image, with a
    white quiet zone of `border_modules` modules on every side.
    """
    payload = format_metadata(meta)
    if not payload:
        raise ValueError("metadata has no fields to encode")
    encoder = cv2.QRCodeEncoder.create()
    qr = encoder.encode(payload)  # one pixel per module, may include a quiet zone
    qr = cv2.resize(qr, None, fx=module_px, fy=module_px, interpolation=cv2.INTER_NEAREST)
    pad = border_modules * module_px
    return cv2.copyMakeBorder(qr, pad, pad, pad, pad, cv2.BORDER_CONSTANT, value=255)
