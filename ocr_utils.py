# ocr_utils.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageEnhance, ImageFilter
import pytesseract

from errors import OcrFailed

logger = logging.getLogger(__name__)

MRZ_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ<"

_SHARPEN = ImageFilter.Kernel((3, 3), [0, -1, 0, -1, 5, -1, 0, -1, 0], scale=1)


@dataclass(frozen=True)
class MrzOcrCfg:
    lang: str = "eng"          # "mrz" if a trained MRZ model is installed
    oem: int = 3               # Tesseract OCR Engine Mode
    psm: int = 6               # Page Segmentation Mode: uniform block of text
    # preprocessing
    contrast: float = 2.0
    brightness: int = 10
    upscale: int = 2           # applied to the located band before OCR
    # band search
    dark_level: int = 128      # pixels below this count as ink
    row_factor: float = 1.5    # text rows exceed row_factor * mean projection
    top_skip: float = 0.3      # MRZ never sits in the top 30% of the page
    max_row_gap: int = 5
    min_band_rows: int = 20
    band_padding: int = 10


MRZ_OCR_CFG = MrzOcrCfg()


def preprocess_for_mrz(img: Image.Image, cfg: MrzOcrCfg = MRZ_OCR_CFG) -> Image.Image:
    """
    Preprocessing for a photographed document page:
      - grayscale
      - 3x3 sharpen
      - contrast + brightness boost
      - Otsu binarization
    """
    g = img.convert("L")
    g = g.filter(_SHARPEN)
    g = ImageEnhance.Contrast(g).enhance(cfg.contrast)
    if cfg.brightness:
        g = g.point(lambda x: min(255, x + cfg.brightness))

    arr = np.asarray(g, dtype=np.uint8)
    _, binary = cv2.threshold(arr, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)
    return Image.fromarray(binary)


def find_mrz_band(gray: np.ndarray, cfg: MrzOcrCfg = MRZ_OCR_CFG) -> Optional[tuple[int, int]]:
    """
    Return (top, bottom) rows of the MRZ band, or None.

    Heuristic:
      1) Count dark pixels per row (horizontal projection).
      2) Rows above row_factor * mean are text rows; ignore the top of the page.
      3) Merge text rows separated by small gaps into runs; drop short runs.
      4) Take the bottom-most run and pad it.
    """
    h = gray.shape[0]
    if h == 0:
        return None
    projection = (gray < cfg.dark_level).sum(axis=1)
    threshold = projection.mean() * cfg.row_factor

    rows = [y for y in np.flatnonzero(projection > threshold) if y >= int(h * cfg.top_skip)]
    if not rows:
        return None

    runs: list[tuple[int, int]] = []
    start = end = int(rows[0])
    for y in rows[1:]:
        y = int(y)
        if y - end <= cfg.max_row_gap:
            end = y
            continue
        if end - start >= cfg.min_band_rows:
            runs.append((start, end))
        start = end = y
    if end - start >= cfg.min_band_rows:
        runs.append((start, end))

    if not runs:
        return None

    top, bottom = runs[-1]
    return max(0, top - cfg.band_padding), min(h, bottom + cfg.band_padding)


def _tesseract_config(cfg: MrzOcrCfg) -> str:
    return f"--oem {cfg.oem} --psm {cfg.psm} -c tessedit_char_whitelist={MRZ_CHARSET}"


def ocr_mrz(img: Image.Image, cfg: MrzOcrCfg = MRZ_OCR_CFG) -> str:
    pre = preprocess_for_mrz(img, cfg)
    band = find_mrz_band(np.asarray(pre), cfg)

    if band is None:
        logger.debug("No MRZ region detected, trying full image...")
        target = pre
    else:
        top, bottom = band
        logger.debug("MRZ region found: rows %d..%d", top, bottom)
        target = pre.crop((0, top, pre.width, bottom))
        if cfg.upscale and cfg.upscale > 1:
            w, h = target.size
            target = target.resize((w * cfg.upscale, h * cfg.upscale), resample=Image.Resampling.NEAREST)

    try:
        return pytesseract.image_to_string(target, lang=cfg.lang, config=_tesseract_config(cfg))
    except pytesseract.TesseractError as e:
        raise OcrFailed(f"tesseract failed: {e}") from e
