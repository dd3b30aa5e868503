# qr_utils.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, Sequence

import cv2
import numpy as np

from errors import QrDecodeError
from image_utils import crop_gray, upscale

logger = logging.getLogger(__name__)

Point = tuple[float, float]


class ScanPolicy(str, Enum):
    FIRST_MATCH = "first_match"  # stop after the first (region, scale) that decodes anything
    EXHAUSTIVE = "exhaustive"


@dataclass(frozen=True)
class QrCfg:
    region_fallback: bool = True
    # frames smaller than this in either dimension skip the region scan
    min_fallback_size: int = 400
    scale_factors: tuple[float, ...] = (1.5, 2.0, 2.5)
    policy: ScanPolicy = ScanPolicy.FIRST_MATCH


QR_CFG = QrCfg()


@dataclass(frozen=True)
class QrResult:
    payload: str
    version: int
    bounds: tuple[Point, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "data": self.payload,
            "version": self.version,
            "bounds": [[x, y] for x, y in self.bounds],
        }


class Grid(Protocol):
    bounds: Sequence[Point]

    def decode(self) -> tuple[int, str]:
        """Return (version, payload) or raise QrDecodeError."""
        ...


class GridDetector(Protocol):
    def detect_grids(self, gray: np.ndarray) -> list[Grid]:
        ...


# ------------------------------
# OpenCV backend
# ------------------------------
class CvGrid:
    """One candidate located by cv2.QRCodeDetector.detectMulti."""

    def __init__(self, det: cv2.QRCodeDetector, gray: np.ndarray, points: np.ndarray) -> None:
        self._det = det
        self._gray = gray
        self._points = points.reshape(1, 4, 2).astype(np.float32)
        self.bounds: tuple[Point, ...] = tuple((float(x), float(y)) for x, y in points.reshape(4, 2))

    def decode(self) -> tuple[int, str]:
        try:
            data, straight = self._det.decode(self._gray, self._points)
        except cv2.error as e:
            raise QrDecodeError(str(e)) from e
        if not data:
            raise QrDecodeError("grid did not decode")
        return _version_from_straight(straight), data


def _version_from_straight(straight: Optional[np.ndarray]) -> int:
    # rectified code is one pixel per module: side = 17 + 4 * version
    if straight is None or straight.size == 0:
        return 0
    side = int(straight.shape[0])
    if side < 21:
        return 0
    return (side - 17) // 4


class CvGridDetector:
    def __init__(self) -> None:
        self._det = cv2.QRCodeDetector()

    def detect_grids(self, gray: np.ndarray) -> list[Grid]:
        try:
            ok, points = self._det.detectMulti(gray)
        except cv2.error as e:
            logger.debug("detectMulti failed: %s", e)
            return []
        if not ok or points is None:
            return []
        return [CvGrid(self._det, gray, pts) for pts in points]


# ------------------------------
# Pipeline
# ------------------------------
def decode_grids(
    grids: Sequence[Grid],
    scale: float = 1.0,
    offset: tuple[float, float] = (0.0, 0.0),
    log: Optional[logging.Logger] = None,
) -> list[QrResult]:
    """Decode grids, mapping their bounds from tile space back into frame space."""
    log = log or logger
    ox, oy = offset
    results: list[QrResult] = []
    for grid in grids:
        try:
            version, payload = grid.decode()
        except QrDecodeError as e:
            log.debug("Failed to decode QR grid: %s", e)
            continue
        bounds = tuple((x / scale + ox, y / scale + oy) for x, y in grid.bounds)
        results.append(QrResult(payload=payload, version=version, bounds=bounds))
    return results


def add_unique_results(all_results: list[QrResult], seen: set[str], new_results: Sequence[QrResult]) -> None:
    for result in new_results:
        if result.payload in seen:
            continue
        seen.add(result.payload)
        all_results.append(result)


def iter_regions(width: int, height: int) -> list[tuple[int, int, int, int]]:
    """
    2x2 overlapping regions (x, y, w, h), row-major.

    Each region spans 2/3 of the frame and starts at a 1/3 step, so
    neighbours share a third of their extent.
    """
    region_w = width * 2 // 3
    region_h = height * 2 // 3
    step_x = width // 3
    step_y = height // 3

    regions: list[tuple[int, int, int, int]] = []
    for row in range(2):
        for col in range(2):
            x = col * step_x
            y = row * step_y
            rw = min(x + region_w, width) - x
            rh = min(y + region_h, height) - y
            regions.append((x, y, rw, rh))
    return regions


class QrScanner:
    """Full-frame QR pass with a tiled, upscaled fallback for small codes."""

    def __init__(
        self,
        cfg: QrCfg = QR_CFG,
        detector: Optional[GridDetector] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.cfg = cfg
        self.detector = detector if detector is not None else CvGridDetector()
        self.log = log or logger

    def detect(self, gray: np.ndarray) -> list[QrResult]:
        h, w = gray.shape[:2]
        self.log.debug("Processing image: %dx%d", w, h)

        results = self.detect_standard(gray)
        if results:
            self.log.debug("Standard detection found %d QR codes", len(results))
            return results

        if not self.cfg.region_fallback:
            return []

        self.log.debug("Standard detection failed, trying region-based scanning...")
        results = self.scan_regions(gray)
        self.log.debug("Region-based scanning found %d QR codes", len(results))
        return results

    def detect_standard(self, gray: np.ndarray) -> list[QrResult]:
        grids = self.detector.detect_grids(gray)
        return decode_grids(grids, log=self.log)

    def scan_regions(self, gray: np.ndarray) -> list[QrResult]:
        h, w = gray.shape[:2]
        all_results: list[QrResult] = []
        seen: set[str] = set()

        if w < self.cfg.min_fallback_size or h < self.cfg.min_fallback_size:
            return all_results

        for x, y, rw, rh in iter_regions(w, h):
            region = crop_gray(gray, x, y, rw, rh)

            for scale in self.cfg.scale_factors:
                tile = upscale(region, scale)
                grids = self.detector.detect_grids(tile)
                if grids:
                    found = decode_grids(grids, scale=scale, offset=(float(x), float(y)), log=self.log)
                    add_unique_results(all_results, seen, found)

                if all_results and self.cfg.policy is ScanPolicy.FIRST_MATCH:
                    self.log.debug("Region (%d, %d) at %.1fx decoded, stopping early", x, y, scale)
                    return all_results

        return all_results
