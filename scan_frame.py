# scan_frame.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from PIL import Image

from errors import ScanError, SerializationError
from image_utils import crop_rgba, rgba_to_gray, unsharpen_rgba
from mrz_utils import MRZ_CFG, MrzCfg, format_mrz_date, parse_mrz, validate_mrz
from ocr_utils import MRZ_OCR_CFG, MrzOcrCfg, ocr_mrz
from qr_utils import QR_CFG, QrCfg, QrScanner, ScanPolicy

logger = logging.getLogger(__name__)


# ------------------------------
# Entry points
# ------------------------------
def decode_qr_from_image(
    image_data: bytes,
    width: int,
    height: int,
    qr_cfg: QrCfg = QR_CFG,
    log: Optional[logging.Logger] = None,
) -> list[dict[str, Any]]:
    """
    Decode QR codes from an RGBA frame.

    Returns a list of {"data", "version", "bounds"} dicts, empty when no code
    was found. Raises InvalidBufferSize if the buffer does not hold
    width * height RGBA pixels.
    """
    gray = rgba_to_gray(image_data, width, height)
    results = QrScanner(qr_cfg, log=log).detect(gray)
    return [r.to_dict() for r in results]


def parse_mrz_text(text: str, cfg: MrzCfg = MRZ_CFG) -> dict[str, Any]:
    record = parse_mrz(text, cfg)
    is_valid, problems = validate_mrz(record)
    result = record.to_dict()
    result["formatted_dates"] = {
        "date_of_birth": format_mrz_date(record.date_of_birth),
        "date_of_expiry": format_mrz_date(record.date_of_expiry),
    }
    result["validation"] = {"is_valid": is_valid, "errors": problems}
    return result


def read_mrz_image(path: Path, ocr_cfg: MrzOcrCfg = MRZ_OCR_CFG, mrz_cfg: MrzCfg = MRZ_CFG) -> dict[str, Any]:
    img = Image.open(path)
    try:
        text = ocr_mrz(img, ocr_cfg)
    finally:
        img.close()
    logger.debug("OCR text: %r", text)
    return parse_mrz_text(text, mrz_cfg)


def crop_image(image_data: bytes, width: int, height: int, x: int, y: int, crop_width: int, crop_height: int) -> bytes:
    return crop_rgba(image_data, width, height, x, y, crop_width, crop_height)


def sharpen_image(image_data: bytes, width: int, height: int, amount: float) -> bytes:
    return unsharpen_rgba(image_data, width, height, amount)


def load_rgba(path: Path) -> tuple[bytes, int, int]:
    img = Image.open(path)
    try:
        rgba = img.convert("RGBA")
        return rgba.tobytes(), rgba.width, rgba.height
    finally:
        img.close()


# ------------------------------
# Output
# ------------------------------
def to_json(obj: Any) -> str:
    try:
        return json.dumps(obj, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Serialization error: {e}") from e


def write_text_atomic(out: Path, text: str) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    tmp = out.with_suffix(out.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(out)


def _emit(payload: Any, out: Optional[Path]) -> None:
    text = to_json(payload)
    if out is None:
        print(text)
        return
    write_text_atomic(out, text)
    print(f"OK  -> {out}")


# ------------------------------
# Main
# ------------------------------
def main(
    qr_image: Optional[Path] = None,
    mrz_text: Optional[Path] = None,
    mrz_image: Optional[Path] = None,
    qr_cfg: QrCfg = QR_CFG,
    mrz_cfg: MrzCfg = MRZ_CFG,
    ocr_cfg: MrzOcrCfg = MRZ_OCR_CFG,
    out: Optional[Path] = None,
) -> int:

    for p in (qr_image, mrz_text, mrz_image):
        if p is not None and not p.exists():
            print(f"ERR input does not exist: {p}")
            return 2

    output: dict[str, Any] = {}
    errors = 0

    if qr_image is not None:
        try:
            data, w, h = load_rgba(qr_image)
            output["qr"] = decode_qr_from_image(data, w, h, qr_cfg)
        except (ScanError, OSError) as e:
            errors += 1
            print(f"ERR {qr_image}: {e}")

    if mrz_text is not None:
        try:
            output["mrz"] = parse_mrz_text(mrz_text.read_text(encoding="utf-8"), mrz_cfg)
        except (ScanError, OSError) as e:
            errors += 1
            print(f"ERR {mrz_text}: {e}")

    if mrz_image is not None:
        try:
            output["mrz_image"] = read_mrz_image(mrz_image, ocr_cfg, mrz_cfg)
        except (ScanError, OSError) as e:
            errors += 1
            print(f"ERR {mrz_image}: {e}")

    try:
        _emit(output, out)
    except SerializationError as e:
        print(f"ERR {e}")
        return 1

    return 0 if errors == 0 else 1


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Decode QR codes from a frame image and/or parse a travel document MRZ."
    )
    parser.add_argument("--qr", type=Path, default=None, help="Image to scan for QR codes")
    parser.add_argument("--mrz-text", type=Path, default=None, help="Text file holding OCR'd MRZ lines")
    parser.add_argument("--mrz-image", type=Path, default=None, help="Document image to OCR and parse")
    parser.add_argument("--out", type=Path, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    # QR flags
    parser.add_argument("--exhaustive", action="store_true", help="Scan every region instead of stopping at the first hit")
    parser.add_argument("--no-region-fallback", action="store_true", help="Only run the full-frame pass")
    parser.add_argument(
        "--qr-scales",
        default="1.5,2.0,2.5",
        help='Comma-separated upscale factors for the region scan, e.g. "1.5,2.0,2.5"',
    )

    # OCR flags
    parser.add_argument("--ocr-lang", default="eng", help='Tesseract language, e.g. "eng" or "mrz"')
    parser.add_argument("--ocr-psm", type=int, default=6)
    parser.add_argument("--ocr-oem", type=int, default=3)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.qr is None and args.mrz_text is None and args.mrz_image is None:
        parser.error("nothing to do: pass --qr, --mrz-text or --mrz-image")

    qr_cfg = QrCfg(
        region_fallback=not args.no_region_fallback,
        scale_factors=tuple(float(x.strip()) for x in args.qr_scales.split(",") if x.strip()),
        policy=ScanPolicy.EXHAUSTIVE if args.exhaustive else ScanPolicy.FIRST_MATCH,
    )
    ocr_cfg = MrzOcrCfg(lang=args.ocr_lang, psm=args.ocr_psm, oem=args.ocr_oem)

    raise SystemExit(
        main(
            qr_image=args.qr,
            mrz_text=args.mrz_text,
            mrz_image=args.mrz_image,
            qr_cfg=qr_cfg,
            ocr_cfg=ocr_cfg,
            out=args.out,
        )
    )
