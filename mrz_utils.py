# mrz_utils.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from errors import NoValidLines, UnsupportedLineCount

logger = logging.getLogger(__name__)

FILLER = "<"


class MrzFormat(str, Enum):
    TD1 = "TD1"  # ID cards, 3 x 30
    TD2 = "TD2"  # official documents, 2 x 36
    TD3 = "TD3"  # passports, 2 x 44


LINE_WIDTH = {MrzFormat.TD1: 30, MrzFormat.TD2: 36, MrzFormat.TD3: 44}


@dataclass(frozen=True)
class MrzCfg:
    min_line_length: int = 20  # shorter lines are scanning noise
    td3_min_first_line: int = 40
    # placeholder score; no check digits are verified
    confidence: float = 0.75


MRZ_CFG = MrzCfg()


@dataclass(frozen=True)
class MrzRecord:
    document_type: MrzFormat
    document_number: str
    issuing_country: str
    nationality: str
    sex: str
    date_of_birth: str
    date_of_expiry: str
    surname: str
    given_names: str
    optional_data: str
    raw_lines: tuple[str, ...]
    confidence: float

    def to_dict(self) -> dict:
        return {
            "document_type": self.document_type.value,
            "document_number": self.document_number,
            "date_of_birth": self.date_of_birth,
            "date_of_expiry": self.date_of_expiry,
            "nationality": self.nationality,
            "sex": self.sex,
            "surname": self.surname,
            "given_names": self.given_names,
            "optional_data": self.optional_data,
            "issuing_country": self.issuing_country,
            "raw_mrz": list(self.raw_lines),
            "confidence": self.confidence,
        }


# ------------------------------
# Line handling
# ------------------------------
def clean_lines(text: str, cfg: MrzCfg = MRZ_CFG) -> list[str]:
    lines = (ln.upper().replace(" ", "").strip() for ln in text.splitlines())
    return [ln for ln in lines if len(ln) >= cfg.min_line_length]


def classify(lines: list[str], cfg: MrzCfg = MRZ_CFG) -> MrzFormat:
    if len(lines) == 3:
        return MrzFormat.TD1
    if len(lines) == 2:
        return MrzFormat.TD3 if len(lines[0]) >= cfg.td3_min_first_line else MrzFormat.TD2
    raise UnsupportedLineCount(len(lines))


def pad_line(line: str, width: int) -> str:
    return line[:width].ljust(width, FILLER)


def extract_field(line: str, start: int, end: int) -> str:
    if start >= len(line):
        return ""
    return line[start:min(end, len(line))]


def _trimmed(line: str, start: int, end: int) -> str:
    return extract_field(line, start, end).rstrip(FILLER)


def _name_part(segment: str) -> str:
    # names are alphabetic: a scanned 0 is a misread O
    return segment.replace(FILLER, " ").strip().replace("0", "O")


def extract_names(name_field: str) -> tuple[str, str]:
    parts = name_field.split(FILLER * 2)
    surname = _name_part(parts[0]) if parts else ""
    given_names = _name_part(parts[1]) if len(parts) > 1 else ""
    return surname, given_names


def _birth_date(raw: str) -> str:
    # dates are numeric: a scanned O is a misread 0
    return raw.replace("O", "0")


# ------------------------------
# Layouts
# ------------------------------
def _parse_td1(lines: list[str], cfg: MrzCfg) -> MrzRecord:
    l1, l2, l3 = (pad_line(ln, LINE_WIDTH[MrzFormat.TD1]) for ln in lines)
    surname, given_names = extract_names(l3)
    return MrzRecord(
        document_type=MrzFormat.TD1,
        issuing_country=extract_field(l1, 2, 5),
        document_number=_trimmed(l1, 5, 14),
        optional_data=_trimmed(l1, 15, 30),
        date_of_birth=_birth_date(extract_field(l2, 0, 6)),
        sex=extract_field(l2, 7, 8),
        date_of_expiry=extract_field(l2, 8, 14),
        nationality=extract_field(l2, 15, 18),
        surname=surname,
        given_names=given_names,
        raw_lines=(l1, l2, l3),
        confidence=cfg.confidence,
    )


def _parse_two_line(lines: list[str], fmt: MrzFormat, cfg: MrzCfg) -> MrzRecord:
    """TD2 and TD3 share the same field positions apart from line width and optional data."""
    width = LINE_WIDTH[fmt]
    l1, l2 = (pad_line(ln, width) for ln in lines)
    surname, given_names = extract_names(extract_field(l1, 5, width))
    optional_end = 35 if fmt is MrzFormat.TD2 else 42
    return MrzRecord(
        document_type=fmt,
        issuing_country=extract_field(l1, 2, 5),
        surname=surname,
        given_names=given_names,
        document_number=_trimmed(l2, 0, 9),
        nationality=extract_field(l2, 10, 13),
        date_of_birth=_birth_date(extract_field(l2, 13, 19)),
        sex=extract_field(l2, 20, 21),
        # TODO: expiry skips the O->0 fix applied to date_of_birth; confirm whether it should get it
        date_of_expiry=extract_field(l2, 21, 27),
        optional_data=_trimmed(l2, 28, optional_end),
        raw_lines=(l1, l2),
        confidence=cfg.confidence,
    )


def parse_mrz_lines(lines: list[str], cfg: MrzCfg = MRZ_CFG) -> MrzRecord:
    if not lines:
        raise NoValidLines()
    fmt = classify(lines, cfg)
    if fmt is MrzFormat.TD1:
        return _parse_td1(lines, cfg)
    return _parse_two_line(lines, fmt, cfg)


def parse_mrz(raw_text: str, cfg: MrzCfg = MRZ_CFG, log: Optional[logging.Logger] = None) -> MrzRecord:
    """
    Parse OCR'd MRZ text into an MrzRecord.

    Raises NoValidLines when nothing of MRZ length survives cleaning, and
    UnsupportedLineCount when the surviving lines fit no ICAO layout.
    """
    log = log or logger
    lines = clean_lines(raw_text, cfg)
    log.debug("Cleaned MRZ lines: %s", lines)
    return parse_mrz_lines(lines, cfg)


# ------------------------------
# Presentation / sanity checks
# ------------------------------
VALID_SEX = frozenset({"M", "F", "X", FILLER})


def format_mrz_date(raw: str) -> str:
    """YYMMDD -> YYYY-MM-DD. Years above 50 are 19xx, the rest 20xx. Anything else is returned as-is."""
    if len(raw) != 6:
        return raw
    yy, mm, dd = raw[0:2], raw[2:4], raw[4:6]
    century = "19" if yy.isdigit() and int(yy) > 50 else "20"
    return f"{century}{yy}-{mm}-{dd}"


def validate_mrz(record: MrzRecord) -> tuple[bool, list[str]]:
    """Structural checks on a parsed record. Check digits are not verified."""
    errors: list[str] = []
    if record.document_type not in LINE_WIDTH:
        errors.append("Invalid document type")
    if not record.document_number:
        errors.append("Missing document number")
    if len(record.date_of_birth) != 6:
        errors.append("Invalid date of birth")
    if len(record.date_of_expiry) != 6:
        errors.append("Invalid date of expiry")
    if len(record.nationality) != 3:
        errors.append("Invalid nationality code")
    if len(record.issuing_country) != 3:
        errors.append("Invalid issuing country code")
    if record.sex not in VALID_SEX:
        errors.append("Invalid sex indicator")
    return not errors, errors
