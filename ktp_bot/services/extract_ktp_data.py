"""Field extraction for OCR output of an Indonesian KTP.

Every rule is a pure function ``(record, line, next_line) -> record``. The
extractor folds the rules over the lines top to bottom; a rule only fires
while its field is still empty, so the first match always wins.
"""

import re
from dataclasses import replace
from functools import reduce
from typing import Callable, Iterable, List, Sequence

from dateutil import parser

from ktp_bot.models import NIK_LENGTH, KtpRecord, ScanProgress

# --- Regex ---
CLEAN_RE = re.compile(r"[^A-Z0-9\s:\-/.]")
NON_DIGIT_RE = re.compile(r"\D", re.ASCII)
EXACT_NIK_RE = re.compile(rf"(?<![0-9])[0-9]{{{NIK_LENGTH}}}(?![0-9])")
NIK_RE = re.compile(rf"[0-9]{{{NIK_LENGTH}}}")
PUNCT_RE = re.compile(r"[:.]")
NAME_CHARS_RE = re.compile(r"[^A-Za-z\s]")
DATE_RE = re.compile(r"[0-9]{2}-[0-9]{2}-[0-9]{4}")
TRAILING_COMMA_RE = re.compile(r",\s*$")
NEAR_NIK_RE = re.compile(r"[0-9]{12,15}")

NAME_LABEL = "NAMA"
BIRTH_LABELS = ("TEMPAT/TGL LAHIR", "TEMPAT", "LAHIR")
ADDRESS_LABEL = "ALAMAT"
ADDRESS_CONTINUATION = ("RT", "RW")
MIN_NAME_LENGTH = 3

Rule = Callable[[KtpRecord, str, str], KtpRecord]


def clean_line(line: str) -> str:
    """Uppercase and drop everything but letters, digits, spaces and ``: - / .``."""
    return CLEAN_RE.sub("", line.upper()).strip()


def _strip_label(cleaned: str, *labels: str) -> str:
    for label in labels:
        cleaned = cleaned.replace(label, "", 1)
    return PUNCT_RE.sub("", cleaned).strip()


def rule_nik(record: KtpRecord, line: str, next_line: str) -> KtpRecord:
    if record.nik:
        return record

    # digits come from the raw line; letter->digit guessing turns 7 into 2
    exact = EXACT_NIK_RE.search(line)
    if exact:
        return replace(record, nik=exact.group())

    digits = NON_DIGIT_RE.sub("", line)
    if len(digits) < NIK_LENGTH:
        return record
    match = NIK_RE.search(digits)
    return replace(record, nik=match.group()) if match else record


def rule_nama(record: KtpRecord, line: str, next_line: str) -> KtpRecord:
    cleaned = clean_line(line)
    if record.nama or NAME_LABEL not in cleaned:
        return record

    value = _strip_label(cleaned, NAME_LABEL)
    # label alone on its line, the value wrapped below
    if len(value) < MIN_NAME_LENGTH and next_line:
        value = NAME_CHARS_RE.sub("", next_line).strip()
    return replace(record, nama=value)


def rule_tempat_tanggal_lahir(record: KtpRecord, line: str, next_line: str) -> KtpRecord:
    cleaned = clean_line(line)
    if record.tanggal_lahir:
        return record
    if "TEMPAT" not in cleaned and "LAHIR" not in cleaned:
        return record

    value = _strip_label(cleaned, *BIRTH_LABELS)
    match = DATE_RE.search(value)
    if not match:
        return record

    place = TRAILING_COMMA_RE.sub("", value[: match.start()]).strip()
    return replace(record, tempat_lahir=place, tanggal_lahir=match.group())


def rule_alamat(record: KtpRecord, line: str, next_line: str) -> KtpRecord:
    cleaned = clean_line(line)
    if record.alamat or ADDRESS_LABEL not in cleaned:
        return record

    value = _strip_label(cleaned, ADDRESS_LABEL)
    upper_next = next_line.upper()
    if next_line and any(token in upper_next for token in ADDRESS_CONTINUATION):
        value += " " + next_line.strip()
    return replace(record, alamat=value)


RULES: Sequence[Rule] = (rule_nik, rule_nama, rule_tempat_tanggal_lahir, rule_alamat)


def _split_lines(text: str) -> List[str]:
    return text.split("\n")


def _apply_rules(record: KtpRecord, line: str, next_line: str, rules: Iterable[Rule]) -> KtpRecord:
    return reduce(lambda acc, rule: rule(acc, line, next_line), rules, record)


def extract(text: str) -> KtpRecord:
    """Map recognised KTP text to a record; unmatched fields stay empty."""
    lines = _split_lines(text or "")
    record = KtpRecord()
    for idx, line in enumerate(lines):
        if not clean_line(line):
            continue
        next_line = lines[idx + 1] if idx + 1 < len(lines) else ""
        record = _apply_rules(record, line, next_line, RULES)
    return record


def classify_progress(text: str) -> ScanProgress:
    """Rough feedback for the user while no NIK has been read yet."""
    if "NIK" in text or NEAR_NIK_RE.search(text):
        return ScanProgress.CLOSE
    return ScanProgress.SEARCHING


def normalize_birth_date(value: str) -> str:
    """Bring a user-entered date to ``DD-MM-YYYY``."""
    cleaned = value.strip()
    if not cleaned:
        return ""
    if DATE_RE.fullmatch(cleaned):
        return cleaned
    # ISO input from date pickers is year first
    dayfirst = not re.match(r"^[0-9]{4}[-/.]", cleaned)
    try:
        parsed = parser.parse(cleaned, dayfirst=dayfirst).date()
    except (ValueError, OverflowError, parser.ParserError) as exc:
        raise ValueError(f"Tanggal tidak dikenali: {value}") from exc
    return parsed.strftime("%d-%m-%Y")


__all__ = [
    "RULES",
    "classify_progress",
    "clean_line",
    "extract",
    "normalize_birth_date",
    "rule_alamat",
    "rule_nama",
    "rule_nik",
    "rule_tempat_tanggal_lahir",
]
