"""Data models used across the ktp_bot package."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from enum import Enum
from typing import Dict

NIK_LENGTH = 16
_NIK_RE = re.compile(rf"[0-9]{{{NIK_LENGTH}}}")

PAYLOAD_KEYS: Dict[str, str] = {
    "nik": "nik",
    "nama": "nama",
    "tempat_lahir": "tempatLahir",
    "tanggal_lahir": "tanggalLahir",
    "alamat": "alamat",
}


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    MATCHED = "matched"
    STOPPED = "stopped"


class ScanProgress(str, Enum):
    SEARCHING = "searching"
    CLOSE = "close"


@dataclass(slots=True)
class KtpRecord:
    """Structured representation of the fields read from a KTP."""

    nik: str = ""
    nama: str = ""
    tempat_lahir: str = ""
    tanggal_lahir: str = ""
    alamat: str = ""

    def is_confident(self) -> bool:
        return bool(_NIK_RE.fullmatch(self.nik))

    def missing_fields(self) -> list[str]:
        return [f.name for f in fields(self) if not getattr(self, f.name)]

    def update(self, field: str, value: str) -> None:
        """Apply a manual correction coming from the review step."""
        if field not in PAYLOAD_KEYS:
            raise KeyError(field)
        setattr(self, field, value.strip())

    def as_payload(self) -> Dict[str, str]:
        return {key: getattr(self, attr) for attr, key in PAYLOAD_KEYS.items()}


__all__ = ["KtpRecord", "NIK_LENGTH", "PAYLOAD_KEYS", "ScanProgress", "ScanState"]
