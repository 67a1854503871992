import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ktp_bot.models import KtpRecord

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Kunjungan berhasil dicatat."
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=15)


class ValidationError(Exception):
    """Raised when required fields are missing before submission."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"{', '.join(missing)} wajib diisi")


class SubmissionError(Exception):
    """Raised when the visit-logging service rejects or cannot take a visit."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


def validate_submission(record: KtpRecord, purpose: str) -> None:
    missing = [
        label
        for label, value in (
            ("NIK", record.nik),
            ("Nama", record.nama),
            ("Tujuan", purpose),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ValidationError(missing)


def build_payload(record: KtpRecord, purpose: str) -> Dict[str, str]:
    return {**record.as_payload(), "purpose": purpose.strip()}


async def submit_visit(
    record: KtpRecord,
    purpose: str,
    url: str,
    *,
    session: Optional[aiohttp.ClientSession] = None,
) -> str:
    """Send the visit to the logging service and return its message."""
    validate_submission(record, purpose)
    payload = build_payload(record, purpose)

    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(timeout=REQUEST_TIMEOUT)
    try:
        async with session.post(url, json=payload) as response:
            data = await _read_json(response)
            if response.status >= 400 or data.get("error"):
                detail = data.get("error") or f"HTTP {response.status}"
                logger.warning("Visit rejected for NIK %s: %s", record.nik, detail)
                raise SubmissionError(str(detail))
    except asyncio.TimeoutError as exc:
        logger.warning("Visit service at %s timed out", url)
        raise SubmissionError("Timeout") from exc
    except aiohttp.ClientError as exc:
        logger.warning("Visit service unreachable at %s: %s", url, exc)
        raise SubmissionError(str(exc) or exc.__class__.__name__) from exc
    finally:
        if owns_session:
            await session.close()

    logger.info("Visit recorded for NIK %s", record.nik)
    return data.get("message") or DEFAULT_SUCCESS_MESSAGE


async def _read_json(response: aiohttp.ClientResponse) -> Dict[str, Any]:
    try:
        data = await response.json(content_type=None)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = [
    "SubmissionError",
    "ValidationError",
    "build_payload",
    "submit_visit",
    "validate_submission",
]
