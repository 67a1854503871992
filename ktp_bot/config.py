from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


@dataclass
class Config:
    bot_token: Optional[str]
    visit_api_url: str
    ocr_lang: str
    tesseract_cmd: Optional[str]
    camera_index: int
    camera_resolution: Tuple[int, int]
    scan_interval: float
    worker_host: str
    worker_port: int
    log_level: str
    storage_path: Path
    uploads_dir: Path
    matches_dir: Path
    registry_file: Path


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def load_config(require_token: bool = True) -> Config:
    load_dotenv()
    token = os.getenv("BOT_TOKEN") or os.getenv("TOKEN_BOT")
    if require_token and not token:
        raise RuntimeError("BOT_TOKEN (or TOKEN_BOT) environment variable is required")

    base_path = Path(os.getenv("KTP_DATA_DIR") or Path(__file__).resolve().parent.parent / "data")
    storage_path = base_path
    uploads_dir = storage_path / "uploads"
    matches_dir = storage_path / "matches"
    registry_file = storage_path / "visits.json"

    storage_path.mkdir(parents=True, exist_ok=True)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    matches_dir.mkdir(parents=True, exist_ok=True)

    return Config(
        bot_token=token,
        visit_api_url=os.getenv("VISIT_API_URL", "http://127.0.0.1:8787"),
        ocr_lang=os.getenv("OCR_LANG", "ind"),
        tesseract_cmd=os.getenv("TESSERACT_CMD") or None,
        camera_index=_int_env("CAMERA_INDEX", 0),
        camera_resolution=(_int_env("CAMERA_WIDTH", 1280), _int_env("CAMERA_HEIGHT", 720)),
        scan_interval=_int_env("SCAN_INTERVAL_MS", 500) / 1000,
        worker_host=os.getenv("WORKER_HOST", "127.0.0.1"),
        worker_port=_int_env("WORKER_PORT", 8787),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        storage_path=storage_path,
        uploads_dir=uploads_dir,
        matches_dir=matches_dir,
        registry_file=registry_file,
    )
