"""Live camera scan: keeps reading frames until a 16-digit NIK is found.

    python -m ktp_bot.scan_camera [--no-submit]

Press Ctrl-C to cancel.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from ktp_bot.config import Config, load_config
from ktp_bot.models import KtpRecord, ScanProgress
from ktp_bot.services import ocr_engine
from ktp_bot.services.camera import Camera, CameraConfig
from ktp_bot.services.extract_ktp_data import normalize_birth_date
from ktp_bot.services.scan_controller import ScanSession
from ktp_bot.services.visits import SubmissionError, ValidationError, submit_visit

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    ScanProgress.SEARCHING: "Mencari KTP...",
    ScanProgress.CLOSE: "Mendeteksi... Tahan posisi!",
}


def print_status(progress: ScanProgress) -> None:
    print(f"\r{STATUS_MESSAGES[progress]:<40}", end="", flush=True)


def save_match(frame: np.ndarray, matches_dir: Path, nik: str) -> Path:
    path = matches_dir / f"ktp_{nik}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.jpg"
    cv2.imwrite(str(path), frame)
    return path


def print_record(record: KtpRecord) -> None:
    print("\nKTP Terdeteksi!")
    print(f"  NIK           : {record.nik}")
    print(f"  Nama          : {record.nama}")
    print(f"  Tempat Lahir  : {record.tempat_lahir}")
    print(f"  Tanggal Lahir : {record.tanggal_lahir}")
    print(f"  Alamat        : {record.alamat}")


async def _ask(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return (await loop.run_in_executor(None, input, prompt)).strip()


async def scan(config: Config, submit: bool) -> Optional[KtpRecord]:
    camera_cfg = CameraConfig(index=config.camera_index, resolution=config.camera_resolution)

    with Camera(camera_cfg) as camera:
        session = ScanSession(
            camera,
            interval=config.scan_interval,
            lang=config.ocr_lang,
            on_progress=print_status,
        )
        print(STATUS_MESSAGES[ScanProgress.SEARCHING] + " Posisikan KTP agar jelas.")
        session.start()
        try:
            record = await session.wait()
        finally:
            session.stop()

    if record is None:
        return None

    # confirmation tone
    sys.stdout.write("\a")
    print_record(record)
    path = save_match(session.frame, config.matches_dir, record.nik)
    logger.info("Matched frame saved to %s", path)

    if not submit:
        return record

    for field in ("nama", "tempat_lahir", "tanggal_lahir", "alamat"):
        value = await _ask(f"{field} [{getattr(record, field)}]: ")
        if not value:
            continue
        if field == "tanggal_lahir":
            try:
                value = normalize_birth_date(value)
            except ValueError as exc:
                print(exc)
                continue
        record.update(field, value)

    purpose = await _ask("Tujuan Kunjungan: ")
    try:
        message = await submit_visit(record, purpose, config.visit_api_url)
    except ValidationError as exc:
        print(f"Tidak dikirim: {exc}")
    except SubmissionError as exc:
        print(f"Gagal menyimpan: {exc.detail}")
    else:
        print(message)
    return record


def main() -> None:
    arg_parser = argparse.ArgumentParser(description="Scan a KTP with the camera")
    arg_parser.add_argument("--no-submit", action="store_true", help="only print the record")
    args = arg_parser.parse_args()

    config = load_config(require_token=False)
    logging.basicConfig(level=config.log_level)
    ocr_engine.configure(config.tesseract_cmd)

    try:
        asyncio.run(scan(config, submit=not args.no_submit))
    except KeyboardInterrupt:
        print("\nDibatalkan.")


if __name__ == "__main__":
    main()
