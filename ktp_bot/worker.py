"""Visit-logging HTTP service backed by the JSON registry.

POST / takes the scanned KTP fields plus a purpose. A visitor is stored once
per NIK, every POST appends a visit.
"""

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import web

from ktp_bot.config import load_config
from ktp_bot.utils.registry import record_visit

logger = logging.getLogger(__name__)

REGISTRY_KEY = web.AppKey("registry_path", Path)
LOCK_KEY = web.AppKey("registry_lock", asyncio.Lock)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def json_response(body: Optional[Dict[str, Any]], status: int = 200) -> web.Response:
    if body is None:
        return web.Response(status=status, headers=CORS_HEADERS)
    return web.json_response(body, status=status, headers=CORS_HEADERS)


async def handle(request: web.Request) -> web.Response:
    if request.method == "OPTIONS":
        return json_response(None, status=204)

    if request.method == "GET":
        return json_response({"message": "Worker is running. Please use POST to submit data."})

    if request.method != "POST":
        return json_response({"error": "Method not allowed"}, status=405)

    try:
        data = await request.json()
        if not isinstance(data, dict):
            raise ValueError("JSON object expected")

        nik = data.get("nik")
        nama = data.get("nama")
        purpose = data.get("purpose")
        if not nik or not nama or not purpose:
            return json_response({"error": "NIK, Nama, dan Tujuan wajib diisi"}, status=400)

        visitor = {
            "nik": str(nik),
            "nama": str(nama),
            "tempat_lahir": data.get("tempatLahir"),
            "tanggal_lahir": data.get("tanggalLahir"),
            "alamat": data.get("alamat"),
        }
        async with request.app[LOCK_KEY]:
            loop = asyncio.get_running_loop()
            is_new = await loop.run_in_executor(
                None, partial(record_visit, request.app[REGISTRY_KEY], visitor, str(purpose))
            )
        logger.info("Visit stored for NIK %s (new visitor: %s)", nik, is_new)

        return json_response(
            {
                "success": True,
                "message": f"Selamat datang, {nama}! Kunjungan Anda berhasil dicatat.",
            }
        )
    except Exception as exc:
        logger.exception("Failed to store visit")
        return json_response({"error": str(exc)}, status=500)


def create_app(registry_path: Path) -> web.Application:
    app = web.Application()
    app[REGISTRY_KEY] = registry_path
    app[LOCK_KEY] = asyncio.Lock()
    app.router.add_route("*", "/", handle)
    return app


def main() -> None:
    config = load_config(require_token=False)
    logging.basicConfig(level=config.log_level)
    app = create_app(config.registry_file)
    logger.info("Visit log service on %s:%s", config.worker_host, config.worker_port)
    web.run_app(app, host=config.worker_host, port=config.worker_port)


if __name__ == "__main__":
    main()
