import asyncio

import aiohttp
import pytest
from aiohttp import web

from ktp_bot.models import KtpRecord
from ktp_bot.services import visits
from ktp_bot.services.visits import (
    SubmissionError,
    ValidationError,
    build_payload,
    submit_visit,
    validate_submission,
)
from ktp_bot.utils.registry import get_visitor, get_visits
from ktp_bot.worker import create_app

UNREACHABLE = "http://127.0.0.1:1/"


def make_record(**overrides):
    fields = dict(
        nik="3275010101900001",
        nama="BUDI SANTOSO",
        tempat_lahir="JAKARTA",
        tanggal_lahir="17-08-1985",
        alamat="JL MERDEKA NO 5 RT 001/RW 002",
    )
    fields.update(overrides)
    return KtpRecord(**fields)


def test_validation_lists_missing_fields():
    with pytest.raises(ValidationError) as exc_info:
        validate_submission(make_record(nik="", nama=" "), "")
    assert exc_info.value.missing == ["NIK", "Nama", "Tujuan"]


def test_validation_passes_with_required_fields():
    validate_submission(make_record(alamat="", tempat_lahir=""), "Membaca")


def test_payload_uses_service_keys():
    assert build_payload(make_record(), " Membaca ") == {
        "nik": "3275010101900001",
        "nama": "BUDI SANTOSO",
        "tempatLahir": "JAKARTA",
        "tanggalLahir": "17-08-1985",
        "alamat": "JL MERDEKA NO 5 RT 001/RW 002",
        "purpose": "Membaca",
    }


@pytest.mark.asyncio
async def test_validation_happens_before_network():
    with pytest.raises(ValidationError):
        await submit_visit(make_record(), "", UNREACHABLE)


@pytest.mark.asyncio
async def test_submit_records_visit(aiohttp_server, tmp_path):
    registry = tmp_path / "visits.json"
    server = await aiohttp_server(create_app(registry))
    url = str(server.make_url("/"))

    message = await submit_visit(make_record(), "Membaca", url)
    assert message == "Selamat datang, BUDI SANTOSO! Kunjungan Anda berhasil dicatat."

    await submit_visit(make_record(nama="BUDI S"), "Meminjam buku", url)

    assert get_visitor(registry, "3275010101900001")["nama"] == "BUDI SANTOSO"
    assert [v["purpose"] for v in get_visits(registry, "3275010101900001")] == [
        "Membaca",
        "Meminjam buku",
    ]


@pytest.mark.asyncio
async def test_service_error_detail_is_surfaced(aiohttp_server):
    async def failing(request):
        return web.json_response({"error": "D1_ERROR: database locked"}, status=500)

    app = web.Application()
    app.router.add_post("/", failing)
    server = await aiohttp_server(app)

    with pytest.raises(SubmissionError) as exc_info:
        await submit_visit(make_record(), "Membaca", str(server.make_url("/")))
    assert exc_info.value.detail == "D1_ERROR: database locked"


@pytest.mark.asyncio
async def test_non_json_error_uses_status(aiohttp_server):
    async def failing(request):
        return web.Response(status=502, text="Bad Gateway")

    app = web.Application()
    app.router.add_post("/", failing)
    server = await aiohttp_server(app)

    with pytest.raises(SubmissionError, match="HTTP 502"):
        await submit_visit(make_record(), "Membaca", str(server.make_url("/")))


@pytest.mark.asyncio
async def test_missing_message_falls_back_to_default(aiohttp_server):
    async def quiet(request):
        return web.json_response({"success": True})

    app = web.Application()
    app.router.add_post("/", quiet)
    server = await aiohttp_server(app)

    assert await submit_visit(make_record(), "Membaca", str(server.make_url("/"))) == (
        "Kunjungan berhasil dicatat."
    )


@pytest.mark.asyncio
async def test_unreachable_service_raises_submission_error():
    with pytest.raises(SubmissionError):
        await submit_visit(make_record(), "Membaca", UNREACHABLE)


@pytest.mark.asyncio
async def test_slow_service_raises_submission_error(aiohttp_server, monkeypatch):
    async def slow(request):
        await asyncio.sleep(2)
        return web.json_response({"success": True})

    app = web.Application()
    app.router.add_post("/", slow)
    server = await aiohttp_server(app)
    monkeypatch.setattr(visits, "REQUEST_TIMEOUT", aiohttp.ClientTimeout(total=0.2))

    with pytest.raises(SubmissionError) as exc_info:
        await submit_visit(make_record(), "Membaca", str(server.make_url("/")))
    assert exc_info.value.detail == "Timeout"
