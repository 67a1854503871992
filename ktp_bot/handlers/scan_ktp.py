import logging
from html import escape
from io import BytesIO
from typing import List, Optional

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder

from ktp_bot.config import Config
from ktp_bot.models import KtpRecord
from ktp_bot.services.extract_ktp_data import normalize_birth_date
from ktp_bot.services.image_enhancer import DecodeError
from ktp_bot.services.ocr_engine import RecognitionError
from ktp_bot.services.scan_controller import scan_once
from ktp_bot.services.visits import SubmissionError, ValidationError, submit_visit, validate_submission
from ktp_bot.states import VisitStates

logger = logging.getLogger(__name__)

router = Router()

FIELD_LABELS = {
    "nik": "NIK",
    "nama": "Nama",
    "tempat_lahir": "Tempat Lahir",
    "tanggal_lahir": "Tanggal Lahir",
    "alamat": "Alamat",
}
REQUIRED_FIELDS = ("nik", "nama")


def format_record_summary(record: KtpRecord, purpose: Optional[str] = None) -> str:
    lines = ["✅ Data terdeteksi. Silakan perbaiki jika perlu:"]
    for field, label in FIELD_LABELS.items():
        marker = " *" if field in REQUIRED_FIELDS else ""
        lines.append(f"• {label}{marker}: {escape(getattr(record, field)) or '—'}")
    if purpose:
        lines.append(f"• Tujuan Kunjungan *: {escape(purpose)}")

    if not record.is_confident():
        lines.append("⚠️ NIK belum terbaca lengkap (16 digit). Periksa dan perbaiki manual.")
    missing = [FIELD_LABELS[f] for f in record.missing_fields() if f != "nik"]
    if missing:
        lines.append("⚠️ Terbaca sebagian. Lengkapi: " + ", ".join(missing))
    return "\n".join(lines)


def review_keyboard(can_resubmit: bool = False) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for field, label in FIELD_LABELS.items():
        builder.button(text=f"✏️ {label}", callback_data=f"edit:{field}")
    builder.button(text="Lanjut", callback_data="continue")
    if can_resubmit:
        builder.button(text="Kirim ulang", callback_data="resubmit")
    builder.button(text="Scan ulang", callback_data="rescan")
    builder.adjust(2)
    return builder.as_markup()


async def present_review(message: Message, state: FSMContext, record: KtpRecord) -> None:
    data = await state.get_data()
    purpose = data.get("purpose")
    await state.update_data(record=record)
    await message.answer(
        format_record_summary(record, purpose),
        reply_markup=review_keyboard(can_resubmit=bool(purpose)),
    )
    await state.set_state(VisitStates.review)


@router.message(F.photo)
async def handle_ktp_photo(message: Message, state: FSMContext, config: Config) -> None:
    photo = message.photo[-1]
    await _scan_and_review(message, state, config, photo.file_id)


@router.message(F.document & F.document.mime_type.startswith("image/"))
async def handle_ktp_document(message: Message, state: FSMContext, config: Config) -> None:
    await _scan_and_review(message, state, config, message.document.file_id)


async def _scan_and_review(message: Message, state: FSMContext, config: Config, file_id: str) -> None:
    await message.answer("🔍 Memproses OCR…")

    buffer = BytesIO()
    await message.bot.download(file_id, destination=buffer)

    try:
        record = await scan_once(buffer.getvalue(), lang=config.ocr_lang)
    except DecodeError as exc:
        logger.warning("Uploaded KTP image unreadable: %s", exc)
        await message.answer("😕 Gambar tidak dapat dibaca. Kirim ulang foto KTP dalam format JPG/PNG.")
        return
    except RecognitionError as exc:
        logger.warning("KTP OCR failed: %s", exc)
        await message.answer(f"OCR gagal: {escape(str(exc))}")
        return
    except Exception as exc:  # pragma: no cover - unexpected errors
        logger.exception("Unexpected error while processing KTP", exc_info=exc)
        await message.answer("⚠️ Terjadi kesalahan saat membaca KTP. Silakan coba lagi.")
        return

    logger.info("KTP OCR %s", "matched" if record.is_confident() else "returned partial data")
    await state.update_data(purpose=None)
    await present_review(message, state, record)


@router.callback_query(VisitStates.review, F.data.startswith("edit:"))
async def choose_field(callback: CallbackQuery, state: FSMContext) -> None:
    field = callback.data.split(":", 1)[1]
    if field not in FIELD_LABELS:
        await callback.answer()
        return
    await callback.message.edit_reply_markup()
    await state.update_data(editing=field)
    await state.set_state(VisitStates.editing_field)
    hint = " (format DD-MM-YYYY)" if field == "tanggal_lahir" else ""
    await callback.message.answer(f"Masukkan {FIELD_LABELS[field]}{hint}:")
    await callback.answer()


@router.message(VisitStates.editing_field)
async def handle_field_value(message: Message, state: FSMContext) -> None:
    data = await state.get_data()
    field: str = data["editing"]
    record: KtpRecord = data["record"]
    if message.text is None:
        await message.answer(f"Kirim {FIELD_LABELS[field]} sebagai teks.")
        return
    value = message.text

    if field == "tanggal_lahir":
        try:
            value = normalize_birth_date(value)
        except ValueError:
            await message.answer("Tanggal tidak dikenali. Gunakan format DD-MM-YYYY, misal 17-08-1985.")
            return

    record.update(field, value)
    await present_review(message, state, record)


@router.callback_query(VisitStates.review, F.data == "continue")
async def ask_purpose(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.message.edit_reply_markup()
    await state.set_state(VisitStates.waiting_for_purpose)
    await callback.message.answer("Tujuan kunjungan? (misal: Membaca, Meminjam buku)")
    await callback.answer()


@router.callback_query(VisitStates.review, F.data == "rescan")
async def rescan(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.message.edit_reply_markup()
    await state.clear()
    await state.set_state(VisitStates.waiting_for_ktp)
    await callback.message.answer("Silakan kirim ulang foto KTP.")
    await callback.answer()


@router.message(VisitStates.waiting_for_purpose)
async def handle_purpose(message: Message, state: FSMContext, config: Config) -> None:
    await state.update_data(purpose=(message.text or "").strip())
    await _submit(message, state, config)


@router.callback_query(VisitStates.review, F.data == "resubmit")
async def resubmit(callback: CallbackQuery, state: FSMContext, config: Config) -> None:
    await callback.message.edit_reply_markup()
    await callback.answer()
    await _submit(callback.message, state, config)


async def _submit(message: Message, state: FSMContext, config: Config) -> None:
    data = await state.get_data()
    record: KtpRecord = data["record"]
    purpose: str = data.get("purpose") or ""

    try:
        validate_submission(record, purpose)
    except ValidationError as exc:
        await message.answer(f"⚠️ {exc}")
        await state.update_data(purpose=purpose or None)
        await present_review(message, state, record)
        return

    await message.answer("Menyimpan…")
    try:
        reply = await submit_visit(record, purpose, config.visit_api_url)
    except SubmissionError as exc:
        await message.answer(f"Gagal menyimpan: {escape(exc.detail)}")
        await present_review(message, state, record)
        return

    await state.clear()
    await state.set_state(VisitStates.waiting_for_ktp)
    lines: List[str] = [f"✅ {escape(reply)}", "Kirim foto KTP berikutnya untuk mencatat kunjungan lain."]
    await message.answer("\n".join(lines))
