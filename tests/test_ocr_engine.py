import numpy as np
import pytest
import pytesseract

from ktp_bot.services import ocr_engine
from ktp_bot.services.ocr_engine import RecognitionError, recognize

IMAGE = np.zeros((4, 4, 3), dtype=np.uint8)


@pytest.mark.asyncio
async def test_recognize_returns_engine_text(monkeypatch):
    calls = []

    def fake_image_to_string(image, lang, config):
        calls.append((lang, config))
        return "NIK : 3275010101900001\n"

    monkeypatch.setattr(pytesseract, "image_to_string", fake_image_to_string)

    assert await recognize(IMAGE) == "NIK : 3275010101900001\n"
    assert calls == [("ind", ocr_engine.TESS_CONFIG)]


@pytest.mark.asyncio
async def test_engine_failure_becomes_recognition_error(monkeypatch):
    def broken(image, lang, config):
        raise pytesseract.TesseractError(1, "Failed loading language 'ind'")

    monkeypatch.setattr(pytesseract, "image_to_string", broken)

    with pytest.raises(RecognitionError, match="Failed loading language"):
        await recognize(IMAGE, "ind")


@pytest.mark.asyncio
async def test_missing_binary_becomes_recognition_error(monkeypatch):
    def missing(image, lang, config):
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "image_to_string", missing)

    with pytest.raises(RecognitionError):
        await recognize(IMAGE)


def test_configure_sets_binary_path(monkeypatch):
    monkeypatch.setattr(pytesseract.pytesseract, "tesseract_cmd", "tesseract")
    ocr_engine.configure("/opt/tesseract/bin/tesseract")
    assert pytesseract.pytesseract.tesseract_cmd == "/opt/tesseract/bin/tesseract"

    ocr_engine.configure(None)
    assert pytesseract.pytesseract.tesseract_cmd == "/opt/tesseract/bin/tesseract"
