import asyncio
import logging
from functools import partial
from typing import Awaitable, Callable, Optional

import numpy as np
import pytesseract

logger = logging.getLogger(__name__)

TESS_LANG = "ind"
TESS_CONFIG = "--oem 3 --psm 6"  # uniform block of text, keeps line order

TextRecognizer = Callable[[np.ndarray, str], Awaitable[str]]


class RecognitionError(Exception):
    """Raised when the OCR engine fails on an image."""


def configure(tesseract_cmd: Optional[str]) -> None:
    if tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        logger.info("Using tesseract binary at %s", tesseract_cmd)


def _ocr(image: np.ndarray, lang: str) -> str:
    return pytesseract.image_to_string(image, lang=lang, config=TESS_CONFIG)


async def recognize(image: np.ndarray, lang: str = TESS_LANG) -> str:
    """Run Tesseract in the default executor and return the recognised text."""
    loop = asyncio.get_running_loop()
    try:
        text = await loop.run_in_executor(None, partial(_ocr, image, lang))
    except (
        pytesseract.TesseractError,
        pytesseract.TesseractNotFoundError,
        RuntimeError,
        OSError,
    ) as exc:
        raise RecognitionError(str(exc) or exc.__class__.__name__) from exc

    logger.debug("OCR text (%s chars): %r", len(text), text[:200])
    return text


__all__ = ["RecognitionError", "TextRecognizer", "TESS_LANG", "configure", "recognize"]
