"""Continuous capture -> enhance -> recognise -> extract loop.

Ticks come from a single asyncio task. A tick never waits for recognition:
it dispatches the pipeline into its own task and returns, and a busy flag
makes later ticks skip (not queue) while that run is in flight. The flag is
checked and set without an ``await`` in between, so no lock is needed.

Known limitation: recognition has no timeout. A hung Tesseract call keeps
the flag set and every later tick is skipped.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Tuple, Union

from ktp_bot.models import KtpRecord, ScanProgress, ScanState
from ktp_bot.services.extract_ktp_data import classify_progress, extract
from ktp_bot.services.image_enhancer import DecodeError, Frame, enhance
from ktp_bot.services.ocr_engine import TESS_LANG, RecognitionError, TextRecognizer, recognize

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.5

MatchCallback = Callable[[KtpRecord, Frame], Union[None, Awaitable[None]]]
ProgressCallback = Callable[[ScanProgress], Union[None, Awaitable[None]]]


class FrameSource(Protocol):
    def capture_frame(self) -> Optional[Frame]: ...


async def run_pipeline(
    frame: Frame,
    recognizer: TextRecognizer = recognize,
    lang: str = TESS_LANG,
) -> Tuple[KtpRecord, str]:
    enhanced = enhance(frame)
    text = await recognizer(enhanced, lang)
    return extract(text), text


async def scan_once(
    image: Frame,
    recognizer: TextRecognizer = recognize,
    lang: str = TESS_LANG,
) -> KtpRecord:
    """Single pass for manual capture or upload; the record is returned even without a NIK."""
    record, _ = await run_pipeline(image, recognizer, lang)
    return record


async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ScanSession:
    def __init__(
        self,
        frame_source: FrameSource,
        recognizer: TextRecognizer = recognize,
        *,
        interval: float = DEFAULT_INTERVAL,
        lang: str = TESS_LANG,
        on_match: Optional[MatchCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._source = frame_source
        self._recognizer = recognizer
        self._interval = interval
        self._lang = lang
        self._on_match = on_match
        self._on_progress = on_progress

        self.state = ScanState.IDLE
        self.frame: Optional[Frame] = None
        self.record: Optional[KtpRecord] = None
        self.progress: Optional[ScanProgress] = None

        self._in_flight = False
        self._ticker: Optional[asyncio.Task] = None
        self._pipeline: Optional[asyncio.Task] = None
        self._done = asyncio.Event()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def current_run(self) -> Optional[asyncio.Task]:
        return self._pipeline

    def start(self) -> None:
        if self.state is not ScanState.IDLE:
            raise RuntimeError(f"Cannot start a session in state {self.state.value}")
        self.state = ScanState.SCANNING
        self._ticker = asyncio.create_task(self._tick_forever())
        logger.info("Scan session started (interval %.0f ms)", self._interval * 1000)

    def stop(self) -> None:
        self._cancel_ticker()
        if self.state in (ScanState.IDLE, ScanState.SCANNING):
            self.state = ScanState.STOPPED
            logger.info("Scan session stopped")
        self._done.set()

    async def wait(self) -> Optional[KtpRecord]:
        await self._done.wait()
        return self.record if self.state is ScanState.MATCHED else None

    def tick(self) -> Optional[asyncio.Task]:
        """Dispatch one pipeline run unless one is already in flight."""
        if self.state is not ScanState.SCANNING:
            return None
        if self._in_flight:
            logger.debug("Previous frame still processing, tick skipped")
            return None

        self._in_flight = True
        try:
            frame = self._source.capture_frame()
        except Exception:  # pragma: no cover - camera driver errors
            logger.exception("Frame capture failed")
            frame = None
        if frame is None:
            self._in_flight = False
            logger.debug("Frame source not ready")
            return None

        self._pipeline = asyncio.create_task(self._process(frame))
        return self._pipeline

    async def _tick_forever(self) -> None:
        while self.state is ScanState.SCANNING:
            await asyncio.sleep(self._interval)
            self.tick()

    def _cancel_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done() and ticker is not asyncio.current_task():
            ticker.cancel()

    async def _process(self, frame: Frame) -> None:
        try:
            record, text = await run_pipeline(frame, self._recognizer, self._lang)

            if self.state is not ScanState.SCANNING:
                logger.info("Session left scanning while a frame was processed, result dropped")
                return

            if record.is_confident():
                await self._matched(record, frame)
            else:
                self.progress = classify_progress(text)
                await _notify(self._on_progress, self.progress)
        except DecodeError as exc:
            logger.debug("Frame skipped: %s", exc)
        except RecognitionError as exc:
            logger.warning("OCR failed, waiting for next frame: %s", exc)
        except Exception:  # pragma: no cover - unexpected errors
            logger.exception("Unexpected error in scan pipeline")
        finally:
            self._in_flight = False

    async def _matched(self, record: KtpRecord, frame: Frame) -> None:
        self.state = ScanState.MATCHED
        self._cancel_ticker()
        self.frame = frame
        self.record = record
        logger.info("KTP detected, NIK %s", record.nik)
        try:
            await _notify(self._on_match, record, frame)
        finally:
            self._done.set()


__all__ = ["DEFAULT_INTERVAL", "FrameSource", "ScanSession", "run_pipeline", "scan_once"]
