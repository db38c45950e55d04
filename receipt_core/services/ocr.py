"""
OCR service for extracting text from preprocessed receipt images.

The primary engine lives in an OCRSession: constructed lazily, initialized
once through a negotiated strategy, and called from a single worker thread
with a hard timeout. Timeouts, engine errors, empty text and low confidence
fall back to the cloud engine.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, FrozenSet, Optional, Tuple

from ..config import Settings, settings as default_settings
from ..exceptions import (
    EngineConfigurationError,
    LowConfidence,
    OCRUnavailableError,
    RecognitionTimeout,
)
from .engines import CloudVisionEngine, TesseractEngine

logger = logging.getLogger(__name__)

CAPABILITIES = ('load', 'load_language', 'initialize', 'configure', 'recognize')
LEGACY_SEQUENCE = frozenset({'load', 'load_language', 'initialize'})


class EngineStrategy(Enum):
    """Supported engine initialization sequences."""
    LEGACY_LOADER = "legacy_loader"    # load -> load_language -> initialize
    DIRECT_INIT = "direct_init"        # initialize
    PREINITIALIZED = "preinitialized"  # ready to recognize


def detect_capabilities(engine: Any) -> FrozenSet[str]:
    return frozenset(name for name in CAPABILITIES if callable(getattr(engine, name, None)))


def negotiate_strategy(engine: Any) -> EngineStrategy:
    """
    Pick the initialization strategy for an engine instance.

    Raises:
        EngineConfigurationError: no recognize(), or only part of the
            legacy load sequence
    """
    capabilities = detect_capabilities(engine)
    detected = sorted(capabilities)

    if 'recognize' not in capabilities:
        raise EngineConfigurationError(
            f"OCR engine {type(engine).__name__} has no recognize(); detected capabilities: {detected}",
            context={'capabilities': detected},
        )
    if LEGACY_SEQUENCE <= capabilities:
        return EngineStrategy.LEGACY_LOADER
    if capabilities & {'load', 'load_language'}:
        raise EngineConfigurationError(
            f"OCR engine {type(engine).__name__} exposes a partial load sequence; "
            f"detected capabilities: {detected}",
            context={'capabilities': detected},
        )
    if 'initialize' in capabilities:
        return EngineStrategy.DIRECT_INIT
    return EngineStrategy.PREINITIALIZED


def to_canonical_confidence(engine_confidence: float) -> float:
    """Map an engine confidence (0-100) onto the 0-1 scale used everywhere else."""
    return max(0.0, min(1.0, float(engine_confidence) / 100.0))


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    confidence: float
    engine: str
    used_fallback: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class OCRSession:
    """
    Owns the long-lived primary engine.

    The engine is built on first use (or passed in ready-made), its
    strategy is negotiated once, and every recognize() call runs on a
    single dedicated worker thread so the engine is never used
    concurrently. Use as a context manager or call close().

    A call that times out keeps the worker busy until the engine returns.
    Until then further calls raise RecognitionTimeout at once instead of
    queueing behind it, so callers fall back without waiting again.
    """

    def __init__(
        self,
        engine: Any = None,
        engine_factory: Optional[Callable[[], Any]] = None,
        language: str = 'eng',
        config_params: Optional[dict] = None,
        timeout: float = 30.0,
    ):
        if engine is None and engine_factory is None:
            raise EngineConfigurationError("OCRSession needs an engine or an engine factory")
        self._factory = engine_factory
        self.language = language
        self.config_params = dict(config_params or {})
        self.timeout = timeout

        self._lock = threading.Lock()
        self._engine = None
        self._strategy: Optional[EngineStrategy] = None
        self._capabilities: FrozenSet[str] = frozenset()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._abandoned: Optional[Future] = None
        self._closed = False

        if engine is not None:
            # Factory-built engines negotiate on first use instead
            self._strategy = negotiate_strategy(engine)
            self._capabilities = detect_capabilities(engine)
            self._pending = engine
        else:
            self._pending = None

    @property
    def strategy(self) -> Optional[EngineStrategy]:
        return self._strategy

    @property
    def engine_name(self) -> str:
        engine = self._engine or self._pending
        if engine is None:
            return 'primary'
        return getattr(engine, 'name', type(engine).__name__)

    @property
    def busy(self) -> bool:
        """True while a timed-out call is still running on the worker."""
        abandoned = self._abandoned
        return abandoned is not None and not abandoned.done()

    def _ensure_engine(self) -> Any:
        with self._lock:
            if self._closed:
                raise OCRUnavailableError("OCR session is closed")
            if self._engine is not None:
                return self._engine

            engine = self._pending if self._pending is not None else self._factory()
            if self._strategy is None:
                self._strategy = negotiate_strategy(engine)
                self._capabilities = detect_capabilities(engine)

            self._start(engine)
            self._engine = engine
            self._pending = None
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='ocr-engine')
            logger.info(
                "OCR engine ready",
                extra={'engine': self.engine_name, 'strategy': self._strategy.value},
            )
            return engine

    def _start(self, engine: Any) -> None:
        if self._strategy is EngineStrategy.LEGACY_LOADER:
            engine.load()
            engine.load_language(self.language)
            engine.initialize(self.language)
        elif self._strategy is EngineStrategy.DIRECT_INIT:
            engine.initialize(self.language)

        if 'configure' in self._capabilities and self.config_params:
            engine.configure(**self.config_params)

    def recognize(self, image_bytes: bytes, timeout: Optional[float] = None) -> Tuple[str, float]:
        """
        Run the primary engine on the worker thread.

        Raises:
            RecognitionTimeout: no answer within the timeout (the call is
                abandoned and keeps running in the background), or an
                earlier abandoned call still holds the worker
        """
        engine = self._ensure_engine()
        timeout = self.timeout if timeout is None else timeout
        if self.busy:
            logger.warning("OCR engine still busy with an abandoned call", extra={'engine': self.engine_name})
            raise RecognitionTimeout(
                "OCR engine is still busy with a timed-out call",
                context={'engine': self.engine_name, 'busy': True},
            )
        self._abandoned = None

        future = self._executor.submit(engine.recognize, image_bytes)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            self._abandoned = future
            logger.warning("OCR recognition timed out", extra={'timeout': timeout, 'engine': self.engine_name})
            raise RecognitionTimeout(
                f"OCR recognition exceeded {timeout}s",
                context={'timeout': timeout, 'engine': self.engine_name},
            )

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            engine, self._engine = self._engine, None
            executor, self._executor = self._executor, None

        if engine is not None:
            for name in ('terminate', 'close'):
                closer = getattr(engine, name, None)
                if callable(closer):
                    closer()
                    break
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.info("OCR session closed")

    def __enter__(self) -> 'OCRSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class OCRService:
    """Service for extracting text from receipt images."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        session: Optional[OCRSession] = None,
        fallback_engine: Any = None,
    ):
        self.settings = config or default_settings
        self.min_confidence = self.settings.OCR_MIN_CONFIDENCE

        if session is None:
            session = OCRSession(
                engine_factory=lambda: TesseractEngine(self.settings.TESSERACT_CMD),
                language=self.settings.OCR_LANGUAGE,
                config_params={
                    'tessedit_char_whitelist': self.settings.OCR_CHAR_WHITELIST,
                    # No dictionary word correction
                    'load_system_dawg': '0',
                    'load_freq_dawg': '0',
                },
                timeout=self.settings.OCR_TIMEOUT_SECONDS,
            )
        self.session = session

        if fallback_engine is None and self.settings.CLOUD_OCR_ENABLED:
            fallback_engine = CloudVisionEngine(
                credentials_path=self.settings.GOOGLE_APPLICATION_CREDENTIALS,
                timeout=self.settings.OCR_TIMEOUT_SECONDS,
            )
        self.fallback_engine = fallback_engine

    def _run_primary(self, image_bytes: bytes) -> RecognitionResult:
        text, engine_confidence = self.session.recognize(image_bytes)
        result = RecognitionResult(
            text=(text or '').strip(),
            confidence=to_canonical_confidence(engine_confidence),
            engine=self.session.engine_name,
        )
        if result.is_empty or result.confidence < self.min_confidence:
            raise LowConfidence(result)
        return result

    def _run_fallback(self, image_bytes: bytes) -> RecognitionResult:
        text, engine_confidence = self.fallback_engine.recognize(image_bytes)
        return RecognitionResult(
            text=(text or '').strip(),
            confidence=to_canonical_confidence(engine_confidence),
            engine=getattr(self.fallback_engine, 'name', type(self.fallback_engine).__name__),
            used_fallback=True,
        )

    def extract_text(self, image_bytes: bytes) -> RecognitionResult:
        """
        Recognize text, falling back to the cloud engine when needed.

        Returns:
            RecognitionResult; its text may be empty when both engines
            answered with nothing

        Raises:
            EngineConfigurationError: primary engine has no usable strategy
            OCRUnavailableError: no engine could be reached at all
        """
        primary: Optional[RecognitionResult] = None
        primary_error: Optional[Exception] = None

        try:
            result = self._run_primary(image_bytes)
            logger.info(
                "OCR completed",
                extra={'engine': result.engine, 'confidence': result.confidence, 'chars': len(result.text)},
            )
            return result
        except EngineConfigurationError:
            raise
        except LowConfidence as e:
            primary = e.result
            reason = 'empty_text' if primary.is_empty else 'low_confidence'
        except RecognitionTimeout as e:
            primary_error = e
            reason = 'timeout'
        except Exception as e:
            primary_error = e
            reason = 'engine_error'
            logger.warning("Primary OCR engine failed", exc_info=True)

        if self.fallback_engine is None:
            if primary is not None:
                return primary
            raise OCRUnavailableError(
                "Primary OCR engine failed and no fallback is configured",
                context={'reason': reason, 'error': str(primary_error)},
            )

        logger.warning(
            "Falling back to cloud OCR",
            extra={
                'reason': reason,
                'primary_confidence': primary.confidence if primary else None,
            },
        )
        try:
            fallback = self._run_fallback(image_bytes)
        except Exception as e:
            logger.warning("Fallback OCR engine failed", exc_info=True)
            if primary is not None:
                return primary
            raise OCRUnavailableError(
                "Neither OCR engine could be reached",
                context={'primary_error': str(primary_error), 'fallback_error': str(e)},
            ) from e

        if not fallback.is_empty:
            logger.info(
                "Fallback OCR completed",
                extra={'engine': fallback.engine, 'confidence': fallback.confidence, 'chars': len(fallback.text)},
            )
            return fallback
        if primary is not None and not primary.is_empty:
            return primary
        return fallback

    def close(self) -> None:
        self.session.close()
        closer = getattr(self.fallback_engine, 'close', None)
        if callable(closer):
            closer()
