"""Background capture -> features -> score -> smooth loop."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import numpy as np

from soundsos.audio.capture import AudioCapture, CaptureClosed
from soundsos.audio.melspec import FeatureExtractor
from soundsos.model.infer import Scorer, ScoringError, as_confidence
from soundsos.system.smoother import ConfidenceSmoother
from soundsos.utils.constants import ALERT, AUDIO, AudioConstants

logger = logging.getLogger(__name__)

ConfidenceSink = Callable[[float], object]


class StreamingPipeline:
    """Owns the capture source and the smoothing window while listening.

    ``start()`` runs :meth:`run` on a dedicated thread, or :meth:`run` can be
    called directly. ``stop()`` sets the stop signal and closes the capture
    source so a blocked read returns, then waits for the loop to exit.
    Smoothed values go to ``sink`` (normally ``AlertStateMachine.on_confidence``).
    """

    def __init__(
        self,
        capture: AudioCapture,
        scorer: Scorer,
        sink: ConfidenceSink,
        extractor: Optional[FeatureExtractor] = None,
        smoother: Optional[ConfidenceSmoother] = None,
        audio: AudioConstants = AUDIO,
        read_timeout_s: float = ALERT.capture_timeout_s,
        error_backoff_s: float = 0.1,
    ) -> None:
        self.capture = capture
        self.scorer = scorer
        self.sink = sink
        self.extractor = extractor if extractor is not None else FeatureExtractor(audio)
        self.smoother = smoother if smoother is not None else ConfidenceSmoother()
        self.window_samples = audio.window_samples
        self.read_timeout_s = read_timeout_s
        self.error_backoff_s = error_backoff_s
        self._stop_signal = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._runner: Optional[threading.Thread] = None
        self._active = threading.Event()
        self._finished = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_listening(self) -> bool:
        thread = self._thread
        running = self._active.is_set() or (thread is not None and thread.is_alive())
        return running and not self._stop_signal.is_set()

    @property
    def has_finished(self) -> bool:
        return self._finished.is_set()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                logger.debug("Pipeline already listening")
                return
            self._stop_signal.clear()
            self._thread = threading.Thread(target=self.run, name="streaming-pipeline", daemon=True)
            self._thread.start()
        logger.info("Listening started")

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._thread
            runner = self._runner
            self._stop_signal.set()
        self.capture.close()
        current = threading.current_thread()
        if thread is not None and thread is not current:
            thread.join(timeout)
        elif runner is not None and runner is not current:
            self._finished.wait(timeout)
        logger.info("Listening stopped")

    def process_window(self, window: Optional[np.ndarray]) -> Optional[float]:
        """Score one window and return the smoothed confidence, or None if skipped."""
        if window is None or len(window) != self.window_samples:
            logger.debug("Skipping short read (%s samples)", None if window is None else len(window))
            return None
        try:
            tensor = self.extractor.extract(window)
            confidence = as_confidence(self.scorer.score(tensor))
        except ScoringError as exc:
            logger.error("Scoring failed, skipping window: %s", exc)
            return None
        except Exception:
            logger.exception("Inference failed, skipping window")
            return None
        smoothed = self.smoother.push(confidence)
        logger.debug("Confidence %.3f, smoothed %.3f", confidence, smoothed)
        self.sink(smoothed)
        return smoothed

    def run(self) -> None:
        with self._lock:
            self._runner = threading.current_thread()
            self._finished.clear()
            self._active.set()
        try:
            self._loop()
        finally:
            self._active.clear()
            self._finished.set()

    def _loop(self) -> None:
        while not self._stop_signal.is_set():
            try:
                window = self.capture.next_window(self.read_timeout_s)
            except CaptureClosed:
                logger.debug("Capture source closed")
                break
            except Exception:
                logger.exception("Capture read failed, continuing")
                self._stop_signal.wait(self.error_backoff_s)
                continue
            if self._stop_signal.is_set():
                break
            self.process_window(window)
