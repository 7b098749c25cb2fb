"""Capture sources that hand out fixed-length PCM windows to the pipeline."""
from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import List, Optional, Protocol

import numpy as np

from soundsos.utils.constants import AUDIO, AudioConstants
from soundsos.utils.helpers import load_audio, to_pcm16

logger = logging.getLogger(__name__)


class CaptureClosed(Exception):
    """Raised by ``next_window`` once a source is closed or exhausted."""


class AudioCapture(Protocol):
    def next_window(self, timeout: float) -> Optional[np.ndarray]:
        """Block for one window of int16 samples; ``None`` means a short read."""
        ...

    def close(self) -> None:
        """Release the source and unblock a pending ``next_window``."""
        ...


class ArrayCapture:
    """Serves consecutive windows cut from an in-memory PCM buffer.

    A trailing partial window is reported once as a short read, after which
    the source is exhausted. With ``realtime=True`` each window is paced at
    the sample rate, and ``close()`` interrupts the wait.
    """

    def __init__(
        self,
        pcm: np.ndarray,
        window_samples: int = AUDIO.window_samples,
        sample_rate: int = AUDIO.sample_rate,
        realtime: bool = False,
    ) -> None:
        self._pcm = np.asarray(pcm, dtype=np.int16)
        self.window_samples = window_samples
        self.sample_rate = sample_rate
        self.realtime = realtime
        self._pos = 0
        self._closed = threading.Event()

    def next_window(self, timeout: float) -> Optional[np.ndarray]:
        if self._closed.is_set():
            raise CaptureClosed("capture closed")
        if self._pos >= len(self._pcm):
            raise CaptureClosed("end of audio")
        window = self._pcm[self._pos : self._pos + self.window_samples]
        self._pos += self.window_samples
        if self.realtime and self._closed.wait(len(window) / self.sample_rate):
            raise CaptureClosed("capture closed")
        if len(window) < self.window_samples:
            return None
        return window.copy()

    def close(self) -> None:
        self._closed.set()


class WavCapture(ArrayCapture):
    def __init__(self, path: str | Path, audio: AudioConstants = AUDIO, realtime: bool = False) -> None:
        data, _ = load_audio(path, audio.sample_rate)
        super().__init__(
            to_pcm16(data, audio.pcm_scale),
            window_samples=audio.window_samples,
            sample_rate=audio.sample_rate,
            realtime=realtime,
        )


class MicCapture:
    """Live 16-bit mono microphone input through PortAudio.

    The stream callback only copies chunks into a bounded queue; windows are
    assembled on the reading thread. Leftover samples carry over to the next
    window, so a timed-out read loses nothing.
    """

    def __init__(
        self,
        audio: AudioConstants = AUDIO,
        device: Optional[int] = None,
        max_chunks: int = 128,
    ) -> None:
        self.audio = audio
        self.device = device
        self._queue: "queue.Queue[Optional[np.ndarray]]" = queue.Queue(maxsize=max_chunks)
        self._pending: List[np.ndarray] = []
        self._pending_len = 0
        self._closed = threading.Event()
        self._stream = None
        self._lock = threading.Lock()

    def open(self) -> None:
        import sounddevice as sd

        with self._lock:
            if self._stream is not None or self._closed.is_set():
                return
            self._stream = sd.InputStream(
                samplerate=self.audio.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=self.audio.chunk_size,
                device=self.device,
                callback=self._callback,
            )
            self._stream.start()
        logger.info("Microphone stream opened at %d Hz", self.audio.sample_rate)

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        try:
            self._queue.put_nowait(np.array(indata[:, 0], dtype=np.int16))
        except queue.Full:
            logger.warning("Capture queue full, dropping %d samples", frames)

    def next_window(self, timeout: float) -> Optional[np.ndarray]:
        if self._stream is None:
            self.open()
        window_samples = self.audio.window_samples
        deadline = time.monotonic() + timeout
        while self._pending_len < window_samples:
            if self._closed.is_set():
                raise CaptureClosed("capture closed")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                chunk = self._queue.get(timeout=remaining)
            except queue.Empty:
                return None
            if chunk is None:
                raise CaptureClosed("capture closed")
            self._pending.append(chunk)
            self._pending_len += len(chunk)

        buffered = np.concatenate(self._pending)
        window, rest = buffered[:window_samples], buffered[window_samples:]
        self._pending = [rest] if len(rest) else []
        self._pending_len = len(rest)
        return window

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass  # reader re-checks the closed flag after every chunk
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Microphone stream closed")
