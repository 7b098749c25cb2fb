"""Mel-spectrogram feature extraction for the emergency sound model.

The model was trained on a plain (rectangular window, magnitude, HTK mel)
log10 mel-spectrogram computed over the first ``n_frames`` hops of a 2 s PCM
window. Features here must match that computation bin for bin.
"""
from __future__ import annotations

from functools import lru_cache

import numpy as np

from soundsos.utils.constants import AUDIO, AudioConstants
from soundsos.utils.helpers import pcm_to_float


def framing(signal: np.ndarray, frame_length: int, hop_length: int) -> np.ndarray:
    """Split *signal* into overlapping frames; a trailing partial hop is dropped."""
    num_frames = max(0, (len(signal) - frame_length) // hop_length)
    if num_frames == 0:
        return np.zeros((0, frame_length), dtype=np.float32)
    signal = np.ascontiguousarray(signal, dtype=np.float32)
    shape = (num_frames, frame_length)
    strides = (signal.strides[0] * hop_length, signal.strides[0])
    return np.lib.stride_tricks.as_strided(signal, shape=shape, strides=strides, writeable=False)


def magnitude_spectrum(frames: np.ndarray, n_fft: int) -> np.ndarray:
    n_bins = n_fft // 2
    if len(frames) == 0:
        return np.zeros((0, n_bins), dtype=np.float32)
    fft = np.fft.rfft(frames, n=n_fft, axis=-1)
    return np.abs(fft[:, :n_bins]).astype(np.float32)


@lru_cache(maxsize=8)
def mel_filterbank(sample_rate: int, n_fft: int, n_mels: int) -> np.ndarray:
    """Unnormalised HTK mel filters from 0 Hz to Nyquist over the first ``n_fft // 2`` bins.

    Returns a read-only ``(n_mels, n_fft // 2)`` float32 matrix. Results are
    cached per parameter set, so callers must not mutate it.
    """
    import librosa

    bank = librosa.filters.mel(
        sr=sample_rate,
        n_fft=n_fft,
        n_mels=n_mels,
        fmin=0.0,
        fmax=sample_rate / 2.0,
        htk=True,
        norm=None,
    )[:, : n_fft // 2]
    bank = np.ascontiguousarray(bank, dtype=np.float32)
    bank.setflags(write=False)
    return bank


def fit_frames(spec: np.ndarray, n_frames: int) -> np.ndarray:
    """Zero-pad or truncate the frame axis (axis 1) to *n_frames* columns."""
    fitted = np.zeros((spec.shape[0], n_frames), dtype=np.float32)
    keep = min(n_frames, spec.shape[1])
    fitted[:, :keep] = spec[:, :keep]
    return fitted


class FeatureExtractor:
    """Turns a PCM window into the ``[1, n_mels, n_frames, 1]`` model tensor."""

    def __init__(self, audio: AudioConstants = AUDIO) -> None:
        self.audio = audio
        self.filterbank = mel_filterbank(audio.sample_rate, audio.n_fft, audio.n_mels)

    @property
    def output_shape(self) -> tuple[int, int, int, int]:
        return (1, self.audio.n_mels, self.audio.n_frames, 1)

    def log_mel_spectrogram(self, signal: np.ndarray) -> np.ndarray:
        """Return the ``(n_mels, num_frames)`` log10 mel energies of a float signal."""
        frames = framing(signal, self.audio.n_fft, self.audio.hop_length)
        spec = magnitude_spectrum(frames, self.audio.n_fft)
        mel_energy = np.dot(spec, self.filterbank.T)
        log_mel = np.log10(mel_energy + np.float32(self.audio.log_floor))
        return log_mel.T.astype(np.float32)

    def extract(self, window: np.ndarray) -> np.ndarray:
        signal = pcm_to_float(window, self.audio.pcm_scale)
        log_mel = self.log_mel_spectrogram(signal)
        fitted = fit_frames(log_mel, self.audio.n_frames)
        return fitted.reshape(self.output_shape)
