"""Utility helpers shared by multiple SoundSOS subsystems."""
from __future__ import annotations

from pathlib import Path
from typing import Tuple

import numpy as np
import soundfile as sf

from soundsos.utils.constants import AUDIO


FloatArray = np.ndarray
PcmArray = np.ndarray


def ensure_mono(signal: FloatArray) -> FloatArray:
    """Ensure waveform is mono by averaging channels if necessary."""
    if signal.ndim == 1:
        return signal
    return signal.mean(axis=1)


def load_audio(path: str | Path, target_sr: int) -> Tuple[FloatArray, int]:
    """Load an audio file and optionally resample using librosa."""
    data, sr = sf.read(str(path), always_2d=False)
    data = ensure_mono(data.astype(np.float32))
    if sr == target_sr:
        return data, sr
    # Lazy import to avoid librosa dependency unless resampling needed.
    import librosa

    resampled = librosa.resample(y=data, orig_sr=sr, target_sr=target_sr)
    return resampled.astype(np.float32), target_sr


def pcm_to_float(pcm: PcmArray, scale: float = AUDIO.pcm_scale) -> FloatArray:
    """Map signed 16-bit samples onto [-1, 1]."""
    return (np.asarray(pcm, dtype=np.float32) / np.float32(scale)).astype(np.float32)


def to_pcm16(signal: FloatArray, scale: float = AUDIO.pcm_scale) -> PcmArray:
    """Clip a float waveform to [-1, 1] and quantize to int16."""
    clipped = np.clip(np.asarray(signal, dtype=np.float32), -1.0, 1.0)
    return np.round(clipped * scale).astype(np.int16)


def sine_window(
    freq_hz: float = 1000.0,
    amplitude: float = 0.5,
    sample_rate: int = AUDIO.sample_rate,
    num_samples: int = AUDIO.window_samples,
) -> PcmArray:
    """Synthesize a PCM sine tone, handy for probes and tests."""
    t = np.arange(num_samples) / sample_rate
    return to_pcm16(amplitude * np.sin(2 * np.pi * freq_hz * t))
