"""Global constants shared across SoundSOS modules."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AudioConstants:
    sample_rate: int = 16000
    window_seconds: int = 2
    n_fft: int = 512
    hop_length: int = 256
    n_mels: int = 40
    n_frames: int = 63
    pcm_scale: float = 32767.0
    log_floor: float = 1e-6
    chunk_size: int = 1024

    @property
    def window_samples(self) -> int:
        return self.sample_rate * self.window_seconds


@dataclass(frozen=True)
class AlertConstants:
    confidence_threshold: float = 0.9
    smoothing_window: int = 7
    auto_escalation_ms: int = 10000
    location_timeout_s: float = 5.0
    # Blocking read slack on top of one window of real time.
    capture_timeout_s: float = 3.0


@dataclass(frozen=True)
class ModelConstants:
    model_path: str = "soundsos/model/emergency_cnn.tflite"
    input_shape: tuple[int, ...] = (1, 40, 63, 1)


AUDIO = AudioConstants()
ALERT = AlertConstants()
MODEL = ModelConstants()
