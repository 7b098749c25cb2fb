"""Scenario synthesis for replaying emergency sounds through the monitor."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from soundsos.audio.capture import ArrayCapture
from soundsos.utils.constants import AUDIO
from soundsos.utils.helpers import to_pcm16


@dataclass
class SoundEvent:
    label: str
    start_s: float
    duration_s: float
    amplitude: float = 0.8


@dataclass
class Scenario:
    name: str
    length_s: float
    noise_level: float
    events: List[SoundEvent] = field(default_factory=list)
    seed: int = 0


class EventPlayer:
    def __init__(self, scenario: Scenario) -> None:
        self.scenario = scenario
        self.sample_rate = AUDIO.sample_rate
        self._rng = np.random.default_rng(scenario.seed)
        self.pcm = to_pcm16(self._synthesize())

    def _synthesize(self) -> np.ndarray:
        num_samples = int(self.scenario.length_s * self.sample_rate)
        timeline = self._rng.normal(scale=self.scenario.noise_level, size=num_samples).astype(np.float32)
        for event in self.scenario.events:
            start = int(event.start_s * self.sample_rate)
            length = int(event.duration_s * self.sample_rate)
            end = min(start + length, num_samples)
            if end <= start:
                continue
            waveform = self._event_waveform(event.label, length, event.amplitude)
            timeline[start:end] += waveform[: end - start]
        return timeline

    def _event_waveform(self, label: str, length: int, amplitude: float) -> np.ndarray:
        t = np.arange(length) / self.sample_rate
        if label == "siren":
            # Wail between 600 and 1400 Hz, one sweep every 2 s.
            freq = 1000.0 + 400.0 * np.sin(2 * np.pi * 0.5 * t)
            phase = 2 * np.pi * np.cumsum(freq) / self.sample_rate
            waveform = np.sin(phase)
        elif label == "alarm":
            # Smoke-alarm style 3.1 kHz beeps, 0.5 s on / 0.5 s off.
            gate = (np.floor(t * 2) % 2 == 0).astype(np.float32)
            waveform = np.sin(2 * np.pi * 3100.0 * t) * gate
        elif label == "scream":
            vibrato = 900.0 + 60.0 * np.sin(2 * np.pi * 6.0 * t)
            phase = 2 * np.pi * np.cumsum(vibrato) / self.sample_rate
            waveform = np.sin(phase) + 0.4 * np.sin(2 * phase)
            waveform /= 1.4
        else:
            waveform = np.sin(2 * np.pi * 300.0 * t)
        return (amplitude * waveform).astype(np.float32)

    def capture(self, realtime: bool = False) -> ArrayCapture:
        return ArrayCapture(self.pcm, AUDIO.window_samples, self.sample_rate, realtime=realtime)

    def event_windows(self) -> Dict[str, List[Tuple[int, int]]]:
        """Indices of the capture windows each event overlaps, per label."""
        window_s = AUDIO.window_samples / self.sample_rate
        schedule: Dict[str, List[Tuple[int, int]]] = {}
        for event in self.scenario.events:
            first = int(event.start_s // window_s)
            last = int((event.start_s + event.duration_s) // window_s)
            schedule.setdefault(event.label, []).append((first, last))
        return schedule


def build_street_scenario() -> Scenario:
    events = [
        SoundEvent("siren", start_s=6.0, duration_s=8.0, amplitude=0.9),
        SoundEvent("scream", start_s=24.0, duration_s=3.0, amplitude=0.7),
        SoundEvent("alarm", start_s=34.0, duration_s=6.0, amplitude=0.6),
    ]
    return Scenario(name="street", length_s=44.0, noise_level=0.05, events=events)


def build_quiet_scenario() -> Scenario:
    return Scenario(name="quiet", length_s=30.0, noise_level=0.005)


SCENARIOS = {
    "street": build_street_scenario,
    "quiet": build_quiet_scenario,
}
