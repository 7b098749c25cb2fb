"""High-level orchestrator connecting capture, model, alert workflow and dispatch."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from soundsos.audio.capture import AudioCapture
from soundsos.audio.melspec import FeatureExtractor
from soundsos.model.infer import Scorer
from soundsos.system.alert_machine import (
    AlertState,
    AlertStateMachine,
    Recipients,
    Scheduler,
    StateListener,
)
from soundsos.system.dispatcher import AlertDispatcher, DispatchReport
from soundsos.system.location import LocationProvider
from soundsos.system.pipeline import StreamingPipeline
from soundsos.system.smoother import ConfidenceSmoother
from soundsos.system.transport import Transport
from soundsos.utils.constants import ALERT, AUDIO, AlertConstants, AudioConstants

logger = logging.getLogger(__name__)


class EmergencyMonitor:
    """Listening session plus alert workflow.

    Each ``start()`` opens a fresh capture source from ``capture_factory``;
    the smoothing window and the state machine live as long as the monitor.
    """

    def __init__(
        self,
        capture_factory: Callable[[], AudioCapture],
        scorer: Scorer,
        transport: Transport,
        recipients: Recipients,
        location_provider: Optional[LocationProvider] = None,
        audio: AudioConstants = AUDIO,
        alert: AlertConstants = ALERT,
        scheduler: Optional[Scheduler] = None,
        on_state_change: Optional[StateListener] = None,
        dispatch_workers: int = 1,
    ) -> None:
        self.capture_factory = capture_factory
        self.scorer = scorer
        self.audio = audio
        self.alert = alert
        self.extractor = FeatureExtractor(audio)
        self.smoother = ConfidenceSmoother(alert.smoothing_window)
        self.dispatcher = AlertDispatcher(transport, max_workers=dispatch_workers)
        self.machine = AlertStateMachine(
            self.dispatcher,
            recipients,
            location_provider=location_provider,
            threshold=alert.confidence_threshold,
            auto_escalation_ms=alert.auto_escalation_ms,
            location_timeout_s=alert.location_timeout_s,
            scheduler=scheduler,
            on_state_change=on_state_change,
        )
        self._pipeline: Optional[StreamingPipeline] = None
        self._lock = threading.Lock()

    @property
    def is_listening(self) -> bool:
        pipeline = self._pipeline
        return pipeline is not None and pipeline.is_listening

    @property
    def state(self) -> AlertState:
        return self.machine.state

    def _new_pipeline(self) -> StreamingPipeline:
        return StreamingPipeline(
            self.capture_factory(),
            self.scorer,
            self.machine.on_confidence,
            extractor=self.extractor,
            smoother=self.smoother,
            audio=self.audio,
            read_timeout_s=self.alert.capture_timeout_s,
        )

    def _busy_locked(self) -> bool:
        return self._pipeline is not None and not self._pipeline.has_finished

    def start(self) -> None:
        with self._lock:
            if self._busy_locked():
                return
            self._pipeline = self._new_pipeline()
            self._pipeline.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            pipeline, self._pipeline = self._pipeline, None
        if pipeline is not None:
            pipeline.stop(timeout)
        self.machine.shutdown()

    def run(self) -> None:
        """Listen on the calling thread until the capture source runs dry or ``stop()`` is called."""
        with self._lock:
            if self._busy_locked():
                raise RuntimeError("monitor is already listening")
            pipeline = self._pipeline = self._new_pipeline()
        try:
            pipeline.run()
        finally:
            pipeline.capture.close()
            with self._lock:
                if self._pipeline is pipeline:
                    self._pipeline = None

    def confirm(self) -> Optional[DispatchReport]:
        return self.machine.confirm()

    def cancel(self) -> bool:
        return self.machine.cancel()
