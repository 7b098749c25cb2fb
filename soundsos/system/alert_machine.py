"""Alert workflow: detection -> user confirmation window -> dispatch.

All transitions run under one lock. The pipeline thread feeds
``on_confidence``; ``confirm``/``cancel`` come from the control surface; the
auto-escalation timer fires on its own thread. Whoever moves the machine out
of ``PENDING_CONFIRMATION`` first wins, and the timer handle is cancelled in
that same critical section. A timer callback that was already running checks
under the lock that its event is still the pending one and otherwise does
nothing, so an event is dispatched at most once.
"""
from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional, Protocol, Union

from soundsos.system.dispatcher import AlertDispatcher, DispatchReport
from soundsos.system.location import LocationProvider, resolve_location
from soundsos.utils.constants import ALERT

logger = logging.getLogger(__name__)

_event_ids = itertools.count(1)


class AlertStateError(RuntimeError):
    """Internal transition attempted from the wrong state."""


class AlertState(Enum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"
    DISPATCHING = "dispatching"
    RESOLVED = "resolved"


@dataclass
class AlertEvent:
    recipients: FrozenSet[str]
    confidence: float
    location: Optional[str] = None
    state: AlertState = AlertState.PENDING_CONFIRMATION
    # dispatched | cancelled | superseded | failed
    resolution: Optional[str] = None
    report: Optional[DispatchReport] = None
    event_id: int = field(default_factory=lambda: next(_event_ids))
    created_at: float = field(default_factory=time.monotonic)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def schedule(self, delay_s: float, callback: Callable[[], object]) -> TimerHandle:
        ...


class TimerScheduler:
    """One daemon ``threading.Timer`` per scheduled callback."""

    def schedule(self, delay_s: float, callback: Callable[[], object]) -> TimerHandle:
        timer = threading.Timer(delay_s, callback)
        timer.name = "auto-escalation"
        timer.daemon = True
        timer.start()
        return timer


StateListener = Callable[[AlertState, AlertEvent], None]
Recipients = Union[Iterable[str], Callable[[], Iterable[str]]]


class AlertStateMachine:
    def __init__(
        self,
        dispatcher: AlertDispatcher,
        recipients: Recipients,
        location_provider: Optional[LocationProvider] = None,
        threshold: float = ALERT.confidence_threshold,
        auto_escalation_ms: int = ALERT.auto_escalation_ms,
        location_timeout_s: float = ALERT.location_timeout_s,
        scheduler: Optional[Scheduler] = None,
        on_state_change: Optional[StateListener] = None,
    ) -> None:
        self.dispatcher = dispatcher
        if callable(recipients):
            self._recipients = recipients
        else:
            snapshot = frozenset(recipients)
            self._recipients = lambda: snapshot
        self.location_provider = location_provider
        self.threshold = threshold
        self.auto_escalation_ms = auto_escalation_ms
        self.location_timeout_s = location_timeout_s
        self.scheduler = scheduler or TimerScheduler()
        self.on_state_change = on_state_change

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._state = AlertState.IDLE
        self._event: Optional[AlertEvent] = None
        self._timer: Optional[TimerHandle] = None
        self._last_report: Optional[DispatchReport] = None

    @property
    def state(self) -> AlertState:
        with self._lock:
            return self._state

    @property
    def current_event(self) -> Optional[AlertEvent]:
        with self._lock:
            return self._event

    @property
    def last_report(self) -> Optional[DispatchReport]:
        with self._lock:
            return self._last_report

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._state is AlertState.IDLE, timeout)

    def on_confidence(self, smoothed: float) -> bool:
        """Feed one smoothed confidence; True if it opened a new alert."""
        if not smoothed > self.threshold:
            return False
        logger.info("Emergency sound detected (smoothed confidence %.3f)", smoothed)
        with self._lock:
            if self._state is not AlertState.IDLE:
                logger.debug("Alert already in flight (%s), ignoring detection", self._state.value)
                return False
            if self._event is not None or self._timer is not None:
                raise AlertStateError("idle machine still holds an alert")
            event = AlertEvent(recipients=frozenset(self._recipients()), confidence=float(smoothed))
            self._event = event
            self._state = AlertState.PENDING_CONFIRMATION
            self._timer = self.scheduler.schedule(
                self.auto_escalation_ms / 1000.0, lambda: self._on_timeout(event)
            )
        logger.info(
            "Alert %d awaiting confirmation; auto-sending in %.1fs",
            event.event_id,
            self.auto_escalation_ms / 1000.0,
        )
        self._notify(AlertState.PENDING_CONFIRMATION, event)
        return True

    def confirm(self) -> Optional[DispatchReport]:
        """Send the pending alert now; None if nothing was pending."""
        with self._lock:
            if self._state is not AlertState.PENDING_CONFIRMATION:
                logger.debug("Confirm ignored in state %s", self._state.value)
                return None
            event = self._begin_dispatch_locked()
        logger.info("Alert %d confirmed by user", event.event_id)
        return self._dispatch(event)

    def cancel(self) -> bool:
        return self._discard_pending("cancelled")

    def shutdown(self) -> bool:
        """Drop a pending alert when listening stops; in-flight sends finish."""
        return self._discard_pending("superseded")

    def _on_timeout(self, event: AlertEvent) -> Optional[DispatchReport]:
        with self._lock:
            if self._event is not event or self._state is not AlertState.PENDING_CONFIRMATION:
                logger.debug("Stale escalation timer for alert %d ignored", event.event_id)
                return None
            self._begin_dispatch_locked()
        logger.info("No response for alert %d, sending automatically", event.event_id)
        return self._dispatch(event)

    def _discard_pending(self, resolution: str) -> bool:
        with self._lock:
            if self._state is not AlertState.PENDING_CONFIRMATION:
                logger.debug("Nothing pending to mark %s (state %s)", resolution, self._state.value)
                return False
            event = self._event
            self._cancel_timer_locked()
            event.state = AlertState.RESOLVED
            event.resolution = resolution
            self._set_idle_locked()
        logger.info("Alert %d %s", event.event_id, resolution)
        self._notify(AlertState.RESOLVED, event)
        return True

    def _begin_dispatch_locked(self) -> AlertEvent:
        self._expect_locked(AlertState.PENDING_CONFIRMATION)
        event = self._event
        self._cancel_timer_locked()
        self._state = AlertState.DISPATCHING
        event.state = AlertState.DISPATCHING
        return event

    def _dispatch(self, event: AlertEvent) -> Optional[DispatchReport]:
        self._notify(AlertState.DISPATCHING, event)
        report: Optional[DispatchReport] = None
        try:
            event.location = resolve_location(self.location_provider, self.location_timeout_s)
            report = self.dispatcher.dispatch(event.recipients, event.location)
        except Exception:
            logger.exception("Dispatch of alert %d failed", event.event_id)
        finally:
            with self._lock:
                self._expect_locked(AlertState.DISPATCHING, event)
                event.state = AlertState.RESOLVED
                event.resolution = "dispatched" if report is not None else "failed"
                event.report = report
                if report is not None:
                    self._last_report = report
                self._set_idle_locked()
            self._notify(AlertState.RESOLVED, event)
        return report

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_idle_locked(self) -> None:
        self._event = None
        self._state = AlertState.IDLE
        self._idle.notify_all()

    def _expect_locked(self, state: AlertState, event: Optional[AlertEvent] = None) -> None:
        if self._state is not state:
            raise AlertStateError(f"expected {state.value}, machine is {self._state.value}")
        if event is not None and self._event is not event:
            raise AlertStateError("alert event replaced while dispatching")

    def _notify(self, state: AlertState, event: AlertEvent) -> None:
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(state, event)
        except Exception:
            logger.exception("State listener failed")
