"""Fan an alert out to every contact and account for each delivery."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from soundsos.system.transport import Failed, SendResult, Sent, Transport

logger = logging.getLogger(__name__)

LOCATION_UNAVAILABLE = "Location unavailable"


def format_alert_message(location: Optional[str]) -> str:
    return (
        "EMERGENCY ALERT!\n"
        "I may be in danger and need help.\n"
        f"Location: {location or LOCATION_UNAVAILABLE}\n"
        "Please contact me or authorities immediately."
    )


@dataclass
class DispatchReport:
    """Per-recipient outcomes, in the order recipients were attempted."""

    outcomes: Dict[str, SendResult] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if isinstance(outcome, Sent))

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def failures(self) -> List[Tuple[str, str]]:
        return [
            (recipient, outcome.reason)
            for recipient, outcome in self.outcomes.items()
            if isinstance(outcome, Failed)
        ]


class AlertDispatcher:
    """Stateless fan-out over a transport.

    Sends run sequentially unless ``max_workers > 1``; either way every
    outcome is collected before :meth:`dispatch` returns, and one failed
    recipient never stops the others.
    """

    def __init__(self, transport: Transport, max_workers: int = 1) -> None:
        self.transport = transport
        self.max_workers = max(1, max_workers)

    def dispatch(self, recipients: Iterable[str], location: Optional[str] = None) -> DispatchReport:
        ordered = sorted(set(recipients), key=str)
        if not ordered:
            logger.warning("No emergency contacts configured; nothing to send")
            return DispatchReport()

        message = format_alert_message(location)
        logger.info("Sending emergency alert to %d contact(s)", len(ordered))
        if self.max_workers > 1 and len(ordered) > 1:
            workers = min(self.max_workers, len(ordered))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch") as pool:
                results = list(pool.map(lambda recipient: self._send_one(recipient, message), ordered))
        else:
            results = [self._send_one(recipient, message) for recipient in ordered]

        report = DispatchReport(outcomes=dict(zip(ordered, results)))
        logger.info(
            "Dispatch finished: %d sent, %d failed",
            report.success_count,
            report.failure_count,
        )
        return report

    def _send_one(self, recipient: str, message: str) -> SendResult:
        try:
            result = self.transport.send(recipient, message)
        except Exception as exc:
            logger.warning("Failed to send alert to %s: %s", recipient, exc)
            return Failed(str(exc) or type(exc).__name__)
        if isinstance(result, Failed):
            logger.warning("Failed to send alert to %s: %s", recipient, result.reason)
            return result
        if not isinstance(result, Sent):
            logger.warning("Transport returned %r for %s", result, recipient)
            return Failed(f"unexpected transport result {result!r}")
        logger.info("Alert sent to %s", recipient)
        return result
