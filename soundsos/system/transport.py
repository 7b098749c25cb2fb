"""Message transports used to deliver alerts to individual contacts."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sent:
    pass


@dataclass(frozen=True)
class Failed:
    reason: str


SendResult = Union[Sent, Failed]


class Transport(Protocol):
    def send(self, recipient: str, message: str) -> SendResult:
        ...


class LogTransport:
    """Console stand-in for a real carrier: logs and remembers every alert."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, recipient: str, message: str) -> SendResult:
        with self._lock:
            self.sent.append((recipient, message))
        logger.info("Alert for %s:\n%s", recipient, message)
        return Sent()


class TwilioSmsTransport:
    """SMS delivery through the Twilio REST API."""

    FAILED_STATUSES = {"failed", "undelivered", "canceled"}

    def __init__(
        self,
        from_number: str,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        client=None,
    ) -> None:
        if client is None:
            from twilio.rest import Client

            client = Client(account_sid, auth_token)
        self.client = client
        self.from_number = from_number

    @classmethod
    def from_env(cls) -> "TwilioSmsTransport":
        missing = [
            name
            for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER")
            if not os.environ.get(name)
        ]
        if missing:
            raise ValueError(f"Missing Twilio settings: {', '.join(missing)}")
        return cls(
            from_number=os.environ["TWILIO_FROM_NUMBER"],
            account_sid=os.environ["TWILIO_ACCOUNT_SID"],
            auth_token=os.environ["TWILIO_AUTH_TOKEN"],
        )

    def send(self, recipient: str, message: str) -> SendResult:
        sms = self.client.messages.create(body=message, from_=self.from_number, to=recipient)
        status = getattr(sms, "status", None)
        if status in self.FAILED_STATUSES:
            detail = getattr(sms, "error_message", None) or "no detail"
            return Failed(f"twilio status {status}: {detail}")
        logger.debug("SMS %s accepted for %s", getattr(sms, "sid", "?"), recipient)
        return Sent()
