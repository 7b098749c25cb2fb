"""Best-effort location lookup for alert messages."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    def current_location(self) -> Optional[str]:
        """Human-readable location, or None when no fix is available."""
        ...


def maps_link(latitude: float, longitude: float) -> str:
    return f"https://maps.google.com/?q={latitude},{longitude}"


@dataclass(frozen=True)
class StaticLocationProvider:
    latitude: float
    longitude: float

    def current_location(self) -> Optional[str]:
        return maps_link(self.latitude, self.longitude)


def resolve_location(provider: Optional[LocationProvider], timeout_s: float) -> Optional[str]:
    """Ask *provider* for a location, giving up after *timeout_s*.

    Provider errors and timeouts yield None so the alert still goes out.
    """
    if provider is None:
        return None
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="location")
    future = pool.submit(provider.current_location)
    try:
        location = future.result(timeout=timeout_s)
    except FutureTimeout:
        logger.warning("Location lookup timed out after %.1fs", timeout_s)
        return None
    except Exception as exc:
        logger.warning("Location lookup failed: %s", exc)
        return None
    finally:
        pool.shutdown(wait=False)
    return location or None
