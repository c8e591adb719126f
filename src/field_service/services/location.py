"""Bounded device location capture with a confirm-to-proceed fallback."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from field_service.core.exceptions import LocationUnavailableError
from field_service.logging import get_logger


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


class LocationError(Exception):
    """The device could not produce a location (denied, no fix, ...)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class LocationProvider(Protocol):
    """Anything that can produce the device's current location."""

    async def get_current_location(self) -> Coordinates: ...


class ReportedLocation:
    """
    Location reported by the device alongside a request.

    The device either sends coordinates or the reason it could not get a fix.
    A request that sends neither is treated as a failure with reason
    ``not_reported``.
    """

    def __init__(self, coordinates: Coordinates | None, error: str | None = None) -> None:
        self._coordinates = coordinates
        self._error = error

    async def get_current_location(self) -> Coordinates:
        if self._coordinates is None:
            raise LocationError(self._error or "not_reported")
        return self._coordinates


def format_location(coordinates: Coordinates) -> str:
    """Render coordinates the way they are stored on tasks and sessions."""
    return f"{coordinates.lat:.6f}, {coordinates.lon:.6f}"


async def capture_location(
    provider: LocationProvider,
    timeout_seconds: float,
    *,
    proceed_without_location: bool,
) -> str | None:
    """
    Acquire a formatted location within timeout_seconds.

    On timeout or device failure, returns None if the operator confirmed
    proceeding without a location; otherwise raises LocationUnavailableError so
    the caller can ask for that confirmation and retry.
    """
    logger = get_logger(__name__)
    try:
        coordinates = await asyncio.wait_for(provider.get_current_location(), timeout_seconds)
    except TimeoutError:
        reason = "timeout"
    except LocationError as exc:
        reason = exc.reason
    else:
        return format_location(coordinates)

    if proceed_without_location:
        logger.warning("Proceeding without location", extra={"reason": reason})
        return None
    raise LocationUnavailableError(reason)
