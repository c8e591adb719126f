"""Calendar day classification and per-minute tariff lookup."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import TariffNotFoundError

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping

# date.weekday(): Monday == 0 ... Sunday == 6
_WEEKEND_DAYS = frozenset({5, 6})


class DayClass(StrEnum):
    """Calendar classification a tariff rate is keyed by."""

    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"


def classify_day(day: date, holidays: Collection[date]) -> DayClass:
    """Holiday takes precedence over weekend, weekend over weekday."""
    if day in holidays:
        return DayClass.HOLIDAY
    if day.weekday() in _WEEKEND_DAYS:
        return DayClass.WEEKEND
    return DayClass.WEEKDAY


def _as_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def rate_covers(rate: Mapping[str, Any], day: date) -> bool:
    """True if the rate is active and its validity window contains day."""
    if not rate.get("is_active", True):
        return False
    if _as_date(rate["valid_from"]) > day:
        return False
    valid_to = rate.get("valid_to")
    return valid_to is None or _as_date(valid_to) >= day


class TariffResolver:
    """Picks the tariff rate that applies to a worker on a given date."""

    def __init__(self, rates: Iterable[Mapping[str, Any]], holidays: Collection[date]) -> None:
        self._rates = list(rates)
        self._holidays = holidays

    def classify_day(self, day: date) -> DayClass:
        return classify_day(day, self._holidays)

    def resolve_rate(self, worker_id: str, day: date) -> Mapping[str, Any]:
        """
        Return the applicable rate row for worker_id on day.

        Among active rates for the day's class whose window covers the date, the
        one with the latest valid_from wins.

        Raises:
            TariffNotFoundError: if no rate applies
        """
        day_class = self.classify_day(day)
        candidates = [
            rate
            for rate in self._rates
            if rate["worker_id"] == worker_id
            and rate["day_class"] == day_class
            and rate_covers(rate, day)
        ]
        if not candidates:
            raise TariffNotFoundError(worker_id, day.isoformat(), day_class.value)
        return max(candidates, key=lambda rate: _as_date(rate["valid_from"]))

    def rate_per_minute(self, worker_id: str, day: date) -> Decimal:
        return Decimal(str(self.resolve_rate(worker_id, day)["rate_per_minute"]))


def resolve_rate(
    worker_id: str,
    day: date,
    rates: Iterable[Mapping[str, Any]],
    holidays: Collection[date] = frozenset(),
) -> Mapping[str, Any]:
    """Functional form of TariffResolver.resolve_rate."""
    return TariffResolver(rates, holidays).resolve_rate(worker_id, day)
