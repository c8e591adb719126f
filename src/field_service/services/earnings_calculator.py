"""Earnings for a worked interval, priced per calendar day."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import ServiceError, TariffNotFoundError
from field_service.logging import get_logger
from field_service.services.tariff_resolver import DayClass, TariffResolver

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping
    from zoneinfo import ZoneInfo

_CENT = Decimal("0.01")
_SECONDS_PER_MINUTE = Decimal(60)


def _timedelta_seconds(delta: timedelta) -> Decimal:
    """Exact seconds of a timedelta as a Decimal (no float rounding)."""
    seconds = Decimal(delta.days * 86400 + delta.seconds)
    if delta.microseconds:
        seconds += Decimal(delta.microseconds) / Decimal(1_000_000)
    return seconds


def round_for_display(amount: Decimal) -> Decimal:
    """Round a money amount to cents, half-up. Display only."""
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DaySegment:
    """Part of an interval that falls on one local calendar day."""

    day: date
    start: datetime
    end: datetime

    @property
    def minutes(self) -> Decimal:
        return _timedelta_seconds(self.end - self.start) / _SECONDS_PER_MINUTE


@dataclass(frozen=True)
class PricedSegment:
    """A day segment with its resolved rate (None if no tariff applied)."""

    day: date
    day_class: DayClass
    minutes: Decimal
    rate_per_minute: Decimal | None
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "day_class": self.day_class.value,
            "minutes": str(self.minutes),
            "rate_per_minute": None if self.rate_per_minute is None else str(self.rate_per_minute),
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class EarningsResult:
    """Sum of priced segments; incomplete if any segment had no tariff."""

    amount: Decimal
    segments: list[PricedSegment] = field(default_factory=list)
    missing_dates: list[date] = field(default_factory=list)

    @property
    def incomplete(self) -> bool:
        return len(self.missing_dates) > 0

    @property
    def display_amount(self) -> Decimal:
        return round_for_display(self.amount)


def split_at_midnights(start: datetime, end: datetime, tz: ZoneInfo) -> list[DaySegment]:
    """
    Split [start, end) at every local midnight in tz.

    Boundaries are computed in local time and compared in UTC so DST days have
    their true length.
    """
    if start.tzinfo is None or end.tzinfo is None:
        msg = "start and end must be timezone-aware"
        raise ValueError(msg)
    if end <= start:
        return []

    segments: list[DaySegment] = []
    cursor = start.astimezone(UTC)
    end_utc = end.astimezone(UTC)
    while cursor < end_utc:
        local_day = cursor.astimezone(tz).date()
        next_midnight = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
        boundary = min(next_midnight.astimezone(UTC), end_utc)
        segments.append(DaySegment(day=local_day, start=cursor, end=boundary))
        cursor = boundary
    return segments


class EarningsCalculator:
    """Prices worked intervals with the worker's tariff rates."""

    def __init__(self, tz: ZoneInfo) -> None:
        self._tz = tz
        self._logger = get_logger(__name__)

    def compute_earnings(
        self,
        worker_id: str,
        start: datetime,
        end: datetime,
        rates: Iterable[Mapping[str, Any]],
        holidays: Collection[date],
    ) -> EarningsResult:
        """
        Split the interval per local day, price each day at its own rate, and sum.

        Minutes are fractional and nothing is rounded before summation. A day
        without an applicable rate contributes zero and is listed in
        ``missing_dates`` so the result can be flagged for review.
        """
        if end < start:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "end must not be before start",
                400,
                {"start": start.isoformat(), "end": end.isoformat()},
            )

        resolver = TariffResolver(rates, holidays)
        total = Decimal(0)
        priced: list[PricedSegment] = []
        missing: list[date] = []

        for segment in split_at_midnights(start, end, self._tz):
            day_class = resolver.classify_day(segment.day)
            minutes = segment.minutes
            try:
                rate: Decimal | None = resolver.rate_per_minute(worker_id, segment.day)
            except TariffNotFoundError:
                rate = None

            if rate is None:
                amount = Decimal(0)
                missing.append(segment.day)
                self._logger.warning(
                    "No tariff for worked day, contribution set to zero",
                    extra={
                        "worker_id": worker_id,
                        "date": segment.day.isoformat(),
                        "day_class": day_class.value,
                        "minutes": str(minutes),
                    },
                )
            else:
                amount = minutes * rate

            total += amount
            priced.append(
                PricedSegment(
                    day=segment.day,
                    day_class=day_class,
                    minutes=minutes,
                    rate_per_minute=rate,
                    amount=amount,
                )
            )

        return EarningsResult(amount=total, segments=priced, missing_dates=missing)
