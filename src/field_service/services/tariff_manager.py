"""Tariff rates, holidays, and earnings calculation over stored tariffs."""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import ServiceError
from field_service.logging import get_logger
from field_service.services.clock import now_iso, to_iso
from field_service.services.tariff_resolver import DayClass, TariffResolver

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal

    from field_service.services.earnings_calculator import EarningsCalculator, EarningsResult
    from field_service.services.field_store import FieldStore


def earnings_to_response(
    worker_id: str,
    start: datetime,
    end: datetime,
    result: EarningsResult,
    currency: str,
) -> dict[str, Any]:
    """Serializable earnings breakdown; amounts are exact decimal strings."""
    return {
        "worker_id": worker_id,
        "start": to_iso(start),
        "end": to_iso(end),
        "currency": currency,
        "amount": str(result.amount),
        "display_amount": str(result.display_amount),
        "incomplete": result.incomplete,
        "missing_dates": [day.isoformat() for day in result.missing_dates],
        "segments": [segment.to_dict() for segment in result.segments],
    }


class TariffManager:
    """Maintains tariff rates and holidays and prices worked intervals with them."""

    def __init__(self, store: FieldStore, calculator: EarningsCalculator, currency: str) -> None:
        self._store = store
        self._calculator = calculator
        self._currency = currency
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def create_rate(
        self,
        *,
        worker_id: str,
        day_class: str,
        rate_per_minute: Decimal,
        valid_from: date,
        valid_to: date | None,
        currency: str | None,
    ) -> dict[str, Any]:
        """Add a tariff rate for a worker and day class."""
        if valid_to is not None and valid_to < valid_from:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "valid_to must not be before valid_from",
                400,
                {"valid_from": valid_from.isoformat(), "valid_to": valid_to.isoformat()},
            )
        rate = {
            "rate_id": f"r-{uuid.uuid4()}",
            "worker_id": worker_id,
            "day_class": DayClass(day_class).value,
            "rate_per_minute": str(rate_per_minute),
            "currency": currency or self._currency,
            "valid_from": valid_from.isoformat(),
            "valid_to": None if valid_to is None else valid_to.isoformat(),
            "is_active": True,
            "created_at": now_iso(),
        }
        self._store.insert_rate(rate)
        self._logger.info(
            "Tariff rate created",
            extra={"rate_id": rate["rate_id"], "worker_id": worker_id, "day_class": day_class},
        )
        return rate

    def list_rates(self, worker_id: str, *, active_only: bool) -> list[dict[str, Any]]:
        """Rates defined for a worker."""
        return self._store.list_rates(worker_id, active_only=active_only)

    def deactivate_rate(self, rate_id: str) -> dict[str, Any]:
        """Retire a rate; it stays on record but no longer applies."""
        if not self._store.deactivate_rate(rate_id):
            raise ServiceError("RATE_NOT_FOUND", "Tariff rate not found", 404, {"rate_id": rate_id})
        rate = self._store.get_rate(rate_id)
        if rate is None:
            msg = f"Rate {rate_id} not found after update"
            raise RuntimeError(msg)
        return rate

    def resolve_rate(self, worker_id: str, day: date) -> dict[str, Any]:
        """The rate that applies to worker_id on day (TARIFF_NOT_FOUND if none)."""
        resolver = TariffResolver(
            self._store.list_rates(worker_id, active_only=True), self.active_holiday_dates()
        )
        rate = dict(resolver.resolve_rate(worker_id, day))
        rate["resolved_day_class"] = resolver.classify_day(day).value
        return rate

    # ------------------------------------------------------------------
    # Holidays
    # ------------------------------------------------------------------

    def set_holiday(self, holiday_date: date, name: str, *, is_active: bool) -> dict[str, Any]:
        """Create or update the holiday on a date."""
        holiday = {"holiday_date": holiday_date.isoformat(), "name": name, "is_active": is_active}
        self._store.upsert_holiday(holiday)
        self._logger.info("Holiday saved", extra=holiday)
        return holiday

    def list_holidays(self, *, active_only: bool) -> list[dict[str, Any]]:
        return self._store.list_holidays(active_only=active_only)

    def deactivate_holiday(self, holiday_date: date) -> None:
        if not self._store.deactivate_holiday(holiday_date.isoformat()):
            raise ServiceError(
                "HOLIDAY_NOT_FOUND",
                "Holiday not found",
                404,
                {"holiday_date": holiday_date.isoformat()},
            )

    def active_holiday_dates(self) -> frozenset[date]:
        return frozenset(
            date.fromisoformat(holiday["holiday_date"])
            for holiday in self._store.list_holidays(active_only=True)
        )

    # ------------------------------------------------------------------
    # Earnings
    # ------------------------------------------------------------------

    def compute(self, worker_id: str, start: datetime, end: datetime) -> EarningsResult:
        """Price [start, end) for a worker with the stored rates and holidays."""
        return self._calculator.compute_earnings(
            worker_id,
            start,
            end,
            self._store.list_rates(worker_id, active_only=True),
            self.active_holiday_dates(),
        )

    def calculate_earnings(self, worker_id: str, start: datetime, end: datetime) -> dict[str, Any]:
        """Earnings breakdown for an arbitrary interval."""
        result = self.compute(worker_id, start, end)
        return earnings_to_response(worker_id, start, end, result, self._currency)
