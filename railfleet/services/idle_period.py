"""
Idle Period Tracker - idle-time windows and their storage cost.

A car has at most one open idle period (end_date IS NULL), enforced by
idx_one_active_idle_per_car. A period opens when a car becomes unassigned
and closes when it enters a shop visit, goes on rent, or is disposed.

daily_rate is snapshotted from storage_rates when the period opens. Later
rate changes supersede the rate row and never touch open periods, so idle
cost is reproducible.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from railfleet.core.errors import DuplicateOpenPeriod, NoOpenPeriod, PrereqNotMet
from railfleet.models.idle import IdlePeriod, IdleReason, StorageRate
from railfleet.schemas.idle import IdleCostSummary, IdlePeriodCost
from railfleet.services.transition_log import TransitionJournal

logger = logging.getLogger(__name__)

ENTITY_TYPE = "idle_period"
DEFAULT_RATE_TYPE = "combined"


class IdlePeriodService:
    def __init__(
        self,
        db: AsyncSession,
        journal: Optional[TransitionJournal] = None,
        rate_type: str = DEFAULT_RATE_TYPE,
    ) -> None:
        self.db = db
        self.journal = journal or TransitionJournal()
        self.rate_type = rate_type

    # ------------------------------------------------------------------
    # Storage rates
    # ------------------------------------------------------------------

    async def current_rate(self, location_code: str, rate_type: Optional[str] = None) -> Optional[StorageRate]:
        result = await self.db.execute(
            select(StorageRate).where(
                StorageRate.location_code == location_code,
                StorageRate.rate_type == (rate_type or self.rate_type),
                StorageRate.superseded_date.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def set_storage_rate(
        self,
        location_code: str,
        rate_per_day: Decimal,
        rate_type: Optional[str] = None,
        effective_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> StorageRate:
        """Supersede the active rate for (location, rate_type) with a new one."""
        rate_type = rate_type or self.rate_type
        effective_date = effective_date or date.today()

        current = await self.current_rate(location_code, rate_type)
        if current:
            current.superseded_date = effective_date
            # Supersede must hit the partial index before the new row does
            await self.db.flush()

        rate = StorageRate(
            id=str(uuid.uuid4()),
            location_code=location_code,
            rate_type=rate_type,
            rate_per_day=rate_per_day,
            effective_date=effective_date,
            notes=notes,
        )
        self.db.add(rate)
        await self.db.flush()
        logger.info("Storage rate %s/%s set to %s/day", location_code, rate_type, rate_per_day)
        return rate

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    async def get_open_period(self, car_number: str) -> Optional[IdlePeriod]:
        result = await self.db.execute(
            select(IdlePeriod).where(
                IdlePeriod.car_number == car_number,
                IdlePeriod.end_date.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def list_periods(self, car_number: str) -> List[IdlePeriod]:
        result = await self.db.execute(
            select(IdlePeriod)
            .where(IdlePeriod.car_number == car_number)
            .order_by(IdlePeriod.start_date.desc())
        )
        return list(result.scalars().all())

    async def open_period(
        self,
        car_number: str,
        reason: IdleReason = IdleReason.UNKNOWN,
        actor_id: Optional[str] = None,
        location_code: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> IdlePeriod:
        today = date.today()
        if start_date is not None and start_date > today:
            # Cascades close open periods as of today
            raise PrereqNotMet(
                f"Idle start {start_date} is in the future",
                {"car_number": car_number, "start_date": start_date.isoformat()},
            )

        existing = await self.get_open_period(car_number)
        if existing:
            raise DuplicateOpenPeriod(
                f"Car {car_number} already has an open idle period",
                {"car_number": car_number, "idle_period_id": existing.id},
            )

        daily_rate = None
        if location_code:
            rate = await self.current_rate(location_code)
            if rate:
                daily_rate = rate.rate_per_day

        period = IdlePeriod(
            id=str(uuid.uuid4()),
            car_number=car_number,
            start_date=start_date or today,
            reason=reason,
            location_code=location_code,
            daily_rate=daily_rate,
            rate_type=self.rate_type if daily_rate is not None else None,
        )
        self.db.add(period)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateOpenPeriod(
                f"Car {car_number} already has an open idle period",
                {"car_number": car_number},
            ) from exc

        self.journal.record(ENTITY_TYPE, period.id, None, "open", actor_id=actor_id,
                            entity_number=car_number, notes=reason.value)
        return period

    async def close_period(
        self,
        car_number: str,
        actor_id: Optional[str] = None,
        end_date: Optional[date] = None,
    ) -> IdlePeriod:
        period = await self.get_open_period(car_number)
        if not period:
            raise NoOpenPeriod(f"Car {car_number} has no open idle period", {"car_number": car_number})

        end_date = end_date or date.today()
        if end_date < period.start_date:
            raise PrereqNotMet(
                f"End date {end_date} is before idle start {period.start_date}",
                {"car_number": car_number, "start_date": period.start_date.isoformat()},
            )

        period.end_date = end_date
        await self.db.flush()

        self.journal.record(ENTITY_TYPE, period.id, "open", "closed", actor_id=actor_id,
                            entity_number=car_number)
        return period

    async def close_if_open(self, car_number: str, actor_id: Optional[str] = None) -> Optional[IdlePeriod]:
        if not await self.get_open_period(car_number):
            return None
        return await self.close_period(car_number, actor_id)

    async def cost_summary(self, car_number: str, as_of: Optional[date] = None) -> IdleCostSummary:
        """Idle days x snapshotted rate per period; open periods run to ``as_of``."""
        as_of = as_of or date.today()
        result = await self.db.execute(
            select(IdlePeriod)
            .where(IdlePeriod.car_number == car_number)
            .order_by(IdlePeriod.start_date)
        )

        total_days = 0
        total_cost = Decimal("0")
        periods: List[IdlePeriodCost] = []
        for period in result.scalars().all():
            end = period.end_date or as_of
            days = max(0, (end - period.start_date).days)
            cost = Decimal(days) * period.daily_rate if period.daily_rate is not None else Decimal("0")
            total_days += days
            total_cost += cost
            periods.append(
                IdlePeriodCost(
                    id=period.id,
                    start_date=period.start_date,
                    end_date=period.end_date,
                    days=days,
                    daily_rate=period.daily_rate,
                    cost=cost,
                    reason=period.reason,
                    location_code=period.location_code,
                )
            )

        return IdleCostSummary(
            car_number=car_number,
            total_idle_days=total_days,
            total_cost=total_cost,
            periods=periods,
        )
