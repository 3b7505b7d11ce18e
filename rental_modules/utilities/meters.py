"""
Sub-meter readings (``rental_modules.utilities.meters``).

Readings feed SUB_METERED allocation: usage for a lease is the delta
between its two latest readings.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.domain.money import to_decimal
from rental_kernel.logging_config import get_logger
from rental_kernel.models.property import Lease, MeterReading
from rental_modules._transactions import commit_or_rollback
from rental_modules.utilities.models import ReadingResult, ReadingResultStatus
from rental_modules.utilities.validators import validate_new_reading

logger = get_logger("modules.utilities.meters")


class MeterReadingService:
    def __init__(self, session: Session):
        self._session = session

    def latest_reading(self, lease_id: UUID) -> MeterReading | None:
        return self._session.scalars(
            select(MeterReading)
            .where(MeterReading.lease_id == lease_id)
            .order_by(MeterReading.reading_date.desc(), MeterReading.created_at.desc())
            .limit(1)
        ).first()

    def record_meter_reading(
        self,
        lease_id: UUID,
        reading_value: Decimal,
        reading_date: date,
        actor_id: UUID | None = None,
    ) -> ReadingResult:
        try:
            value = to_decimal(reading_value)
            if self._session.get(Lease, lease_id) is None:
                result = ReadingResult(ReadingResultStatus.LEASE_NOT_FOUND)
                commit_or_rollback(self._session, result)
                return result

            previous = self.latest_reading(lease_id)
            error = validate_new_reading(
                value, previous.reading_value if previous is not None else None
            )
            if error is not None:
                logger.warning(
                    "meter_reading_rejected",
                    extra={"lease_id": str(lease_id), "reason": error, "value": str(value)},
                )
                result = ReadingResult(ReadingResultStatus(error))
                commit_or_rollback(self._session, result)
                return result

            reading = MeterReading(
                lease_id=lease_id,
                reading_value=value,
                reading_date=reading_date,
                created_by_id=actor_id,
            )
            self._session.add(reading)
            self._session.flush()
            logger.info(
                "meter_reading_recorded",
                extra={"lease_id": str(lease_id), "reading_id": str(reading.id), "value": str(value)},
            )
            result = ReadingResult(ReadingResultStatus.SUCCESS, reading_id=reading.id)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise
