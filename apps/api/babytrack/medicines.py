"""Medicine records and their dose status."""
from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Iterable, Optional

from .dosing import (
    can_give_dose,
    doses_given_today,
    hours_until_next_dose,
    last_dose,
    max_doses_per_day,
    next_dose_time,
)
from .schemas import CreateMedicinePayload, Medicine, MedicineLog, MedicineStatus
from .store import DocumentStore
from .timeutils import to_iso, utc_now

logger = logging.getLogger(__name__)

MEDICINES_COLLECTION = "medicines"
MEDICINE_LOGS_COLLECTION = "medicine_logs"


async def create_medicine(
    store: DocumentStore,
    baby_id: str,
    user_id: Optional[str],
    payload: CreateMedicinePayload,
    now: Optional[datetime] = None,
) -> Medicine:
    """Persist a validated medicine; StoreError propagates to the caller."""
    stamp = to_iso(now or utc_now())
    record = {
        "baby_id": baby_id,
        "user_id": user_id,
        "name": payload.name,
        "dosage": payload.dosage,
        "frequency": payload.frequency.value,
        "hours_interval": payload.hours_interval,
        "instructions": payload.instructions,
        "is_active": True,
        "created_at": stamp,
        "updated_at": stamp,
    }
    medicine_id = await store.create(MEDICINES_COLLECTION, record)
    logger.info("medicine created", extra={"baby_id": baby_id, "medicine_id": medicine_id})
    return Medicine(id=medicine_id, **{k: v for k, v in record.items() if k in Medicine.model_fields})


async def set_medicine_active(store: DocumentStore, medicine_id: str, active: bool) -> None:
    await store.update(
        MEDICINES_COLLECTION,
        medicine_id,
        {"is_active": active, "updated_at": to_iso(utc_now())},
    )
    logger.info("medicine active flag changed", extra={"medicine_id": medicine_id, "is_active": active})


def medicine_status(
    medicine: Medicine,
    logs: Iterable[MedicineLog],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> MedicineStatus:
    logs = list(logs)
    latest = last_dose(medicine, logs)
    return MedicineStatus(
        medicine=medicine,
        can_give=can_give_dose(medicine, logs, now, tz),
        doses_today=doses_given_today(medicine, logs, now, tz),
        max_doses_per_day=max_doses_per_day(medicine.frequency),
        hours_until_next_dose=hours_until_next_dose(medicine, logs, now),
        next_dose_time=next_dose_time(
            latest.timestamp if latest else None,
            medicine.frequency,
            medicine.hours_interval,
        ),
    )
