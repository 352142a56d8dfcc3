from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..context import CareContext
from ..deps import ensure_ok, get_care_context, http_errors
from ..dosing import deny_reason
from ..medicines import create_medicine, set_medicine_active
from ..schemas import CreateMedicinePayload, Medicine, MedicineStatus

router = APIRouter(prefix="/api/v1", tags=["medicines"])
logger = logging.getLogger(__name__)


class GiveDosePayload(BaseModel):
    given_by: Optional[str] = None
    notes: Optional[str] = None


class UpdateMedicinePayload(BaseModel):
    is_active: Optional[bool] = None


class DoseLogged(BaseModel):
    log_id: str
    status: MedicineStatus


def _status_for(context: CareContext, medicine_id: str) -> MedicineStatus:
    for status in context.reminder.statuses():
        if status.medicine.id == medicine_id:
            return status
    raise HTTPException(status_code=404, detail="Medicine not found")


@router.post("/babies/{baby_id}/medicines", response_model=Medicine)
async def create_medicine_endpoint(
    payload: CreateMedicinePayload,
    context: CareContext = Depends(get_care_context),
) -> Medicine:
    with http_errors():
        return await create_medicine(context.store, context.baby_id, context.user_id, payload, now=context.clock())


@router.get("/babies/{baby_id}/medicines", response_model=List[MedicineStatus])
async def list_medicines_endpoint(context: CareContext = Depends(get_care_context)) -> List[MedicineStatus]:
    return context.reminder.statuses()


@router.post("/babies/{baby_id}/medicines/{medicine_id}/give", response_model=DoseLogged)
async def give_dose_endpoint(
    medicine_id: str,
    payload: Optional[GiveDosePayload] = None,
    context: CareContext = Depends(get_care_context),
) -> DoseLogged:
    payload = payload or GiveDosePayload()
    status = _status_for(context, medicine_id)
    now = context.clock()
    reason = deny_reason(status.medicine, context.reminder.logs_for(medicine_id), now, context.config.tz)
    if reason:
        raise HTTPException(status_code=409, detail=reason)
    with http_errors():
        result = ensure_ok(
            await context.reminder.give(medicine_id, given_by=payload.given_by, notes=payload.notes, now=now)
        )
    return DoseLogged(log_id=result.session_id or "", status=_status_for(context, medicine_id))


@router.patch("/babies/{baby_id}/medicines/{medicine_id}", response_model=MedicineStatus)
async def update_medicine_endpoint(
    medicine_id: str,
    payload: UpdateMedicinePayload,
    context: CareContext = Depends(get_care_context),
) -> MedicineStatus:
    current = _status_for(context, medicine_id)
    if "is_active" not in payload.model_fields_set or payload.is_active is None:
        return current
    with http_errors():
        await set_medicine_active(context.store, medicine_id, payload.is_active)
    return _status_for(context, medicine_id)
