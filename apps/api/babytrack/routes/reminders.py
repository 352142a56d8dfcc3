from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ..context import CareContext
from ..deps import get_care_context
from ..schemas import NoticeOut, ReminderView

router = APIRouter(prefix="/api/v1", tags=["reminders"])


@router.get("/babies/{baby_id}/reminders/missed-doses", response_model=ReminderView)
async def missed_doses_endpoint(context: CareContext = Depends(get_care_context)) -> ReminderView:
    return context.reminder.view()


@router.post("/babies/{baby_id}/reminders/missed-doses/check", response_model=ReminderView)
async def check_missed_doses_endpoint(context: CareContext = Depends(get_care_context)) -> ReminderView:
    return context.reminder.check()


@router.post("/babies/{baby_id}/reminders/missed-doses/dismiss", response_model=ReminderView)
async def dismiss_missed_doses_endpoint(context: CareContext = Depends(get_care_context)) -> ReminderView:
    context.reminder.dismiss()
    return context.reminder.view()


@router.get("/babies/{baby_id}/notices", response_model=List[NoticeOut])
async def drain_notices_endpoint(context: CareContext = Depends(get_care_context)) -> List[NoticeOut]:
    return [
        NoticeOut(level=notice.level.value, message=notice.message, created_at=notice.created_at)
        for notice in context.notices.drain()
    ]
