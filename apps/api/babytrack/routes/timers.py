from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..context import CareContext
from ..deps import ensure_ok, get_care_context, http_errors
from ..schemas import ActivityType, EditDraft, TimerView

router = APIRouter(prefix="/api/v1", tags=["timers"])
logger = logging.getLogger(__name__)

TIMER_PATH = "/babies/{baby_id}/timers/{activity}"


class StaleChoice(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    DISCARD = "discard"


class StartTimerPayload(BaseModel):
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StopTimerPayload(BaseModel):
    elapsed_seconds: Optional[int] = Field(default=None, ge=0)


class CommitTimerPayload(BaseModel):
    notes: Optional[str] = None
    baby_mood: Optional[str] = None
    mom_mood: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EditTimerPayload(BaseModel):
    start_time: datetime
    duration_minutes: int


@router.get(TIMER_PATH, response_model=TimerView)
async def get_timer_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    return context.engine(activity).view()


@router.get(TIMER_PATH + "/summary")
async def get_timer_summary_endpoint(
    activity: ActivityType,
    context: CareContext = Depends(get_care_context),
) -> Dict[str, int]:
    return context.engine(activity).today_summary()


@router.post(TIMER_PATH + "/start", response_model=TimerView)
async def start_timer_endpoint(
    activity: ActivityType,
    payload: Optional[StartTimerPayload] = None,
    context: CareContext = Depends(get_care_context),
) -> TimerView:
    engine = context.engine(activity)
    with http_errors():
        ensure_ok(await engine.start((payload or StartTimerPayload()).metadata))
    return engine.view()


@router.post(TIMER_PATH + "/pause", response_model=TimerView)
async def pause_timer_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    engine = context.engine(activity)
    with http_errors():
        ensure_ok(await engine.pause())
    return engine.view()


@router.post(TIMER_PATH + "/resume", response_model=TimerView)
async def resume_timer_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    engine = context.engine(activity)
    with http_errors():
        ensure_ok(await engine.resume())
    return engine.view()


@router.post(TIMER_PATH + "/stop", response_model=TimerView)
async def stop_timer_endpoint(
    activity: ActivityType,
    payload: Optional[StopTimerPayload] = None,
    context: CareContext = Depends(get_care_context),
) -> TimerView:
    engine = context.engine(activity)
    with http_errors():
        return engine.stop((payload or StopTimerPayload()).elapsed_seconds)


@router.post(TIMER_PATH + "/cancel", response_model=TimerView)
async def cancel_review_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    with http_errors():
        return context.engine(activity).cancel_review()


@router.post(TIMER_PATH + "/commit", response_model=TimerView)
async def commit_timer_endpoint(
    activity: ActivityType,
    payload: Optional[CommitTimerPayload] = None,
    context: CareContext = Depends(get_care_context),
) -> TimerView:
    engine = context.engine(activity)
    payload = payload or CommitTimerPayload()
    with http_errors():
        ensure_ok(
            await engine.commit(
                notes=payload.notes,
                baby_mood=payload.baby_mood,
                mom_mood=payload.mom_mood,
                metadata=payload.metadata,
            )
        )
    return engine.view()


@router.post(TIMER_PATH + "/discard", response_model=TimerView)
async def discard_timer_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    engine = context.engine(activity)
    with http_errors():
        ensure_ok(await engine.discard())
    return engine.view()


@router.post(TIMER_PATH + "/reset", response_model=TimerView)
async def reset_timer_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    engine = context.engine(activity)
    engine.reset()
    return engine.view()


@router.post(TIMER_PATH + "/visible", response_model=TimerView)
async def timer_visible_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> TimerView:
    engine = context.engine(activity)
    engine.on_visible()
    return engine.view()


@router.get(TIMER_PATH + "/edit", response_model=EditDraft)
async def get_edit_draft_endpoint(activity: ActivityType, context: CareContext = Depends(get_care_context)) -> EditDraft:
    with http_errors():
        return context.editor(activity).open()


@router.post(TIMER_PATH + "/edit", response_model=EditDraft)
async def apply_edit_endpoint(
    activity: ActivityType,
    payload: EditTimerPayload,
    context: CareContext = Depends(get_care_context),
) -> EditDraft:
    with http_errors():
        return context.editor(activity).apply(payload.start_time, payload.duration_minutes)


@router.post(TIMER_PATH + "/stale/{choice}", response_model=TimerView)
async def stale_choice_endpoint(
    activity: ActivityType,
    choice: StaleChoice,
    context: CareContext = Depends(get_care_context),
) -> TimerView:
    engine = context.engine(activity)
    if engine.session_id is None:
        raise HTTPException(status_code=409, detail="No running timer")
    with http_errors():
        if choice == StaleChoice.CONTINUE:
            engine.stale_continue()
        elif choice == StaleChoice.STOP:
            engine.stale_stop_and_save()
        else:
            ensure_ok(await engine.stale_discard())
    logger.info("stale prompt answered", extra={"baby_id": context.baby_id, "choice": choice.value})
    return engine.view()
