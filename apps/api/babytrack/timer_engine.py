"""Session timer engine shared by the feeding, pump and play timers.

State machine::

    idle -> running <-> paused
    running|paused -> review -> committed | discarded
    review -> running|paused          (cancel_review)

Inbound snapshots are authoritative except while in review: once the user
has stopped the timer, an unrelated write to the collection must not snap
the finished timer back to running.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Dict, List, Optional

from .activities import ActivityConfig
from .elapsed import elapsed_seconds
from .errors import ActionResult, InvalidTransitionError, StoreError
from .notices import NoticeBoard
from .schemas import ActivitySession, TimerState, TimerView
from .stale import STALE_TIMER_THRESHOLD, StaleSessionMonitor
from .store import DocumentStore, Increment, Snapshot, SnapshotKey, Unsubscribe
from .timeutils import format_duration, local_date, to_iso, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TimerListener = Callable[[TimerView], None]

_TERMINAL = (TimerState.COMMITTED, TimerState.DISCARDED)
_LIVE = (TimerState.RUNNING, TimerState.PAUSED)


class SessionTimerEngine:
    def __init__(
        self,
        config: ActivityConfig,
        store: DocumentStore,
        *,
        baby_id: str,
        user_id: Optional[str] = None,
        clock: Optional[Clock] = None,
        tz: Optional[tzinfo] = None,
        notices: Optional[NoticeBoard] = None,
        stale_threshold_seconds: int = STALE_TIMER_THRESHOLD,
    ) -> None:
        self.config = config
        self.store = store
        self.baby_id = baby_id
        self.user_id = user_id
        self.notices = notices or NoticeBoard()
        self.stale = StaleSessionMonitor(stale_threshold_seconds)
        self._clock = clock or utc_now
        self._tz = tz

        self.state = TimerState.IDLE
        self.session_id: Optional[str] = None
        self._session: Optional[ActivitySession] = None
        self._review_elapsed = 0
        self._state_before_review: Optional[TimerState] = None

        self.metadata: Dict[str, Any] = config.defaults()
        self.notes: Optional[str] = None
        self.moods: Dict[str, Optional[str]] = {}
        self.edited_start_time: Optional[datetime] = None

        self._sessions: List[ActivitySession] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._in_flight: Optional[str] = None
        self._listeners: List[TimerListener] = []

    # ------------------------------------------------------------------ wiring

    @property
    def key(self) -> SnapshotKey:
        return SnapshotKey(self.config.collection, "baby_id", self.baby_id, order_by="start_time")

    @property
    def is_live(self) -> bool:
        return self.state in _LIVE

    @property
    def session(self) -> Optional[ActivitySession]:
        return self._session

    @property
    def sessions(self) -> List[ActivitySession]:
        return list(self._sessions)

    def _log_extra(self, **extra: Any) -> Dict[str, Any]:
        return {
            "baby_id": self.baby_id,
            "activity_type": self.config.activity_type.value,
            "session_id": self.session_id,
            **extra,
        }

    def now(self) -> datetime:
        return self._clock()

    @property
    def tz(self) -> Optional[tzinfo]:
        return self._tz

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self._clock()

    def add_listener(self, listener: TimerListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def mount(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.key, self._on_snapshot)
        self.reconcile()

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, records: Snapshot) -> None:
        sessions: List[ActivitySession] = []
        for record in records:
            session = ActivitySession.from_record(record, self.config.activity_type)
            if session is not None:
                sessions.append(session)
        self._sessions = sessions
        self.reconcile()

    # ---------------------------------------------------------- reconciliation

    def _first_active(self) -> Optional[ActivitySession]:
        active = [s for s in self._sessions if s.is_active]
        if len(active) > 1:
            logger.warning(
                "multiple active sessions; using the first",
                extra=self._log_extra(active_ids=[s.id for s in active]),
            )
        return active[0] if active else None

    def _last_completed_record(self) -> Optional[Dict[str, Any]]:
        for session in self._sessions:
            if not session.is_active:
                return session.metadata
        return None

    def reconcile(self, now: Optional[datetime] = None) -> None:
        """Overwrite local timer state from the latest snapshot (never in review)."""
        if self.state == TimerState.REVIEW:
            return
        active = self._first_active()
        if active is None:
            if self.state in _LIVE and self.session_id and self._in_flight is None:
                logger.info("active session ended elsewhere", extra=self._log_extra())
                self._clear(TimerState.IDLE)
                self._emit(now)
            return
        if active.id != self.session_id:
            logger.info("adopting active session", extra=self._log_extra(adopted_id=active.id))
        self.session_id = active.id
        self._session = active
        self.state = TimerState.PAUSED if active.is_paused else TimerState.RUNNING
        self.metadata = {
            **self.config.defaults(),
            **{name: active.metadata[name] for name in self.config.field_names if name in active.metadata},
        }
        self._check_stale(now)
        self._emit(now)

    def on_visible(self, now: Optional[datetime] = None) -> None:
        """Foreground/visibility restore: recompute from the store snapshot."""
        self.reconcile(now)

    def _check_stale(self, now: Optional[datetime]) -> None:
        if self.state in _LIVE:
            self.stale.evaluate(self.session_id, self.current_elapsed(now))

    # -------------------------------------------------------------- read model

    def current_elapsed(self, now: Optional[datetime] = None) -> int:
        if self.state == TimerState.REVIEW:
            return self._review_elapsed
        if self.state in _LIVE and self._session is not None:
            return elapsed_seconds(self._session, self._now(now))
        return 0

    def view(self, now: Optional[datetime] = None) -> TimerView:
        return TimerView(
            activity_type=self.config.activity_type,
            state=self.state,
            elapsed_seconds=self.current_elapsed(now),
            is_paused=self.state == TimerState.PAUSED
            or (self.state == TimerState.REVIEW and self._state_before_review == TimerState.PAUSED),
            session_id=self.session_id,
            stale_prompt=self.stale.prompt_open,
            edited_start_time=self.edited_start_time,
            metadata=dict(self.metadata),
        )

    def _emit(self, now: Optional[datetime] = None) -> None:
        if not self._listeners:
            return
        view = self.view(now)
        for listener in list(self._listeners):
            listener(view)

    def tick(self, now: Optional[datetime] = None) -> TimerView:
        view = self.view(now)
        for listener in list(self._listeners):
            listener(view)
        return view

    def today_summary(self, now: Optional[datetime] = None) -> Dict[str, int]:
        today = local_date(self._now(now), self._tz)
        completed = [
            s
            for s in self._sessions
            if not s.is_active and s.start_time is not None and local_date(s.start_time, self._tz) == today
        ]
        return {"count": len(completed), "total_seconds": sum(s.duration for s in completed)}

    # ----------------------------------------------------------------- actions

    def _busy(self, action: str) -> Optional[ActionResult]:
        if self._in_flight is None:
            return None
        logger.info("action ignored while busy", extra=self._log_extra(action=action, in_flight=self._in_flight))
        return ActionResult.failure(f"Still working on {self._in_flight}", self.session_id)

    def _resolve_session_id(self) -> Optional[str]:
        if self.session_id:
            return self.session_id
        active = self._first_active()
        return active.id if active else None

    async def start(self, metadata: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> ActionResult:
        if self.state in _TERMINAL:
            self.reset()
        if self.state != TimerState.IDLE:
            raise InvalidTransitionError("start", self.state.value)
        busy = self._busy("start")
        if busy:
            return busy
        cleaned = self.config.clean_metadata(metadata, partial=True)
        meta = {**self.config.suggested_metadata(self._last_completed_record()), **cleaned}
        now = self._now(now)
        stamp = to_iso(now)
        record: Dict[str, Any] = {
            "activity_type": self.config.activity_type.value,
            "baby_id": self.baby_id,
            "user_id": self.user_id,
            "date": local_date(now, self._tz).isoformat(),
            "start_time": stamp,
            "end_time": None,
            "is_active": True,
            "is_paused": False,
            "paused_at": None,
            "total_paused_duration": 0,
            "duration": 0,
            "notes": None,
            "created_at": stamp,
            "updated_at": stamp,
            **{name: None for name in self.config.mood_fields},
            **meta,
        }

        self.stale.reset_for_new_session()
        self._in_flight = "start"
        try:
            session_id = await self.store.create(self.config.collection, record)
        except StoreError as exc:
            logger.exception("failed to start session", extra=self._log_extra())
            self.notices.error(f"Failed to start {self.config.label.lower()} session. Please try again.")
            return ActionResult.failure(str(exc))
        finally:
            self._in_flight = None

        self._clear_scratch()
        self.session_id = session_id
        self._session = ActivitySession.from_record({**record, "id": session_id}, self.config.activity_type)
        self.metadata = meta
        self.state = TimerState.RUNNING
        logger.info("timer started", extra=self._log_extra())
        self._emit(now)
        return ActionResult.success(session_id)

    async def pause(self, now: Optional[datetime] = None) -> ActionResult:
        if self.state != TimerState.RUNNING or self._session is None:
            raise InvalidTransitionError("pause", self.state.value)
        busy = self._busy("pause")
        if busy:
            return busy
        now = self._now(now)
        session_id = self.session_id
        previous = self._session

        # tentative
        self._session = previous.model_copy(update={"is_paused": True, "paused_at": now})
        self.state = TimerState.PAUSED
        self._in_flight = "pause"
        try:
            await self.store.update(
                self.config.collection,
                session_id,
                {"is_paused": True, "paused_at": to_iso(now), "updated_at": to_iso(now)},
            )
        except StoreError as exc:
            logger.exception("failed to pause session; rolling back", extra=self._log_extra())
            if self.session_id == session_id and self.state == TimerState.PAUSED:
                self._session = previous.model_copy(update={"is_paused": False, "paused_at": None})
                self.state = TimerState.RUNNING
            self.notices.error("Failed to pause timer. Please try again.")
            self._emit(now)
            return ActionResult.failure(str(exc), session_id)
        finally:
            self._in_flight = None

        logger.info("timer paused", extra=self._log_extra())
        self._emit(now)
        return ActionResult.success(session_id)

    async def resume(self, now: Optional[datetime] = None) -> ActionResult:
        if self.state != TimerState.PAUSED or self._session is None:
            raise InvalidTransitionError("resume", self.state.value)
        busy = self._busy("resume")
        if busy:
            return busy
        now = self._now(now)
        session_id = self.session_id
        base = self._session
        paused_at = base.paused_at or now
        paused_for = max(0.0, (now - paused_at).total_seconds())

        self._in_flight = "resume"
        try:
            await self.store.update(
                self.config.collection,
                session_id,
                {
                    "is_paused": False,
                    "paused_at": None,
                    "total_paused_duration": Increment(paused_for),
                    "updated_at": to_iso(now),
                },
            )
        except StoreError as exc:
            logger.exception("failed to resume session", extra=self._log_extra())
            self.notices.error("Failed to resume timer. Please try again.")
            return ActionResult.failure(str(exc), session_id)
        finally:
            self._in_flight = None

        if self.session_id == session_id and self.state in _LIVE:
            self._session = base.model_copy(
                update={
                    "is_paused": False,
                    "paused_at": None,
                    "total_paused_duration": base.total_paused_duration + paused_for,
                }
            )
            self.state = TimerState.RUNNING
        logger.info("timer resumed", extra=self._log_extra(paused_seconds=paused_for))
        self._emit(now)
        return ActionResult.success(session_id)

    def stop(self, elapsed: Optional[int] = None, now: Optional[datetime] = None) -> TimerView:
        """Freeze the timer for review; the stored session is left untouched."""
        if self.state not in _LIVE:
            raise InvalidTransitionError("stop", self.state.value)
        value = self.current_elapsed(now) if elapsed is None else elapsed
        self._review_elapsed = max(0, int(value))
        self._state_before_review = self.state
        self.state = TimerState.REVIEW
        self.stale.close()
        logger.info("timer stopped for review", extra=self._log_extra(elapsed=self._review_elapsed))
        self._emit(now)
        return self.view(now)

    def cancel_review(self, now: Optional[datetime] = None) -> TimerView:
        if self.state != TimerState.REVIEW:
            raise InvalidTransitionError("cancel review", self.state.value)
        self.state = self._state_before_review or TimerState.RUNNING
        self._state_before_review = None
        self._review_elapsed = 0
        self.edited_start_time = None
        self.reconcile(now)
        return self.view(now)

    def update_draft(
        self,
        *,
        notes: Optional[str] = None,
        baby_mood: Optional[str] = None,
        mom_mood: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Stash review-time details that commit() will write.

        Everything is validated before anything is assigned, so a rejected
        update leaves the draft as it was.
        """
        moods = dict(self.moods)
        if baby_mood is not None:
            moods["baby_mood"] = self.config.clean_mood("baby_mood", baby_mood)
        if mom_mood is not None:
            moods["mom_mood"] = self.config.clean_mood("mom_mood", mom_mood)
        cleaned = self.config.clean_metadata(metadata, partial=True) if metadata else {}

        if notes is not None:
            self.notes = notes.strip() or None
        self.moods = moods
        if cleaned:
            self.metadata = {**self.metadata, **cleaned}

    def set_review_elapsed(self, seconds: int) -> None:
        if self.state != TimerState.REVIEW:
            raise InvalidTransitionError("edit", self.state.value)
        self._review_elapsed = max(0, int(seconds))

    @property
    def review_elapsed(self) -> int:
        return self._review_elapsed

    async def commit(
        self,
        *,
        notes: Optional[str] = None,
        baby_mood: Optional[str] = None,
        mom_mood: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ActionResult:
        if self.state != TimerState.REVIEW:
            raise InvalidTransitionError("commit", self.state.value)
        busy = self._busy("commit")
        if busy:
            return busy
        self.update_draft(notes=notes, baby_mood=baby_mood, mom_mood=mom_mood, metadata=metadata)

        session_id = self._resolve_session_id()
        if not session_id:
            logger.warning("no active session to save", extra=self._log_extra())
            self.notices.error("No active session to save.")
            return ActionResult.failure("No active session to save")

        now = self._now(now)
        elapsed = self._review_elapsed
        fields: Dict[str, Any] = {
            **self.metadata,
            "is_active": False,
            "is_paused": False,
            "paused_at": None,
            "duration": elapsed,
            "notes": self.notes,
            "updated_at": to_iso(now),
        }
        for name in self.config.mood_fields:
            fields[name] = self.moods.get(name)
        if self.edited_start_time is not None:
            start = self.edited_start_time
            fields["start_time"] = to_iso(start)
            fields["end_time"] = to_iso(start + timedelta(seconds=elapsed))
            fields["date"] = local_date(start, self._tz).isoformat()
        else:
            fields["end_time"] = to_iso(now)

        self._in_flight = "commit"
        try:
            await self.store.update(self.config.collection, session_id, fields)
        except StoreError as exc:
            logger.exception("failed to save session", extra=self._log_extra())
            self.notices.error(f"Failed to save {self.config.label.lower()} session. Please try again.")
            return ActionResult.failure(str(exc), session_id)
        finally:
            self._in_flight = None

        description = self.config.describe(self.metadata)
        self.notices.success(f"{format_duration(elapsed)} {description} logged")
        logger.info("session committed", extra=self._log_extra(duration=elapsed))
        self._clear(TimerState.COMMITTED)
        self._emit(now)
        return ActionResult.success(session_id)

    async def discard(self, now: Optional[datetime] = None) -> ActionResult:
        if self.state not in (TimerState.REVIEW, *_LIVE):
            raise InvalidTransitionError("discard", self.state.value)
        busy = self._busy("discard")
        if busy:
            return busy
        session_id = self._resolve_session_id()
        if not session_id:
            self.reset()
            return ActionResult.success()

        self._in_flight = "discard"
        try:
            await self.store.delete(self.config.collection, session_id)
        except StoreError as exc:
            logger.exception("failed to discard session", extra=self._log_extra())
            self.notices.error("Failed to discard session. Please try again.")
            return ActionResult.failure(str(exc), session_id)
        finally:
            self._in_flight = None

        self.notices.info(f"{self.config.label} session discarded")
        logger.info("session discarded", extra=self._log_extra())
        self._clear(TimerState.DISCARDED)
        self._emit(now)
        return ActionResult.success(session_id)

    def reset(self) -> None:
        self._clear(TimerState.IDLE)

    # ------------------------------------------------------------ stale prompt

    def stale_continue(self) -> None:
        self.stale.dismiss(self.session_id)

    def stale_stop_and_save(self, now: Optional[datetime] = None) -> TimerView:
        self.stale.close()
        return self.stop(now=now)

    async def stale_discard(self, now: Optional[datetime] = None) -> ActionResult:
        self.stale.close()
        result = await self.discard(now)
        if result.ok:
            self.reset()
        return result

    # ---------------------------------------------------------------- helpers

    def _clear_scratch(self) -> None:
        self.metadata = self.config.defaults()
        self.notes = None
        self.moods = {}
        self.edited_start_time = None

    def _clear(self, state: TimerState) -> None:
        self.state = state
        self.session_id = None
        self._session = None
        self._review_elapsed = 0
        self._state_before_review = None
        self.stale.close()
        self._clear_scratch()
