"""Per-baby runtime context and the adaptive tick loop."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .activities import ACTIVITY_CONFIGS, get_activity_config
from .config import AppConfig, CONFIG
from .editor import PreCommitEditor
from .notices import NoticeBoard
from .reminders import MissedDoseReminder
from .schemas import ActivityType
from .store import DocumentStore
from .timer_engine import SessionTimerEngine
from .timeutils import utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class CareContext:
    """Everything that is scoped to one baby: timers, reminder, notices."""

    def __init__(
        self,
        store: DocumentStore,
        baby_id: str,
        user_id: Optional[str] = None,
        config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.baby_id = baby_id
        self.user_id = user_id
        self.config = config or CONFIG
        self.clock = clock or utc_now
        self.notices = NoticeBoard()
        tz = self.config.tz
        self.engines: Dict[ActivityType, SessionTimerEngine] = {
            activity_type: SessionTimerEngine(
                activity_config,
                store,
                baby_id=baby_id,
                user_id=user_id,
                clock=self.clock,
                tz=tz,
                notices=self.notices,
                stale_threshold_seconds=self.config.stale_threshold_seconds,
            )
            for activity_type, activity_config in ACTIVITY_CONFIGS.items()
        }
        self.reminder = MissedDoseReminder(
            store,
            baby_id=baby_id,
            user_id=user_id,
            clock=self.clock,
            tz=tz,
            reminder_hour=self.config.reminder_hour,
            notices=self.notices,
        )
        self.mounted = False

    def engine(self, activity: ActivityType | str) -> SessionTimerEngine:
        return self.engines[get_activity_config(activity).activity_type]

    def editor(self, activity: ActivityType | str) -> PreCommitEditor:
        return PreCommitEditor(self.engine(activity))

    @property
    def any_timer_live(self) -> bool:
        return any(engine.is_live for engine in self.engines.values())

    def mount(self) -> None:
        if self.mounted:
            return
        for engine in self.engines.values():
            engine.mount()
        self.reminder.mount()
        self.mounted = True
        logger.info("care context mounted", extra={"baby_id": self.baby_id})

    def unmount(self) -> None:
        for engine in self.engines.values():
            engine.unmount()
        self.reminder.unmount()
        self.mounted = False

    def on_visible(self, now: Optional[datetime] = None) -> None:
        now = now or self.clock()
        for engine in self.engines.values():
            engine.on_visible(now)
        self.reminder.check(now)

    def tick(self, now: Optional[datetime] = None) -> None:
        now = now or self.clock()
        for engine in self.engines.values():
            if engine.is_live:
                engine.tick(now)
        self.reminder.check(now)


class ContextRegistry:
    def __init__(
        self,
        store: DocumentStore,
        config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.config = config or CONFIG
        self.clock = clock or utc_now
        self._contexts: Dict[str, CareContext] = {}

    def get(self, baby_id: str, user_id: Optional[str] = None) -> CareContext:
        context = self._contexts.get(baby_id)
        if context is None:
            context = CareContext(self.store, baby_id, user_id, config=self.config, clock=self.clock)
            context.mount()
            self._contexts[baby_id] = context
        return context

    def contexts(self) -> List[CareContext]:
        return list(self._contexts.values())

    def close(self, baby_id: str) -> None:
        context = self._contexts.pop(baby_id, None)
        if context is not None:
            context.unmount()

    def close_all(self) -> None:
        for baby_id in list(self._contexts):
            self.close(baby_id)


class AdaptiveTicker:
    """Ticks every context; fast while a timer is live, slow otherwise."""

    def __init__(self, registry: ContextRegistry, config: Optional[AppConfig] = None) -> None:
        self.registry = registry
        self.config = config or registry.config
        self._task: Optional[asyncio.Task] = None

    def next_interval(self) -> float:
        if any(context.any_timer_live for context in self.registry.contexts()):
            return self.config.active_tick_seconds
        return self.config.idle_tick_seconds

    def tick_once(self) -> float:
        now = self.registry.clock()
        for context in self.registry.contexts():
            try:
                context.tick(now)
            except Exception:
                logger.exception("tick failed", extra={"baby_id": context.baby_id})
        return self.next_interval()

    async def run(self) -> None:
        while True:
            interval = self.tick_once()
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
