"""Once-a-day missed-dose reminder."""
from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from functools import partial
from typing import Callable, Dict, List, Optional, Union

from .dosing import deny_reason, missed_medicines
from .errors import ActionResult, SessionValidationError, StoreError
from .medicines import MEDICINE_LOGS_COLLECTION, MEDICINES_COLLECTION, medicine_status
from .notices import NoticeBoard
from .schemas import Medicine, MedicineLog, MedicineStatus, ReminderView
from .store import DocumentStore, Snapshot, SnapshotKey, Unsubscribe
from .timeutils import to_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_HOUR = 21


class MissedDoseReminder:
    """Watches a baby's medicines and their logs; fires at most once per local day.

    One log subscription is held per active medicine. The set is diffed on
    every medicines snapshot so reshuffles never leak or duplicate a
    subscription.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        baby_id: str,
        user_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
        reminder_hour: int = DEFAULT_REMINDER_HOUR,
        notices: Optional[NoticeBoard] = None,
    ) -> None:
        self.store = store
        self.baby_id = baby_id
        self.user_id = user_id
        self.reminder_hour = reminder_hour
        self.notices = notices or NoticeBoard()
        self._clock = clock or utc_now
        self._tz = tz

        self.is_showing = False
        self.last_reminder_date: Optional[str] = None

        self._medicines: List[Medicine] = []
        self._medicines_loaded = False
        self._logs: Dict[str, List[MedicineLog]] = {}
        self._log_subscriptions: Dict[str, Unsubscribe] = {}
        self._unsubscribe_medicines: Optional[Unsubscribe] = None

    # ------------------------------------------------------------------ wiring

    def mount(self) -> None:
        if self._unsubscribe_medicines is not None:
            return
        key = SnapshotKey(MEDICINES_COLLECTION, "baby_id", self.baby_id, order_by="created_at")
        self._unsubscribe_medicines = self.store.subscribe(key, self._on_medicines)

    def unmount(self) -> None:
        if self._unsubscribe_medicines is not None:
            self._unsubscribe_medicines()
            self._unsubscribe_medicines = None
        for unsubscribe in self._log_subscriptions.values():
            unsubscribe()
        self._log_subscriptions.clear()
        self._logs.clear()
        self._medicines_loaded = False

    @property
    def log_subscription_ids(self) -> List[str]:
        return sorted(self._log_subscriptions)

    @property
    def medicines(self) -> List[Medicine]:
        return list(self._medicines)

    @property
    def active_medicines(self) -> List[Medicine]:
        return [m for m in self._medicines if m.is_active]

    @property
    def is_loaded(self) -> bool:
        if not self._medicines_loaded:
            return False
        return all(m.id in self._logs for m in self.active_medicines)

    def logs_for(self, medicine_id: str) -> List[MedicineLog]:
        return list(self._logs.get(medicine_id, []))

    def _on_medicines(self, records: Snapshot) -> None:
        medicines = []
        for record in records:
            medicine = Medicine.from_record(record)
            if medicine is not None:
                medicines.append(medicine)
        self._medicines = medicines
        self._medicines_loaded = True
        self._sync_log_subscriptions()
        self._auto_close()

    def _sync_log_subscriptions(self) -> None:
        wanted = {m.id for m in self.active_medicines}
        for medicine_id in set(self._log_subscriptions) - wanted:
            self._log_subscriptions.pop(medicine_id)()
            self._logs.pop(medicine_id, None)
        for medicine_id in wanted - set(self._log_subscriptions):
            key = SnapshotKey(MEDICINE_LOGS_COLLECTION, "medicine_id", medicine_id, order_by="timestamp")
            self._log_subscriptions[medicine_id] = self.store.subscribe(key, partial(self._on_logs, medicine_id))

    def _on_logs(self, medicine_id: str, records: Snapshot) -> None:
        logs = []
        for record in records:
            log = MedicineLog.from_record(record)
            if log is not None:
                logs.append(log)
        self._logs[medicine_id] = logs
        self._auto_close()

    # -------------------------------------------------------------- read model

    def _all_logs(self) -> List[MedicineLog]:
        return [log for logs in self._logs.values() for log in logs]

    def missed(self, now: Optional[datetime] = None) -> List[Medicine]:
        return missed_medicines(self.active_medicines, self._all_logs(), now or self._clock(), self._tz)

    def statuses(self, now: Optional[datetime] = None) -> List[MedicineStatus]:
        now = now or self._clock()
        return [medicine_status(m, self._logs.get(m.id, []), now, self._tz) for m in self._medicines]

    def view(self, now: Optional[datetime] = None) -> ReminderView:
        return ReminderView(
            is_showing=self.is_showing,
            missed_medicines=self.missed(now),
            last_reminder_date=self.last_reminder_date,
        )

    def _auto_close(self, now: Optional[datetime] = None) -> None:
        if self.is_showing and self.is_loaded and not self.missed(now):
            logger.info("missed dose reminder cleared", extra={"baby_id": self.baby_id})
            self.is_showing = False

    # ----------------------------------------------------------------- actions

    def check(self, now: Optional[datetime] = None) -> ReminderView:
        now = now or self._clock()
        if not self.is_loaded:
            return self.view(now)
        self._auto_close(now)
        local_now = now.astimezone(self._tz) if self._tz is not None else now
        today = local_now.date().isoformat()
        if local_now.hour >= self.reminder_hour and self.last_reminder_date != today:
            missed = self.missed(now)
            if missed:
                self.is_showing = True
                self.last_reminder_date = today
                logger.info(
                    "missed dose reminder fired",
                    extra={"baby_id": self.baby_id, "medicine_ids": [m.id for m in missed]},
                )
        return self.view(now)

    def dismiss(self) -> None:
        self.is_showing = False

    def _find(self, medicine: Union[Medicine, str]) -> Medicine:
        medicine_id = medicine.id if isinstance(medicine, Medicine) else medicine
        for candidate in self._medicines:
            if candidate.id == medicine_id:
                return candidate
        raise SessionValidationError(f"Unknown medicine: {medicine_id}")

    async def give(
        self,
        medicine: Union[Medicine, str],
        *,
        given_by: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ActionResult:
        target = self._find(medicine)
        now = now or self._clock()
        reason = deny_reason(target, self._logs.get(target.id, []), now, self._tz)
        if reason:
            logger.info("dose denied", extra={"medicine_id": target.id, "reason": reason})
            return ActionResult.failure(reason)

        record = {
            "medicine_id": target.id,
            "baby_id": self.baby_id,
            "user_id": self.user_id,
            "timestamp": to_iso(now),
            "given_by": given_by or self.user_id,
            "notes": notes,
        }
        try:
            log_id = await self.store.create(MEDICINE_LOGS_COLLECTION, record)
        except StoreError as exc:
            logger.exception("failed to log dose", extra={"medicine_id": target.id})
            self.notices.error("Failed to log dose. Please try again.")
            return ActionResult.failure(str(exc))

        self.notices.success(f"{target.name} dose logged")
        logger.info("dose logged", extra={"medicine_id": target.id, "log_id": log_id})
        self._auto_close(now)
        return ActionResult.success(log_id)
