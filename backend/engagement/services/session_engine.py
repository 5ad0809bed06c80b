"""
Session Engine - lifecycle of one simulated classroom tracking session.

The engine owns all mutable session state and every timer that touches it:
1. A clock task that advances elapsed_seconds once per CLOCK_TICK_SECONDS
2. A sampling task that runs one observation round per SAMPLING_INTERVAL_SECONDS
3. One call_later handle per visible alert, removing it after ALERT_VISIBILITY_SECONDS

All three run on the same asyncio event loop, so the sampling round always
sees a consistent elapsed_seconds. stop() and teardown() cancel every timer
together. An engine is single use: once stopped it rejects start(), tick(),
sample() and a second stop().

tick() and sample() are public so callers (and tests) can drive a session
without timers by passing schedule=False to start().
"""

import asyncio
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from engagement import config
from engagement.schemas import (
    Alert, AlertLogEntry, AlertType, AttentionPoint, RosterEntry,
    SessionRecord, SessionSnapshot, StudentEngagement,
)
from engagement.services.sampler import AttentionSampler, RandomWalkSampler, SamplingUnavailable
from engagement.services.stats import rounded_mean
from engagement.logging_config import get_logger, log_with_context

logger = get_logger("session")

IDLE, ACTIVE, STOPPED = "idle", "active", "stopped"

_id_lock = threading.Lock()
_last_session_id = 0


class SessionStateError(Exception):
    """Raised when an operation does not fit the engine's lifecycle state."""


def next_session_id() -> str:
    """Millisecond timestamp id, strictly increasing within the process."""
    global _last_session_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        if candidate <= _last_session_id:
            candidate = _last_session_id + 1
        _last_session_id = candidate
        return str(candidate)


def engagement_level(attention: int) -> str:
    if attention >= 80:
        return "Excellent"
    if attention >= 60:
        return "Good"
    return "Needs attention"


class SessionEngine:

    def __init__(self, sampler: AttentionSampler = None,
                 clock_interval: float = config.CLOCK_TICK_SECONDS,
                 sampling_interval: float = config.SAMPLING_INTERVAL_SECONDS,
                 alert_window: float = config.ALERT_VISIBILITY_SECONDS,
                 initial_attention: int = config.INITIAL_ATTENTION,
                 now: Callable[[], datetime] = None):
        self.sampler = sampler or RandomWalkSampler()
        self.clock_interval = clock_interval
        self.sampling_interval = sampling_interval
        self.alert_window = alert_window
        self.initial_attention = initial_attention
        self._now = now or (lambda: datetime.now(timezone.utc))

        self.state = IDLE
        self.session_id: Optional[str] = None
        self.teacher_name = ""
        self.teacher_id = ""
        self.start_time: Optional[datetime] = None
        self.roster: tuple = ()

        self.elapsed_seconds = 0
        self.overall_attention = initial_attention
        self.student_samples: Dict[str, List[float]] = {}
        self.attention_history: List[AttentionPoint] = []
        self.alert_log: List[AlertLogEntry] = []
        self.active_alerts: List[Alert] = []

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: List[asyncio.Task] = []
        self._expiry_handles: Dict[str, asyncio.TimerHandle] = {}
        self._subscribers: List[Callable[[SessionSnapshot], None]] = []
        self._record: Optional[SessionRecord] = None

    # ── lifecycle ────────────────────────────────────────────

    def start(self, roster: Sequence, teacher_name: str, teacher_id: str,
              schedule: bool = True) -> SessionSnapshot:
        """
        Begin a session for the given roster.

        Roster items only need `id` and `name` attributes. With schedule=True
        this must be called from a running event loop, which then owns the
        clock and sampling tasks.
        """
        if self.state != IDLE:
            raise SessionStateError(f"cannot start a session that is {self.state}")

        self.roster = tuple(RosterEntry(id=str(s.id), name=s.name) for s in roster)
        self.session_id = next_session_id()
        self.teacher_name = teacher_name
        self.teacher_id = teacher_id
        self.start_time = self._now()

        self.elapsed_seconds = 0
        self.overall_attention = self.initial_attention
        self.student_samples = {student.id: [] for student in self.roster}
        self.attention_history = []
        self.alert_log = []
        self.active_alerts = []
        self.state = ACTIVE

        if schedule:
            self._loop = asyncio.get_running_loop()
            self._tasks = [
                self._loop.create_task(self._run_clock(), name=f"session-{self.session_id}-clock"),
                self._loop.create_task(self._run_sampling(), name=f"session-{self.session_id}-sampling"),
            ]

        log_with_context(logger, "INFO",
            f"Session started with {len(self.roster)} students",
            context={"session_id": self.session_id, "teacher_id": teacher_id},
            extra_data={"scheduled": schedule})

        snapshot = self.snapshot()
        self._notify(snapshot)
        return snapshot

    def stop(self) -> SessionRecord:
        """Cancel all timers and return the finalized, immutable record."""
        if self.state != ACTIVE:
            raise SessionStateError(f"cannot stop a session that is {self.state}")

        self._cancel_timers()
        self.state = STOPPED

        engagement = tuple(
            StudentEngagement(
                student_id=student.id,
                name=student.name,
                attention_score=rounded_mean(self.student_samples.get(student.id, [])),
            )
            for student in self.roster
        )

        self._record = SessionRecord(
            id=self.session_id,
            teacher_name=self.teacher_name,
            teacher_id=self.teacher_id,
            start_time=self.start_time,
            end_time=self._now(),
            duration=self.elapsed_seconds,
            total_students=len(self.roster),
            attention_data=tuple(self.attention_history),
            student_engagement=engagement,
            alerts=tuple(self.alert_log),
        )

        log_with_context(logger, "INFO",
            f"Session stopped after {self.elapsed_seconds}s",
            context={"session_id": self.session_id, "teacher_id": self.teacher_id},
            extra_data={
                "data_points": len(self.attention_history),
                "alerts": len(self.alert_log),
                "students": len(self.roster),
            })

        self._subscribers.clear()
        return self._record

    def teardown(self):
        """Abnormal shutdown: cancel every timer without producing a record."""
        if self.state == STOPPED:
            return
        self._cancel_timers()
        self.state = STOPPED
        self._subscribers.clear()
        log_with_context(logger, "WARNING", "Session torn down without finalizing",
                         context={"session_id": self.session_id},
                         extra_data={"elapsed_seconds": self.elapsed_seconds})

    @property
    def is_active(self) -> bool:
        return self.state == ACTIVE

    @property
    def record(self) -> Optional[SessionRecord]:
        """The finalized record, once stop() has returned it."""
        return self._record

    # ── periodic work ────────────────────────────────────────

    async def _run_clock(self):
        while True:
            await asyncio.sleep(self.clock_interval)
            try:
                self.tick()
            except Exception as exc:
                self._log_timer_failure("clock", exc)

    async def _run_sampling(self):
        while True:
            await asyncio.sleep(self.sampling_interval)
            try:
                self.sample()
            except Exception as exc:
                self._log_timer_failure("sampling", exc)

    def _log_timer_failure(self, timer: str, exc: Exception):
        # One failed round must not end the timer while the session is active
        log_with_context(logger, "ERROR", f"Session {timer} round failed: {exc!r}",
                         context={"session_id": self.session_id},
                         extra_data={"timer": timer, "elapsed_seconds": self.elapsed_seconds})

    def tick(self) -> int:
        """Advance the session clock by one second."""
        self._require_active()
        self.elapsed_seconds += 1
        self._notify(self.snapshot())
        return self.elapsed_seconds

    def sample(self) -> Optional[AttentionPoint]:
        """
        Run one observation round.

        Returns the attention point appended to the history, or None when the
        sampler had no reading (state is left untouched in that case).
        """
        self._require_active()
        try:
            reading = self.sampler.next_reading(self.overall_attention, self.roster)
        except SamplingUnavailable as exc:
            log_with_context(logger, "WARNING", f"Sampling unavailable: {exc}",
                             context={"session_id": self.session_id},
                             extra_data={"elapsed_seconds": self.elapsed_seconds,
                                         "attention": self.overall_attention})
            return None

        self.overall_attention = reading.overall_attention
        point = AttentionPoint(time=self.elapsed_seconds, attention=self.overall_attention)
        self.attention_history.append(point)

        for student_id, value in reading.student_samples.items():
            self.student_samples.setdefault(student_id, []).append(value)

        log_with_context(logger, "DEBUG", "Sampling round recorded",
                         context={"session_id": self.session_id},
                         extra_data={"time": point.time, "attention": point.attention})

        if reading.hand_raised_by is not None:
            student = reading.hand_raised_by
            self.record_alert("hand", f"{student.name} raised their hand", student.name)

        if self.overall_attention < config.DISTRACTION_THRESHOLD:
            self.record_alert("distraction",
                              f"{100 - self.overall_attention}% of class appears distracted")

        self._notify(self.snapshot())
        return point

    # ── alerts ───────────────────────────────────────────────

    def record_alert(self, alert_type: AlertType, message: str,
                     student_name: str = None) -> Alert:
        """Log the alert permanently and show it for the alert window."""
        self._require_active()
        alert = Alert(id=uuid.uuid4().hex, type=alert_type, message=message,
                      student_name=student_name)
        self.alert_log.append(AlertLogEntry(time=self.elapsed_seconds, type=alert_type, message=message))
        self.active_alerts.append(alert)

        if self._loop is not None:
            self._expiry_handles[alert.id] = self._loop.call_later(
                self.alert_window, self.expire_alert, alert.id)

        log_with_context(logger, "INFO", f"Alert raised: {message}",
                         context={"session_id": self.session_id, "alert_id": alert.id},
                         extra_data={"type": alert_type, "time": self.elapsed_seconds})

        self._notify(self.snapshot())
        return alert

    def expire_alert(self, alert_id: str):
        """Remove a transient alert; the permanent log entry stays."""
        self._expiry_handles.pop(alert_id, None)
        remaining = [a for a in self.active_alerts if a.id != alert_id]
        if len(remaining) != len(self.active_alerts):
            self.active_alerts = remaining
            if self.is_active:
                self._notify(self.snapshot())

    # ── observers ────────────────────────────────────────────

    def subscribe(self, callback: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        """Register a snapshot observer; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id or "",
            teacher_name=self.teacher_name,
            teacher_id=self.teacher_id,
            elapsed_seconds=self.elapsed_seconds,
            overall_attention=self.overall_attention,
            engagement_level=engagement_level(self.overall_attention),
            detected_students=len(self.roster),
            total_students=len(self.roster),
            active_alerts=tuple(self.active_alerts),
            alerts_triggered=len(self.alert_log),
            data_points=len(self.attention_history),
            average_attention=rounded_mean(p.attention for p in self.attention_history),
        )

    # ── internals ────────────────────────────────────────────

    @property
    def pending_timers(self) -> int:
        """Number of clock/sampling tasks and alert expiries still scheduled."""
        return sum(1 for t in self._tasks if not t.done()) + len(self._expiry_handles)

    def _require_active(self):
        if self.state != ACTIVE:
            raise SessionStateError(f"session is {self.state}")

    def _cancel_timers(self):
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        for handle in self._expiry_handles.values():
            handle.cancel()
        self._expiry_handles.clear()

    def _notify(self, snapshot: SessionSnapshot):
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:
                # A broken observer must not abort the round that notified it
                log_with_context(logger, "ERROR", f"Snapshot subscriber failed: {exc!r}",
                                 context={"session_id": self.session_id},
                                 extra_data={"elapsed_seconds": snapshot.elapsed_seconds})
