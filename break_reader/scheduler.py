import datetime
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Callable, Optional

from .config import PAUSE_SEC
from .settings import Settings
from .timers import TimerHost


class SchedulerMode(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    BREAK_ACTIVE = "break_active"


@dataclass(frozen=True)
class SchedulerStatus:
    is_running: bool
    is_paused: bool
    is_break_active: bool
    paused_until: Optional[datetime.datetime]
    next_break_in: float  # minutes
    last_break_time: datetime.datetime


class BreakScheduler:
    """Owns the recurring break interval, the break timer and the pause deadline.

    The next break is due ``interval_minutes`` after the interval anchor. The
    anchor is the last trigger time. A start() that follows a stop() moves the
    anchor to the current moment, so a full interval runs after every restart.
    """

    def __init__(
        self,
        settings: Settings,
        timers: TimerHost,
        logger: logging.Logger,
        on_break_start: Optional[Callable[[int, bool], None]] = None,
        on_break_end: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self._settings = settings
        self._timers = timers
        self._logger = logger
        self._on_break_start = on_break_start
        self._on_break_end = on_break_end
        self._clock = clock

        self._mode = SchedulerMode.RUNNING
        self._last_break_time = clock()
        self._anchor = self._last_break_time
        self._paused_until: Optional[datetime.datetime] = None
        self._running = False
        self._stopped = False
        self._display_delay_sec = 0.0

        self._interval_handle = None
        self._break_handle = None
        self._pause_handle = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def mode(self) -> SchedulerMode:
        return self._mode

    @property
    def is_break_active(self) -> bool:
        return self._mode is SchedulerMode.BREAK_ACTIVE

    def set_display_delay(self, seconds: float) -> None:
        self._display_delay_sec = max(0.0, float(seconds))

    def attach(self, signals) -> None:
        signals.subscribe(on_suspend=self._handle_suspend, on_resume=self.handle_resume)

    # Lifecycle
    def start(self) -> None:
        if self._stopped:
            self._anchor = self._clock()
            self._stopped = False
        self._running = True
        self._logger.info("Scheduler start")

        if self._mode is SchedulerMode.BREAK_ACTIVE:
            # interval is re-armed by end_break()
            return
        self._schedule_next()

    def stop(self) -> None:
        self._running = False
        self._stopped = True

        if self._mode is SchedulerMode.BREAK_ACTIVE:
            self.end_break()

        self._cancel_timers()
        self._paused_until = None
        self._mode = SchedulerMode.RUNNING
        self._logger.info("Scheduler stopped")

    # Breaks
    def trigger_break(self) -> None:
        if self._mode is SchedulerMode.BREAK_ACTIVE:
            return

        now = self._clock()
        self._last_break_time = now
        self._anchor = now
        self._cancel(self._interval_handle)
        self._interval_handle = None
        self._cancel(self._pause_handle)
        self._pause_handle = None
        self._mode = SchedulerMode.BREAK_ACTIVE

        duration = self._settings.break_seconds
        speech_enabled = self._settings.speech_enabled
        self._logger.info(f"Break triggered duration={duration}s speech={speech_enabled}")

        self._break_handle = self._timers.call_later(duration + self._display_delay_sec, self._on_break_elapsed)

        if self._on_break_start is not None:
            try:
                self._on_break_start(duration, speech_enabled)
            except Exception:
                self._logger.exception("Break start handler failed")

    def end_break(self) -> None:
        if self._mode is not SchedulerMode.BREAK_ACTIVE:
            return

        self._mode = SchedulerMode.RUNNING
        self._logger.info("Break ended")

        if self._on_break_end is not None:
            try:
                self._on_break_end()
            except Exception:
                self._logger.exception("Break end handler failed")

        self._cancel(self._break_handle)
        self._break_handle = None

        if self._running:
            self._schedule_next()

    # Pause
    def pause_for_one_hour(self) -> None:
        if self._mode is SchedulerMode.BREAK_ACTIVE:
            self.end_break()

        self._paused_until = self._clock() + datetime.timedelta(seconds=PAUSE_SEC)
        self._mode = SchedulerMode.PAUSED
        self._running = True
        self._stopped = False
        self._logger.info(f"Scheduler paused until {self._paused_until:%H:%M:%S}")
        self._schedule_next()

    def resume(self) -> None:
        self._paused_until = None
        self._anchor = self._clock()
        self._running = True
        self._stopped = False
        self._logger.info("Scheduler resumed")
        if self._mode is not SchedulerMode.BREAK_ACTIVE:
            self._schedule_next()

    def update_settings(self, new_settings: Settings) -> None:
        self._settings = new_settings
        self._logger.info(
            f"Settings updated: interval={new_settings.interval_minutes}min break={new_settings.break_seconds}s"
        )
        if self._running and self._mode is not SchedulerMode.BREAK_ACTIVE:
            self._schedule_next()

    # Power
    def handle_resume(self) -> None:
        now = self._clock()
        if self._paused_until is not None and now < self._paused_until:
            return

        elapsed = now - self._last_break_time
        if elapsed >= self._interval():
            self._logger.info("Break was missed during suspension, triggering now")
            self.trigger_break()

    def _handle_suspend(self) -> None:
        self._logger.info("System suspended")

    # Status
    def get_status(self) -> SchedulerStatus:
        now = self._clock()
        is_paused = self._paused_until is not None and now < self._paused_until

        if is_paused:
            remaining = self._paused_until - now
        elif self._stopped and self._mode is not SchedulerMode.BREAK_ACTIVE:
            # a restart arms a full interval
            remaining = self._interval()
        else:
            remaining = self._next_break_at() - now

        return SchedulerStatus(
            is_running=self._running,
            is_paused=is_paused,
            is_break_active=self._mode is SchedulerMode.BREAK_ACTIVE,
            paused_until=self._paused_until,
            next_break_in=max(0.0, remaining.total_seconds() / 60.0),
            last_break_time=self._last_break_time,
        )

    # Internals
    def _interval(self) -> datetime.timedelta:
        return datetime.timedelta(minutes=self._settings.interval_minutes)

    def _next_break_at(self) -> datetime.datetime:
        return self._anchor + self._interval()

    def _schedule_next(self) -> None:
        self._cancel(self._interval_handle)
        self._interval_handle = None
        self._cancel(self._pause_handle)
        self._pause_handle = None

        now = self._clock()
        if self._paused_until is not None:
            if now < self._paused_until:
                self._mode = SchedulerMode.PAUSED
                remaining = (self._paused_until - now).total_seconds()
                self._pause_handle = self._timers.call_later(remaining, self._on_pause_elapsed)
                self._logger.info(f"Scheduler paused, will resume in {round(remaining / 60)} minutes")
                return
            self._paused_until = None
            self._anchor = now

        self._mode = SchedulerMode.RUNNING
        delay = max(0.0, (self._next_break_at() - now).total_seconds())
        self._interval_handle = self._timers.call_later(delay, self._on_interval_elapsed)
        self._logger.info(f"Next break scheduled for {self._next_break_at():%H:%M:%S}")

    def _on_interval_elapsed(self) -> None:
        self._interval_handle = None
        self.trigger_break()

    def _on_break_elapsed(self) -> None:
        self._break_handle = None
        self.end_break()

    def _on_pause_elapsed(self) -> None:
        self._pause_handle = None
        self._paused_until = None
        self._anchor = self._clock()
        self._logger.info("Pause elapsed")
        self._schedule_next()

    def _cancel(self, handle) -> None:
        if handle is not None:
            self._timers.cancel(handle)

    def _cancel_timers(self) -> None:
        for handle in (self._interval_handle, self._break_handle, self._pause_handle):
            self._cancel(handle)
        self._interval_handle = None
        self._break_handle = None
        self._pause_handle = None
