import logging

from .timers import TimerHost
from .config import IDLE_THRESHOLD_SEC, IDLE_POLL_SEC


class IdleGate:
    """Stops the scheduler while the user is away and restarts it on return.

    Break time is intentional idle time, so idle signals during an active break
    are ignored.
    """

    def __init__(
        self,
        scheduler,
        overlays,
        signals,
        timers: TimerHost,
        logger: logging.Logger,
        threshold_sec: float = IDLE_THRESHOLD_SEC,
        poll_sec: float = IDLE_POLL_SEC,
    ):
        self._scheduler = scheduler
        self._overlays = overlays
        self._signals = signals
        self._timers = timers
        self._logger = logger
        self._threshold_sec = threshold_sec
        self._poll_sec = poll_sec

        self._in_idle = False
        self._poll_handle = None
        self._subscribed = False

    @property
    def in_idle(self) -> bool:
        return self._in_idle

    def start(self) -> None:
        self._logger.info(f"IdleGate: starting (threshold={self._threshold_sec}s)")
        if not self._subscribed:
            self._signals.subscribe(
                on_suspend=lambda: self.enter_idle("suspend"),
                on_resume=lambda: self.exit_idle("resume"),
                on_lock=lambda: self.enter_idle("lock-screen"),
                on_unlock=lambda: self.exit_idle("unlock-screen"),
            )
            self._subscribed = True
        self._arm_poll()

    def stop(self) -> None:
        self._logger.info("IdleGate: stopping")
        self._timers.cancel(self._poll_handle)
        self._poll_handle = None

    def enter_idle(self, source: str) -> None:
        if self._in_idle:
            return
        if self._scheduler.is_break_active:
            self._logger.info(f"IdleGate: idle ({source}) during active break, ignoring")
            return

        self._in_idle = True
        self._logger.info(f"IdleGate: entering standby due to {source}")
        try:
            self._overlays.hide_overlays()
        except Exception:
            self._logger.exception("IdleGate: hide_overlays failed")
        self._scheduler.stop()

    def exit_idle(self, source: str) -> None:
        if not self._in_idle:
            return
        self._in_idle = False
        self._logger.info(f"IdleGate: exiting standby due to {source}")
        self._scheduler.start()

    def poll(self) -> None:
        idle_sec = self._signals.idle_seconds()
        if self._signals.is_locked():
            self.enter_idle("idle-state:locked")
        elif idle_sec >= self._threshold_sec:
            self.enter_idle("idle-state:idle")
        elif self._in_idle:
            self.exit_idle("idle-active")

    def _on_poll(self) -> None:
        self._poll_handle = None
        self.poll()
        self._arm_poll()

    def _arm_poll(self) -> None:
        self._timers.cancel(self._poll_handle)
        self._poll_handle = self._timers.call_later(self._poll_sec, self._on_poll)
