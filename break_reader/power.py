import time
import logging
import platform
import subprocess
from typing import Callable, Dict, List, Optional

import psutil

from .timers import TimerHost
from .config import POWER_POLL_SEC, SLEEP_GAP_SEC

IS_WIN = platform.system() == "Windows"
IS_MAC = platform.system() == "Darwin"

_idle_impl: Optional[Callable[[], float]] = None


def _init_idle_impl() -> None:
    global _idle_impl
    if _idle_impl is not None:
        return
    try:
        if IS_WIN:
            from ctypes import Structure, c_uint, sizeof, byref, windll

            class LASTINPUTINFO(Structure):
                _fields_ = [("cbSize", c_uint), ("dwTime", c_uint)]

            def _win_idle() -> float:
                lii = LASTINPUTINFO()
                lii.cbSize = sizeof(LASTINPUTINFO)
                if windll.user32.GetLastInputInfo(byref(lii)):
                    return (windll.kernel32.GetTickCount() - lii.dwTime) / 1000.0
                return 0.0

            _idle_impl = _win_idle
        elif IS_MAC:
            import ctypes
            import ctypes.util

            cg = ctypes.cdll.LoadLibrary(ctypes.util.find_library("CoreGraphics"))
            fn = cg.CGEventSourceSecondsSinceLastEventType
            fn.restype = ctypes.c_double
            fn.argtypes = [ctypes.c_int32, ctypes.c_uint32]
            # combined session state, any input event
            _idle_impl = lambda: fn(0, 0xFFFFFFFF)
        else:
            def _linux_idle() -> float:
                result = subprocess.run(["xprintidle"], capture_output=True, text=True, timeout=2)
                return int(result.stdout.strip()) / 1000.0

            _idle_impl = _linux_idle
    except (OSError, AttributeError, TypeError):
        _idle_impl = lambda: 0.0


def get_idle_seconds() -> float:
    """Seconds since last user input; 0.0 when detection is unavailable."""
    if _idle_impl is None:
        _init_idle_impl()
    try:
        return float(_idle_impl())
    except (OSError, ValueError, subprocess.SubprocessError):
        return 0.0


def is_session_locked() -> bool:
    # LogonUI.exe only runs while the Windows lock screen is up
    if not IS_WIN:
        return False
    for proc in psutil.process_iter(["name"]):
        try:
            if (proc.info.get("name") or "").lower() == "logonui.exe":
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return False


class PowerSignals:
    """Host power/activity notifications consumed by the scheduler and idle gate."""

    EVENTS = ("suspend", "resume", "lock", "unlock")

    def __init__(self):
        self._listeners: Dict[str, List[Callable[[], None]]] = {name: [] for name in self.EVENTS}

    def subscribe(self, on_suspend=None, on_resume=None, on_lock=None, on_unlock=None) -> None:
        for name, fn in (("suspend", on_suspend), ("resume", on_resume), ("lock", on_lock), ("unlock", on_unlock)):
            if fn is not None:
                self._listeners[name].append(fn)

    def emit(self, event: str) -> None:
        for fn in list(self._listeners[event]):
            fn()

    def idle_seconds(self) -> float:
        return 0.0

    def is_locked(self) -> bool:
        return False

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class PollingPowerMonitor(PowerSignals):
    """Derives power signals by polling.

    A wall-clock gap much larger than the poll period means the machine was
    asleep: suspend and resume are emitted back to back when it wakes.
    """

    def __init__(
        self,
        timers: TimerHost,
        logger: logging.Logger,
        poll_sec: float = POWER_POLL_SEC,
        sleep_gap_sec: float = SLEEP_GAP_SEC,
        wall_clock: Callable[[], float] = time.time,
        idle_probe: Callable[[], float] = get_idle_seconds,
        lock_probe: Callable[[], bool] = is_session_locked,
    ):
        super().__init__()
        self._timers = timers
        self._logger = logger
        self._poll_sec = poll_sec
        self._sleep_gap_sec = sleep_gap_sec
        self._wall_clock = wall_clock
        self._idle_probe = idle_probe
        self._lock_probe = lock_probe

        self._handle = None
        self._last_tick: Optional[float] = None
        self._locked = False

    def idle_seconds(self) -> float:
        return self._idle_probe()

    def is_locked(self) -> bool:
        return self._locked

    def start(self) -> None:
        if self._handle is not None:
            return
        self._last_tick = self._wall_clock()
        self._handle = self._timers.call_later(self._poll_sec, self._poll)
        self._logger.info(f"Power monitor started (poll={self._poll_sec}s)")

    def stop(self) -> None:
        self._timers.cancel(self._handle)
        self._handle = None
        self._logger.info("Power monitor stopped")

    def _poll(self) -> None:
        self._handle = None
        now = self._wall_clock()
        if self._last_tick is not None and now - self._last_tick > self._poll_sec + self._sleep_gap_sec:
            self._logger.info(f"Wall clock jumped {now - self._last_tick:.0f}s, treating as suspend/resume")
            self.emit("suspend")
            self.emit("resume")
        self._last_tick = now

        try:
            locked = bool(self._lock_probe())
        except (OSError, psutil.Error):
            self._logger.warning("Lock probe failed", exc_info=True)
            locked = self._locked
        if locked != self._locked:
            self._locked = locked
            self.emit("lock" if locked else "unlock")

        self._handle = self._timers.call_later(self._poll_sec, self._poll)
