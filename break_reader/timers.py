from typing import Any, Callable


class TimerHost:
    """One-shot timers on the application's event loop."""

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError

    def dispatch(self, callback: Callable[[], None]) -> None:
        """Run callback on the event loop thread as soon as possible."""
        self.call_later(0, callback)


class TkTimerHost(TimerHost):
    def __init__(self, root):
        self._root = root

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> Any:
        return self._root.after(max(0, int(delay_sec * 1000)), callback)

    def cancel(self, handle: Any) -> None:
        if handle is None:
            return
        try:
            self._root.after_cancel(handle)
        except ValueError:
            pass
