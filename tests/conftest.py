import datetime
import itertools
import logging
import typing

import pytest

from break_reader.timers import TimerHost
from break_reader.overlay import Surface, SurfaceFactory


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, start: datetime.datetime):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def shift(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


class FakeTimers(TimerHost):
    """TimerHost driven by FakeClock.

    advance() moves time forward and fires every callback that falls due, in
    due order. jump() moves time without firing anything, like a machine that
    was asleep.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self._ids = itertools.count(1)
        self._pending: typing.Dict[int, typing.Tuple[datetime.datetime, int, typing.Callable]] = {}

    def call_later(self, delay_sec, callback):
        handle = next(self._ids)
        due = self.clock.now + datetime.timedelta(seconds=max(0.0, delay_sec))
        self._pending[handle] = (due, handle, callback)
        return handle

    def cancel(self, handle) -> None:
        if handle is None:
            return
        self._pending.pop(handle, None)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def due_in(self) -> typing.List[float]:
        return sorted((due - self.clock.now).total_seconds() for due, _, _ in self._pending.values())

    def advance(self, seconds: float) -> None:
        target = self.clock.now + datetime.timedelta(seconds=seconds)
        while True:
            due_items = [item for item in self._pending.values() if item[0] <= target]
            if not due_items:
                break
            due, handle, callback = min(due_items, key=lambda item: (item[0], item[1]))
            del self._pending[handle]
            if due > self.clock.now:
                self.clock.now = due
            callback()
        self.clock.now = target

    def run_pending(self) -> None:
        self.advance(0)

    def jump(self, seconds: float) -> None:
        self.clock.shift(seconds)


class FakeSurface(Surface):
    def __init__(self, display, on_message, can_close):
        self.display = display
        self.on_message = on_message
        self.can_close = can_close
        self.bounds = None
        self.loaded = False
        self.posted = []
        self.revealed = 0
        self.countdown_stops = 0
        self.opacity_history = []
        self.closed = False
        self._opacity = 1.0

    @property
    def is_closed(self) -> bool:
        return self.closed

    @property
    def channels(self) -> typing.List[str]:
        return [m.channel for m in self.posted]

    def set_bounds(self, display) -> None:
        self.bounds = display

    def load(self) -> None:
        self.loaded = True

    def post(self, message) -> None:
        self.posted.append(message)

    def reveal(self) -> None:
        self.revealed += 1

    def stop_countdown(self) -> None:
        self.countdown_stops += 1

    def get_opacity(self) -> float:
        return self._opacity

    def set_opacity(self, value: float) -> None:
        self._opacity = value
        self.opacity_history.append(value)

    def close(self) -> None:
        self.closed = True

    def attempt_os_close(self) -> bool:
        if self.can_close():
            self.close()
            return True
        return False


class FakeSurfaceFactory(SurfaceFactory):
    def __init__(self):
        self.created: typing.List[FakeSurface] = []

    def create(self, display, on_message, can_close):
        surface = FakeSurface(display, on_message, can_close)
        self.created.append(surface)
        return surface


class RecordingSink:
    def __init__(self):
        self.played = []
        self.stops = 0

    def play(self, audio: bytes) -> None:
        self.played.append(audio)

    def stop(self) -> None:
        self.stops += 1


class FakeSpeech:
    """Stands in for SpeechPipeline inside overlay tests."""

    def __init__(self):
        self.spoken = []
        self.stops = 0

    def speak(self, text, lang=None):
        self.spoken.append((text, lang))

    def stop(self) -> None:
        self.stops += 1


@pytest.fixture
def clock():
    return FakeClock(datetime.datetime(2024, 8, 25, 13, 0, 0))


@pytest.fixture
def timers(clock):
    return FakeTimers(clock)


@pytest.fixture
def logger():
    log = logging.getLogger("BreakReader.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def surfaces():
    return FakeSurfaceFactory()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def fake_speech():
    return FakeSpeech()
