import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .content import ContentItem, fallback_content
from .errors import SurfaceError
from .timers import TimerHost
from .config import PRE_ROLL_SEC, FADE_DURATION_MS, FADE_STEP_MS, FORCED_BREAK_SEC

INIT = "overlay:init"
CONTENT_LOADED = "overlay:content-loaded"
SHOW_NOW = "overlay:show-now"
UI_READY = "overlay:ui-ready"
CLOSE_BREAK = "overlay:close-break"
TTS_SPEAK = "overlay:tts-speak"
TTS_STOP = "overlay:tts-stop"
LOG = "overlay:log"

CLOSE_SOURCES = ("pill", "timer")


@dataclass(frozen=True)
class OverlayMessage:
    channel: str
    payload: dict = field(default_factory=dict)


class Surface:
    """A full-screen overlay window on one display.

    Implemented by a platform adapter. The adapter reports UI events through
    the ``on_message(channel, payload)`` callback it was created with, and asks
    ``can_close()`` before honouring a close attempt coming from the OS.
    """

    def set_bounds(self, display) -> None:
        raise NotImplementedError

    def load(self) -> None:
        raise NotImplementedError

    def post(self, message: OverlayMessage) -> None:
        raise NotImplementedError

    def reveal(self) -> None:
        raise NotImplementedError

    def stop_countdown(self) -> None:
        raise NotImplementedError

    def get_opacity(self) -> float:
        raise NotImplementedError

    def set_opacity(self, value: float) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    @property
    def is_closed(self) -> bool:
        raise NotImplementedError


class SurfaceFactory:
    def create(
        self,
        display,
        on_message: Callable[[str, dict], None],
        can_close: Callable[[], bool],
    ) -> Surface:
        raise NotImplementedError


@dataclass(eq=False)
class OverlaySession:
    session_id: int
    display_id: Any
    content: ContentItem
    surface: Optional[Surface] = None
    ui_ready: bool = False
    pending_messages: List[OverlayMessage] = field(default_factory=list)
    allow_close: bool = False
    revealed: bool = False
    reveal_handle: Any = None


def enqueue_or_send(session: OverlaySession, message: OverlayMessage, send: Callable[[OverlayMessage], None]) -> bool:
    """Send now if the session UI is ready, otherwise queue. True if sent."""
    if not session.ui_ready:
        session.pending_messages.append(message)
        return False
    send(message)
    return True


def flush(session: OverlaySession, send: Callable[[OverlayMessage], None]) -> List[OverlayMessage]:
    """Deliver queued messages in arrival order, emptying the outbox."""
    delivered = []
    while session.pending_messages:
        message = session.pending_messages.pop(0)
        send(message)
        delivered.append(message)
    return delivered


class OverlayOrchestrator:
    def __init__(
        self,
        surfaces: SurfaceFactory,
        displays: Callable[[], list],
        selector,
        library,
        speech,
        timers: TimerHost,
        logger: logging.Logger,
        scheduler=None,
        pre_roll_sec: float = PRE_ROLL_SEC,
        fade_ms: int = FADE_DURATION_MS,
        fade_step_ms: int = FADE_STEP_MS,
        forced_break_sec: int = FORCED_BREAK_SEC,
    ):
        self._surfaces = surfaces
        self._displays = displays
        self._selector = selector
        self._library = library
        self._speech = speech
        self._timers = timers
        self._logger = logger
        self._scheduler = scheduler
        self._pre_roll_sec = pre_roll_sec
        self._fade_ms = fade_ms
        self._fade_step_ms = fade_step_ms
        self._forced_break_sec = forced_break_sec

        self._active = False
        self._sessions: List[OverlaySession] = []
        self._next_session_id = 1
        self._speech_enabled = True
        self._auto_speech_done = False
        self._manual_end_handle = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def sessions(self) -> tuple:
        return tuple(self._sessions)

    def active_overlay_count(self) -> int:
        return len(self._sessions)

    # Break lifecycle
    def show_overlays(self, break_seconds: int, speech_enabled: bool = True) -> None:
        if self._active:
            self._logger.warning("Overlays already active, skipping")
            return

        self._active = True
        self._speech_enabled = speech_enabled
        self._auto_speech_done = False
        self._logger.info(f"Showing overlays for {break_seconds}s (speech={speech_enabled})")

        try:
            content = self._selector.pick()
            self._logger.info(f"Picked passage {content.id}: {content.title}")
        except Exception:
            self._logger.warning("Failed to pick content, using fallback", exc_info=True)
            content = fallback_content()

        try:
            displays = self._displays()
            if not displays:
                self._logger.warning("No displays reported, nothing to cover")
            for display in displays:
                self._open_session(display, content, break_seconds, speech_enabled)
        except SurfaceError:
            self._logger.exception("Failed to show overlays, tearing down")
            self.hide_overlays()

    def trigger_manual_break(self) -> None:
        if self._active:
            self._logger.warning("Manual break requested while overlays active, ignoring")
            return
        self._logger.info(f"Manual break triggered ({self._forced_break_sec}s)")
        speech_enabled = self._scheduler.settings.speech_enabled if self._scheduler is not None else True
        self.show_overlays(self._forced_break_sec, speech_enabled)
        if self._active:
            # UI countdown normally closes it; this is the backstop
            deadline = self._forced_break_sec + self._pre_roll_sec + 1.0
            self._manual_end_handle = self._timers.call_later(deadline, self._on_manual_deadline)

    def hide_overlays(self) -> None:
        self._timers.cancel(self._manual_end_handle)
        self._manual_end_handle = None

        if not self._active and not self._sessions:
            return

        self._logger.info(f"Hiding {len(self._sessions)} overlay(s)")
        self._active = False
        self._speech.stop()

        sessions, self._sessions = self._sessions, []
        for session in sessions:
            self._timers.cancel(session.reveal_handle)
            session.reveal_handle = None
            session.allow_close = True
            session.pending_messages.clear()
            session.ui_ready = False
            if session.surface is None:
                continue
            try:
                session.surface.stop_countdown()
                self._fade_out_and_close(session.surface)
            except SurfaceError:
                self._logger.exception(f"Error closing overlay on display {session.display_id}")
                self._close_quietly(session.surface)

    def destroy(self) -> None:
        self._logger.info("Destroying overlay orchestrator")
        self.hide_overlays()

    # UI -> orchestrator
    def handle_message(self, session: OverlaySession, channel: str, payload: Optional[dict] = None) -> None:
        payload = payload if isinstance(payload, dict) else {}

        if channel == LOG:
            self._logger.info(f"Overlay[{session.display_id}]: {payload.get('message', '')}")
            return
        if session not in self._sessions:
            self._logger.info(f"Ignoring '{channel}' from closed overlay session {session.session_id}")
            return

        if channel == UI_READY:
            self._mark_ui_ready(session)
        elif channel == CLOSE_BREAK:
            self.request_close(session, payload)
        elif channel == TTS_SPEAK:
            self._speak(session, payload)
        elif channel == TTS_STOP:
            self._speech.stop()
        else:
            self._logger.warning(f"Unknown overlay message '{channel}'")

    def request_close(self, session: Optional[OverlaySession], payload: Optional[dict]) -> bool:
        source = payload.get("source", "unknown") if isinstance(payload, dict) else "unknown"
        display = session.display_id if session is not None else "?"
        if source not in CLOSE_SOURCES:
            self._logger.warning(f"Ignoring close request from unexpected source: {source} (display {display})")
            return False
        if not self._active:
            return False

        self._logger.info(f"Valid close request from {source} (display {display})")
        self.hide_overlays()
        if self._scheduler is not None:
            self._scheduler.end_break()
        return True

    # Internals
    def _open_session(self, display, content: ContentItem, break_seconds: int, speech_enabled: bool) -> None:
        session = OverlaySession(session_id=self._next_session_id, display_id=display.id, content=content)
        self._next_session_id += 1
        self._sessions.append(session)

        session.surface = self._surfaces.create(
            display,
            on_message=lambda channel, payload=None: self.handle_message(session, channel, payload),
            can_close=lambda: self._can_close(session),
        )
        session.surface.set_bounds(display)
        self._logger.info(f"Created overlay session {session.session_id} for display {display.id}")

        self._send(session, OverlayMessage(INIT, {"breakSeconds": break_seconds, "speechEnabled": speech_enabled}))
        self._send(
            session,
            OverlayMessage(
                CONTENT_LOADED,
                {"contentRef": content.ref, "title": content.title, "text": content.body},
            ),
        )
        session.surface.load()

    def _mark_ui_ready(self, session: OverlaySession) -> None:
        if session.ui_ready:
            return
        session.ui_ready = True
        self._logger.info(
            f"UI ready for session {session.session_id} - flushing {len(session.pending_messages)} message(s)"
        )
        try:
            flush(session, session.surface.post)
        except SurfaceError:
            self._logger.warning(f"Failed to flush messages to session {session.session_id}", exc_info=True)
        session.reveal_handle = self._timers.call_later(self._pre_roll_sec, lambda: self._reveal(session))

    def _reveal(self, session: OverlaySession) -> None:
        session.reveal_handle = None
        if session not in self._sessions or session.revealed:
            return
        try:
            session.surface.reveal()
        except SurfaceError:
            self._logger.exception(f"Failed to reveal overlay on display {session.display_id}")
            return
        session.revealed = True
        self._send(session, OverlayMessage(SHOW_NOW, {}))

    def _send(self, session: OverlaySession, message: OverlayMessage) -> None:
        try:
            sent = enqueue_or_send(session, message, session.surface.post)
        except SurfaceError:
            self._logger.warning(f"Failed to send '{message.channel}' to session {session.session_id}", exc_info=True)
            return
        verb = "Sent" if sent else "Queued"
        self._logger.info(f"{verb} '{message.channel}' for session {session.session_id}")

    def _can_close(self, session: OverlaySession) -> bool:
        if not session.allow_close:
            self._logger.warning(f"Prevented unintended overlay close (display {session.display_id})")
        return session.allow_close

    def _speak(self, session: OverlaySession, payload: dict) -> None:
        if not self._speech_enabled:
            self._logger.info("TTS disabled for this break, ignoring speak request")
            return
        if payload.get("auto"):
            # every display asks once; one voice is enough
            if self._auto_speech_done:
                return
            self._auto_speech_done = True

        text = payload.get("text")
        if not text:
            item = self._library.resolve(payload.get("contentRef")) or session.content
            text = item.body
        self._speech.speak(text, payload.get("lang"))

    def _on_manual_deadline(self) -> None:
        self._manual_end_handle = None
        self._logger.info("Manual break deadline reached")
        self.hide_overlays()

    def _fade_out_and_close(self, surface: Surface) -> None:
        steps = max(1, round(self._fade_ms / self._fade_step_ms))
        step_sec = self._fade_step_ms / 1000.0
        start = surface.get_opacity()
        progress = {"step": 0}

        def _tick():
            if surface.is_closed:
                return
            try:
                progress["step"] += 1
                t = progress["step"] / steps
                surface.set_opacity(max(0.0, start * (1.0 - t)))
                if progress["step"] >= steps:
                    surface.set_opacity(0.0)
                    surface.close()
                    return
            except SurfaceError:
                self._close_quietly(surface)
                return
            self._timers.call_later(step_sec, _tick)

        self._timers.call_later(step_sec, _tick)

    def _close_quietly(self, surface: Surface) -> None:
        try:
            surface.close()
        except SurfaceError:
            self._logger.warning("Overlay surface close failed", exc_info=True)
