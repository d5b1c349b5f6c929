import logging
import tkinter as tk
from typing import Callable

import customtkinter as ctk

from .errors import SurfaceError
from .utils import seconds_to_mmss
from .config import COUNTDOWN_TICK_MS, TIMER_CLOSE_DELAY_MS, TTS_DEFAULT_LANGUAGE
from .overlay import (
    Surface,
    SurfaceFactory,
    OverlayMessage,
    INIT,
    CONTENT_LOADED,
    SHOW_NOW,
    UI_READY,
    CLOSE_BREAK,
    TTS_SPEAK,
    TTS_STOP,
    LOG,
)

BG = "#111418"
TEXT = "#e8e6e3"
TEXT_DIM = "#8a9099"
PILL = "#2d6a4f"
PILL_HOVER = "#40916c"


class OverlayView:
    """Widgets of one overlay plus its own countdown."""

    def __init__(self, window: ctk.CTkToplevel, emit: Callable[[str, dict], None]):
        self._window = window
        self._emit = emit

        self._remaining = 0
        self._total = 0
        self._speech_enabled = True
        self._countdown_started = False
        self._countdown_job = None
        self._close_job = None
        self._content_ref = None
        self._tts_active = False

        self.frame = ctk.CTkFrame(window, fg_color=BG, corner_radius=0)
        self.frame.pack(fill="both", expand=True)

        self.pill = ctk.CTkButton(
            self.frame,
            text="--:--",
            width=120,
            height=40,
            corner_radius=20,
            font=("Roboto", 18, "bold"),
            fg_color=PILL,
            hover_color=PILL_HOVER,
            command=self._on_pill,
        )
        self.pill.place(relx=0.98, rely=0.03, anchor="ne")

        self.tts_btn = ctk.CTkButton(
            self.frame,
            text="Read aloud (T)",
            width=140,
            height=32,
            fg_color="#333a44",
            hover_color="#4a5260",
            command=self._on_tts_toggle,
        )
        self.tts_btn.place(relx=0.98, rely=0.10, anchor="ne")

        self.title_label = ctk.CTkLabel(self.frame, text="", font=("Georgia", 34, "bold"), text_color=TEXT)
        self.title_label.place(relx=0.5, rely=0.28, anchor="center")

        self.body_label = ctk.CTkLabel(
            self.frame,
            text="",
            font=("Georgia", 22),
            text_color=TEXT,
            justify="center",
            wraplength=900,
        )
        self.body_label.place(relx=0.5, rely=0.52, anchor="center")

        self.hint_label = ctk.CTkLabel(
            self.frame,
            text="Take a breath. Click the timer to return early.",
            text_color=TEXT_DIM,
        )
        self.hint_label.place(relx=0.5, rely=0.92, anchor="center")

        for key in ("t", "T"):
            window.bind(f"<KeyPress-{key}>", lambda e: self._tts_start())
        for key in ("s", "S"):
            window.bind(f"<KeyPress-{key}>", lambda e: self._tts_stop())
        for key in ("p", "P"):
            window.bind(f"<KeyPress-{key}>", lambda e: self._tts_stop())

    def receive(self, message: OverlayMessage) -> None:
        payload = message.payload
        if message.channel == INIT:
            self._remaining = int(payload.get("breakSeconds", 0))
            self._total = self._remaining
            self._speech_enabled = bool(payload.get("speechEnabled", True))
            self._countdown_started = False
            self.tts_btn.configure(state="normal" if self._speech_enabled else "disabled")
            self._update_display()
        elif message.channel == CONTENT_LOADED:
            self._content_ref = payload.get("contentRef")
            self.title_label.configure(text=payload.get("title", ""))
            self.body_label.configure(text=payload.get("text", ""))
            self._set_tts_active(False)
            if self._speech_enabled:
                self._tts_start(auto=True)
        elif message.channel == SHOW_NOW:
            if self._countdown_started:
                self._log("show-now received but countdown already started")
            else:
                self._start_countdown()

    def stop_countdown(self) -> None:
        for job in (self._countdown_job, self._close_job):
            if job is not None:
                try:
                    self._window.after_cancel(job)
                except (ValueError, tk.TclError):
                    pass
        self._countdown_job = None
        self._close_job = None

    # Countdown
    def _start_countdown(self) -> None:
        self._countdown_started = True
        self._log(f"Starting countdown with {self._remaining}s remaining")
        self._update_display()
        self._countdown_job = self._window.after(COUNTDOWN_TICK_MS, self._tick)

    def _tick(self) -> None:
        self._remaining -= 1
        self._update_display()
        if self._remaining <= 0:
            self._countdown_job = None
            self._log(f"Timer reached 0 - total break duration was {self._total}s")
            self._close_job = self._window.after(TIMER_CLOSE_DELAY_MS, self._request_close_by_timer)
            return
        self._countdown_job = self._window.after(COUNTDOWN_TICK_MS, self._tick)

    def _update_display(self) -> None:
        self.pill.configure(text=seconds_to_mmss(self._remaining))

    def _request_close_by_timer(self) -> None:
        self._close_job = None
        self._emit(CLOSE_BREAK, {"source": "timer"})

    def _on_pill(self) -> None:
        self._log("Timer pill clicked - closing break")
        self.stop_countdown()
        self._emit(CLOSE_BREAK, {"source": "pill"})

    # Speech
    def _on_tts_toggle(self) -> None:
        if self._tts_active:
            self._tts_stop()
        else:
            self._tts_start()

    def _tts_start(self, auto: bool = False) -> None:
        if not self._speech_enabled:
            self._log("TTS disabled, cannot start")
            return
        self._emit(TTS_SPEAK, {"lang": TTS_DEFAULT_LANGUAGE, "contentRef": self._content_ref, "auto": auto})
        self._set_tts_active(True)

    def _tts_stop(self) -> None:
        self._emit(TTS_STOP, {})
        self._set_tts_active(False)

    def _set_tts_active(self, active: bool) -> None:
        self._tts_active = active
        self.tts_btn.configure(text="Stop reading (S)" if active else "Read aloud (T)")

    def _log(self, message: str) -> None:
        self._emit(LOG, {"message": message})


class TkSurface(Surface):
    def __init__(self, root, display, on_message, can_close, logger: logging.Logger):
        self._display = display
        self._on_message = on_message
        self._can_close = can_close
        self._logger = logger
        self._closed = False
        self._opacity = 0.0
        self._view = None

        try:
            self._win = ctk.CTkToplevel(root, fg_color=BG)
            self._win.withdraw()
            self._win.overrideredirect(True)
            self._win.attributes("-topmost", True)
            self._win.attributes("-alpha", 0.0)
        except tk.TclError as e:
            raise SurfaceError(f"Could not create overlay window for display {display.id}: {e}") from e

        self._win.protocol("WM_DELETE_WINDOW", self._on_close_attempt)
        self._win.bind("<Alt-F4>", self._on_alt_f4)
        if not display.is_primary:
            self._win.bind("<FocusOut>", self._on_focus_out, add="+")

    @property
    def is_closed(self) -> bool:
        return self._closed

    def set_bounds(self, display) -> None:
        self._display = display
        self._call(self._win.geometry, display.geometry)

    def load(self) -> None:
        try:
            self._view = OverlayView(self._win, self._on_message)
            self._win.update_idletasks()
        except tk.TclError as e:
            raise SurfaceError(f"Overlay UI failed to load on display {self._display.id}: {e}") from e
        self._win.after_idle(lambda: self._on_message(UI_READY, {}))

    def post(self, message: OverlayMessage) -> None:
        if self._closed or self._view is None:
            raise SurfaceError(f"Overlay on display {self._display.id} is not available")
        self._call(self._view.receive, message)

    def reveal(self) -> None:
        self._call(self._win.deiconify)
        self._call(self._win.lift)
        self.set_opacity(1.0)
        self._call(self._win.focus_force)
        if self._display.is_primary:
            # one grab per application; secondary displays stay raised instead
            self._call(self._win.grab_set)
        self._logger.info(f"Overlay revealed on display {self._display.id}")

    def stop_countdown(self) -> None:
        if self._view is not None:
            self._view.stop_countdown()

    def get_opacity(self) -> float:
        return self._opacity

    def set_opacity(self, value: float) -> None:
        self._opacity = max(0.0, min(1.0, value))
        self._call(self._win.attributes, "-alpha", self._opacity)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.stop_countdown()
        try:
            self._win.grab_release()
            self._win.destroy()
        except tk.TclError:
            self._logger.warning(f"Overlay window on display {self._display.id} already gone")

    def _on_close_attempt(self) -> None:
        if self._can_close():
            self.close()

    def _on_alt_f4(self, event=None) -> str:
        self._on_close_attempt()
        return "break"

    def _on_focus_out(self, event=None) -> None:
        if self._closed:
            return
        try:
            self._win.lift()
        except tk.TclError:
            self._logger.warning(f"Overlay on display {self._display.id} could not be raised")

    def _call(self, fn, *args):
        if self._closed:
            raise SurfaceError(f"Overlay on display {self._display.id} is closed")
        try:
            return fn(*args)
        except tk.TclError as e:
            raise SurfaceError(str(e)) from e


class TkSurfaceFactory(SurfaceFactory):
    def __init__(self, root, logger: logging.Logger):
        self._root = root
        self._logger = logger

    def create(self, display, on_message, can_close) -> Surface:
        return TkSurface(self._root, display, on_message, can_close, self._logger)
