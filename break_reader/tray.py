import threading
from typing import Callable

import pystray
from PIL import Image, ImageDraw


class TrayController:
    def __init__(
        self,
        title: str,
        status_text: Callable[[], str],
        is_paused: Callable[[], bool],
        on_break_now,
        on_toggle_pause,
        on_reload_settings,
        on_quit,
    ):
        self._title = title
        self._status_text = status_text
        self._is_paused = is_paused
        self._on_break_now = on_break_now
        self._on_toggle_pause = on_toggle_pause
        self._on_reload_settings = on_reload_settings
        self._on_quit = on_quit

        self._icon = None
        self._thread = None
        self._running = False

    def _make_icon_image(self) -> Image.Image:
        img = Image.new("RGB", (64, 64), color=(40, 40, 40))
        draw = ImageDraw.Draw(img)
        draw.rounded_rectangle((10, 10, 54, 54), radius=10, fill=(45, 106, 79))
        draw.rectangle((22, 20, 29, 44), fill=(245, 245, 245))
        draw.rectangle((35, 20, 42, 44), fill=(245, 245, 245))
        return img

    def _pause_label(self, item) -> str:
        return "Resume breaks" if self._is_paused() else "Pause for 1 hour"

    def _status_label(self, item) -> str:
        return self._status_text()

    def ensure_running(self) -> None:
        if self._icon is not None and self._running:
            return

        menu = pystray.Menu(
            pystray.MenuItem(self._status_label, None, enabled=False),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Take a break now", lambda icon, item: self._on_break_now()),
            pystray.MenuItem(self._pause_label, lambda icon, item: self._on_toggle_pause()),
            pystray.MenuItem("Reload settings", lambda icon, item: self._on_reload_settings()),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Quit", lambda icon, item: self._on_quit()),
        )

        self._icon = pystray.Icon("BreakReader", self._make_icon_image(), self._title, menu)

        def run_icon():
            self._running = True
            try:
                self._icon.run()
            finally:
                self._running = False

        self._thread = threading.Thread(target=run_icon, daemon=True)
        self._thread.start()

    def refresh(self) -> None:
        if self._icon is not None:
            self._icon.update_menu()

    def stop(self) -> None:
        if self._icon is None:
            return
        self._icon.stop()
        self._icon = None
