import customtkinter as ctk

from .config import (
    APP_TITLE,
    APPDATA_DIR,
    SETTINGS_FILE,
    HISTORY_FILE,
    PASSAGES_FILE,
    PRE_ROLL_SEC,
)
from .utils import ensure_dir
from .logging_setup import setup_logger
from .audio import SoundDevicePlayer, chime_wav_bytes
from .settings import SettingsStore, validate_settings
from .errors import SettingsError
from .content import ContentLibrary, ContentSelector, HistoryStore
from .speech import GoogleTTSBackend, SpeechPipeline
from .scheduler import BreakScheduler
from .overlay import OverlayOrchestrator
from .tk_overlay import TkSurfaceFactory
from .displays import get_displays
from .power import PollingPowerMonitor
from .idle import IdleGate
from .timers import TkTimerHost
from .tray import TrayController


ctk.set_appearance_mode("Dark")
ctk.set_default_color_theme("blue")


class BreakReaderApp:
    def __init__(self):
        ensure_dir(APPDATA_DIR)

        self.logger = setup_logger()
        self.logger.info("App start")

        self.root = ctk.CTk()
        self.root.title(APP_TITLE)
        self.root.withdraw()
        self.root.protocol("WM_DELETE_WINDOW", self.root.withdraw)

        self.timers = TkTimerHost(self.root)

        self.settings_store = SettingsStore(SETTINGS_FILE, self.logger)
        settings = self.settings_store.load()

        self.library = ContentLibrary.load(PASSAGES_FILE, self.logger)
        self.selector = ContentSelector(self.library, HistoryStore(HISTORY_FILE, self.logger), self.logger)

        self.player = SoundDevicePlayer(self.logger)
        self.speech = SpeechPipeline(
            GoogleTTSBackend.from_env(),
            self.player,
            self.logger,
            dispatch=self.timers.dispatch,
        )

        self.scheduler = BreakScheduler(
            settings,
            self.timers,
            self.logger,
            on_break_start=self._on_break_start,
            on_break_end=self._on_break_end,
        )
        self.scheduler.set_display_delay(PRE_ROLL_SEC)

        self.overlays = OverlayOrchestrator(
            TkSurfaceFactory(self.root, self.logger),
            lambda: get_displays(self.root, self.logger),
            self.selector,
            self.library,
            self.speech,
            self.timers,
            self.logger,
            scheduler=self.scheduler,
        )

        self.power = PollingPowerMonitor(self.timers, self.logger)
        self.scheduler.attach(self.power)
        self.idle = IdleGate(self.scheduler, self.overlays, self.power, self.timers, self.logger)

        self.tray = TrayController(
            title=APP_TITLE,
            status_text=self.status_text,
            is_paused=lambda: self.scheduler.get_status().is_paused,
            on_break_now=lambda: self.root.after(0, self.overlays.trigger_manual_break),
            on_toggle_pause=lambda: self.root.after(0, self.toggle_pause),
            on_reload_settings=lambda: self.root.after(0, self.reload_settings),
            on_quit=lambda: self.root.after(0, self.quit_app),
        )

    # Scheduler events
    def _on_break_start(self, break_seconds: int, speech_enabled: bool) -> None:
        self.logger.info("Break started - activating overlays")
        self.overlays.show_overlays(break_seconds, speech_enabled)
        self.tray.refresh()

    def _on_break_end(self) -> None:
        self.logger.info("Break ended - hiding overlays")
        self.overlays.hide_overlays()
        self.player.play(chime_wav_bytes())
        self.tray.refresh()

    # Tray actions
    def status_text(self) -> str:
        status = self.scheduler.get_status()
        if status.is_break_active:
            return "On a break"
        if status.is_paused:
            return f"Paused ({round(status.next_break_in)} min left)"
        if not status.is_running:
            return "Standby"
        return f"Next break in {round(status.next_break_in)} min"

    def toggle_pause(self) -> None:
        if self.scheduler.get_status().is_paused:
            self.scheduler.resume()
        else:
            self.scheduler.pause_for_one_hour()
        self.tray.refresh()

    def reload_settings(self) -> None:
        settings = self.settings_store.load()
        try:
            validate_settings(settings)
        except SettingsError:
            self.logger.warning("Reloaded settings rejected", exc_info=True)
            return
        self.scheduler.update_settings(settings)
        self.tray.refresh()

    def quit_app(self) -> None:
        self.logger.info("Quit requested")
        self.idle.stop()
        self.power.stop()
        self.scheduler.stop()
        self.overlays.destroy()
        self.speech.stop()
        self.tray.stop()
        self.root.destroy()

    def run(self) -> None:
        self.tray.ensure_running()
        self.scheduler.start()
        self.power.start()
        self.idle.start()
        self.logger.info("App started")
        self.root.mainloop()
        self.logger.info("App stopped")


def main() -> None:
    BreakReaderApp().run()
