class BreakReaderError(Exception):
    pass


class SettingsError(BreakReaderError):
    """Invalid settings value (interval/duration must be positive integers)."""


class SpeechBackendError(BreakReaderError):
    """A synthesis request failed or returned no audio."""


class SurfaceError(BreakReaderError):
    """An overlay surface could not be created or loaded."""
