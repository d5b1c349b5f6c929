import os

APP_TITLE = "Break Reader"
APPDATA_DIR = os.path.join(os.getenv("APPDATA") or os.path.expanduser("~"), "BreakReader")

SETTINGS_FILE = os.path.join(APPDATA_DIR, "settings.json")
HISTORY_FILE = os.path.join(APPDATA_DIR, "history.json")

LOG_DIR = os.path.join(APPDATA_DIR, "logs")
LOG_FILE = os.path.join(LOG_DIR, "break_reader.log")

PASSAGES_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "passages.json")

DEFAULT_INTERVAL_MINUTES = 30
DEFAULT_BREAK_SECONDS = 120

PAUSE_SEC = 60 * 60
FORCED_BREAK_SEC = 15

# Idle / power
IDLE_THRESHOLD_SEC = 60
IDLE_POLL_SEC = 15
POWER_POLL_SEC = 5
SLEEP_GAP_SEC = 30

# Overlay
PRE_ROLL_SEC = 3.0
FADE_DURATION_MS = 250
FADE_STEP_MS = 16
COUNTDOWN_TICK_MS = 1000
TIMER_CLOSE_DELAY_MS = 500

# Content
MIN_CONTENT_ID = 1
HISTORY_LIMIT = 5

# Speech
TTS_ENDPOINT = "https://texttospeech.googleapis.com/v1/text:synthesize"
TTS_API_KEY_ENV = "BREAK_READER_TTS_API_KEY"
TTS_TIMEOUT_SEC = 30
TTS_CHUNK_LARGE = 5000
TTS_CHUNK_LEGACY = 200
TTS_CHUNK_DELAY_SEC = 0.3
TTS_AUDIO_ENCODING = "LINEAR16"
TTS_SPEAKING_RATE = 1.0
TTS_PITCH = 0.0
TTS_DEFAULT_LANGUAGE = "en-US"

TTS_VOICES = {
    "en-US": [
        "en-US-Chirp3-HD-Achernar",
        "en-US-Chirp3-HD-Achird",
        "en-US-Chirp3-HD-Aoede",
        "en-US-Chirp3-HD-Charon",
        "en-US-Chirp3-HD-Despina",
        "en-US-Chirp3-HD-Fenrir",
        "en-US-Chirp3-HD-Kore",
        "en-US-Chirp3-HD-Leda",
        "en-US-Chirp3-HD-Orus",
        "en-US-Chirp3-HD-Puck",
        "en-US-Chirp3-HD-Sulafat",
        "en-US-Chirp3-HD-Zephyr",
    ],
    "es-ES": [
        "es-ES-Chirp3-HD-Aoede",
        "es-ES-Chirp3-HD-Charon",
        "es-ES-Chirp3-HD-Kore",
        "es-ES-Chirp3-HD-Puck",
    ],
}

# End-of-break chime
CHIME_NOTES_HZ = (523.25, 659.25, 784.00, 1046.50)
CHIME_NOTE_SEC = 0.18
CHIME_VOLUME = 0.5
SAMPLE_RATE = 44100
