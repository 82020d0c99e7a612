"""All magic numbers and configuration constants."""

MAX_PROVIDER_CHARS = 10000          # provider rejects longer requests
SPEED_MIN = 0.7                     # lowest speed multiplier the provider accepts
SPEED_MAX = 1.2                     # highest speed multiplier the provider accepts
DEFAULT_SPEED = 1.0
PROVIDER_TIMEOUT_SECONDS = 60.0     # per provider request; expiry counts as synthesis failure
DEFAULT_VOICE_TYPE = "default"
DEFAULT_VOICE = "en-US-AriaNeural"
PERSIST_INTERVAL_SECONDS = 2.0      # min seconds between periodic position writes
FALLBACK_BASE_WPM = 200             # local engine words per minute at speed 1.0
ENGINE_STOP_TIMEOUT_SECONDS = 2.0   # wait for the local engine loop to exit after stop
LINES_PER_VIEW = 10                 # lines visible in the reading window
POMODORO_SECONDS = 25 * 60          # focus timer length
POMODORO_TICK_SECONDS = 1.0
SUGGEST_SLOW_WORDS = 1000           # above this word count suggest the slow speed
SUGGEST_MEDIUM_WORDS = 500
SUGGEST_SLOW_SPEED = 0.8
SUGGEST_MEDIUM_SPEED = 1.0
SUGGEST_FAST_SPEED = 1.2
DEFAULT_USER = "local"
LIBRARY_DIR = "library"
VERSION = "0.1.0"
