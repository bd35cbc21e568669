"""
Shared constants used across the platform.
"""

# Audio formats accepted for upload
SUPPORTED_AUDIO_FORMATS = [".flac", ".wav", ".mp3"]

SUPPORTED_AUDIO_MIME_TYPES = [
    "audio/flac", "audio/x-flac",
    "audio/wav", "audio/x-wav", "audio/wave",
    "audio/mpeg", "audio/mp3",
]

# Streaming content types by extension
AUDIO_MIME_TYPES = {
    ".flac": "audio/flac",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
}
DEFAULT_AUDIO_MIME_TYPE = "audio/mpeg"

# Song defaults
DEFAULT_BITRATE = 1411  # kbps, CD quality
DEFAULT_COVER_ART = "default-cover.png"
DOLBY_ATMOS_MIN_CHANNELS = 6

# Upload settings
MAX_UPLOAD_SIZE = 100 * 1024 * 1024  # 100MB

# Auth
DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60

# Paths
DEFAULT_DATA_DIR = "~/.local/share/cadenza"
DATABASE_FILENAME = "cadenza.db"
SONGS_DIRNAME = "songs"
COVERS_DIRNAME = "covers"

# Server
DEFAULT_PORT = 5002

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
DEFAULT_DOWNLOAD_CHUNK_SIZE = 8192  # bytes

# Player
DEFAULT_VOLUME = 0.5
LISTENING_TIME_UPDATE_INTERVAL = 1.0  # seconds
MAX_LISTENING_TIME_INCREMENT = 2 ** 31 - 1  # seconds per update; keeps totals inside SQLite INTEGER
