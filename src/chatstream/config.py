"""Central configuration for paths, endpoints and constants."""

import os
from pathlib import Path

# Data directory, override with CHATSTREAM_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("CHATSTREAM_DATA_DIR", str(Path.home() / ".chatstream"))
)

# Cache database
SQLITE_PATH = DATA_DIR / "conversations.db"
CACHE_TTL_SECONDS = 24 * 60 * 60  # Cached conversations stay usable offline for a day

# Chat API
API_BASE_URL = os.environ.get("CHATSTREAM_API_URL", "http://localhost:3000")
API_TOKEN = os.environ.get("CHATSTREAM_API_TOKEN") or None
CHAT_ENDPOINT = "/api/chat"
REQUEST_TIMEOUT = float(os.environ.get("CHATSTREAM_TIMEOUT", "120"))
CONNECT_TIMEOUT = 15.0

# Tag extraction
DEFAULT_ARTIFACT_TITLE = "Document"
LEGAL_REF_SCHEMES = ("article",)

# Conversation titles derived from the first user message
MAX_TITLE_CHARS = 60
