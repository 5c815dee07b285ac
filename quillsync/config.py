"""Application configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data"))
COOKIES_PATH = Path(os.getenv("COOKIES_PATH", DATA_DIR / "chat_cookies.json"))
LOG_DIR = DATA_DIR / "logs"
LOG_MAX_BYTES = 10 * 1024 * 1024

# Translation service
SERVICE_HOST = os.getenv("SERVICE_HOST", "127.0.0.1")
SERVICE_PORT = int(os.getenv("SERVICE_PORT", "3003"))
SERVICE_URL = f"http://{SERVICE_HOST}:{SERVICE_PORT}"

# Browser
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "false").lower() == "true"
BROWSER_TIMEOUT = int(os.getenv("BROWSER_TIMEOUT", "60000"))
RELOAD_TIMEOUT = 30000
SESSION_RESTART_RETRIES = 2

# Chat surface
CHAT_SURFACE_URL = os.getenv("CHAT_SURFACE_URL", "https://chatgpt.com")
DEFAULT_PROMPT_PREFIX = os.getenv(
    "DEFAULT_PROMPT_PREFIX",
    "Follow the instructions carefully and first check the memory for the glossary. "
    "Ensure that all terms are correctly used and consistent. Maintain full sentences "
    "and paragraphs, do not cut them off mid-sentence or with dashes:",
)

# Chunk submission
INPUT_TIMEOUT = 60000
RESPONSE_TIMEOUT = 600000  # replies to long chunks can take minutes
CHUNK_ATTEMPTS = 3
CHUNK_RETRY_DELAY = 5.0
SEND_BUTTON_POLLS = 25
SEND_BUTTON_POLL_TIMEOUT = 5000
SEND_BUTTON_POLL_DELAY = 2.0
SETTLE_DELAY = 1.0

# Job orchestration
RECOVERY_SETTLE_DELAY = 5.0
DEFAULT_CHUNK_SIZE = 1000
AUTO_CHUNK_THRESHOLD = 2000
ERROR_PREVIEW_CHARS = 100

# Chapter fetching
MULTI_CHAPTER_DELAY = 1.0


def ensure_dirs():
    """Create required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    COOKIES_PATH.parent.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
