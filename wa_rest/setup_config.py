import os
import sys
from pathlib import Path

# Logic to determine EXEC_DIR (same as config.py to ensure consistency)
# We duplicate it here to avoid importing config.py (which would trigger loading values)
if getattr(sys, 'frozen', False):
    EXEC_DIR = Path(sys.executable).parent
else:
    EXEC_DIR = Path(__file__).resolve().parent.parent

CONFIG_PATH = Path(os.getenv("WA_REST_CONFIG", EXEC_DIR / "config.ini"))

DEFAULT_CONFIG = """[General]
HOST = 0.0.0.0
PORT = 3000
LOG_LEVEL = INFO
LOG_DIR = logs
# Start the WhatsApp session when the server boots
AUTO_CONNECT = True

[WhatsApp]
# Browser profile holding the linked-device session (deleted by /clear-auth)
AUTH_DIR = auth_info
UPLOADS_DIR = uploads
# Fixed delays, in seconds
RECONNECT_DELAY = 5
DISCONNECT_RECONNECT_DELAY = 2
INIT_RETRY_DELAY = 5
POLL_INTERVAL = 2
PRINT_QR = True
MAX_UPLOAD_MB = 10

[Browser]
HEADLESS = True
# Channel (Only for chromium): chrome, msedge, or leave empty
CHANNEL =
# Custom Executable Path (Overrides CHANNEL if set)
EXECUTABLE_PATH =
"""


def ensure_config():
    """Create config.ini with default values if it doesn't exist."""
    if CONFIG_PATH.exists():
        return False
    print(f"Creating default configuration at: {CONFIG_PATH}")
    with open(CONFIG_PATH, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG)
    return True
