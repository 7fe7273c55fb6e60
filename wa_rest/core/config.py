import sys
import os
from pathlib import Path
import configparser

# Base directory for internal assets
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Determine execution directory (where the exe or script is)
if getattr(sys, 'frozen', False):
    EXEC_DIR = Path(sys.executable).parent
else:
    EXEC_DIR = BASE_DIR

# Config Parser
config_file = Path(os.getenv("WA_REST_CONFIG", EXEC_DIR / "config.ini"))
ini_config = configparser.ConfigParser()
ini_config.read(config_file)

# Helper to get config safely
def get_config(section, key, default):
    return ini_config.get(section, key, fallback=default)

def get_bool(section, key, default):
    return str(get_config(section, key, default)).strip().lower() in ("1", "true", "yes", "on")

def get_float(section, key, default):
    return float(get_config(section, key, default))

def resolve_dir(value):
    path = Path(value)
    if not path.is_absolute():
        path = EXEC_DIR / path
    return path

# API
HOST = get_config("General", "HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", get_config("General", "PORT", "3000")))

# Logging
LOG_LEVEL = get_config("General", "LOG_LEVEL", "INFO").upper()
LOG_DIR = resolve_dir(get_config("General", "LOG_DIR", "logs"))

# Start the WhatsApp session as soon as the server is up
AUTO_CONNECT = get_bool("General", "AUTO_CONNECT", "True")

# Browser profile (cookies, IndexedDB) holding the linked-device credentials
AUTH_DIR = resolve_dir(get_config("WhatsApp", "AUTH_DIR", "auth_info"))

# Scratch directory for uploaded media
UPLOADS_DIR = resolve_dir(get_config("WhatsApp", "UPLOADS_DIR", "uploads"))

# WhatsApp URL
WHATSAPP_URL = "https://web.whatsapp.com"

# Fixed delays (seconds)
RECONNECT_DELAY = get_float("WhatsApp", "RECONNECT_DELAY", "5")
DISCONNECT_RECONNECT_DELAY = get_float("WhatsApp", "DISCONNECT_RECONNECT_DELAY", "2")
INIT_RETRY_DELAY = get_float("WhatsApp", "INIT_RETRY_DELAY", "5")

# How often the login page is probed for QR / chat list
POLL_INTERVAL = get_float("WhatsApp", "POLL_INTERVAL", "2")

# Print the QR code in the terminal as well
PRINT_QR = get_bool("WhatsApp", "PRINT_QR", "True")

# Upload limit
MAX_UPLOAD_SIZE = int(get_float("WhatsApp", "MAX_UPLOAD_MB", "10") * 1024 * 1024)

# Headless mode
HEADLESS = get_bool("Browser", "HEADLESS", "True")

# Browser Configuration
BROWSER_CHANNEL = get_config("Browser", "CHANNEL", "")
if BROWSER_CHANNEL == "None" or BROWSER_CHANNEL == "":
    BROWSER_CHANNEL = None

# Custom Executable Path (e.g., "/usr/bin/google-chrome")
BROWSER_EXECUTABLE_PATH = get_config("Browser", "EXECUTABLE_PATH", "")
