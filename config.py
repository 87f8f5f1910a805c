"""
Configuration for Group Guard Bot
"""
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


def _id_list_env(name: str) -> List[int]:
    raw = os.environ.get(name, "")
    return [int(part) for part in raw.replace(" ", "").split(",") if part]


# Bot settings
BOT_TOKEN = os.environ.get("BOT_TOKEN", "")
BOT_USERNAME = os.environ.get("BOT_USERNAME", "")

# Owner controls relay and the DM admin panel (0 = nobody)
OWNER_ID = _int_env("OWNER_ID", 0)

# Extra inboxes that receive mirrored group traffic (read only)
RELAY_ADMIN_IDS = _id_list_env("RELAY_ADMIN_IDS")

# Commands start with this prefix (.ban, .mute, .relay ...)
COMMAND_PREFIX = os.environ.get("COMMAND_PREFIX", ".")

# Moderation settings
WARNING_LIMIT = _int_env("WARNING_LIMIT", 3)
CAPTCHA_TIMEOUT_SECONDS = _int_env("CAPTCHA_TIMEOUT_SECONDS", 120)

# Flood detection
FLOOD_WINDOW_MS = _int_env("FLOOD_WINDOW_MS", 8000)
FLOOD_MESSAGE_LIMIT = _int_env("FLOOD_MESSAGE_LIMIT", 6)
FLOOD_MUTE_SECONDS = _int_env("FLOOD_MUTE_SECONDS", 300)

# Messages longer than this are treated as spam payloads
SPAM_MAX_LENGTH = _int_env("SPAM_MAX_LENGTH", 900)

# Links that trigger anti-link
LINK_PATTERN = r"(https?://|t\.me/|telegram\.me/|www\.)"

ADMIN_MENTION_COOLDOWN_SECONDS = _int_env("ADMIN_MENTION_COOLDOWN_SECONDS", 45)

# In-memory state (rate windows, wizard sessions, cooldowns); 0 = unbounded
STATE_MAX_KEYS = _int_env("STATE_MAX_KEYS", 10000)

# Paths
DATA_DIR = Path(os.environ.get("DATA_DIR", Path(__file__).parent / "data"))

# Health server
PORT = _int_env("PORT", 8080)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
