"""Static configuration for the Apin chat core.

The persona, sampling temperature and storage key are fixed for every
conversation; only the data directory can be overridden at runtime.
"""

from __future__ import annotations

import os
from pathlib import Path

SYSTEM_INSTRUCTIONS = (
    "You are Apin, an AI assistant created by dk865. You are helpful, creative, and engaging.\n"
    "Keep your responses conversational and concise unless specifically asked for detailed "
    "information.\n"
    "You maintain context within this conversation but don't remember previous conversations."
)
TEMPERATURE = 0.7

SAVE_KEY = "SavedChats"
DB_FILENAME = "apin_chat.sqlite3"

DEFAULT_TITLE = "New Chat"
TITLE_WORD_LIMIT = 5

DATA_DIR_ENV_VAR = "APIN_CHAT_HOME"


def default_data_dir() -> Path:
    """Resolve the app-local data directory (``$APIN_CHAT_HOME`` or ``~/.apin_chat``)."""
    override = os.environ.get(DATA_DIR_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".apin_chat"
