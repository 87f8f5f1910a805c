"""
Group Guard Bot - Test Fixtures
================================

Shared fixtures for all tests. Telegram objects are real
python-telegram-bot types; the bot itself is an AsyncMock whose send
methods hand back numbered fake messages.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import Chat, Message, User

from modlog import ModerationLog
from storage import Storage

BOT_ID = 4242
OWNER_ID = 1001
RELAY_ADMIN_ID = 1002
USER_ID = 2001
CHAT_ID = -1001234567890

SEND_METHODS = [
    "send_message", "send_photo", "send_video", "send_animation", "send_document",
    "send_audio", "send_voice", "send_sticker", "send_video_note",
]


def make_user(user_id=USER_ID, first_name="Alice", username="alice", is_bot=False):
    return User(id=user_id, first_name=first_name, is_bot=is_bot, username=username)


def make_chat(chat_id=CHAT_ID, title="Test Group", chat_type=Chat.SUPERGROUP, username=None):
    return Chat(id=chat_id, type=chat_type, title=title, username=username)


def private_chat(user_id=OWNER_ID):
    return Chat(id=user_id, type=Chat.PRIVATE, first_name="Owner")


def make_message(text=None, chat=None, user=..., message_id=1, **kwargs):
    if user is ...:
        user = make_user()
    return Message(
        message_id=message_id,
        date=datetime.now(timezone.utc),
        chat=chat or make_chat(),
        from_user=user,
        text=text,
        **kwargs
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "data")


@pytest.fixture
def modlog(storage):
    return ModerationLog(storage.modlog_file)


@pytest.fixture
def group(storage):
    return storage.groups.find_or_create(CHAT_ID, "Test Group")


@pytest.fixture
def bot():
    """AsyncMock bot; every send returns a fake message with a fresh id."""
    bot = AsyncMock()
    bot.id = BOT_ID
    counter = {"n": 0}

    async def _sent(chat_id, **kwargs):
        counter["n"] += 1
        sent = MagicMock()
        sent.chat_id = chat_id
        sent.message_id = 5000 + counter["n"]
        return sent

    for name in SEND_METHODS:
        getattr(bot, name).side_effect = _sent
    return bot


@pytest.fixture
def scheduled():
    """Collects (delay, job) pairs instead of sleeping"""
    jobs = []

    def scheduler(delay, job):
        jobs.append((delay, job))

    scheduler.jobs = jobs
    return scheduler


@pytest.fixture
def clock():
    class Clock:
        now = 1_000_000.0

        def __call__(self):
            return self.now

    return Clock()
