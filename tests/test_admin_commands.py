"""
Tests for admin_commands.py
"""

from unittest.mock import MagicMock

import pytest
from telegram import ChatMember
from telegram.error import BadRequest

from admin_commands import (
    AdminCommands, full_permissions, humanize_duration, parse_command, parse_duration
)

from conftest import CHAT_ID, USER_ID, make_message, make_user

ADMIN_ID = 3001
TARGET_ID = 4001


@pytest.fixture
def commands(storage, modlog):
    return AdminCommands(storage, modlog, warning_limit=3)


@pytest.fixture
def admin_bot(bot):
    bot.get_chat_member.return_value = MagicMock(status=ChatMember.ADMINISTRATOR)
    return bot


def admin_says(text, reply_to_user=None):
    replied = None
    if reply_to_user is not None:
        replied = make_message("something", user=reply_to_user, message_id=10)
    return make_message(
        text, user=make_user(ADMIN_ID, "Ada", "ada"), message_id=20, reply_to_message=replied
    )


def target():
    return make_user(TARGET_ID, "Tom", "tom")


def last_reply(bot):
    return bot.send_message.call_args.kwargs["text"]


# =============================================================================
# Parsing helpers
# =============================================================================

class TestParsing:

    def test_parse_command(self):
        assert parse_command(".BAN @tom spam") == ("ban", ["@tom", "spam"])
        assert parse_command("hello") == ("", [])
        assert parse_command("") == ("", [])

    @pytest.mark.parametrize("raw,seconds", [
        ("30s", 30), ("10m", 600), ("2h", 7200), ("1d", 86400), ("5M", 300),
    ])
    def test_parse_duration(self, raw, seconds):
        assert parse_duration(raw) == seconds

    @pytest.mark.parametrize("raw", [None, "", "10", "m10", "1w", "1.5h"])
    def test_parse_duration_rejects(self, raw):
        assert parse_duration(raw) is None

    def test_humanize(self):
        assert humanize_duration(None) == "until manually unmuted"
        assert humanize_duration(3600) == "1 hour"
        assert humanize_duration(600) == "10 minutes"
        assert humanize_duration(45) == "45 seconds"


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:

    @pytest.mark.asyncio
    async def test_non_admin_is_refused(self, commands, bot, group):
        bot.get_chat_member.return_value = MagicMock(status=ChatMember.MEMBER)
        handled = await commands.dispatch(bot, admin_says(".ban", target()), group)

        assert handled is True
        bot.ban_chat_member.assert_not_called()
        assert last_reply(bot) == "⛔ You need admin rights in this group to use this command."

    @pytest.mark.asyncio
    async def test_unknown_command_hint(self, commands, admin_bot, group):
        await commands.dispatch(admin_bot, admin_says(".frobnicate"), group)
        assert last_reply(admin_bot).startswith("ℹ️")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [".verify", ".relay on", ".admin help"])
    async def test_reserved_commands_fall_through(self, commands, admin_bot, group, text):
        assert await commands.dispatch(admin_bot, admin_says(text), group) is False
        admin_bot.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_id_is_public(self, commands, bot, group):
        await commands.dispatch(bot, make_message(".id"), group)
        bot.get_chat_member.assert_not_called()
        assert f"<code>{USER_ID}</code>" in last_reply(bot)


# =============================================================================
# Membership commands
# =============================================================================

class TestMembership:

    @pytest.mark.asyncio
    async def test_ban_by_reply(self, commands, admin_bot, group, modlog):
        await commands.dispatch(admin_bot, admin_says(".ban", target()), group)

        admin_bot.ban_chat_member.assert_awaited_once_with(chat_id=CHAT_ID, user_id=TARGET_ID)
        entry = modlog.entries()[0]
        assert (entry.action, entry.actor_id, entry.target_id) == ("ban", ADMIN_ID, TARGET_ID)

    @pytest.mark.asyncio
    async def test_ban_by_numeric_id(self, commands, admin_bot, group):
        await commands.dispatch(admin_bot, admin_says(f".ban {TARGET_ID}"), group)
        admin_bot.ban_chat_member.assert_awaited_once_with(chat_id=CHAT_ID, user_id=TARGET_ID)

    @pytest.mark.asyncio
    async def test_ban_failure_is_reported(self, commands, admin_bot, group, modlog):
        admin_bot.ban_chat_member.side_effect = BadRequest("Not enough rights")
        await commands.dispatch(admin_bot, admin_says(".ban", target()), group)

        assert last_reply(admin_bot) == "❌ Ban failed: Not enough rights"
        assert modlog.entries() == []

    @pytest.mark.asyncio
    async def test_missing_target_gets_usage(self, commands, admin_bot, group):
        await commands.dispatch(admin_bot, admin_says(".ban"), group)
        admin_bot.ban_chat_member.assert_not_called()
        assert last_reply(admin_bot).startswith("Usage: .ban")

    @pytest.mark.asyncio
    async def test_username_falls_back_to_member_registry(self, commands, admin_bot, group, storage):
        admin_bot.get_chat.side_effect = BadRequest("Chat not found")
        storage.members.upsert(CHAT_ID, TARGET_ID, {"username": "Tom", "first_name": "Tom"})

        await commands.dispatch(admin_bot, admin_says(".kick @tom"), group)

        admin_bot.ban_chat_member.assert_awaited_once_with(chat_id=CHAT_ID, user_id=TARGET_ID)
        admin_bot.unban_chat_member.assert_awaited_once_with(chat_id=CHAT_ID, user_id=TARGET_ID)

    @pytest.mark.asyncio
    async def test_unresolvable_username(self, commands, admin_bot, group):
        admin_bot.get_chat.side_effect = BadRequest("Chat not found")
        await commands.dispatch(admin_bot, admin_says(".ban @ghost"), group)
        admin_bot.ban_chat_member.assert_not_called()
        assert "couldn't resolve @ghost" in last_reply(admin_bot)

    @pytest.mark.asyncio
    async def test_mute_with_duration(self, commands, admin_bot, group, storage, modlog):
        await commands.dispatch(admin_bot, admin_says(".mute 10m", target()), group)

        kwargs = admin_bot.restrict_chat_member.call_args.kwargs
        assert kwargs["permissions"].can_send_messages is False
        assert kwargs["until_date"] is not None
        assert storage.members.find(CHAT_ID, TARGET_ID).muted_until is not None
        assert "10 minutes" in last_reply(admin_bot)
        assert modlog.entries()[0].action == "mute"

    @pytest.mark.asyncio
    async def test_mute_bad_duration_changes_nothing(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".mute forever", target()), group)
        admin_bot.restrict_chat_member.assert_not_called()
        assert storage.members.find(CHAT_ID, TARGET_ID) is None
        assert last_reply(admin_bot).startswith("Usage: .mute")

    @pytest.mark.asyncio
    async def test_unmute_restores_permissions(self, commands, admin_bot, group, storage):
        storage.members.upsert(CHAT_ID, TARGET_ID, {"muted_until": 123.0})
        await commands.dispatch(admin_bot, admin_says(".unmute", target()), group)

        assert admin_bot.restrict_chat_member.call_args.kwargs["permissions"] == full_permissions()
        assert storage.members.find(CHAT_ID, TARGET_ID).muted_until is None


class TestWarnings:

    @pytest.mark.asyncio
    async def test_warn_counts_up(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".warn", target()), group)
        assert storage.members.find(CHAT_ID, TARGET_ID).warnings == 1
        admin_bot.ban_chat_member.assert_not_called()

    @pytest.mark.asyncio
    async def test_warn_limit_kicks_and_resets(self, commands, admin_bot, group, storage, modlog):
        for _ in range(3):
            await commands.dispatch(admin_bot, admin_says(".warn", target()), group)

        admin_bot.ban_chat_member.assert_awaited_once_with(chat_id=CHAT_ID, user_id=TARGET_ID)
        admin_bot.unban_chat_member.assert_awaited_once()
        assert storage.members.find(CHAT_ID, TARGET_ID).warnings == 0
        assert [e.action for e in modlog.entries()] == ["warn", "warn", "warn"]

    @pytest.mark.asyncio
    async def test_warnings_shows_count(self, commands, admin_bot, group, storage):
        storage.members.upsert(CHAT_ID, TARGET_ID, {"warnings": 2})
        await commands.dispatch(admin_bot, admin_says(".warnings", target()), group)
        assert "2/3" in last_reply(admin_bot)


# =============================================================================
# Group settings
# =============================================================================

class TestSettings:

    @pytest.mark.asyncio
    async def test_lock_single_type(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".lock photos"), group)
        assert storage.groups.find(CHAT_ID).locks["photos"] is True
        admin_bot.set_chat_permissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_all_sets_chat_permissions(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".lock all"), group)
        admin_bot.set_chat_permissions.assert_awaited_once()
        assert all(storage.groups.find(CHAT_ID).locks.values())

    @pytest.mark.asyncio
    async def test_unknown_lock_type(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".lock everything"), group)
        assert not any(storage.groups.find(CHAT_ID).locks.values())
        assert last_reply(admin_bot).startswith("Usage: .lock")

    @pytest.mark.asyncio
    async def test_toggle(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".antilink off"), group)
        assert storage.groups.find(CHAT_ID).anti_link_enabled is False
        await commands.dispatch(admin_bot, admin_says(".captcha maybe"), group)
        assert storage.groups.find(CHAT_ID).captcha_enabled is True

    @pytest.mark.asyncio
    async def test_bad_words(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".addword Scam"), group)
        assert storage.groups.find(CHAT_ID).bad_words == ["scam"]

        group = storage.groups.find(CHAT_ID)
        await commands.dispatch(admin_bot, admin_says(".rmword scam"), group)
        assert storage.groups.find(CHAT_ID).bad_words == []

    @pytest.mark.asyncio
    async def test_whitelist_updates_group_and_member(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".whitelist", target()), group)
        assert storage.groups.find(CHAT_ID).whitelist_users == [TARGET_ID]
        assert storage.members.find(CHAT_ID, TARGET_ID).is_whitelisted is True

    @pytest.mark.asyncio
    async def test_filters(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".filter Rules Read the pinned post"), group)
        assert storage.filters.find(CHAT_ID, "rules").response == "Read the pinned post"

        await commands.dispatch(admin_bot, admin_says(".stop rules"), group)
        assert storage.filters.find(CHAT_ID, "rules") is None

    @pytest.mark.asyncio
    async def test_setlog_requires_number(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".setlog abc"), group)
        assert storage.groups.find(CHAT_ID).log_channel_id is None
        await commands.dispatch(admin_bot, admin_says(".setlog -100999"), group)
        assert storage.groups.find(CHAT_ID).log_channel_id == -100999

    @pytest.mark.asyncio
    async def test_welcome_with_text(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".welcome on Hi {first}!"), group)
        stored = storage.groups.find(CHAT_ID)
        assert stored.welcome_enabled is True
        assert stored.welcome_message == "Hi {first}!"

    @pytest.mark.asyncio
    async def test_keepservice(self, commands, admin_bot, group, storage):
        await commands.dispatch(admin_bot, admin_says(".keepservice pinned_message"), group)
        assert storage.groups.find(CHAT_ID).keep_service_types == ["pinned_message"]


class TestCleanup:

    @pytest.mark.asyncio
    async def test_purge_deletes_range(self, commands, admin_bot, group):
        await commands.dispatch(admin_bot, admin_says(".purge", target()), group)
        deleted = [c.kwargs["message_id"] for c in admin_bot.delete_message.call_args_list]
        assert deleted == list(range(10, 21))
        assert last_reply(admin_bot) == "🧹 Purged 11 messages."

    @pytest.mark.asyncio
    async def test_purge_needs_reply(self, commands, admin_bot, group):
        await commands.dispatch(admin_bot, admin_says(".purge"), group)
        admin_bot.delete_message.assert_not_called()


class TestListings:

    @pytest.mark.asyncio
    async def test_zombies(self, commands, admin_bot, group, storage):
        storage.members.upsert(CHAT_ID, 1, {"is_deleted_likely": True})
        storage.members.upsert(CHAT_ID, 2, {})
        await commands.dispatch(admin_bot, admin_says(".zombies"), group)
        assert last_reply(admin_bot) == "🧟 Deleted accounts found: 1\n• 1"

    @pytest.mark.asyncio
    async def test_bots(self, commands, admin_bot, group, storage):
        storage.members.upsert(CHAT_ID, 1, {"username": "helper_bot"})
        storage.members.upsert(CHAT_ID, 2, {"username": "human"})
        await commands.dispatch(admin_bot, admin_says(".bots"), group)
        assert last_reply(admin_bot) == "🤖 Bots seen in group:\n• @helper_bot"
