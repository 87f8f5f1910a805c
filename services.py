"""
Group services: service-message cleanup, keyword filters, admin mentions,
welcome and goodbye posts
"""
import html
import logging
import re
import time
from typing import Optional

from telegram import Message, User

from config import ADMIN_MENTION_COOLDOWN_SECONDS, COMMAND_PREFIX
from models import GroupPolicy
from rules import SERVICE_TYPES
from state import BoundedStore
from storage import FilterRepository
from templates import render_template, split_buttons
from transport import attempt

log = logging.getLogger(__name__)

ADMIN_CALL_RE = re.compile(r"(^|\s)(@admin|\.admin|/admin)(\s|$)", re.IGNORECASE)


def service_type(message: Message) -> Optional[str]:
    for kind in SERVICE_TYPES:
        value = getattr(message, kind, None)
        # new_chat_members is an empty tuple on ordinary messages
        if value not in (None, False, (), []):
            return kind
    return None


def has_admin_call(text: str) -> bool:
    return bool(ADMIN_CALL_RE.search(text or ""))


def jump_link(message: Message) -> str:
    chat = message.chat
    if chat.username:
        return f"https://t.me/{chat.username}/{message.message_id}"
    internal_id = str(chat.id).replace("-100", "", 1)
    return f"https://t.me/c/{internal_id}/{message.message_id}"


async def cleanup_service_message(bot, message: Message, group: GroupPolicy) -> bool:
    """Delete a service message unless its type is kept. True if deleted."""
    if not group.service_delete_enabled:
        return False
    kind = service_type(message)
    if kind is None or kind in group.keep_service_types:
        return False
    result = await attempt(
        bot.delete_message(chat_id=message.chat_id, message_id=message.message_id),
        f"delete {kind}",
    )
    return result.ok


async def reply_filter(bot, message: Message, filters: FilterRepository) -> bool:
    """Answer a message whose whole text is a stored trigger"""
    text = (message.text or "").strip()
    if not text or text.startswith(COMMAND_PREFIX):
        return False
    rule = filters.find(message.chat_id, text.lower())
    if rule is None:
        return False
    await attempt(
        bot.send_message(
            chat_id=message.chat_id,
            text=rule.response,
            reply_to_message_id=message.message_id,
        ),
        "filter reply",
    )
    return True


class AdminMentionAlert:
    """DMs every chat admin when someone calls for @admin"""

    def __init__(
        self,
        cooldowns: BoundedStore,
        cooldown_seconds: int = ADMIN_MENTION_COOLDOWN_SECONDS,
        clock=time.time,
    ):
        self.cooldowns = cooldowns
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

    def _cooling_down(self, chat_id: int, user_id: int) -> bool:
        key = (chat_id, user_id)
        now = self.clock()
        last = self.cooldowns.get(key, 0)
        if now - last < self.cooldown_seconds:
            return True
        self.cooldowns.set(key, now)
        return False

    async def handle(self, bot, message: Message) -> int:
        """Returns how many admins were notified."""
        text = message.text or ""
        sender = message.from_user
        if sender is None or not has_admin_call(text):
            return 0
        if self._cooling_down(message.chat_id, sender.id):
            return 0

        admins = await attempt(bot.get_chat_administrators(chat_id=message.chat_id), "list admins")
        if not admins.ok:
            return 0

        from_user = f"@{sender.username}" if sender.username else (sender.first_name or str(sender.id))
        report = "\n".join([
            "🚨 Admin Mentioned",
            f"👤 From: {html.escape(from_user)}",
            f"💬 Message: {html.escape(text)}",
            f"📍 Group: {html.escape(message.chat.title or str(message.chat_id))}",
            f'🔗 <a href="{jump_link(message)}">Jump to message</a>',
        ])

        notified = 0
        for admin in admins.value:
            if admin.user.is_bot:
                continue
            result = await attempt(
                bot.send_message(
                    chat_id=admin.user.id,
                    text=report,
                    parse_mode="HTML",
                    disable_web_page_preview=True,
                ),
                "admin mention DM",
            )
            if result.ok:
                notified += 1
        log.info("Admin mention in %s by %s, notified %d admins", message.chat_id, sender.id, notified)
        return notified


async def post_welcome(bot, chat, group: GroupPolicy, member: User) -> bool:
    if not group.welcome_enabled:
        return False
    body, keyboard = split_buttons(render_template(group.welcome_message, member, chat.title))
    result = await attempt(
        bot.send_message(chat_id=chat.id, text=body, parse_mode="HTML", reply_markup=keyboard),
        "welcome",
    )
    return result.ok


async def post_goodbye(bot, chat, group: GroupPolicy, member: User) -> bool:
    if not group.goodbye_enabled:
        return False
    result = await attempt(
        bot.send_message(
            chat_id=chat.id,
            text=render_template(group.goodbye_message, member, chat.title),
            parse_mode="HTML",
        ),
        "goodbye",
    )
    return result.ok
