"""
Private admin panel for Group Guard Bot

A small per-user state machine driven by private messages:

    idle -> awaiting_broadcast -> drafting_broadcast -> (send | cancel) -> idle
    idle -> awaiting_welcome -> idle

Only the owner may leave `idle`. Sessions are kept in memory and are
lost on restart.
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, User

from rules import MESSAGES
from state import BoundedStore
from storage import Storage
from templates import render_template
from transport import attempt

log = logging.getLogger(__name__)

PREVIEW_CHAT_TITLE = "Example Group"


class WizardMode(str, Enum):
    IDLE = "idle"
    AWAITING_BROADCAST = "awaiting_broadcast"
    DRAFTING_BROADCAST = "drafting_broadcast"
    AWAITING_WELCOME = "awaiting_welcome"


@dataclass
class WizardSession:
    mode: WizardMode = WizardMode.IDLE
    broadcast_draft: str = ""
    all_group_ids: list = field(default_factory=list)
    managed_group_ids: list = field(default_factory=list)


@dataclass
class WizardReply:
    text: str
    reply_markup: Optional[InlineKeyboardMarkup] = None
    parse_mode: Optional[str] = None


def home_keyboard(show_admin: bool) -> InlineKeyboardMarkup:
    rows = [[
        InlineKeyboardButton("❓ Help", callback_data="dm:help"),
        InlineKeyboardButton("📚 Commands", callback_data="dm:commands"),
    ]]
    if show_admin:
        rows.append([InlineKeyboardButton("🛡 Admin Panel", callback_data="dm:admin")])
    return InlineKeyboardMarkup(rows)


def admin_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("📣 Broadcast", callback_data="dm:broadcast")],
        [InlineKeyboardButton("🎉 Edit Welcome Message", callback_data="dm:welcome")],
        [InlineKeyboardButton("🧠 Toggle Filters", callback_data="dm:filters")],
        [InlineKeyboardButton("📊 View Stats", callback_data="dm:stats")],
    ])


def draft_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("✅ Send", callback_data="dm:send"),
        InlineKeyboardButton("👀 Preview", callback_data="dm:preview"),
        InlineKeyboardButton("✖️ Cancel", callback_data="dm:cancel"),
    ]])


class DMWizard:
    def __init__(self, sessions: BoundedStore, storage: Storage, owner_id: int):
        self.sessions = sessions
        self.storage = storage
        self.owner_id = owner_id

    def is_owner(self, user_id: int) -> bool:
        return bool(self.owner_id) and user_id == self.owner_id

    def session(self, user_id: int) -> WizardSession:
        return self.sessions.get(user_id) or WizardSession()

    def _set(self, user_id: int, session: WizardSession):
        self.sessions.set(user_id, session)

    def reset(self, user_id: int):
        self.sessions.evict(user_id)

    def _reject(self, user_id: int) -> WizardReply:
        self.reset(user_id)
        log.info("Rejected wizard action from non-owner %s", user_id)
        return WizardReply(MESSAGES["owner_only"])

    def open_panel(self, user_id: int, all_group_ids: List[int], managed_group_ids: List[int]) -> WizardReply:
        """Start (or restart) a session with fresh group snapshots."""
        if not self.is_owner(user_id):
            return self._reject(user_id)
        if not managed_group_ids:
            return WizardReply(MESSAGES["no_managed_groups"])

        self._set(user_id, WizardSession(
            all_group_ids=list(all_group_ids),
            managed_group_ids=list(managed_group_ids),
        ))
        return WizardReply("🛡 Admin Panel\nChoose an action:", admin_keyboard())

    def begin_broadcast(self, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        session = self.session(user_id)
        self._set(user_id, replace(session, mode=WizardMode.AWAITING_BROADCAST, broadcast_draft=""))
        return WizardReply(
            f"📣 Send the broadcast message now. "
            f"It will go to all {len(session.all_group_ids)} tracked groups."
        )

    def begin_welcome(self, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        session = self.session(user_id)
        self._set(user_id, replace(session, mode=WizardMode.AWAITING_WELCOME))
        return WizardReply(
            "🎉 Send new welcome template for your groups. "
            "Variables: {first} {username} {chat}.\n"
            "Use [Button Text](https://example.com) on separate lines for buttons."
        )

    async def handle_text(self, bot, user: User, text: str) -> Optional[List[WizardReply]]:
        """Feed private text into the user's session. None if not consumed."""
        session = self.sessions.get(user.id)
        if session is None or session.mode == WizardMode.IDLE:
            return None

        if not self.is_owner(user.id):
            return [self._reject(user.id)]

        text = (text or "").strip()

        if session.mode == WizardMode.AWAITING_BROADCAST:
            if not text:
                return [WizardReply("⚠️ Empty broadcast ignored. Send plain text to continue.")]
            self._set(user.id, replace(session, mode=WizardMode.DRAFTING_BROADCAST, broadcast_draft=text))
            return [WizardReply("📝 Draft saved. Send it, preview it or cancel.", draft_keyboard())]

        if session.mode == WizardMode.DRAFTING_BROADCAST:
            return [WizardReply("ℹ️ A draft is waiting. Use the buttons below.", draft_keyboard())]

        if session.mode == WizardMode.AWAITING_WELCOME:
            if not text:
                return [WizardReply("⚠️ Welcome template cannot be empty. Please send text with variables.")]
            for chat_id in session.managed_group_ids:
                self.storage.groups.upsert(chat_id, {"welcome_message": text, "welcome_enabled": True})
            self._set(user.id, replace(session, mode=WizardMode.IDLE))
            log.info("Welcome template updated for %d groups", len(session.managed_group_ids))
            return [
                WizardReply("✅ Welcome message updated for your managed groups. Preview below:"),
                WizardReply(render_template(text, user, PREVIEW_CHAT_TITLE), parse_mode="HTML"),
            ]

        return None

    async def send_broadcast(self, bot, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        session = self.session(user_id)
        if session.mode != WizardMode.DRAFTING_BROADCAST:
            return WizardReply("ℹ️ No broadcast draft to send.")

        delivered = 0
        for chat_id in session.all_group_ids:
            result = await attempt(
                bot.send_message(chat_id=chat_id, text=f"📣 Broadcast\n\n{session.broadcast_draft}"),
                "broadcast",
            )
            if result.ok:
                delivered += 1

        self._set(user_id, replace(session, mode=WizardMode.IDLE, broadcast_draft=""))
        log.info("Broadcast delivered to %d/%d groups", delivered, len(session.all_group_ids))
        return WizardReply(f"✅ Broadcast delivered to {delivered}/{len(session.all_group_ids)} groups.")

    def preview(self, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        session = self.session(user_id)
        if session.mode != WizardMode.DRAFTING_BROADCAST:
            return WizardReply("ℹ️ No broadcast draft to preview.")
        return WizardReply(f"📣 Broadcast\n\n{session.broadcast_draft}", draft_keyboard())

    def cancel(self, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        session = self.session(user_id)
        self._set(user_id, replace(session, mode=WizardMode.IDLE, broadcast_draft=""))
        return WizardReply("✖️ Canceled. Nothing was sent.")

    def stats(self, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        group_ids = self.session(user_id).managed_group_ids
        return WizardReply("\n".join([
            "📊 Admin Stats",
            f"• Managed groups: {len(group_ids)}",
            f"• Tracked users: {self.storage.members.count_in(group_ids)}",
            f"• Active filters: {self.storage.filters.count_in(group_ids)}",
        ]))

    def toggle_anti_spam(self, user_id: int) -> WizardReply:
        if not self.is_owner(user_id):
            return self._reject(user_id)
        updated = 0
        for chat_id in self.session(user_id).managed_group_ids:
            group = self.storage.groups.find_or_create(chat_id)
            self.storage.groups.upsert(chat_id, {"anti_spam_enabled": not group.anti_spam_enabled})
            updated += 1
        return WizardReply(f"🧠 Filters toggled for {updated} groups (anti-spam switched).")
