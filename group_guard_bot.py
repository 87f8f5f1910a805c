#!/usr/bin/env python3
"""
🛡 Group Guard Bot - Group Moderator

Moderates Telegram groups, verifies new members and relays group traffic
to the owner's inbox.

Features:
- Auto-moderation (links, bad words, flood, spam, content locks)
- Join captcha with timed removal
- Dot-prefixed admin commands (.ban, .mute, .warn, .lock ...)
- Relay of group messages to the owner, with replies routed back
- Private admin panel (broadcast, welcome template, stats)

Setup:
  1. Create bot via @BotFather
  2. Add bot to group as admin (with ban/delete/restrict permissions)
  3. Set environment variables (or a .env file):
     export BOT_TOKEN="your_token"
     export OWNER_ID="your_user_id"
  4. Run: python group_guard_bot.py
"""

import asyncio
import logging
import sys
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import List

from telegram import Update
from telegram.ext import (
    Application, ApplicationHandlerStop, CallbackQueryHandler, CommandHandler,
    ContextTypes, MessageHandler, filters
)

from admin_commands import AdminCommands, is_chat_admin, parse_command
from analyzer import PolicyEvaluator, enforce
from captcha import CaptchaGate, VerifyOutcome, asyncio_scheduler, parse_verify_callback
from config import (
    BOT_TOKEN, CAPTCHA_TIMEOUT_SECONDS, COMMAND_PREFIX, DATA_DIR, FLOOD_WINDOW_MS,
    LOG_LEVEL, OWNER_ID, PORT, RELAY_ADMIN_IDS, STATE_MAX_KEYS
)
from modlog import ModerationLog
from rate_window import RateWindowTracker
from relay import RelayRouter
from rules import MESSAGES
from services import (
    AdminMentionAlert, cleanup_service_message, post_goodbye, post_welcome,
    reply_filter, service_type
)
from state import BoundedStore
from storage import Storage
from templates import mention_html
from transport import attempt
from wizard import DMWizard, WizardReply, home_keyboard

log = logging.getLogger(__name__)


# === KEEP-ALIVE SERVER ===
class HealthHandler(BaseHTTPRequestHandler):
    """Health check endpoint for the hosting platform"""
    def do_GET(self):
        if self.path not in ("/", "/health"):
            self.send_response(404)
            self.end_headers()
            return
        self.send_response(200)
        self.send_header('Content-type', 'text/plain')
        self.end_headers()
        self.wfile.write(b'Group Guard Bot OK')

    def log_message(self, format, *args):
        pass  # Suppress logs


def start_health_server(port: int = PORT) -> HTTPServer:
    """Start health check server in background thread"""
    server = HTTPServer(('0.0.0.0', port), HealthHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    log.info("Health server: http://0.0.0.0:%s", port)
    return server


def application_scheduler(application: Application):
    """Run deferred captcha checks as tasks owned by the application"""
    def schedule(delay, job):
        async def _later():
            await asyncio.sleep(delay)
            await job()

        application.create_task(_later())
    return schedule


class GuardBot:
    """Wires storage and components into Telegram handlers"""

    def __init__(
        self,
        storage: Storage,
        modlog: ModerationLog,
        owner_id: int = OWNER_ID,
        relay_admin_ids: List[int] = RELAY_ADMIN_IDS,
        scheduler=asyncio_scheduler,
        max_keys: int = STATE_MAX_KEYS,
    ):
        self.storage = storage
        self.modlog = modlog

        self.evaluator = PolicyEvaluator(RateWindowTracker(FLOOD_WINDOW_MS, BoundedStore(max_keys)))
        self.captcha = CaptchaGate(
            storage.members, storage.groups, modlog, CAPTCHA_TIMEOUT_SECONDS, scheduler
        )
        self.relay = RelayRouter(storage.relay_settings, storage.relay_map, owner_id, relay_admin_ids)
        self.wizard = DMWizard(BoundedStore(max_keys), storage, owner_id)
        self.commands = AdminCommands(storage, modlog)
        self.mention_alert = AdminMentionAlert(BoundedStore(max_keys))

    def _group(self, chat):
        return self.storage.groups.find_or_create(chat.id, chat.title or "")

    async def _send_replies(self, bot, chat_id: int, replies: List[WizardReply]):
        for reply in replies:
            await attempt(
                bot.send_message(
                    chat_id=chat_id,
                    text=reply.text,
                    reply_markup=reply.reply_markup,
                    parse_mode=reply.parse_mode,
                ),
                "private reply",
            )

    async def managed_groups(self, bot, user_id: int):
        """(all tracked group ids, ids where `user_id` is an admin)"""
        all_ids = self.storage.groups.all_chat_ids()
        managed = [chat_id for chat_id in all_ids if await is_chat_admin(bot, chat_id, user_id)]
        return all_ids, managed

    # === AUTO-MODERATION ===
    async def moderate(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """First pass over every group message. Suppressed messages stop here."""
        message = update.message
        if message is None:
            return

        group = self._group(message.chat)
        sender = message.from_user
        if sender is None or service_type(message):
            return

        member = self.storage.members.upsert(message.chat_id, sender.id, {
            "username": sender.username or "",
            "first_name": sender.first_name or "",
            "last_name": sender.last_name or "",
            "is_deleted_likely": False if sender.is_bot else sender.first_name == "Deleted Account",
        })

        if (message.text or "").startswith(COMMAND_PREFIX):
            return

        decision = self.evaluator.evaluate(message, group, member)
        if decision.suppress:
            await enforce(context.bot, message, decision, group, self.modlog)
            raise ApplicationHandlerStop

    # === GROUP EVENTS & COMMANDS ===
    async def on_group_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.message
        if message is None:
            return
        bot = context.bot
        group = self._group(message.chat)

        for member in message.new_chat_members:
            await self.captcha.on_join(bot, message.chat, group, member)
            await post_welcome(bot, message.chat, group, member)
            await self.modlog.write(bot, group, "join", chat=message.chat, target_id=member.id)

        if message.left_chat_member:
            member = message.left_chat_member
            await post_goodbye(bot, message.chat, group, member)
            await self.modlog.write(bot, group, "leave", chat=message.chat, target_id=member.id)

        await cleanup_service_message(bot, message, group)

        if message.from_user is None or not message.text:
            return

        cmd, _ = parse_command(message.text)
        if cmd == "relay":
            reply = self.relay.handle_control(message.from_user.id, message.text)
            await attempt(bot.send_message(chat_id=message.chat_id, text=reply), "relay control reply")
        elif cmd:
            await self.commands.dispatch(bot, message, self._group(message.chat))

    async def on_group_relay(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.message
        if message is None:
            return
        if self.relay.is_destination_chat(message.chat_id):
            await self.relay.route_reply(context.bot, message)
            return
        await self.relay.mirror(context.bot, message)

    async def on_group_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.message
        if message is None or message.from_user is None:
            return
        await reply_filter(context.bot, message, self.storage.filters)
        await self.mention_alert.handle(context.bot, message)

    async def on_verify(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        parsed = parse_verify_callback(query.data or "")
        if parsed is None:
            await attempt(query.answer(), "answer callback")
            return

        chat_id, user_id = parsed
        outcome = await self.captcha.verify(context.bot, chat_id, user_id, query.from_user.id)

        if outcome == VerifyOutcome.NOT_YOURS:
            await attempt(query.answer("This button is not for you.", show_alert=True), "answer callback")
        elif outcome == VerifyOutcome.NOT_PENDING:
            await attempt(query.answer("Already verified."), "answer callback")
        else:
            await attempt(query.answer("Verified!"), "answer callback")
            await attempt(
                query.edit_message_text(
                    f"✅ {mention_html(query.from_user)} verified successfully.",
                    parse_mode="HTML",
                ),
                "edit captcha prompt",
            )

    # === PRIVATE CHAT ===
    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        _, managed = await self.managed_groups(context.bot, user.id)
        await update.message.reply_text(
            MESSAGES["start"].format(user=mention_html(user)),
            parse_mode="HTML",
            reply_markup=home_keyboard(bool(managed)),
        )

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(MESSAGES["help"])

    async def cmd_commands(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(MESSAGES["commands"])

    async def cmd_admin(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if self.wizard.is_owner(user.id):
            all_ids, managed = await self.managed_groups(context.bot, user.id)
        else:
            all_ids, managed = [], []
        reply = self.wizard.open_panel(user.id, all_ids, managed)
        await self._send_replies(context.bot, update.effective_chat.id, [reply])

    async def on_private_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Relay reply first, then .relay controls, then the wizard"""
        message = update.message
        if message is None or message.from_user is None:
            return
        bot = context.bot

        if await self.relay.route_reply(bot, message):
            return

        cmd, _ = parse_command(message.text or "")
        if cmd == "relay":
            reply = self.relay.handle_control(message.from_user.id, message.text)
            await attempt(bot.send_message(chat_id=message.chat_id, text=reply), "relay control reply")
            return

        if message.text is None:
            return
        replies = await self.wizard.handle_text(bot, message.from_user, message.text)
        if replies:
            await self._send_replies(bot, message.chat_id, replies)

    async def on_panel_button(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        action = (query.data or "").split(":", 1)[-1]
        user = query.from_user
        bot = context.bot
        chat_id = query.message.chat_id if query.message else user.id

        if action == "help":
            await attempt(query.answer(), "answer callback")
            await self._send_replies(bot, chat_id, [WizardReply(MESSAGES["help"])])
            return
        if action == "commands":
            await attempt(query.answer(), "answer callback")
            await self._send_replies(bot, chat_id, [WizardReply(MESSAGES["commands"])])
            return

        # Panel entry points refresh the group snapshot for the owner
        if action in ("admin", "broadcast", "welcome", "filters", "stats") and self.wizard.is_owner(user.id):
            all_ids, managed = await self.managed_groups(bot, user.id)
            if not managed:
                await attempt(query.answer("No managed groups found.", show_alert=True), "answer callback")
                return
            panel = self.wizard.open_panel(user.id, all_ids, managed)
            if action == "admin":
                await attempt(query.answer(), "answer callback")
                await self._send_replies(bot, chat_id, [panel])
                return

        handlers = {
            "admin": lambda: self.wizard.open_panel(user.id, [], []),
            "broadcast": lambda: self.wizard.begin_broadcast(user.id),
            "welcome": lambda: self.wizard.begin_welcome(user.id),
            "filters": lambda: self.wizard.toggle_anti_spam(user.id),
            "stats": lambda: self.wizard.stats(user.id),
            "preview": lambda: self.wizard.preview(user.id),
            "cancel": lambda: self.wizard.cancel(user.id),
        }

        await attempt(query.answer(), "answer callback")
        if action == "send":
            reply = await self.wizard.send_broadcast(bot, user.id)
        elif action in handlers:
            reply = handlers[action]()
        else:
            return
        await self._send_replies(bot, chat_id, [reply])

    # === ERRORS ===
    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        log.error("Unhandled error while processing update %s", update, exc_info=context.error)

    def register(self, app: Application):
        groups = filters.ChatType.GROUPS
        private = filters.ChatType.PRIVATE

        # Auto-moderation runs first; a suppressed message never reaches later groups
        app.add_handler(MessageHandler(groups, self.moderate), group=-1)

        # Private commands
        app.add_handler(CommandHandler("start", self.cmd_start, filters=private))
        app.add_handler(CommandHandler("help", self.cmd_help, filters=private))
        app.add_handler(CommandHandler("commands", self.cmd_commands, filters=private))
        app.add_handler(CommandHandler("admin", self.cmd_admin, filters=private))

        # Callback handlers
        app.add_handler(CallbackQueryHandler(self.on_verify, pattern="^verify:"))
        app.add_handler(CallbackQueryHandler(self.on_panel_button, pattern="^dm:"))

        # Group events and dot-commands, then relay, then filters/mentions
        app.add_handler(MessageHandler(groups, self.on_group_message))
        app.add_handler(MessageHandler(groups, self.on_group_relay), group=1)
        app.add_handler(MessageHandler(groups & filters.TEXT, self.on_group_text), group=2)

        # Private messages: relay replies, .relay controls, wizard input
        app.add_handler(MessageHandler(private & ~filters.COMMAND, self.on_private_message))

        app.add_error_handler(self.on_error)


# === MAIN ===
def main():
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=LOG_LEVEL,
    )
    # httpx logs every polling request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not BOT_TOKEN:
        log.error("BOT_TOKEN is required. Set it in the environment or in .env")
        sys.exit(1)

    log.info("🛡 Group Guard Bot starting...")

    storage = Storage(DATA_DIR)
    modlog = ModerationLog(storage.modlog_file)

    start_health_server()

    app = Application.builder().token(BOT_TOKEN).build()
    guard = GuardBot(storage, modlog, scheduler=application_scheduler(app))
    guard.register(app)

    log.info("🛡 Group Guard Bot is now protecting groups (owner: %s)", OWNER_ID or "not set")

    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
