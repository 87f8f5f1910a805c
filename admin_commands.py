"""
Group admin commands for Group Guard Bot

Dot-prefixed text commands (.ban, .mute, .warn, .lock ...). Bad input gets
a usage reply and changes nothing.
"""
import html
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from telegram import ChatMember, ChatPermissions, Message, User

from config import COMMAND_PREFIX, WARNING_LIMIT
from models import GroupPolicy
from modlog import ModerationLog
from rules import LOCK_TYPES, MESSAGES
from storage import Storage
from templates import mention_html
from transport import CallResult, attempt

log = logging.getLogger(__name__)

USERS_PAGE_SIZE = 20

DURATION_RE = re.compile(r"^(\d+)([smhd])$", re.IGNORECASE)
UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

TOGGLES = {
    "antilink": ("anti_link_enabled", "🔗 Anti-link"),
    "antiflood": ("anti_flood_enabled", "🌊 Anti-flood"),
    "antispam": ("anti_spam_enabled", "🧱 Anti-spam"),
    "captcha": ("captcha_enabled", "🤖 Captcha"),
}

USAGE = {
    "ban": "Usage: .ban [reply/user_id/@username]",
    "unban": "Usage: .unban [reply/user_id/@username]",
    "kick": "Usage: .kick [reply/user_id/@username]",
    "mute": "Usage: .mute [reply/user_id/@username] [30s|10m|1h|1d] (duration optional)",
    "unmute": "Usage: .unmute [reply/user_id/@username]",
    "warn": "Usage: .warn [reply/user_id/@username]",
    "warnings": "Usage: .warnings [reply/user_id/@username]",
    "purge": "Usage: .purge [reply to first message]",
    "del": "Usage: .del [reply]",
    "lock": f"Usage: .lock [{'|'.join(LOCK_TYPES)}|all]",
    "unlock": f"Usage: .unlock [{'|'.join(LOCK_TYPES)}|all]",
    "addword": "Usage: .addword [word]",
    "rmword": "Usage: .rmword [word]",
    "whitelist": "Usage: .whitelist [reply/user_id/@username]",
    "unwhitelist": "Usage: .unwhitelist [reply/user_id/@username]",
    "filter": "Usage: .filter [trigger] [response]",
    "stop": "Usage: .stop [trigger]",
    "setlog": "Usage: .setlog [channel_id]",
    "delservice": "Usage: .delservice [on/off]",
    "keepservice": "Usage: .keepservice [service_type]",
    "welcome": "Usage: .welcome [on/off] [message]",
    "goodbye": "Usage: .goodbye [on/off] [message]",
}

# Commands anyone may use; everything else needs chat admin rights
PUBLIC_COMMANDS = {"id"}

# Handled elsewhere (captcha button, relay controls, admin mention)
RESERVED_COMMANDS = {"verify", "relay", "admin"}


def parse_command(text: str, prefix: str = COMMAND_PREFIX) -> Tuple[str, List[str]]:
    parts = text.strip().split()
    if not parts or not parts[0].startswith(prefix):
        return "", []
    return parts[0][len(prefix):].lower(), parts[1:]


def parse_duration(raw: Optional[str]) -> Optional[int]:
    """'10m' -> 600. None when missing or malformed."""
    if not raw:
        return None
    match = DURATION_RE.match(raw)
    if not match:
        return None
    return int(match.group(1)) * UNIT_SECONDS[match.group(2).lower()]


def humanize_duration(seconds: Optional[int]) -> str:
    if not seconds:
        return "until manually unmuted"
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds % size == 0:
            n = seconds // size
            return f"{n} {unit}{'' if n == 1 else 's'}"
    return f"{seconds} seconds"


def full_permissions() -> ChatPermissions:
    return ChatPermissions(
        can_send_messages=True,
        can_send_audios=True,
        can_send_documents=True,
        can_send_photos=True,
        can_send_videos=True,
        can_send_video_notes=True,
        can_send_voice_notes=True,
        can_send_polls=True,
        can_send_other_messages=True,
        can_add_web_page_previews=True,
        can_invite_users=True,
        can_change_info=False,
        can_pin_messages=False,
        can_manage_topics=False,
    )


def action_message(title: str, user: str, chat_name: str, admin: str,
                   duration: Optional[str] = None, detail: Optional[str] = None) -> str:
    lines = [title, f"👤 {user}"]
    if duration:
        lines.append(f"⏱ Duration: {duration}")
    lines += [f"📍 Group: {html.escape(chat_name)}", f"🛡 By: {admin}"]
    if detail:
        lines.append(detail)
    return "\n".join(lines)


async def is_chat_admin(bot, chat_id: int, user_id: int) -> bool:
    result = await attempt(bot.get_chat_member(chat_id=chat_id, user_id=user_id), "admin check")
    if not result.ok:
        return False
    return result.value.status in (ChatMember.ADMINISTRATOR, ChatMember.OWNER)


@dataclass
class CommandContext:
    bot: object
    message: Message
    group: GroupPolicy
    cmd: str
    args: List[str]

    @property
    def chat_id(self) -> int:
        return self.message.chat_id

    @property
    def chat_name(self) -> str:
        return self.message.chat.title or "this group"

    @property
    def actor(self) -> str:
        return mention_html(self.message.from_user)


class AdminCommands:
    def __init__(self, storage: Storage, modlog: ModerationLog, warning_limit: int = WARNING_LIMIT):
        self.storage = storage
        self.modlog = modlog
        self.warning_limit = warning_limit
        self.handlers = {
            "id": self._id,
            "ban": self._ban,
            "unban": self._unban,
            "kick": self._kick,
            "mute": self._mute,
            "unmute": self._unmute,
            "warn": self._warn,
            "warnings": self._warnings,
            "purge": self._purge,
            "admins": self._admins,
            "bots": self._bots,
            "users": self._users,
            "zombies": self._zombies,
            "del": self._del,
            "lock": self._lock,
            "unlock": self._lock,
            "addword": self._addword,
            "rmword": self._rmword,
            "words": self._words,
            "whitelist": self._whitelist,
            "unwhitelist": self._whitelist,
            "filter": self._filter,
            "filters": self._filters,
            "stop": self._stop,
            "setlog": self._setlog,
            "clearlog": self._clearlog,
            "delservice": self._delservice,
            "keepservice": self._keepservice,
            "servicestatus": self._servicestatus,
            "welcome": self._greeting,
            "goodbye": self._greeting,
        }
        for name in TOGGLES:
            self.handlers[name] = self._toggle

    async def dispatch(self, bot, message: Message, group: GroupPolicy) -> bool:
        """Run a dot-command. Returns False if the text was not ours to handle."""
        cmd, args = parse_command(message.text or "")
        if not cmd or cmd in RESERVED_COMMANDS:
            return False

        handler = self.handlers.get(cmd)
        if handler is None:
            await self._reply(bot, message, MESSAGES["unknown_command"])
            return True

        if cmd not in PUBLIC_COMMANDS and not await is_chat_admin(bot, message.chat_id, message.from_user.id):
            await self._reply(bot, message, MESSAGES["admin_required"])
            return True

        await handler(CommandContext(bot=bot, message=message, group=group, cmd=cmd, args=args))
        return True

    # === HELPERS ===
    async def _reply(self, bot, message: Message, text: str, html_mode: bool = False) -> CallResult:
        return await attempt(
            bot.send_message(
                chat_id=message.chat_id,
                text=text,
                parse_mode="HTML" if html_mode else None,
            ),
            "command reply",
        )

    async def _usage(self, ctx: CommandContext):
        await self._reply(ctx.bot, ctx.message, USAGE.get(ctx.cmd, "Please check your command format and try again."))

    async def _resolve_target(self, ctx: CommandContext) -> Tuple[Optional[User], int]:
        """Replied-to user, numeric id, or @username. Returns (user, args consumed)."""
        replied = ctx.message.reply_to_message
        if replied and replied.from_user:
            return replied.from_user, 0

        if not ctx.args:
            return None, 0
        raw = ctx.args[0]

        if raw.lstrip("-").isdigit():
            return User(id=int(raw), first_name=raw, is_bot=False), 1

        if raw.startswith("@") and len(raw) > 1:
            result = await attempt(ctx.bot.get_chat(chat_id=raw), "resolve username")
            if result.ok and result.value.id:
                chat = result.value
                return User(
                    id=chat.id,
                    first_name=chat.first_name or chat.username or raw[1:],
                    is_bot=False,
                    username=chat.username,
                ), 1

            known = self.storage.members.find_by_username(ctx.chat_id, raw[1:])
            if known:
                return User(
                    id=known.user_id,
                    first_name=known.first_name or known.username or str(known.user_id),
                    is_bot=False,
                    username=known.username or None,
                ), 1

        return None, 0

    async def _target_or_usage(self, ctx: CommandContext) -> Tuple[Optional[User], int]:
        target, consumed = await self._resolve_target(ctx)
        if target is None:
            if ctx.args and ctx.args[0].startswith("@"):
                await self._reply(
                    ctx.bot, ctx.message,
                    f"❌ I couldn't resolve {ctx.args[0]}.\n"
                    "• Ensure the username is correct.\n"
                    "• Ask the user to send a message in this group first.\n"
                    "• Or use reply / numeric user ID."
                )
            else:
                await self._usage(ctx)
        return target, consumed

    async def _log(self, ctx: CommandContext, action: str, target_id: int, **metadata):
        await self.modlog.write(
            ctx.bot, ctx.group, action,
            chat=ctx.message.chat,
            actor_id=ctx.message.from_user.id,
            target_id=target_id,
            **metadata
        )

    # === COMMANDS ===
    async def _id(self, ctx: CommandContext):
        target, _ = await self._resolve_target(ctx)
        subject = target or ctx.message.from_user
        lines = [
            "🪪 <b>User Information</b>",
            f"👤 Name: {html.escape(subject.full_name)}",
            f"🆔 User ID: <code>{subject.id}</code>",
            f"🔗 Username: {'@' + subject.username if subject.username else 'Not set'}",
            f"🤖 Bot: {'Yes' if subject.is_bot else 'No'}",
            f"📍 Chat ID: <code>{ctx.chat_id}</code>",
        ]
        await self._reply(ctx.bot, ctx.message, "\n".join(lines), html_mode=True)

    async def _ban(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        result = await attempt(ctx.bot.ban_chat_member(chat_id=ctx.chat_id, user_id=target.id), "ban")
        if not result.ok:
            await self._reply(ctx.bot, ctx.message, f"❌ Ban failed: {result.error}")
            return
        await self._reply(ctx.bot, ctx.message, action_message(
            "🚫 User Banned", mention_html(target), ctx.chat_name, ctx.actor
        ), html_mode=True)
        await self._log(ctx, "ban", target.id)

    async def _unban(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        result = await attempt(
            ctx.bot.unban_chat_member(chat_id=ctx.chat_id, user_id=target.id, only_if_banned=True),
            "unban",
        )
        if not result.ok:
            await self._reply(ctx.bot, ctx.message, f"❌ Unban failed: {result.error}")
            return
        await self._reply(ctx.bot, ctx.message, action_message(
            "✅ User Unbanned", mention_html(target), ctx.chat_name, ctx.actor
        ), html_mode=True)
        await self._log(ctx, "unban", target.id)

    async def _kick(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        await attempt(ctx.bot.ban_chat_member(chat_id=ctx.chat_id, user_id=target.id), "kick")
        await attempt(ctx.bot.unban_chat_member(chat_id=ctx.chat_id, user_id=target.id), "kick unban")
        await self._reply(ctx.bot, ctx.message, action_message(
            "👢 User Kicked", mention_html(target), ctx.chat_name, ctx.actor
        ), html_mode=True)
        await self._log(ctx, "kick", target.id)

    async def _mute(self, ctx: CommandContext):
        target, consumed = await self._target_or_usage(ctx)
        if not target:
            return

        raw_duration = ctx.args[consumed] if len(ctx.args) > consumed else None
        duration = parse_duration(raw_duration)
        if raw_duration and duration is None:
            await self._usage(ctx)
            return

        until = None
        if duration:
            until = datetime.now(timezone.utc) + timedelta(seconds=duration)

        result = await attempt(
            ctx.bot.restrict_chat_member(
                chat_id=ctx.chat_id,
                user_id=target.id,
                permissions=ChatPermissions(can_send_messages=False),
                until_date=until,
            ),
            "mute",
        )
        if not result.ok:
            await self._reply(ctx.bot, ctx.message, f"❌ Mute failed: {result.error}")
            return

        self.storage.members.upsert(ctx.chat_id, target.id, {
            "muted_until": time.time() + duration if duration else None,
        })
        await self._reply(ctx.bot, ctx.message, action_message(
            "🔇 User Muted", mention_html(target), ctx.chat_name, ctx.actor,
            duration=humanize_duration(duration),
        ), html_mode=True)
        await self._log(ctx, "mute", target.id, reason=f"for {duration}s" if duration else "indefinite")

    async def _unmute(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        result = await attempt(
            ctx.bot.restrict_chat_member(
                chat_id=ctx.chat_id, user_id=target.id, permissions=full_permissions()
            ),
            "unmute",
        )
        if not result.ok:
            await self._reply(ctx.bot, ctx.message, f"❌ Unmute failed: {result.error}")
            return
        self.storage.members.upsert(ctx.chat_id, target.id, {"muted_until": None})
        await self._reply(ctx.bot, ctx.message, action_message(
            "🔊 User Unmuted", mention_html(target), ctx.chat_name, ctx.actor
        ), html_mode=True)
        await self._log(ctx, "unmute", target.id)

    async def _warn(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        current = self.storage.members.find_or_default(ctx.chat_id, target.id)
        member = self.storage.members.upsert(ctx.chat_id, target.id, {"warnings": current.warnings + 1})

        await self._reply(ctx.bot, ctx.message, action_message(
            "⚠️ User Warned", mention_html(target), ctx.chat_name, ctx.actor,
            detail=f"📊 Warnings: {member.warnings}/{self.warning_limit}",
        ), html_mode=True)
        await self._log(ctx, "warn", target.id, reason=f"Count {member.warnings}")

        if member.warnings >= self.warning_limit:
            await attempt(ctx.bot.ban_chat_member(chat_id=ctx.chat_id, user_id=target.id), "warn limit kick")
            await attempt(ctx.bot.unban_chat_member(chat_id=ctx.chat_id, user_id=target.id), "warn limit unban")
            self.storage.members.upsert(ctx.chat_id, target.id, {"warnings": 0})
            await self._reply(
                ctx.bot, ctx.message,
                f"🚨 {mention_html(target)} reached the warning limit and was removed.",
                html_mode=True,
            )

    async def _warnings(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        member = self.storage.members.find_or_default(ctx.chat_id, target.id)
        await self._reply(
            ctx.bot, ctx.message,
            f"📊 Warnings for {mention_html(target)}: {member.warnings}/{self.warning_limit}",
            html_mode=True,
        )

    async def _purge(self, ctx: CommandContext):
        replied = ctx.message.reply_to_message
        if not replied:
            await self._usage(ctx)
            return
        deleted = 0
        # Sequential and not cancellable; a failure midway leaves a partial purge
        for message_id in range(replied.message_id, ctx.message.message_id + 1):
            result = await attempt(
                ctx.bot.delete_message(chat_id=ctx.chat_id, message_id=message_id), "purge"
            )
            if result.ok:
                deleted += 1
        await self._reply(ctx.bot, ctx.message, f"🧹 Purged {deleted} messages.")

    async def _del(self, ctx: CommandContext):
        replied = ctx.message.reply_to_message
        if not replied:
            await self._usage(ctx)
            return
        await attempt(ctx.bot.delete_message(chat_id=ctx.chat_id, message_id=replied.message_id), "del")
        await attempt(ctx.bot.delete_message(chat_id=ctx.chat_id, message_id=ctx.message.message_id), "del")

    async def _admins(self, ctx: CommandContext):
        result = await attempt(ctx.bot.get_chat_administrators(chat_id=ctx.chat_id), "list admins")
        if not result.ok:
            await self._reply(ctx.bot, ctx.message, f"❌ Could not list admins: {result.error}")
            return
        lines = [f"• {a.user.first_name} ({a.status})" for a in result.value]
        await self._reply(ctx.bot, ctx.message, "🛡 Group Admins:\n" + "\n".join(lines))

    async def _bots(self, ctx: CommandContext):
        bots = [
            m for m in self.storage.members.in_chat(ctx.chat_id)
            if m.username and m.username.lower().endswith("bot")
        ]
        body = "\n".join(f"• @{b.username}" for b in bots) or "None"
        await self._reply(ctx.bot, ctx.message, f"🤖 Bots seen in group:\n{body}")

    async def _users(self, ctx: CommandContext):
        try:
            page = max(1, int(ctx.args[0])) if ctx.args else 1
        except ValueError:
            page = 1
        members = self.storage.members.in_chat(ctx.chat_id)
        pages = max(1, -(-len(members) // USERS_PAGE_SIZE))
        start = (page - 1) * USERS_PAGE_SIZE
        lines = [
            f"• {m.first_name or m.user_id} ({m.user_id})"
            for m in members[start:start + USERS_PAGE_SIZE]
        ]
        body = "\n".join(lines) or "No users tracked yet."
        await self._reply(ctx.bot, ctx.message, f"👥 Users page {page}/{pages}:\n{body}")

    async def _zombies(self, ctx: CommandContext):
        zombies = [m for m in self.storage.members.in_chat(ctx.chat_id) if m.is_deleted_likely]
        body = "\n".join(f"• {z.user_id}" for z in zombies) or "None"
        await self._reply(ctx.bot, ctx.message, f"🧟 Deleted accounts found: {len(zombies)}\n{body}")

    async def _lock(self, ctx: CommandContext):
        lock = ctx.args[0].lower() if ctx.args else ""
        lock_all = lock == "all"
        if not lock_all and lock not in LOCK_TYPES:
            await self._usage(ctx)
            return

        enabled = ctx.cmd == "lock"
        if lock_all:
            permissions = ChatPermissions.no_permissions() if enabled else full_permissions()
            result = await attempt(
                ctx.bot.set_chat_permissions(chat_id=ctx.chat_id, permissions=permissions),
                "lock all",
            )
            if not result.ok:
                await self._reply(
                    ctx.bot, ctx.message,
                    f"❌ {'Lock' if enabled else 'Unlock'} failed: {result.error}"
                )
                return

        locks = dict(ctx.group.locks)
        for lock_type in (LOCK_TYPES if lock_all else [lock]):
            locks[lock_type] = enabled
        self.storage.groups.upsert(ctx.chat_id, {"locks": locks})

        await self._reply(ctx.bot, ctx.message, action_message(
            "🔒 Lock Enabled" if enabled else "🔓 Lock Disabled",
            f"Content: {'all permissions' if lock_all else lock}",
            ctx.chat_name, ctx.actor,
        ), html_mode=True)

    async def _toggle(self, ctx: CommandContext):
        state = ctx.args[0].lower() if ctx.args else ""
        field_name, label = TOGGLES[ctx.cmd]
        if state not in ("on", "off"):
            await self._reply(ctx.bot, ctx.message, f"Usage: .{ctx.cmd} [on/off]")
            return
        self.storage.groups.upsert(ctx.chat_id, {field_name: state == "on"})
        await self._reply(ctx.bot, ctx.message, f"{label}: {state}")

    async def _addword(self, ctx: CommandContext):
        word = " ".join(ctx.args).strip().lower()
        if not word:
            await self._usage(ctx)
            return
        words = list(ctx.group.bad_words)
        if word not in words:
            words.append(word)
        self.storage.groups.upsert(ctx.chat_id, {"bad_words": words})
        await self._reply(ctx.bot, ctx.message, f"🚫 Blocked word added: {word}")

    async def _rmword(self, ctx: CommandContext):
        word = " ".join(ctx.args).strip().lower()
        if not word:
            await self._usage(ctx)
            return
        words = [w for w in ctx.group.bad_words if w != word]
        self.storage.groups.upsert(ctx.chat_id, {"bad_words": words})
        await self._reply(ctx.bot, ctx.message, f"✅ Blocked word removed: {word}")

    async def _words(self, ctx: CommandContext):
        words = sorted(ctx.group.bad_words)
        body = "\n".join(f"• {w}" for w in words) or "None"
        await self._reply(ctx.bot, ctx.message, f"🚫 Blocked words:\n{body}")

    async def _whitelist(self, ctx: CommandContext):
        target, _ = await self._target_or_usage(ctx)
        if not target:
            return
        adding = ctx.cmd == "whitelist"
        users = [uid for uid in ctx.group.whitelist_users if uid != target.id]
        if adding:
            users.append(target.id)
        self.storage.groups.upsert(ctx.chat_id, {"whitelist_users": users})
        self.storage.members.upsert(ctx.chat_id, target.id, {"is_whitelisted": adding})
        await self._reply(
            ctx.bot, ctx.message,
            f"{'✅ Whitelisted' if adding else '❎ Removed from whitelist'} {mention_html(target)}",
            html_mode=True,
        )

    async def _filter(self, ctx: CommandContext):
        trigger = ctx.args[0].lower() if ctx.args else ""
        response = " ".join(ctx.args[1:])
        if not trigger or not response:
            await self._usage(ctx)
            return
        self.storage.filters.save(ctx.chat_id, trigger, response)
        await self._reply(ctx.bot, ctx.message, action_message(
            "🧠 Filter Saved", html.escape(trigger), ctx.chat_name, ctx.actor,
            detail=f"💬 Reply: {html.escape(response)}",
        ), html_mode=True)

    async def _filters(self, ctx: CommandContext):
        rules = self.storage.filters.in_chat(ctx.chat_id)
        body = "\n".join(f"• {r.trigger}" for r in rules) or "No filters configured."
        await self._reply(ctx.bot, ctx.message, f"🧠 Active Filters:\n{body}")

    async def _stop(self, ctx: CommandContext):
        trigger = ctx.args[0].lower() if ctx.args else ""
        if not trigger:
            await self._usage(ctx)
            return
        self.storage.filters.delete(ctx.chat_id, trigger)
        await self._reply(ctx.bot, ctx.message, action_message(
            "🧹 Filter Removed", html.escape(trigger), ctx.chat_name, ctx.actor
        ), html_mode=True)

    async def _setlog(self, ctx: CommandContext):
        try:
            channel_id = int(ctx.args[0])
        except (IndexError, ValueError):
            await self._usage(ctx)
            return
        self.storage.groups.upsert(ctx.chat_id, {"log_channel_id": channel_id})
        await self._reply(ctx.bot, ctx.message, f"📒 Log channel set to {channel_id}")

    async def _clearlog(self, ctx: CommandContext):
        self.storage.groups.upsert(ctx.chat_id, {"log_channel_id": None})
        await self._reply(ctx.bot, ctx.message, "🗑 Log channel removed.")

    async def _delservice(self, ctx: CommandContext):
        state = ctx.args[0].lower() if ctx.args else ""
        if state not in ("on", "off"):
            await self._usage(ctx)
            return
        self.storage.groups.upsert(ctx.chat_id, {"service_delete_enabled": state == "on"})
        await self._reply(ctx.bot, ctx.message, f"🧰 Service message cleanup: {state}")

    async def _keepservice(self, ctx: CommandContext):
        service_type = ctx.args[0].lower() if ctx.args else ""
        if not service_type:
            await self._usage(ctx)
            return
        kept = list(ctx.group.keep_service_types)
        if service_type not in kept:
            kept.append(service_type)
        self.storage.groups.upsert(ctx.chat_id, {"keep_service_types": kept})
        await self._reply(ctx.bot, ctx.message, f"🛟 Keeping service type: {service_type}")

    async def _servicestatus(self, ctx: CommandContext):
        await self._reply(
            ctx.bot, ctx.message,
            "🧾 Service moderation\n"
            f"• deletion: {'on' if ctx.group.service_delete_enabled else 'off'}\n"
            f"• kept: {', '.join(ctx.group.keep_service_types) or 'none'}"
        )

    async def _greeting(self, ctx: CommandContext):
        state = ctx.args[0].lower() if ctx.args else ""
        if state not in ("on", "off"):
            await self._usage(ctx)
            return
        kind = ctx.cmd  # welcome | goodbye
        patch = {f"{kind}_enabled": state == "on"}
        if len(ctx.args) > 1:
            patch[f"{kind}_message"] = " ".join(ctx.args[1:])
        self.storage.groups.upsert(ctx.chat_id, patch)

        title = "🎉 Welcome" if kind == "welcome" else "👋 Goodbye"
        audience = "New members" if kind == "welcome" else "Departing members"
        await self._reply(ctx.bot, ctx.message, action_message(
            f"{title} {'Enabled' if state == 'on' else 'Disabled'}", audience, ctx.chat_name, ctx.actor
        ), html_mode=True)
