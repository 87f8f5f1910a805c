"""
Relay for Group Guard Bot

Mirrors group traffic to the owner's inbox (or one relay channel) and
routes the owner's replies back to the original message.

Correlation is looked up in the relay map first. If a row is missing,
the [relay:v1 chat/message] tag in the mirrored header is parsed instead.
"""
import logging
import re
from typing import Iterable, List, Optional, Tuple

from telegram import Message, User

from models import RelayMapping, RelaySettings
from rules import MESSAGES
from services import service_type
from storage import RelayMapRepository, RelaySettingsRepository
from transport import attempt

log = logging.getLogger(__name__)

TAG_RE = re.compile(r"\[relay:v1 (-?\d+)/(\d+)\]")

TEXT_LIMIT = 4096
CAPTION_LIMIT = 1024

# Checked in order: animations also carry a document
CAPTIONED_MEDIA = ["animation", "photo", "video", "audio", "voice", "document"]
CAPTIONLESS_MEDIA = ["sticker", "video_note"]
OTHER_CONTENT = ["poll", "location", "venue", "contact", "dice", "game", "story"]

# What the owner may send back into a group
REPLY_MEDIA = ["photo", "video", "voice", "document", "sticker", "animation"]


def origin_tag(chat_id: int, message_id: int) -> str:
    return f"[relay:v1 {chat_id}/{message_id}]"


def parse_origin_tag(text: Optional[str]) -> Optional[Tuple[int, int]]:
    if not text:
        return None
    match = TAG_RE.search(text)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def display_name(user: Optional[User]) -> str:
    if user is None:
        return "Unknown"
    if user.username:
        return f"@{user.username}"
    return user.full_name or str(user.id)


def build_header(message: Message) -> str:
    chat = message.chat
    sender = message.from_user
    sender_id = sender.id if sender else "?"
    return "\n".join([
        f"📨 {chat.title or chat.id}",
        f"👤 {display_name(sender)} ({sender_id})",
        origin_tag(chat.id, message.message_id),
    ])


def utf16_len(text: str) -> int:
    """Length as Telegram counts it (UTF-16 code units)"""
    return len(text.encode("utf-16-le")) // 2


def _truncate(text: str, limit: int) -> str:
    if utf16_len(text) <= limit:
        return text
    # A surrogate pair split at the cut is dropped by the decode
    head = text.encode("utf-16-le")[: (limit - 1) * 2]
    return head.decode("utf-16-le", errors="ignore") + "…"


def _file_id(message: Message, kind: str) -> str:
    media = getattr(message, kind)
    if kind == "photo":
        return media[-1].file_id
    return media.file_id


def _content_kind(message: Message, kinds: Iterable[str]) -> Optional[str]:
    for kind in kinds:
        if getattr(message, kind, None):
            return kind
    return None


class RelayRouter:
    def __init__(
        self,
        settings: RelaySettingsRepository,
        mappings: RelayMapRepository,
        owner_id: int,
        relay_admin_ids: Iterable[int] = (),
    ):
        self.settings = settings
        self.mappings = mappings
        self.owner_id = owner_id
        self.relay_admin_ids = list(relay_admin_ids)

    def is_owner(self, user_id: Optional[int]) -> bool:
        return bool(self.owner_id) and user_id == self.owner_id

    def destinations(self, settings: RelaySettings) -> List[int]:
        if settings.mode == "channel" and settings.channel_id:
            return [settings.channel_id]
        recipients = []
        for chat_id in [self.owner_id, *self.relay_admin_ids]:
            if chat_id and chat_id not in recipients:
                recipients.append(chat_id)
        return recipients

    def is_destination_chat(self, chat_id: int, settings: Optional[RelaySettings] = None) -> bool:
        settings = settings or self.settings.get()
        return settings.mode == "channel" and settings.channel_id == chat_id

    # === OUTBOUND ===
    async def mirror(self, bot, message: Message) -> List[RelayMapping]:
        """Mirror a group message to every destination and record the copies."""
        if message.from_user and message.from_user.id == bot.id:
            return []
        # Joins, leaves, pins and the like have no content to copy
        if service_type(message):
            return []

        settings = self.settings.get()
        if not settings.enabled:
            return []

        recorded = []
        for dest in self.destinations(settings):
            for mirrored in await self._mirror_to(bot, dest, message):
                mapping = RelayMapping(
                    relay_chat_id=mirrored.chat_id,
                    relay_message_id=mirrored.message_id,
                    original_chat_id=message.chat_id,
                    original_message_id=message.message_id,
                )
                self.mappings.record(mapping)
                recorded.append(mapping)
        return recorded

    async def _mirror_to(self, bot, dest: int, message: Message) -> List[Message]:
        header = build_header(message)
        sent = []

        if message.text:
            result = await attempt(
                bot.send_message(chat_id=dest, text=_truncate(f"{header}\n\n{message.text}", TEXT_LIMIT)),
                "relay text",
            )
            return [result.value] if result.ok else []

        kind = _content_kind(message, CAPTIONED_MEDIA)
        if kind:
            caption = f"{header}\n\n{message.caption}" if message.caption else header
            send = getattr(bot, f"send_{kind}")
            result = await attempt(
                send(chat_id=dest, **{kind: _file_id(message, kind)}, caption=_truncate(caption, CAPTION_LIMIT)),
                f"relay {kind}",
            )
            return [result.value] if result.ok else []

        kind = _content_kind(message, CAPTIONLESS_MEDIA)
        if kind:
            send = getattr(bot, f"send_{kind}")
            media = await attempt(send(chat_id=dest, **{kind: _file_id(message, kind)}), f"relay {kind}")
            if media.ok:
                sent.append(media.value)
            follow_up = await attempt(
                bot.send_message(
                    chat_id=dest,
                    text=header,
                    reply_to_message_id=media.value.message_id if media.ok else None,
                ),
                "relay header",
            )
            if follow_up.ok:
                sent.append(follow_up.value)
            return sent

        kind = _content_kind(message, OTHER_CONTENT) or "message"
        result = await attempt(
            bot.send_message(chat_id=dest, text=f"{header}\n\n[{kind}]"),
            "relay notice",
        )
        return [result.value] if result.ok else []

    # === INBOUND ===
    def resolve(self, chat_id: int, replied: Message) -> Optional[RelayMapping]:
        """Find where the replied-to mirrored copy came from."""
        mapping = self.mappings.find(chat_id, replied.message_id)
        if mapping:
            return mapping

        origin = parse_origin_tag(replied.text) or parse_origin_tag(replied.caption)
        if origin is None:
            return None
        log.debug("Relay map miss for %s/%s, using header tag", chat_id, replied.message_id)
        return RelayMapping(
            relay_chat_id=chat_id,
            relay_message_id=replied.message_id,
            original_chat_id=origin[0],
            original_message_id=origin[1],
        )

    async def route_reply(self, bot, message: Message) -> bool:
        """Send the owner's reply back to the original chat. True if resolved."""
        if not message.reply_to_message or not message.from_user:
            return False
        if not self.is_owner(message.from_user.id):
            return False

        mapping = self.resolve(message.chat_id, message.reply_to_message)
        if mapping is None:
            return False

        target = mapping.original_chat_id
        reply_to = mapping.original_message_id

        if message.text:
            text = message.text.strip()
            if text.lower().startswith(".relay"):
                text = text[len(".relay"):].strip()
            if text:
                await attempt(
                    bot.send_message(chat_id=target, text=text, reply_to_message_id=reply_to),
                    "relay reply text",
                )
            return True

        kind = _content_kind(message, REPLY_MEDIA)
        if kind:
            send = getattr(bot, f"send_{kind}")
            kwargs = {kind: _file_id(message, kind), "reply_to_message_id": reply_to}
            if kind != "sticker":
                kwargs["caption"] = message.caption
            await attempt(send(chat_id=target, **kwargs), f"relay reply {kind}")
        return True

    # === CONTROL ===
    def handle_control(self, user_id: Optional[int], text: str) -> str:
        """Apply a `.relay ...` command and return the reply text."""
        if not self.is_owner(user_id):
            return MESSAGES["relay_owner_only"]

        parts = text.strip().split()
        action = parts[1].lower() if len(parts) > 1 else ""

        if action == "on":
            self.settings.update(enabled=True)
            return "✅ Relay is now enabled."

        if action == "off":
            self.settings.update(enabled=False)
            return "✅ Relay is now disabled."

        if action == "private":
            self.settings.update(mode="private", channel_id=None)
            return "✅ Relay destination set to private owner/admin inbox."

        if action == "channel":
            try:
                channel_id = int(parts[2])
            except (IndexError, ValueError):
                return "⚠️ Usage: .relay channel <channel_id>"
            self.settings.update(mode="channel", channel_id=channel_id)
            return f"✅ Relay destination set to channel/group: {channel_id}"

        settings = self.settings.get()
        return "\n".join([
            "⚙️ Relay Controls",
            f"• Status: {'ON' if settings.enabled else 'OFF'}",
            f"• Mode: {settings.mode}",
            f"• Channel ID: {settings.channel_id or 'not set'}",
            "",
            "Commands:",
            ".relay on",
            ".relay off",
            ".relay private",
            ".relay channel <channel_id>",
        ])
