"""
Policy Evaluator for Group Guard Bot
Decides whether a group message may stay, based on the group's policy
"""
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from telegram import ChatPermissions, Message

from config import FLOOD_MESSAGE_LIMIT, FLOOD_MUTE_SECONDS, LINK_PATTERN, SPAM_MAX_LENGTH
from models import GroupPolicy, MemberState
from modlog import ModerationLog
from rate_window import RateWindowTracker
from rules import SUPPRESSION_REASONS
from transport import attempt

log = logging.getLogger(__name__)

LINK_RE = re.compile(LINK_PATTERN, re.IGNORECASE)


@dataclass
class PolicyDecision:
    """Result of evaluating one message"""
    suppress: bool
    reason: Optional[str] = None
    restrict_seconds: int = 0

    @property
    def log_action(self) -> Optional[str]:
        if not self.reason:
            return None
        return SUPPRESSION_REASONS[self.reason]["action"]

    @property
    def description(self) -> str:
        if not self.reason:
            return "Message follows group policy"
        return SUPPRESSION_REASONS[self.reason]["description"]


ALLOW = PolicyDecision(suppress=False)


def message_text(message: Message) -> str:
    return message.text or message.caption or ""


def contains_link(text: str) -> bool:
    return bool(LINK_RE.search(text))


def content_locks(message: Message) -> set:
    """Lock keys that this message's content falls under"""
    hits = set()
    if message.photo:
        hits.add("photos")
    if message.video:
        hits.add("videos")
    if message.document:
        hits.add("documents")
    if message.voice or message.audio:
        hits.add("voice")
    if message.poll:
        hits.add("polls")
    if message.sticker:
        hits.add("stickers")
    if message.animation or (message.document and message.document.mime_type == "video/mp4"):
        hits.add("gifs")
    return hits


class PolicyEvaluator:
    """Applies a group's moderation policy to inbound messages"""

    def __init__(
        self,
        tracker: RateWindowTracker,
        flood_limit: int = FLOOD_MESSAGE_LIMIT,
        spam_max_length: int = SPAM_MAX_LENGTH,
        flood_mute_seconds: int = FLOOD_MUTE_SECONDS,
    ):
        self.tracker = tracker
        self.flood_limit = flood_limit
        self.spam_max_length = spam_max_length
        self.flood_mute_seconds = flood_mute_seconds

    def evaluate(
        self,
        message: Message,
        group: GroupPolicy,
        member: MemberState,
        now: Optional[float] = None,
    ) -> PolicyDecision:
        """Evaluate a message; the first matching check wins."""
        if now is None:
            now = time.time()

        sender = message.from_user
        if sender.id in group.whitelist_users or member.is_whitelisted:
            return ALLOW

        text = message_text(message)

        for check in (self._check_links, self._check_bad_words):
            result = check(group, text)
            if result:
                return result

        flood_result = self._check_flood(group, message.chat_id, sender.id, now)
        if flood_result:
            return flood_result

        spam_result = self._check_spam(group, text)
        if spam_result:
            return spam_result

        lock_result = self._check_locks(group, message)
        if lock_result:
            return lock_result

        return ALLOW

    def _check_links(self, group: GroupPolicy, text: str) -> Optional[PolicyDecision]:
        if group.anti_link_enabled and contains_link(text):
            return PolicyDecision(suppress=True, reason="anti_link")
        return None

    def _check_bad_words(self, group: GroupPolicy, text: str) -> Optional[PolicyDecision]:
        lower = text.lower()
        if any(word and word.lower() in lower for word in group.bad_words):
            return PolicyDecision(suppress=True, reason="badword")
        return None

    def _check_flood(
        self, group: GroupPolicy, chat_id: int, user_id: int, now: float
    ) -> Optional[PolicyDecision]:
        if not group.anti_flood_enabled:
            return None

        count = self.tracker.record((chat_id, user_id), now)
        if count > self.flood_limit:
            return PolicyDecision(
                suppress=True,
                reason="anti_flood",
                restrict_seconds=self.flood_mute_seconds,
            )
        return None

    def _check_spam(self, group: GroupPolicy, text: str) -> Optional[PolicyDecision]:
        if group.anti_spam_enabled and len(text) > self.spam_max_length:
            return PolicyDecision(suppress=True, reason="anti_spam")
        return None

    def _check_locks(self, group: GroupPolicy, message: Message) -> Optional[PolicyDecision]:
        if any(group.is_locked(lock) for lock in content_locks(message)):
            return PolicyDecision(suppress=True, reason="locked_content")
        return None


async def enforce(
    bot,
    message: Message,
    decision: PolicyDecision,
    group: GroupPolicy,
    modlog: ModerationLog,
    now: Optional[float] = None,
):
    """Carry out a suppress decision: delete, restrict on flood, log"""
    if not decision.suppress:
        return

    if now is None:
        now = time.time()

    sender = message.from_user
    await attempt(
        bot.delete_message(chat_id=message.chat_id, message_id=message.message_id),
        "delete suppressed message",
    )

    if decision.restrict_seconds:
        until = datetime.fromtimestamp(now, tz=timezone.utc) + timedelta(
            seconds=decision.restrict_seconds
        )
        await attempt(
            bot.restrict_chat_member(
                chat_id=message.chat_id,
                user_id=sender.id,
                permissions=ChatPermissions(can_send_messages=False),
                until_date=until,
            ),
            "flood restriction",
        )

    log.info(
        "Suppressed message %s from %s in %s: %s",
        message.message_id, sender.id, message.chat_id, decision.reason,
    )
    await modlog.write(
        bot,
        group,
        decision.log_action,
        chat=message.chat,
        actor_id=sender.id,
        target_id=sender.id,
        reason=decision.description,
    )
