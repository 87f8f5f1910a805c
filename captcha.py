"""
Join-time verification for Group Guard Bot

New members are muted until they press the Verify button. A deferred check
removes anyone still pending once their deadline has passed. Checks are
never cancelled; each one re-reads the live member state before acting.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple

from telegram import ChatPermissions, InlineKeyboardButton, InlineKeyboardMarkup, User

from config import CAPTCHA_TIMEOUT_SECONDS
from models import GroupPolicy
from modlog import ModerationLog
from storage import GroupRepository, MemberRepository
from templates import mention_html
from transport import attempt

log = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], Awaitable]], None]

MUTED = ChatPermissions(can_send_messages=False)

# What a verified member gets back
BASELINE_PERMISSIONS = ChatPermissions(
    can_send_messages=True,
    can_send_other_messages=True,
    can_send_polls=True,
    can_add_web_page_previews=True,
    can_invite_users=True,
)


class VerifyOutcome(str, Enum):
    VERIFIED = "verified"
    NOT_YOURS = "not_yours"
    NOT_PENDING = "not_pending"


# Strong references to pending deferred checks
_scheduled: set = set()


def _job_done(task: asyncio.Task):
    _scheduled.discard(task)
    if not task.cancelled() and task.exception() is not None:
        log.error("Scheduled job failed", exc_info=task.exception())


def asyncio_scheduler(delay: float, job: Callable[[], Awaitable]):
    async def _later():
        await asyncio.sleep(delay)
        await job()

    task = asyncio.ensure_future(_later())
    _scheduled.add(task)
    task.add_done_callback(_job_done)


def verify_callback_data(chat_id: int, user_id: int) -> str:
    return f"verify:{chat_id}:{user_id}"


def parse_verify_callback(data: str) -> Optional[Tuple[int, int]]:
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != "verify":
        return None
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        return None


class CaptchaGate:
    def __init__(
        self,
        members: MemberRepository,
        groups: GroupRepository,
        modlog: ModerationLog,
        timeout_seconds: int = CAPTCHA_TIMEOUT_SECONDS,
        scheduler: Scheduler = asyncio_scheduler,
        clock: Callable[[], float] = time.time,
    ):
        self.members = members
        self.groups = groups
        self.modlog = modlog
        self.timeout_seconds = timeout_seconds
        self.scheduler = scheduler
        self.clock = clock

    async def on_join(self, bot, chat, group: GroupPolicy, member: User) -> bool:
        """Register a join. Returns True when the member was put on hold."""
        self.members.upsert(chat.id, member.id, {
            "username": member.username or "",
            "first_name": member.first_name or "",
            "last_name": member.last_name or "",
            "verification_pending": False,
            "verification_deadline": None,
        })

        if not group.captcha_enabled or member.is_bot:
            return False

        await attempt(
            bot.restrict_chat_member(chat_id=chat.id, user_id=member.id, permissions=MUTED),
            "captcha restrict",
        )

        deadline = self.clock() + self.timeout_seconds
        self.members.upsert(chat.id, member.id, {
            "verification_pending": True,
            "verification_deadline": deadline,
        })

        keyboard = InlineKeyboardMarkup([[
            InlineKeyboardButton("✅ Verify", callback_data=verify_callback_data(chat.id, member.id))
        ]])
        await attempt(
            bot.send_message(
                chat_id=chat.id,
                text=f"✅ Verification required for {mention_html(member)}. "
                     f"Please verify within {self.timeout_seconds}s.",
                parse_mode="HTML",
                reply_markup=keyboard,
            ),
            "captcha prompt",
        )

        async def _check():
            await self.check_timeout(bot, chat, group, member.id)

        self.scheduler(self.timeout_seconds, _check)
        return True

    async def verify(self, bot, chat_id: int, user_id: int, actor_id: int) -> VerifyOutcome:
        """Handle a Verify press by `actor_id` for the pending `user_id`."""
        if actor_id != user_id:
            return VerifyOutcome.NOT_YOURS

        state = self.members.find(chat_id, user_id)
        if state is None or not state.verification_pending:
            return VerifyOutcome.NOT_PENDING

        await attempt(
            bot.restrict_chat_member(
                chat_id=chat_id, user_id=user_id, permissions=BASELINE_PERMISSIONS
            ),
            "captcha release",
        )
        self.members.upsert(chat_id, user_id, {
            "verification_pending": False,
            "verification_deadline": None,
        })
        log.info("User %s verified in %s", user_id, chat_id)
        return VerifyOutcome.VERIFIED

    async def check_timeout(self, bot, chat, group: GroupPolicy, user_id: int) -> bool:
        """Deferred check: remove the member if still pending past the deadline."""
        state = self.members.find(chat.id, user_id)
        if state is None or not state.verification_pending:
            return False

        # A rejoin moves the deadline forward; an older check must not act
        deadline = state.verification_deadline
        if deadline is not None and deadline > self.clock():
            return False

        await attempt(bot.ban_chat_member(chat_id=chat.id, user_id=user_id), "captcha kick")
        await attempt(bot.unban_chat_member(chat_id=chat.id, user_id=user_id), "captcha unban")
        # The log channel may have changed since the join
        group = self.groups.find(chat.id) or group
        await self.modlog.write(bot, group, "captcha_timeout_kick", chat=chat, target_id=user_id)
        return True
