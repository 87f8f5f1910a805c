"""
Persisted documents for Group Guard Bot
"""
from dataclasses import dataclass, field, fields, asdict
from typing import Optional

from rules import DEFAULT_GOODBYE, DEFAULT_WELCOME, LOCK_TYPES


def default_locks() -> dict:
    return {lock: False for lock in LOCK_TYPES}


class Document:
    """Mixin: build from a stored dict, ignoring unknown keys"""

    @classmethod
    def from_dict(cls, data: dict):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GroupPolicy(Document):
    """Per-chat moderation configuration"""
    chat_id: int
    title: str = ""
    original_title: str = ""
    anti_spam_enabled: bool = True
    anti_flood_enabled: bool = True
    anti_link_enabled: bool = True
    captcha_enabled: bool = True
    service_delete_enabled: bool = False
    bad_words: list = field(default_factory=list)
    locks: dict = field(default_factory=default_locks)
    whitelist_users: list = field(default_factory=list)
    keep_service_types: list = field(default_factory=list)
    log_channel_id: Optional[int] = None
    welcome_enabled: bool = False
    welcome_message: str = DEFAULT_WELCOME
    goodbye_enabled: bool = False
    goodbye_message: str = DEFAULT_GOODBYE

    def is_locked(self, lock: str) -> bool:
        return bool(self.locks.get(lock, False))


@dataclass
class MemberState(Document):
    """What we know about one user in one chat"""
    chat_id: int
    user_id: int
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    warnings: int = 0
    muted_until: Optional[float] = None
    is_whitelisted: bool = False
    verification_pending: bool = False
    verification_deadline: Optional[float] = None
    is_deleted_likely: bool = False


@dataclass
class RelayMapping(Document):
    """Mirrored copy -> original message"""
    relay_chat_id: int
    relay_message_id: int
    original_chat_id: int
    original_message_id: int


@dataclass
class RelaySettings(Document):
    """Global relay switch (singleton)"""
    key: str = "global"
    enabled: bool = False
    mode: str = "private"  # private | channel
    channel_id: Optional[int] = None


@dataclass
class FilterRule(Document):
    """Keyword auto-reply"""
    chat_id: int
    trigger: str
    response: str


@dataclass
class LogEntry(Document):
    """One line of the moderation log"""
    chat_id: Optional[int]
    action: str
    actor_id: Optional[int]
    target_id: Optional[int]
    metadata: dict
    created_at: str
