"""
Moderation log for Group Guard Bot

Append-only JSON lines, one entry per suppression or admin action.
Groups with a log channel also get a short notice there; that send runs
in the background so the pipeline never waits on it.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from telegram import Chat

from models import GroupPolicy, LogEntry
from transport import attempt

log = logging.getLogger(__name__)


class ModerationLog:
    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._pending: set = set()

    def append(self, entry: LogEntry) -> bool:
        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            with open(self.filepath, "a") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        except OSError as e:
            log.error("Could not append to moderation log: %s", e)
            return False
        return True

    def entries(self, chat_id: Optional[int] = None) -> List[LogEntry]:
        if not self.filepath.exists():
            return []
        out = []
        with open(self.filepath, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = LogEntry.from_dict(json.loads(line))
                if chat_id is None or entry.chat_id == chat_id:
                    out.append(entry)
        return out

    async def write(
        self,
        bot,
        group: Optional[GroupPolicy],
        action: str,
        chat: Optional[Chat] = None,
        actor_id: Optional[int] = None,
        target_id: Optional[int] = None,
        **metadata
    ) -> LogEntry:
        """Record `action` and notify the group's log channel, if any."""
        chat_id = chat.id if chat else (group.chat_id if group else None)
        if target_id is not None:
            metadata.setdefault("target_id", target_id)
        entry = LogEntry(
            chat_id=chat_id,
            action=action,
            actor_id=actor_id,
            target_id=target_id,
            metadata=metadata,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.append(entry)
        log.info("modlog %s chat=%s actor=%s target=%s", action, chat_id, actor_id, target_id)

        if group and group.log_channel_id:
            task = asyncio.ensure_future(
                self._notify_channel(bot, group.log_channel_id, entry, chat)
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return entry

    async def _notify_channel(self, bot, channel_id: int, entry: LogEntry, chat: Optional[Chat]):
        lines = [f"#{entry.action}"]
        if entry.metadata.get("reason"):
            lines.append(f"Reason: {entry.metadata['reason']}")
        if entry.target_id:
            lines.append(f"Target: {entry.target_id}")
        if chat:
            lines.append(f"Group: {chat.title} ({chat.id})")
        await attempt(bot.send_message(chat_id=channel_id, text="\n".join(lines)), "log channel notice")

    async def drain(self):
        """Wait for background channel notices (used on shutdown and in tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
