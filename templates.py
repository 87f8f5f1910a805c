"""
Welcome / goodbye templates

Variables: {user} {first} {username} {group} {chat}
Lines like [Text](https://example.com) become URL buttons.
"""
import html
import re
from typing import Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, User

BUTTON_LINE = re.compile(r"^\[([^\]]+)]\((https?://[^\s)]+)\)$", re.IGNORECASE)


def mention_html(user: User) -> str:
    name = user.first_name or user.username or str(user.id)
    return f'<a href="tg://user?id={user.id}">{html.escape(name)}</a>'


def render_template(template: str, user: Optional[User], chat_title: Optional[str]) -> str:
    title = html.escape(chat_title or "this group")
    if user is None:
        mention, first, handle = "", "there", ""
    else:
        mention = mention_html(user)
        first = html.escape(user.first_name or "there")
        handle = f"@{user.username}" if user.username else mention

    return (
        template
        .replace("{user}", mention)
        .replace("{first}", first)
        .replace("{username}", handle)
        .replace("{group}", title)
        .replace("{chat}", title)
    )


def split_buttons(text: str) -> Tuple[str, Optional[InlineKeyboardMarkup]]:
    """Pull [Text](url) lines out of `text` and return (body, keyboard)."""
    body, rows = [], []
    for line in text.split("\n"):
        match = BUTTON_LINE.match(line.strip())
        if match:
            rows.append([InlineKeyboardButton(match.group(1), url=match.group(2))])
        else:
            body.append(line)
    keyboard = InlineKeyboardMarkup(rows) if rows else None
    return "\n".join(body), keyboard
