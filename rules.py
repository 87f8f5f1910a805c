"""
Moderation rules and bot texts for Group Guard Bot
"""

# Suppression reasons and how they show up in the moderation log
SUPPRESSION_REASONS = {
    "anti_link": {
        "action": "anti_link_delete",
        "description": "Link blocked",
    },
    "badword": {
        "action": "badword_delete",
        "description": "Bad word detected",
    },
    "anti_flood": {
        "action": "anti_flood_mute",
        "description": "Flood detected",
    },
    "anti_spam": {
        "action": "anti_spam_delete",
        "description": "Spam payload too long",
    },
    "locked_content": {
        "action": "locked_content_delete",
        "description": "Locked content type",
    },
}

# Content types that can be locked per group
LOCK_TYPES = ["stickers", "gifs", "photos", "videos", "links", "voice", "documents", "polls"]

# Service messages that .delservice cleans up
SERVICE_TYPES = [
    "new_chat_title",
    "new_chat_photo",
    "delete_chat_photo",
    "group_chat_created",
    "supergroup_chat_created",
    "new_chat_members",
    "left_chat_member",
    "pinned_message",
]

DEFAULT_WELCOME = "Welcome {user} to {group}!"
DEFAULT_GOODBYE = "Goodbye {user}."


MESSAGES = {
    "start": "🌹 Welcome {user}\n\nI help you keep your groups clean and safe.",

    "help": "🤝 Use /commands for available commands or open the Admin Panel with /admin.",

    "commands": (
        "📚 Commands\n"
        "• /start - Open DM home\n"
        "• /help - Quick guidance\n"
        "• /commands - Show this list\n"
        "• /admin - Open private admin panel\n\n"
        "Group moderation commands stay in groups only "
        "(example: .ban, .mute, .warn, .lock)."
    ),

    "admin_required": "⛔ You need admin rights in this group to use this command.",

    "owner_only": "⛔ Only the bot owner can use this action.",

    "relay_owner_only": "⛔ Relay controls are owner-only.",

    "unknown_command": "ℹ️ I could not match that command. Open /start in DM for guidance.",

    "no_managed_groups": "🚫 You are not an admin in any tracked group yet.",
}
