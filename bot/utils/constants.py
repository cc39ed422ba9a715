from __future__ import annotations

import re
from datetime import timedelta
from enum import StrEnum

TICKET_STATUS_OPEN = "open"
TICKET_STATUS_LOCKED = "locked"
TICKET_STATUS_CLOSED = "closed"

LIVE_TICKET_STATUSES = (TICKET_STATUS_OPEN, TICKET_STATUS_LOCKED)

TICKET_TYPE_DEVELOPER = "developer"
TICKET_TYPE_GENERAL = "general"
TICKET_TYPE_STAFF_APPLICATION = "staff-application"
TICKET_TYPE_OTHER = "other"

TICKET_TYPES = (
    TICKET_TYPE_DEVELOPER,
    TICKET_TYPE_GENERAL,
    TICKET_TYPE_STAFF_APPLICATION,
    TICKET_TYPE_OTHER,
)

TICKET_TYPE_NAMES = {
    TICKET_TYPE_DEVELOPER: "Developer Work Request",
    TICKET_TYPE_GENERAL: "General Request",
    TICKET_TYPE_STAFF_APPLICATION: "Staff Application",
    TICKET_TYPE_OTHER: "Other",
}

TICKET_TYPE_EMOJIS = {
    TICKET_TYPE_DEVELOPER: "🧑‍💻",
    TICKET_TYPE_GENERAL: "📩",
    TICKET_TYPE_STAFF_APPLICATION: "🛡️",
    TICKET_TYPE_OTHER: "❓",
}

TICKET_TYPE_DESCRIPTIONS = {
    TICKET_TYPE_DEVELOPER: "Commission development work or report a technical task.",
    TICKET_TYPE_GENERAL: "Questions, help and general support.",
    TICKET_TYPE_STAFF_APPLICATION: "Apply to join the staff team.",
    TICKET_TYPE_OTHER: "Anything that does not fit the other categories.",
}

AUTO_RESPONSES = {
    TICKET_TYPE_DEVELOPER: (
        "Thanks for reaching out about development work! To help us scope it, please share:\n"
        "• What you need built or fixed\n"
        "• Your expected timeline\n"
        "• Your budget, if applicable\n"
        "• Any references or examples"
    ),
    TICKET_TYPE_GENERAL: (
        "Thanks for opening a ticket! Please describe your question or issue in as much "
        "detail as possible and a staff member will be with you shortly."
    ),
    TICKET_TYPE_STAFF_APPLICATION: (
        "Thanks for your interest in joining the team! Please answer the following:\n"
        "• How old are you?\n"
        "• Which timezone are you in?\n"
        "• Do you have previous moderation or support experience?\n"
        "• Why do you want to join the staff team?"
    ),
    TICKET_TYPE_OTHER: (
        "Thanks for opening a ticket! Let us know what you need and we will route it to "
        "the right person."
    ),
}

AUDIT_TICKET_CREATED = "ticket_created"
AUDIT_TICKET_CLAIMED = "ticket_claimed"
AUDIT_TICKET_CLOSED = "ticket_closed"
AUDIT_TICKET_REOPENED = "ticket_reopened"
AUDIT_TICKET_LOCKED = "ticket_locked"
AUDIT_TICKET_UNLOCKED = "ticket_unlocked"
AUDIT_TICKET_RENAMED = "ticket_renamed"
AUDIT_SETTINGS_UPDATED = "settings_updated"

AUDIT_ACTIONS = {
    AUDIT_TICKET_CREATED,
    AUDIT_TICKET_CLAIMED,
    AUDIT_TICKET_CLOSED,
    AUDIT_TICKET_REOPENED,
    AUDIT_TICKET_LOCKED,
    AUDIT_TICKET_UNLOCKED,
    AUDIT_TICKET_RENAMED,
    AUDIT_SETTINGS_UPDATED,
}


class TicketAction(StrEnum):
    CLAIM = "claim"
    CLOSE = "close"
    LOCK = "lock"
    UNLOCK = "unlock"
    REOPEN = "reopen"
    RENAME = "rename"


DEFAULT_TICKET_PREFIX = "ticket"
DEFAULT_WORKING_HOURS_START = 9
DEFAULT_WORKING_HOURS_END = 17

REOPEN_WINDOW = timedelta(hours=24)
TICKET_ID_MAX_ATTEMPTS = 5

CHANNEL_NAME_PATTERN = re.compile(r"^[a-z0-9_-]+$")
CHANNEL_NAME_MAX_LENGTH = 100
TICKET_PREFIX_MAX_LENGTH = 20

TICKET_PANEL_SELECT_ID = "ticket:type-select"
