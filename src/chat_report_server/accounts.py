"""
Account classification.

Decides whether a contact identifier belongs to a real person or to a
system, bot or broadcast account that must be left out of every analysis.
"""

import re
from typing import Iterable, List

from .models import Session

# Case-insensitive substrings identifying system and service accounts
SYSTEM_ACCOUNT_MARKERS = (
    "filehelper",
    "fmessage",
    "medianote",
    "newsapp",
    "weixin",
    "gh_",  # public accounts
    "brandsessionholder",
    "brandservice",
    "brandsession",
    "placeholder",
    "qqmail",
    "tmessage",
)

# Session holders, placeholders and folded group entries
GENERIC_MARKERS = ("holder", "session", "placeholder", "_foldgroup")

_NUMERIC_ID = re.compile(r"^\d+$")


def is_excluded(contact_id: str) -> bool:
    """Return True if the identifier is not a real one-to-one contact."""
    if not contact_id:
        return True

    lower = contact_id.lower()
    if any(marker in lower for marker in SYSTEM_ACCOUNT_MARKERS):
        return True

    if _NUMERIC_ID.match(contact_id):
        return True

    return any(marker in lower for marker in GENERIC_MARKERS)


def filter_private_sessions(sessions: Iterable[Session]) -> List[Session]:
    """Keep one-to-one sessions with real people, ordered by contact id."""
    private = [s for s in sessions if not s.is_group and not is_excluded(s.id)]
    return sorted(private, key=lambda s: s.id)
