"""
Privacy utilities for the Chat Annual Report server.

Contact identifiers can be hashed with a per-session salt and message text
quoted in reports (longest message, first/last message, first times) can
have personal details redacted before it leaves the server.
"""

import hashlib
import re
from typing import Any, Dict, Iterable, Optional

from .config import get_config

# PII regex patterns
PATTERNS = {
    "id_card": re.compile(r"\b\d{17}[\dXx]\b"),
    "bank_card": re.compile(r"\b(?:\d{4}[- ]?){3,4}\d{3,4}\b"),
    "mobile": re.compile(r"(?<!\d)(?:\+?86[- ]?)?1[3-9]\d{9}(?!\d)"),
    "phone": re.compile(r"\b(?:\+\d{1,2}\s?)?(?:\(\d{3}\)\s?|\d{3}[-.\s]?)\d{3}[-.\s]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
}

# Report fields holding contact identifiers
ID_FIELDS = {"contact_id", "top_contact_id", "longest_contact_id"}

# Report fields quoting message text
TEXT_FIELDS = {"content", "longest_content"}

# Report fields holding a contact's display name
NAME_FIELDS = {"display_name", "top_display_name", "longest_display_name"}


def hash_contact_id(contact_id: str, salt: Optional[bytes] = None) -> str:
    """
    Hash a contact ID using BLAKE2b with per-session salt.

    Args:
        contact_id: The contact identifier to hash
        salt: Optional salt (uses session salt if not provided)

    Returns:
        Hashed contact ID in format "hash:xxxxxxxx"
    """
    if not contact_id:
        return contact_id

    # Skip if already hashed
    if contact_id.startswith("hash:"):
        return contact_id

    if salt is None:
        salt = get_config().session_salt

    h = hashlib.blake2b(contact_id.encode("utf-8"), salt=salt, digest_size=16)

    return f"hash:{h.hexdigest()[:8]}"


def unhash_contact_id(hashed_id: str, contact_ids: Iterable[str]) -> Optional[str]:
    """
    Map a hashed contact ID back to the original among known identifiers.

    Unhashed input is returned as-is.
    """
    if not hashed_id.startswith("hash:"):
        return hashed_id

    for contact_id in contact_ids:
        if hash_contact_id(contact_id) == hashed_id:
            return contact_id
    return None


def redact_pii(text: Optional[str]) -> Optional[str]:
    """
    Redact personally identifiable information from text.

    Args:
        text: Text to redact

    Returns:
        Redacted text
    """
    if not text:
        return text

    result = PATTERNS["id_card"].sub("[ID REDACTED]", text)
    result = PATTERNS["bank_card"].sub("[CARD REDACTED]", result)

    # Partial redaction for phone numbers
    def redact_phone(match):
        phone = match.group(0)
        if len(phone) > 4:
            return phone[:3] + "X" * (len(phone) - 5) + phone[-2:]
        return phone

    result = PATTERNS["mobile"].sub(redact_phone, result)
    result = PATTERNS["phone"].sub(redact_phone, result)

    def redact_email(match):
        username, domain = match.group(0).split("@", 1)
        if len(username) > 2:
            username = username[0] + "X" * (len(username) - 2) + username[-1]
        else:
            username = "X" * len(username)
        return f"{username}@{domain}"

    return PATTERNS["email"].sub(redact_email, result)


def sanitize_report(
    data: Any, redact: Optional[bool] = None, hash_ids: bool = True
) -> Any:
    """
    Apply privacy filters to a JSON-ready report structure.

    Walks nested dicts and lists, hashing contact identifiers and, when
    redaction is on, scrubbing quoted message text and dropping display
    names.

    Args:
        data: Output of ``model_dump(mode="json")`` or a list of such dicts
        redact: Explicit redaction flag (config default when None)
        hash_ids: Whether to hash identifiers

    Returns:
        A sanitized copy of the data
    """
    config = get_config()
    should_hash = hash_ids and config.privacy.hash_identifiers
    should_redact = config.should_redact(redact)

    def walk(value: Any) -> Any:
        if isinstance(value, list):
            return [walk(item) for item in value]
        if not isinstance(value, dict):
            return value

        result: Dict[str, Any] = {}
        for key, item in value.items():
            if should_hash and key in ID_FIELDS and isinstance(item, str):
                result[key] = hash_contact_id(item)
            elif should_redact and key in TEXT_FIELDS and isinstance(item, str):
                result[key] = redact_pii(item)
            elif should_redact and key in NAME_FIELDS:
                result[key] = None
            else:
                result[key] = walk(item)
        return result

    return walk(data)
