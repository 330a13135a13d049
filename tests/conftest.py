"""Pytest configuration and fixtures for Chat Annual Report tests."""

import sqlite3
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chat_report_server.config import Config, set_config
from chat_report_server.db import MessageSource, SourceUnavailableError
from chat_report_server.models import Message, Session

ARCHIVE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS session (
        username TEXT PRIMARY KEY,
        is_group INTEGER NOT NULL DEFAULT 0,
        display_name TEXT
    );

    CREATE TABLE IF NOT EXISTS contact (
        username TEXT PRIMARY KEY,
        remark TEXT,
        nick_name TEXT
    );

    CREATE TABLE IF NOT EXISTS message (
        local_id INTEGER PRIMARY KEY,
        talker TEXT NOT NULL,
        is_send INTEGER NOT NULL,
        create_time INTEGER NOT NULL,
        local_type INTEGER NOT NULL DEFAULT 1,
        content TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_message_talker_time ON message (talker, create_time);
"""


def ts(year: int, month: int, day: int, hour: int = 12, minute: int = 0, second: int = 0) -> int:
    """Local wall-clock time as epoch seconds."""
    return int(datetime(year, month, day, hour, minute, second).timestamp())


def exchange(
    start: int,
    sent: int,
    received: int,
    step: int = 1800,
    reply_delay: int = 60,
    self_first: bool = True,
) -> List[Message]:
    """Alternating conversation: each round one message from each side while they last."""
    messages = []
    for i in range(max(sent, received)):
        base = start + i * step
        self_at, other_at = (base, base + reply_delay) if self_first else (base + reply_delay, base)
        if i < sent:
            messages.append(Message(sender_is_self=True, timestamp=self_at, content=f"out {i}"))
        if i < received:
            messages.append(Message(sender_is_self=False, timestamp=other_at, content=f"in {i}"))
    return messages


class InMemorySource(MessageSource):
    """Message source over plain Python data; aggregates use the scanning defaults."""

    def __init__(
        self,
        messages: Dict[str, List[Message]],
        sessions: Optional[List[Session]] = None,
        names: Optional[Dict[str, str]] = None,
        modified: int = 1000,
    ):
        self.messages = messages
        self.sessions = sessions if sessions is not None else [Session(id=cid) for cid in messages]
        self.names = names or {}
        self.modified = modified
        self.failing: set = set()
        self.unavailable = False
        self.message_calls = 0
        self.on_get_messages: Optional[Callable[[str], None]] = None

    async def list_sessions(self) -> List[Session]:
        if self.unavailable:
            raise SourceUnavailableError("Source not connected")
        return list(self.sessions)

    async def get_messages(self, contact_id: str) -> List[Message]:
        if self.unavailable:
            raise SourceUnavailableError("Source not connected")
        self.message_calls += 1
        if self.on_get_messages is not None:
            self.on_get_messages(contact_id)
        if contact_id in self.failing:
            raise ValueError(f"Malformed messages for {contact_id}")
        return list(self.messages.get(contact_id, []))

    async def get_display_names(self, contact_ids: Iterable[str]) -> Dict[str, str]:
        return {cid: self.names[cid] for cid in contact_ids if cid in self.names}

    async def last_modified(self) -> int:
        if self.unavailable:
            raise SourceUnavailableError("Source not connected")
        return self.modified


@pytest.fixture
def memory_source():
    """Factory for in-memory sources."""

    def _build(messages: Dict[str, List[Message]], **kwargs) -> InMemorySource:
        return InMemorySource(messages, **kwargs)

    return _build


@pytest.fixture
def ranking_source():
    """
    Contacts shaped for the ranking rules (all in 2024).

    alice: 60 sent / 20 received, bob: 10 / 50, carol: 60 / 60, dave: 80 / 40,
    plus system, numeric and group sessions with heavy traffic that must be
    ignored, and a 2023 conversation with erin.
    """
    messages = {
        "alice": exchange(ts(2024, 3, 1, 9), 60, 20),
        "bob": exchange(ts(2024, 4, 1, 9), 10, 50),
        "carol": exchange(ts(2024, 5, 1, 9), 60, 60),
        "dave": exchange(ts(2024, 6, 1, 9), 80, 40),
        "erin": exchange(ts(2023, 6, 1, 9), 100, 100),
        "filehelper": exchange(ts(2024, 2, 1, 9), 300, 300),
        "gh_news_daily": exchange(ts(2024, 2, 1, 9), 0, 400),
        "1234567": exchange(ts(2024, 2, 1, 9), 200, 200),
        "team@chatroom": exchange(ts(2024, 2, 1, 9), 500, 500),
    }
    sessions = [
        Session(id=cid, is_group=(cid == "team@chatroom"), display_name=cid.title())
        for cid in messages
    ]
    names = {"alice": "Alice", "bob": "Bob", "carol": "Carol", "dave": "Dave"}
    return InMemorySource(messages, sessions=sessions, names=names)


@pytest.fixture
def isolated_config(tmp_path):
    """Global config pointing at a temporary cache directory."""
    config = Config.from_dict(
        {
            "cache": {"enabled": True, "directory": str(tmp_path / "cache")},
            "database": {"path": str(tmp_path / "missing.db")},
        }
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database with the archive schema."""
    temp_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_path = temp_file.name
    temp_file.close()

    conn = sqlite3.connect(db_path)
    conn.executescript(ARCHIVE_SCHEMA)
    conn.commit()
    conn.close()

    yield db_path

    # Cleanup
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def populated_db(temp_db):
    """Create a temporary archive populated with synthetic conversations."""
    conn = sqlite3.connect(temp_db)
    cursor = conn.cursor()

    sessions = [
        ("wxid_alice", 0, "alice_session"),
        ("wxid_bob", 0, "bob_session"),
        ("wxid_carol", 0, None),
        ("filehelper", 0, "File Transfer"),
        ("gh_3f2a9c", 0, "Daily News"),
        ("10001", 0, None),
        ("family@chatroom", 1, "Family"),
    ]
    cursor.executemany(
        "INSERT INTO session (username, is_group, display_name) VALUES (?, ?, ?)", sessions
    )
    cursor.executemany(
        "INSERT INTO contact (username, remark, nick_name) VALUES (?, ?, ?)",
        [("wxid_alice", "Alice", "ali"), ("wxid_bob", "", "Bobby")],
    )

    rows = []

    def add(talker, is_send, when, content="hi", local_type=1):
        rows.append((talker, is_send, when, local_type, content))

    # Alice: 120 messages over 2024-01-01 .. 2024-01-04, self opens every day
    for day in range(1, 5):
        for i in range(15):
            add("wxid_alice", 1, ts(2024, 1, day, 9, i * 2), f"早上好。第{i}条！哈哈哈")
            add("wxid_alice", 0, ts(2024, 1, day, 9, i * 2 + 1), "好的")
    # A late-night chat and a sticker with Alice
    add("wxid_alice", 1, ts(2024, 1, 5, 1, 30), "[微笑]睡不着")
    add("wxid_alice", 0, ts(2024, 1, 5, 2, 0), "", local_type=3)

    # Bob: they talk more, some in 2023
    for i in range(40):
        add("wxid_bob", 0, ts(2024, 2, 10, 20, i), f"message {i}")
    for i in range(10):
        add("wxid_bob", 1, ts(2024, 2, 10, 21, i), "ok")
    add("wxid_bob", 1, ts(2023, 12, 31, 23, 59), "Happy new year!")
    add("wxid_bob", 0, ts(2024, 12, 31, 23, 0), "", local_type=47)

    # Carol: a recall notice and one long message
    add("wxid_carol", 1, ts(2024, 3, 3, 15), "x" * 2500)
    add("wxid_carol", 0, ts(2024, 3, 3, 15, 5), "你撤回了一条消息", local_type=10000)

    # Noise that must never show up
    for i in range(200):
        add("filehelper", 1, ts(2024, 1, 2, 10, i % 60), "note to self")
        add("gh_3f2a9c", 0, ts(2024, 1, 2, 11, i % 60), "breaking news")
        add("10001", 0, ts(2024, 1, 2, 12, i % 60), "code 1234")
        add("family@chatroom", 0, ts(2024, 1, 2, 13, i % 60), "group chat")

    cursor.executemany(
        "INSERT INTO message (talker, is_send, create_time, local_type, content) VALUES (?, ?, ?, ?, ?)",
        rows,
    )
    conn.commit()
    conn.close()

    return temp_db
