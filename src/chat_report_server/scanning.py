"""
Per-contact scanning helpers shared by the aggregators and analyzers.

Every multi-contact analysis walks the same classified contact set. Failures
for a single contact are captured as ``ContactResult`` values instead of
aborting the scan; only an unavailable source stops the whole computation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from .accounts import filter_private_sessions
from .db import MessageSource, SourceUnavailableError
from .models import ContactFailure, Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_YIELD_EVERY = 20


@dataclass(frozen=True)
class ContactResult(Generic[T]):
    """Outcome of one contact's computation: a value or an error."""

    contact_id: str
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ContactSet:
    """Classified one-to-one contacts with their resolved display names."""

    sessions: List[Session] = field(default_factory=list)
    names: Dict[str, str] = field(default_factory=dict)

    @property
    def ids(self) -> List[str]:
        return [s.id for s in self.sessions]

    def display_name(self, contact_id: str) -> str:
        if contact_id in self.names:
            return self.names[contact_id]
        for session in self.sessions:
            if session.id == contact_id and session.display_name:
                return session.display_name
        return contact_id

    def __len__(self) -> int:
        return len(self.sessions)


async def load_contacts(source: MessageSource) -> ContactSet:
    """List sessions, drop groups and system accounts, resolve display names."""
    sessions = filter_private_sessions(await source.list_sessions())
    names = await source.get_display_names([s.id for s in sessions]) if sessions else {}
    return ContactSet(sessions=sessions, names=names)


async def resolve_contacts(source: MessageSource, contacts: Optional[ContactSet]) -> ContactSet:
    """Use a pre-loaded contact set when the caller has one."""
    if contacts is not None:
        return contacts
    return await load_contacts(source)


async def scan_contacts(
    contacts: ContactSet,
    compute: Callable[[str], Awaitable[T]],
    yield_every: int = DEFAULT_YIELD_EVERY,
) -> List[ContactResult[T]]:
    """Run ``compute`` for every contact, capturing per-contact failures.

    Control returns to the event loop every ``yield_every`` contacts.
    """
    results: List[ContactResult[T]] = []
    for index, session in enumerate(contacts.sessions, start=1):
        try:
            value = await compute(session.id)
            results.append(ContactResult(session.id, value=value))
        except SourceUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Skipping contact {session.id}: {e}")
            results.append(ContactResult(session.id, error=str(e)))

        if yield_every > 0 and index % yield_every == 0:
            await asyncio.sleep(0)

    return results


def failures_of(results: List[ContactResult[Any]]) -> List[ContactFailure]:
    return [ContactFailure(contact_id=r.contact_id, error=r.error) for r in results if not r.ok]


def successes_of(results: List[ContactResult[T]]) -> List[ContactResult[T]]:
    return [r for r in results if r.ok]
