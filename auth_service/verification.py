"""Stores for the one-time email verification codes issued before registration."""

import abc
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Request

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class VerificationEntry:
    code: str
    expires_at: datetime


class VerificationCodeStore(abc.ABC):
    """
    Maps an email address to its current verification code.

    At most one code is live per email. A code is consumed by the first
    successful verify() so it cannot be replayed.
    """

    @abc.abstractmethod
    def set(self, email: str, code: str, expires_at: datetime) -> None:
        """Stores a code for the email, replacing any previous one."""

    @abc.abstractmethod
    def get(self, email: str) -> Optional[VerificationEntry]:
        """Returns the live entry for the email, or None if absent or expired."""

    @abc.abstractmethod
    def delete(self, email: str) -> None:
        """Removes the entry for the email, if any."""

    def verify(self, email: str, code: str) -> bool:
        """
        True only when a non-expired entry exists and its code equals `code` exactly.
        A successful check deletes the entry.
        """
        entry = self.get(email)
        if entry is None:
            return False
        if entry.code != code:
            return False
        self.delete(email)
        return True


class InMemoryVerificationCodeStore(VerificationCodeStore):
    """
    Process-local store. Entries are lost on restart and are not shared
    between server instances. Expiry is checked lazily on read.
    """

    def __init__(self) -> None:
        self._codes: Dict[str, VerificationEntry] = {}

    def set(self, email: str, code: str, expires_at: datetime) -> None:
        self._codes[email] = VerificationEntry(code=code, expires_at=_as_utc(expires_at))

    def get(self, email: str) -> Optional[VerificationEntry]:
        entry = self._codes.get(email)
        if entry is None:
            return None
        if entry.expires_at < datetime.now(timezone.utc):
            logger.info(f"Verification code for {email} expired, discarding it.")
            self._codes.pop(email, None)
            return None
        return entry

    def delete(self, email: str) -> None:
        self._codes.pop(email, None)

    def __len__(self) -> int:
        return len(self._codes)


def get_verification_store(request: Request) -> VerificationCodeStore:
    """FastAPI dependency returning the store attached to the running app."""
    return request.app.state.verification_store
