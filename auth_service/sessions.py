"""Issues, resolves and revokes session tokens backed by rows in the 'sessions' table."""

import logging
from datetime import datetime
from typing import Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session as DbSession

from auth_service.models import Session, User
from auth_service.schemas import TokenPayload
from auth_service.utils import create_access_token, decode_token, utcnow

logger = logging.getLogger(__name__)


def issue_session(db: DbSession, user: User, commit: bool = True) -> Tuple[str, datetime]:
    """
    Mints a signed token for the user and records the matching session row.
    With commit=False the row is only added, so the caller can commit it
    together with other pending changes (e.g. the user created at registration).
    """
    token, expires_at = create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
    })
    db.add(Session(user_id=user.id, token=token, expires_at=expires_at))
    if commit:
        db.commit()
    logger.info(f"Session issued for user_id: {user.id}, expires at {expires_at.isoformat()}")
    return token, expires_at


def read_token(token: Optional[str]) -> Optional[TokenPayload]:
    """Verifies the token and returns its claims, or None when it is not usable."""
    payload = decode_token(token)
    if payload is None:
        return None
    try:
        return TokenPayload(**payload)
    except ValidationError:
        logger.warning("Token is signed but its claims are incomplete.")
        return None


def get_active_session(db: DbSession, token: Optional[str]) -> Optional[Session]:
    """
    Resolves the live session behind a token.

    The token has to verify, a non-expired session row has to exist for it
    (logout deletes the row), and the row must belong to the token's subject.
    Returns None for anything else.
    """
    claims = read_token(token)
    if claims is None:
        return None

    session = db.query(Session).filter(Session.token == token).first()
    if session is None:
        logger.warning(f"Token for user {claims.sub} has no session record (revoked).")
        return None
    if session.expires_at < utcnow():
        logger.info(f"Session {session.id} has expired.")
        return None
    if str(session.user_id) != claims.sub:
        logger.warning(f"Session {session.id} does not belong to token subject {claims.sub}.")
        return None
    return session


def get_session_user(db: DbSession, session: Session) -> Optional[User]:
    return db.query(User).filter(User.id == session.user_id).first()


def revoke_session(db: DbSession, token: str) -> int:
    """Deletes the session rows carrying the token. Returns the number of rows removed."""
    deleted = db.query(Session).filter(Session.token == token).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Revoked {deleted} session record(s).")
    return deleted
