"""Utility functions for the auth service: password hashing, JWT handling and verification codes."""

import os
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from jose import JWTError, jwt
from dotenv import load_dotenv
from typing import Dict, Optional, Tuple

load_dotenv()

logger = logging.getLogger(__name__)

# --- Security settings ---
DEFAULT_SECRET_KEY = "insecure_default_secret_change_me"
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not SECRET_KEY:
    logger.warning("JWT_SECRET_KEY is not set. Using an insecure default key meant for development only.")
    SECRET_KEY = DEFAULT_SECRET_KEY

ALGORITHM = "HS256"

SESSION_EXPIRE_DAYS = int(os.getenv("SESSION_EXPIRE_DAYS", 7))

# --- Cookie settings ---
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "auth-token")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "y"}

# --- Verification settings ---
VERIFICATION_CODE_EXPIRATION_MINUTES = int(os.getenv("VERIFICATION_CODE_EXPIRATION_MINUTES", 10))


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Checks a plain password against a stored hash.
    Without a hash (unknown account) a dummy check runs so both cases take about as long.
    """
    if not hashed_password:
        pwd_context.dummy_verify()
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hashes a plain password with bcrypt."""
    return pwd_context.hash(password)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- JWT utilities ---
def create_access_token(data: Dict) -> Tuple[str, datetime]:
    """
    Signs a JWT with the given claims and a fixed validity window.

    Args:
        data: Claims to embed (e.g. {'sub': user_id, 'email': ..., 'username': ...}).

    Returns:
        The encoded token and its expiry as a naive UTC datetime.
    """
    now = datetime.now(timezone.utc).replace(microsecond=0)
    expire = now + timedelta(days=SESSION_EXPIRE_DAYS)
    to_encode = data.copy()
    to_encode.update({"iat": now, "exp": expire, "jti": uuid.uuid4().hex})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, expire.replace(tzinfo=None)


def decode_token(token: Optional[str]) -> Optional[Dict]:
    """
    Decodes and validates a JWT.

    Returns:
        The claims if the signature is valid and the token has not expired, otherwise None.
    """
    if not token:
        return None
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token decoding failed: {e}")
        return None


def cookie_settings() -> Dict:
    return {
        "httponly": True,
        "samesite": "lax",
        "secure": COOKIE_SECURE,
        "path": "/",
        "max_age": SESSION_EXPIRE_DAYS * 24 * 60 * 60,
    }


# --- Verification codes ---
def generate_verification_code() -> str:
    """Generates a random six-digit numeric code."""
    return str(100000 + secrets.randbelow(900000))


def verification_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=VERIFICATION_CODE_EXPIRATION_MINUTES)
