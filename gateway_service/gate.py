"""Route protection for page navigations: decides whether a request passes or is redirected."""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from dotenv import load_dotenv
from jose import JWTError, jwt

load_dotenv()

logger = logging.getLogger(__name__)

# Must match the auth service's JWT_SECRET_KEY, which signs the cookies checked here.
DEFAULT_SECRET_KEY = "insecure_default_secret_change_me"
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not SECRET_KEY:
    logger.warning("JWT_SECRET_KEY is not set. Using an insecure default key meant for development only.")
    SECRET_KEY = DEFAULT_SECRET_KEY
ALGORITHM = "HS256"
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "auth-token")

LOGIN_PATH = os.getenv("LOGIN_PATH", "/login")
HOME_PATH = os.getenv("HOME_PATH", "/")

# Pages that require a valid session
PROTECTED_ROUTES = ("/tasks", "/profile", "/settings")

# Pages only for visitors without a session
AUTH_ROUTES = ("/login", "/register")

# Never gated: the API namespace, static assets and the gateway's own monitoring
EXCLUDED_PREFIXES = (
    "/api",
    "/_next/static",
    "/_next/image",
    "/favicon.ico",
    "/public",
    "/health",
    "/metrics",
)


@dataclass(frozen=True)
class GateDecision:
    is_authenticated: bool
    redirect_to: Optional[str] = None

    @property
    def passes(self) -> bool:
        return self.redirect_to is None


def _matches(path: str, prefixes: Sequence[str]) -> bool:
    return any(path.startswith(prefix) for prefix in prefixes)


def is_gated(path: str) -> bool:
    """True for the paths the gate inspects."""
    return not _matches(path, EXCLUDED_PREFIXES)


def is_token_valid(token: Optional[str]) -> bool:
    """Signature and expiry check only. Any failure means not authenticated."""
    if not token:
        return False
    try:
        jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected auth cookie: {e}")
        return False
    return True


def evaluate(
    path: str,
    token: Optional[str],
    protected_routes: Sequence[str] = PROTECTED_ROUTES,
    auth_routes: Sequence[str] = AUTH_ROUTES,
) -> GateDecision:
    """
    Classifies `path` and checks `token`.

    Protected path without a valid token -> redirect to the login page.
    Auth-only path with a valid token -> redirect to the home page.
    Anything else passes through.
    """
    is_authenticated = is_token_valid(token)

    if _matches(path, protected_routes) and not is_authenticated:
        return GateDecision(is_authenticated=False, redirect_to=LOGIN_PATH)

    if _matches(path, auth_routes) and is_authenticated:
        return GateDecision(is_authenticated=True, redirect_to=HOME_PATH)

    return GateDecision(is_authenticated=is_authenticated)
