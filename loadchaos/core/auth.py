"""Authentication collaborators and cookie helpers."""

import base64
import json
import random
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import ConfigurationError
from .log import Logger, NullLogger
from .models import SingleSession, MultiSession, CookieSource


def parse_auth_string(auth: str) -> Optional[Tuple[str, str]]:
    """Split 'user@domain' on the first '@'; None when there is no '@'."""
    if "@" not in auth:
        return None
    user, domain = auth.split("@", 1)
    return user, domain


def create_basic_auth_headers(user: str, password: str = "password") -> Dict[str, str]:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def parse_basic_auth_option(value: str) -> Dict[str, str]:
    """Headers for a 'USER[:PASSWORD]' option value."""
    if ":" in value:
        user, password = value.split(":", 1)
        return create_basic_auth_headers(user, password)
    return create_basic_auth_headers(value)


def parse_pairs(value: Optional[str]) -> Dict[str, str]:
    """Parse 'a=1,b=2' into a dict; items without '=' are ignored."""
    pairs: Dict[str, str] = {}
    if not value:
        return pairs
    for item in value.split(","):
        if "=" not in item:
            continue
        name, val = item.split("=", 1)
        name = name.strip()
        if name:
            pairs[name] = val.strip()
    return pairs


def merge_cookies(source: CookieSource, extra: Dict[str, str]) -> CookieSource:
    """Add custom cookies to a single session or to every session of a set."""
    if not extra:
        return source
    if isinstance(source, MultiSession):
        return MultiSession(tuple({**session, **extra} for session in source.sessions))
    return SingleSession({**source.cookies, **extra})


def select_random_session(source: MultiSession, rng: Optional[random.Random] = None) -> Dict[str, str]:
    if not source.sessions:
        return {}
    return (rng or random).choice(source.sessions)


class Authenticator(ABC):
    """Issues session cookies for a named user."""

    @abstractmethod
    def authenticate_user(self, email: str) -> Optional[Dict[str, str]]:
        """Cookies for ``email``, or None when the user is unknown."""


class SessionFileAuthenticator(Authenticator):
    """Reads pre-issued session cookies from a JSON file of email -> cookies."""

    def __init__(self, path: str):
        self.path = path
        self._sessions: Optional[Dict[str, Dict[str, str]]] = None

    def _load(self) -> Dict[str, Dict[str, str]]:
        if self._sessions is None:
            try:
                with open(self.path, "r") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Cannot read sessions file {self.path}: {e}")
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Sessions file {self.path} must map emails to cookie objects"
                )
            self._sessions = {email.lower(): cookies for email, cookies in data.items()}
        return self._sessions

    def authenticate_user(self, email: str) -> Optional[Dict[str, str]]:
        cookies = self._load().get(email.lower())
        if not cookies or not isinstance(cookies, dict):
            return None
        return {str(name): str(value) for name, value in cookies.items()}


class AuthenticationManager:
    """Turns auth options into the cookie source used for every request."""

    def __init__(self, authenticator: Optional[Authenticator] = None, logger: Optional[Logger] = None):
        self.authenticator = authenticator
        self.logger = logger or NullLogger()

    def authenticate_users(self, emails: Sequence[str]) -> List[Dict[str, str]]:
        """Cookie sets for every email that resolves; misses are warned and skipped."""
        sessions = []
        for email in emails:
            cookies = self.authenticator.authenticate_user(email) if self.authenticator else None
            if cookies is None:
                self.logger.warning(f"User with email {email} not found. Skipping.")
                continue
            sessions.append(cookies)
        return sessions

    def build_cookie_source(
        self,
        auth_user: Optional[str] = None,
        multi_auth: Sequence[str] = (),
        custom_cookies: Optional[Dict[str, str]] = None,
    ) -> CookieSource:
        source: CookieSource = SingleSession()

        if multi_auth:
            sessions = self.authenticate_users(multi_auth)
            if sessions:
                self.logger.success(f"Authenticated {len(sessions)} user sessions.")
                source = MultiSession(tuple(sessions))
            else:
                self.logger.warning(
                    "No valid multi-auth sessions. Continuing without authentication."
                )
        elif auth_user:
            cookies = self.authenticator.authenticate_user(auth_user) if self.authenticator else None
            if cookies is None:
                message = f"User with email {auth_user} not found."
                self.logger.error(message)
                raise ConfigurationError(message)
            self.logger.success(f"Authenticated as {auth_user}.")
            source = SingleSession(cookies)

        return merge_cookies(source, custom_cookies or {})
