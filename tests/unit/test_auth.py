"""Unit tests for authentication helpers."""

import base64
import json
import random
from unittest.mock import MagicMock

import pytest

from loadchaos.core.auth import (
    AuthenticationManager,
    SessionFileAuthenticator,
    create_basic_auth_headers,
    merge_cookies,
    parse_auth_string,
    parse_basic_auth_option,
    parse_pairs,
    select_random_session,
)
from loadchaos.core.exceptions import ConfigurationError, FatalError
from loadchaos.core.models import MultiSession, SingleSession


class TestHelpers:
    def test_parse_auth_string(self):
        assert parse_auth_string("admin@example.com") == ("admin", "example.com")
        assert parse_auth_string("a@b@c") == ("a", "b@c")
        assert parse_auth_string("admin") is None

    def test_basic_auth_headers(self):
        headers = create_basic_auth_headers("admin")
        token = headers["Authorization"].split(" ", 1)[1]
        assert headers["Authorization"].startswith("Basic ")
        assert base64.b64decode(token).decode() == "admin:password"

    def test_basic_auth_option_with_password(self):
        headers = parse_basic_auth_option("admin:s3cr:et")
        token = headers["Authorization"].split(" ", 1)[1]
        assert base64.b64decode(token).decode() == "admin:s3cr:et"

    def test_parse_pairs(self):
        assert parse_pairs("a=1, b = two,broken,c=x=y") == {"a": "1", "b": "two", "c": "x=y"}
        assert parse_pairs(None) == {}

    def test_merge_into_single_session(self):
        merged = merge_cookies(SingleSession({"a": "1"}), {"b": "2"})
        assert merged == SingleSession({"a": "1", "b": "2"})

    def test_merge_into_every_session(self):
        merged = merge_cookies(MultiSession(({"u": "1"}, {"u": "2"})), {"ab": "x"})
        assert merged.sessions == ({"u": "1", "ab": "x"}, {"u": "2", "ab": "x"})

    def test_select_random_session(self):
        source = MultiSession(({"u": "1"}, {"u": "2"}))
        assert select_random_session(source, random.Random(1)) in source.sessions
        assert select_random_session(MultiSession()) == {}


@pytest.fixture
def sessions_file(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text(
        json.dumps(
            {
                "Admin@Example.com": {"wordpress_logged_in": "abc"},
                "shopper@example.com": {"wordpress_logged_in": "def"},
            }
        )
    )
    return str(path)


class TestSessionFileAuthenticator:
    def test_lookup_is_case_insensitive(self, sessions_file):
        auth = SessionFileAuthenticator(sessions_file)
        assert auth.authenticate_user("admin@example.com") == {"wordpress_logged_in": "abc"}

    def test_unknown_user(self, sessions_file):
        assert SessionFileAuthenticator(sessions_file).authenticate_user("x@y.z") is None

    def test_unreadable_file(self, tmp_path):
        auth = SessionFileAuthenticator(str(tmp_path / "missing.json"))
        with pytest.raises(ConfigurationError):
            auth.authenticate_user("admin@example.com")


class TestAuthenticationManager:
    """Test single and multi-user session setup."""

    def test_no_auth_gives_custom_cookies_only(self):
        source = AuthenticationManager().build_cookie_source(custom_cookies={"ab": "x"})
        assert source == SingleSession({"ab": "x"})

    def test_single_auth(self, sessions_file, null_logger):
        manager = AuthenticationManager(SessionFileAuthenticator(sessions_file), null_logger)
        source = manager.build_cookie_source(auth_user="admin@example.com")
        assert source == SingleSession({"wordpress_logged_in": "abc"})

    def test_single_auth_failure_is_fatal(self, sessions_file, null_logger):
        manager = AuthenticationManager(SessionFileAuthenticator(sessions_file), null_logger)
        with pytest.raises(FatalError, match="User with email ghost@example.com not found."):
            manager.build_cookie_source(auth_user="ghost@example.com")

    def test_single_auth_failure_with_returning_logger(self):
        authenticator = MagicMock()
        authenticator.authenticate_user.return_value = None
        manager = AuthenticationManager(authenticator, MagicMock())
        with pytest.raises(ConfigurationError):
            manager.build_cookie_source(auth_user="ghost@example.com")

    def test_multi_auth_skips_missing_users(self, sessions_file, null_logger):
        manager = AuthenticationManager(SessionFileAuthenticator(sessions_file), null_logger)
        source = manager.build_cookie_source(
            multi_auth=["admin@example.com", "ghost@example.com", "shopper@example.com"],
            custom_cookies={"ab": "x"},
        )

        assert isinstance(source, MultiSession)
        assert len(source.sessions) == 2
        assert all(session["ab"] == "x" for session in source.sessions)
        assert "User with email ghost@example.com not found. Skipping." in null_logger.messages_of("warning")

    def test_multi_auth_total_failure_continues_unauthenticated(self, sessions_file, null_logger):
        manager = AuthenticationManager(SessionFileAuthenticator(sessions_file), null_logger)
        source = manager.build_cookie_source(multi_auth=["ghost@example.com"])

        assert source == SingleSession()
        assert (
            "No valid multi-auth sessions. Continuing without authentication."
            in null_logger.messages_of("warning")
        )
        assert null_logger.messages_of("error") == []
