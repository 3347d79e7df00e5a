"""
tests/test_classifier.py -- Unit tests for request classification.

Coverage:
  - parse_basic_auth(): scheme matching, base64 errors, missing colon
  - iter_cookie_values(): duplicates kept in order, across Cookie headers
  - Basic success short-circuits; failed Basic falls through to cookies
  - first verifying cookie wins; forged/malformed cookies do not stop the scan
  - expired cookies are rejected exactly like forged ones
"""

from __future__ import annotations

import base64

import pytest
from conftest import SECRET, START, USERS, basic

from auth.classifier import RequestClassifier, iter_cookie_values, parse_basic_auth
from auth.models import Authenticated, Unauthenticated
from auth.store import CredentialStore
from auth.tokens import issue_token, serialize_token

COOKIE = "simpleauth-token"


@pytest.fixture(scope="module")
def classifier() -> RequestClassifier:
    return RequestClassifier(CredentialStore(USERS), SECRET, COOKIE)


def _cookie(username: str, expires_at: int = int(START) + 3600, secret: bytes = SECRET) -> str:
    return serialize_token(issue_token(secret, username, expires_at))


class TestParseBasicAuth:
    def test_valid(self) -> None:
        assert parse_basic_auth(basic("alice", "wonderland")) == ("alice", "wonderland")

    def test_scheme_is_case_insensitive(self) -> None:
        encoded = base64.b64encode(b"alice:wonderland").decode()
        assert parse_basic_auth(f"bAsIc {encoded}") == ("alice", "wonderland")

    def test_password_may_contain_colons(self) -> None:
        assert parse_basic_auth(basic("alice", "a:b:c")) == ("alice", "a:b:c")

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            "Bearer abc.def.ghi",
            "Basic",
            "Basic !!!notbase64",
            "Basic " + base64.b64encode(b"no-colon").decode(),
            "Basic " + base64.b64encode(b"\xff\xfe:pw").decode(),
        ],
    )
    def test_unusable_headers(self, header) -> None:
        assert parse_basic_auth(header) is None


class TestIterCookieValues:
    def test_keeps_duplicates_in_order(self) -> None:
        headers = ["a=1; simpleauth-token=first; b=2; simpleauth-token=second"]
        assert list(iter_cookie_values(headers, COOKIE)) == ["first", "second"]

    def test_across_multiple_headers(self) -> None:
        headers = ["simpleauth-token=one", "other=x; simpleauth-token=two"]
        assert list(iter_cookie_values(headers, COOKIE)) == ["one", "two"]

    def test_strips_quotes(self) -> None:
        assert list(iter_cookie_values(['simpleauth-token="quoted"'], COOKIE)) == ["quoted"]

    def test_ignores_similar_names(self) -> None:
        headers = ["simpleauth-token-old=x; xsimpleauth-token=y; simpleauth-token"]
        assert list(iter_cookie_values(headers, COOKIE)) == []


class TestClassify:
    def test_no_credentials(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(None, [], START) == Unauthenticated()

    def test_basic_success(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(basic("alice", "wonderland"), [], START) == Authenticated("alice")

    def test_basic_success_ignores_cookies(self, classifier: RequestClassifier) -> None:
        """Valid Basic wins even when a valid cookie for someone else is present."""
        cookies = [f"{COOKIE}={_cookie('bob')}"]
        assert classifier.classify(basic("alice", "wonderland"), cookies, START) == Authenticated("alice")

    def test_wrong_password(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(basic("alice", "nope"), [], START) == Unauthenticated()

    def test_unknown_user(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(basic("mallory", "wonderland"), [], START) == Unauthenticated()

    def test_failed_basic_falls_through_to_cookie(self, classifier: RequestClassifier) -> None:
        cookies = [f"{COOKIE}={_cookie('bob')}"]
        assert classifier.classify(basic("alice", "nope"), cookies, START) == Authenticated("bob")

    def test_valid_cookie(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(None, [f"{COOKIE}={_cookie('alice')}"], START) == Authenticated("alice")

    def test_forged_then_valid_cookie(self, classifier: RequestClassifier) -> None:
        """The scan continues past a cookie that fails verification."""
        forged = _cookie("mallory", secret=bytes(range(64)))
        cookies = [f"{COOKIE}={forged}; {COOKIE}={_cookie('alice')}"]
        assert classifier.classify(None, cookies, START) == Authenticated("alice")

    def test_malformed_then_valid_cookie(self, classifier: RequestClassifier) -> None:
        cookies = [f"{COOKIE}=%%garbage%%", f"{COOKIE}={_cookie('bob')}"]
        assert classifier.classify(None, cookies, START) == Authenticated("bob")

    def test_first_valid_cookie_wins(self, classifier: RequestClassifier) -> None:
        cookies = [f"{COOKIE}={_cookie('alice')}; {COOKIE}={_cookie('bob')}"]
        assert classifier.classify(None, cookies, START) == Authenticated("alice")

    def test_expired_cookie(self, classifier: RequestClassifier) -> None:
        expired = _cookie("alice", expires_at=int(START))
        assert classifier.classify(None, [f"{COOKIE}={expired}"], START) == Unauthenticated()

    def test_cookie_under_other_name_ignored(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(None, [f"session={_cookie('alice')}"], START) == Unauthenticated()

    def test_only_bad_cookies(self, classifier: RequestClassifier) -> None:
        forged = _cookie("alice", secret=bytes(range(64)))
        cookies = [f"{COOKIE}=garbage; {COOKIE}={forged}"]
        assert classifier.classify(None, cookies, START) == Unauthenticated()
