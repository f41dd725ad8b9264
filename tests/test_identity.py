"""Tests for identity verification and admin checks."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from pydantic import SecretStr

from sluice.identity import GitHubIdentityVerifier, VerifiedIdentity, is_admin


def make_http(get_responses=None, post_response=None):
    http = MagicMock()
    http.get_json = AsyncMock(side_effect=get_responses or [])
    http.post_json = AsyncMock(return_value=post_response)
    return http


def response_error(status: int) -> aiohttp.ClientResponseError:
    return aiohttp.ClientResponseError(request_info=MagicMock(), history=(), status=status)


class TestGitHubIdentityVerifier:
    """Tests for GitHubIdentityVerifier."""

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        """No credential means no identity and no API call."""
        http = make_http()
        verifier = GitHubIdentityVerifier(http)

        assert await verifier.verify(None) is None
        assert await verifier.verify("") is None
        http.get_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_profile_with_email(self):
        """A public profile email is used directly."""
        http = make_http([{"login": "alice", "email": "alice@example.com"}])
        verifier = GitHubIdentityVerifier(http)

        identity = await verifier.verify("gho_token")

        assert identity == VerifiedIdentity(handle="alice", email="alice@example.com")
        url, headers = http.get_json.await_args.args
        assert url == "https://api.github.com/user"
        assert headers["Authorization"] == "Bearer gho_token"

    @pytest.mark.asyncio
    async def test_private_email_uses_primary_verified(self):
        """A private email is looked up through /user/emails."""
        http = make_http(
            [
                {"login": "alice", "email": None},
                [
                    {"email": "old@example.com", "primary": False, "verified": True},
                    {"email": "alice@example.com", "primary": True, "verified": True},
                ],
            ]
        )
        verifier = GitHubIdentityVerifier(http)

        identity = await verifier.verify("gho_token")

        assert identity.email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_email_lookup_refused(self):
        """Missing email scope still yields the handle."""
        http = make_http([{"login": "alice"}, response_error(404)])
        verifier = GitHubIdentityVerifier(http)

        identity = await verifier.verify("gho_token")

        assert identity == VerifiedIdentity(handle="alice", email=None)

    @pytest.mark.asyncio
    async def test_invalid_token(self):
        """A rejected token yields no identity."""
        http = make_http([response_error(401)])
        verifier = GitHubIdentityVerifier(http)

        assert await verifier.verify("bad") is None

    @pytest.mark.asyncio
    async def test_timeout(self):
        """A timed-out lookup yields no identity."""
        http = make_http([asyncio.TimeoutError()])
        verifier = GitHubIdentityVerifier(http)

        assert await verifier.verify("gho_token") is None

    @pytest.mark.asyncio
    async def test_profile_without_login(self):
        """A profile without a login yields no identity."""
        http = make_http([{"id": 1}])
        verifier = GitHubIdentityVerifier(http)

        assert await verifier.verify("gho_token") is None

    @pytest.mark.asyncio
    async def test_app_token_check(self):
        """With app credentials the token is checked against the OAuth app."""
        http = make_http(
            post_response={"user": {"login": "alice", "email": "alice@example.com"}}
        )
        verifier = GitHubIdentityVerifier(
            http, client_id="Iv1.abc", client_secret=SecretStr("shh")
        )

        identity = await verifier.verify("gho_token")

        assert identity.handle == "alice"
        url, payload = http.post_json.await_args.args
        assert url == "https://api.github.com/applications/Iv1.abc/token"
        assert payload == {"access_token": "gho_token"}
        assert http.post_json.await_args.kwargs["auth"].login == "Iv1.abc"
        http.get_json.assert_not_awaited()


class TestIsAdmin:
    """Tests for the admin email check."""

    def test_matching_email(self):
        """Emails match case-insensitively."""
        identity = VerifiedIdentity("root", "Admin@Example.com")

        assert is_admin(identity, "admin@example.com") is True

    def test_other_email(self):
        """A different email is not admin."""
        identity = VerifiedIdentity("alice", "alice@example.com")

        assert is_admin(identity, "admin@example.com") is False

    def test_missing_pieces(self):
        """No identity, no email or no admin configured means not admin."""
        assert is_admin(None, "admin@example.com") is False
        assert is_admin(VerifiedIdentity("alice"), "admin@example.com") is False
        assert is_admin(VerifiedIdentity("root", "admin@example.com"), None) is False
