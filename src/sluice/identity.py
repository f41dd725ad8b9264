"""Identity verification and admin authorization.

The only trust boundary for "who is asking" is :meth:`IdentityVerifier.verify`:
it turns a caller credential into a verified GitHub login (the identity
handle) and, when available, a contact email used for the admin check.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import aiohttp
from pydantic import SecretStr

from sluice.exceptions import IdentityError
from sluice.http import HttpClient

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class VerifiedIdentity:
    """A caller whose handle was confirmed by the identity provider."""

    handle: str
    email: str | None = None


class IdentityVerifier(ABC):
    """Abstract identity verifier."""

    @abstractmethod
    async def verify(self, credential: str | None) -> VerifiedIdentity | None:
        """Resolve a credential into a verified identity, or None."""
        ...


class GitHubIdentityVerifier(IdentityVerifier):
    """Verify GitHub OAuth access tokens against the GitHub REST API.

    With OAuth app credentials configured, tokens are checked through
    ``POST /applications/{client_id}/token`` so that only tokens issued to
    this app are accepted. Without them, any valid token resolving
    ``GET /user`` is accepted.

    Parameters
    ----------
    http : HttpClient
        Client with a bounded timeout.
    api_url : str
        GitHub API base URL.
    client_id : str | None
        OAuth app client id.
    client_secret : SecretStr | None
        OAuth app client secret.
    """

    def __init__(
        self,
        http: HttpClient,
        api_url: str = GITHUB_API_URL,
        client_id: str | None = None,
        client_secret: SecretStr | None = None,
    ):
        self._http = http
        self._api_url = api_url.rstrip("/")
        self._client_id = client_id
        self._app_auth = None
        if client_id and client_secret:
            self._app_auth = aiohttp.BasicAuth(client_id, client_secret.get_secret_value())

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
        }

    async def _profile(self, token: str) -> dict | None:
        if self._app_auth is None:
            return await self._http.get_json(f"{self._api_url}/user", self._headers(token))

        check = await self._http.post_json(
            f"{self._api_url}/applications/{self._client_id}/token",
            {"access_token": token},
            headers={"Accept": "application/vnd.github+json"},
            auth=self._app_auth,
        )
        return check.get("user") if isinstance(check, dict) else None

    async def _primary_email(self, token: str) -> str | None:
        emails = await self._http.get_json(f"{self._api_url}/user/emails", self._headers(token))
        if not isinstance(emails, list):
            return None
        for entry in emails:
            if isinstance(entry, dict) and entry.get("primary") and entry.get("verified"):
                return entry.get("email")
        return None

    async def verify(self, credential: str | None) -> VerifiedIdentity | None:
        if not credential:
            return None

        try:
            profile = await self._profile(credential)
            if not isinstance(profile, dict) or not profile.get("login"):
                raise IdentityError("GitHub profile has no login")

            email = profile.get("email")
            if not email:
                # Private profile emails are only visible through /user/emails
                try:
                    email = await self._primary_email(credential)
                except aiohttp.ClientResponseError as e:
                    logger.debug("GitHub email lookup refused", extra={"status": e.status})
        except (aiohttp.ClientError, asyncio.TimeoutError, IdentityError) as e:
            logger.warning("GitHub identity verification failed", extra={"error": str(e)})
            return None

        return VerifiedIdentity(handle=profile["login"], email=email)


def is_admin(identity: VerifiedIdentity | None, admin_email: str | None) -> bool:
    """True if the verified caller's email is the configured admin email."""
    if identity is None or not identity.email or not admin_email:
        return False
    return identity.email.strip().lower() == admin_email.strip().lower()
