"""Outbound HTTP for SLUICE (reference document, identity provider)."""

import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

USER_AGENT = "sluice-faucet"


class HttpClient:
    """Thin aiohttp wrapper with a bounded total timeout per request.

    Injects an optional ``aiohttp.ClientSession``. If none is given, one is
    created on first use and must be closed via :meth:`aclose` or by using
    the client as an async context manager.

    Parameters
    ----------
    timeout_seconds : float
        Total timeout for each request, connect to last byte.
    session : aiohttp.ClientSession | None
        Shared session owned by the caller.
    """

    def __init__(self, timeout_seconds: float = 10.0, session: aiohttp.ClientSession | None = None):
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def aclose(self) -> None:
        """Close the session if this client owns it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def get_text(self, url: str, headers: dict[str, str] | None = None) -> str:
        """GET ``url`` and return the body as text.

        Raises
        ------
        aiohttp.ClientError
            On connection errors or a non-2xx status.
        asyncio.TimeoutError
            If the request exceeds the configured timeout.
        """
        session = await self._get_session()
        async with session.get(url, headers=headers, timeout=self._timeout) as response:
            response.raise_for_status()
            return await response.text()

    async def get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        """GET ``url`` and decode the JSON body."""
        session = await self._get_session()
        async with session.get(url, headers=headers, timeout=self._timeout) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def post_json(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
        auth: aiohttp.BasicAuth | None = None,
    ) -> Any:
        """POST ``payload`` as JSON and decode the JSON response."""
        session = await self._get_session()
        async with session.post(
            url, json=payload, headers=headers, auth=auth, timeout=self._timeout
        ) as response:
            response.raise_for_status()
            return await response.json(content_type=None)
