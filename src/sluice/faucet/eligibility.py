"""Eligibility oracle for SLUICE faucet.

An identity is eligible if an admin allowlisted it, or if it owns a
repository listed in the reference document (a TOML file of ``[[repo]]``
tables with GitHub URLs). The set of owner handles derived from the
document is cached in the store with a TTL.

Any failure while fetching, parsing or caching the reference set degrades
to "not eligible" instead of an error, so the user lands in the access
request workflow.
"""

import asyncio
import json
import logging
import re
import tomllib

import aiohttp
from pydantic import SecretStr

from sluice.exceptions import StoreError
from sluice.http import HttpClient
from sluice.observability.metrics import REFERENCE_FETCHES
from sluice.storage import KeyValueStore

from .workflow import AccessWorkflow

logger = logging.getLogger(__name__)

REFERENCE_CACHE_KEY = "sluice:reference:handles"

# Owner segment of a GitHub URL, e.g. "solana-labs" in
# https://github.com/solana-labs/solana
OWNER_PATTERN = re.compile(r"(?:^|[/.@])github\.com/([^/\s\"'?#]+)")

# Fallback scan when the document is not valid TOML
URL_PATTERN = re.compile(r"https?://(?:www\.)?github\.com/[^\s\"']+", re.IGNORECASE)


def normalize_handle(handle: str) -> str:
    """Lowercase and strip everything outside ``[a-z0-9-]``."""
    return re.sub(r"[^a-z0-9-]", "", handle.lower())


def owner_from_url(url: str) -> str | None:
    """Return the lowercase owner segment of a GitHub URL, if any."""
    match = OWNER_PATTERN.search(url.strip().lower())
    return match.group(1) if match else None


def extract_owner_handles(document: str) -> set[str]:
    """Derive the set of repository owners from a reference document.

    A document that is not valid TOML is scanned for GitHub URLs instead,
    so a partially corrupt file still yields whatever it contains.
    """
    try:
        repos = tomllib.loads(document).get("repo", [])
    except tomllib.TOMLDecodeError as e:
        logger.warning(
            "Reference document is not valid TOML, scanning URLs", extra={"error": str(e)}
        )
        REFERENCE_FETCHES.labels(result="partial").inc()
        repos = None

    if repos is not None and not isinstance(repos, list):
        logger.warning(
            "Reference document has no [[repo]] tables, scanning URLs",
            extra={"repo_type": type(repos).__name__},
        )
        REFERENCE_FETCHES.labels(result="partial").inc()
        repos = None

    if repos is None:
        urls = URL_PATTERN.findall(document)
    else:
        urls = [
            repo["url"]
            for repo in repos
            if isinstance(repo, dict) and isinstance(repo.get("url"), str)
        ]

    handles = set()
    for url in urls:
        owner = owner_from_url(url)
        if owner:
            handles.add(owner)
    return handles


def matches_reference(identity: str, handles: set[str] | frozenset[str]) -> bool:
    """True if the raw or normalized handle owns a reference repository."""
    return identity.lower() in handles or normalize_handle(identity) in handles


class ReferenceSetSource:
    """Fetches the reference document over HTTP.

    Parameters
    ----------
    url : str
        Location of the TOML reference document.
    http : HttpClient
        Client with a bounded timeout.
    token : SecretStr | None
        GitHub token sent with the request for a higher rate limit.
    """

    def __init__(self, url: str, http: HttpClient, token: SecretStr | None = None):
        self._url = url
        self._http = http
        self._token = token

    @property
    def url(self) -> str:
        return self._url

    async def fetch(self) -> set[str]:
        """Download and parse the document into owner handles."""
        headers = None
        if self._token is not None:
            headers = {"Authorization": f"token {self._token.get_secret_value()}"}
        document = await self._http.get_text(self._url, headers)
        return extract_owner_handles(document)


class EligibilityOracle:
    """Decide whether an identity may request a distribution.

    Parameters
    ----------
    store : KeyValueStore
        Store used for the reference-set cache.
    workflow : AccessWorkflow
        Source of admin allowlist decisions.
    source : ReferenceSetSource
        Remote reference document.
    cache_seconds : int
        TTL of the cached reference set.
    """

    def __init__(
        self,
        store: KeyValueStore,
        workflow: AccessWorkflow,
        source: ReferenceSetSource,
        cache_seconds: int = 3600,
    ):
        self._store = store
        self._workflow = workflow
        self._source = source
        self._cache_seconds = cache_seconds

    async def _cached_handles(self) -> frozenset[str] | None:
        try:
            raw = await self._store.get(REFERENCE_CACHE_KEY)
        except StoreError as e:
            logger.warning("Reference cache read failed", extra={"error": str(e)})
            return None
        if not raw:
            return None
        try:
            handles = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable reference cache")
            return None
        if not isinstance(handles, list):
            return None
        return frozenset(str(handle) for handle in handles)

    async def _store_handles(self, handles: set[str]) -> None:
        try:
            await self._store.set(
                REFERENCE_CACHE_KEY,
                json.dumps(sorted(handles)),
                ttl_seconds=self._cache_seconds,
            )
            logger.info("Cached reference handles", extra={"count": len(handles)})
        except StoreError as e:
            logger.warning("Reference cache write failed", extra={"error": str(e)})

    async def reference_handles(self) -> frozenset[str]:
        """Owner handles from the cache, or freshly fetched on a miss.

        Never raises; an unavailable document yields an empty set.
        """
        cached = await self._cached_handles()
        if cached is not None:
            REFERENCE_FETCHES.labels(result="cache_hit").inc()
            return cached

        logger.info("Fetching reference document", extra={"url": self._source.url})
        try:
            handles = await self._source.fetch()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            REFERENCE_FETCHES.labels(result="error").inc()
            logger.warning(
                "Reference document fetch failed",
                extra={"url": self._source.url, "error": str(e)},
            )
            return frozenset()
        except Exception as e:
            # Whatever the document holds, eligibility degrades to "not listed"
            REFERENCE_FETCHES.labels(result="error").inc()
            logger.warning(
                "Reference document could not be parsed",
                extra={"url": self._source.url, "error": str(e)},
                exc_info=True,
            )
            return frozenset()

        REFERENCE_FETCHES.labels(result="fetched").inc()
        # An empty set is not cached, so the next check retries the fetch
        if handles:
            await self._store_handles(handles)
        return frozenset(handles)

    async def is_allowlisted(self, identity: str) -> bool:
        return await self._workflow.is_allowlisted(identity)

    async def is_eligible(self, identity: str) -> bool:
        """Allowlisted, or owner of a repository in the reference set."""
        if await self._workflow.is_allowlisted(identity):
            return True

        eligible = matches_reference(identity, await self.reference_handles())
        logger.info(
            "Eligibility checked",
            extra={
                "identity": identity,
                "normalized": normalize_handle(identity),
                "eligible": eligible,
            },
        )
        return eligible
