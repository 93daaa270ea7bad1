"""
Providers for the payloads behind feed items.

Posts live in the local `realm_post` table. Proposals and members come from
the governance indexer over HTTP. The feed service only depends on the
abstract provider classes, so tests can substitute in-memory doubles.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx
from psycopg2.extras import RealDictCursor

from src.config.common_settings import GOVERNANCE_API_TIMEOUT, GOVERNANCE_API_URL
from src.services.connection_pool import DatabaseConnectionPool, get_connection_pool
from src.utils.logger import logger

from .types import Environment, RealmMember, RealmPost, RealmProposal


class PostProvider(ABC):
    @abstractmethod
    async def resolve_posts(
        self,
        realm_public_key: str,
        ids: Sequence[str],
        requesting_user: Optional[str],
        environment: Environment,
    ) -> Dict[str, RealmPost]:
        """Posts keyed by id. Unknown ids are absent from the mapping."""


class ProposalProvider(ABC):
    @abstractmethod
    async def resolve_proposals_for_realm(
        self,
        realm_public_key: str,
        environment: Environment,
    ) -> List[RealmProposal]:
        """All proposals of a realm in indexer order."""

    @abstractmethod
    async def resolve_proposals_by_ids(
        self,
        realm_public_key: str,
        ids: Sequence[str],
        requesting_user: Optional[str],
        environment: Environment,
    ) -> Dict[str, RealmProposal]:
        """Proposals keyed by public key. Proposals hidden from the user are absent."""


class MemberProvider(ABC):
    @abstractmethod
    async def resolve_members(
        self,
        realm_public_key: str,
        environment: Environment,
    ) -> List[RealmMember]:
        """All members of a realm, unordered."""


class PostgresPostProvider(PostProvider):
    """Reads posts from the `realm_post` table."""

    def __init__(self, pool: Optional[DatabaseConnectionPool] = None):
        self._pool = pool

    @property
    def pool(self) -> DatabaseConnectionPool:
        return self._pool or get_connection_pool()

    async def resolve_posts(self, realm_public_key, ids, requesting_user, environment):
        if not ids:
            return {}
        return await asyncio.to_thread(self._fetch_posts, realm_public_key, list(ids), environment)

    def _fetch_posts(self, realm_public_key: str, ids: List[str], environment: Environment) -> Dict[str, RealmPost]:
        with self.pool.transaction() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id::text AS id, realm_public_key, title, body, author, created, updated
                    FROM realm_post
                    WHERE environment = %s
                      AND realm_public_key = %s
                      AND id::text = ANY(%s)
                    """,
                    (environment.value, realm_public_key, ids),
                )
                rows = cur.fetchall()

        logger.debug("PostgresPostProvider: resolved %d of %d posts", len(rows), len(ids))
        return {row["id"]: RealmPost(**row) for row in rows}


class GovernanceAPIError(Exception):
    """Error response from the governance indexer."""

    def __init__(self, message: str, status_code: int, response: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(f"Governance API Error {status_code}: {message}")


class GovernanceApiClient(ProposalProvider, MemberProvider):
    """
    HTTP client for the governance indexer.

    Provides methods to:
    - List every proposal of a realm
    - Look up proposals by public key on behalf of a user
    - List the members of a realm
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = GOVERNANCE_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the governance indexer client.

        Args:
            base_url: Base URL of the indexer (default from GOVERNANCE_API_URL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or GOVERNANCE_API_URL).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _handle_response(self, response: httpx.Response) -> Dict[str, Any]:
        """
        Parse a response body, raising GovernanceAPIError on error statuses.
        """
        try:
            data = response.json()
        except ValueError:
            data = {"error": "Failed to parse response", "raw": response.text}

        if response.status_code >= 400:
            error_msg = "Unknown error"
            if isinstance(data, dict):
                error_msg = data.get("message") or data.get("error") or error_msg
            raise GovernanceAPIError(error_msg, response.status_code, data)

        if not isinstance(data, dict):
            raise GovernanceAPIError("Unexpected response shape", response.status_code, {"raw": data})
        return data

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(url, params=params)
        return self._handle_response(response)

    async def resolve_proposals_for_realm(self, realm_public_key, environment):
        logger.info("[GovernanceAPI] Listing proposals for realm=%s env=%s", realm_public_key, environment.value)
        data = await self._get(
            f"/realms/{realm_public_key}/proposals",
            {"environment": environment.value},
        )
        return [RealmProposal.model_validate(item) for item in data.get("proposals", [])]

    async def resolve_proposals_by_ids(self, realm_public_key, ids, requesting_user, environment):
        if not ids:
            return {}

        params: Dict[str, Any] = {"environment": environment.value, "ids": ",".join(ids)}
        if requesting_user:
            params["user"] = requesting_user

        data = await self._get(f"/realms/{realm_public_key}/proposals", params)
        wanted = set(ids)
        proposals = (RealmProposal.model_validate(item) for item in data.get("proposals", []))
        return {p.public_key: p for p in proposals if p.public_key in wanted}

    async def resolve_members(self, realm_public_key, environment):
        logger.info("[GovernanceAPI] Listing members for realm=%s env=%s", realm_public_key, environment.value)
        data = await self._get(
            f"/realms/{realm_public_key}/members",
            {"environment": environment.value},
        )
        return [RealmMember.model_validate(item) for item in data.get("members", [])]
