"""
Storage for feed items and votes.

`FeedItemRepository` is the persistence contract the feed service depends on.
`PostgresFeedItemRepository` implements it with psycopg2. Each public method
runs in a single transaction on a worker thread so the event loop is never
blocked on the driver.

Rows carry an integer `version`. Updates are conditional on the version the
caller read, and a lost race surfaces as StaleWrite with the whole
transaction rolled back.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from psycopg2.extras import Json, RealDictCursor

from src.services.connection_pool import DatabaseConnectionPool, get_connection_pool
from src.utils.logger import logger

from .exceptions import StaleWrite
from .scoring import VoteAction
from .types import (
    Environment,
    FeedItemData,
    FeedItemMetadata,
    RealmFeedItemEntity,
    RealmFeedItemType,
    RealmFeedItemVoteEntity,
    VoteData,
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS realm_feed_item (
    id SERIAL PRIMARY KEY,
    realm_public_key TEXT NOT NULL,
    environment TEXT NOT NULL,
    data JSONB NOT NULL,
    metadata JSONB NOT NULL,
    created TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated TIMESTAMPTZ NOT NULL DEFAULT now(),
    version INTEGER NOT NULL DEFAULT 0
);
CREATE UNIQUE INDEX IF NOT EXISTS realm_feed_item_source_idx
    ON realm_feed_item (realm_public_key, environment, (data->>'type'), (data->>'ref'));

CREATE TABLE IF NOT EXISTS realm_feed_item_vote (
    feed_item_id INTEGER NOT NULL REFERENCES realm_feed_item (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    realm_public_key TEXT NOT NULL,
    data JSONB NOT NULL,
    created TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (feed_item_id, user_id)
);
"""

_FEED_ITEM_COLUMNS = "id, realm_public_key, environment, data, metadata, created, updated, version"


class FeedItemRepository(ABC):
    """Persistence contract for feed items and their votes."""

    @abstractmethod
    async def get_feed_item(
        self, realm_public_key: str, id: int, environment: Environment
    ) -> Optional[RealmFeedItemEntity]:
        ...

    @abstractmethod
    async def list_feed_items(
        self, realm_public_key: str, environment: Environment
    ) -> List[RealmFeedItemEntity]:
        ...

    @abstractmethod
    async def list_proposal_feed_items(
        self, realm_public_key: str, environment: Environment, refs: Sequence[str]
    ) -> List[RealmFeedItemEntity]:
        ...

    @abstractmethod
    async def save_feed_items(self, entities: Sequence[RealmFeedItemEntity]) -> List[RealmFeedItemEntity]:
        """Insert new rows and update existing ones in one batch."""

    @abstractmethod
    async def get_vote(
        self, feed_item_id: int, user_id: str, realm_public_key: str
    ) -> Optional[RealmFeedItemVoteEntity]:
        ...

    @abstractmethod
    async def commit_vote(
        self,
        feed_item: RealmFeedItemEntity,
        action: VoteAction,
        vote: RealmFeedItemVoteEntity,
    ) -> RealmFeedItemEntity:
        """Apply the vote row change and the feed item's new score atomically."""


def _row_to_feed_item(row: Dict[str, Any]) -> RealmFeedItemEntity:
    return RealmFeedItemEntity(
        id=row["id"],
        realm_public_key=row["realm_public_key"],
        environment=Environment(row["environment"]),
        data=FeedItemData.model_validate(row["data"]),
        metadata=FeedItemMetadata.model_validate(row["metadata"]),
        created=row["created"],
        updated=row["updated"],
        version=row["version"],
    )


class PostgresFeedItemRepository(FeedItemRepository):
    """psycopg2-backed feed item store."""

    def __init__(self, pool: Optional[DatabaseConnectionPool] = None):
        self._pool = pool

    @property
    def pool(self) -> DatabaseConnectionPool:
        return self._pool or get_connection_pool()

    def ensure_schema(self) -> None:
        with self.pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
        logger.info("PostgresFeedItemRepository: schema ensured")

    def _fetch_feed_items(self, query: str, params: Sequence[Any]) -> List[RealmFeedItemEntity]:
        with self.pool.transaction() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                return [_row_to_feed_item(row) for row in cur.fetchall()]

    async def get_feed_item(self, realm_public_key, id, environment):
        rows = await asyncio.to_thread(
            self._fetch_feed_items,
            f"SELECT {_FEED_ITEM_COLUMNS} FROM realm_feed_item "
            "WHERE id = %s AND realm_public_key = %s AND environment = %s",
            (id, realm_public_key, environment.value),
        )
        return rows[0] if rows else None

    async def list_feed_items(self, realm_public_key, environment):
        return await asyncio.to_thread(
            self._fetch_feed_items,
            f"SELECT {_FEED_ITEM_COLUMNS} FROM realm_feed_item "
            "WHERE realm_public_key = %s AND environment = %s",
            (realm_public_key, environment.value),
        )

    async def list_proposal_feed_items(self, realm_public_key, environment, refs):
        if not refs:
            return []
        return await asyncio.to_thread(
            self._fetch_feed_items,
            f"SELECT {_FEED_ITEM_COLUMNS} FROM realm_feed_item "
            "WHERE realm_public_key = %s AND environment = %s "
            "AND data->>'type' = %s AND data->>'ref' = ANY(%s)",
            (realm_public_key, environment.value, RealmFeedItemType.PROPOSAL.value, list(refs)),
        )

    async def save_feed_items(self, entities):
        return await asyncio.to_thread(self._save_feed_items, list(entities))

    def _save_feed_items(self, entities: List[RealmFeedItemEntity]) -> List[RealmFeedItemEntity]:
        saved: List[RealmFeedItemEntity] = []
        with self.pool.transaction() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                for entity in entities:
                    if entity.id is None:
                        saved.append(self._insert_feed_item(cur, entity))
                    else:
                        saved.append(self._update_feed_item(cur, entity))
        return saved

    @staticmethod
    def _insert_feed_item(cur, entity: RealmFeedItemEntity) -> RealmFeedItemEntity:
        cur.execute(
            f"""
            INSERT INTO realm_feed_item (realm_public_key, environment, data, metadata, created, updated)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_FEED_ITEM_COLUMNS}
            """,
            (
                entity.realm_public_key,
                entity.environment.value,
                Json(entity.data.model_dump(mode="json")),
                Json(entity.metadata.model_dump(by_alias=True)),
                entity.created,
                entity.updated,
            ),
        )
        return _row_to_feed_item(cur.fetchone())

    @staticmethod
    def _update_feed_item(cur, entity: RealmFeedItemEntity) -> RealmFeedItemEntity:
        cur.execute(
            f"""
            UPDATE realm_feed_item
            SET metadata = %s, updated = %s, version = version + 1
            WHERE id = %s AND version = %s
            RETURNING {_FEED_ITEM_COLUMNS}
            """,
            (
                Json(entity.metadata.model_dump(by_alias=True)),
                entity.updated,
                entity.id,
                entity.version,
            ),
        )
        row = cur.fetchone()
        if row is None:
            raise StaleWrite(entity.id)
        return _row_to_feed_item(row)

    async def get_vote(self, feed_item_id, user_id, realm_public_key):
        return await asyncio.to_thread(self._get_vote, feed_item_id, user_id, realm_public_key)

    def _get_vote(self, feed_item_id: int, user_id: str, realm_public_key: str) -> Optional[RealmFeedItemVoteEntity]:
        with self.pool.transaction() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT feed_item_id, user_id, realm_public_key, data
                    FROM realm_feed_item_vote
                    WHERE feed_item_id = %s AND user_id = %s AND realm_public_key = %s
                    """,
                    (feed_item_id, user_id, realm_public_key),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return RealmFeedItemVoteEntity(
            feed_item_id=row["feed_item_id"],
            user_id=row["user_id"],
            realm_public_key=row["realm_public_key"],
            data=VoteData.model_validate(row["data"]),
        )

    async def commit_vote(self, feed_item, action, vote):
        return await asyncio.to_thread(self._commit_vote, feed_item, action, vote)

    def _commit_vote(
        self,
        feed_item: RealmFeedItemEntity,
        action: VoteAction,
        vote: RealmFeedItemVoteEntity,
    ) -> RealmFeedItemEntity:
        vote_data = Json(vote.data.model_dump(by_alias=True, mode="json"))
        with self.pool.transaction() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                if action == VoteAction.CREATE:
                    cur.execute(
                        """
                        INSERT INTO realm_feed_item_vote (feed_item_id, user_id, realm_public_key, data)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (vote.feed_item_id, vote.user_id, vote.realm_public_key, vote_data),
                    )
                elif action == VoteAction.UPDATE:
                    cur.execute(
                        """
                        UPDATE realm_feed_item_vote SET data = %s, updated = now()
                        WHERE feed_item_id = %s AND user_id = %s
                        """,
                        (vote_data, vote.feed_item_id, vote.user_id),
                    )
                else:
                    cur.execute(
                        "DELETE FROM realm_feed_item_vote WHERE feed_item_id = %s AND user_id = %s",
                        (vote.feed_item_id, vote.user_id),
                    )
                return self._update_feed_item(cur, feed_item)
