"""Tests for the psycopg2 feed item repository with a mocked pool."""
import asyncio
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from src.realm_feed.exceptions import StaleWrite
from src.realm_feed.repository import PostgresFeedItemRepository
from src.realm_feed.scoring import VoteAction
from src.realm_feed.types import (
    Environment,
    FeedItemMetadata,
    RealmFeedItemType,
    RealmFeedItemVoteEntity,
    RealmFeedItemVoteType,
    VoteData,
)

from .fakes import NOW, REALM, make_entity


def _row(id=1, version=0, relevance=0):
    return {
        "id": id,
        "realm_public_key": REALM,
        "environment": "mainnet",
        "data": {"type": "Post", "ref": "post-1"},
        "metadata": {"relevanceScore": relevance, "rawScore": 0, "topAllTimeScore": 0},
        "created": NOW,
        "updated": NOW,
        "version": version,
    }


class FakePool:
    def __init__(self, cursor):
        self.cursor = cursor
        self.transactions = 0

    @contextmanager
    def transaction(self):
        self.transactions += 1
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = self.cursor
        yield conn


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def repository(cursor):
    return PostgresFeedItemRepository(pool=FakePool(cursor))


def test_get_feed_item_maps_row(repository, cursor):
    cursor.fetchall.return_value = [_row(id=3, version=2, relevance=4.5)]

    entity = asyncio.run(repository.get_feed_item(REALM, 3, Environment.MAINNET))

    assert entity.id == 3
    assert entity.version == 2
    assert entity.data.type == RealmFeedItemType.POST
    assert entity.metadata == FeedItemMetadata(relevance_score=4.5)
    assert cursor.execute.call_args[0][1] == (3, REALM, "mainnet")


def test_get_feed_item_missing(repository, cursor):
    cursor.fetchall.return_value = []
    assert asyncio.run(repository.get_feed_item(REALM, 3, Environment.MAINNET)) is None


def test_proposal_lookup_without_refs_skips_database(repository):
    assert asyncio.run(repository.list_proposal_feed_items(REALM, Environment.MAINNET, [])) == []
    assert repository.pool.transactions == 0


def test_save_inserts_new_and_updates_existing(repository, cursor):
    cursor.fetchone.side_effect = [_row(id=1, version=1), _row(id=2, version=0)]
    existing = make_entity(1, RealmFeedItemType.POST, "post-1")
    new = make_entity(None, RealmFeedItemType.PROPOSAL, "prop-1")

    saved = asyncio.run(repository.save_feed_items([existing, new]))

    assert [e.id for e in saved] == [1, 2]
    update_sql, insert_sql = (call[0][0] for call in cursor.execute.call_args_list)
    assert "UPDATE realm_feed_item" in update_sql
    assert "version = version + 1" in update_sql
    assert "INSERT INTO realm_feed_item" in insert_sql
    assert repository.pool.transactions == 1


def test_update_on_stale_version_raises(repository, cursor):
    cursor.fetchone.return_value = None

    with pytest.raises(StaleWrite):
        asyncio.run(repository.save_feed_items([make_entity(1, RealmFeedItemType.POST, "post-1")]))


@pytest.mark.parametrize("action, statement", [
    (VoteAction.CREATE, "INSERT INTO realm_feed_item_vote"),
    (VoteAction.UPDATE, "UPDATE realm_feed_item_vote"),
    (VoteAction.DELETE, "DELETE FROM realm_feed_item_vote"),
])
def test_commit_vote_writes_vote_and_item_together(repository, cursor, action, statement):
    cursor.fetchone.return_value = _row(id=1, version=1, relevance=3)
    vote = RealmFeedItemVoteEntity(
        feed_item_id=1,
        user_id="user-1",
        realm_public_key=REALM,
        data=VoteData(type=RealmFeedItemVoteType.APPROVE, relevance_weight=3),
    )

    saved = asyncio.run(repository.commit_vote(make_entity(1, RealmFeedItemType.POST, "post-1"), action, vote))

    vote_sql, item_sql = (call[0][0] for call in cursor.execute.call_args_list)
    assert statement in vote_sql
    assert "UPDATE realm_feed_item" in item_sql
    assert saved.metadata.relevance_score == 3
    assert repository.pool.transactions == 1
