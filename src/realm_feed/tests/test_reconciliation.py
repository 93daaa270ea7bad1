"""Tests for proposal feed item reconciliation."""
from datetime import datetime, timedelta, timezone

from src.realm_feed.reconciliation import reconcile_proposals
from src.realm_feed.types import Environment, FeedItemMetadata, RealmFeedItemType, RealmProposal

from .fakes import NOW, REALM, make_entity, make_proposal


def test_new_proposal_gets_zeroed_feed_item():
    proposal = make_proposal("prop-1")
    plan = reconcile_proposals(REALM, Environment.MAINNET, [proposal], [], NOW)

    assert plan.updated == []
    assert len(plan.created) == 1
    created = plan.created[0]
    assert created.id is None
    assert created.data.type == RealmFeedItemType.PROPOSAL
    assert created.data.ref == "prop-1"
    assert created.metadata == FeedItemMetadata(relevance_score=0, raw_score=0, top_all_time_score=0)
    assert created.updated == proposal.updated
    assert created.realm_public_key == REALM
    assert created.environment == Environment.MAINNET


def test_matching_timestamps_are_a_noop():
    proposal = make_proposal("prop-1")
    existing = make_entity(1, RealmFeedItemType.PROPOSAL, "prop-1", updated=proposal.updated)

    plan = reconcile_proposals(REALM, Environment.MAINNET, [proposal], [existing], NOW)
    assert plan.is_noop
    assert plan.writes == []


def test_timestamp_drift_marks_row_dirty():
    proposal = make_proposal("prop-1", updated=NOW)
    existing = make_entity(
        1, RealmFeedItemType.PROPOSAL, "prop-1",
        updated=NOW - timedelta(hours=5),
        metadata=FeedItemMetadata(relevance_score=4, raw_score=2, top_all_time_score=2),
    )

    plan = reconcile_proposals(REALM, Environment.MAINNET, [proposal], [existing], NOW)

    assert plan.created == []
    assert len(plan.updated) == 1
    assert plan.updated[0].id == 1
    assert plan.updated[0].updated == NOW
    assert plan.updated[0].metadata == existing.metadata
    # The row that was read is left as is
    assert existing.updated == NOW - timedelta(hours=5)


def test_only_dirty_and_new_rows_are_written():
    unchanged = make_proposal("prop-1")
    drifted = make_proposal("prop-2", updated=NOW)
    brand_new = make_proposal("prop-3")
    existing = [
        make_entity(1, RealmFeedItemType.PROPOSAL, "prop-1", updated=unchanged.updated),
        make_entity(2, RealmFeedItemType.PROPOSAL, "prop-2", updated=NOW - timedelta(days=1)),
    ]

    plan = reconcile_proposals(REALM, Environment.MAINNET, [unchanged, drifted, brand_new], existing, NOW)
    assert [e.data.ref for e in plan.writes] == ["prop-2", "prop-3"]


def test_duplicate_upstream_proposals_create_one_row():
    proposal = make_proposal("prop-1")
    plan = reconcile_proposals(REALM, Environment.MAINNET, [proposal, proposal], [], NOW)
    assert len(plan.created) == 1


def test_offsetless_upstream_timestamp_matches_stored_utc_row():
    proposal = RealmProposal.model_validate({
        "publicKey": "prop-1",
        "state": "Voting",
        "created": "2024-02-28T11:00:00",
        "updated": "2024-03-01T11:00:00",
    })
    stored = make_entity(
        1, RealmFeedItemType.PROPOSAL, "prop-1",
        updated=datetime(2024, 3, 1, 11, 0, tzinfo=timezone.utc),
    )

    assert proposal.updated.tzinfo is not None
    plan = reconcile_proposals(REALM, Environment.MAINNET, [proposal], [stored], NOW)
    assert plan.is_noop


def test_post_rows_never_match_proposals():
    proposal = make_proposal("shared-ref")
    post_row = make_entity(1, RealmFeedItemType.POST, "shared-ref", updated=proposal.updated)

    plan = reconcile_proposals(REALM, Environment.MAINNET, [proposal], [post_row], NOW)
    assert len(plan.created) == 1
