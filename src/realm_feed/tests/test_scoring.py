"""Tests for vote scoring transitions."""
from datetime import timedelta

import pytest

from src.realm_feed.scoring import VoteAction, apply_vote, relevance_weight
from src.realm_feed.types import (
    FeedItemMetadata,
    RealmFeedItemType,
    RealmFeedItemVoteType,
)

from .fakes import NOW, make_entity

APPROVE = RealmFeedItemVoteType.APPROVE
DISAPPROVE = RealmFeedItemVoteType.DISAPPROVE


def _item(age_hours: float = 0, metadata: FeedItemMetadata = None):
    return make_entity(
        7,
        RealmFeedItemType.POST,
        "post-7",
        created=NOW - timedelta(hours=age_hours),
        metadata=metadata,
    )


class TestRelevanceWeight:
    @pytest.mark.parametrize("age_hours, expected", [
        (0, 1),
        (0.5, 1),
        (3.9, 1),
        (4, 1),
        (5, 2),
        (8, 2),
        (9, 3),
        (48, 12),
    ])
    def test_weight_grows_with_age(self, age_hours, expected):
        assert relevance_weight(NOW - timedelta(hours=age_hours), NOW) == expected

    def test_future_created_clamps_to_one(self):
        assert relevance_weight(NOW + timedelta(hours=10), NOW) == 1

    def test_custom_divisor(self):
        assert relevance_weight(NOW - timedelta(hours=10), NOW, hours_per_unit=2) == 5


class TestNewVote:
    def test_approve_adds_weight(self):
        outcome = apply_vote(_item(age_hours=12), None, APPROVE, "user-1", NOW)

        assert outcome.action == VoteAction.CREATE
        assert outcome.metadata.relevance_score == 3
        assert outcome.metadata.raw_score == 1
        assert outcome.metadata.top_all_time_score == 1
        assert outcome.vote.user_id == "user-1"
        assert outcome.vote.feed_item_id == 7
        assert outcome.vote.data.type == APPROVE
        assert outcome.vote.data.relevance_weight == 3

    def test_disapprove_subtracts_weight(self):
        outcome = apply_vote(_item(age_hours=12), None, DISAPPROVE, "user-1", NOW)

        assert outcome.metadata.relevance_score == -3
        assert outcome.metadata.raw_score == -1
        assert outcome.metadata.top_all_time_score == -1

    def test_vote_on_brand_new_item_has_weight_one(self):
        outcome = apply_vote(_item(age_hours=0), None, APPROVE, "user-1", NOW)
        assert outcome.vote.data.relevance_weight == 1
        assert outcome.metadata.relevance_score == 1

    def test_input_snapshot_is_untouched(self):
        item = _item(age_hours=12)
        apply_vote(item, None, APPROVE, "user-1", NOW)
        assert item.metadata == FeedItemMetadata()


class TestExistingVote:
    def test_repeat_vote_reverts_exactly(self):
        baseline = FeedItemMetadata(relevance_score=10.5, raw_score=4, top_all_time_score=6)
        item = _item(age_hours=12, metadata=baseline)

        cast = apply_vote(item, None, APPROVE, "user-1", NOW)
        assert cast.metadata.relevance_score == 13.5

        voted = item.model_copy(update={"metadata": cast.metadata})
        withdrawn = apply_vote(voted, cast.vote, APPROVE, "user-1", NOW + timedelta(days=3))

        assert withdrawn.action == VoteAction.DELETE
        assert withdrawn.metadata == baseline

    def test_repeat_disapprove_reverts_exactly(self):
        item = _item(age_hours=30)
        cast = apply_vote(item, None, DISAPPROVE, "user-1", NOW)
        voted = item.model_copy(update={"metadata": cast.metadata})

        withdrawn = apply_vote(voted, cast.vote, DISAPPROVE, "user-1", NOW)
        assert withdrawn.metadata == FeedItemMetadata()

    def test_withdraw_uses_stored_weight_not_current_age(self):
        item = _item(age_hours=0)
        cast = apply_vote(item, None, APPROVE, "user-1", NOW)
        voted = item.model_copy(update={"metadata": cast.metadata})

        # The item is a week older by now, but the stored weight of 1 is what gets removed
        withdrawn = apply_vote(voted, cast.vote, APPROVE, "user-1", NOW + timedelta(days=7))
        assert withdrawn.metadata.relevance_score == 0

    def test_flip_applies_double_stored_weight(self):
        item = _item(age_hours=12)
        approved = apply_vote(item, None, APPROVE, "user-1", NOW)
        assert approved.vote.data.relevance_weight == 3

        voted = item.model_copy(update={"metadata": approved.metadata})
        flipped = apply_vote(voted, approved.vote, DISAPPROVE, "user-1", NOW + timedelta(days=2))

        assert flipped.action == VoteAction.UPDATE
        assert flipped.metadata.relevance_score - approved.metadata.relevance_score == -6
        assert flipped.metadata.raw_score - approved.metadata.raw_score == -2
        assert flipped.metadata.top_all_time_score == -1
        assert flipped.vote.data.type == DISAPPROVE
        assert flipped.vote.data.relevance_weight == 3

    def test_flip_back_to_approve(self):
        item = _item(age_hours=12)
        disapproved = apply_vote(item, None, DISAPPROVE, "user-1", NOW)
        voted = item.model_copy(update={"metadata": disapproved.metadata})

        flipped = apply_vote(voted, disapproved.vote, APPROVE, "user-1", NOW)
        assert flipped.metadata.relevance_score == 3
        assert flipped.metadata.raw_score == 1
        assert flipped.metadata.top_all_time_score == 1
