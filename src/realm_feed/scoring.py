"""
Relevance scoring for feed item votes.

Pure functions: given the current score snapshot, the member's standing vote
(if any) and the incoming vote type, compute the next snapshot and what must
happen to the vote row. Nothing here touches storage.

A vote's relevance weight is fixed when the vote is first cast. Toggling the
vote off or flipping its direction reuses the stored weight, so a member's
influence never grows as the item ages.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from src.config.common_settings import RELEVANCE_WEIGHT_HOURS

from .types import (
    FeedItemMetadata,
    RealmFeedItemEntity,
    RealmFeedItemVoteEntity,
    RealmFeedItemVoteType,
    VoteData,
)


class VoteAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class VoteOutcome:
    """Result of applying one vote submission."""
    metadata: FeedItemMetadata
    action: VoteAction
    vote: RealmFeedItemVoteEntity


def relevance_weight(created: datetime, now: datetime, hours_per_unit: int = RELEVANCE_WEIGHT_HOURS) -> int:
    """Weight of a new vote: one unit per started block of item age, never below 1."""
    hours = int((now - created).total_seconds() // 3600)
    return max(1, math.ceil(hours / hours_per_unit))


def shift_metadata(metadata: FeedItemMetadata, weight: float, votes: int) -> FeedItemMetadata:
    """New snapshot with `weight` added to relevance and `votes` to both counters."""
    return metadata.model_copy(update={
        "relevance_score": metadata.relevance_score + weight,
        "raw_score": metadata.raw_score + votes,
        "top_all_time_score": metadata.top_all_time_score + votes,
    })


def _direction(vote_type: RealmFeedItemVoteType) -> int:
    return 1 if vote_type == RealmFeedItemVoteType.APPROVE else -1


def apply_vote(
    feed_item: RealmFeedItemEntity,
    existing_vote: Optional[RealmFeedItemVoteEntity],
    vote_type: RealmFeedItemVoteType,
    user_id: str,
    now: datetime,
    hours_per_unit: int = RELEVANCE_WEIGHT_HOURS,
) -> VoteOutcome:
    """Compute the score transition for `user_id` voting `vote_type` on `feed_item`."""
    metadata = feed_item.metadata

    # Same vote again: take it back
    if existing_vote is not None and existing_vote.data.type == vote_type:
        sign = -_direction(existing_vote.data.type)
        return VoteOutcome(
            metadata=shift_metadata(metadata, sign * existing_vote.data.relevance_weight, sign),
            action=VoteAction.DELETE,
            vote=existing_vote,
        )

    # Flipped vote: cancel the old direction and apply the new one
    if existing_vote is not None:
        sign = _direction(vote_type)
        weight = existing_vote.data.relevance_weight
        return VoteOutcome(
            metadata=shift_metadata(metadata, sign * 2 * weight, sign * 2),
            action=VoteAction.UPDATE,
            vote=existing_vote.model_copy(
                update={"data": VoteData(type=vote_type, relevance_weight=weight)}
            ),
        )

    weight = relevance_weight(feed_item.created, now, hours_per_unit)
    sign = _direction(vote_type)
    return VoteOutcome(
        metadata=shift_metadata(metadata, sign * weight, sign),
        action=VoteAction.CREATE,
        vote=RealmFeedItemVoteEntity(
            feed_item_id=feed_item.id,
            user_id=user_id,
            realm_public_key=feed_item.realm_public_key,
            data=VoteData(type=vote_type, relevance_weight=weight),
        ),
    )
