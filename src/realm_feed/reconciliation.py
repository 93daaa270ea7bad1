"""
Reconciliation of proposal feed items against the governance indexer.

The indexer's proposal list is authoritative. Each sync diffs it against the
stored Proposal feed items of one realm and environment and yields the rows
to write: stored rows whose `updated` drifted, plus a fresh zero-scored row
for every proposal that has none yet.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List

from .types import (
    Environment,
    FeedItemData,
    FeedItemMetadata,
    RealmFeedItemEntity,
    RealmFeedItemType,
    RealmProposal,
)


@dataclass
class ReconciliationPlan:
    updated: List[RealmFeedItemEntity] = field(default_factory=list)
    created: List[RealmFeedItemEntity] = field(default_factory=list)

    @property
    def writes(self) -> List[RealmFeedItemEntity]:
        return [*self.updated, *self.created]

    @property
    def is_noop(self) -> bool:
        return not self.updated and not self.created


def reconcile_proposals(
    realm_public_key: str,
    environment: Environment,
    proposals: Iterable[RealmProposal],
    existing: Iterable[RealmFeedItemEntity],
    now: datetime,
) -> ReconciliationPlan:
    """Plan the writes that bring stored proposal feed items in line with `proposals`."""
    by_ref: Dict[str, RealmFeedItemEntity] = {
        entity.data.ref: entity
        for entity in existing
        if entity.data.type == RealmFeedItemType.PROPOSAL
    }

    plan = ReconciliationPlan()
    seen = set()

    for proposal in proposals:
        ref = proposal.public_key
        if ref in seen:
            continue
        seen.add(ref)

        entity = by_ref.get(ref)
        if entity is None:
            plan.created.append(RealmFeedItemEntity(
                realm_public_key=realm_public_key,
                environment=environment,
                data=FeedItemData(type=RealmFeedItemType.PROPOSAL, ref=ref),
                metadata=FeedItemMetadata(),
                created=now,
                updated=proposal.updated,
            ))
        elif entity.updated != proposal.updated:
            plan.updated.append(entity.model_copy(update={"updated": proposal.updated}))

    return plan
