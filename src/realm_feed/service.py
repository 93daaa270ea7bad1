"""
Realm feed aggregation service.

Composes stored feed item rows with the posts and proposals they point to,
serves single items, pinned proposals and the paginated feed, records member
votes, and keeps proposal feed items in step with the governance indexer.

Every operation checks the environment before touching storage or providers,
and any storage/provider failure surfaces as FeedException.
"""
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from src.config.common_settings import (
    FEED_PAGE_SIZE,
    RELEVANCE_WEIGHT_HOURS,
    RESTRICTED_ENVIRONMENTS,
)
from src.utils.logger import logger

from .exceptions import FeedException, NotFound, RealmFeedError, Unauthorized, UnsupportedDevnet
from .pagination import Paginator
from .providers import PostProvider, ProposalProvider
from .reconciliation import reconcile_proposals
from .repository import FeedItemRepository
from .scoring import apply_vote
from .types import (
    Connection,
    ConnectionArgs,
    Edge,
    Environment,
    RealmFeedItem,
    RealmFeedItemEntity,
    RealmFeedItemPost,
    RealmFeedItemProposal,
    RealmFeedItemSort,
    RealmFeedItemType,
    RealmFeedItemVoteType,
    RealmProposal,
    RealmProposalState,
    User,
)

T = TypeVar("T")

# Pinned proposals: Voting ranks above Executable
PINNED_STATE_PRIORITY = {
    RealmProposalState.VOTING: 20,
    RealmProposalState.EXECUTABLE: 10,
}


def ensure_supported_environment(
    environment: Environment,
    restricted: Iterable[str] = RESTRICTED_ENVIRONMENTS,
) -> None:
    """Reject restricted environments before any I/O happens."""
    if environment.value in restricted:
        logger.warning("Rejected request for restricted environment %s", environment.value)
        raise UnsupportedDevnet()


async def guarded(description: str, awaitable: Awaitable[T]) -> T:
    """Await a collaborator call, wrapping unexpected failures in FeedException."""
    try:
        return await awaitable
    except RealmFeedError:
        raise
    except Exception as e:
        logger.error("%s failed: %s", description, e, exc_info=True)
        raise FeedException(e) from e


def sort_feed_items(entities: Iterable[RealmFeedItemEntity], sort: RealmFeedItemSort) -> List[RealmFeedItemEntity]:
    """Order feed rows for `sort`, newest `updated` first on ties, then highest id."""
    if sort == RealmFeedItemSort.NEW:
        key = lambda e: (e.created, e.updated, e.id or 0)  # noqa: E731
    elif sort == RealmFeedItemSort.TOP_ALL_TIME:
        key = lambda e: (e.metadata.top_all_time_score, e.updated, e.id or 0)  # noqa: E731
    else:
        key = lambda e: (e.metadata.relevance_score, e.updated, e.id or 0)  # noqa: E731
    return sorted(entities, key=key, reverse=True)


def sort_pinned_proposals(proposals: Iterable[RealmProposal]) -> List[RealmProposal]:
    pinned = [p for p in proposals if p.state in PINNED_STATE_PRIORITY]
    return sorted(
        pinned,
        key=lambda p: (PINNED_STATE_PRIORITY[p.state], p.updated),
        reverse=True,
    )


class RealmFeedItemService:
    """Feed operations for one deployment's storage and providers."""

    def __init__(
        self,
        repository: FeedItemRepository,
        post_provider: PostProvider,
        proposal_provider: ProposalProvider,
        page_size: int = FEED_PAGE_SIZE,
        restricted_environments: Iterable[str] = RESTRICTED_ENVIRONMENTS,
        hours_per_weight: int = RELEVANCE_WEIGHT_HOURS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.post_provider = post_provider
        self.proposal_provider = proposal_provider
        self.paginator: Paginator[RealmFeedItemEntity] = Paginator(lambda e: str(e.id), page_size)
        self.restricted_environments = frozenset(restricted_environments)
        self.hours_per_weight = hours_per_weight
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _ensure_supported(self, environment: Environment) -> None:
        ensure_supported_environment(environment, self.restricted_environments)

    async def convert_entities_to_feed_items(
        self,
        realm_public_key: str,
        entities: Sequence[RealmFeedItemEntity],
        requesting_user: Optional[str],
        environment: Environment,
    ) -> Dict[str, RealmFeedItem]:
        """Resolve payloads for `entities` and key the resulting feed items by id."""
        self._ensure_supported(environment)

        posts = [e for e in entities if e.data.type == RealmFeedItemType.POST]
        proposals = [e for e in entities if e.data.type == RealmFeedItemType.PROPOSAL]

        feed_items: List[RealmFeedItem] = []
        feed_items.extend(await self._convert_post_entities(realm_public_key, posts, requesting_user, environment))
        feed_items.extend(
            await self._convert_proposal_entities(realm_public_key, proposals, requesting_user, environment)
        )
        return {item.id: item for item in feed_items}

    async def get_feed_item_entity(
        self,
        realm_public_key: str,
        id: int,
        environment: Environment,
    ) -> RealmFeedItemEntity:
        self._ensure_supported(environment)

        entity = await guarded(
            "RealmFeedItemService: loading feed item",
            self.repository.get_feed_item(realm_public_key, id, environment),
        )
        if entity is None:
            raise NotFound(f"Feed item {id} not found")
        return entity

    async def get_feed_item(
        self,
        realm_public_key: str,
        id: int,
        requesting_user: Optional[str],
        environment: Environment,
    ) -> RealmFeedItem:
        self._ensure_supported(environment)

        entity = await self.get_feed_item_entity(realm_public_key, id, environment)
        return await self._convert_entity_to_feed_item(realm_public_key, entity, requesting_user, environment)

    async def get_pinned_feed_items(
        self,
        realm_public_key: str,
        requesting_user: Optional[str],
        environment: Environment,
    ) -> List[RealmFeedItemProposal]:
        """Feed items of proposals that are voting or executable, most urgent first."""
        self._ensure_supported(environment)

        proposals = await guarded(
            "RealmFeedItemService: listing proposals",
            self.proposal_provider.resolve_proposals_for_realm(realm_public_key, environment),
        )
        pinned = sort_pinned_proposals(proposals)
        if not pinned:
            return []

        entities = await guarded(
            "RealmFeedItemService: loading pinned feed items",
            self.repository.list_proposal_feed_items(
                realm_public_key, environment, [p.public_key for p in pinned]
            ),
        )
        by_ref = {e.data.ref: e for e in entities}
        ordered = [by_ref[p.public_key] for p in pinned if p.public_key in by_ref]

        return await self._convert_proposal_entities(realm_public_key, ordered, requesting_user, environment)

    async def sync_proposals_to_feed_items(
        self,
        realm_public_key: str,
        environment: Environment,
    ) -> List[RealmFeedItemEntity]:
        """Bring proposal feed items in line with the indexer. Returns the rows written."""
        self._ensure_supported(environment)

        proposals = await guarded(
            "FeedReconciler: listing proposals",
            self.proposal_provider.resolve_proposals_for_realm(realm_public_key, environment),
        )
        existing = await guarded(
            "FeedReconciler: loading proposal feed items",
            self.repository.list_proposal_feed_items(
                realm_public_key, environment, [p.public_key for p in proposals]
            ),
        )

        plan = reconcile_proposals(realm_public_key, environment, proposals, existing, self.clock())
        if plan.is_noop:
            logger.debug("FeedReconciler: realm=%s env=%s already in sync", realm_public_key, environment.value)
            return []

        saved = await guarded(
            "FeedReconciler: saving feed items",
            self.repository.save_feed_items(plan.writes),
        )
        logger.info(
            "FeedReconciler: realm=%s env=%s created=%d updated=%d",
            realm_public_key, environment.value, len(plan.created), len(plan.updated),
        )
        return saved

    async def submit_vote(
        self,
        realm_public_key: str,
        id: int,
        vote_type: RealmFeedItemVoteType,
        requesting_user: Optional[User],
        environment: Environment,
    ) -> RealmFeedItem:
        """Approve or disapprove a feed item. Repeating a vote withdraws it."""
        self._ensure_supported(environment)

        if requesting_user is None:
            raise Unauthorized()

        feed_item = await self.get_feed_item_entity(realm_public_key, id, environment)
        existing_vote = await guarded(
            "RealmFeedItemService: loading vote",
            self.repository.get_vote(feed_item.id, requesting_user.id, realm_public_key),
        )

        now = self.clock()
        outcome = apply_vote(
            feed_item, existing_vote, vote_type, requesting_user.id, now, self.hours_per_weight
        )
        saved = await guarded(
            "RealmFeedItemService: saving vote",
            self.repository.commit_vote(
                feed_item.model_copy(update={"metadata": outcome.metadata, "updated": now}),
                outcome.action,
                outcome.vote,
            ),
        )
        logger.info(
            "RealmFeedItemService: %s %s vote on feed item %s (relevance %.2f -> %.2f)",
            outcome.action.value, vote_type.value, feed_item.id,
            feed_item.metadata.relevance_score, saved.metadata.relevance_score,
        )

        return await self._convert_entity_to_feed_item(
            realm_public_key, saved, requesting_user.public_key, environment
        )

    async def get_feed_items_list(
        self,
        realm_public_key: str,
        requesting_user: Optional[str],
        sort: RealmFeedItemSort,
        environment: Environment,
        after: Optional[str] = None,
        before: Optional[str] = None,
        first: Optional[int] = None,
        last: Optional[int] = None,
    ) -> Connection[RealmFeedItem]:
        """One page of the feed. Items whose payload cannot be resolved are left out."""
        self._ensure_supported(environment)

        args = ConnectionArgs(after=after, before=before, first=first, last=last)
        self.paginator.validate_args(args)

        entities = await guarded(
            "RealmFeedItemService: listing feed items",
            self.repository.list_feed_items(realm_public_key, environment),
        )
        page = self.paginator.paginate(sort_feed_items(entities, sort), sort, args)

        feed_items = await self.convert_entities_to_feed_items(
            realm_public_key, [edge.node for edge in page.edges], requesting_user, environment
        )
        edges = [
            Edge(node=feed_items[str(edge.node.id)], cursor=edge.cursor)
            for edge in page.edges
            if str(edge.node.id) in feed_items
        ]
        return Connection(edges=edges, page_info=page.page_info)

    async def _convert_entity_to_feed_item(
        self,
        realm_public_key: str,
        entity: RealmFeedItemEntity,
        requesting_user: Optional[str],
        environment: Environment,
    ) -> RealmFeedItem:
        if entity.data.type == RealmFeedItemType.POST:
            converted = await self._convert_post_entities(realm_public_key, [entity], requesting_user, environment)
        else:
            converted = await self._convert_proposal_entities(
                realm_public_key, [entity], requesting_user, environment
            )

        if not converted:
            raise NotFound(f"{entity.data.type.value} {entity.data.ref} not found")
        return converted[0]

    async def _convert_post_entities(
        self,
        realm_public_key: str,
        entities: Sequence[RealmFeedItemEntity],
        requesting_user: Optional[str],
        environment: Environment,
    ) -> List[RealmFeedItemPost]:
        if not entities:
            return []

        posts = await guarded(
            "RealmFeedItemService: resolving posts",
            self.post_provider.resolve_posts(
                realm_public_key, [e.data.ref for e in entities], requesting_user, environment
            ),
        )

        feed_items = []
        for entity in entities:
            post = posts.get(entity.data.ref)
            if post is None:
                logger.warning("RealmFeedItemService: post %s for feed item %s is missing",
                               entity.data.ref, entity.id)
                continue
            feed_items.append(RealmFeedItemPost(
                id=str(entity.id),
                created=entity.created,
                updated=entity.updated,
                score=entity.metadata.raw_score,
                post=post,
            ))
        return feed_items

    async def _convert_proposal_entities(
        self,
        realm_public_key: str,
        entities: Sequence[RealmFeedItemEntity],
        requesting_user: Optional[str],
        environment: Environment,
    ) -> List[RealmFeedItemProposal]:
        if not entities:
            return []

        proposals = await guarded(
            "RealmFeedItemService: resolving proposals",
            self.proposal_provider.resolve_proposals_by_ids(
                realm_public_key, [e.data.ref for e in entities], requesting_user, environment
            ),
        )

        # Proposals the provider does not return are hidden from this user
        return [
            RealmFeedItemProposal(
                id=str(entity.id),
                created=entity.created,
                updated=entity.updated,
                score=entity.metadata.raw_score,
                proposal=proposals[entity.data.ref],
            )
            for entity in entities
            if entity.data.ref in proposals
        ]
