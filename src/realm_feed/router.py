"""
FastAPI routes for the Realm feed and member list.

The environment comes from the `X-Environment` header. The requesting user
is read from `request.state.user`, which the middleware configured through
AUTH_MIDDLEWARE populates for authenticated requests and leaves unset
otherwise. Without one every request is anonymous and votes answer 403.
`POST /feed/sync` takes no user and is meant for internal schedulers; expose
it only behind network-level access control.
"""
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from src.utils.logger import logger

from .exceptions import RealmFeedError
from .member_service import RealmMemberService
from .providers import GovernanceApiClient, PostgresPostProvider
from .repository import PostgresFeedItemRepository
from .service import RealmFeedItemService
from .types import (
    Connection,
    Environment,
    RealmFeedItem,
    RealmFeedItemProposal,
    RealmFeedItemSort,
    RealmMember,
    RealmMemberSort,
    SyncResult,
    User,
    VoteRequest,
)

router = APIRouter(prefix="/realms/{realm_public_key}", tags=["realm-feed"])


@lru_cache(maxsize=1)
def get_governance_client() -> GovernanceApiClient:
    return GovernanceApiClient()


@lru_cache(maxsize=1)
def get_feed_service() -> RealmFeedItemService:
    return RealmFeedItemService(
        repository=PostgresFeedItemRepository(),
        post_provider=PostgresPostProvider(),
        proposal_provider=get_governance_client(),
    )


@lru_cache(maxsize=1)
def get_member_service() -> RealmMemberService:
    return RealmMemberService(member_provider=get_governance_client())


def get_environment(
    x_environment: Environment = Header(Environment.MAINNET, alias="X-Environment"),
) -> Environment:
    return x_environment


def get_optional_user(request: Request) -> Optional[User]:
    """The authenticated member, or None for anonymous requests."""
    user: Any = getattr(request.state, "user", None)
    if user is None:
        return None
    if isinstance(user, User):
        return user
    user_id = user.get("id") or user.get("sub")
    if not user_id:
        # A principal without an id cannot own a vote
        return None
    return User(
        id=str(user_id),
        public_key=user.get("public_key") or user.get("publicKey") or "",
    )


async def realm_feed_error_handler(request: Request, exc: RealmFeedError) -> JSONResponse:
    if exc.code >= 500:
        logger.error("Router: %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.code, content=exc.to_dict())


@router.get("/feed", response_model=Connection[RealmFeedItem])
async def get_feed(
    realm_public_key: str,
    sort: RealmFeedItemSort = Query(RealmFeedItemSort.RELEVANCE, description="Sort order for the feed"),
    after: Optional[str] = None,
    before: Optional[str] = None,
    first: Optional[int] = None,
    last: Optional[int] = None,
    environment: Environment = Depends(get_environment),
    user: Optional[User] = Depends(get_optional_user),
    service: RealmFeedItemService = Depends(get_feed_service),
):
    return await service.get_feed_items_list(
        realm_public_key,
        user.public_key if user else None,
        sort,
        environment,
        after=after,
        before=before,
        first=first,
        last=last,
    )


@router.get("/feed/pinned", response_model=List[RealmFeedItemProposal])
async def get_pinned_feed(
    realm_public_key: str,
    environment: Environment = Depends(get_environment),
    user: Optional[User] = Depends(get_optional_user),
    service: RealmFeedItemService = Depends(get_feed_service),
):
    return await service.get_pinned_feed_items(
        realm_public_key, user.public_key if user else None, environment
    )


@router.post("/feed/sync", response_model=SyncResult)
async def sync_feed(
    realm_public_key: str,
    environment: Environment = Depends(get_environment),
    service: RealmFeedItemService = Depends(get_feed_service),
):
    items = await service.sync_proposals_to_feed_items(realm_public_key, environment)
    return SyncResult(count=len(items), items=items)


@router.get("/feed/{feed_item_id}", response_model=RealmFeedItem)
async def get_feed_item(
    realm_public_key: str,
    feed_item_id: int,
    environment: Environment = Depends(get_environment),
    user: Optional[User] = Depends(get_optional_user),
    service: RealmFeedItemService = Depends(get_feed_service),
):
    return await service.get_feed_item(
        realm_public_key, feed_item_id, user.public_key if user else None, environment
    )


@router.post("/feed/{feed_item_id}/vote", response_model=RealmFeedItem)
async def vote_on_feed_item(
    realm_public_key: str,
    feed_item_id: int,
    body: VoteRequest,
    environment: Environment = Depends(get_environment),
    user: Optional[User] = Depends(get_optional_user),
    service: RealmFeedItemService = Depends(get_feed_service),
):
    return await service.submit_vote(realm_public_key, feed_item_id, body.type, user, environment)


@router.get("/members", response_model=Connection[RealmMember])
async def get_members(
    realm_public_key: str,
    sort: RealmMemberSort = Query(RealmMemberSort.ALPHABETICAL, description="Sort order for the list"),
    after: Optional[str] = None,
    before: Optional[str] = None,
    first: Optional[int] = None,
    last: Optional[int] = None,
    environment: Environment = Depends(get_environment),
    service: RealmMemberService = Depends(get_member_service),
):
    return await service.get_member_list(
        realm_public_key, sort, environment, after=after, before=before, first=first, last=last
    )


@router.get("/members/count")
async def get_members_count(
    realm_public_key: str,
    environment: Environment = Depends(get_environment),
    service: RealmMemberService = Depends(get_member_service),
) -> dict:
    return {"count": await service.get_members_count(realm_public_key, environment)}
