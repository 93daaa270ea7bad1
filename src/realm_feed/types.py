"""
Pydantic models for the Realm feed.

Storage rows (feed items, votes), payloads resolved from external providers
(posts, proposals, members), the typed feed item variants served to clients
and the Relay-style connection types used by paginated lists.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

NodeT = TypeVar("NodeT")


def as_utc(value: datetime) -> datetime:
    """Timestamps without an offset are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ===========================
# Enums
# ===========================

class Environment(str, Enum):
    """Network partition a request is scoped to."""
    MAINNET = "mainnet"
    DEVNET = "devnet"


class RealmFeedItemType(str, Enum):
    """Which provider resolves a feed item's payload."""
    POST = "Post"
    PROPOSAL = "Proposal"


class RealmFeedItemVoteType(str, Enum):
    APPROVE = "Approve"
    DISAPPROVE = "Disapprove"


class RealmFeedItemSort(str, Enum):
    """Sort orders for the feed."""
    NEW = "New"
    RELEVANCE = "Relevance"
    TOP_ALL_TIME = "TopAllTime"


class RealmMemberSort(str, Enum):
    """Sort orders for the member list."""
    ALPHABETICAL = "Alphabetical"


class RealmProposalState(str, Enum):
    """Lifecycle states reported by the governance indexer."""
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    DEFEATED = "Defeated"
    DRAFT = "Draft"
    EXECUTABLE = "Executable"
    EXECUTING_WITH_ERRORS = "ExecutingWithErrors"
    FINALIZING = "Finalizing"
    SIGNING_OFF = "SigningOff"
    VOTING = "Voting"


# ===========================
# Storage rows
# ===========================

class FeedItemData(BaseModel):
    """Pointer from a feed item to the post or proposal it represents."""
    model_config = ConfigDict(frozen=True)

    type: RealmFeedItemType
    ref: str


class FeedItemMetadata(BaseModel):
    """Score aggregate of a feed item. Immutable; scoring returns new snapshots."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    relevance_score: float = Field(0, alias="relevanceScore")
    raw_score: int = Field(0, alias="rawScore")
    top_all_time_score: int = Field(0, alias="topAllTimeScore")


class RealmFeedItemEntity(BaseModel):
    """A `realm_feed_item` row."""
    id: Optional[int] = None
    realm_public_key: str
    environment: Environment
    data: FeedItemData
    metadata: FeedItemMetadata = Field(default_factory=FeedItemMetadata)
    created: datetime
    updated: datetime
    version: int = 0

    utc_timestamps = field_validator("created", "updated")(as_utc)


class VoteData(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: RealmFeedItemVoteType
    relevance_weight: float = Field(..., alias="relevanceWeight")


class RealmFeedItemVoteEntity(BaseModel):
    """A `realm_feed_item_vote` row. One per (feed item, user)."""
    feed_item_id: int
    user_id: str
    realm_public_key: str
    data: VoteData


# ===========================
# Collaborator payloads
# ===========================

class User(BaseModel):
    """Authenticated member making a request."""
    id: str
    public_key: str


class RealmPost(BaseModel):
    id: str
    realm_public_key: str
    title: str
    body: Optional[str] = None
    author: Optional[str] = None
    created: datetime
    updated: datetime

    utc_timestamps = field_validator("created", "updated")(as_utc)


class RealmProposal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_key: str = Field(..., alias="publicKey")
    title: Optional[str] = None
    description: Optional[str] = None
    state: RealmProposalState
    created: datetime
    updated: datetime

    utc_timestamps = field_validator("created", "updated")(as_utc)


class RealmMember(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_key: str = Field(..., alias="publicKey")
    name: Optional[str] = None


# ===========================
# Feed items served to clients
# ===========================

class RealmFeedItemPost(BaseModel):
    type: Literal["Post"] = "Post"
    id: str
    created: datetime
    updated: datetime
    score: int
    post: RealmPost


class RealmFeedItemProposal(BaseModel):
    type: Literal["Proposal"] = "Proposal"
    id: str
    created: datetime
    updated: datetime
    score: int
    proposal: RealmProposal


RealmFeedItem = Annotated[
    Union[RealmFeedItemPost, RealmFeedItemProposal],
    Field(discriminator="type"),
]


# ===========================
# Connections
# ===========================

class ConnectionArgs(BaseModel):
    """Relay pagination arguments."""
    after: Optional[str] = Field(None, description="`after` cursor for pagination")
    before: Optional[str] = Field(None, description="`before` cursor for pagination")
    first: Optional[int] = Field(None, description="Count of items to grab from the head of the full list")
    last: Optional[int] = Field(None, description="Count of items to grab from the tail of the full list")


class PageInfo(BaseModel):
    has_next_page: bool = Field(..., description="If there are additional results after these")
    has_previous_page: bool = Field(..., description="If there are additional results before these")
    start_cursor: Optional[str] = Field(None, description="A cursor representing the head of the returned results")
    end_cursor: Optional[str] = Field(None, description="A cursor representing the end of the returned results")


class Edge(BaseModel, Generic[NodeT]):
    node: NodeT
    cursor: str


class Connection(BaseModel, Generic[NodeT]):
    edges: List[Edge[NodeT]] = Field(default_factory=list)
    page_info: PageInfo


class SyncResult(BaseModel):
    count: int
    items: List[RealmFeedItemEntity] = Field(default_factory=list)


class VoteRequest(BaseModel):
    type: RealmFeedItemVoteType
