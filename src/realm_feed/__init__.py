"""
Realm feed.

Aggregates posts and governance proposals of a Realm into one ranked feed:
- cursor-paginated feed and member lists
- member approve/disapprove votes that move each item's relevance score
- reconciliation of proposal feed items with the governance indexer
"""
from src.realm_feed.member_service import RealmMemberService
from src.realm_feed.router import router
from src.realm_feed.service import RealmFeedItemService

__all__ = [
    "RealmFeedItemService",
    "RealmMemberService",
    "router",
]
