"""
Realm feed backend.

FastAPI service that ranks a Realm's posts and governance proposals into a
single paginated feed, records member votes and keeps proposal feed items
in sync with the governance indexer.
"""

__all__ = [
]
