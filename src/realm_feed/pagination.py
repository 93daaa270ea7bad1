"""
Relay-style pagination over fully materialized, already sorted sequences.

Exactly one request shape is served per call:

- ``first=N``: head of the list
- ``last=N``: tail of the list
- ``after=C`` (optionally with ``first``): items strictly after the cursor
- ``before=C`` (optionally with ``last``): items strictly before the cursor

A cursor whose item has disappeared from the sequence yields an empty page
rather than an error, since the item may have been removed between requests.
"""
from enum import Enum
from functools import cmp_to_key
from typing import Callable, Generic, List, Sequence, TypeVar, Union

from src.config.common_settings import FEED_PAGE_SIZE

from .cursor import decode_cursor, encode_cursor, sort_tag
from .exceptions import MalformedData
from .types import Connection, ConnectionArgs, Edge, PageInfo, RealmMember

T = TypeVar("T")


class Paginator(Generic[T]):
    """Slices an ordered sequence into a Connection page."""

    def __init__(self, identity: Callable[[T], str], page_size: int = FEED_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.identity = identity
        self.page_size = page_size

    def paginate(
        self,
        items: Sequence[T],
        sort_order: Union[str, Enum],
        args: ConnectionArgs,
    ) -> Connection[T]:
        self.validate_args(args)

        if args.after is not None:
            count = args.first if args.first is not None else self.page_size
            page = self._after(items, args.after, count, sort_order)
            edges = self._build_edges(page, sort_order)
            return Connection(
                edges=edges,
                page_info=PageInfo(
                    has_next_page=len(edges) > 0,
                    has_previous_page=True,
                    start_cursor=args.after,
                    end_cursor=edges[-1].cursor if edges else None,
                ),
            )

        if args.before is not None:
            count = args.last if args.last is not None else self.page_size
            page = self._before(items, args.before, count, sort_order)
            edges = self._build_edges(page, sort_order)
            return Connection(
                edges=edges,
                page_info=PageInfo(
                    has_next_page=True,
                    has_previous_page=len(edges) > 0,
                    start_cursor=edges[0].cursor if edges else None,
                    end_cursor=args.before,
                ),
            )

        if args.first is not None:
            edges = self._build_edges(list(items[:args.first]), sort_order)
            return Connection(
                edges=edges,
                page_info=PageInfo(
                    has_next_page=len(edges) > 0,
                    has_previous_page=False,
                    start_cursor=None,
                    end_cursor=edges[-1].cursor if edges else None,
                ),
            )

        edges = self._build_edges(list(items[-args.last:]) if args.last else [], sort_order)
        return Connection(
            edges=edges,
            page_info=PageInfo(
                has_next_page=False,
                has_previous_page=len(edges) > 0,
                start_cursor=edges[0].cursor if edges else None,
                end_cursor=None,
            ),
        )

    def cursor_for(self, item: T, sort_order: Union[str, Enum]) -> str:
        return encode_cursor(self.identity(item), sort_order)

    @staticmethod
    def validate_args(args: ConnectionArgs) -> None:
        for count in (args.first, args.last):
            if count is not None and count < 0:
                raise MalformedData("Page counts must not be negative")

        if args.after is not None:
            valid = args.before is None and args.last is None
        elif args.before is not None:
            valid = args.first is None
        else:
            valid = (args.first is None) != (args.last is None)

        if not valid:
            raise MalformedData("Exactly one of first, last, after or before must be given")

    def _after(self, items: Sequence[T], cursor: str, n: int, sort_order) -> List[T]:
        target = self._parse(cursor, sort_order)
        for index, item in enumerate(items):
            if self.identity(item) == target:
                return list(items[index + 1:index + 1 + n])
        return []

    def _before(self, items: Sequence[T], cursor: str, n: int, sort_order) -> List[T]:
        target = self._parse(cursor, sort_order)
        for index, item in enumerate(items):
            if self.identity(item) == target:
                return list(items[max(0, index - n):index])
        return []

    @staticmethod
    def _parse(cursor: str, sort_order) -> str:
        decoded = decode_cursor(cursor)
        if decoded.sort_order != sort_tag(sort_order):
            raise MalformedData("Cursor was created for a different sort order")
        return decoded.id

    def _build_edges(self, items: List[T], sort_order) -> List[Edge[T]]:
        return [Edge(node=item, cursor=self.cursor_for(item, sort_order)) for item in items]


def sort_alphabetically(a: RealmMember, b: RealmMember) -> int:
    """Strict total order on members: named before nameless, then by public key."""
    if a.name and b.name:
        a_name, b_name = a.name.casefold(), b.name.casefold()
        if a_name != b_name:
            return -1 if a_name < b_name else 1
    elif a.name:
        return -1
    elif b.name:
        return 1

    if a.public_key == b.public_key:
        return 0
    return -1 if a.public_key < b.public_key else 1


def sort_members(members: Sequence[RealmMember]) -> List[RealmMember]:
    return sorted(members, key=cmp_to_key(sort_alphabetically))
