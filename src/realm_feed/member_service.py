"""
Realm member listing.

Members are fetched on demand from the governance indexer, sorted in memory
and paginated with the same cursor protocol as the feed.
"""
from typing import Iterable, List, Optional

from src.config.common_settings import FEED_PAGE_SIZE, RESTRICTED_ENVIRONMENTS

from .pagination import Paginator, sort_members
from .providers import MemberProvider
from .service import ensure_supported_environment, guarded
from .types import Connection, ConnectionArgs, Environment, RealmMember, RealmMemberSort


class RealmMemberService:
    def __init__(
        self,
        member_provider: MemberProvider,
        page_size: int = FEED_PAGE_SIZE,
        restricted_environments: Iterable[str] = RESTRICTED_ENVIRONMENTS,
    ):
        self.member_provider = member_provider
        self.paginator: Paginator[RealmMember] = Paginator(lambda m: m.public_key, page_size)
        self.restricted_environments = frozenset(restricted_environments)

    async def get_members_for_realm(self, realm_public_key: str, environment: Environment) -> List[RealmMember]:
        ensure_supported_environment(environment, self.restricted_environments)
        return await guarded(
            "RealmMemberService: listing members",
            self.member_provider.resolve_members(realm_public_key, environment),
        )

    async def get_members_count(self, realm_public_key: str, environment: Environment) -> int:
        members = await self.get_members_for_realm(realm_public_key, environment)
        return len(members)

    async def get_member_list(
        self,
        realm_public_key: str,
        sort: RealmMemberSort,
        environment: Environment,
        after: Optional[str] = None,
        before: Optional[str] = None,
        first: Optional[int] = None,
        last: Optional[int] = None,
    ) -> Connection[RealmMember]:
        ensure_supported_environment(environment, self.restricted_environments)

        args = ConnectionArgs(after=after, before=before, first=first, last=last)
        self.paginator.validate_args(args)

        members = await self.get_members_for_realm(realm_public_key, environment)
        # Alphabetical is the only member ordering
        return self.paginator.paginate(sort_members(members), sort, args)
