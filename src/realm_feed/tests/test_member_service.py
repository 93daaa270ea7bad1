"""Tests for RealmMemberService."""
import asyncio

import pytest

from src.realm_feed.exceptions import MalformedData, UnsupportedDevnet
from src.realm_feed.member_service import RealmMemberService
from src.realm_feed.types import Environment, RealmMember, RealmMemberSort

from .fakes import REALM, FakeGovernanceProvider

SORT = RealmMemberSort.ALPHABETICAL


def _service(members):
    governance = FakeGovernanceProvider(members=members)
    return RealmMemberService(governance, page_size=2, restricted_environments={"devnet"}), governance


MEMBERS = [
    RealmMember(public_key="k-zed"),
    RealmMember(public_key="k-bob", name="bob"),
    RealmMember(public_key="k-ann", name="Ann"),
    RealmMember(public_key="k-abe"),
]


class TestMemberList:
    def test_first_page_is_alphabetical(self):
        service, _ = _service(MEMBERS)
        page = asyncio.run(service.get_member_list(REALM, SORT, Environment.MAINNET, first=3))

        assert [e.node.public_key for e in page.edges] == ["k-ann", "k-bob", "k-abe"]
        assert page.page_info.has_next_page is True

    def test_after_uses_configured_page_size(self):
        service, _ = _service(MEMBERS)
        first = asyncio.run(service.get_member_list(REALM, SORT, Environment.MAINNET, first=1))
        rest = asyncio.run(service.get_member_list(
            REALM, SORT, Environment.MAINNET, after=first.page_info.end_cursor
        ))

        assert [e.node.public_key for e in rest.edges] == ["k-bob", "k-abe"]

    def test_invalid_arguments_skip_provider(self):
        service, governance = _service(MEMBERS)
        with pytest.raises(MalformedData):
            asyncio.run(service.get_member_list(REALM, SORT, Environment.MAINNET))
        assert governance.calls == 0

    def test_devnet_rejected(self):
        service, governance = _service(MEMBERS)
        with pytest.raises(UnsupportedDevnet):
            asyncio.run(service.get_member_list(REALM, SORT, Environment.DEVNET, first=1))
        with pytest.raises(UnsupportedDevnet):
            asyncio.run(service.get_members_count(REALM, Environment.DEVNET))
        assert governance.calls == 0


def test_member_count():
    service, _ = _service(MEMBERS)
    assert asyncio.run(service.get_members_count(REALM, Environment.MAINNET)) == 4
