"""Tests for the idempotent membership command handler."""

from __future__ import annotations

import uuid

import pytest

from anonymous_reactions.reactions_protocol.commitments import UserCommitmentService, derive_commitment
from anonymous_reactions.service.membership import MembershipService
from anonymous_reactions.service.membership_events import MembershipCommandHandler
from anonymous_reactions.service.memory import InMemoryStore

FEED = uuid.UUID("eeeeeeee-0000-0000-0000-000000000001")


class StaticCredentials:
    def get_private_signing_key(self) -> str:
        return "11" * 32


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def membership(store: InMemoryStore) -> MembershipService:
    return MembershipService(store)


@pytest.fixture
def handler(membership: MembershipService) -> MembershipCommandHandler:
    return MembershipCommandHandler(membership)


@pytest.mark.trio
async def test_replayed_join_is_noop(handler, membership, store) -> None:
    first = await handler.member_joined(FEED, "alice", 10)
    replay = await handler.member_joined(FEED, "alice", 11)

    assert not first.already_registered
    assert replay.already_registered
    assert replay.root == first.root
    assert await membership.is_registered(FEED, derive_commitment("alice"))
    assert [r.block_height for r in store.root_rows(FEED)] == [10]


@pytest.mark.trio
async def test_leave_revokes_and_appends_root(handler, membership, store) -> None:
    await handler.member_joined(FEED, "alice", 1)
    joined = await handler.member_joined(FEED, "bob", 2)

    root = await handler.member_left(FEED, "bob", 3)

    assert root != joined.root
    assert not await membership.is_registered(FEED, derive_commitment("bob"))
    assert store.commitment_rows(FEED)[1].revoked_at_block == 3
    assert (await membership.get_root_history(FEED, 1))[0].block_height == 3


@pytest.mark.trio
async def test_replayed_leave_still_appends_same_root(handler, store) -> None:
    await handler.member_joined(FEED, "alice", 1)
    await handler.member_joined(FEED, "bob", 2)

    first = await handler.member_left(FEED, "bob", 3)
    replay = await handler.member_left(FEED, "bob", 3)

    assert replay == first
    assert len(store.root_rows(FEED)) == 4
    assert store.commitment_rows(FEED)[1].revoked_at_block == 3


@pytest.mark.trio
async def test_ban_then_unban(handler, membership) -> None:
    await handler.member_joined(FEED, "alice", 1)
    before_ban = await handler.member_joined(FEED, "mallory", 2)

    await handler.member_banned(FEED, "mallory", 5)
    assert not await membership.is_registered(FEED, derive_commitment("mallory"))

    result = await handler.member_unbanned(FEED, "mallory", 9, key_generation=1)
    assert not result.already_registered
    assert result.root == before_ban.root
    assert await membership.is_registered(FEED, derive_commitment("mallory"))


@pytest.mark.trio
async def test_feed_created_registers_local_member(membership) -> None:
    local = UserCommitmentService(StaticCredentials())
    handler = MembershipCommandHandler(membership, local, "me")

    result = await handler.feed_created(FEED, ["someone", "me"], block_height=4)

    assert result is not None and result.success
    assert await membership.is_registered(FEED, local.local_commitment)
    assert (await handler.feed_created(FEED, ["me"])).already_registered


@pytest.mark.trio
async def test_feed_created_skips_other_feeds(membership, store) -> None:
    handler = MembershipCommandHandler(membership, UserCommitmentService(StaticCredentials()), "me")
    assert await handler.feed_created(FEED, ["alice", "bob"]) is None
    assert store.commitment_rows(FEED) == []


@pytest.mark.trio
async def test_feed_created_without_local_identity(handler) -> None:
    assert await handler.feed_created(FEED, ["me"]) is None
