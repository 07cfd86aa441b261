"""
End-to-end reaction rounds over the in-memory store.

These tests wire the real services together (membership commands, feed info,
submission pipeline, queries) and check the decrypted tallies. Proofs are
accepted by the dev verifier.
"""
import uuid

import pytest

from anonymous_reactions.reactions_protocol.commitments import (
    UserCommitmentService,
    derive_address_secret,
    derive_commitment,
    derive_nullifier,
)
from anonymous_reactions.reactions_protocol.config import VOTE_SLOTS
from anonymous_reactions.reactions_protocol.elgamal import decrypt_tally, encrypt_vote
from anonymous_reactions.reactions_protocol.key_derivation import derive_feed_keypair
from anonymous_reactions.reactions_protocol.types import ErrorCode, SubmitReactionRequest
from anonymous_reactions.reactions_protocol.zk.dev_mode import DEV_CIRCUIT_VERSION, DevModeVerifier
from anonymous_reactions.service import (
    GroupFeedInfoProvider,
    InMemoryFeedDirectory,
    InMemoryStore,
    MembershipCommandHandler,
    MembershipService,
    ReactionQueryService,
    ReactionSubmissionPipeline,
    Settings,
)
from anonymous_reactions.simulation import BlockCounter, run_simulation


class LocalCredentials:
    def get_private_signing_key(self):
        return "ab" * 32


@pytest.mark.trio
async def test_simulation_round_matches_expected_tally():
    """Eight reactions from five members: three members change their vote."""
    print("\n" + "=" * 70)
    print("TEST: Simulated Reaction Round")
    print("=" * 70)

    report = await run_simulation(members=5, reactions=8)

    assert all(r.success for r in report.results)
    assert report.total_count == 5
    assert report.expected == [1, 1, 0, 1, 1, 1]
    assert report.counts == report.expected
    assert len(report.roots) == 5
    assert [row.block_height for row in report.roots] == [5, 4, 3, 2, 1]

    print(f"✓ Tally {report.counts} from {report.total_count} reactors")


@pytest.mark.trio
async def test_simulation_without_reactions():
    report = await run_simulation(members=2, reactions=0)
    assert report.total_count == 0
    assert report.counts == [0] * VOTE_SLOTS
    assert report.results == []


@pytest.mark.trio
async def test_simulation_rejects_bad_arguments():
    with pytest.raises(ValueError):
        await run_simulation(members=0, reactions=1)
    with pytest.raises(ValueError):
        await run_simulation(members=1, reactions=-1)


@pytest.mark.trio
async def test_group_feed_round_with_membership_changes():
    """
    Local member joins via feed creation, others join and one leaves.

    Verifies that:
    1. The derived feed key decrypts the tally
    2. The local member's nullifier is stable across resubmissions
    3. Unknown messages are rejected before the proof is checked
    """
    print("\n" + "=" * 70)
    print("TEST: Group Feed Round")
    print("=" * 70)

    blocks = BlockCounter(start=100)
    store = InMemoryStore()
    directory = InMemoryFeedDirectory()
    membership = MembershipService(store, block_height=blocks)
    local = UserCommitmentService(LocalCredentials())
    handler = MembershipCommandHandler(membership, local, "local-node")
    pipeline = ReactionSubmissionPipeline(
        store,
        membership,
        GroupFeedInfoProvider(directory),
        DevModeVerifier(),
        block_height=blocks,
        **Settings().reactions.pipeline_options(),
    )
    queries = ReactionQueryService(store)

    feed_id = uuid.uuid4()
    message_id = uuid.uuid4()
    directory.add_feed(feed_id)
    directory.add_message(message_id, derive_commitment("author"))

    created = await handler.feed_created(feed_id, ["local-node", "author"], blocks.advance())
    assert created is not None and not created.already_registered
    await handler.member_joined(feed_id, "author", blocks.advance())
    await handler.member_joined(feed_id, "guest", blocks.advance())
    await handler.member_left(feed_id, "guest", blocks.advance())
    print("\n1. Membership events applied")

    keypair = derive_feed_keypair(feed_id)

    def request(choice, nullifier, target=message_id):
        return SubmitReactionRequest.from_vote(
            feed_id=feed_id,
            message_id=target,
            nullifier=nullifier,
            vote=encrypt_vote(choice, keypair.public_key),
            proof=b"",
            circuit_version=DEV_CIRCUIT_VERSION,
        )

    local_nullifier = local.nullifier_for(message_id, feed_id)
    author_nullifier = derive_nullifier(derive_address_secret("author"), message_id, feed_id)
    assert local_nullifier != author_nullifier

    assert (await pipeline.submit(request(0, local_nullifier))).success
    assert (await pipeline.submit(request(2, author_nullifier))).success
    assert (await pipeline.submit(request(2, local.nullifier_for(message_id, feed_id)))).success
    print("2. Three submissions accepted (one update)")

    missing = await pipeline.submit(request(1, local_nullifier, target=uuid.uuid4()))
    assert missing.error_code is ErrorCode.MESSAGE_NOT_FOUND

    tally = (await queries.get_tallies(feed_id, [message_id]))[message_id]
    assert tally.total_count == 2
    assert decrypt_tally(tally.tally, keypair.secret, max_count=5) == [0, 0, 2, 0, 0, 0]
    assert await queries.nullifier_exists(local_nullifier)

    synced = await queries.get_tallies_since([feed_id], since_version=0)
    assert [t.message_id for t in synced] == [message_id]
    assert len(await queries.get_transactions_at_block(blocks())) == 3

    print("✓ Tally decrypts to two reactions on slot 2")
