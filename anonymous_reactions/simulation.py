"""
In-memory end-to-end round of anonymous reactions.

Builds one group feed with ``members`` members, posts one message and submits
``reactions`` reactions, cycling through the members (so members react more
than once when ``reactions > members`` and the update path is exercised).
Proofs are checked by the dev verifier; everything else runs the real
services. The decrypted tally is returned for display.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

import trio

from .reactions_protocol.commitments import derive_address_secret, derive_commitment, derive_nullifier
from .reactions_protocol.config import VOTE_SLOTS
from .reactions_protocol.elgamal import decrypt_tally, encrypt_vote
from .reactions_protocol.key_derivation import derive_feed_keypair
from .reactions_protocol.types import MerkleRootHistory, SubmitReactionRequest, SubmitReactionResult
from .reactions_protocol.zk.dev_mode import DEV_CIRCUIT_VERSION
from .service.feed_info import GroupFeedInfoProvider, InMemoryFeedDirectory
from .service.membership import MembershipService
from .service.membership_events import MembershipCommandHandler
from .service.memory import InMemoryStore
from .service.pipeline import ReactionSubmissionPipeline
from .service.queries import ReactionQueryService
from .service.settings import Settings

log = logging.getLogger(__name__)


class BlockCounter:
    """Monotonic stand-in for the chain's block height."""

    def __init__(self, start: int = 0) -> None:
        self.height = start

    def __call__(self) -> int:
        return self.height

    def advance(self) -> int:
        self.height += 1
        return self.height


@dataclass
class SimulationReport:
    feed_id: uuid.UUID
    message_id: uuid.UUID
    roots: list[MerkleRootHistory]
    results: list[SubmitReactionResult]
    total_count: int
    counts: list[Optional[int]]
    expected: list[int] = field(default_factory=list)


def member_address(index: int) -> str:
    return f"sim-member-{index:04d}"


async def run_simulation(
    members: int, reactions: int, settings: Optional[Settings] = None
) -> SimulationReport:
    """
    Run one round and return what the services recorded.

    Raises:
        ValueError: If ``members`` is not positive or ``reactions`` is negative
    """
    if members < 1:
        raise ValueError("at least one member is required")
    if reactions < 0:
        raise ValueError("reactions must not be negative")
    settings = settings or Settings()

    blocks = BlockCounter()
    store = InMemoryStore()
    directory = InMemoryFeedDirectory()
    membership = MembershipService(store, block_height=blocks)
    handler = MembershipCommandHandler(membership)
    pipeline = ReactionSubmissionPipeline(
        store,
        membership,
        GroupFeedInfoProvider(directory),
        settings.verifier.build_verifier(override="dev"),
        block_height=blocks,
        **settings.reactions.pipeline_options(),
    )
    queries = ReactionQueryService(store)

    feed_id = uuid.uuid4()
    message_id = uuid.uuid4()
    directory.add_feed(feed_id)
    addresses = [member_address(i) for i in range(members)]
    for address in addresses:
        await handler.member_joined(feed_id, address, blocks.advance())
    directory.add_message(message_id, derive_commitment(addresses[0]))

    keypair = await trio.to_thread.run_sync(derive_feed_keypair, feed_id)
    final_choice: dict[int, int] = {}
    results = []
    for j in range(reactions):
        member = j % members
        choice = j % VOTE_SLOTS
        secret = derive_address_secret(addresses[member])
        vote = await trio.to_thread.run_sync(encrypt_vote, choice, keypair.public_key)
        request = SubmitReactionRequest.from_vote(
            feed_id=feed_id,
            message_id=message_id,
            nullifier=derive_nullifier(secret, message_id, feed_id),
            vote=vote,
            proof=b"",
            circuit_version=DEV_CIRCUIT_VERSION,
        )
        results.append(await pipeline.submit(request))
        final_choice[member] = choice
        blocks.advance()

    expected = [0] * VOTE_SLOTS
    for choice in final_choice.values():
        expected[choice] += 1

    tallies = await queries.get_tallies(feed_id, [message_id])
    tally = tallies.get(message_id)
    if tally is None:
        counts: list[Optional[int]] = [0] * VOTE_SLOTS
        total = 0
    else:
        counts = await trio.to_thread.run_sync(decrypt_tally, tally.tally, keypair.secret, members)
        total = tally.total_count

    roots = await membership.get_root_history(feed_id, members)
    log.info("Simulation finished: %d members, %d reactions, %d counted", members, reactions, total)
    return SimulationReport(
        feed_id=feed_id,
        message_id=message_id,
        roots=roots,
        results=results,
        total_count=total,
        counts=counts,
        expected=expected,
    )
