"""
Storage interfaces consumed by the reaction services.

Every read and write goes through a unit of work obtained from a
``UnitOfWorkProvider``. Writes staged in a unit of work become visible to other
callers only when ``commit`` succeeds; leaving the context without committing
discards them. Implementations must raise ``VersionConflictError`` from
``commit`` when an optimistic check fails (a tally changed since it was read,
or a nullifier was inserted concurrently) and must apply nothing in that case.
"""

from __future__ import annotations

import uuid
from typing import AsyncContextManager, Optional, Protocol, Sequence

from ..reactions_protocol.types import (
    GroupMemberCommitment,
    MerkleRootHistory,
    MessageReactionTally,
    ReactionNullifier,
    ReactionTransaction,
)


class CommitmentRepository(Protocol):
    async def add_commitment(self, row: GroupMemberCommitment) -> None:
        ...

    async def is_active(self, feed_id: uuid.UUID, commitment: bytes) -> bool:
        ...

    async def get_active_commitments(self, feed_id: uuid.UUID) -> list[bytes]:
        """Active commitments in registration order (tree leaf order)."""
        ...

    async def revoke(self, feed_id: uuid.UUID, commitment: bytes, block_height: int) -> bool:
        """Mark the active row revoked; False if there was none."""
        ...


class MerkleRootRepository(Protocol):
    async def append_root(self, feed_id: uuid.UUID, root: bytes, block_height: int) -> None:
        ...

    async def get_recent_roots(self, feed_id: uuid.UUID, count: int) -> list[MerkleRootHistory]:
        """Up to ``count`` rows, most recently appended first."""
        ...


class ReactionsRepository(Protocol):
    async def get_nullifier(self, nullifier: bytes) -> Optional[ReactionNullifier]:
        ...

    async def insert_nullifier(self, row: ReactionNullifier) -> None:
        ...

    async def update_nullifier(self, row: ReactionNullifier) -> None:
        ...

    async def get_tally(self, message_id: uuid.UUID) -> Optional[MessageReactionTally]:
        ...

    async def get_tallies(
        self, feed_id: uuid.UUID, message_ids: Sequence[uuid.UUID]
    ) -> list[MessageReactionTally]:
        ...

    async def get_tallies_since(
        self, feed_ids: Sequence[uuid.UUID], since_version: int, limit: int
    ) -> list[MessageReactionTally]:
        ...

    async def next_tally_version(self) -> int:
        """Highest tally version across all messages, plus one."""
        ...

    async def save_tally(
        self, tally: MessageReactionTally, expected_version: Optional[int]
    ) -> None:
        """
        Stage a tally write; ``expected_version`` None means "must not exist".

        Versions stay unique across messages: if another commit took the staged
        version, the stored row gets the next free one.
        """
        ...

    async def append_transaction(self, tx: ReactionTransaction) -> None:
        ...

    async def get_transactions_at_block(self, block_height: int) -> list[ReactionTransaction]:
        ...


class UnitOfWork(Protocol):
    commitments: CommitmentRepository
    roots: MerkleRootRepository
    reactions: ReactionsRepository

    async def commit(self) -> None:
        ...


class UnitOfWorkProvider(Protocol):
    def begin(
        self, *, writable: bool = False, lock_key: Optional[str] = None
    ) -> AsyncContextManager[UnitOfWork]:
        """
        Open a unit of work.

        ``lock_key`` serializes all units of work opened with the same key for
        their whole duration.
        """
        ...
