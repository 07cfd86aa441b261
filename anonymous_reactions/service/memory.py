"""
In-memory storage with unit-of-work semantics.

Backs the services in tests, in the simulator and in single-process
deployments. Committed state lives in ``InMemoryStore``; each unit of work
stages its writes and applies them in one synchronous step at commit, after
checking the optimistic conditions, so no other task can observe a partial
commit.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

import trio

from ..reactions_protocol.exceptions import StorageError, VersionConflictError
from ..reactions_protocol.types import (
    GroupMemberCommitment,
    MerkleRootHistory,
    MessageReactionTally,
    ReactionNullifier,
    ReactionTransaction,
    utcnow,
)

log = logging.getLogger(__name__)


class _LockEntry:
    """A lock plus the number of units of work holding or waiting on it."""

    def __init__(self) -> None:
        self.lock = trio.Lock()
        self.users = 0


class InMemoryStore:
    """Committed state plus the lock table used by ``begin(lock_key=...)``."""

    def __init__(self) -> None:
        self._commitments: dict[uuid.UUID, list[GroupMemberCommitment]] = {}
        self._roots: dict[uuid.UUID, list[MerkleRootHistory]] = {}
        self._root_seq = 0
        self._nullifiers: dict[bytes, ReactionNullifier] = {}
        self._tallies: dict[uuid.UUID, MessageReactionTally] = {}
        self._transactions: list[ReactionTransaction] = []
        self._locks: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def begin(
        self, *, writable: bool = False, lock_key: Optional[str] = None
    ) -> AsyncIterator[InMemoryUnitOfWork]:
        uow = InMemoryUnitOfWork(self, writable=writable)
        if lock_key is None:
            yield uow
            return
        entry = self._locks.get(lock_key)
        if entry is None:
            entry = self._locks[lock_key] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield uow
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[lock_key]

    def held_lock_keys(self) -> list[str]:
        return sorted(self._locks)

    def _next_root_id(self) -> int:
        self._root_seq += 1
        return self._root_seq

    # Direct read helpers for assertions and tooling

    def commitment_rows(self, feed_id: uuid.UUID) -> list[GroupMemberCommitment]:
        return list(self._commitments.get(feed_id, []))

    def root_rows(self, feed_id: uuid.UUID) -> list[MerkleRootHistory]:
        return list(self._roots.get(feed_id, []))

    def transactions(self) -> list[ReactionTransaction]:
        return list(self._transactions)


class InMemoryUnitOfWork:
    def __init__(self, store: InMemoryStore, *, writable: bool) -> None:
        self._store = store
        self.writable = writable
        self.committed = False
        self.commitments = _CommitmentView(self)
        self.roots = _RootView(self)
        self.reactions = _ReactionView(self)

    def require_writable(self) -> None:
        if not self.writable:
            raise StorageError("write attempted in a read-only unit of work")
        if self.committed:
            raise StorageError("unit of work already committed")

    async def commit(self) -> None:
        """
        Validate optimistic conditions, then apply every staged write.

        Raises:
            VersionConflictError: If a tally or nullifier changed since it was
                read; nothing is applied
        """
        self.require_writable()
        await trio.lowlevel.checkpoint()
        try:
            self.reactions.check_conflicts()
        except VersionConflictError as exc:
            log.debug("Commit rejected: %s", exc)
            raise
        self.commitments.apply()
        self.roots.apply()
        self.reactions.apply()
        self.committed = True


class _CommitmentView:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow
        self._store = uow._store
        self._added: list[GroupMemberCommitment] = []
        self._revoked: dict[tuple[uuid.UUID, bytes], int] = {}

    def _rows(self, feed_id: uuid.UUID) -> list[GroupMemberCommitment]:
        rows = self._store._commitments.get(feed_id, []) + [
            r for r in self._added if r.feed_id == feed_id
        ]
        return [self._with_revocation(r) for r in rows]

    def _with_revocation(self, row: GroupMemberCommitment) -> GroupMemberCommitment:
        height = self._revoked.get((row.feed_id, row.commitment))
        if height is not None and row.is_active:
            return dataclasses.replace(row, revoked_at_block=height)
        return row

    async def add_commitment(self, row: GroupMemberCommitment) -> None:
        self._uow.require_writable()
        await trio.lowlevel.checkpoint()
        self._added.append(row)

    async def is_active(self, feed_id: uuid.UUID, commitment: bytes) -> bool:
        await trio.lowlevel.checkpoint()
        return any(r.is_active and r.commitment == commitment for r in self._rows(feed_id))

    async def get_active_commitments(self, feed_id: uuid.UUID) -> list[bytes]:
        await trio.lowlevel.checkpoint()
        return [r.commitment for r in self._rows(feed_id) if r.is_active]

    async def revoke(self, feed_id: uuid.UUID, commitment: bytes, block_height: int) -> bool:
        self._uow.require_writable()
        if not await self.is_active(feed_id, commitment):
            return False
        self._revoked[(feed_id, commitment)] = block_height
        return True

    def apply(self) -> None:
        for row in self._added:
            self._store._commitments.setdefault(row.feed_id, []).append(row)
        for (feed_id, commitment), height in self._revoked.items():
            rows = self._store._commitments.get(feed_id, [])
            for i, row in enumerate(rows):
                if row.commitment == commitment and row.is_active:
                    rows[i] = dataclasses.replace(row, revoked_at_block=height)


class _RootView:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow
        self._store = uow._store
        self._appended: list[MerkleRootHistory] = []

    async def append_root(self, feed_id: uuid.UUID, root: bytes, block_height: int) -> None:
        self._uow.require_writable()
        await trio.lowlevel.checkpoint()
        self._appended.append(
            MerkleRootHistory(
                id=self._store._next_root_id(),
                feed_id=feed_id,
                root=root,
                block_height=block_height,
                created_at=utcnow(),
            )
        )

    async def get_recent_roots(self, feed_id: uuid.UUID, count: int) -> list[MerkleRootHistory]:
        await trio.lowlevel.checkpoint()
        if count <= 0:
            return []
        rows = self._store._roots.get(feed_id, []) + [
            r for r in self._appended if r.feed_id == feed_id
        ]
        return sorted(rows, key=lambda r: r.id, reverse=True)[:count]

    def apply(self) -> None:
        for row in self._appended:
            self._store._roots.setdefault(row.feed_id, []).append(row)


class _ReactionView:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow
        self._store = uow._store
        self._inserted: dict[bytes, ReactionNullifier] = {}
        self._updated: dict[bytes, ReactionNullifier] = {}
        self._tallies: dict[uuid.UUID, tuple[MessageReactionTally, Optional[int]]] = {}
        self._transactions: list[ReactionTransaction] = []

    async def get_nullifier(self, nullifier: bytes) -> Optional[ReactionNullifier]:
        await trio.lowlevel.checkpoint()
        for staged in (self._updated, self._inserted):
            if nullifier in staged:
                return staged[nullifier]
        return self._store._nullifiers.get(nullifier)

    async def insert_nullifier(self, row: ReactionNullifier) -> None:
        self._uow.require_writable()
        await trio.lowlevel.checkpoint()
        self._inserted[row.nullifier] = row

    async def update_nullifier(self, row: ReactionNullifier) -> None:
        self._uow.require_writable()
        await trio.lowlevel.checkpoint()
        self._updated[row.nullifier] = row

    async def get_tally(self, message_id: uuid.UUID) -> Optional[MessageReactionTally]:
        await trio.lowlevel.checkpoint()
        if message_id in self._tallies:
            return self._tallies[message_id][0]
        return self._store._tallies.get(message_id)

    async def get_tallies(
        self, feed_id: uuid.UUID, message_ids: Sequence[uuid.UUID]
    ) -> list[MessageReactionTally]:
        await trio.lowlevel.checkpoint()
        found = []
        for message_id in message_ids:
            tally = self._store._tallies.get(message_id)
            if tally is not None and tally.feed_id == feed_id:
                found.append(tally)
        return found

    async def get_tallies_since(
        self, feed_ids: Sequence[uuid.UUID], since_version: int, limit: int
    ) -> list[MessageReactionTally]:
        await trio.lowlevel.checkpoint()
        wanted = set(feed_ids)
        rows = [
            t for t in self._store._tallies.values()
            if t.feed_id in wanted and t.version > since_version
        ]
        return sorted(rows, key=lambda t: t.version)[:limit]

    async def next_tally_version(self) -> int:
        await trio.lowlevel.checkpoint()
        versions = [t.version for t in self._store._tallies.values()]
        versions.extend(t.version for t, _ in self._tallies.values())
        return max(versions, default=0) + 1

    async def save_tally(
        self, tally: MessageReactionTally, expected_version: Optional[int]
    ) -> None:
        self._uow.require_writable()
        await trio.lowlevel.checkpoint()
        previous = self._tallies.get(tally.message_id)
        if previous is not None:
            # Keep the version observed by the first read in this unit of work
            expected_version = previous[1]
        self._tallies[tally.message_id] = (tally, expected_version)

    async def append_transaction(self, tx: ReactionTransaction) -> None:
        self._uow.require_writable()
        await trio.lowlevel.checkpoint()
        self._transactions.append(tx)

    async def get_transactions_at_block(self, block_height: int) -> list[ReactionTransaction]:
        await trio.lowlevel.checkpoint()
        return [tx for tx in self._store._transactions if tx.block_height == block_height]

    def check_conflicts(self) -> None:
        for nullifier in self._inserted:
            if nullifier in self._store._nullifiers:
                raise VersionConflictError("nullifier was inserted concurrently")
        for nullifier in self._updated:
            if nullifier not in self._store._nullifiers:
                raise VersionConflictError("nullifier to update does not exist")
        for message_id, (_, expected) in self._tallies.items():
            current = self._store._tallies.get(message_id)
            current_version = current.version if current is not None else None
            if current_version != expected:
                raise VersionConflictError(
                    f"tally for message {message_id} changed "
                    f"(expected {expected}, found {current_version})"
                )

    def apply(self) -> None:
        self._store._nullifiers.update(self._inserted)
        self._store._nullifiers.update(self._updated)
        for message_id, (tally, _) in self._tallies.items():
            # Another message may have taken this version since it was read
            floor = max((t.version for t in self._store._tallies.values()), default=0)
            if tally.version <= floor:
                tally = dataclasses.replace(tally, version=floor + 1)
            self._store._tallies[message_id] = tally
        self._store._transactions.extend(self._transactions)
