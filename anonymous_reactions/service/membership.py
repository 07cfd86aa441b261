"""
Membership service: per-feed commitment set, Merkle roots and inclusion proofs.

Every mutation runs in a writable unit of work holding the feed's lock key and
recomputes the root from the active set as read inside that unit of work, so
two concurrent changes to one feed can never derive a root from an
intermediate leaf set. Root rows are append-only.

Trees are rebuilt from the active leaf list on each request; the Poseidon work
runs in a worker thread.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

import trio

from ..reactions_protocol.config import (
    COMMITMENT_SIZE_BYTES,
    MERKLE_TREE_CAPACITY,
    MERKLE_TREE_DEPTH,
    ROOT_GRACE_WINDOW,
)
from ..reactions_protocol.merkle import build_path, compute_root, leaves_from_commitments
from ..reactions_protocol.security import constant_time_compare, field_to_bytes
from ..reactions_protocol.types import (
    GroupMemberCommitment,
    MembershipProof,
    MerkleRootHistory,
    RegisterCommitmentResult,
    utcnow,
)
from .repositories import UnitOfWork, UnitOfWorkProvider

log = logging.getLogger(__name__)

BlockHeightSource = Callable[[], int]


def _check_commitment(commitment: bytes) -> None:
    if not isinstance(commitment, (bytes, bytearray)) or len(commitment) != COMMITMENT_SIZE_BYTES:
        raise ValueError(f"commitment must be {COMMITMENT_SIZE_BYTES} bytes")


def _feed_lock(feed_id: uuid.UUID) -> str:
    return f"membership:{feed_id}"


async def _root_of(commitments: list[bytes]) -> bytes:
    if len(commitments) > MERKLE_TREE_CAPACITY:
        raise ValueError("feed exceeds membership tree capacity")
    leaves = leaves_from_commitments(commitments)
    root = await trio.to_thread.run_sync(compute_root, leaves)
    return field_to_bytes(root)


class MembershipService:
    """
    Feed membership tree over a unit-of-work store.

    Args:
        store: Storage provider
        block_height: Source of the current block height, used for roots
            appended by registrations
    """

    def __init__(
        self,
        store: UnitOfWorkProvider,
        *,
        block_height: Optional[BlockHeightSource] = None,
    ) -> None:
        self._store = store
        self._block_height = block_height or (lambda: 0)

    async def register_commitment(
        self,
        feed_id: uuid.UUID,
        commitment: bytes,
        *,
        key_generation: int = 0,
        block_height: Optional[int] = None,
    ) -> RegisterCommitmentResult:
        """
        Add ``commitment`` to the feed's active set and append the new root.

        Idempotent: an already active commitment is reported with
        ``already_registered=True`` and nothing is written. ``block_height``
        defaults to the service's block-height source.
        """
        _check_commitment(commitment)
        commitment = bytes(commitment)

        async with self._store.begin(writable=True, lock_key=_feed_lock(feed_id)) as uow:
            if await uow.commitments.is_active(feed_id, commitment):
                log.debug("Commitment %s... already active in feed %s", commitment.hex()[:16], feed_id)
                latest = await uow.roots.get_recent_roots(feed_id, 1)
                return RegisterCommitmentResult(
                    success=True,
                    already_registered=True,
                    root=latest[0].root if latest else None,
                )

            height = self._block_height() if block_height is None else block_height
            await uow.commitments.add_commitment(
                GroupMemberCommitment(
                    feed_id=feed_id,
                    commitment=commitment,
                    registered_at=utcnow(),
                    key_generation=key_generation,
                    registered_at_block=height,
                )
            )
            root = await self._append_current_root(uow, feed_id, height)
            await uow.commit()

        log.info(
            "Registered commitment %s... in feed %s, root %s...",
            commitment.hex()[:16],
            feed_id,
            root.hex()[:16],
        )
        return RegisterCommitmentResult(success=True, already_registered=False, root=root)

    async def is_registered(self, feed_id: uuid.UUID, commitment: bytes) -> bool:
        async with self._store.begin() as uow:
            return await uow.commitments.is_active(feed_id, bytes(commitment))

    async def revoke_commitment(
        self, feed_id: uuid.UUID, commitment: bytes, block_height: int
    ) -> bool:
        """
        Mark the commitment revoked at ``block_height``.

        The root is not recomputed here; call ``update_root`` afterwards.

        Returns:
            True if an active commitment was revoked
        """
        _check_commitment(commitment)
        async with self._store.begin(writable=True, lock_key=_feed_lock(feed_id)) as uow:
            revoked = await uow.commitments.revoke(feed_id, bytes(commitment), block_height)
            if revoked:
                await uow.commit()

        if revoked:
            log.info("Revoked commitment %s... in feed %s", bytes(commitment).hex()[:16], feed_id)
        return revoked

    async def update_root(self, feed_id: uuid.UUID, block_height: int) -> bytes:
        """
        Recompute the root from the active set and append it at ``block_height``.

        The root is a pure function of the active set; calling this twice on an
        unchanged set appends two rows carrying the same root.
        """
        async with self._store.begin(writable=True, lock_key=_feed_lock(feed_id)) as uow:
            root = await self._append_current_root(uow, feed_id, block_height)
            await uow.commit()

        log.info("Feed %s root %s... at block %d", feed_id, root.hex()[:16], block_height)
        return root

    async def get_membership_proof(self, feed_id: uuid.UUID, commitment: bytes) -> MembershipProof:
        commitment = bytes(commitment)
        async with self._store.begin() as uow:
            if not await uow.commitments.is_active(feed_id, commitment):
                return MembershipProof.not_member()
            commitments = await uow.commitments.get_active_commitments(feed_id)
            latest = await uow.roots.get_recent_roots(feed_id, 1)

        try:
            leaf_index = commitments.index(commitment)
        except ValueError:
            return MembershipProof.not_member()

        leaves = leaves_from_commitments(commitments)
        path = await trio.to_thread.run_sync(build_path, leaves, leaf_index)
        return MembershipProof(
            is_member=True,
            root=path.root_bytes,
            path_elements=tuple(path.element_bytes()),
            path_indices=path.indices,
            tree_depth=MERKLE_TREE_DEPTH,
            root_block_height=latest[0].block_height if latest else 0,
        )

    async def get_root_history(self, feed_id: uuid.UUID, count: int) -> list[MerkleRootHistory]:
        """
        Up to ``count`` most recent root rows, newest first.

        A feed that has active commitments but no root yet gets one computed
        and appended at height 0 on first read.
        """
        async with self._store.begin() as uow:
            rows = await uow.roots.get_recent_roots(feed_id, count)
            needs_bootstrap = not rows and bool(
                await uow.commitments.get_active_commitments(feed_id)
            )

        if needs_bootstrap:
            async with self._store.begin(writable=True, lock_key=_feed_lock(feed_id)) as uow:
                # Another task may have appended a root while we waited for the lock
                if not await uow.roots.get_recent_roots(feed_id, 1):
                    log.info("Feed %s has members but no root; computing one", feed_id)
                    await self._append_current_root(uow, feed_id, 0)
                    await uow.commit()
            async with self._store.begin() as uow:
                rows = await uow.roots.get_recent_roots(feed_id, count)

        return rows

    async def get_recent_roots(self, feed_id: uuid.UUID, count: int) -> list[bytes]:
        return [row.root for row in await self.get_root_history(feed_id, count)]

    async def is_root_valid(
        self, feed_id: uuid.UUID, root: bytes, window: int = ROOT_GRACE_WINDOW
    ) -> bool:
        """True if ``root`` is among the ``window`` most recent roots of the feed."""
        return any(
            constant_time_compare(candidate, root)
            for candidate in await self.get_recent_roots(feed_id, window)
        )

    async def _append_current_root(
        self, uow: UnitOfWork, feed_id: uuid.UUID, block_height: int
    ) -> bytes:
        commitments = await uow.commitments.get_active_commitments(feed_id)
        root = await _root_of(commitments)
        await uow.roots.append_root(feed_id, root, block_height)
        return root
