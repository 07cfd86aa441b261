"""Read side of the reactions store."""

from __future__ import annotations

import uuid
from typing import Iterable, Optional, Sequence

from ..reactions_protocol.config import MAX_SYNC_TALLIES
from ..reactions_protocol.types import MessageReactionTally, ReactionTransaction
from .repositories import UnitOfWorkProvider


class ReactionQueryService:
    """
    Read-only queries over nullifiers, tallies and the audit log.

    Every call opens its own read-only unit of work.
    """

    def __init__(self, store: UnitOfWorkProvider) -> None:
        self._store = store

    async def nullifier_exists(self, nullifier: bytes) -> bool:
        async with self._store.begin() as uow:
            return await uow.reactions.get_nullifier(bytes(nullifier)) is not None

    async def get_reaction_backup(self, nullifier: bytes) -> Optional[bytes]:
        """Encrypted emoji backup stored with the nullifier, if any."""
        async with self._store.begin() as uow:
            row = await uow.reactions.get_nullifier(bytes(nullifier))
        return row.encrypted_backup if row is not None else None

    async def get_tallies(
        self, feed_id: uuid.UUID, message_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, MessageReactionTally]:
        """
        Tallies of the given messages in ``feed_id``.

        Messages nobody reacted to are absent from the result.
        """
        wanted = list(dict.fromkeys(message_ids))
        async with self._store.begin() as uow:
            rows = await uow.reactions.get_tallies(feed_id, wanted)
        return {row.message_id: row for row in rows}

    async def get_tallies_since(
        self,
        feed_ids: Sequence[uuid.UUID],
        since_version: int,
        limit: int = MAX_SYNC_TALLIES,
    ) -> list[MessageReactionTally]:
        """Tallies of ``feed_ids`` written after ``since_version``, oldest first."""
        if limit <= 0 or not feed_ids:
            return []
        async with self._store.begin() as uow:
            return await uow.reactions.get_tallies_since(
                feed_ids, since_version, min(limit, MAX_SYNC_TALLIES)
            )

    async def get_transactions_at_block(self, block_height: int) -> list[ReactionTransaction]:
        async with self._store.begin() as uow:
            return await uow.reactions.get_transactions_at_block(block_height)
