"""Feed context lookups for the submission pipeline."""

from __future__ import annotations

import uuid
from typing import Optional, Protocol

import trio

from ..reactions_protocol.babyjubjub import ECPoint
from ..reactions_protocol.key_derivation import derive_feed_keypair


class FeedInfoProvider(Protocol):
    async def get_feed_public_key(self, feed_id: uuid.UUID) -> Optional[ECPoint]:
        """ElGamal key of the feed, or None if the feed does not exist."""
        ...

    async def get_author_commitment(self, message_id: uuid.UUID) -> Optional[bytes]:
        """Commitment of the message's author, or None if the message is unknown."""
        ...


class FeedDirectory(Protocol):
    """Narrow view of the feed and message stores."""

    async def group_feed_exists(self, feed_id: uuid.UUID) -> bool:
        ...

    async def get_message_author_commitment(self, message_id: uuid.UUID) -> Optional[bytes]:
        ...


class GroupFeedInfoProvider:
    """
    Feed info for group feeds.

    The feed public key is derived from the feed id (see
    ``derive_feed_keypair``); the author commitment is whatever the message
    store recorded for the message.
    """

    def __init__(self, directory: FeedDirectory) -> None:
        self._directory = directory

    async def get_feed_public_key(self, feed_id: uuid.UUID) -> Optional[ECPoint]:
        if not await self._directory.group_feed_exists(feed_id):
            return None
        keypair = await trio.to_thread.run_sync(derive_feed_keypair, feed_id)
        return keypair.public_key

    async def get_author_commitment(self, message_id: uuid.UUID) -> Optional[bytes]:
        return await self._directory.get_message_author_commitment(message_id)


class InMemoryFeedDirectory:
    """Dict-backed ``FeedDirectory`` for tests and the simulator."""

    def __init__(self) -> None:
        self._feeds: set[uuid.UUID] = set()
        self._authors: dict[uuid.UUID, bytes] = {}

    def add_feed(self, feed_id: uuid.UUID) -> None:
        self._feeds.add(feed_id)

    def add_message(self, message_id: uuid.UUID, author_commitment: bytes) -> None:
        self._authors[message_id] = author_commitment

    async def group_feed_exists(self, feed_id: uuid.UUID) -> bool:
        await trio.lowlevel.checkpoint()
        return feed_id in self._feeds

    async def get_message_author_commitment(self, message_id: uuid.UUID) -> Optional[bytes]:
        await trio.lowlevel.checkpoint()
        return self._authors.get(message_id)
