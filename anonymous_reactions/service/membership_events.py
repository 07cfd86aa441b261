"""
Membership command path.

Upstream feed events (join, leave, ban, unban, feed creation) are delivered at
least once. Each command here is idempotent, so replaying one is safe:

- join/unban registers the member's commitment; an already active commitment
  is left alone
- leave/ban revokes the commitment if it is active and always appends the
  recomputed root at the event's block height

Errors are not swallowed; the caller redelivers the command.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from ..reactions_protocol.commitments import UserCommitmentService, derive_commitment
from ..reactions_protocol.types import RegisterCommitmentResult
from .membership import MembershipService

log = logging.getLogger(__name__)


def _short(address: str) -> str:
    return address[:16] + "..." if len(address) > 16 else address


class MembershipCommandHandler:
    """
    Applies membership changes to the feed membership trees.

    Args:
        membership: Membership service to update
        user_commitments: Local member's commitment, used by ``feed_created``
        local_address: Public address of the local member
    """

    def __init__(
        self,
        membership: MembershipService,
        user_commitments: Optional[UserCommitmentService] = None,
        local_address: Optional[str] = None,
    ) -> None:
        self._membership = membership
        self._user_commitments = user_commitments
        self._local_address = local_address

    async def member_joined(
        self,
        feed_id: uuid.UUID,
        address: str,
        block_height: int,
        key_generation: int = 0,
    ) -> RegisterCommitmentResult:
        log.debug("Member joined feed %s: %s", feed_id, _short(address))
        return await self._register(feed_id, address, block_height, key_generation)

    async def member_unbanned(
        self,
        feed_id: uuid.UUID,
        address: str,
        block_height: int,
        key_generation: int = 0,
    ) -> RegisterCommitmentResult:
        log.debug("Member unbanned from feed %s: %s", feed_id, _short(address))
        return await self._register(feed_id, address, block_height, key_generation)

    async def member_left(self, feed_id: uuid.UUID, address: str, block_height: int) -> bytes:
        log.debug("Member left feed %s: %s", feed_id, _short(address))
        return await self._revoke(feed_id, address, block_height)

    async def member_banned(self, feed_id: uuid.UUID, address: str, block_height: int) -> bytes:
        log.debug("Member banned from feed %s: %s", feed_id, _short(address))
        return await self._revoke(feed_id, address, block_height)

    async def feed_created(
        self,
        feed_id: uuid.UUID,
        participants: Iterable[str],
        block_height: int = 0,
    ) -> Optional[RegisterCommitmentResult]:
        """
        Register the local member's commitment if they take part in the new feed.

        Returns:
            The registration result, or None if the local member is not a
            participant (or no local identity is configured)
        """
        if self._user_commitments is None or self._local_address is None:
            return None
        if self._local_address not in set(participants):
            log.debug("Local member not in feed %s, skipping", feed_id)
            return None

        result = await self._membership.register_commitment(
            feed_id, self._user_commitments.local_commitment, block_height=block_height
        )
        if result.already_registered:
            log.debug("Local commitment already registered in feed %s", feed_id)
        else:
            log.info("Registered local commitment in feed %s", feed_id)
        return result

    async def _register(
        self, feed_id: uuid.UUID, address: str, block_height: int, key_generation: int
    ) -> RegisterCommitmentResult:
        commitment = derive_commitment(address)
        result = await self._membership.register_commitment(
            feed_id, commitment, key_generation=key_generation, block_height=block_height
        )
        if result.already_registered:
            log.debug("Commitment for %s already active in feed %s", _short(address), feed_id)
        return result

    async def _revoke(self, feed_id: uuid.UUID, address: str, block_height: int) -> bytes:
        commitment = derive_commitment(address)
        if not await self._membership.revoke_commitment(feed_id, commitment, block_height):
            log.debug("No active commitment for %s in feed %s", _short(address), feed_id)
        return await self._membership.update_root(feed_id, block_height)
