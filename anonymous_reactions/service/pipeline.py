"""
Reaction submission pipeline.

A request passes through fixed gates, each of which can reject it with a typed
``SubmitReactionResult``:

    shape -> feed -> message -> root window -> proof

Accepted requests are folded into the message's encrypted tally in one unit of
work together with the nullifier row and the audit record. Folds into the
same message hold that message's lock for the whole unit of work. Tally conflicts
surface from storage as ``VersionConflictError`` and are retried with a linear
back-off; anything else propagates to the caller.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Callable, Optional

import trio

from ..reactions_protocol.config import (
    FIELD_ELEMENT_BYTES,
    MAX_TALLY_RETRIES,
    NULLIFIER_SIZE_BYTES,
    RETRY_BACKOFF_SECONDS,
    ROOT_GRACE_WINDOW,
    VOTE_SLOTS,
)
from ..reactions_protocol.elgamal import VoteCiphertext, add_votes, empty_tally, subtract_votes
from ..reactions_protocol.exceptions import (
    CryptographicError,
    NullifierMismatchError,
    VersionConflictError,
)
from ..reactions_protocol.security import is_canonical_field_bytes
from ..reactions_protocol.types import (
    ErrorCode,
    MessageReactionTally,
    ReactionNullifier,
    ReactionTransaction,
    SubmitReactionRequest,
    SubmitReactionResult,
    utcnow,
)
from ..reactions_protocol.zk.interfaces import (
    PublicInputs,
    VerifierError,
    VerifyResult,
    ZkVerifier,
)
from .feed_info import FeedInfoProvider
from .membership import MembershipService
from .repositories import UnitOfWorkProvider

log = logging.getLogger(__name__)


def _tally_lock(message_id: uuid.UUID) -> str:
    return f"tally:{message_id}"


def _shape_error(request: SubmitReactionRequest) -> Optional[SubmitReactionResult]:
    arrays = (request.c1x, request.c1y, request.c2x, request.c2y)
    if any(len(values) != VOTE_SLOTS for values in arrays):
        return SubmitReactionResult.rejected(
            ErrorCode.INVALID_CIPHERTEXT_SIZE,
            f"ciphertext arrays must hold {VOTE_SLOTS} coordinates",
        )
    if any(len(value) != FIELD_ELEMENT_BYTES for values in arrays for value in values):
        return SubmitReactionResult.rejected(
            ErrorCode.INVALID_CIPHERTEXT_SIZE,
            f"ciphertext coordinates must be {FIELD_ELEMENT_BYTES} bytes",
        )
    if len(request.nullifier) != NULLIFIER_SIZE_BYTES:
        return SubmitReactionResult.rejected(
            ErrorCode.INVALID_NULLIFIER,
            f"nullifier must be {NULLIFIER_SIZE_BYTES} bytes",
        )
    if not is_canonical_field_bytes(bytes(request.nullifier)):
        return SubmitReactionResult.rejected(
            ErrorCode.INVALID_NULLIFIER,
            "nullifier is not a canonical field element",
        )
    return None


class ReactionSubmissionPipeline:
    """
    Validates reactions and folds them into encrypted tallies.

    Args:
        store: Storage provider for nullifiers, tallies and the audit log
        membership: Source of the feed's recent roots
        feed_info: Feed public key and author commitment lookups
        verifier: Proof verifier
        root_window: Number of recent roots a proof may be bound to
        max_retries: Attempts at the tally update before giving up
        retry_backoff: Seconds slept after attempt n is ``retry_backoff * n``
        block_height: Source of the block height stamped on audit records
    """

    def __init__(
        self,
        store: UnitOfWorkProvider,
        membership: MembershipService,
        feed_info: FeedInfoProvider,
        verifier: ZkVerifier,
        *,
        root_window: int = ROOT_GRACE_WINDOW,
        max_retries: int = MAX_TALLY_RETRIES,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
        block_height: Optional[Callable[[], int]] = None,
    ) -> None:
        if root_window < 1:
            raise ValueError("root_window must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._store = store
        self._membership = membership
        self._feed_info = feed_info
        self._verifier = verifier
        self._root_window = root_window
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._block_height = block_height or (lambda: 0)

    async def submit(self, request: SubmitReactionRequest) -> SubmitReactionResult:
        """
        Run every gate and, if all pass, record the reaction.

        Returns:
            ``SubmitReactionResult.ok`` with the transaction id, or a rejection

        Raises:
            VersionConflictError: If the tally kept changing for every retry
            StorageError: On other storage faults
        """
        rejection = _shape_error(request)
        if rejection is not None:
            log.warning("Rejected reaction for message %s: %s", request.message_id, rejection.message)
            return rejection

        try:
            vote = VoteCiphertext.from_wire(request.c1x, request.c1y, request.c2x, request.c2y)
        except CryptographicError as exc:
            log.warning("Rejected reaction for message %s: %s", request.message_id, exc)
            return SubmitReactionResult.rejected(ErrorCode.INVALID_CIPHERTEXT_POINT, str(exc))

        feed_key = await self._feed_info.get_feed_public_key(request.feed_id)
        if feed_key is None:
            return self._reject(request, ErrorCode.FEED_NOT_FOUND, f"feed {request.feed_id} not found")

        author = await self._feed_info.get_author_commitment(request.message_id)
        if author is None:
            return self._reject(
                request, ErrorCode.MESSAGE_NOT_FOUND, f"message {request.message_id} not found"
            )

        roots = await self._membership.get_recent_roots(request.feed_id, self._root_window)
        if not roots:
            return self._reject(
                request, ErrorCode.NO_MERKLE_ROOTS, f"feed {request.feed_id} has no membership root"
            )

        inputs = PublicInputs(
            nullifier=bytes(request.nullifier),
            vote=vote,
            message_id=request.message_id,
            feed_public_key=feed_key,
            members_root=roots[0],
            author_commitment=author,
        )
        result = await self._verify_against_window(request, inputs, roots)
        if not result.valid:
            detail = f"{result.error}: {result.message}" if result.error else "proof rejected"
            return self._reject(request, ErrorCode.INVALID_PROOF, detail)
        if result.warning:
            log.warning("Reaction for message %s accepted with warning: %s", request.message_id, result.warning)

        try:
            tx_id = await self._record(request, vote)
        except NullifierMismatchError as exc:
            return self._reject(request, ErrorCode.INVALID_NULLIFIER, str(exc))
        return SubmitReactionResult.ok(str(tx_id))

    def _reject(
        self, request: SubmitReactionRequest, code: ErrorCode, message: str
    ) -> SubmitReactionResult:
        log.warning("Rejected reaction for message %s: %s (%s)", request.message_id, code.value, message)
        return SubmitReactionResult.rejected(code, message)

    async def _verify_against_window(
        self, request: SubmitReactionRequest, inputs: PublicInputs, roots: list[bytes]
    ) -> VerifyResult:
        result = VerifyResult.failure(VerifierError.INVALID_PROOF, "no root checked")
        for position, root in enumerate(roots):
            result = await self._verifier.verify(
                bytes(request.proof), inputs.with_root(root), request.circuit_version
            )
            if result.valid:
                if position:
                    log.debug("Proof for message %s matched root %d of the window", request.message_id, position)
                return result
        return result

    async def _record(self, request: SubmitReactionRequest, vote: VoteCiphertext) -> uuid.UUID:
        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._apply(request, vote)
            except VersionConflictError:
                if attempt == self._max_retries:
                    log.error(
                        "Tally update for message %s failed after %d attempts",
                        request.message_id,
                        self._max_retries,
                    )
                    raise
                log.warning(
                    "Tally conflict for message %s, retrying (%d/%d)",
                    request.message_id,
                    attempt,
                    self._max_retries,
                )
                await trio.sleep(self._retry_backoff * attempt)
        raise AssertionError("unreachable")

    async def _apply(self, request: SubmitReactionRequest, vote: VoteCiphertext) -> uuid.UUID:
        nullifier = bytes(request.nullifier)
        now = utcnow()
        async with self._store.begin(writable=True, lock_key=_tally_lock(request.message_id)) as uow:
            reactions = uow.reactions
            existing_tally = await reactions.get_tally(request.message_id)
            current = existing_tally.tally if existing_tally is not None else empty_tally()
            total = existing_tally.total_count if existing_tally is not None else 0

            previous = await reactions.get_nullifier(nullifier)
            if previous is not None and previous.message_id != request.message_id:
                log.error(
                    "Nullifier %s... is recorded for message %s, not %s",
                    nullifier.hex()[:16],
                    previous.message_id,
                    request.message_id,
                )
                raise NullifierMismatchError(
                    f"nullifier already used for message {previous.message_id}"
                )
            if previous is None:
                await reactions.insert_nullifier(
                    ReactionNullifier(
                        nullifier=nullifier,
                        message_id=request.message_id,
                        vote=vote,
                        encrypted_backup=request.encrypted_backup,
                        created_at=now,
                        updated_at=now,
                    )
                )
                folded = add_votes(current, vote)
                total += 1
            else:
                await reactions.update_nullifier(
                    dataclasses.replace(
                        previous,
                        vote=vote,
                        encrypted_backup=request.encrypted_backup,
                        updated_at=now,
                    )
                )
                folded = add_votes(subtract_votes(current, previous.vote), vote)

            await reactions.save_tally(
                MessageReactionTally(
                    message_id=request.message_id,
                    feed_id=request.feed_id,
                    tally=folded,
                    total_count=total,
                    version=await reactions.next_tally_version(),
                    last_updated=now,
                ),
                expected_version=existing_tally.version if existing_tally is not None else None,
            )

            tx_id = uuid.uuid4()
            height = self._block_height()
            await reactions.append_transaction(
                ReactionTransaction(
                    id=tx_id,
                    block_height=height,
                    feed_id=request.feed_id,
                    message_id=request.message_id,
                    nullifier=nullifier,
                    vote=vote,
                    proof=bytes(request.proof),
                    circuit_version=request.circuit_version,
                    created_at=now,
                )
            )
            await uow.commit()

        log.info(
            "Reaction recorded: message=%s update=%s block=%d tx=%s",
            request.message_id,
            previous is not None,
            height,
            tx_id,
        )
        return tx_id
