"""
Fixed-depth Merkle tree utilities for feed membership.

The tree has depth MERKLE_TREE_DEPTH (2^20 leaves) and uses Poseidon for node
hashing, so the same tree can be recomputed inside the reaction circuit. Leaves
are commitments read as big-endian field elements; unused leaves are the zero
leaf, and empty subtrees are represented by precomputed zero hashes, so only
the occupied part of the tree is ever computed.

A root depends only on the ordered list of leaves: the same active set always
yields the same root.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from .config import MERKLE_TREE_DEPTH, MERKLE_ZERO_LEAF
from .poseidon import PoseidonParams, get_params, poseidon_hash
from .security import field_to_bytes


def hash_node(left: int, right: int) -> int:
    """
    Hash two child nodes.

    Args:
        left: Left child value (field element)
        right: Right child value (field element)

    Returns:
        Poseidon(left, right)

    Note:
        Fixed left||right ordering (no sorting); the path indices carry the
        position information.
    """
    return poseidon_hash(left, right)


@lru_cache(maxsize=8)
def _zero_hashes_for(params: PoseidonParams, depth: int) -> tuple[int, ...]:
    zeros = [MERKLE_ZERO_LEAF]
    for _ in range(depth):
        zeros.append(hash_node(zeros[-1], zeros[-1]))
    return tuple(zeros)


def zero_hashes(depth: int = MERKLE_TREE_DEPTH) -> tuple[int, ...]:
    """
    Root of an empty subtree at every height.

    Cached per registered Poseidon parameter set.

    Returns:
        Tuple ``z`` of length depth + 1 with z[0] = zero leaf and
        z[i] = Poseidon(z[i-1], z[i-1])
    """
    return _zero_hashes_for(get_params(3), depth)


@dataclass(frozen=True)
class MerklePath:
    """
    Inclusion proof for one leaf.

    Attributes:
        root: Root the path recomputes to
        elements: Sibling value at each level, leaf level first
        indices: 0 if the running node is the left child at that level, 1 if right
    """

    root: int
    elements: tuple[int, ...]
    indices: tuple[int, ...]

    @property
    def root_bytes(self) -> bytes:
        return field_to_bytes(self.root)

    def element_bytes(self) -> list[bytes]:
        return [field_to_bytes(e) for e in self.elements]


def leaves_from_commitments(commitments: Sequence[bytes]) -> list[int]:
    """Read 32-byte commitments as big-endian leaf values."""
    return [int.from_bytes(c, "big") for c in commitments]


def _next_level(level_nodes: list[int], zero: int) -> list[int]:
    # A missing right sibling is the empty subtree of this height
    parents = []
    for i in range(0, len(level_nodes), 2):
        left = level_nodes[i]
        right = level_nodes[i + 1] if i + 1 < len(level_nodes) else zero
        parents.append(hash_node(left, right))
    return parents


def compute_root(leaves: Sequence[int], depth: int = MERKLE_TREE_DEPTH) -> int:
    """
    Compute the root of a sparse tree holding ``leaves`` at positions 0..n-1.

    Args:
        leaves: Leaf values in tree order
        depth: Tree depth

    Returns:
        Root field element; the empty-subtree root of ``depth`` when there are
        no leaves

    Raises:
        ValueError: If there are more leaves than the tree can hold
    """
    if len(leaves) > 2**depth:
        raise ValueError(f"Tree of depth {depth} cannot hold {len(leaves)} leaves")

    zeros = zero_hashes(depth)
    if not leaves:
        return zeros[depth]

    level = list(leaves)
    for height in range(depth):
        if len(level) == 1:
            # Lone node: every remaining sibling is an empty subtree
            node = level[0]
            for h in range(height, depth):
                node = hash_node(node, zeros[h])
            return node
        level = _next_level(level, zeros[height])
    return level[0]


def build_path(
    leaves: Sequence[int], leaf_index: int, depth: int = MERKLE_TREE_DEPTH
) -> MerklePath:
    """
    Build the inclusion proof for ``leaves[leaf_index]``.

    The returned path has exactly ``depth`` elements and indices, and
    ``verify_path`` over it recomputes the same root as ``compute_root``.

    Raises:
        IndexError: If leaf_index is out of range
    """
    if not 0 <= leaf_index < len(leaves):
        raise IndexError(f"leaf index {leaf_index} out of range")
    if len(leaves) > 2**depth:
        raise ValueError(f"Tree of depth {depth} cannot hold {len(leaves)} leaves")

    zeros = zero_hashes(depth)
    elements: list[int] = []
    indices: list[int] = []
    level = list(leaves)
    index = leaf_index

    for height in range(depth):
        sibling = index ^ 1
        indices.append(index & 1)
        elements.append(level[sibling] if sibling < len(level) else zeros[height])
        level = _next_level(level, zeros[height])
        index //= 2

    return MerklePath(root=level[0], elements=tuple(elements), indices=tuple(indices))


def verify_path(leaf: int, path_elements: Sequence[int], path_indices: Sequence[int], root: int) -> bool:
    """
    Recompute the root from a leaf and its path.

    Args:
        leaf: Leaf value
        path_elements: Sibling values, leaf level first
        path_indices: 0 = running node is the left child, 1 = right child
        root: Expected root

    Returns:
        True if the recomputed root equals ``root``
    """
    if len(path_elements) != len(path_indices):
        return False

    node = leaf
    for sibling, is_right in zip(path_elements, path_indices):
        if is_right:
            node = hash_node(sibling, node)
        else:
            node = hash_node(node, sibling)
    return node == root
