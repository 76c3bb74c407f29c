from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TreeNode:
    """
    A node of the versioned Merkle tree.

    Leaves (height 0) carry a key and its value. Inner nodes carry the
    smallest key of their right subtree and the hashes of both children.
    `value` is None for inner nodes, and for leaves whose value lives in
    a secondary value store and has not been resolved.
    """
    hash: bytes
    key: bytes
    version: int
    height: int = 0
    size: int = 1
    value: bytes | None = None
    left: bytes | None = None
    right: bytes | None = None

    @property
    def is_leaf(self) -> bool:
        return self.height == 0
