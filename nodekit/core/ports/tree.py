from collections.abc import Callable
from typing import Iterator, Protocol

from nodekit.core.models.tree import TreeNode
from nodekit.core.ports.storage import KeyValueStore

ValueGetter = Callable[[bytes], bytes | None]


class NodeVisitor(Protocol):
    """
    Observer of a tree walk. The walker calls exactly one of the two
    methods per visited node and decides alone whether the walk goes on;
    visitors must not mutate the tree.
    """

    def leaf_visited(self, node: TreeNode) -> None:
        ...

    def inner_visited(self, node: TreeNode) -> None:
        ...


class ImmutableTree(Protocol):
    """Read-only snapshot of one version of a versioned Merkle tree."""

    @property
    def version(self) -> int:
        ...

    @property
    def size(self) -> int:
        """Number of leaves."""

    @property
    def height(self) -> int:
        """Depth of the deepest leaf below the root."""

    @property
    def root_hash(self) -> bytes | None:
        ...

    def get(self, key: bytes) -> bytes | None:
        ...

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield every leaf in ascending key order."""

    def iterate_range(
        self,
        start: bytes | None,
        end: bytes | None,
    ) -> Iterator[tuple[bytes, bytes]]:
        """Yield the leaves with start <= key < end in ascending order."""

    def walk(self, visitor: NodeVisitor) -> int:
        """
        Visit every node reachable from the root, children before their
        parent. Returns the number of visited nodes.
        """


class MerkleTree(ImmutableTree, Protocol):
    """Versioned tree: loads snapshots and produces new versions."""

    def load_version(self, version: int = 0) -> int:
        """
        Load `version` (0 = latest) or, when absent, the nearest older
        version. Raises VersionLoadFailure when no such version exists.
        Returns the loaded version.
        """

    def latest_version(self) -> int:
        ...

    def get_immutable(self, version: int) -> ImmutableTree:
        """Raises VersionLoadFailure if `version` does not exist."""

    def set(self, key: bytes, value: bytes) -> None:
        ...

    def remove(self, key: bytes) -> None:
        ...

    def save_version(self) -> int:
        """Persist the pending changes as a new version and return it."""


class NodeStore(Protocol):
    """Record layout of tree nodes and version roots in a key-value store."""

    def node_entry(self, node: TreeNode) -> tuple[bytes, bytes]:
        ...

    def root_entry(self, version: int, root_hash: bytes | None) -> tuple[bytes, bytes]:
        ...


class TreeFactory(Protocol):
    def open_tree(
        self,
        store: KeyValueStore,
        value_getter: ValueGetter | None = None,
    ) -> MerkleTree:
        """
        Build a tree over `store`. When `value_getter` is given, leaves
        stored without a value resolve it by key through the getter.
        """

    def node_store(self, store: KeyValueStore) -> NodeStore:
        ...
