from typing import Iterator

from nodekit.core.errors import VersionLoadFailure
from nodekit.core.models.tree import TreeNode
from nodekit.core.ports.serializer import Serializer
from nodekit.core.ports.storage import KeyValueStore
from nodekit.core.ports.tree import ImmutableTree, NodeVisitor, ValueGetter
from nodekit.core.storage.batch import BatchedWriter
from nodekit.infra.merkle.nodedb import NodeDB


class ImmutableMerkleTree:
    def __init__(self, ndb: NodeDB, version: int, root_hash: bytes | None) -> None:
        self._ndb = ndb
        self._version = version
        self._root_hash = root_hash
        self._root: TreeNode | None = None
        if root_hash is not None:
            self._root = ndb.get_node(root_hash)

    @property
    def version(self) -> int:
        return self._version

    @property
    def root_hash(self) -> bytes | None:
        return self._root_hash

    @property
    def size(self) -> int:
        return 0 if self._root is None else self._root.size

    @property
    def height(self) -> int:
        return 0 if self._root is None else self._root.height

    def get(self, key: bytes) -> bytes | None:
        node = self._root
        while node is not None and not node.is_leaf:
            child = node.right if key >= node.key else node.left
            node = self._ndb.get_node(child)

        if node is None or node.key != key:
            return None
        return node.value

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        return self.iterate_range(None, None)

    def iterate_range(
        self,
        start: bytes | None,
        end: bytes | None,
    ) -> Iterator[tuple[bytes, bytes]]:
        if self._root is None:
            return iter(())
        return self._iterate_node(self._root, start, end)

    def walk(self, visitor: NodeVisitor) -> int:
        if self._root is None:
            return 0
        return self._walk_node(self._root, visitor)

    def _iterate_node(
        self,
        node: TreeNode,
        start: bytes | None,
        end: bytes | None,
    ) -> Iterator[tuple[bytes, bytes]]:
        if node.is_leaf:
            if (start is None or node.key >= start) and (end is None or node.key < end):
                yield node.key, node.value
            return

        # left subtree keys < node.key <= right subtree keys
        if start is None or start < node.key:
            yield from self._iterate_node(self._ndb.get_node(node.left), start, end)
        if end is None or end > node.key:
            yield from self._iterate_node(self._ndb.get_node(node.right), start, end)

    def _walk_node(self, node: TreeNode, visitor: NodeVisitor) -> int:
        if node.is_leaf:
            visitor.leaf_visited(node)
            return 1

        visited = self._walk_node(self._ndb.get_node(node.left), visitor)
        visited += self._walk_node(self._ndb.get_node(node.right), visitor)
        visitor.inner_visited(node)
        return visited + 1


class MutableMerkleTree:
    """
    Versioned tree over a NodeDB.

    Every saved version is rebuilt as a balanced tree from the full set
    of leaves of the previous version plus the pending changes, and all
    of its nodes are stamped with the new version number.

    With `inline_values=False` leaves are persisted without their value;
    the caller keeps the values in a separate value store and reads the
    tree back through a value getter.
    """
    def __init__(self, ndb: NodeDB, inline_values: bool = True) -> None:
        self._ndb = ndb
        self._inline_values = inline_values
        self._tree = ImmutableMerkleTree(ndb, 0, None)
        self._pending: dict[bytes, bytes | None] = {}

    @property
    def version(self) -> int:
        return self._tree.version

    @property
    def root_hash(self) -> bytes | None:
        return self._tree.root_hash

    @property
    def size(self) -> int:
        return self._tree.size

    @property
    def height(self) -> int:
        return self._tree.height

    def get(self, key: bytes) -> bytes | None:
        return self._tree.get(key)

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        return self._tree.iterate()

    def iterate_range(
        self,
        start: bytes | None,
        end: bytes | None,
    ) -> Iterator[tuple[bytes, bytes]]:
        return self._tree.iterate_range(start, end)

    def walk(self, visitor: NodeVisitor) -> int:
        return self._tree.walk(visitor)

    def latest_version(self) -> int:
        return self._ndb.latest_version()

    def load_version(self, version: int = 0) -> int:
        target = self._ndb.latest_version() if version == 0 else self._ndb.nearest_version(version)
        if target == 0:
            raise VersionLoadFailure("no tree version available", requested=version)

        self._tree = self.get_immutable(target)
        self._pending.clear()
        return target

    def get_immutable(self, version: int) -> ImmutableTree:
        return ImmutableMerkleTree(self._ndb, version, self._ndb.get_root(version))

    def set(self, key: bytes, value: bytes) -> None:
        self._pending[key] = value

    def remove(self, key: bytes) -> None:
        self._pending[key] = None

    def save_version(self) -> int:
        leaves = dict(self._tree.iterate())
        for key, value in self._pending.items():
            if value is None:
                leaves.pop(key, None)
            else:
                leaves[key] = value

        version = max(self._tree.version, self._ndb.latest_version()) + 1
        writer = BatchedWriter(self._ndb.store)

        root = self._build(sorted(leaves.items()), version, writer) if leaves else None
        root_hash = None if root is None else root.hash
        writer.put(*self._ndb.root_entry(version, root_hash))
        writer.finish()

        self._tree = ImmutableMerkleTree(self._ndb, version, root_hash)
        self._pending.clear()
        return version

    def _build(
        self,
        items: list[tuple[bytes, bytes]],
        version: int,
        writer: BatchedWriter,
    ) -> TreeNode:
        if len(items) == 1:
            key, value = items[0]
            node = TreeNode(
                hash=self._ndb.hash_node(key, version, 0, 1, value, None, None),
                key=key,
                version=version,
                value=value,
            )
            stored = node if self._inline_values else TreeNode(
                hash=node.hash, key=key, version=version
            )
            writer.put(*self._ndb.node_entry(stored))
            return node

        mid = len(items) // 2
        left = self._build(items[:mid], version, writer)
        right = self._build(items[mid:], version, writer)

        key = items[mid][0]
        height = max(left.height, right.height) + 1
        size = left.size + right.size
        node = TreeNode(
            hash=self._ndb.hash_node(key, version, height, size, None, left.hash, right.hash),
            key=key,
            version=version,
            height=height,
            size=size,
            left=left.hash,
            right=right.hash,
        )
        writer.put(*self._ndb.node_entry(node))
        return node


class MerkleTreeFactory:
    def __init__(self, serializer: Serializer) -> None:
        self._serializer = serializer

    def open_tree(
        self,
        store: KeyValueStore,
        value_getter: ValueGetter | None = None,
    ) -> MutableMerkleTree:
        return MutableMerkleTree(NodeDB(store, self._serializer, value_getter))

    def node_store(self, store: KeyValueStore) -> NodeDB:
        return NodeDB(store, self._serializer)
