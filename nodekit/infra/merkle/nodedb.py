import hashlib

from nodekit.core.errors import MissingRecord, VersionLoadFailure
from nodekit.core.models.tree import TreeNode
from nodekit.core.ports.serializer import Serializer
from nodekit.core.ports.storage import KeyValueStore
from nodekit.core.ports.tree import ValueGetter
from nodekit.core.storage.codec import KeyCodec


class NodeDB:
    """
    Persisted layout of the versioned tree:

        b"n" || hash            -> [height, size, version, key, value, left, right]
        b"r" || version(8, BE)  -> root hash (empty for an empty tree)

    Leaves written without a value (value None) are resolved through
    `value_getter` when they are loaded.
    """
    NODE_PREFIX = b"n"
    ROOT_PREFIX = b"r"

    def __init__(
        self,
        store: KeyValueStore,
        serializer: Serializer,
        value_getter: ValueGetter | None = None,
    ) -> None:
        self._store = store
        self._serializer = serializer
        self._value_getter = value_getter

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @classmethod
    def node_key(cls, node_hash: bytes) -> bytes:
        return cls.NODE_PREFIX + node_hash

    @classmethod
    def root_key(cls, version: int) -> bytes:
        return cls.ROOT_PREFIX + KeyCodec.encode_height_be(version)

    def hash_node(
        self,
        key: bytes,
        version: int,
        height: int,
        size: int,
        value: bytes | None,
        left: bytes | None,
        right: bytes | None,
    ) -> bytes:
        value_hash = hashlib.sha256(value).digest() if value is not None else None
        data = self._serializer.serialize([height, size, version, key, value_hash, left, right])
        return hashlib.sha256(data).digest()

    def node_entry(self, node: TreeNode) -> tuple[bytes, bytes]:
        data = self._serializer.serialize([
            node.height,
            node.size,
            node.version,
            node.key,
            node.value,
            node.left,
            node.right,
        ])
        return self.node_key(node.hash), data

    def root_entry(self, version: int, root_hash: bytes | None) -> tuple[bytes, bytes]:
        return self.root_key(version), root_hash or b""

    def get_node(self, node_hash: bytes) -> TreeNode:
        data = self._store.get(self.node_key(node_hash))
        if data is None:
            raise MissingRecord("tree node not found", hash=node_hash.hex())

        height, size, version, key, value, left, right = self._serializer.deserialize(data)
        if height == 0 and value is None:
            value = self._resolve_value(key)

        return TreeNode(
            hash=node_hash,
            key=key,
            version=version,
            height=height,
            size=size,
            value=value,
            left=left,
            right=right,
        )

    def get_root(self, version: int) -> bytes | None:
        """
        Return the root hash of `version`. Raises VersionLoadFailure when
        the version does not exist; returns None for an empty tree.
        """
        data = self._store.get(self.root_key(version))
        if data is None:
            raise VersionLoadFailure("tree version not found", version=version)
        return data or None

    def versions(self) -> list[int]:
        return [
            KeyCodec.decode_height_be(key[len(self.ROOT_PREFIX):])
            for key, _ in self._store.iterate(
                self.ROOT_PREFIX, KeyCodec.range_end(self.ROOT_PREFIX)
            )
        ]

    def latest_version(self) -> int:
        entry = self._store.last(self.ROOT_PREFIX)
        if entry is None:
            return 0
        return KeyCodec.decode_height_be(entry[0][len(self.ROOT_PREFIX):])

    def nearest_version(self, target: int) -> int:
        """Greatest stored version <= target, or 0 when there is none."""
        nearest = 0
        for version in self.versions():
            if version > target:
                break
            nearest = version
        return nearest

    def _resolve_value(self, key: bytes) -> bytes:
        if self._value_getter is None:
            raise MissingRecord("leaf stored without value and no value store given", key=key)

        value = self._value_getter(key)
        if value is None:
            raise MissingRecord("leaf value not found in value store", key=key)
        return value
