import logging

from nodekit.core.errors import MissingRecord
from nodekit.core.models.block import Block, BlockMeta
from nodekit.core.ports.serializer import Serializer
from nodekit.core.ports.storage import KeyValueStore
from nodekit.core.storage.codec import KeyCodec


class BlockKeys:
    """
    Key layout of the block archive:

        H:<h>       block metadata
        P:<h>:<i>   block part i
        C:<h>       commit for block h, stored alongside block h+1
        SC:<h>      commit seen locally for block h
        blockStore  current height record
    """
    META_PREFIX = b"H:"
    STATE = b"blockStore"

    @classmethod
    def meta(cls, height: int) -> bytes:
        return b"H:%d" % height

    @classmethod
    def part(cls, height: int, index: int) -> bytes:
        return b"P:%d:%d" % (height, index)

    @classmethod
    def part_prefix(cls, height: int) -> bytes:
        return b"P:%d:" % height

    @classmethod
    def commit(cls, height: int) -> bytes:
        return b"C:%d" % height

    @classmethod
    def seen_commit(cls, height: int) -> bytes:
        return b"SC:%d" % height

    @classmethod
    def parse_meta_height(cls, key: bytes) -> int | None:
        if not key.startswith(cls.META_PREFIX):
            return None
        try:
            return int(key[len(cls.META_PREFIX):])
        except ValueError:
            return None


class BlockStore:
    """
    Façade over the block archive store, exposing only what the
    maintenance operations need. The façade owns the store handle.
    """
    def __init__(self, store: KeyValueStore, serializer: Serializer) -> None:
        self._store = store
        self._serializer = serializer
        self._logger = logging.getLogger("core.blockstore.store")

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def height(self) -> int:
        data = self._store.get(BlockKeys.STATE)
        if data is None:
            return 0
        return int(self._serializer.deserialize(data)["height"])

    def save_height(self, height: int) -> None:
        data = self._serializer.serialize({"height": height})
        self._store.write_batch([(BlockKeys.STATE, data)], sync=True)

    def has(self, key: bytes) -> bool:
        return self._store.has(key)

    def load_block_meta(self, height: int) -> BlockMeta | None:
        data = self._store.get(BlockKeys.meta(height))
        if data is None:
            return None
        return BlockMeta.from_dict(self._serializer.deserialize(data))

    def load_block(self, height: int, meta: BlockMeta | None = None) -> Block | None:
        """
        Reassemble a block from its parts. Returns None when the block's
        metadata is absent; raises MissingRecord when a part is.
        """
        meta = meta or self.load_block_meta(height)
        if meta is None:
            return None

        chunks = []
        for index in range(meta.parts_total):
            key = BlockKeys.part(height, index)
            data = self._store.get(key)
            if data is None:
                raise MissingRecord("block part not found", height=height, key=key)
            chunks.append(self._serializer.deserialize(data)["bytes"])

        return Block.from_dict(self._serializer.deserialize(b"".join(chunks)))

    def oldest_height(self) -> int | None:
        """
        Lowest height with a metadata record. Metadata keys embed the
        height in decimal, so their byte order is not numeric order and
        the whole prefix range is scanned.
        """
        oldest = None
        prefix = BlockKeys.META_PREFIX
        for key, _ in self._store.iterate(prefix, KeyCodec.range_end(prefix)):
            height = BlockKeys.parse_meta_height(key)
            if height is not None and (oldest is None or height < oldest):
                oldest = height
        return oldest

    def record_group_keys(self, height: int, meta: BlockMeta | None) -> list[bytes]:
        """
        Every key of the record group of `height`. Without metadata the
        part count is unknown and the parts are found by prefix scan.
        """
        if meta is not None:
            parts = [BlockKeys.part(height, i) for i in range(meta.parts_total)]
        else:
            prefix = BlockKeys.part_prefix(height)
            parts = [k for k, _ in self._store.iterate(prefix, KeyCodec.range_end(prefix))]

        return [
            BlockKeys.meta(height),
            *parts,
            BlockKeys.commit(height - 1),
            BlockKeys.seen_commit(height),
        ]

    def compact(self) -> None:
        self._store.compact()

    def close(self) -> None:
        self._store.close()
