import logging
from collections.abc import Iterable, Iterator

from nodekit.core.blockstore.store import BlockKeys, BlockStore
from nodekit.core.errors import MalformedKey
from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.models.block import BlockMeta
from nodekit.core.ports.serializer import Serializer
from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.codec import KeyCodec
from nodekit.core.storage.extract import Entry, RangeExtractor, ScanResult

HASH_KEY_PREFIX = b"BH:"


def hash_key(block_hash: bytes) -> bytes:
    return HASH_KEY_PREFIX + block_hash


class BlockIndexer:
    """
    Build a `BH:<block hash> -> height (8 bytes, BE)` index over the heights
    1 .. current-1 of a block archive.
    """
    def __init__(
        self,
        block_store: BlockStore,
        serializer: Serializer,
        writer: BatchedWriter,
        log_level: int = 0,
    ) -> None:
        self._blocks = block_store
        self._serializer = serializer
        self._writer = writer
        self._log_level = log_level
        self._logger = logging.getLogger("core.blockstore.indexer")

    def index(self) -> ScanResult:
        current = self._blocks.height()
        extractor = RangeExtractor(
            writer=self._writer,
            transform=self._hash_entry,
            progress=ProgressEstimator(current, self._log_level),
            name="block-hash",
        )
        return extractor.run(self._metas(current))

    def _metas(self, current: int) -> Iterator[Entry]:
        for height in range(1, current):
            key = BlockKeys.meta(height)
            data = self._blocks.store.get(key)
            if data is None:
                self._logger.warning(f"Block metadata is missing at height {height}")
                continue
            yield key, data

    def _hash_entry(self, key: bytes, value: bytes) -> Iterable[Entry]:
        height = BlockKeys.parse_meta_height(key)
        if height is None:
            raise MalformedKey("not a block metadata key", key=key)

        meta = BlockMeta.from_dict(self._serializer.deserialize(value))
        return ((hash_key(meta.hash), KeyCodec.encode_height_be(height)),)
