import logging
import os
from contextlib import ExitStack, closing

from nodekit.core.blockstore.indexer import BlockIndexer
from nodekit.core.blockstore.pruner import PruneResult, Pruner
from nodekit.core.blockstore.store import BlockStore
from nodekit.core.blockstore.txindex import TxIndexStore
from nodekit.core.errors import StoreOpenFailure
from nodekit.core.ports.serializer import Serializer
from nodekit.core.ports.storage import KeyValueStore, StoreFactory
from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.extract import ScanResult


class BlockStoreService:
    """
    Maintenance operations over the block archive of a node's chain
    data directory (`<chaindata>/data/<blockstore_name>`).

    Rollback and purge need exclusive write access to the archive; no
    locking beyond LMDB's own is attempted.
    """
    def __init__(
        self,
        store_factory: StoreFactory,
        serializer: Serializer,
        blockstore_name: str = "blockstore.db",
        tx_index_name: str = "tx_index.db",
    ) -> None:
        self._stores = store_factory
        self._serializer = serializer
        self._blockstore_name = blockstore_name
        self._tx_index_name = tx_index_name
        self._logger = logging.getLogger("core.service.blockstore")

    def blockstore_path(self, chain_data_dir: str) -> str:
        return os.path.join(chain_data_dir, "data", self._blockstore_name)

    def tx_index_path(self, chain_data_dir: str) -> str:
        return os.path.join(chain_data_dir, "data", self._tx_index_name)

    def index_by_hash(
        self,
        root_path: str,
        dest_path: str,
        batch_size: int = 10000,
        log_level: int = 0,
    ) -> ScanResult:
        with ExitStack() as stack:
            blocks = self._open_blocks(stack, root_path, readonly=True)
            dest = stack.enter_context(closing(self._stores.open(dest_path)))

            indexer = BlockIndexer(
                block_store=blocks,
                serializer=self._serializer,
                writer=BatchedWriter(dest, batch_size),
                log_level=log_level,
            )
            result = indexer.index()

        result.raise_for_error()
        return result

    def rollback(
        self,
        chain_data_dir: str,
        height: int,
        with_tx_index: bool = False,
    ) -> PruneResult:
        with ExitStack() as stack:
            pruner = self._pruner(stack, chain_data_dir, with_tx_index)
            return pruner.rollback(height)

    def purge(
        self,
        chain_data_dir: str,
        height: int,
        batch_size: int = 10000,
        log_level: int = 0,
        skip_missing: bool = False,
        skip_compaction: bool = False,
        with_tx_index: bool = False,
    ) -> PruneResult:
        with ExitStack() as stack:
            pruner = self._pruner(stack, chain_data_dir, with_tx_index)
            return pruner.purge(
                target_height=height,
                batch_size=batch_size,
                log_level=log_level,
                skip_missing=skip_missing,
                skip_compaction=skip_compaction,
            )

    def _pruner(self, stack: ExitStack, chain_data_dir: str, with_tx_index: bool) -> Pruner:
        blocks = self._open_blocks(stack, chain_data_dir, readonly=False)

        tx_index = None
        if with_tx_index:
            store = self._open_existing(self.tx_index_path(chain_data_dir), readonly=False)
            tx_index = stack.enter_context(closing(TxIndexStore(store, self._serializer)))

        return Pruner(blocks, tx_index)

    def _open_blocks(self, stack: ExitStack, chain_data_dir: str, readonly: bool) -> BlockStore:
        store = self._open_existing(self.blockstore_path(chain_data_dir), readonly)
        return stack.enter_context(closing(BlockStore(store, self._serializer)))

    def _open_existing(self, path: str, readonly: bool) -> KeyValueStore:
        # never create an empty store on a mistyped path
        if not os.path.isdir(path):
            raise StoreOpenFailure("store not found", path=path)
        return self._stores.open(path, readonly=readonly)
