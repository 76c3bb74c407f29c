import logging
from dataclasses import dataclass

from nodekit.core.blockstore.store import BlockStore
from nodekit.core.blockstore.txindex import TxIndexStore
from nodekit.core.errors import InvalidRange, NothingToPurge
from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.models.block import BlockMeta
from nodekit.core.storage.batch import BatchedWriter


@dataclass
class PruneResult:
    heights_removed: int = 0
    txs_removed: int = 0
    stopped_at: int | None = None
    """First missing height the purge stopped at, if any."""

    compacted: bool = False


class Pruner:
    """
    Remove contiguous ranges of block record groups from the archive.

    A record group (metadata, parts, commit, seen commit) is always
    queued as a whole and batches are only flushed between groups, so a
    group is either fully present or fully gone.

    With a tx index, the index entries of the transactions of the
    removed blocks are deleted right before each block batch is
    written. An interrupted run can therefore leave blocks whose index
    entries are already gone, which a re-run skips over, but never
    index entries pointing at removed blocks.
    """
    def __init__(self, block_store: BlockStore, tx_index: TxIndexStore | None = None) -> None:
        self._blocks = block_store
        self._tx_index = tx_index
        self._pending_txs: list[bytes] = []
        self._txs_removed = 0
        self._logger = logging.getLogger("core.blockstore.pruner")

    def rollback(self, target_height: int) -> PruneResult:
        """
        Remove every block above `target_height`, highest first, in a
        single durable batch, then move the height record down to the
        target as the last step.
        """
        latest = self._blocks.height()
        if target_height < 0 or target_height >= latest:
            raise InvalidRange(
                "can't rollback the block store",
                target=target_height,
                height=latest,
            )

        self._reset()
        result = PruneResult()
        writer = self._writer()
        for height in range(latest, target_height, -1):
            meta = self._blocks.load_block_meta(height)
            if meta is None:
                self._logger.warning(f"Block metadata is missing at height {height}")
            self._stage_group(writer, height, meta)
            result.heights_removed += 1

        writer.finish()
        self._blocks.save_height(target_height)

        result.txs_removed = self._txs_removed
        self._logger.info(
            f"Rolled back {result.heights_removed} blocks, height is now {target_height}"
        )
        return result

    def purge(
        self,
        target_height: int,
        batch_size: int = 10000,
        log_level: int = 0,
        skip_missing: bool = False,
        skip_compaction: bool = False,
    ) -> PruneResult:
        """
        Remove every block below `target_height`, oldest first. A height
        without metadata stops the purge unless `skip_missing` is set, in
        which case the gap is stepped over. `batch_size` bounds the number
        of mutations per intermediate (non-durable) batch.
        """
        latest = self._blocks.height()
        if target_height > latest:
            raise InvalidRange(
                "can't purge the block store",
                target=target_height,
                height=latest,
            )

        oldest = self._blocks.oldest_height()
        if oldest is None or oldest >= target_height:
            raise NothingToPurge("no block below target", target=target_height, oldest=oldest)
        self._logger.info(f"Oldest block height {oldest}")

        self._reset()
        result = PruneResult()
        progress = ProgressEstimator(target_height - oldest, log_level)
        writer = self._writer(batch_size)

        for height in range(oldest, target_height):
            meta = self._blocks.load_block_meta(height)
            if meta is None:
                self._logger.warning(f"Block is missing at height {height}")
                if skip_missing:
                    continue
                result.stopped_at = height
                break

            self._stage_group(writer, height, meta)
            result.heights_removed += 1
            writer.maybe_flush()

            sample = progress.tick(result.heights_removed)
            if sample is not None:
                self._logger.info(
                    f"{result.heights_removed} blocks processed ({sample.percent}%): "
                    f"current height {height}"
                )

        writer.finish()
        result.txs_removed = self._txs_removed

        if not skip_compaction:
            self._blocks.compact()
            result.compacted = True
            self._logger.info("Finished DB compaction")

        return result

    def _reset(self) -> None:
        self._pending_txs = []
        self._txs_removed = 0

    def _writer(self, batch_size: int | None = None) -> BatchedWriter:
        return BatchedWriter(
            self._blocks.store,
            flush_threshold=batch_size,
            before_flush=self._flush_tx_index,
        )

    def _stage_group(self, writer: BatchedWriter, height: int, meta: BlockMeta | None) -> None:
        if self._tx_index is not None and meta is not None:
            block = self._blocks.load_block(height, meta)
            if block is not None:
                self._pending_txs.extend(block.txs)

        for key in self._blocks.record_group_keys(height, meta):
            writer.delete(key)

    def _flush_tx_index(self) -> None:
        if self._tx_index is None or not self._pending_txs:
            return

        txs, self._pending_txs = self._pending_txs, []
        self._txs_removed += self._tx_index.delete(txs)
