import logging
from collections.abc import Iterable

from nodekit.core.errors import NodekitError
from nodekit.core.models.block import TxResult, tx_hash
from nodekit.core.ports.serializer import Serializer
from nodekit.core.ports.storage import KeyValueStore, Mutation

TX_HEIGHT_KEY = "tx.height"


class TxIndexStore:
    """
    Transaction index: tx hash -> TxResult, plus a secondary
    `tx.height/<h>/<h>/<i>` entry derived from the result.
    """
    def __init__(self, store: KeyValueStore, serializer: Serializer) -> None:
        self._store = store
        self._serializer = serializer
        self._logger = logging.getLogger("core.blockstore.txindex")

    @staticmethod
    def height_key(result: TxResult) -> bytes:
        return (
            f"{TX_HEIGHT_KEY}/{result.height}/{result.height}/{result.index}"
        ).encode("utf-8")

    def get(self, hash_: bytes) -> TxResult | None:
        data = self._store.get(hash_)
        if not data:
            return None
        return self._decode(hash_, data)

    def delete(self, txs: Iterable[bytes]) -> int:
        """
        Remove the index entries of `txs` in one durable batch.
        Transactions that are not indexed are skipped. Returns the
        number of transactions removed.
        """
        mutations: list[Mutation] = []
        for tx in txs:
            hash_ = tx_hash(tx)
            result = self.get(hash_)
            if result is None:
                continue

            mutations.append((hash_, None))
            mutations.append((self.height_key(result), None))

        if mutations:
            self._store.write_batch(mutations, sync=True)
            self._logger.debug(f"Removed {len(mutations) // 2} tx index entries")
        return len(mutations) // 2

    def close(self) -> None:
        self._store.close()

    def _decode(self, hash_: bytes, data: bytes) -> TxResult:
        try:
            return TxResult.from_dict(self._serializer.deserialize(data))
        except (ValueError, TypeError, KeyError) as ex:
            raise NodekitError("error decoding TxResult", hash=hash_.hex()) from ex
