import logging
from collections.abc import Callable

from nodekit.core.errors import WriteFailure
from nodekit.core.ports.storage import KeyValueStore, Mutation


class BatchedWriter:
    """
    Accumulate mutations against one destination store and write them
    in bounded batches.

    Intermediate flushes (`maybe_flush`, `flush`) are not durable: a
    crash may lose them until `finish` returns, which always performs a
    durable write of whatever is still pending, even an empty batch.
    A batch is discarded once written (or once its write failed); it is
    never reused.

    `flush_threshold` is counted in mutations. None disables the
    size-triggered flushes so that everything goes out with `finish`.

    `before_flush` is invoked right before each batch is written, which
    lets callers update a dependent store ahead of the batch.
    """
    def __init__(
        self,
        store: KeyValueStore,
        flush_threshold: int | None = None,
        before_flush: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._threshold = flush_threshold
        self._before_flush = before_flush
        self._pending: list[Mutation] = []
        self._written = 0
        self._flushes = 0
        self._logger = logging.getLogger("core.storage.batch")

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def written(self) -> int:
        """Number of mutations successfully handed to the store so far."""
        return self._written

    @property
    def flushes(self) -> int:
        return self._flushes

    def put(self, key: bytes, value: bytes) -> None:
        self._pending.append((key, value))

    def delete(self, key: bytes) -> None:
        self._pending.append((key, None))

    def maybe_flush(self) -> bool:
        if self._threshold is None or len(self._pending) <= self._threshold:
            return False
        self.flush()
        return True

    def flush(self, durable: bool = False) -> None:
        batch, self._pending = self._pending, []

        if self._before_flush is not None:
            self._before_flush()

        try:
            self._store.write_batch(batch, sync=durable)
        except WriteFailure as ex:
            context = {k: v for k, v in ex.context.items() if k != "written"}
            raise WriteFailure(
                f"write batch after {self._written} items: {ex.message}",
                written=self._written,
                **context,
            ) from ex

        self._written += len(batch)
        self._flushes += 1
        self._logger.debug(
            f"Flushed {len(batch)} mutations (durable={durable}, total={self._written})"
        )

    def finish(self) -> None:
        self.flush(durable=True)
