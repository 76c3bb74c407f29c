import logging
from dataclasses import dataclass

from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.ports.tree import ImmutableTree
from nodekit.core.storage.codec import KeyCodec


@dataclass(frozen=True, slots=True)
class StoreStats:
    num_keys: int
    total_key_bytes: int
    total_value_bytes: int
    elapsed: float

    @property
    def total_bytes(self) -> int:
        return self.total_key_bytes + self.total_value_bytes


def collect_stats(
    tree: ImmutableTree,
    prefix: bytes | None,
    progress: ProgressEstimator,
) -> StoreStats:
    logger = logging.getLogger("core.appstore.stats")

    start = prefix or None
    end = KeyCodec.range_end(start)
    num_keys = key_total = value_total = 0

    for key, value in tree.iterate_range(start, end):
        num_keys += 1
        key_total += len(key)
        value_total += len(value)

        sample = progress.tick(num_keys)
        if sample is not None:
            eta = "unknown" if sample.eta is None else f"{sample.eta:.0f}"
            logger.info(
                f"{num_keys} keys, {sample.percent}% of the total. "
                f"Total size of kv pairs read so far is {key_total + value_total} bytes. "
                f"Time taken so far {sample.elapsed:.1f} seconds, "
                f"expected to complete in {eta} seconds."
            )

    return StoreStats(
        num_keys=num_keys,
        total_key_bytes=key_total,
        total_value_bytes=value_total,
        elapsed=progress.elapsed(),
    )
