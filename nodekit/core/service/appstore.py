import logging
from contextlib import ExitStack, closing

from nodekit.core.appstore.clone import CloneProgressLogger, CloneResult, StoreCloner
from nodekit.core.appstore.evm import (
    BLOOM_FILTERS,
    EVM_PREFIX,
    EVM_PREFIX_END,
    TX_HASHES,
    AuxKeyspace,
    EvmStateTransform,
)
from nodekit.core.appstore.stats import StoreStats, collect_stats
from nodekit.core.errors import VersionMismatch
from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.ports.storage import StoreFactory
from nodekit.core.ports.tree import TreeFactory
from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.codec import KeyCodec
from nodekit.core.storage.extract import RangeExtractor, ScanResult

VALUE_DB_HEADER_PREFIX = b"dbh"
VALUE_DB_VERSION_KEY = KeyCodec.compose(VALUE_DB_HEADER_PREFIX, b"v")


class AppStoreService:
    """
    Maintenance operations over the versioned app store.

    Every operation opens its stores itself and closes them on every
    exit path. Source stores are opened read-only. A destination left
    behind by a failed operation is partial and must be deleted before
    the operation is retried.
    """
    def __init__(self, store_factory: StoreFactory, tree_factory: TreeFactory) -> None:
        self._stores = store_factory
        self._trees = tree_factory
        self._logger = logging.getLogger("core.service.appstore")

    def clone(
        self,
        src_path: str,
        src_value_path: str | None,
        dest_path: str,
        height: int = 0,
        log_level: int = 0,
        saves_per_commit: int = 0,
    ) -> CloneResult:
        with ExitStack() as stack:
            src = stack.enter_context(closing(self._stores.open(src_path, readonly=True)))

            value_getter = None
            if src_value_path:
                value_store = stack.enter_context(
                    closing(self._stores.open(src_value_path, readonly=True))
                )
                value_getter = value_store.get

            tree = self._trees.open_tree(src, value_getter)
            loaded = tree.load_version(height)

            # the value store only holds the values of the latest version
            if value_getter is not None and height > 0:
                latest = tree.latest_version()
                if loaded != height or loaded != latest:
                    raise VersionMismatch(
                        "height doesn't match latest tree version",
                        height=height,
                        loaded=loaded,
                        latest=latest,
                    )

            self._logger.info(
                f"Tree version {loaded} height {tree.height} with {tree.size} keys"
            )

            dest = stack.enter_context(closing(self._stores.open(dest_path)))
            hook = CloneProgressLogger(tree.size, log_level) if log_level > 0 else None
            cloner = StoreCloner(
                destination=self._trees.node_store(dest),
                writer=BatchedWriter(dest),
                saves_per_commit=saves_per_commit,
                hook=hook,
            )
            result = cloner.clone(tree.get_immutable(loaded))

        self._logger.info(
            f"Cloned version {result.version}: {result.nodes} nodes, "
            f"{result.leaves} leaves, {result.commits} commits"
        )
        return result

    def extract_values(
        self,
        src_path: str,
        dest_path: str,
        version: int = 0,
        log_level: int = 0,
        batch_size: int = 10000,
    ) -> ScanResult:
        with ExitStack() as stack:
            src = stack.enter_context(closing(self._stores.open(src_path, readonly=True)))
            tree = self._trees.open_tree(src)
            if version == 0:
                version = tree.load_version(0)
            snapshot = tree.get_immutable(version)

            self._logger.info(
                f"Tree version {version} height {snapshot.height} with {snapshot.size} keys"
            )

            def write_version(_: ScanResult, writer: BatchedWriter) -> None:
                writer.put(VALUE_DB_VERSION_KEY, KeyCodec.encode_height_be(version))

            dest = stack.enter_context(closing(self._stores.open(dest_path)))
            extractor = RangeExtractor(
                writer=BatchedWriter(dest, batch_size),
                progress=ProgressEstimator(snapshot.size, log_level),
                on_complete=write_version,
                name="values",
            )
            result = extractor.run(snapshot.iterate())

        result.raise_for_error()
        return result

    def extract_evm_state(
        self,
        src_path: str,
        dest_path: str,
        batch_size: int = 10000,
        log_level: int = 0,
        height: int = 0,
    ) -> ScanResult:
        with ExitStack() as stack:
            src = stack.enter_context(closing(self._stores.open(src_path, readonly=True)))
            tree = self._trees.open_tree(src)
            version = tree.load_version(height)
            self._logger.info(f"Extract EVM state at height {version}")
            self._logger.info(f"Source app store size {tree.size} data values")

            dest = stack.enter_context(closing(self._stores.open(dest_path)))
            transform = EvmStateTransform(version)
            extractor = RangeExtractor(
                writer=BatchedWriter(dest, batch_size),
                transform=transform,
                prefix=EVM_PREFIX,
                progress=ProgressEstimator(tree.size, log_level),
                on_complete=transform.complete,
                name="evm-state",
            )
            result = extractor.extract(tree, EVM_PREFIX, EVM_PREFIX_END)

        result.raise_for_error()
        return result

    def extract_evm_aux(
        self,
        src_path: str,
        dest_path: str,
        batch_size: int = 10000,
        log_level: int = 0,
        bloom_filter: bool = True,
        tx_hash: bool = True,
    ) -> dict[str, ScanResult]:
        keyspaces: list[AuxKeyspace] = []
        if bloom_filter:
            keyspaces.append(BLOOM_FILTERS)
        if tx_hash:
            keyspaces.append(TX_HASHES)

        results: dict[str, ScanResult] = {}
        with ExitStack() as stack:
            src = stack.enter_context(closing(self._stores.open(src_path, readonly=True)))
            tree = self._trees.open_tree(src)
            tree.load_version(0)
            self._logger.info(f"Source app store size {tree.size} data values")

            dest = stack.enter_context(closing(self._stores.open(dest_path)))
            for keyspace in keyspaces:
                extractor = RangeExtractor(
                    writer=BatchedWriter(dest, batch_size),
                    transform=keyspace.transform(),
                    prefix=keyspace.prefix,
                    progress=ProgressEstimator(tree.size, log_level),
                    name=keyspace.name,
                )
                result = extractor.extract(tree, keyspace.prefix, keyspace.end)
                result.raise_for_error()
                results[keyspace.name] = result

        return results

    def total_data(
        self,
        path: str,
        prefix: bytes | None = None,
        height: int = 0,
        log_level: int = 0,
    ) -> StoreStats:
        with closing(self._stores.open(path, readonly=True)) as src:
            tree = self._trees.open_tree(src)
            tree.load_version(height)
            self._logger.info(f"Database of height {tree.height} with {tree.size} keys")

            progress = ProgressEstimator(tree.size, log_level, fallback_period=10)
            return collect_stats(tree, prefix, progress)
